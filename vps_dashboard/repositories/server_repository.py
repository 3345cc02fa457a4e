"""
ServerRepository — persistence gateway for the orchestration core.

Every public method runs in its own short transaction, so no caller ever holds a
row lock across a hypervisor call. Status changes go exclusively through
``compare_and_swap`` / ``delete``, which only touch the row when its status still
equals the expected value: the status column is the per-server mutex.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import delete, exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vps_dashboard.core.exceptions import AddressPoolExhaustedError
from vps_dashboard.models.ip_address import IpAddress
from vps_dashboard.models.server import TRANSIENT_STATUSES, Server, ServerStatus
from vps_dashboard.models.service import Service, ServiceStatus

logger = logging.getLogger(__name__)

# Fields written exactly once, on setting_up -> running
PROVISIONING_FIELDS = frozenset({"vm_id", "node_name", "ip_address"})
_MUTABLE_FIELDS = PROVISIONING_FIELDS | {"last_error"}

# Free addresses tried per reservation before giving up on a busy pool
_RESERVATION_CANDIDATES = 5

_TRANSIENT = sorted(TRANSIENT_STATUSES, key=lambda s: s.value)


@dataclass
class ServerRecord:
    id: str
    host_name: str
    status: ServerStatus
    vm_id: int | None
    node_name: str | None
    ip_address: str | None
    last_error: str | None
    legacy_id: int | None
    status_changed_at: datetime
    created_at: datetime
    updated_at: datetime


@dataclass
class AddressLease:
    address: str
    gateway: str
    netmask: int


@dataclass
class NewServer:
    user_id: str
    host_name: str
    status: ServerStatus = ServerStatus.SETTING_UP
    product_id: str | None = None
    template_id: str | None = None
    service_status: ServiceStatus = ServiceStatus.PENDING
    # Resolved sizing the service was ordered with
    cpu_cores: int | None = None
    ram_gb: int | None = None
    vm_id: int | None = None
    node_name: str | None = None
    ip_address: str | None = None
    legacy_id: int | None = None


def _server_to_record(server: Server) -> ServerRecord:
    now = datetime.now(UTC)
    return ServerRecord(
        id=server.id,
        host_name=server.host_name,
        status=server.status,
        vm_id=server.vm_id,
        node_name=server.node_name,
        ip_address=server.ip_address,
        last_error=server.last_error,
        legacy_id=server.legacy_id,
        status_changed_at=server.status_changed_at or now,
        created_at=server.created_at if server.created_at else now,
        updated_at=server.updated_at if server.updated_at else now,
    )


class ServerRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # --- Reads ---

    async def get(self, server_id: str, user_id: str | None = None) -> ServerRecord | None:
        """Read one server; when ``user_id`` is given, only if that user owns it."""
        stmt = select(Server).where(Server.id == server_id)
        if user_id is not None:
            stmt = stmt.join(Service, Service.server_id == Server.id).where(
                Service.user_id == user_id
            )
        async with self._session_factory() as session:
            server = (await session.execute(stmt)).scalar_one_or_none()
            return _server_to_record(server) if server else None

    async def get_by_legacy_id(self, legacy_id: int) -> ServerRecord | None:
        async with self._session_factory() as session:
            result = await session.execute(select(Server).where(Server.legacy_id == legacy_id))
            server = result.scalar_one_or_none()
            return _server_to_record(server) if server else None

    async def list_for_user(
        self, user_id: str, limit: int, offset: int
    ) -> tuple[list[ServerRecord], int]:
        owned = select(Service.server_id).where(Service.user_id == user_id)
        async with self._session_factory() as session:
            count_result = await session.execute(
                select(func.count()).select_from(Server).where(Server.id.in_(owned))
            )
            total = count_result.scalar_one()

            result = await session.execute(
                select(Server)
                .where(Server.id.in_(owned))
                .order_by(Server.created_at.desc(), Server.id)
                .limit(limit)
                .offset(offset)
            )
            servers = list(result.scalars().all())
        return [_server_to_record(s) for s in servers], total

    async def has_transient_for_user(self, user_id: str) -> bool:
        stmt = select(
            exists().where(
                Service.server_id == Server.id,
                Service.user_id == user_id,
                Server.status.in_(_TRANSIENT),
            )
        )
        async with self._session_factory() as session:
            return bool((await session.execute(stmt)).scalar())

    async def find_stale(self, changed_before: datetime) -> list[ServerRecord]:
        """Servers stuck in a transient status since before ``changed_before``."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Server)
                .where(
                    Server.status.in_(_TRANSIENT),
                    Server.status_changed_at < changed_before,
                )
                .order_by(Server.status_changed_at)
            )
            return [_server_to_record(s) for s in result.scalars().all()]

    # --- Writes ---

    async def insert(self, new: NewServer) -> ServerRecord:
        """Insert an already provisioned server and its service row atomically.

        When ``new.ip_address`` belongs to the address pool, that pool entry is
        claimed in the same transaction so it is never handed out again.
        """
        async with self._session_factory() as session, session.begin():
            server = await self._add_rows(session, new)
            if new.ip_address is not None:
                await self._claim_known_address(session, server.id, new.ip_address)
            record = _server_to_record(server)

        logger.debug(
            "Server row inserted",
            extra={"server_id": record.id, "status": record.status.value},
        )
        return record

    async def insert_with_address(
        self, new: NewServer, datacenter: str
    ) -> tuple[ServerRecord, AddressLease]:
        """Insert a server, its service row and a free address from ``datacenter``.

        All three are written in one transaction, so no server is ever committed
        without its service or its address.

        Raises:
            AddressPoolExhaustedError: no free address left in the datacenter.
        """
        async with self._session_factory() as session, session.begin():
            server = await self._add_rows(session, new)
            lease = await self._reserve_address(session, server.id, datacenter)
            record = _server_to_record(server)

        logger.debug(
            "Server row inserted",
            extra={
                "server_id": record.id,
                "status": record.status.value,
                "ip_address": lease.address,
            },
        )
        return record, lease

    async def _add_rows(self, session: AsyncSession, new: NewServer) -> Server:
        server = Server(
            host_name=new.host_name,
            status=new.status,
            vm_id=new.vm_id,
            node_name=new.node_name,
            ip_address=new.ip_address,
            legacy_id=new.legacy_id,
            status_changed_at=datetime.now(UTC),
        )
        session.add(server)
        await session.flush()

        session.add(
            Service(
                user_id=new.user_id,
                product_id=new.product_id,
                template_id=new.template_id,
                server_id=server.id,
                status=new.service_status,
                cpu_cores=new.cpu_cores,
                ram_gb=new.ram_gb,
                legacy_id=new.legacy_id,
            )
        )
        await session.flush()
        await session.refresh(server)
        return server

    async def _claim_known_address(
        self, session: AsyncSession, server_id: str, address: str
    ) -> None:
        claimed = await session.execute(
            update(IpAddress)
            .where(IpAddress.address == address, IpAddress.server_id.is_(None))
            .values(server_id=server_id)
        )
        if claimed.rowcount == 1:
            return
        holder = (
            await session.execute(select(IpAddress.server_id).where(IpAddress.address == address))
        ).scalar_one_or_none()
        if holder is not None:
            logger.warning(
                "Address already reserved by another server",
                extra={"server_id": server_id, "ip_address": address, "holder": holder},
            )

    async def _reserve_address(
        self, session: AsyncSession, server_id: str, datacenter: str
    ) -> AddressLease:
        candidates = await session.execute(
            select(IpAddress)
            .where(IpAddress.datacenter == datacenter, IpAddress.server_id.is_(None))
            .order_by(IpAddress.address)
            .limit(_RESERVATION_CANDIDATES)
            .with_for_update(skip_locked=True)
        )
        for ip in candidates.scalars().all():
            # Conditional claim: a concurrent reservation may have taken it since the read
            claimed = await session.execute(
                update(IpAddress)
                .where(IpAddress.id == ip.id, IpAddress.server_id.is_(None))
                .values(server_id=server_id)
            )
            if claimed.rowcount == 1:
                return AddressLease(address=ip.address, gateway=ip.gateway, netmask=ip.netmask)
        raise AddressPoolExhaustedError(datacenter)

    async def compare_and_swap(
        self,
        server_id: str,
        expected_status: ServerStatus,
        new_status: ServerStatus,
        extra_fields: dict[str, object] | None = None,
        service_status: ServiceStatus | None = None,
    ) -> ServerRecord | None:
        """Set ``new_status`` only if the row still holds ``expected_status``.

        Returns the updated record, or None when the row is gone or another
        writer changed its status first.
        """
        fields = dict(extra_fields or {})
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not writable through compare_and_swap: {sorted(unknown)}")
        if PROVISIONING_FIELDS & set(fields) and expected_status != ServerStatus.SETTING_UP:
            raise ValueError("Provisioning fields can only be written while setting_up")

        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(Server)
                .where(Server.id == server_id, Server.status == expected_status)
                .values(status=new_status, status_changed_at=datetime.now(UTC), **fields)
            )
            if result.rowcount != 1:
                return None

            if service_status is not None:
                await session.execute(
                    update(Service)
                    .where(Service.server_id == server_id)
                    .values(status=service_status)
                )

            server = (
                await session.execute(
                    select(Server)
                    .where(Server.id == server_id)
                    .execution_options(populate_existing=True)
                )
            ).scalar_one()
            return _server_to_record(server)

    async def delete(self, server_id: str, expected_status: ServerStatus) -> bool:
        """Remove the server row, its service and its address reservation.

        Only deletes while the row still holds ``expected_status``.
        """
        async with self._session_factory() as session:
            await session.execute(delete(Service).where(Service.server_id == server_id))
            await session.execute(
                update(IpAddress).where(IpAddress.server_id == server_id).values(server_id=None)
            )
            removed = await session.execute(
                delete(Server).where(Server.id == server_id, Server.status == expected_status)
            )
            if removed.rowcount != 1:
                await session.rollback()
                return False
            await session.commit()
        return True
