"""
Legacy hosting record loader.

Inserts servers exported from the legacy billing system directly in a stable
status; they never pass through the lifecycle state machine. Records whose
``legacy_id`` is already present are skipped, so a load can be re-run safely.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vps_dashboard.models.product import Product
from vps_dashboard.models.server import ServerStatus
from vps_dashboard.models.service import ServiceStatus
from vps_dashboard.repositories.server_repository import NewServer, ServerRepository

logger = logging.getLogger(__name__)

LEGACY_ACTIVE_STATUS = "Active"


class LegacyRecord(BaseModel):
    legacy_id: int = Field(..., ge=1)
    user_id: str = Field(..., min_length=1)
    host_name: str = Field(..., min_length=1, max_length=253)
    vm_id: int | None = None
    node_name: str | None = None
    ip_address: str | None = None
    # Active, Suspended, Terminated, ...
    status: str
    product_name: str | None = None

    @property
    def server_status(self) -> ServerStatus:
        if self.status == LEGACY_ACTIVE_STATUS:
            return ServerStatus.RUNNING
        return ServerStatus.STOPPED


@dataclass
class LoadReport:
    inserted: int = 0
    skipped: int = 0


async def _product_ids(session_factory: async_sessionmaker[AsyncSession]) -> dict[str, str]:
    async with session_factory() as session:
        result = await session.execute(select(Product.name, Product.id))
        return {name: product_id for name, product_id in result.all()}


async def load_records(
    session_factory: async_sessionmaker[AsyncSession], records: Iterable[LegacyRecord]
) -> LoadReport:
    repository = ServerRepository(session_factory)
    products = await _product_ids(session_factory)
    report = LoadReport()

    for record in records:
        if await repository.get_by_legacy_id(record.legacy_id) is not None:
            report.skipped += 1
            logger.debug("Legacy record already loaded", extra={"legacy_id": record.legacy_id})
            continue

        product_id = None
        if record.product_name is not None:
            product_id = products.get(record.product_name)
            if product_id is None:
                logger.warning(
                    "Legacy record references unknown product; loading without product",
                    extra={"legacy_id": record.legacy_id, "product_name": record.product_name},
                )

        try:
            server = await repository.insert(
                NewServer(
                    user_id=record.user_id,
                    host_name=record.host_name,
                    status=record.server_status,
                    product_id=product_id,
                    service_status=ServiceStatus.ACTIVE,
                    vm_id=record.vm_id,
                    node_name=record.node_name,
                    ip_address=record.ip_address,
                    legacy_id=record.legacy_id,
                )
            )
        except IntegrityError:
            # Loaded concurrently by another run
            report.skipped += 1
            logger.warning(
                "Legacy record conflicts with an existing row, skipped",
                extra={"legacy_id": record.legacy_id},
            )
            continue

        report.inserted += 1
        logger.info(
            "Legacy server loaded",
            extra={
                "legacy_id": record.legacy_id,
                "server_id": server.id,
                "status": server.status.value,
            },
        )

    logger.info(
        "Legacy load finished", extra={"inserted": report.inserted, "skipped": report.skipped}
    )
    return report
