"""
ActionDispatcher — validates a lifecycle action, claims the server and queues the job.

The claim is the conditional write of the transient status: whoever flips the
row out of its stable status owns the server until the reconciler resolves it.
The dispatcher never waits on the hypervisor. When the worker pool refuses the
job, the claim is rolled back before the error reaches the caller.
"""

import logging
from dataclasses import dataclass

from vps_dashboard.core.exceptions import (
    ActionConflictError,
    AppException,
    ServerNotFoundError,
    WorkersUnavailableError,
)
from vps_dashboard.infra.hypervisor.base import CloneRequest, VmRef
from vps_dashboard.repositories.catalog_repository import TemplateRecord
from vps_dashboard.repositories.server_repository import (
    NewServer,
    ServerRecord,
    ServerRepository,
)
from vps_dashboard.services.state_machine import SUCCESS_STATUS, ServerAction, transition
from vps_dashboard.workers.job import Job
from vps_dashboard.workers.pool import WorkerPool, WorkerPoolClosedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProvisioningRequest:
    user_id: str
    host_name: str
    datacenter: str
    product_id: str
    template: TemplateRecord
    cpu_cores: int
    ram_gb: int


class ActionDispatcher:
    def __init__(self, repository: ServerRepository, pool: WorkerPool) -> None:
        self._repository = repository
        self._pool = pool

    async def dispatch(
        self, server_id: str, action: ServerAction, user_id: str | None = None
    ) -> ServerRecord:
        """Move the server into the action's transient status and queue the job.

        Raises:
            ServerNotFoundError: no such server (or not owned by ``user_id``).
            ActionConflictError: an operation is already in flight.
            InvalidTransitionError: the action is not legal in the current status.
            WorkersUnavailableError: the worker pool is shutting down.
        """
        server = await self._repository.get(server_id, user_id=user_id)
        if server is None:
            raise ServerNotFoundError(server_id)

        try:
            target = transition(server.status, action, server_id=server_id)
        except AppException:
            logger.warning(
                "Action rejected",
                extra={
                    "server_id": server_id,
                    "current_status": server.status.value,
                    "action": action.value,
                },
            )
            raise

        claimed = await self._repository.compare_and_swap(
            server_id, expected_status=server.status, new_status=target
        )
        if claimed is None:
            # Another request changed the status between our read and write
            logger.warning(
                "Action lost race for server",
                extra={
                    "server_id": server_id,
                    "read_status": server.status.value,
                    "action": action.value,
                },
            )
            raise ActionConflictError(
                current_status=server.status.value, action=action.value, server_id=server_id
            )

        vm = None
        if claimed.vm_id is not None and claimed.node_name is not None:
            vm = VmRef(node_name=claimed.node_name, vm_id=claimed.vm_id)

        job = Job(
            server_id=server_id,
            action=action,
            transient_status=target,
            success_status=SUCCESS_STATUS[action],
            vm=vm,
        )
        try:
            self._pool.submit(job)
        except WorkerPoolClosedError:
            restored = await self._repository.compare_and_swap(
                server_id, expected_status=target, new_status=server.status
            )
            self._log_refused(job, released=restored is not None)
            raise WorkersUnavailableError(action.value, server_id=server_id) from None

        logger.info(
            "Action dispatched",
            extra={
                "server_id": server_id,
                "job_id": job.id,
                "action": action.value,
                "from_status": server.status.value,
                "new_status": target.value,
            },
        )
        return claimed

    async def dispatch_create(self, request: ProvisioningRequest) -> ServerRecord:
        """Insert a ``setting_up`` server with its service and address, then queue the clone.

        Raises:
            AddressPoolExhaustedError: no free address in ``request.datacenter``.
            WorkersUnavailableError: the worker pool is shutting down.
        """
        target = transition(None, ServerAction.CREATE)
        record, lease = await self._repository.insert_with_address(
            NewServer(
                user_id=request.user_id,
                host_name=request.host_name,
                status=target,
                product_id=request.product_id,
                template_id=request.template.id,
                cpu_cores=request.cpu_cores,
                ram_gb=request.ram_gb,
            ),
            datacenter=request.datacenter,
        )

        clone = CloneRequest(
            template=VmRef(node_name=request.template.node_name, vm_id=request.template.vm_id),
            host_name=request.host_name,
            ip_address=lease.address,
            gateway=lease.gateway,
            netmask=lease.netmask,
            cpu_cores=request.cpu_cores,
            ram_gb=request.ram_gb,
        )
        job = Job(
            server_id=record.id,
            action=ServerAction.CREATE,
            transient_status=target,
            success_status=SUCCESS_STATUS[ServerAction.CREATE],
            clone=clone,
        )
        try:
            self._pool.submit(job)
        except WorkerPoolClosedError:
            # Nothing exists remotely yet: drop the row, its service and its address
            removed = await self._repository.delete(record.id, expected_status=target)
            self._log_refused(job, released=removed)
            raise WorkersUnavailableError(ServerAction.CREATE.value) from None

        logger.info(
            "Server creation dispatched",
            extra={
                "server_id": record.id,
                "job_id": job.id,
                "host_name": request.host_name,
                "template": request.template.name,
                "datacenter": request.datacenter,
                "ip_address": lease.address,
            },
        )
        return record

    def _log_refused(self, job: Job, released: bool) -> None:
        log_fn = logger.warning if released else logger.error
        log_fn(
            "Worker pool refused job; claim rolled back"
            if released
            else "Worker pool refused job and the claim could not be rolled back",
            extra={
                "server_id": job.server_id,
                "job_id": job.id,
                "action": job.action.value,
                "transient_status": job.transient_status.value,
            },
        )
