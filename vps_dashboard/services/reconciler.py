"""
Reconciler — resolves a finished job into durable server state.

Called exactly once per job. Every write is conditional on the row still holding
the job's transient status; a miss means something outside the lifecycle touched
the row, which is logged as an invariant violation and never applied blindly.
"""

import logging

from vps_dashboard.models.server import ServerStatus
from vps_dashboard.models.service import ServiceStatus
from vps_dashboard.repositories.server_repository import ServerRepository
from vps_dashboard.services.state_machine import FAILURE_STATUS, ServerAction
from vps_dashboard.workers.job import Job, JobOutcome

logger = logging.getLogger(__name__)


class Reconciler:
    def __init__(self, repository: ServerRepository) -> None:
        self._repository = repository

    async def reconcile(self, job: Job, outcome: JobOutcome) -> bool:
        """Apply ``outcome``; returns False when the conditional write missed."""
        if outcome.succeeded:
            return await self._resolve_success(job, outcome)
        return await self._resolve_failure(job, outcome)

    async def _resolve_success(self, job: Job, outcome: JobOutcome) -> bool:
        if job.success_status is None:
            removed = await self._repository.delete(
                job.server_id, expected_status=job.transient_status
            )
            if not removed:
                self._invariant_violation(job, target=None)
                return False
            logger.info(
                "Server deleted",
                extra={"server_id": job.server_id, "job_id": job.id, "attempts": outcome.attempts},
            )
            return True

        fields: dict[str, object] = {"last_error": None}
        service_status = None
        if job.action == ServerAction.CREATE:
            service_status = ServiceStatus.ACTIVE
            if outcome.provisioned is not None:
                fields.update(
                    vm_id=outcome.provisioned.vm_id,
                    node_name=outcome.provisioned.node_name,
                    ip_address=outcome.provisioned.ip_address,
                )

        updated = await self._repository.compare_and_swap(
            job.server_id,
            expected_status=job.transient_status,
            new_status=job.success_status,
            extra_fields=fields,
            service_status=service_status,
        )
        if updated is None:
            self._invariant_violation(job, target=job.success_status)
            return False

        logger.info(
            "State transition complete",
            extra={
                "server_id": job.server_id,
                "job_id": job.id,
                "action": job.action.value,
                "from_status": job.transient_status.value,
                "new_status": updated.status.value,
                "attempts": outcome.attempts,
            },
        )
        return True

    async def _resolve_failure(self, job: Job, outcome: JobOutcome) -> bool:
        kind = outcome.failure_kind.value if outcome.failure_kind else "unknown"
        detail = f"{job.action.value} failed ({kind}): {outcome.detail}"
        updated = await self._repository.compare_and_swap(
            job.server_id,
            expected_status=job.transient_status,
            new_status=FAILURE_STATUS,
            extra_fields={"last_error": detail},
            service_status=ServiceStatus.FAILED if job.action == ServerAction.CREATE else None,
        )
        if updated is None:
            self._invariant_violation(job, target=FAILURE_STATUS)
            return False

        logger.error(
            "Background job failed",
            extra={
                "server_id": job.server_id,
                "job_id": job.id,
                "action": job.action.value,
                "from_status": job.transient_status.value,
                "new_status": updated.status.value,
                "failure_kind": kind,
                "detail": outcome.detail,
                "attempts": outcome.attempts,
            },
        )
        return True

    def _invariant_violation(self, job: Job, target: ServerStatus | None) -> None:
        logger.error(
            "Reconciliation skipped: server no longer in expected transient status",
            extra={
                "server_id": job.server_id,
                "job_id": job.id,
                "action": job.action.value,
                "expected_status": job.transient_status.value,
                "target_status": target.value if target else "deleted",
            },
        )
