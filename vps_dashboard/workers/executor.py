"""
JobExecutor — runs one job's hypervisor call under the retry policy.

Each attempt is bounded by ``attempt_timeout_s``; a timeout counts as a transient
failure. Transient failures are retried with exponential backoff until either
``max_attempts`` or the overall ``deadline_s`` is reached. Permanent failures end
the job at once. The executor never raises for hypervisor errors: it always
returns a JobOutcome for the reconciler.

A create job allocates its VM id on the first attempt and every retry clones
under that same id, so a retry resumes the VM instead of cloning a second one.
When the job finally fails, whatever the clone left behind is destroyed.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from vps_dashboard.config import settings
from vps_dashboard.infra.hypervisor.base import (
    CloneRequest,
    HypervisorClientBase,
    HypervisorError,
    ProvisionedVm,
    RemoteNotFoundError,
    RemotePermanentError,
    RemoteTransientError,
    VmIdConflictError,
)
from vps_dashboard.services.state_machine import ServerAction
from vps_dashboard.workers.job import FailureKind, Job, JobOutcome

logger = logging.getLogger(__name__)

_POWER_CALLS: dict[ServerAction, str] = {
    ServerAction.START: "power_on",
    ServerAction.STOP: "power_off",
    ServerAction.REBOOT: "reboot",
    ServerAction.SHUTDOWN: "graceful_shutdown",
}


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    backoff_base_s: float = 1.0
    backoff_max_s: float = 30.0
    attempt_timeout_s: float = 60.0
    deadline_s: float = 300.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            backoff_base_s=settings.retry_backoff_base_s,
            backoff_max_s=settings.retry_backoff_max_s,
            attempt_timeout_s=settings.job_attempt_timeout_s,
            deadline_s=settings.job_deadline_s,
        )


def _log_retry(job: Job, retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Transient hypervisor failure, retrying",
        extra={
            "job_id": job.id,
            "server_id": job.server_id,
            "action": job.action.value,
            "attempt": retry_state.attempt_number,
            "error": str(exc),
            "sleep_s": retry_state.next_action.sleep if retry_state.next_action else None,
        },
    )


class JobExecutor:
    def __init__(self, hypervisor: HypervisorClientBase, policy: RetryPolicy) -> None:
        self._hypervisor = hypervisor
        self._policy = policy

    async def run(self, job: Job) -> JobOutcome:
        retrying = AsyncRetrying(
            stop=(
                stop_after_attempt(self._policy.max_attempts)
                | stop_after_delay(self._policy.deadline_s)
            ),
            wait=wait_exponential(
                multiplier=self._policy.backoff_base_s, max=self._policy.backoff_max_s
            ),
            retry=retry_if_exception_type(RemoteTransientError),
            before_sleep=lambda retry_state: _log_retry(job, retry_state),
            reraise=True,
        )
        attempts = 0
        # Carries the VM id across attempts once allocated
        clone = job.clone

        async def call() -> ProvisionedVm | None:
            nonlocal clone
            if job.action != ServerAction.CREATE:
                return await self._call(job)
            if clone is None:
                raise RemotePermanentError("clone", "create job carries no clone request")
            if clone.vm_id is None:
                clone = replace(clone, vm_id=await self._hypervisor.next_vm_id())
                logger.debug(
                    "VM id allocated",
                    extra={"job_id": job.id, "server_id": job.server_id, "vm_id": clone.vm_id},
                )
            return await self._hypervisor.clone(clone)

        async def attempt() -> ProvisionedVm | None:
            nonlocal attempts
            attempts += 1
            return await self._attempt(job, call)

        try:
            provisioned = await retrying(attempt)
        except RemoteTransientError as exc:
            detail = f"gave up after {attempts} attempt(s): {exc}"
            return JobOutcome.failure(
                FailureKind.TRANSIENT_EXHAUSTED,
                detail + await self._discard_partial(job, clone),
                attempts=attempts,
            )
        except VmIdConflictError as exc:
            # The VM under that id is not ours to remove
            return JobOutcome.failure(FailureKind.PERMANENT, str(exc), attempts=attempts)
        except RemotePermanentError as exc:
            return JobOutcome.failure(
                FailureKind.PERMANENT,
                str(exc) + await self._discard_partial(job, clone),
                attempts=attempts,
            )
        return JobOutcome.success(provisioned=provisioned, attempts=attempts)

    async def _attempt(
        self, job: Job, call: Callable[[], Awaitable[ProvisionedVm | None]]
    ) -> ProvisionedVm | None:
        try:
            return await asyncio.wait_for(call(), timeout=self._policy.attempt_timeout_s)
        except TimeoutError as exc:
            raise RemoteTransientError(
                job.action.value, f"no response within {self._policy.attempt_timeout_s}s"
            ) from exc

    async def _discard_partial(self, job: Job, clone: CloneRequest | None) -> str:
        """Remove a VM a failed create left behind; returns a note for the failure detail."""
        if job.action != ServerAction.CREATE or clone is None or clone.vm_id is None:
            return ""
        try:
            removed = await asyncio.wait_for(
                self._hypervisor.discard_clone(clone), timeout=self._policy.attempt_timeout_s
            )
        except (HypervisorError, TimeoutError) as exc:
            logger.error(
                "Partial VM left behind after failed create",
                extra={
                    "job_id": job.id,
                    "server_id": job.server_id,
                    "vm_id": clone.vm_id,
                    "node": clone.template.node_name,
                    "error": str(exc),
                },
            )
            return f"; VM {clone.vm_id} on {clone.template.node_name} left behind"
        if removed:
            logger.warning(
                "Partial VM destroyed after failed create",
                extra={"job_id": job.id, "server_id": job.server_id, "vm_id": clone.vm_id},
            )
        return ""

    async def _call(self, job: Job) -> ProvisionedVm | None:
        hv = self._hypervisor

        if job.vm is None:
            if job.action == ServerAction.DELETE:
                # Never provisioned: nothing exists remotely
                return None
            raise RemotePermanentError(job.action.value, "server has no hypervisor VM")

        if job.action == ServerAction.DELETE:
            try:
                await hv.destroy(job.vm)
            except RemoteNotFoundError:
                # An earlier attempt may already have destroyed it
                logger.info(
                    "VM already absent on hypervisor, treating destroy as done",
                    extra={"job_id": job.id, "server_id": job.server_id, "vm_id": job.vm.vm_id},
                )
            return None

        await getattr(hv, _POWER_CALLS[job.action])(job.vm)
        return None
