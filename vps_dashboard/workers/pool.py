"""
WorkerPool — asyncio workers that execute jobs off the request path.

The dispatcher only calls ``submit`` (non-blocking). Each worker takes a job,
runs it through the JobExecutor and hands the outcome to the Reconciler. A job
whose execution or reconciliation crashes is logged; the server stays in its
transient status and surfaces through the stale-job monitor.
"""

import asyncio
import logging
import time

from vps_dashboard.core.logging import job_id_var
from vps_dashboard.services.reconciler import Reconciler
from vps_dashboard.workers.executor import JobExecutor
from vps_dashboard.workers.job import FailureKind, Job, JobOutcome

logger = logging.getLogger(__name__)


class WorkerPoolClosedError(RuntimeError):
    pass


class WorkerPool:
    def __init__(
        self,
        executor: JobExecutor,
        reconciler: Reconciler,
        concurrency: int = 4,
        shutdown_timeout_s: float = 30.0,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._executor = executor
        self._reconciler = reconciler
        self._concurrency = concurrency
        self._shutdown_timeout_s = shutdown_timeout_s
        self._queue: asyncio.Queue[Job] = asyncio.Queue()
        self._workers: list[asyncio.Task[None]] = []
        self._closed = False

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        if self._workers:
            return
        self._closed = False
        self._workers = [
            asyncio.create_task(self._worker(index), name=f"lifecycle-worker-{index}")
            for index in range(self._concurrency)
        ]
        logger.info("Worker pool started", extra={"concurrency": self._concurrency})

    def submit(self, job: Job) -> None:
        """Queue ``job`` and return immediately."""
        if self._closed:
            raise WorkerPoolClosedError("Worker pool is shut down")
        self._queue.put_nowait(job)
        logger.debug(
            "Job queued",
            extra={
                "job_id": job.id,
                "server_id": job.server_id,
                "action": job.action.value,
                "queue_depth": self._queue.qsize(),
            },
        )

    async def drain(self) -> None:
        """Wait until every queued job has been reconciled."""
        await self._queue.join()

    async def stop(self) -> None:
        """Stop accepting jobs, let in-flight ones finish, then cancel the workers."""
        self._closed = True
        try:
            await asyncio.wait_for(self._queue.join(), timeout=self._shutdown_timeout_s)
        except TimeoutError:
            logger.error(
                "Worker pool shutdown timed out; unfinished jobs leave servers transient",
                extra={"pending": self._queue.qsize()},
            )
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        logger.info("Worker pool stopped")

    async def _worker(self, index: int) -> None:
        while True:
            job = await self._queue.get()
            token = job_id_var.set(job.id)
            try:
                await self._process(job)
            finally:
                job_id_var.reset(token)
                self._queue.task_done()

    async def _process(self, job: Job) -> None:
        started = time.monotonic()
        logger.info(
            "Job started",
            extra={
                "job_id": job.id,
                "server_id": job.server_id,
                "action": job.action.value,
                "queued_s": round(started - job.submitted_at, 3),
            },
        )
        try:
            outcome = await self._executor.run(job)
        except Exception as exc:
            # Programming or infrastructure error: still resolve the server
            logger.error(
                "Job execution crashed",
                exc_info=True,
                extra={"job_id": job.id, "server_id": job.server_id},
            )
            outcome = JobOutcome.failure(
                FailureKind.PERMANENT, f"internal error: {type(exc).__name__}: {exc}"
            )

        try:
            await self._reconciler.reconcile(job, outcome)
        except Exception:
            logger.error(
                "Reconciliation crashed; server left in transient status",
                exc_info=True,
                extra={
                    "job_id": job.id,
                    "server_id": job.server_id,
                    "transient_status": job.transient_status.value,
                },
            )
            return

        logger.info(
            "Job finished",
            extra={
                "job_id": job.id,
                "server_id": job.server_id,
                "action": job.action.value,
                "succeeded": outcome.succeeded,
                "duration_s": round(time.monotonic() - started, 3),
            },
        )
