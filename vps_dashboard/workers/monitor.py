"""
StaleJobMonitor — alarms on servers stuck in a transient status.

A server stays transient only while its job is outstanding. Once the job deadline
plus a grace period has passed, the worker that owned it is presumed lost. The
monitor only reports; it never rewrites the status.
"""

import asyncio
import logging
from datetime import UTC, datetime, timedelta

from vps_dashboard.repositories.server_repository import ServerRecord, ServerRepository

logger = logging.getLogger(__name__)


class StaleJobMonitor:
    def __init__(
        self, repository: ServerRepository, interval_s: float, threshold_s: float
    ) -> None:
        self._repository = repository
        self._interval_s = interval_s
        self._threshold_s = threshold_s
        self._task: asyncio.Task[None] | None = None

    async def scan_once(self) -> list[ServerRecord]:
        cutoff = datetime.now(UTC) - timedelta(seconds=self._threshold_s)
        stale = await self._repository.find_stale(changed_before=cutoff)
        for server in stale:
            logger.error(
                "Server stuck in transient status",
                extra={
                    "server_id": server.id,
                    "status": server.status.value,
                    "status_changed_at": server.status_changed_at.isoformat(),
                    "threshold_s": self._threshold_s,
                },
            )
        return stale

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="stale-job-monitor")
            logger.info(
                "Stale job monitor started",
                extra={"interval_s": self._interval_s, "threshold_s": self._threshold_s},
            )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("Stale job monitor stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval_s)
            try:
                await self.scan_once()
            except Exception:
                logger.error("Stale job scan failed", exc_info=True)
