"""
Tests for the StaleJobMonitor.
"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from conftest import MakeServer
from vps_dashboard.models.server import Server, ServerStatus
from vps_dashboard.repositories.server_repository import ServerRepository
from vps_dashboard.workers.monitor import StaleJobMonitor


async def backdate(
    session_factory: async_sessionmaker[AsyncSession], server_id: str, hours: int
) -> None:
    async with session_factory() as session:
        await session.execute(
            update(Server)
            .where(Server.id == server_id)
            .values(status_changed_at=datetime.now(UTC) - timedelta(hours=hours))
        )
        await session.commit()


class TestScan:
    async def test_reports_only_old_transient_servers(
        self,
        repository: ServerRepository,
        session_factory: async_sessionmaker[AsyncSession],
        make_server: MakeServer,
        caplog: pytest.LogCaptureFixture,
    ):
        stuck = await make_server(ServerStatus.STARTING)
        fresh = await make_server(ServerStatus.STOPPING)
        settled = await make_server(ServerStatus.RUNNING)
        await backdate(session_factory, stuck.id, hours=2)
        await backdate(session_factory, settled.id, hours=2)

        monitor = StaleJobMonitor(repository, interval_s=60, threshold_s=3600)
        with caplog.at_level("ERROR"):
            stale = await monitor.scan_once()

        assert [s.id for s in stale] == [stuck.id]
        assert fresh.id not in {s.id for s in stale}
        assert any(r.message == "Server stuck in transient status" for r in caplog.records)

    async def test_nothing_stale(self, repository: ServerRepository, make_server: MakeServer):
        await make_server(ServerStatus.SETTING_UP)
        monitor = StaleJobMonitor(repository, interval_s=60, threshold_s=3600)
        assert await monitor.scan_once() == []


class TestLifecycle:
    async def test_background_scan_runs_and_stops(
        self,
        repository: ServerRepository,
        session_factory: async_sessionmaker[AsyncSession],
        make_server: MakeServer,
        caplog: pytest.LogCaptureFixture,
    ):
        stuck = await make_server(ServerStatus.DELETING)
        await backdate(session_factory, stuck.id, hours=1)
        monitor = StaleJobMonitor(repository, interval_s=0.01, threshold_s=60)

        with caplog.at_level("ERROR"):
            monitor.start()
            await asyncio.sleep(0.1)
            await monitor.stop()

        assert any(r.message == "Server stuck in transient status" for r in caplog.records)
