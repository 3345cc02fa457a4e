import logging
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Annotated

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vps_dashboard.config import settings
from vps_dashboard.core.exceptions import register_exception_handlers
from vps_dashboard.core.logging import configure_logging
from vps_dashboard.core.middleware import RequestIdMiddleware
from vps_dashboard.db.base import Base
from vps_dashboard.db.session import AsyncSessionLocal, engine, get_session_factory
from vps_dashboard.infra.hypervisor.base import HypervisorClientBase
from vps_dashboard.infra.hypervisor.mock_client import MockHypervisorClient
from vps_dashboard.infra.hypervisor.proxmox_client import ProxmoxClient
from vps_dashboard.models.ip_address import IpAddress
from vps_dashboard.models.product import Product
from vps_dashboard.models.template import Template
from vps_dashboard.repositories.server_repository import ServerRepository
from vps_dashboard.services.reconciler import Reconciler
from vps_dashboard.workers.executor import JobExecutor, RetryPolicy
from vps_dashboard.workers.monitor import StaleJobMonitor
from vps_dashboard.workers.pool import WorkerPool

# Fixed UUIDs for deterministic seed data, never regenerated on restart
SEED_PRODUCTS = [
    {
        "id": "11111111-0000-0000-0000-000000000001",
        "name": "vps-starter",
        "cpu_cores": 1,
        "ram_gb": 1,
        "disk_gb": 25,
    },
    {
        "id": "11111111-0000-0000-0000-000000000002",
        "name": "vps-standard",
        "cpu_cores": 2,
        "ram_gb": 4,
        "disk_gb": 80,
    },
    {
        "id": "11111111-0000-0000-0000-000000000003",
        "name": "vps-performance",
        "cpu_cores": 4,
        "ram_gb": 8,
        "disk_gb": 160,
    },
    {
        "id": "11111111-0000-0000-0000-000000000004",
        "name": "vps-enterprise",
        "cpu_cores": 8,
        "ram_gb": 16,
        "disk_gb": 320,
    },
]

SEED_TEMPLATES = [
    {
        "id": "22222222-0000-0000-0000-000000000001",
        "name": "ubuntu-2204",
        "os_family": "ubuntu",
        "vm_id": 9000,
        "node_name": "pve1",
    },
    {
        "id": "22222222-0000-0000-0000-000000000002",
        "name": "debian-12",
        "os_family": "debian",
        "vm_id": 9001,
        "node_name": "pve1",
    },
    {
        "id": "22222222-0000-0000-0000-000000000003",
        "name": "almalinux-9",
        "os_family": "rhel",
        "vm_id": 9002,
        "node_name": "pve2",
    },
]

SEED_DATACENTER = "fra1"
SEED_POOL_SIZE = 20

_start_time: float = 0.0


def _seed_addresses() -> list[dict[str, object]]:
    return [
        {
            "id": f"33333333-0000-0000-0000-{index:012d}",
            "address": f"10.0.0.{index + 10}",
            "gateway": "10.0.0.1",
            "netmask": 24,
            "datacenter": SEED_DATACENTER,
        }
        for index in range(SEED_POOL_SIZE)
    ]


async def seed_data(session_factory: async_sessionmaker[AsyncSession]) -> None:
    logger = logging.getLogger(__name__)
    async with session_factory() as session:
        # Seed products if empty
        result = await session.execute(select(Product).limit(1))
        if result.scalar_one_or_none() is None:
            for product_data in SEED_PRODUCTS:
                session.add(Product(**product_data))
            logger.info("Seed products inserted", extra={"count": len(SEED_PRODUCTS)})

        # Seed templates if empty
        result = await session.execute(select(Template).limit(1))
        if result.scalar_one_or_none() is None:
            for template_data in SEED_TEMPLATES:
                session.add(Template(**template_data))
            logger.info("Seed templates inserted", extra={"count": len(SEED_TEMPLATES)})

        # Seed the default address pool if empty
        result = await session.execute(select(IpAddress).limit(1))
        if result.scalar_one_or_none() is None:
            addresses = _seed_addresses()
            for address_data in addresses:
                session.add(IpAddress(**address_data))
            logger.info(
                "Seed address pool inserted",
                extra={"count": len(addresses), "datacenter": SEED_DATACENTER},
            )

        await session.commit()


def build_hypervisor() -> HypervisorClientBase:
    if settings.use_mock_hypervisor:
        return MockHypervisorClient(latency_s=settings.mock_hypervisor_latency_s)
    return ProxmoxClient.from_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    global _start_time
    logger = logging.getLogger(__name__)

    logger.info(
        "Application starting",
        extra={"version": settings.app_version, "env": settings.env, "debug": settings.debug},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready")

    await seed_data(AsyncSessionLocal)

    hypervisor = build_hypervisor()
    repository = ServerRepository(AsyncSessionLocal)
    pool = WorkerPool(
        executor=JobExecutor(hypervisor, RetryPolicy.from_settings()),
        reconciler=Reconciler(repository),
        concurrency=settings.worker_concurrency,
        shutdown_timeout_s=settings.worker_shutdown_timeout_s,
    )
    monitor = StaleJobMonitor(
        repository,
        interval_s=settings.stale_scan_interval_s,
        threshold_s=settings.job_deadline_s + settings.stale_grace_s,
    )
    await pool.start()
    monitor.start()
    app.state.worker_pool = pool
    logger.info(
        "Background workers ready",
        extra={
            "hypervisor": type(hypervisor).__name__,
            "concurrency": settings.worker_concurrency,
        },
    )

    _start_time = time.monotonic()
    logger.info("Application ready", extra={"version": settings.app_version})

    yield

    logger.info("Application shutting down")
    await monitor.stop()
    await pool.stop()
    await hypervisor.aclose()
    await engine.dispose()
    logger.info("Database engine disposed")


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "REST API for self-service VPS lifecycle management on Proxmox VE. "
            "Lifecycle actions are accepted immediately and completed by background workers; "
            "clients poll the server list until no server is in a transient status."
        ),
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    app.add_middleware(RequestIdMiddleware)
    register_exception_handlers(app)

    from vps_dashboard.api.v1.router import router as v1_router

    app.include_router(v1_router, prefix="/api/v1")

    @app.get("/health", tags=["health"])
    async def health_check(
        session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    ) -> JSONResponse:
        db_status = "healthy"
        try:
            async with session_factory() as session:
                await session.execute(text("SELECT 1"))
        except Exception:
            db_status = "unhealthy"

        stale_count = None
        if db_status == "healthy":
            cutoff = datetime.now(UTC) - timedelta(
                seconds=settings.job_deadline_s + settings.stale_grace_s
            )
            stale_count = len(await ServerRepository(session_factory).find_stale(cutoff))

        overall = "healthy" if db_status == "healthy" else "unhealthy"
        uptime = int(time.monotonic() - _start_time) if _start_time else 0

        return JSONResponse(
            status_code=200 if overall == "healthy" else 503,
            content={
                "status": overall,
                "version": settings.app_version,
                "env": settings.env,
                "uptime_s": uptime,
                "checks": {
                    "database": {"status": db_status},
                    "stale_servers": {"count": stale_count},
                },
            },
        )

    return app


app = create_app()
