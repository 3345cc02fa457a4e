"""
Shared fixtures for all tests.

Each test gets its own file-backed SQLite database, so the gateway's
per-operation sessions really run concurrently against one store. The worker
pool runs against the in-memory hypervisor with a zero-backoff retry policy.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from vps_dashboard.db.base import Base
from vps_dashboard.db.session import get_session_factory
from vps_dashboard.dependencies import get_worker_pool
from vps_dashboard.infra.hypervisor.base import RemoteState
from vps_dashboard.infra.hypervisor.mock_client import MockHypervisorClient
from vps_dashboard.models.ip_address import IpAddress
from vps_dashboard.models.product import Product
from vps_dashboard.models.server import ServerStatus
from vps_dashboard.models.template import Template
from vps_dashboard.repositories.server_repository import (
    NewServer,
    ServerRecord,
    ServerRepository,
)
from vps_dashboard.services.dispatcher import ActionDispatcher
from vps_dashboard.services.reconciler import Reconciler
from vps_dashboard.workers.executor import JobExecutor, RetryPolicy
from vps_dashboard.workers.pool import WorkerPool

USER_ID = "user-1"
OTHER_USER_ID = "user-2"
DATACENTER = "dc1"

MakeServer = Callable[..., Awaitable[ServerRecord]]

# --- Database ---


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path: Path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def seed_products(session_factory: async_sessionmaker[AsyncSession]) -> list[Product]:
    products = [
        Product(id="prod-small", name="vps-small", cpu_cores=1, ram_gb=2, disk_gb=25),
        Product(id="prod-large", name="vps-large", cpu_cores=4, ram_gb=8, disk_gb=160),
    ]
    async with session_factory() as session:
        session.add_all(products)
        await session.commit()
    return products


@pytest_asyncio.fixture(scope="function")
async def seed_templates(session_factory: async_sessionmaker[AsyncSession]) -> list[Template]:
    templates = [
        Template(
            id="tpl-ubuntu", name="ubuntu-2204", os_family="ubuntu", vm_id=9000, node_name="pve1"
        ),
        Template(
            id="tpl-debian", name="debian-12", os_family="debian", vm_id=9001, node_name="pve2"
        ),
    ]
    async with session_factory() as session:
        session.add_all(templates)
        await session.commit()
    return templates


@pytest_asyncio.fixture(scope="function")
async def seed_addresses(session_factory: async_sessionmaker[AsyncSession]) -> list[IpAddress]:
    addresses = [
        IpAddress(address=f"10.0.0.{n}", gateway="10.0.0.1", netmask=24, datacenter=DATACENTER)
        for n in (5, 6, 7)
    ]
    async with session_factory() as session:
        session.add_all(addresses)
        await session.commit()
    return addresses


@pytest.fixture
def product_id(seed_products: list[Product]) -> str:
    return seed_products[0].id


@pytest.fixture
def template_id(seed_templates: list[Template]) -> str:
    return seed_templates[0].id


# --- Orchestration core ---


@pytest.fixture
def hypervisor() -> MockHypervisorClient:
    return MockHypervisorClient(first_vm_id=101)


@pytest.fixture
def retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=3,
        backoff_base_s=0.0,
        backoff_max_s=0.0,
        attempt_timeout_s=0.5,
        deadline_s=5.0,
    )


@pytest.fixture
def repository(session_factory: async_sessionmaker[AsyncSession]) -> ServerRepository:
    return ServerRepository(session_factory)


@pytest.fixture
def reconciler(repository: ServerRepository) -> Reconciler:
    return Reconciler(repository)


@pytest.fixture
def executor(hypervisor: MockHypervisorClient, retry_policy: RetryPolicy) -> JobExecutor:
    return JobExecutor(hypervisor, retry_policy)


@pytest_asyncio.fixture(scope="function")
async def worker_pool(
    executor: JobExecutor, reconciler: Reconciler
) -> AsyncGenerator[WorkerPool, None]:
    pool = WorkerPool(executor, reconciler, concurrency=2, shutdown_timeout_s=5.0)
    await pool.start()
    yield pool
    await pool.stop()


@pytest.fixture
def dispatcher(repository: ServerRepository, worker_pool: WorkerPool) -> ActionDispatcher:
    return ActionDispatcher(repository, worker_pool)


@pytest.fixture
def make_server(repository: ServerRepository, hypervisor: MockHypervisorClient) -> MakeServer:
    """Insert a provisioned server directly in ``status``, mirrored on the hypervisor."""
    counter = iter(range(500, 1000))

    async def _make(
        status: ServerStatus = ServerStatus.RUNNING,
        user_id: str = USER_ID,
        host_name: str = "web-01",
    ) -> ServerRecord:
        vm_id = next(counter)
        remote = RemoteState.STOPPED if status == ServerStatus.STOPPED else RemoteState.RUNNING
        hypervisor.add_vm(vm_id, "pve1", state=remote)
        record = await repository.insert(
            NewServer(
                user_id=user_id,
                host_name=host_name,
                status=status,
                vm_id=vm_id,
                node_name="pve1",
                ip_address=f"192.0.2.{vm_id % 250}",
            )
        )
        return record

    return _make


# --- HTTP ---


@pytest_asyncio.fixture(scope="function")
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    worker_pool: WorkerPool,
    seed_products: list[Product],
    seed_templates: list[Template],
    seed_addresses: list[IpAddress],
) -> AsyncGenerator[AsyncClient, None]:
    """Return an HTTPX AsyncClient wired to the test app, authenticated as USER_ID."""
    from vps_dashboard.main import create_app

    test_app = create_app()

    # No type annotations to avoid FastAPI inspection
    def override_get_session_factory():  # type: ignore[no-untyped-def]
        return session_factory

    async def override_get_worker_pool():  # type: ignore[no-untyped-def]
        return worker_pool

    test_app.dependency_overrides[get_session_factory] = override_get_session_factory
    test_app.dependency_overrides[get_worker_pool] = override_get_worker_pool

    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
        headers={"X-User-ID": USER_ID},
    ) as ac:
        yield ac

    test_app.dependency_overrides.clear()
