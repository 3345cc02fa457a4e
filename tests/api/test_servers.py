"""
Tests for /api/v1/servers — provisioning, listing and polling.
"""

from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from conftest import DATACENTER, OTHER_USER_ID, MakeServer
from vps_dashboard.models.service import Service
from vps_dashboard.models.server import ServerStatus
from vps_dashboard.workers.pool import WorkerPool


async def create_test_server(
    client: AsyncClient,
    product_id: str,
    template_id: str,
    host_name: str = "web-01",
    **overrides: object,
) -> dict:
    response = await client.post(
        "/api/v1/servers",
        json={
            "product_id": product_id,
            "template_id": template_id,
            "host_name": host_name,
            "datacenter": DATACENTER,
            **overrides,
        },
    )
    assert response.status_code == 202, response.text
    return response.json()


class TestAuthentication:
    async def test_missing_user_returns_401(self, client: AsyncClient):
        resp = await client.get("/api/v1/servers", headers={"X-User-ID": ""})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "UNAUTHENTICATED"


class TestCreateServer:
    async def test_create_returns_202_setting_up(
        self, client: AsyncClient, product_id: str, template_id: str
    ):
        data = await create_test_server(client, product_id, template_id)
        assert data["host_name"] == "web-01"
        assert data["status"] == "setting_up"
        assert data["is_transient"] is True
        assert data["allowed_actions"] == []
        assert data["vm_id"] is None
        assert data["ip_address"] is None
        assert "id" in data
        assert "created_at" in data

    async def test_create_completes_in_background(
        self,
        client: AsyncClient,
        worker_pool: WorkerPool,
        product_id: str,
        template_id: str,
    ):
        created = await create_test_server(client, product_id, template_id)
        await worker_pool.drain()

        resp = await client.get(f"/api/v1/servers/{created['id']}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "running"
        assert data["is_transient"] is False
        assert data["vm_id"] == 101
        assert data["node_name"] == "pve1"
        assert data["ip_address"] == "10.0.0.5"
        assert sorted(data["allowed_actions"]) == ["reboot", "shutdown", "stop"]

    async def test_create_stores_chosen_sizing(
        self,
        client: AsyncClient,
        session_factory: async_sessionmaker[AsyncSession],
        product_id: str,
        template_id: str,
    ):
        sized = await create_test_server(client, product_id, template_id, cpu_cores=2, ram_gb=4)
        default = await create_test_server(client, product_id, template_id, host_name="web-02")

        async with session_factory() as session:
            rows = (await session.execute(select(Service))).scalars().all()
        sizing = {row.server_id: (row.cpu_cores, row.ram_gb) for row in rows}
        assert sizing[sized["id"]] == (2, 4)
        assert sizing[default["id"]] == (1, 2)

    async def test_create_with_unoffered_size_returns_422(
        self, client: AsyncClient, product_id: str, template_id: str
    ):
        resp = await client.post(
            "/api/v1/servers",
            json={
                "product_id": product_id,
                "template_id": template_id,
                "host_name": "web-01",
                "datacenter": DATACENTER,
                "cpu_cores": 3,
            },
        )
        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["code"] == "INVALID_SIZING"
        assert error["details"]["field"] == "cpu_cores"

    async def test_create_invalid_product_returns_404(
        self, client: AsyncClient, template_id: str
    ):
        resp = await client.post(
            "/api/v1/servers",
            json={
                "product_id": "nonexistent-id",
                "template_id": template_id,
                "host_name": "web-01",
                "datacenter": DATACENTER,
            },
        )
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "PRODUCT_NOT_FOUND"

    async def test_create_invalid_template_returns_404(
        self, client: AsyncClient, product_id: str
    ):
        resp = await client.post(
            "/api/v1/servers",
            json={
                "product_id": product_id,
                "template_id": "nonexistent-id",
                "host_name": "web-01",
                "datacenter": DATACENTER,
            },
        )
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "TEMPLATE_NOT_FOUND"

    async def test_create_invalid_host_name_returns_422(
        self, client: AsyncClient, product_id: str, template_id: str
    ):
        resp = await client.post(
            "/api/v1/servers",
            json={
                "product_id": product_id,
                "template_id": template_id,
                "host_name": "-bad_name-",
                "datacenter": DATACENTER,
            },
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_create_in_unknown_datacenter_returns_503(
        self, client: AsyncClient, product_id: str, template_id: str
    ):
        resp = await client.post(
            "/api/v1/servers",
            json={
                "product_id": product_id,
                "template_id": template_id,
                "host_name": "web-01",
                "datacenter": "nowhere",
            },
        )
        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "ADDRESS_POOL_EXHAUSTED"

        listed = await client.get("/api/v1/servers")
        assert listed.json()["total"] == 0


class TestListServers:
    async def test_list_empty_returns_empty(self, client: AsyncClient):
        resp = await client.get("/api/v1/servers")
        assert resp.status_code == 200
        data = resp.json()
        assert data["items"] == []
        assert data["total"] == 0
        assert data["limit"] == 50
        assert data["has_transient"] is False

    async def test_has_transient_drives_polling(
        self,
        client: AsyncClient,
        worker_pool: WorkerPool,
        product_id: str,
        template_id: str,
    ):
        await create_test_server(client, product_id, template_id)

        polling = (await client.get("/api/v1/servers")).json()
        assert polling["has_transient"] is True

        await worker_pool.drain()
        settled = (await client.get("/api/v1/servers")).json()
        assert settled["has_transient"] is False
        assert settled["items"][0]["status"] == "running"

    async def test_only_callers_servers_are_listed(
        self, client: AsyncClient, make_server: MakeServer
    ):
        mine = await make_server(ServerStatus.RUNNING)
        await make_server(ServerStatus.RUNNING, user_id=OTHER_USER_ID)

        data = (await client.get("/api/v1/servers")).json()
        assert data["total"] == 1
        assert [item["id"] for item in data["items"]] == [mine.id]

    async def test_pagination(self, client: AsyncClient, make_server: MakeServer):
        for n in range(3):
            await make_server(ServerStatus.STOPPED, host_name=f"web-0{n}")

        data = (await client.get("/api/v1/servers?limit=2&offset=0")).json()
        assert len(data["items"]) == 2
        assert data["total"] == 3
        assert data["next_offset"] == 2

        rest = (await client.get("/api/v1/servers?limit=2&offset=2")).json()
        assert len(rest["items"]) == 1
        assert rest["next_offset"] is None

    async def test_limit_above_maximum_returns_422(self, client: AsyncClient):
        resp = await client.get("/api/v1/servers?limit=500")
        assert resp.status_code == 422


class TestGetServer:
    async def test_get_unknown_returns_404(self, client: AsyncClient):
        resp = await client.get("/api/v1/servers/nonexistent")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "SERVER_NOT_FOUND"

    async def test_get_other_users_server_returns_404(
        self, client: AsyncClient, make_server: MakeServer
    ):
        theirs = await make_server(ServerStatus.RUNNING, user_id=OTHER_USER_ID)
        resp = await client.get(f"/api/v1/servers/{theirs.id}")
        assert resp.status_code == 404

    async def test_request_id_is_echoed(self, client: AsyncClient):
        resp = await client.get("/api/v1/servers", headers={"X-Request-ID": "req-123"})
        assert resp.headers["X-Request-ID"] == "req-123"
