"""
Server service — business logic layer for VPS lifecycle management.

Resolves catalog references and ownership, then hands every state change to the
ActionDispatcher. Nothing here calls the hypervisor.
"""

import logging

from vps_dashboard.core.exceptions import (
    ProductNotFoundError,
    ServerNotFoundError,
    TemplateNotFoundError,
)
from vps_dashboard.repositories.catalog_repository import CatalogRepository
from vps_dashboard.repositories.server_repository import ServerRecord, ServerRepository
from vps_dashboard.schemas.server import ServerActionRequest, ServerCreate
from vps_dashboard.services.dispatcher import ActionDispatcher, ProvisioningRequest
from vps_dashboard.services.sizing import resolve_sizing
from vps_dashboard.services.state_machine import ServerAction

logger = logging.getLogger(__name__)


class ServerService:
    def __init__(
        self,
        repository: ServerRepository,
        dispatcher: ActionDispatcher,
        catalog: CatalogRepository,
    ) -> None:
        self._repository = repository
        self._dispatcher = dispatcher
        self._catalog = catalog

    async def create(self, user_id: str, payload: ServerCreate) -> ServerRecord:
        # Validate product and template exist before reserving anything
        product = await self._catalog.get_product(payload.product_id)
        if product is None:
            raise ProductNotFoundError(payload.product_id)

        template = await self._catalog.get_template(payload.template_id)
        if template is None:
            raise TemplateNotFoundError(payload.template_id)

        cpu_cores, ram_gb = resolve_sizing(product, payload.cpu_cores, payload.ram_gb)

        server = await self._dispatcher.dispatch_create(
            ProvisioningRequest(
                user_id=user_id,
                host_name=payload.host_name,
                datacenter=payload.datacenter,
                product_id=product.id,
                template=template,
                cpu_cores=cpu_cores,
                ram_gb=ram_gb,
            )
        )
        logger.info(
            "Server created",
            extra={
                "server_id": server.id,
                "user_id": user_id,
                "host_name": server.host_name,
                "product_id": product.id,
                "template_id": template.id,
                "cpu_cores": cpu_cores,
                "ram_gb": ram_gb,
                "status": server.status.value,
            },
        )
        return server

    async def get(self, user_id: str, server_id: str) -> ServerRecord:
        server = await self._repository.get(server_id, user_id=user_id)
        if server is None:
            raise ServerNotFoundError(server_id)
        return server

    async def list(
        self, user_id: str, limit: int, offset: int
    ) -> tuple[list[ServerRecord], int, bool]:
        records, total = await self._repository.list_for_user(user_id, limit=limit, offset=offset)
        has_transient = await self._repository.has_transient_for_user(user_id)
        return records, total, has_transient

    async def perform_action(
        self, user_id: str, server_id: str, payload: ServerActionRequest
    ) -> ServerRecord:
        return await self._dispatcher.dispatch(
            server_id, ServerAction(payload.action), user_id=user_id
        )

    async def delete(self, user_id: str, server_id: str) -> ServerRecord:
        return await self._dispatcher.dispatch(server_id, ServerAction.DELETE, user_id=user_id)
