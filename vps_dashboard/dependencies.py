from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vps_dashboard.db.session import get_db, get_session_factory
from vps_dashboard.repositories.catalog_repository import CatalogRepository
from vps_dashboard.repositories.server_repository import ServerRepository
from vps_dashboard.services.datacenter_service import DatacenterService
from vps_dashboard.services.dispatcher import ActionDispatcher
from vps_dashboard.services.product_service import ProductService
from vps_dashboard.services.server_service import ServerService
from vps_dashboard.services.template_service import TemplateService
from vps_dashboard.workers.pool import WorkerPool


async def get_worker_pool(request: Request) -> WorkerPool:
    """Dependency that returns the worker pool started by the application lifespan."""
    return request.app.state.worker_pool


async def get_server_repository(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> ServerRepository:
    return ServerRepository(session_factory)


async def get_catalog_repository(
    session: Annotated[AsyncSession, Depends(get_db)],
) -> CatalogRepository:
    return CatalogRepository(session)


async def get_dispatcher(
    repository: Annotated[ServerRepository, Depends(get_server_repository)],
    pool: Annotated[WorkerPool, Depends(get_worker_pool)],
) -> ActionDispatcher:
    return ActionDispatcher(repository, pool)


async def get_server_service(
    repository: Annotated[ServerRepository, Depends(get_server_repository)],
    dispatcher: Annotated[ActionDispatcher, Depends(get_dispatcher)],
    catalog: Annotated[CatalogRepository, Depends(get_catalog_repository)],
) -> ServerService:
    return ServerService(repository, dispatcher, catalog)


async def get_product_service(
    catalog: Annotated[CatalogRepository, Depends(get_catalog_repository)],
) -> ProductService:
    return ProductService(catalog)


async def get_template_service(
    catalog: Annotated[CatalogRepository, Depends(get_catalog_repository)],
) -> TemplateService:
    return TemplateService(catalog)


async def get_datacenter_service(
    catalog: Annotated[CatalogRepository, Depends(get_catalog_repository)],
) -> DatacenterService:
    return DatacenterService(catalog)
