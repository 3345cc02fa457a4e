from typing import Annotated

from fastapi import APIRouter, Depends

from vps_dashboard.core.pagination import PaginationParams
from vps_dashboard.dependencies import get_product_service
from vps_dashboard.repositories.catalog_repository import ProductRecord
from vps_dashboard.schemas.common import PaginatedResponse, error_responses
from vps_dashboard.schemas.product import ProductResponse
from vps_dashboard.services.product_service import ProductService

router = APIRouter(prefix="/products", tags=["products"])


def _to_response(record: ProductRecord) -> ProductResponse:
    return ProductResponse(
        id=record.id,
        name=record.name,
        cpu_cores=record.cpu_cores,
        ram_gb=record.ram_gb,
        disk_gb=record.disk_gb,
    )


@router.get(
    "",
    response_model=PaginatedResponse[ProductResponse],
    summary="List available products (paginated)",
)
async def list_products(
    pagination: Annotated[PaginationParams, Depends()],
    service: Annotated[ProductService, Depends(get_product_service)],
) -> PaginatedResponse[ProductResponse]:
    records, total = await service.list(limit=pagination.limit, offset=pagination.offset)
    items = [_to_response(r) for r in records]
    return PaginatedResponse.build(
        items=items, total=total, limit=pagination.limit, offset=pagination.offset
    )


@router.get(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Get a product by ID",
    responses=error_responses(404),
)
async def get_product(
    product_id: str,
    service: Annotated[ProductService, Depends(get_product_service)],
) -> ProductResponse:
    record = await service.get(product_id)
    return _to_response(record)
