from typing import Annotated

from fastapi import APIRouter, Depends

from vps_dashboard.core.pagination import PaginationParams
from vps_dashboard.dependencies import get_template_service
from vps_dashboard.repositories.catalog_repository import TemplateRecord
from vps_dashboard.schemas.common import PaginatedResponse, error_responses
from vps_dashboard.schemas.template import TemplateResponse
from vps_dashboard.services.template_service import TemplateService

router = APIRouter(prefix="/templates", tags=["templates"])


def _to_response(record: TemplateRecord) -> TemplateResponse:
    return TemplateResponse(id=record.id, name=record.name, os_family=record.os_family)


@router.get(
    "",
    response_model=PaginatedResponse[TemplateResponse],
    summary="List available OS templates (paginated)",
)
async def list_templates(
    pagination: Annotated[PaginationParams, Depends()],
    service: Annotated[TemplateService, Depends(get_template_service)],
) -> PaginatedResponse[TemplateResponse]:
    records, total = await service.list(limit=pagination.limit, offset=pagination.offset)
    items = [_to_response(r) for r in records]
    return PaginatedResponse.build(
        items=items, total=total, limit=pagination.limit, offset=pagination.offset
    )


@router.get(
    "/{template_id}",
    response_model=TemplateResponse,
    summary="Get an OS template by ID",
    responses=error_responses(404),
)
async def get_template(
    template_id: str,
    service: Annotated[TemplateService, Depends(get_template_service)],
) -> TemplateResponse:
    record = await service.get(template_id)
    return _to_response(record)
