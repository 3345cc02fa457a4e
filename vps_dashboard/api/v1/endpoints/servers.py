from typing import Annotated

from fastapi import APIRouter, Depends, status

from vps_dashboard.core.auth import get_current_user_id
from vps_dashboard.core.pagination import PaginationParams
from vps_dashboard.dependencies import get_server_service
from vps_dashboard.repositories.server_repository import ServerRecord
from vps_dashboard.schemas.common import error_responses
from vps_dashboard.schemas.server import (
    ServerActionRequest,
    ServerCreate,
    ServerPage,
    ServerResponse,
)
from vps_dashboard.services.server_service import ServerService
from vps_dashboard.services.state_machine import allowed_actions

router = APIRouter(prefix="/servers", tags=["servers"])


def _to_response(record: ServerRecord) -> ServerResponse:
    return ServerResponse(
        id=record.id,
        host_name=record.host_name,
        status=record.status,
        is_transient=record.status.is_transient,
        allowed_actions=[action.value for action in allowed_actions(record.status)],
        vm_id=record.vm_id,
        node_name=record.node_name,
        ip_address=record.ip_address,
        last_error=record.last_error,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


@router.post(
    "",
    response_model=ServerResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Provision a new server (clone a template)",
    responses=error_responses(401, 404, 422, 503),
)
async def create_server(
    payload: ServerCreate,
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[ServerService, Depends(get_server_service)],
) -> ServerResponse:
    record = await service.create(user_id, payload)
    return _to_response(record)


@router.get(
    "",
    response_model=ServerPage,
    summary="List the caller's servers (paginated)",
    responses=error_responses(401),
)
async def list_servers(
    user_id: Annotated[str, Depends(get_current_user_id)],
    pagination: Annotated[PaginationParams, Depends()],
    service: Annotated[ServerService, Depends(get_server_service)],
) -> ServerPage:
    records, total, has_transient = await service.list(
        user_id, limit=pagination.limit, offset=pagination.offset
    )
    page = ServerPage.build(
        items=[_to_response(r) for r in records],
        total=total,
        limit=pagination.limit,
        offset=pagination.offset,
    )
    page.has_transient = has_transient
    return page


@router.get(
    "/{server_id}",
    response_model=ServerResponse,
    summary="Get a server by ID",
    responses=error_responses(401, 404),
)
async def get_server(
    server_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[ServerService, Depends(get_server_service)],
) -> ServerResponse:
    record = await service.get(user_id, server_id)
    return _to_response(record)


@router.post(
    "/{server_id}/actions",
    response_model=ServerResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Perform a lifecycle action (start/stop/reboot/shutdown)",
    responses=error_responses(401, 404, 409, 422, 503),
)
async def server_action(
    server_id: str,
    payload: ServerActionRequest,
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[ServerService, Depends(get_server_service)],
) -> ServerResponse:
    record = await service.perform_action(user_id, server_id, payload)
    return _to_response(record)


@router.delete(
    "/{server_id}",
    response_model=ServerResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Delete a server",
    responses=error_responses(401, 404, 409, 422, 503),
)
async def delete_server(
    server_id: str,
    user_id: Annotated[str, Depends(get_current_user_id)],
    service: Annotated[ServerService, Depends(get_server_service)],
) -> ServerResponse:
    record = await service.delete(user_id, server_id)
    return _to_response(record)
