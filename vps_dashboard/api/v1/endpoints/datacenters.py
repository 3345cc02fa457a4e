from typing import Annotated

from fastapi import APIRouter, Depends

from vps_dashboard.dependencies import get_datacenter_service
from vps_dashboard.schemas.datacenter import DatacenterResponse, SizingOptionsResponse
from vps_dashboard.services.datacenter_service import DatacenterService
from vps_dashboard.services.sizing import sizing_options

router = APIRouter(tags=["catalog"])


@router.get(
    "/datacenters",
    response_model=list[DatacenterResponse],
    summary="List datacenters a server can be created in",
)
async def list_datacenters(
    service: Annotated[DatacenterService, Depends(get_datacenter_service)],
) -> list[DatacenterResponse]:
    records = await service.list()
    return [DatacenterResponse(name=r.name, free_addresses=r.free_addresses) for r in records]


@router.get(
    "/sizing-options",
    response_model=SizingOptionsResponse,
    summary="List the CPU and RAM sizes a create request may choose",
)
async def list_sizing_options() -> SizingOptionsResponse:
    options = sizing_options()
    return SizingOptionsResponse(cpu_cores=options.cpu_cores, ram_gb=options.ram_gb)
