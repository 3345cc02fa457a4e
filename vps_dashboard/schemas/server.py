from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from vps_dashboard.models.server import ServerStatus
from vps_dashboard.schemas.common import PaginatedResponse

# RFC 1123 host label(s)
HOST_NAME_PATTERN = (
    r"^[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
    r"(\.[A-Za-z0-9]([A-Za-z0-9-]{0,61}[A-Za-z0-9])?)*$"
)


class ServerCreate(BaseModel):
    product_id: str = Field(..., description="UUID of the product (plan) to provision")
    template_id: str = Field(..., description="UUID of the OS template to clone")
    host_name: str = Field(..., min_length=1, max_length=253, pattern=HOST_NAME_PATTERN)
    datacenter: str = Field(..., min_length=1, max_length=100)
    cpu_cores: int | None = Field(None, ge=1, le=64, description="Overrides the product's cores")
    ram_gb: int | None = Field(None, ge=1, le=512, description="Overrides the product's RAM")


ActionType = Literal["start", "stop", "reboot", "shutdown"]


class ServerActionRequest(BaseModel):
    action: ActionType


class ServerResponse(BaseModel):
    id: str
    host_name: str
    status: ServerStatus
    is_transient: bool
    allowed_actions: list[str]
    vm_id: int | None
    node_name: str | None
    ip_address: str | None
    last_error: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ServerPage(PaginatedResponse[ServerResponse]):
    # True while any of the caller's servers is transient; the client keeps polling until False
    has_transient: bool = False
