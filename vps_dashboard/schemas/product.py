from pydantic import BaseModel


class ProductResponse(BaseModel):
    id: str
    name: str
    cpu_cores: int
    ram_gb: int
    disk_gb: int

    model_config = {"from_attributes": True}
