from pydantic import BaseModel


class DatacenterResponse(BaseModel):
    name: str
    free_addresses: int

    model_config = {"from_attributes": True}


class SizingOptionsResponse(BaseModel):
    cpu_cores: list[int]
    ram_gb: list[int]
