from pydantic import BaseModel


class TemplateResponse(BaseModel):
    id: str
    name: str
    os_family: str

    model_config = {"from_attributes": True}
