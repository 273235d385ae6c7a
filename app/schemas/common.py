from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional

class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True, str_strip_whitespace=True,
    )

class Msg(BaseModel):
    message: str

class Health(BaseModel):
    status: str
    timestamp: str

class ErrorOut(BaseModel):
    error: str
    message: str
    available: Optional[int] = None
    requested: Optional[int] = None
