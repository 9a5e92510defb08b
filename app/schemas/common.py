from typing import Generic, Optional, TypeVar
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

DataT = TypeVar("DataT")

class CamelModel(BaseModel):
    """Schema exposed with camelCase keys; snake_case is accepted on input."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

class Envelope(BaseModel, Generic[DataT]):
    status: str = "success"
    message: str
    data: Optional[DataT] = None

class ErrorEnvelope(BaseModel):
    status: str = "error"
    error: str
    message: str
    field: Optional[str] = None
