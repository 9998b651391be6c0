"""Shared response envelope and base schema."""

from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, SerializerFunctionWrapHandler, model_serializer
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from autocontrol.models.base import is_future

T = TypeVar("T")

HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"
PHONE_PATTERN = r"^[+]?[\d\s\-\(\)]+$"


def check_not_in_future(value: Optional[datetime]) -> Optional[datetime]:
    """Field validator body for event dates (small clock skew tolerated)."""
    if value is not None and is_future(value):
        raise PydanticCustomError("date_in_future", "Date cannot be in the future")
    return value


class CamelModel(BaseModel):
    """Base schema: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class FieldError(CamelModel):
    """Single field-level validation problem."""

    field: str = Field(..., description="Offending field (camelCase)")
    message: str = Field(..., description="Human-readable reason")


class Pagination(CamelModel):
    """Offset pagination metadata."""

    current: int = Field(..., description="Current page (1-based)")
    pages: int = Field(..., description="Total number of pages")
    total: int = Field(..., description="Total number of matching items")
    limit: Optional[int] = Field(None, description="Page size (null = unbounded)")


class ApiResponse(CamelModel, Generic[T]):
    """Envelope shared by every endpoint."""

    success: bool = Field(True, description="Whether the request succeeded")
    data: Optional[T] = Field(None, description="Response payload")
    message: Optional[str] = Field(None, description="Human-readable message")
    errors: Optional[list[FieldError]] = Field(None, description="Field-level errors")
    pagination: Optional[Pagination] = Field(None, description="Pagination metadata for lists")

    @model_serializer(mode="wrap")
    def drop_empty(self, handler: SerializerFunctionWrapHandler):
        # Optional envelope members are omitted rather than sent as null
        return {key: value for key, value in handler(self).items() if value is not None or key == "data"}


class TokenPayload(CamelModel):
    """Single one-time token submitted by the client."""

    token: str = Field(..., min_length=1, max_length=256)
