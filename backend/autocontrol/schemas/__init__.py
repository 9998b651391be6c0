"""Pydantic schemas for request/response validation."""

from autocontrol.schemas.common import ApiResponse, CamelModel, FieldError, Pagination
from autocontrol.schemas.incident import IncidentCreate, IncidentResponse, IncidentUpdate
from autocontrol.schemas.organization import OrganizationResponse, OrganizationUpdate
from autocontrol.schemas.user import UserInvite, UserResponse, UserUpdate

__all__ = [
    "ApiResponse",
    "CamelModel",
    "FieldError",
    "Pagination",
    "IncidentCreate",
    "IncidentResponse",
    "IncidentUpdate",
    "OrganizationResponse",
    "OrganizationUpdate",
    "UserInvite",
    "UserResponse",
    "UserUpdate",
]
