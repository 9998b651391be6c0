"""Pydantic schemas for users and organization membership."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import EmailStr, Field, field_validator, model_validator

from autocontrol.models.user import UserRole
from autocontrol.schemas.common import CamelModel

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128


def check_password_strength(value: str) -> str:
    """Require lowercase, uppercase and a digit."""
    if not any(ch.islower() for ch in value):
        raise ValueError("Password must contain a lowercase letter")
    if not any(ch.isupper() for ch in value):
        raise ValueError("Password must contain an uppercase letter")
    if not any(ch.isdigit() for ch in value):
        raise ValueError("Password must contain a digit")
    return value


def check_person_name(value: str) -> str:
    """Letters and spaces only (accented letters allowed)."""
    value = " ".join(value.split())
    if not all(ch.isalpha() or ch == " " for ch in value):
        raise ValueError("Name may only contain letters and spaces")
    return value


def translate_legacy_admin_flag(data: Any) -> Any:
    """
    Map the legacy `isAdmin` flag onto `role`.

    `role` is the single source of truth: `isAdmin: true` becomes
    `role: Admin` only when no role was sent; `isAdmin: false` is ignored.
    """
    if not isinstance(data, dict):
        return data
    data = dict(data)
    legacy = data.pop("isAdmin", data.pop("is_admin", None))
    if legacy is True and data.get("role") is None:
        data["role"] = UserRole.ADMIN
    return data


class UserResponse(CamelModel):
    """User as returned by the API (never includes credentials)."""

    id: UUID = Field(..., description="User ID")
    organization_id: UUID = Field(..., description="Owning organization")
    email: str = Field(..., description="Login email")
    name: str = Field(..., description="Full name")
    role: UserRole = Field(..., description="Role")
    is_admin: bool = Field(..., description="Legacy flag, derived from role")
    is_active: bool = Field(..., description="Whether the account is active")
    email_verified: bool = Field(..., description="Whether the email was confirmed")
    invitation_pending: bool = Field(False, description="Invited and not yet accepted")
    last_login: Optional[datetime] = Field(None, description="Last successful login")
    created_at: datetime = Field(..., description="Creation timestamp")


class UserInvite(CamelModel):
    """Schema for inviting a user into the caller's organization."""

    email: EmailStr = Field(..., description="Email of the invited person")
    name: str = Field(..., min_length=2, max_length=100, description="Full name")
    role: UserRole = Field(UserRole.USER, description="Role to grant")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return check_person_name(v)

    @model_validator(mode="before")
    @classmethod
    def legacy_admin_flag(cls, data: Any) -> Any:
        return translate_legacy_admin_flag(data)


class UserUpdate(CamelModel):
    """Admin update of a member; all fields optional."""

    name: Optional[str] = Field(None, min_length=2, max_length=100)
    role: Optional[UserRole] = Field(None)
    is_active: Optional[bool] = Field(None)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return check_person_name(v) if v is not None else v

    @model_validator(mode="before")
    @classmethod
    def legacy_admin_flag(cls, data: Any) -> Any:
        return translate_legacy_admin_flag(data)


class ProfileUpdate(CamelModel):
    """Self-service profile update."""

    name: str = Field(..., min_length=2, max_length=100)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return check_person_name(v)
