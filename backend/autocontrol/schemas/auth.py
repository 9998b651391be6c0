"""Pydantic schemas for authentication flows."""

from typing import Optional

from pydantic import EmailStr, Field, field_validator

from autocontrol.schemas.common import CamelModel
from autocontrol.schemas.organization import OrganizationResponse
from autocontrol.schemas.user import (
    PASSWORD_MAX_LENGTH,
    PASSWORD_MIN_LENGTH,
    UserResponse,
    check_password_strength,
    check_person_name,
)


class RegisterRequest(CamelModel):
    """Self-registration: creates an organization and its first admin."""

    name: str = Field(..., min_length=2, max_length=100, description="Full name")
    email: EmailStr = Field(..., description="Login email")
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    organization_name: Optional[str] = Field(
        None, min_length=2, max_length=100, description="Defaults to \"<name>'s Organization\""
    )
    subdomain: Optional[str] = Field(None, description="Explicit subdomain (derived if omitted)")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return check_person_name(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password_strength(v)


class LoginRequest(CamelModel):
    email: EmailStr = Field(..., description="Login email")
    password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LENGTH)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(..., min_length=1, description="Refresh token from login")


class ForgotPasswordRequest(CamelModel):
    email: EmailStr = Field(..., description="Account email")


class ResetPasswordRequest(CamelModel):
    token: str = Field(..., min_length=1, max_length=256, description="Token from the reset email")
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password_strength(v)


class AcceptInvitationRequest(CamelModel):
    token: str = Field(..., min_length=1, max_length=256, description="Token from the invitation email")
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)
    name: Optional[str] = Field(None, min_length=2, max_length=100)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password_strength(v)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return check_person_name(v) if v is not None else v


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1, max_length=PASSWORD_MAX_LENGTH)
    new_password: str = Field(..., min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return check_password_strength(v)


class AuthSession(CamelModel):
    """Tokens issued on register, login and invitation acceptance."""

    token: str = Field(..., description="Access token (Bearer)")
    refresh_token: str = Field(..., description="Refresh token")
    user: UserResponse
    organization: OrganizationResponse


class AccessToken(CamelModel):
    token: str = Field(..., description="New access token (Bearer)")
