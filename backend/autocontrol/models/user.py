"""User model - System users with authentication."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from autocontrol.models.base import BaseModel, UTCDateTime, enum_type


class UserRole(str, Enum):
    """User roles for RBAC."""

    ADMIN = "Admin"  # Full organization rights
    USER = "User"  # Can read and write records
    READ_ONLY = "ReadOnly"  # Read access only


class User(BaseModel):
    """
    User model.

    Users belong to one organization for life and have a role for RBAC.
    Email is unique across all organizations. Users are deactivated,
    never deleted, so records keep their attribution.
    """

    __tablename__ = "users"

    # Authentication
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Lower-cased email address (used for login)",
    )

    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Bcrypt password hash",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="Whether user account is active",
    )

    email_verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Whether the email address was confirmed",
    )

    # Profile
    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Full name of user",
    )

    role: Mapped[UserRole] = mapped_column(
        enum_type(UserRole, "user_role"),
        nullable=False,
        default=UserRole.USER,
        comment="User role for RBAC",
    )

    # One-time tokens (only SHA-256 digests are stored)
    verification_token_hash: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
        comment="Digest of the email verification token",
    )

    verification_token_expires_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
    )

    reset_token_hash: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
        comment="Digest of the password reset token",
    )

    reset_token_expires_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
    )

    invitation_token_hash: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
        comment="Digest of the invitation token",
    )

    invitation_token_expires_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
    )

    invitation_pending: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Invited by an admin and not yet accepted",
    )

    # Lockout
    login_attempts: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Consecutive failed password checks",
    )

    lock_until: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        comment="Login is refused until this time",
    )

    last_login: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
    )

    token_version: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Bumped to revoke outstanding refresh tokens",
    )

    @property
    def is_admin(self) -> bool:
        """Legacy admin flag, derived from the role."""
        return self.role == UserRole.ADMIN

    def is_locked(self, now: datetime) -> bool:
        return self.lock_until is not None and self.lock_until > now

    def __repr__(self) -> str:
        """String representation."""
        return f"<User {self.email} ({self.role.value})>"
