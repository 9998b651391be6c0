"""Organization model - Tenant root entity."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from autocontrol.models.base import Base, JSONType, TimestampMixin, UTCDateTime, enum_type


class SubscriptionPlan(str, Enum):
    """Subscription plans with fixed resource limits."""

    FREE = "free"
    BASIC = "basic"
    PREMIUM = "premium"


class SubscriptionStatus(str, Enum):
    """Billing state of an organization's subscription."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    CANCELLED = "cancelled"


def default_settings() -> dict[str, Any]:
    """Settings document for a new organization."""
    return {
        "establishment_info": {
            "name": None,
            "address": None,
            "city": None,
            "postal_code": None,
            "phone": None,
            "email": None,
            "cif": None,
            "sanitary_registry": None,
            "technical_responsible": None,
        },
        "branding": {
            "logo": None,
            "primary_color": "#2563eb",
            "secondary_color": "#64748b",
        },
        "features": {
            "max_users": 10,
            "storage_limit": 1000,
            "api_calls_limit": 10000,
        },
    }


class Organization(Base, TimestampMixin):
    """
    Organization (tenant) model.

    Every user and business record belongs to exactly one organization.
    Organizations are never hard-deleted; `is_active` disables them.
    """

    __tablename__ = "organizations"

    id: Mapped[UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid4,
        comment="Primary key (UUID)",
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Display name",
    )

    subdomain: Mapped[str] = mapped_column(
        String(63),
        nullable=False,
        unique=True,
        index=True,
        comment="Globally unique slug, immutable once assigned",
    )

    settings: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        default=default_settings,
        comment="Establishment info, branding and feature overrides",
    )

    # Subscription
    plan: Mapped[SubscriptionPlan] = mapped_column(
        enum_type(SubscriptionPlan, "subscription_plan"),
        nullable=False,
        default=SubscriptionPlan.FREE,
        comment="Subscription plan",
    )

    subscription_status: Mapped[SubscriptionStatus] = mapped_column(
        enum_type(SubscriptionStatus, "subscription_status"),
        nullable=False,
        default=SubscriptionStatus.ACTIVE,
        comment="Subscription billing state",
    )

    expires_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        comment="Subscription expiry (NULL = no expiry)",
    )

    trial_ends_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
        comment="End of the free trial period",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        comment="Whether organization is active",
    )

    created_by: Mapped[Optional[UUID]] = mapped_column(
        Uuid,
        nullable=True,
        comment="User ID of the registering admin",
    )

    def __repr__(self) -> str:
        """String representation."""
        return f"<Organization {self.subdomain} ({self.plan.value})>"
