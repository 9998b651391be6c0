"""Pydantic schemas for organizations."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import EmailStr, Field

from autocontrol.models.organization import Organization, SubscriptionPlan, SubscriptionStatus
from autocontrol.schemas.common import HEX_COLOR_PATTERN, PHONE_PATTERN, CamelModel
from autocontrol.services.organizations import get_limits


class EstablishmentInfo(CamelModel):
    """Registered establishment details printed on reports."""

    name: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=200)
    city: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=10)
    phone: Optional[str] = Field(None, max_length=20, pattern=PHONE_PATTERN)
    email: Optional[EmailStr] = Field(None)
    cif: Optional[str] = Field(None, max_length=20, description="Tax identification code")
    sanitary_registry: Optional[str] = Field(None, max_length=50)
    technical_responsible: Optional[str] = Field(None, max_length=100)


class Branding(CamelModel):
    logo: Optional[str] = Field(None, description="Logo URL or data URI")
    primary_color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)
    secondary_color: Optional[str] = Field(None, pattern=HEX_COLOR_PATTERN)


class Features(CamelModel):
    max_users: Optional[int] = Field(None)
    storage_limit: Optional[int] = Field(None)
    api_calls_limit: Optional[int] = Field(None)


class OrganizationSettings(CamelModel):
    establishment_info: EstablishmentInfo = Field(default_factory=EstablishmentInfo)
    branding: Branding = Field(default_factory=Branding)
    features: Features = Field(default_factory=Features)


class Subscription(CamelModel):
    plan: SubscriptionPlan
    status: SubscriptionStatus
    expires_at: Optional[datetime] = None
    trial_ends_at: Optional[datetime] = None


class PlanLimitsResponse(CamelModel):
    max_users: int
    storage_limit: int
    api_calls_limit: int


class OrganizationResponse(CamelModel):
    """Organization as returned by the API."""

    id: UUID = Field(..., description="Organization ID")
    name: str = Field(..., description="Display name")
    subdomain: str = Field(..., description="Unique slug")
    settings: OrganizationSettings
    subscription: Subscription
    limits: PlanLimitsResponse = Field(..., description="Limits of the current plan")
    is_active: bool
    created_at: datetime

    @classmethod
    def from_model(cls, organization: Organization) -> "OrganizationResponse":
        return cls(
            id=organization.id,
            name=organization.name,
            subdomain=organization.subdomain,
            settings=OrganizationSettings.model_validate(organization.settings or {}),
            subscription=Subscription(
                plan=organization.plan,
                status=organization.subscription_status,
                expires_at=organization.expires_at,
                trial_ends_at=organization.trial_ends_at,
            ),
            limits=PlanLimitsResponse(**get_limits(organization).as_dict()),
            is_active=organization.is_active,
            created_at=organization.created_at,
        )


class OrganizationSettingsUpdate(CamelModel):
    establishment_info: Optional[EstablishmentInfo] = None
    branding: Optional[Branding] = None


class OrganizationUpdate(CamelModel):
    """
    Organization update by an admin.

    Subdomain, subscription and feature limits are not accepted.
    """

    name: Optional[str] = Field(None, min_length=2, max_length=100)
    settings: Optional[OrganizationSettingsUpdate] = None


class UserStats(CamelModel):
    total: int
    active: int
    admins: int
    limit: int
    usage: int = Field(..., description="Percentage of the plan's user limit in use")


class IncidentStats(CamelModel):
    open: int


class OrganizationState(CamelModel):
    created_at: datetime
    is_active: bool
    operational: bool


class OrganizationStats(CamelModel):
    users: UserStats
    incidents: IncidentStats
    limits: PlanLimitsResponse
    subscription: Subscription
    organization: OrganizationState
