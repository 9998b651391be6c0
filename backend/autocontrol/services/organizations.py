"""Organization registry: tenant creation, limits and settings."""

import copy
import logging
import re
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from autocontrol.core.config import settings
from autocontrol.core.context import TenantContext
from autocontrol.core.exceptions import DuplicateSubdomainError, NotFoundError, ValidationError
from autocontrol.models.base import utcnow
from autocontrol.models.incident import Incident, IncidentStatus
from autocontrol.models.organization import (
    Organization,
    SubscriptionPlan,
    SubscriptionStatus,
    default_settings,
)
from autocontrol.models.user import User, UserRole

logger = logging.getLogger(__name__)

SUBDOMAIN_MAX_LENGTH = 30
SUBDOMAIN_MIN_LENGTH = 3
SUBDOMAIN_PATTERN = re.compile(r"^[a-z0-9-]{3,63}$")

# Settings sections a client may change; features are plan-managed
EDITABLE_SETTINGS_SECTIONS = ("establishment_info", "branding")


@dataclass(frozen=True)
class PlanLimits:
    max_users: int
    storage_limit: int
    api_calls_limit: int

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


PLAN_LIMITS: dict[SubscriptionPlan, PlanLimits] = {
    SubscriptionPlan.FREE: PlanLimits(max_users=5, storage_limit=500, api_calls_limit=5000),
    SubscriptionPlan.BASIC: PlanLimits(max_users=25, storage_limit=5000, api_calls_limit=50000),
    SubscriptionPlan.PREMIUM: PlanLimits(max_users=100, storage_limit=20000, api_calls_limit=200000),
}


def _time_fragment() -> str:
    """Last six digits of the current time in milliseconds."""
    return str(int(time.time() * 1000))[-6:]


def derive_subdomain(name: str) -> str:
    """
    Derive a subdomain slug from an organization name.

    Lower-cases, drops everything but letters, digits, whitespace and
    hyphens, turns whitespace runs into single hyphens and truncates to 30
    characters. Slugs shorter than 3 characters get a time-based suffix.

    Example:
        >>> derive_subdomain("Acme Foods")
        'acme-foods'
    """
    slug = re.sub(r"[^a-z0-9\s-]", "", name.lower())
    slug = re.sub(r"\s+", "-", slug.strip())
    slug = slug[:SUBDOMAIN_MAX_LENGTH].strip("-")

    if len(slug) < SUBDOMAIN_MIN_LENGTH:
        slug = f"{slug}-{_time_fragment()}".strip("-")

    return slug


def is_operational(organization: Organization, now: Optional[datetime] = None) -> bool:
    """
    Whether the organization may use tenant-scoped operations.

    Requires the active flag, an active subscription and no past expiry.
    """
    now = now or utcnow()
    return (
        organization.is_active
        and organization.subscription_status == SubscriptionStatus.ACTIVE
        and (organization.expires_at is None or organization.expires_at > now)
    )


def get_limits(organization: Organization) -> PlanLimits:
    """Resource limits from the plan table (ignores settings.features overrides)."""
    return PLAN_LIMITS[organization.plan]


def _merge_settings(current: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(current) if current else default_settings()
    for section in EDITABLE_SETTINGS_SECTIONS:
        values = patch.get(section)
        if values:
            merged.setdefault(section, {}).update(values)
    return merged


class OrganizationRegistry:
    """Persistence and rules for organizations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def subdomain_taken(self, subdomain: str) -> bool:
        result = await self.session.execute(
            select(Organization.id).where(Organization.subdomain == subdomain)
        )
        return result.first() is not None

    async def _allocate_subdomain(self, name: str) -> str:
        base = derive_subdomain(name)
        candidate = base
        for attempt in range(settings.SUBDOMAIN_MAX_ATTEMPTS):
            if not await self.subdomain_taken(candidate):
                return candidate
            suffix = _time_fragment() + (str(attempt) if attempt else "")
            candidate = f"{base}-{suffix}"

        logger.warning("Could not allocate a unique subdomain", extra={"base": base})
        raise DuplicateSubdomainError()

    async def create(
        self,
        name: str,
        subdomain: Optional[str] = None,
        created_by: Optional[UUID] = None,
        plan: SubscriptionPlan = SubscriptionPlan.FREE,
        commit: bool = True,
    ) -> Organization:
        """
        Create an organization.

        An explicit subdomain must be free; a derived one is de-duplicated.

        Raises:
            ValidationError: If the explicit subdomain is malformed
            DuplicateSubdomainError: If no unique subdomain can be assigned
        """
        if subdomain is not None:
            subdomain = subdomain.lower()
            if not SUBDOMAIN_PATTERN.match(subdomain):
                raise ValidationError.for_field(
                    "subdomain",
                    "Subdomain must be 3-63 characters: lowercase letters, digits and hyphens",
                )
            if await self.subdomain_taken(subdomain):
                raise DuplicateSubdomainError()
        else:
            subdomain = await self._allocate_subdomain(name)

        now = utcnow()
        organization = Organization(
            name=name,
            subdomain=subdomain,
            settings=default_settings(),
            plan=plan,
            subscription_status=SubscriptionStatus.ACTIVE,
            trial_ends_at=now + timedelta(days=settings.TRIAL_PERIOD_DAYS),
            is_active=True,
            created_by=created_by,
        )
        self.session.add(organization)
        if commit:
            await self.session.commit()
        else:
            await self.session.flush()

        logger.info(
            "Organization created",
            extra={"organization_id": str(organization.id), "subdomain": subdomain},
        )
        return organization

    async def get(self, organization_id: UUID) -> Organization:
        organization = await self.session.get(Organization, organization_id)
        if organization is None:
            raise NotFoundError("Organization not found")
        return organization

    async def update(self, context: TenantContext, patch: dict[str, Any]) -> Organization:
        """
        Update name and editable settings sections.

        Subdomain, subscription and feature limits are not client-updatable
        and are ignored if present.
        """
        organization = await self.get(context.organization_id)

        if patch.get("name") is not None:
            organization.name = patch["name"]

        settings_patch = patch.get("settings") or {}
        if settings_patch:
            # Reassign so the JSON column is flagged dirty
            organization.settings = _merge_settings(organization.settings, settings_patch)

        organization.updated_at = utcnow()
        await self.session.commit()

        logger.info(
            "Organization updated",
            extra={"organization_id": str(organization.id), "user_id": str(context.user_id)},
        )
        return organization

    async def count_users(self, organization_id: UUID, **criteria: Any) -> int:
        stmt = select(func.count(User.id)).where(User.organization_id == organization_id)
        for attr, value in criteria.items():
            stmt = stmt.where(getattr(User, attr) == value)
        return (await self.session.execute(stmt)).scalar_one()

    async def stats(self, context: TenantContext) -> dict[str, Any]:
        """Usage summary for the organization dashboard."""
        organization = await self.get(context.organization_id)
        limits = get_limits(organization)

        total = await self.count_users(organization.id)
        active = await self.count_users(organization.id, is_active=True)
        admins = await self.count_users(organization.id, is_active=True, role=UserRole.ADMIN)

        open_incidents = (
            await self.session.execute(
                select(func.count(Incident.id)).where(
                    Incident.organization_id == organization.id,
                    Incident.deleted_at.is_(None),
                    Incident.status != IncidentStatus.RESOLVED,
                )
            )
        ).scalar_one()

        return {
            "users": {
                "total": total,
                "active": active,
                "admins": admins,
                "limit": limits.max_users,
                "usage": round(total / limits.max_users * 100),
            },
            "incidents": {"open": open_incidents},
            "limits": limits.as_dict(),
            "subscription": {
                "plan": organization.plan,
                "status": organization.subscription_status,
                "expires_at": organization.expires_at,
                "trial_ends_at": organization.trial_ends_at,
            },
            "organization": {
                "created_at": organization.created_at,
                "is_active": organization.is_active,
                "operational": is_operational(organization),
            },
        }
