"""User service: registration, invitations and member administration."""

import logging
from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from autocontrol.core.context import TenantContext
from autocontrol.core.exceptions import (
    DuplicateResourceError,
    InvalidStateTransitionError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)
from autocontrol.core.security import generate_secure_token, hash_password
from autocontrol.models.base import utcnow
from autocontrol.models.organization import Organization
from autocontrol.models.user import User, UserRole
from autocontrol.services.credentials import CredentialStore, normalize_email
from autocontrol.services.organizations import OrganizationRegistry, get_limits
from autocontrol.services.records import Page

logger = logging.getLogger(__name__)

MEMBER_FIELDS = frozenset({"name", "role", "is_active"})


@dataclass
class Registration:
    """Result of self-registration."""

    user: User
    organization: Organization
    verification_token: str


@dataclass
class Invitation:
    user: User
    organization: Organization
    token: str


class UserService:
    """
    User lifecycle inside an organization.

    Users are never deleted; deactivation keeps their attribution on
    records. Every organization keeps at least one active admin.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.credentials = CredentialStore(session)
        self.organizations = OrganizationRegistry(session)

    async def _ensure_email_free(self, email: str) -> None:
        if await self.credentials.get_by_email(email) is not None:
            raise DuplicateResourceError(
                "Email is already registered",
                errors=[{"field": "email", "message": "Email is already registered"}],
            )

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        organization_name: Optional[str] = None,
        subdomain: Optional[str] = None,
    ) -> Registration:
        """
        Create an organization together with its first admin.

        Raises:
            DuplicateResourceError: Email already registered
            DuplicateSubdomainError: Requested subdomain taken
        """
        email = normalize_email(email)
        await self._ensure_email_free(email)

        organization = await self.organizations.create(
            organization_name or f"{name}'s Organization",
            subdomain=subdomain,
            commit=False,
        )
        user = User(
            organization_id=organization.id,
            email=email,
            name=name,
            role=UserRole.ADMIN,
            is_active=True,
            email_verified=False,
        )
        self.credentials.set_password(user, password)
        self.session.add(user)
        await self.session.flush()

        organization.created_by = user.id
        user.created_by = user.id
        await self.session.commit()

        token = await self.credentials.issue_verification_token(user)
        logger.info(
            "Organization registered",
            extra={"organization_id": str(organization.id), "user_id": str(user.id)},
        )
        return Registration(user=user, organization=organization, verification_token=token)

    async def get_user(self, user_id: UUID) -> User:
        user = await self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def list_members(
        self,
        context: TenantContext,
        search: Optional[str] = None,
        role: Optional[UserRole] = None,
        is_active: Optional[bool] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Page[User]:
        stmt = select(User).where(User.organization_id == context.organization_id)
        if search:
            pattern = f"%{search}%"
            stmt = stmt.where(or_(User.name.ilike(pattern), User.email.ilike(pattern)))
        if role is not None:
            stmt = stmt.where(User.role == role)
        if is_active is not None:
            stmt = stmt.where(User.is_active == is_active)

        total = (
            await self.session.execute(select(func.count()).select_from(stmt.subquery()))
        ).scalar_one()

        stmt = stmt.order_by(User.created_at.desc(), User.id.desc())
        if limit is not None:
            stmt = stmt.offset((page - 1) * limit).limit(limit)

        result = await self.session.execute(stmt)
        return Page(items=list(result.scalars().all()), total=total, page=page, limit=limit)

    async def get_member(self, context: TenantContext, user_id: UUID) -> User:
        """
        Raises:
            NotFoundError: No such user in the caller's organization
        """
        result = await self.session.execute(
            select(User).where(User.id == user_id, User.organization_id == context.organization_id)
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def invite(
        self,
        context: TenantContext,
        email: str,
        name: str,
        role: UserRole = UserRole.USER,
    ) -> Invitation:
        """
        Create an inactive member and an invitation token.

        The member cannot log in until the invitation is accepted.

        Raises:
            QuotaExceededError: Plan user limit reached
            DuplicateResourceError: Email already registered
        """
        organization = await self.organizations.get(context.organization_id)
        limits = get_limits(organization)
        if await self.organizations.count_users(organization.id) >= limits.max_users:
            raise QuotaExceededError(
                f"The {organization.plan.value} plan allows {limits.max_users} users"
            )

        email = normalize_email(email)
        await self._ensure_email_free(email)

        user = User(
            organization_id=organization.id,
            email=email,
            name=name,
            role=role,
            is_active=False,
            email_verified=False,
            # Unusable until the invitation sets a real password
            password_hash=hash_password(generate_secure_token()),
            invitation_pending=True,
            created_by=context.user_id,
            updated_by=context.user_id,
        )
        self.session.add(user)
        await self.session.flush()

        token = await self.credentials.issue_invitation_token(user)
        logger.info(
            "User invited",
            extra={
                "user_id": str(user.id),
                "organization_id": str(organization.id),
                "role": role.value,
            },
        )
        return Invitation(user=user, organization=organization, token=token)

    async def resend_invitation(self, context: TenantContext, user_id: UUID) -> Invitation:
        """
        Issue a fresh invitation to a member who never accepted one.

        Replaces the previous token. This is also how an admin brings back a
        deactivated invitee: the account stays inactive until accepted.

        Raises:
            NotFoundError: No such user in the caller's organization
            InvalidStateTransitionError: The member already accepted
        """
        user = await self.get_member(context, user_id)
        if not user.invitation_pending:
            raise InvalidStateTransitionError("This member has already accepted the invitation")

        organization = await self.organizations.get(context.organization_id)
        user.updated_by = context.user_id
        user.updated_at = utcnow()
        token = await self.credentials.issue_invitation_token(user)

        logger.info(
            "Invitation re-sent",
            extra={"user_id": str(user.id), "actor_id": str(context.user_id)},
        )
        return Invitation(user=user, organization=organization, token=token)

    async def count_active_admins(self, organization_id: UUID) -> int:
        return await self.organizations.count_users(
            organization_id, is_active=True, role=UserRole.ADMIN
        )

    async def _guard_admin_removal(self, target: User) -> None:
        if target.role == UserRole.ADMIN and target.is_active:
            if await self.count_active_admins(target.organization_id) <= 1:
                raise ValidationError.for_field(
                    "role", "The organization must keep at least one active admin"
                )

    async def update_member(
        self, context: TenantContext, user_id: UUID, patch: dict[str, Any]
    ) -> User:
        """
        Change a member's name, role or active flag.

        Raises:
            NotFoundError: No such user in the caller's organization
            ValidationError: Self-deactivation, removing the last admin, or
                activating an invitee who never accepted
        """
        user = await self.get_member(context, user_id)
        values = {key: value for key, value in patch.items() if key in MEMBER_FIELDS and value is not None}

        deactivating = values.get("is_active") is False and user.is_active
        activating = values.get("is_active") is True and not user.is_active
        demoting = "role" in values and values["role"] != UserRole.ADMIN and user.role == UserRole.ADMIN

        if deactivating and user.id == context.user_id:
            raise ValidationError.for_field("isActive", "You cannot deactivate your own account")
        if activating and user.invitation_pending:
            raise ValidationError.for_field(
                "isActive", "The invitation has not been accepted; resend it instead"
            )
        if deactivating or demoting:
            await self._guard_admin_removal(user)

        for key, value in values.items():
            setattr(user, key, value)
        if deactivating:
            user.token_version += 1
        if values.get("is_active") is False:
            # Pending invitees are already inactive; their token still has to go
            self.credentials.revoke_invitation(user)
        user.updated_by = context.user_id
        user.updated_at = utcnow()
        await self.session.commit()

        logger.info(
            "Member updated",
            extra={"user_id": str(user.id), "fields": sorted(values), "actor_id": str(context.user_id)},
        )
        return user

    async def deactivate_member(self, context: TenantContext, user_id: UUID) -> User:
        """
        Soft-delete a member (the row is kept for attribution).

        Raises:
            NotFoundError: No such user in the caller's organization
            ValidationError: Self-deactivation or removing the last admin
        """
        user = await self.get_member(context, user_id)
        if user.id == context.user_id:
            raise ValidationError.for_field("id", "You cannot deactivate your own account")
        await self._guard_admin_removal(user)

        user.is_active = False
        user.token_version += 1
        self.credentials.revoke_invitation(user)
        user.updated_by = context.user_id
        user.updated_at = utcnow()
        await self.session.commit()

        logger.info("Member deactivated", extra={"user_id": str(user.id), "actor_id": str(context.user_id)})
        return user

    async def update_profile(self, user: User, name: str) -> User:
        user.name = name
        user.updated_by = user.id
        user.updated_at = utcnow()
        await self.session.commit()
        return user
