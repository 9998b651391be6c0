"""Resolve the tenant context of an authenticated request."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from autocontrol.core.context import TenantContext
from autocontrol.core.exceptions import (
    OrganizationInactiveError,
    TenantMismatchError,
    UserInactiveError,
    UserNotFoundError,
)
from autocontrol.core.security import TokenType, decode_token
from autocontrol.models.organization import Organization
from autocontrol.models.user import User
from autocontrol.services.organizations import is_operational

logger = logging.getLogger(__name__)


async def resolve_context(session: AsyncSession, token: str) -> TenantContext:
    """
    Turn a bearer token into a verified tenant context.

    Checks, in order:
    1. Token signature, expiry and type
    2. User still exists and is active
    3. Token organization matches the user's organization
    4. Organization is operational (active, subscribed, not expired)

    The role comes from the stored user, not the token, so role changes take
    effect on the next request.

    Raises:
        InvalidTokenError: Malformed, expired or mis-signed token
        UserNotFoundError: User no longer exists
        UserInactiveError: User was deactivated
        TenantMismatchError: Token organization differs from the user's
        OrganizationInactiveError: Organization is not operational
    """
    payload = decode_token(token, TokenType.ACCESS)

    user = await session.get(User, payload["sub"])
    if user is None:
        raise UserNotFoundError()
    if not user.is_active:
        raise UserInactiveError()

    if user.organization_id != payload["org"]:
        logger.warning(
            "Token organization does not match user organization",
            extra={"user_id": str(user.id), "organization_id": str(user.organization_id)},
        )
        raise TenantMismatchError()

    organization = await session.get(Organization, user.organization_id)
    if organization is None or not is_operational(organization):
        raise OrganizationInactiveError()

    return TenantContext(
        user_id=user.id,
        organization_id=user.organization_id,
        role=user.role,
    )
