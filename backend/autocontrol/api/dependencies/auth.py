"""Authentication and authorization dependencies for API endpoints."""

from typing import Annotated, Callable, Optional

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from autocontrol.core.config import settings
from autocontrol.core.context import TenantContext
from autocontrol.core.database import get_db
from autocontrol.core.exceptions import AuthenticationError, AuthorizationError
from autocontrol.core.permissions import Permission
from autocontrol.core.rate_limit import AuthThrottle, client_ip, get_auth_throttle
from autocontrol.core.tenancy import resolve_context
from autocontrol.models.user import User, UserRole
from autocontrol.services.audit import AuditTrail, RequestOrigin
from autocontrol.services.email import EmailDispatcher

# Security scheme; missing credentials are reported through AuthenticationError
security = HTTPBearer(auto_error=False)

DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_token(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    x_auth_token: Annotated[Optional[str], Header()] = None,
) -> str:
    """
    Extract the access token.

    `Authorization: Bearer <token>` is preferred; the legacy `x-auth-token`
    header is still accepted.

    Raises:
        AuthenticationError: If no token was sent
    """
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    if x_auth_token:
        return x_auth_token
    raise AuthenticationError("Access token required")


async def get_request_context(
    request: Request,
    token: Annotated[str, Depends(get_token)],
    db: DbSession,
) -> TenantContext:
    """
    Resolve and attach the tenant context of the caller.

    Every tenant-scoped endpoint depends on this; services receive the
    returned context and never read the organization from client input.
    """
    context = await resolve_context(db, token)
    request.state.context = context
    request.state.organization_id = str(context.organization_id)
    return context


CurrentContext = Annotated[TenantContext, Depends(get_request_context)]


async def get_current_user(context: CurrentContext, db: DbSession) -> User:
    """Load the authenticated user (already verified by get_request_context)."""
    user = await db.get(User, context.user_id)
    if user is None:
        raise AuthenticationError()
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def require_role(*roles: UserRole) -> Callable[..., TenantContext]:
    """
    Dependency factory: only callers holding one of `roles` pass.

    Usage:
        @router.get("/stats")
        async def stats(context: Annotated[TenantContext, Depends(require_role(UserRole.ADMIN))]):
            ...
    """
    allowed = frozenset(roles)

    async def dependency(context: CurrentContext) -> TenantContext:
        if context.role not in allowed:
            raise AuthorizationError()
        return context

    return dependency  # type: ignore[return-value]


def require_permission(permission: Permission) -> Callable[..., TenantContext]:
    """Dependency factory: only callers whose role grants `permission` pass."""

    async def dependency(context: CurrentContext) -> TenantContext:
        if not context.can(permission):
            raise AuthorizationError()
        return context

    return dependency  # type: ignore[return-value]


def get_email_dispatcher(request: Request) -> EmailDispatcher:
    """Dispatcher created in the application lifespan."""
    return request.app.state.email_dispatcher


def get_client_ip(request: Request) -> str:
    peer = request.client.host if request.client else None
    return client_ip(request.headers.get("X-Forwarded-For"), peer, settings.FORWARDED_ALLOW_IPS)


Dispatcher = Annotated[EmailDispatcher, Depends(get_email_dispatcher)]
Throttle = Annotated[AuthThrottle, Depends(get_auth_throttle)]
ClientIP = Annotated[str, Depends(get_client_ip)]


def get_audit_trail(request: Request, db: DbSession, ip: ClientIP) -> AuditTrail:
    """Audit trail stamped with the caller's address and user agent."""
    return AuditTrail(db, RequestOrigin(ip_address=ip, user_agent=request.headers.get("User-Agent")))


Audit = Annotated[AuditTrail, Depends(get_audit_trail)]
