"""Authentication API endpoints."""

import logging

from fastapi import APIRouter, status
from sqlalchemy.ext.asyncio import AsyncSession

from autocontrol.api.dependencies import Audit, ClientIP, CurrentUser, DbSession, Dispatcher, Throttle
from autocontrol.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    InvalidTokenError,
    OrganizationInactiveError,
)
from autocontrol.core.security import (
    TokenType,
    create_access_token,
    create_refresh_token,
    decode_token,
)
from autocontrol.models.audit import AuditAction, AuditResource
from autocontrol.models.user import User
from autocontrol.schemas.auth import (
    AcceptInvitationRequest,
    AccessToken,
    AuthSession,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
)
from autocontrol.schemas.common import ApiResponse, TokenPayload
from autocontrol.schemas.organization import OrganizationResponse
from autocontrol.schemas.user import ProfileUpdate, UserResponse
from autocontrol.services.credentials import CredentialStore
from autocontrol.services.email import EmailTemplate
from autocontrol.services.organizations import OrganizationRegistry, is_operational
from autocontrol.services.users import UserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")

# Same answer whether or not the email exists
FORGOT_PASSWORD_MESSAGE = "If the email is registered, a reset link has been sent"


async def issue_session(db: AsyncSession, user: User) -> AuthSession:
    """Access and refresh tokens plus the user's profile and organization."""
    organization = await OrganizationRegistry(db).get(user.organization_id)
    return AuthSession(
        token=create_access_token(user.id, user.organization_id, user.role.value),
        refresh_token=create_refresh_token(
            user.id, user.organization_id, user.role.value, user.token_version
        ),
        user=UserResponse.model_validate(user),
        organization=OrganizationResponse.from_model(organization),
    )


@router.post(
    "/register",
    response_model=ApiResponse[AuthSession],
    status_code=status.HTTP_201_CREATED,
    summary="Register organization",
    description="Create an organization together with its first admin account.",
)
async def register(
    body: RegisterRequest,
    db: DbSession,
    dispatcher: Dispatcher,
    throttle: Throttle,
    ip: ClientIP,
    audit: Audit,
) -> ApiResponse[AuthSession]:
    """
    Self-registration.

    Workflow:
    1. Throttle by client IP
    2. Create organization and admin user
    3. Enqueue the verification email
    4. Return tokens so the user is logged in immediately
    """
    await throttle.check_register(ip)

    registration = await UserService(db).register(
        name=body.name,
        email=body.email,
        password=body.password,
        organization_name=body.organization_name,
        subdomain=body.subdomain,
    )
    await audit.record(
        registration.organization.id,
        AuditAction.REGISTER,
        AuditResource.AUTHENTICATION,
        user_id=registration.user.id,
        details={"subdomain": registration.organization.subdomain},
    )
    await dispatcher.dispatch(
        EmailTemplate.VERIFICATION,
        registration.user.email,
        registration.verification_token,
        registration.user.name,
        registration.organization.name,
    )

    return ApiResponse(
        data=await issue_session(db, registration.user),
        message="Registration successful, please verify your email",
    )


@router.post(
    "/login",
    response_model=ApiResponse[AuthSession],
    summary="Log in",
)
async def login(
    body: LoginRequest,
    db: DbSession,
    throttle: Throttle,
    ip: ClientIP,
    audit: Audit,
) -> ApiResponse[AuthSession]:
    """
    Exchange email and password for tokens.

    Unknown email, wrong password and locked account produce the same 401.
    Inactive users and organizations are refused (403) only after the
    password has been checked. Refused attempts on a known account are
    written to its organization's audit trail.
    """
    await throttle.check_login(ip, body.email)

    store = CredentialStore(db)
    try:
        user = await store.authenticate(body.email, body.password)

        if not user.is_active:
            raise AuthorizationError("User account is inactive")
        organization = await OrganizationRegistry(db).get(user.organization_id)
        if not is_operational(organization):
            raise OrganizationInactiveError()
    except (AuthenticationError, AuthorizationError) as e:
        known = await store.get_by_email(body.email)
        if known is not None:
            await audit.record(
                known.organization_id,
                AuditAction.LOGIN,
                AuditResource.AUTHENTICATION,
                user_id=known.id,
                success=False,
                error_message=e.message,
            )
        raise

    await audit.record(
        user.organization_id, AuditAction.LOGIN, AuditResource.AUTHENTICATION, user_id=user.id
    )

    logger.info(
        "User logged in",
        extra={"user_id": str(user.id), "organization_id": str(user.organization_id)},
    )
    return ApiResponse(data=await issue_session(db, user), message="Login successful")


@router.post(
    "/refresh",
    response_model=ApiResponse[AccessToken],
    summary="Refresh access token",
)
async def refresh(body: RefreshRequest, db: DbSession) -> ApiResponse[AccessToken]:
    """
    Issue a new access token from a refresh token.

    The token's version must match the user's current token version, so
    tokens issued before a logout or password change are rejected.
    """
    payload = decode_token(body.refresh_token, TokenType.REFRESH)

    user = await db.get(User, payload["sub"])
    if user is None or not user.is_active:
        raise InvalidTokenError()
    if payload.get("ver") != user.token_version or user.organization_id != payload["org"]:
        raise InvalidTokenError()

    organization = await OrganizationRegistry(db).get(user.organization_id)
    if not is_operational(organization):
        raise OrganizationInactiveError()

    token = create_access_token(user.id, user.organization_id, user.role.value)
    return ApiResponse(data=AccessToken(token=token))


@router.post("/logout", response_model=ApiResponse[None], summary="Log out")
async def logout(user: CurrentUser, db: DbSession, audit: Audit) -> ApiResponse[None]:
    """Revoke every refresh token of the caller."""
    await CredentialStore(db).revoke_refresh_tokens(user)
    await audit.record(
        user.organization_id, AuditAction.LOGOUT, AuditResource.AUTHENTICATION, user_id=user.id
    )
    logger.info("User logged out", extra={"user_id": str(user.id)})
    return ApiResponse(message="Logged out")


@router.post("/verify-email", response_model=ApiResponse[UserResponse], summary="Verify email")
async def verify_email(body: TokenPayload, db: DbSession) -> ApiResponse[UserResponse]:
    user = await CredentialStore(db).verify_email(body.token)
    return ApiResponse(data=UserResponse.model_validate(user), message="Email verified")


@router.post(
    "/resend-verification",
    response_model=ApiResponse[None],
    summary="Resend verification email",
)
async def resend_verification(
    user: CurrentUser, db: DbSession, dispatcher: Dispatcher
) -> ApiResponse[None]:
    if user.email_verified:
        return ApiResponse(message="Email is already verified")

    token = await CredentialStore(db).issue_verification_token(user)
    await dispatcher.dispatch(EmailTemplate.VERIFICATION, user.email, token, user.name)
    return ApiResponse(message="Verification email sent")


@router.post(
    "/forgot-password",
    response_model=ApiResponse[None],
    summary="Request password reset",
)
async def forgot_password(
    body: ForgotPasswordRequest,
    db: DbSession,
    dispatcher: Dispatcher,
    throttle: Throttle,
    ip: ClientIP,
) -> ApiResponse[None]:
    """Always succeeds so the endpoint cannot be used to discover accounts."""
    await throttle.check_password_reset(ip, body.email)

    issued = await CredentialStore(db).issue_reset_token(body.email)
    if issued is not None:
        user, token = issued
        await dispatcher.dispatch(EmailTemplate.PASSWORD_RESET, user.email, token, user.name)

    return ApiResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", response_model=ApiResponse[None], summary="Reset password")
async def reset_password(
    body: ResetPasswordRequest, db: DbSession, audit: Audit
) -> ApiResponse[None]:
    user = await CredentialStore(db).reset_password(body.token, body.password)
    await audit.record(
        user.organization_id,
        AuditAction.PASSWORD_RESET,
        AuditResource.AUTHENTICATION,
        user_id=user.id,
    )
    return ApiResponse(message="Password has been reset")


@router.post(
    "/accept-invitation",
    response_model=ApiResponse[AuthSession],
    summary="Accept invitation",
)
async def accept_invitation(
    body: AcceptInvitationRequest, db: DbSession
) -> ApiResponse[AuthSession]:
    """Set a password for an invited account and log it in."""
    user = await CredentialStore(db).accept_invitation(body.token, body.password, body.name)
    return ApiResponse(data=await issue_session(db, user), message="Invitation accepted")


@router.post(
    "/change-password",
    response_model=ApiResponse[AuthSession],
    summary="Change password",
)
async def change_password(
    body: ChangePasswordRequest, user: CurrentUser, db: DbSession, audit: Audit
) -> ApiResponse[AuthSession]:
    """
    Change the caller's password.

    Outstanding refresh tokens are revoked; a fresh pair is returned.
    """
    await CredentialStore(db).change_password(user, body.current_password, body.new_password)
    await audit.record(
        user.organization_id,
        AuditAction.PASSWORD_RESET,
        AuditResource.AUTHENTICATION,
        user_id=user.id,
        details={"changed": True},
    )
    return ApiResponse(data=await issue_session(db, user), message="Password changed")


@router.get("/me", response_model=ApiResponse[UserResponse], summary="Current user")
async def read_me(user: CurrentUser) -> ApiResponse[UserResponse]:
    return ApiResponse(data=UserResponse.model_validate(user))


@router.put("/me", response_model=ApiResponse[UserResponse], summary="Update profile")
async def update_me(
    body: ProfileUpdate, user: CurrentUser, db: DbSession
) -> ApiResponse[UserResponse]:
    user = await UserService(db).update_profile(user, body.name)
    return ApiResponse(data=UserResponse.model_validate(user), message="Profile updated")
