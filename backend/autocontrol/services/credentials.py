"""Credential store: password checks, lockout and one-time tokens."""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from autocontrol.core.config import settings
from autocontrol.core.exceptions import (
    AccountLockedError,
    InvalidCredentialsError,
    InvalidTokenError,
    ValidationError,
)
from autocontrol.core.security import (
    dummy_verify,
    generate_secure_token,
    hash_password,
    hash_token,
    verify_password,
)
from autocontrol.models.base import utcnow
from autocontrol.models.user import User

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class CredentialStore:
    """
    Password verification with account lockout, plus verification,
    reset and invitation tokens.

    Every state change is committed immediately because it gates the next
    authentication attempt.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.session.execute(
            select(User).where(User.email == normalize_email(email))
        )
        return result.scalar_one_or_none()

    def set_password(self, user: User, password: str) -> None:
        """Hash and assign a new password (caller commits)."""
        user.password_hash = hash_password(password)

    async def authenticate(self, email: str, password: str) -> User:
        """
        Check an email/password pair.

        Five consecutive failures lock the account for 30 minutes; while
        locked every attempt fails, even with the right password. Success
        resets the counter and records the login time. An attempt after the
        lock expired starts from a fresh counter.

        Raises:
            InvalidCredentialsError: Unknown email or wrong password
            AccountLockedError: Account is (or just became) locked
        """
        user = await self.get_by_email(email)
        if user is None:
            dummy_verify()
            raise InvalidCredentialsError()

        now = utcnow()
        if user.is_locked(now):
            logger.info("Login attempt on locked account", extra={"user_id": str(user.id)})
            raise AccountLockedError()

        if user.lock_until is not None:
            # Lock expired
            user.login_attempts = 0
            user.lock_until = None

        if not verify_password(password, user.password_hash):
            user.login_attempts += 1
            locked = user.login_attempts >= settings.LOGIN_MAX_ATTEMPTS
            if locked:
                user.lock_until = now + timedelta(minutes=settings.LOGIN_LOCK_MINUTES)
            await self.session.commit()

            logger.warning(
                "Failed login",
                extra={"user_id": str(user.id), "attempts": user.login_attempts, "locked": locked},
            )
            if locked:
                raise AccountLockedError()
            raise InvalidCredentialsError()

        user.login_attempts = 0
        user.lock_until = None
        user.last_login = now
        await self.session.commit()
        return user

    # ------------------------------------------------------------------
    # One-time tokens
    # ------------------------------------------------------------------

    async def _find_by_token(self, column, expires_column, token: str) -> User:
        result = await self.session.execute(
            select(User).where(column == hash_token(token), expires_column > utcnow())
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise InvalidTokenError()
        return user

    async def issue_verification_token(self, user: User) -> str:
        """Issue a 24h email verification token (replaces any previous one)."""
        token = generate_secure_token()
        user.verification_token_hash = hash_token(token)
        user.verification_token_expires_at = utcnow() + timedelta(
            hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS
        )
        await self.session.commit()
        return token

    async def verify_email(self, token: str) -> User:
        """
        Consume a verification token and mark the email verified.

        Raises:
            InvalidTokenError: Unknown, used or expired token
        """
        user = await self._find_by_token(
            User.verification_token_hash, User.verification_token_expires_at, token
        )
        user.email_verified = True
        user.verification_token_hash = None
        user.verification_token_expires_at = None
        await self.session.commit()

        logger.info("Email verified", extra={"user_id": str(user.id)})
        return user

    async def issue_reset_token(self, email: str) -> Optional[tuple[User, str]]:
        """Issue a 1h password reset token; None for unknown or inactive accounts."""
        user = await self.get_by_email(email)
        if user is None or not user.is_active:
            return None

        token = generate_secure_token()
        user.reset_token_hash = hash_token(token)
        user.reset_token_expires_at = utcnow() + timedelta(hours=settings.PASSWORD_RESET_EXPIRE_HOURS)
        await self.session.commit()
        return user, token

    async def reset_password(self, token: str, new_password: str) -> User:
        """
        Consume a reset token and set a new password.

        Also clears the lockout and revokes outstanding refresh tokens.

        Raises:
            InvalidTokenError: Unknown, used or expired token
        """
        user = await self._find_by_token(User.reset_token_hash, User.reset_token_expires_at, token)
        self.set_password(user, new_password)
        user.reset_token_hash = None
        user.reset_token_expires_at = None
        user.login_attempts = 0
        user.lock_until = None
        user.token_version += 1
        await self.session.commit()

        logger.info("Password reset", extra={"user_id": str(user.id)})
        return user

    async def issue_invitation_token(self, user: User) -> str:
        """Issue a 24h invitation token for a user created by an admin (replaces any previous one)."""
        token = generate_secure_token()
        user.invitation_pending = True
        user.invitation_token_hash = hash_token(token)
        user.invitation_token_expires_at = utcnow() + timedelta(hours=settings.INVITATION_EXPIRE_HOURS)
        await self.session.commit()
        return token

    async def accept_invitation(self, token: str, password: str, name: Optional[str] = None) -> User:
        """
        Consume an invitation token: set the password and activate the user.

        Raises:
            InvalidTokenError: Unknown, used, expired or revoked token
        """
        user = await self._find_by_token(
            User.invitation_token_hash, User.invitation_token_expires_at, token
        )
        if not user.invitation_pending:
            raise InvalidTokenError()
        self.set_password(user, password)
        if name:
            user.name = name
        user.is_active = True
        user.email_verified = True
        user.invitation_token_hash = None
        user.invitation_token_expires_at = None
        user.invitation_pending = False
        await self.session.commit()

        logger.info("Invitation accepted", extra={"user_id": str(user.id)})
        return user

    def revoke_invitation(self, user: User) -> None:
        """Invalidate any outstanding invitation token (caller commits)."""
        user.invitation_token_hash = None
        user.invitation_token_expires_at = None

    async def change_password(self, user: User, current_password: str, new_password: str) -> None:
        """
        Change a password after re-checking the current one.

        Raises:
            ValidationError: Current password wrong or unchanged
        """
        if not verify_password(current_password, user.password_hash):
            raise ValidationError.for_field("currentPassword", "Current password is incorrect")
        if current_password == new_password:
            raise ValidationError.for_field(
                "newPassword", "New password must differ from the current one"
            )

        self.set_password(user, new_password)
        user.token_version += 1
        await self.session.commit()
        logger.info("Password changed", extra={"user_id": str(user.id)})

    async def revoke_refresh_tokens(self, user: User) -> None:
        user.token_version += 1
        await self.session.commit()
