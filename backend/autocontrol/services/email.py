"""Transactional email rendering and dispatch to the worker queue."""

import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional
from urllib.parse import urlencode

from arq.connections import ArqRedis
from redis.exceptions import RedisError

from autocontrol.core.config import settings
from autocontrol.worker.arq import create_queue_pool

logger = logging.getLogger(__name__)


class EmailTemplate(str, Enum):
    VERIFICATION = "verification"
    PASSWORD_RESET = "password_reset"
    INVITATION = "invitation"


@dataclass(frozen=True)
class EmailMessage:
    """Provider-agnostic email payload (serialized into the task queue)."""

    to: str
    subject: str
    text: str
    html: str
    template: str

    def as_dict(self) -> dict[str, str]:
        return asdict(self)


_SUBJECTS = {
    EmailTemplate.VERIFICATION: "Confirm your email address",
    EmailTemplate.PASSWORD_RESET: "Reset your password",
    EmailTemplate.INVITATION: "You have been invited to {organization}",
}

_PATHS = {
    EmailTemplate.VERIFICATION: "/verify-email",
    EmailTemplate.PASSWORD_RESET: "/reset-password",
    EmailTemplate.INVITATION: "/accept-invitation",
}

_BODIES = {
    EmailTemplate.VERIFICATION: (
        "Hello {name},\n\nPlease confirm your email address by opening the link below. "
        "The link is valid for {hours} hours.\n\n{link}\n"
    ),
    EmailTemplate.PASSWORD_RESET: (
        "Hello {name},\n\nWe received a request to reset your password. "
        "The link below is valid for {hours} hour(s). If you did not ask for it, "
        "ignore this message.\n\n{link}\n"
    ),
    EmailTemplate.INVITATION: (
        "Hello {name},\n\nYou have been invited to join {organization}. "
        "Open the link below to choose a password. It is valid for {hours} hours.\n\n{link}\n"
    ),
}

_VALIDITY_HOURS = {
    EmailTemplate.VERIFICATION: lambda: settings.EMAIL_VERIFICATION_EXPIRE_HOURS,
    EmailTemplate.PASSWORD_RESET: lambda: settings.PASSWORD_RESET_EXPIRE_HOURS,
    EmailTemplate.INVITATION: lambda: settings.INVITATION_EXPIRE_HOURS,
}


def build_link(template: EmailTemplate, token: str) -> str:
    """Frontend URL that consumes the token."""
    base = settings.FRONTEND_BASE_URL.rstrip("/")
    return f"{base}{_PATHS[template]}?{urlencode({'token': token})}"


def render_email(
    template: EmailTemplate,
    to: str,
    token: str,
    name: str,
    organization: Optional[str] = None,
) -> EmailMessage:
    """Render a transactional email containing a one-time token link."""
    link = build_link(template, token)
    values = {
        "name": name,
        "organization": organization or settings.APP_NAME,
        "link": link,
        "hours": _VALIDITY_HOURS[template](),
    }
    text = _BODIES[template].format(**values)
    html = "".join(f"<p>{paragraph}</p>" for paragraph in text.strip().split("\n\n"))
    html = html.replace(link, f'<a href="{link}">{link}</a>')
    return EmailMessage(
        to=to,
        subject=_SUBJECTS[template].format(**values),
        text=text,
        html=html,
        template=template.value,
    )


class EmailDispatcher:
    """
    Enqueue emails for the worker.

    The Redis pool is opened lazily and closed at shutdown. Enqueue failures
    are logged and swallowed so the triggering request still succeeds.
    """

    def __init__(
        self,
        enabled: bool = True,
        pool_factory: Callable[[], Awaitable[ArqRedis]] = create_queue_pool,
    ) -> None:
        self.enabled = enabled
        self._pool_factory = pool_factory
        self._pool: Optional[ArqRedis] = None

    async def get_pool(self) -> ArqRedis:
        """Get or create ARQ Redis pool."""
        if self._pool is None:
            self._pool = await self._pool_factory()
        return self._pool

    async def close(self) -> None:
        """Close Redis pool."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def send(self, message: EmailMessage) -> Optional[str]:
        """Enqueue a message; returns the job ID, or None if not queued."""
        if not self.enabled:
            logger.info("Email dispatch disabled, message dropped", extra={"template": message.template})
            return None

        try:
            pool = await self.get_pool()
            job = await pool.enqueue_job("send_email", message.as_dict())
        except (RedisError, OSError, TimeoutError) as e:
            logger.error(
                "Failed to enqueue email",
                extra={"template": message.template, "error": str(e)},
            )
            return None

        job_id = job.job_id if job is not None else None
        logger.info("Email enqueued", extra={"template": message.template, "job_id": job_id})
        return job_id

    async def dispatch(
        self,
        template: EmailTemplate,
        to: str,
        token: str,
        name: str,
        organization: Optional[str] = None,
    ) -> Optional[str]:
        return await self.send(render_email(template, to, token, name, organization))


def build_email_dispatcher(**kwargs: Any) -> EmailDispatcher:
    """Dispatcher configured from settings."""
    return EmailDispatcher(enabled=settings.EMAIL_ENABLED, **kwargs)
