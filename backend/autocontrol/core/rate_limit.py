"""
Rolling-window throttling of authentication endpoints.

Independent of the per-account lockout: this one is keyed on caller IP
(plus the submitted email where there is one) and is coarse.
"""

import logging
import time
from functools import lru_cache
from typing import Iterable, Optional

from limits import RateLimitItem, parse
from limits.aio.strategies import MovingWindowRateLimiter
from limits.storage import storage_from_string

from autocontrol.core.config import settings
from autocontrol.core.exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)


class AuthThrottle:
    """Moving-window limiter for login, registration and password reset."""

    def __init__(
        self,
        storage_uri: str = "async+memory://",
        enabled: bool = True,
        trusted_ips: Iterable[str] = (),
        login_limit: str = "5/15 minutes",
        register_limit: str = "3/hour",
        password_reset_limit: str = "3/hour",
    ) -> None:
        self.enabled = enabled
        self.trusted_ips = frozenset(trusted_ips)
        self._storage = storage_from_string(storage_uri)
        self._limiter = MovingWindowRateLimiter(self._storage)
        self.login_limit = parse(login_limit)
        self.register_limit = parse(register_limit)
        self.password_reset_limit = parse(password_reset_limit)

    async def hit(self, scope: str, item: RateLimitItem, ip: str, *identifiers: str) -> None:
        """
        Count one attempt; raise once the window is exhausted.

        Raises:
            RateLimitExceededError: With a Retry-After header
        """
        if not self.enabled or ip in self.trusted_ips:
            return

        if await self._limiter.hit(item, scope, ip, *identifiers):
            return

        stats = await self._limiter.get_window_stats(item, scope, ip, *identifiers)
        retry_after = max(1, int(stats.reset_time - time.time()))
        logger.warning(
            "Auth rate limit exceeded",
            extra={"scope": scope, "client_ip": ip, "retry_after": retry_after},
        )
        raise RateLimitExceededError(headers={"Retry-After": str(retry_after)})

    async def check_login(self, ip: str, email: str) -> None:
        await self.hit("login", self.login_limit, ip, email.lower())

    async def check_register(self, ip: str) -> None:
        await self.hit("register", self.register_limit, ip)

    async def check_password_reset(self, ip: str, email: str) -> None:
        await self.hit("password-reset", self.password_reset_limit, ip, email.lower())

    async def reset(self) -> None:
        await self._storage.reset()


@lru_cache(maxsize=1)
def get_auth_throttle() -> AuthThrottle:
    """Process-wide throttle built from settings (FastAPI dependency)."""
    return AuthThrottle(
        storage_uri=settings.RATE_LIMIT_STORAGE_URI,
        enabled=settings.AUTH_RATE_LIMIT_ENABLED,
        trusted_ips=settings.RATE_LIMIT_TRUSTED_IPS,
        login_limit=settings.LOGIN_RATE_LIMIT,
        register_limit=settings.REGISTER_RATE_LIMIT,
        password_reset_limit=settings.PASSWORD_RESET_RATE_LIMIT,
    )


def client_ip(
    forwarded_for: Optional[str],
    peer: Optional[str],
    trusted_proxies: Iterable[str] = (),
) -> str:
    """
    Client address used to key the throttle.

    X-Forwarded-For is only read when the socket peer is one of
    `trusted_proxies`; the chain is then walked from the right and the first
    hop that is not itself a trusted proxy wins. Any other caller is keyed on
    the socket address, whatever headers it sends.
    """
    proxies = frozenset(trusted_proxies)
    if not peer:
        return "unknown"
    if not forwarded_for or peer not in proxies:
        return peer

    hops = [hop.strip() for hop in forwarded_for.split(",") if hop.strip()]
    for hop in reversed(hops):
        if hop not in proxies:
            return hop
    return hops[0] if hops else peer
