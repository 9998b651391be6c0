"""Pytest configuration and fixtures for Autocontrol tests."""

import os

# Settings are read once at import time
os.environ["APP_ENV"] = "test"
os.environ["APP_DEBUG"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["AUTH_RATE_LIMIT_ENABLED"] = "false"
os.environ["EMAIL_ENABLED"] = "false"
os.environ["FRONTEND_BASE_URL"] = "https://app.autocontrol.example.com"

import re
from typing import Any, AsyncGenerator, Awaitable, Callable, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from autocontrol.api.dependencies import get_email_dispatcher
from autocontrol.core.context import TenantContext
from autocontrol.core.database import get_db
from autocontrol.core.rate_limit import AuthThrottle, get_auth_throttle
from autocontrol.core.security import create_access_token, hash_password
from autocontrol.main import app
from autocontrol.models import Base, Organization, User, UserRole
from autocontrol.services.email import EmailDispatcher, EmailMessage
from autocontrol.services.organizations import OrganizationRegistry

PASSWORD = "Secret123"


# ============================================================================
# Database Engine and Session Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def test_engine():
    """In-memory SQLite engine; one connection shared by every session."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Session for service-level tests and fixture data."""
    async with session_maker() as session:
        yield session


# ============================================================================
# Collaborator Fakes
# ============================================================================

class RecordingEmailDispatcher(EmailDispatcher):
    """Keeps rendered messages instead of enqueueing them."""

    def __init__(self) -> None:
        super().__init__(enabled=True)
        self.sent: list[EmailMessage] = []

    async def send(self, message: EmailMessage) -> Optional[str]:
        self.sent.append(message)
        return f"job-{len(self.sent)}"

    def last_token(self, template: str) -> str:
        """Token embedded in the link of the most recent message of a template."""
        for message in reversed(self.sent):
            if message.template == template:
                match = re.search(r"token=([0-9a-f]+)", message.text)
                assert match, f"No token link in {message.template} email"
                return match.group(1)
        raise AssertionError(f"No {template} email was sent")


@pytest.fixture
def outbox() -> RecordingEmailDispatcher:
    return RecordingEmailDispatcher()


@pytest.fixture
def throttle() -> AuthThrottle:
    """Disabled throttle; rate limit tests build their own."""
    return AuthThrottle(enabled=False)


# ============================================================================
# HTTP Client Fixture
# ============================================================================

@pytest_asyncio.fixture
async def client(session_maker, outbox, throttle) -> AsyncGenerator[AsyncClient, None]:
    """API client with database, email and throttle dependencies overridden."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_email_dispatcher] = lambda: outbox
    app.dependency_overrides[get_auth_throttle] = lambda: throttle

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def password() -> str:
    """Password of every user created by the fixtures."""
    return PASSWORD


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for() -> Callable[[User], dict[str, str]]:
    """Bearer headers carrying a freshly issued access token for a user."""

    def _headers_for(user: User) -> dict[str, str]:
        return auth_headers(create_access_token(user.id, user.organization_id, user.role.value))

    return _headers_for


@pytest.fixture
def signup(client) -> Callable[..., Awaitable[dict[str, Any]]]:
    """
    Register an organization through the API.

    Returns the session payload plus ready-made `headers`.
    """

    async def _signup(
        email: str = "owner@barcentral.com",
        name: str = "Ana Garcia",
        organization_name: str = "Bar Central",
        password: str = PASSWORD,
    ) -> dict[str, Any]:
        response = await client.post(
            "/api/v1/auth/register",
            json={
                "name": name,
                "email": email,
                "password": password,
                "organizationName": organization_name,
            },
        )
        assert response.status_code == 201, response.text
        data = response.json()["data"]
        data["headers"] = auth_headers(data["token"])
        return data

    return _signup


# ============================================================================
# Test Data Fixtures - Organizations and Users
# ============================================================================

@pytest_asyncio.fixture
async def organization(db_session) -> Organization:
    return await OrganizationRegistry(db_session).create("Bar Central")


@pytest_asyncio.fixture
async def other_organization(db_session) -> Organization:
    return await OrganizationRegistry(db_session).create("Cafe Norte")


@pytest.fixture
def make_user(db_session) -> Callable[..., Awaitable[User]]:
    """Factory creating committed users with the shared test password."""

    async def _make_user(
        organization: Organization,
        email: str,
        role: UserRole = UserRole.USER,
        is_active: bool = True,
        name: str = "Test User",
    ) -> User:
        user = User(
            organization_id=organization.id,
            email=email,
            name=name,
            role=role,
            is_active=is_active,
            email_verified=True,
            password_hash=hash_password(PASSWORD),
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make_user


@pytest_asyncio.fixture
async def admin(make_user, organization) -> User:
    return await make_user(organization, "admin@barcentral.com", role=UserRole.ADMIN, name="Ana Garcia")


@pytest_asyncio.fixture
async def other_admin(make_user, other_organization) -> User:
    return await make_user(other_organization, "admin@cafenorte.com", role=UserRole.ADMIN, name="Luis Perez")


# ============================================================================
# Tenant Context Fixtures
# ============================================================================

@pytest.fixture
def context(admin) -> TenantContext:
    return TenantContext(user_id=admin.id, organization_id=admin.organization_id, role=UserRole.ADMIN)


@pytest.fixture
def other_context(other_admin) -> TenantContext:
    return TenantContext(
        user_id=other_admin.id,
        organization_id=other_admin.organization_id,
        role=UserRole.ADMIN,
    )


@pytest.fixture
def admin_headers(admin, headers_for) -> dict[str, str]:
    return headers_for(admin)
