"""API tests for registration, login, token refresh and password flows."""

from uuid import UUID

import pytest

from autocontrol.core.exceptions import INVALID_CREDENTIALS_MESSAGE
from autocontrol.models import SubscriptionStatus, User
from autocontrol.services.email import EmailTemplate

API = "/api/v1/auth"


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def login(client, email: str, password: str):
    return await client.post(f"{API}/login", json={"email": email, "password": password})


# ============================================================================
# Registration
# ============================================================================

@pytest.mark.asyncio
async def test_register_creates_organization_and_admin(signup, outbox):
    data = await signup()

    assert data["user"]["role"] == "Admin"
    assert data["user"]["isAdmin"] is True
    assert data["user"]["emailVerified"] is False
    assert "passwordHash" not in data["user"], "Credentials must never be serialized"
    assert data["organization"]["subdomain"] == "bar-central"
    assert data["organization"]["subscription"]["plan"] == "free"
    assert data["organization"]["limits"]["maxUsers"] == 5
    assert data["token"] and data["refreshToken"]

    assert [message.template for message in outbox.sent] == [EmailTemplate.VERIFICATION.value]
    assert outbox.sent[0].to == "owner@barcentral.com"


@pytest.mark.asyncio
async def test_register_duplicate_email(client, signup):
    await signup()

    response = await client.post(
        f"{API}/register",
        json={"name": "Otra Persona", "email": "OWNER@barcentral.com", "password": "Secret123"},
    )

    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["errors"] == [{"field": "email", "message": "Email is already registered"}]


@pytest.mark.asyncio
async def test_register_reports_every_invalid_field(client):
    response = await client.post(
        f"{API}/register",
        json={"name": "R2D2", "email": "not-an-email", "password": "short"},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert {error["field"] for error in body["errors"]} == {"name", "email", "password"}


@pytest.mark.asyncio
async def test_register_defaults_organization_name(client):
    response = await client.post(
        f"{API}/register",
        json={"name": "Ana Garcia", "email": "ana@barcentral.com", "password": "Secret123"},
    )

    assert response.status_code == 201, response.text
    assert response.json()["data"]["organization"]["name"] == "Ana Garcia's Organization"


@pytest.mark.asyncio
async def test_verify_email_with_emailed_token(client, signup, outbox):
    await signup()
    token = outbox.last_token(EmailTemplate.VERIFICATION.value)

    response = await client.post(f"{API}/verify-email", json={"token": token})
    assert response.status_code == 200
    assert response.json()["data"]["emailVerified"] is True

    replay = await client.post(f"{API}/verify-email", json={"token": token})
    assert replay.status_code == 401, "Verification tokens are single use"


@pytest.mark.asyncio
async def test_resend_verification(client, signup, outbox):
    data = await signup()

    response = await client.post(f"{API}/resend-verification", headers=data["headers"])

    assert response.status_code == 200
    assert len(outbox.sent) == 2
    assert outbox.sent[0].text != outbox.sent[1].text, "A new token is issued"


# ============================================================================
# Login
# ============================================================================

@pytest.mark.asyncio
async def test_login_returns_session(client, admin, password):
    response = await login(client, "Admin@BarCentral.com", password)

    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["user"]["id"] == str(admin.id)
    assert data["organization"]["id"] == str(admin.organization_id)
    assert data["user"]["lastLogin"] is not None


@pytest.mark.asyncio
@pytest.mark.security
async def test_login_failures_are_uniform(client, admin):
    unknown = await login(client, "ghost@barcentral.com", "Secret123")
    wrong = await login(client, admin.email, "Wrong1234")

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json() == {"success": False, "message": INVALID_CREDENTIALS_MESSAGE}


@pytest.mark.asyncio
@pytest.mark.security
async def test_locked_account_returns_same_401(client, admin, password):
    for _ in range(5):
        await login(client, admin.email, "Wrong1234")

    response = await login(client, admin.email, password)

    assert response.status_code == 401
    assert response.json()["message"] == INVALID_CREDENTIALS_MESSAGE


@pytest.mark.asyncio
@pytest.mark.security
async def test_inactive_user_refused_after_password_check(client, organization, make_user, password):
    user = await make_user(organization, "former@barcentral.com", is_active=False)

    assert (await login(client, user.email, "Wrong1234")).status_code == 401
    assert (await login(client, user.email, password)).status_code == 403


@pytest.mark.asyncio
async def test_suspended_organization_blocks_login_and_requests(client, db_session, organization, admin, password):
    token = (await login(client, admin.email, password)).json()["data"]["token"]

    organization.subscription_status = SubscriptionStatus.SUSPENDED
    await db_session.commit()

    assert (await login(client, admin.email, password)).status_code == 403
    response = await client.get(f"{API}/me", headers=auth_headers(token))
    assert response.status_code == 403


# ============================================================================
# Tokens
# ============================================================================

@pytest.mark.asyncio
async def test_me_accepts_bearer_and_legacy_header(client, signup):
    data = await signup()

    bearer = await client.get(f"{API}/me", headers=data["headers"])
    legacy = await client.get(f"{API}/me", headers={"x-auth-token": data["token"]})

    assert bearer.status_code == legacy.status_code == 200
    assert bearer.json()["data"]["email"] == "owner@barcentral.com"


@pytest.mark.asyncio
@pytest.mark.security
async def test_me_rejects_missing_and_forged_tokens(client, signup):
    data = await signup()

    missing = await client.get(f"{API}/me")
    assert missing.status_code == 401
    assert missing.json()["message"] == "Access token required"
    assert missing.headers["WWW-Authenticate"] == "Bearer"

    forged = await client.get(f"{API}/me", headers=auth_headers(data["token"][:-4] + "AAAA"))
    assert forged.status_code == 401

    refresh_as_access = await client.get(f"{API}/me", headers=auth_headers(data["refreshToken"]))
    assert refresh_as_access.status_code == 401, "Refresh tokens must not authorize requests"


@pytest.mark.asyncio
@pytest.mark.security
async def test_refresh_rejected_after_logout(client, signup):
    data = await signup()

    refreshed = await client.post(f"{API}/refresh", json={"refreshToken": data["refreshToken"]})
    assert refreshed.status_code == 200
    assert refreshed.json()["data"]["token"]

    logout = await client.post(f"{API}/logout", headers=data["headers"])
    assert logout.status_code == 200

    replay = await client.post(f"{API}/refresh", json={"refreshToken": data["refreshToken"]})
    assert replay.status_code == 401


@pytest.mark.asyncio
async def test_refresh_rejects_access_token(client, signup):
    data = await signup()

    response = await client.post(f"{API}/refresh", json={"refreshToken": data["token"]})

    assert response.status_code == 401


# ============================================================================
# Password Flows
# ============================================================================

@pytest.mark.asyncio
@pytest.mark.security
async def test_forgot_password_does_not_reveal_accounts(client, admin, outbox):
    known = await client.post(f"{API}/forgot-password", json={"email": admin.email})
    unknown = await client.post(f"{API}/forgot-password", json={"email": "ghost@barcentral.com"})

    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert [message.to for message in outbox.sent] == [admin.email]


@pytest.mark.asyncio
async def test_reset_password_flow(client, admin, outbox, password):
    await client.post(f"{API}/forgot-password", json={"email": admin.email})
    token = outbox.last_token(EmailTemplate.PASSWORD_RESET.value)

    response = await client.post(f"{API}/reset-password", json={"token": token, "password": "NewSecret456"})
    assert response.status_code == 200, response.text

    assert (await login(client, admin.email, password)).status_code == 401
    assert (await login(client, admin.email, "NewSecret456")).status_code == 200

    replay = await client.post(f"{API}/reset-password", json={"token": token, "password": "Other789xx"})
    assert replay.status_code == 401


@pytest.mark.asyncio
async def test_change_password_returns_fresh_session(client, signup, password):
    data = await signup()

    wrong = await client.post(
        f"{API}/change-password",
        headers=data["headers"],
        json={"currentPassword": "Wrong1234", "newPassword": "NewSecret456"},
    )
    assert wrong.status_code == 400
    assert wrong.json()["errors"][0]["field"] == "currentPassword"

    response = await client.post(
        f"{API}/change-password",
        headers=data["headers"],
        json={"currentPassword": password, "newPassword": "NewSecret456"},
    )
    assert response.status_code == 200, response.text
    fresh = response.json()["data"]

    stale = await client.post(f"{API}/refresh", json={"refreshToken": data["refreshToken"]})
    assert stale.status_code == 401, "Old refresh token must be revoked"
    renewed = await client.post(f"{API}/refresh", json={"refreshToken": fresh["refreshToken"]})
    assert renewed.status_code == 200


@pytest.mark.asyncio
async def test_update_profile(client, signup, session_maker):
    data = await signup()

    response = await client.put(f"{API}/me", headers=data["headers"], json={"name": "Ana  Maria Garcia"})

    assert response.status_code == 200
    assert response.json()["data"]["name"] == "Ana Maria Garcia"
    async with session_maker() as session:
        user = await session.get(User, UUID(data["user"]["id"]))
        assert user.name == "Ana Maria Garcia"
