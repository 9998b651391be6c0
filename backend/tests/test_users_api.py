"""API tests for member administration and invitations."""

import pytest

from autocontrol.models import User, UserRole
from autocontrol.services.email import EmailTemplate

USERS = "/api/v1/organization/users"


async def invite(client, headers, email: str, **extra):
    return await client.post(USERS, headers=headers, json={"email": email, "name": "Carlos Ruiz", **extra})


# ============================================================================
# Invitations
# ============================================================================

@pytest.mark.asyncio
async def test_invited_member_activates_through_invitation(client, admin_headers, outbox, password):
    response = await invite(client, admin_headers, "cook@barcentral.com")

    assert response.status_code == 201, response.text
    member = response.json()["data"]
    assert member["role"] == "User"
    assert member["isActive"] is False

    login = await client.post("/api/v1/auth/login", json={"email": "cook@barcentral.com", "password": password})
    assert login.status_code == 401, "Invited member cannot log in before accepting"

    token = outbox.last_token(EmailTemplate.INVITATION.value)
    assert "Bar Central" in outbox.sent[-1].subject

    accepted = await client.post(
        "/api/v1/auth/accept-invitation",
        json={"token": token, "password": "Welcome123"},
    )
    assert accepted.status_code == 200, accepted.text
    session = accepted.json()["data"]
    assert session["user"]["isActive"] is True
    assert session["user"]["emailVerified"] is True

    login = await client.post("/api/v1/auth/login", json={"email": "cook@barcentral.com", "password": "Welcome123"})
    assert login.status_code == 200

    replay = await client.post("/api/v1/auth/accept-invitation", json={"token": token, "password": "Other1234"})
    assert replay.status_code == 401


@pytest.mark.asyncio
@pytest.mark.security
async def test_deactivated_invitee_cannot_accept(client, admin_headers, outbox):
    invited = await invite(client, admin_headers, "gone@barcentral.com")
    token = outbox.last_token(EmailTemplate.INVITATION.value)

    revoked = await client.delete(f"{USERS}/{invited.json()['data']['id']}", headers=admin_headers)
    assert revoked.status_code == 200

    response = await client.post("/api/v1/auth/accept-invitation", json={"token": token, "password": "Welcome123"})

    assert response.status_code == 401
    login = await client.post("/api/v1/auth/login", json={"email": "gone@barcentral.com", "password": "Welcome123"})
    assert login.status_code == 401


@pytest.mark.asyncio
@pytest.mark.security
async def test_invitation_revoked_through_member_update(client, admin_headers, outbox):
    invited = await invite(client, admin_headers, "gone@barcentral.com")
    token = outbox.last_token(EmailTemplate.INVITATION.value)

    updated = await client.put(
        f"{USERS}/{invited.json()['data']['id']}", headers=admin_headers, json={"isActive": False}
    )
    assert updated.status_code == 200

    response = await client.post("/api/v1/auth/accept-invitation", json={"token": token, "password": "Welcome123"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_pending_invitee_cannot_be_activated_directly(client, admin_headers):
    invited = await invite(client, admin_headers, "cook@barcentral.com")

    response = await client.put(
        f"{USERS}/{invited.json()['data']['id']}", headers=admin_headers, json={"isActive": True}
    )

    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "isActive"


@pytest.mark.asyncio
async def test_resent_invitation_replaces_the_old_one(client, admin_headers, outbox):
    invited = await invite(client, admin_headers, "cook@barcentral.com")
    member_url = f"{USERS}/{invited.json()['data']['id']}"
    first_token = outbox.last_token(EmailTemplate.INVITATION.value)
    await client.delete(member_url, headers=admin_headers)

    resent = await client.post(f"{member_url}/resend-invitation", headers=admin_headers)
    assert resent.status_code == 200, resent.text
    assert resent.json()["data"]["invitationPending"] is True
    assert resent.json()["data"]["isActive"] is False
    second_token = outbox.last_token(EmailTemplate.INVITATION.value)

    stale = await client.post("/api/v1/auth/accept-invitation", json={"token": first_token, "password": "Welcome123"})
    assert stale.status_code == 401

    accepted = await client.post(
        "/api/v1/auth/accept-invitation", json={"token": second_token, "password": "Welcome123"}
    )
    assert accepted.status_code == 200, accepted.text
    assert accepted.json()["data"]["user"]["invitationPending"] is False

    again = await client.post(f"{member_url}/resend-invitation", headers=admin_headers)
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_legacy_admin_flag_maps_to_role(client, admin_headers):
    promoted = await invite(client, admin_headers, "chef@barcentral.com", isAdmin=True)
    explicit = await invite(client, admin_headers, "aux@barcentral.com", isAdmin=True, role="ReadOnly")

    assert promoted.json()["data"]["role"] == "Admin"
    assert explicit.json()["data"]["role"] == "ReadOnly", "Role wins over the legacy flag"


@pytest.mark.asyncio
async def test_invite_duplicate_email(client, admin_headers, other_admin):
    response = await invite(client, admin_headers, other_admin.email)

    assert response.status_code == 409
    assert response.json()["errors"][0]["field"] == "email"


@pytest.mark.asyncio
async def test_invite_respects_plan_user_limit(client, admin_headers):
    for index in range(4):
        response = await invite(client, admin_headers, f"member{index}@barcentral.com")
        assert response.status_code == 201, response.text

    response = await invite(client, admin_headers, "extra@barcentral.com")

    assert response.status_code == 403
    assert "5 users" in response.json()["message"]


# ============================================================================
# Listing
# ============================================================================

@pytest.mark.asyncio
async def test_list_members_filters_and_paginates(client, admin_headers, organization, make_user):
    await make_user(organization, "cook@barcentral.com", name="Carlos Ruiz")
    await make_user(organization, "former@barcentral.com", is_active=False)

    response = await client.get(USERS, headers=admin_headers, params={"limit": 2})
    body = response.json()
    assert response.status_code == 200
    assert body["pagination"] == {"current": 1, "pages": 2, "total": 3, "limit": 2}
    assert len(body["data"]) == 2

    inactive = await client.get(USERS, headers=admin_headers, params={"isActive": "false"})
    assert [user["email"] for user in inactive.json()["data"]] == ["former@barcentral.com"]

    search = await client.get(USERS, headers=admin_headers, params={"search": "carlos"})
    assert [user["email"] for user in search.json()["data"]] == ["cook@barcentral.com"]


@pytest.mark.asyncio
async def test_members_of_other_organizations_are_invisible(client, admin_headers, other_admin):
    response = await client.get(f"{USERS}/{other_admin.id}", headers=admin_headers)

    assert response.status_code == 404


# ============================================================================
# Updates and Deactivation
# ============================================================================

@pytest.mark.asyncio
async def test_last_admin_cannot_be_demoted(client, admin, admin_headers):
    response = await client.put(f"{USERS}/{admin.id}", headers=admin_headers, json={"role": "User"})

    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "role"


@pytest.mark.asyncio
async def test_admin_cannot_deactivate_self(client, admin, admin_headers, organization, make_user):
    await make_user(organization, "second@barcentral.com", role=UserRole.ADMIN)

    response = await client.delete(f"{USERS}/{admin.id}", headers=admin_headers)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_deactivated_member_loses_access(
    client, admin_headers, organization, make_user, headers_for, session_maker
):
    cook = await make_user(organization, "cook@barcentral.com")
    cook_headers = headers_for(cook)
    assert (await client.get("/api/v1/auth/me", headers=cook_headers)).status_code == 200

    response = await client.delete(f"{USERS}/{cook.id}", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["data"]["isActive"] is False

    assert (await client.get("/api/v1/auth/me", headers=cook_headers)).status_code == 401
    async with session_maker() as session:
        stored = await session.get(User, cook.id)
        assert stored is not None, "Members are deactivated, never removed"
        assert stored.token_version == cook.token_version + 1


@pytest.mark.asyncio
async def test_update_member_name_and_role(client, admin_headers, organization, make_user):
    cook = await make_user(organization, "cook@barcentral.com")

    response = await client.put(
        f"{USERS}/{cook.id}",
        headers=admin_headers,
        json={"name": "Carlos Ruiz", "role": "ReadOnly"},
    )

    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert (data["name"], data["role"], data["isAdmin"]) == ("Carlos Ruiz", "ReadOnly", False)
