"""Tests for transactional email rendering, dispatch and delivery."""

import json
from types import SimpleNamespace
from typing import Optional

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from autocontrol.core.config import settings
from autocontrol.services.email import EmailDispatcher, EmailTemplate, build_link, render_email
from autocontrol.worker.tasks import send_email


class FakeQueue:
    """Stands in for the ARQ Redis pool."""

    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.jobs: list[tuple[str, dict]] = []
        self.closed = False

    async def enqueue_job(self, function: str, payload: dict):
        if self.error is not None:
            raise self.error
        self.jobs.append((function, payload))
        return SimpleNamespace(job_id=f"job-{len(self.jobs)}")

    async def close(self) -> None:
        self.closed = True


def dispatcher_for(queue: FakeQueue, enabled: bool = True) -> EmailDispatcher:
    async def factory():
        return queue

    return EmailDispatcher(enabled=enabled, pool_factory=factory)


# ============================================================================
# Rendering
# ============================================================================

@pytest.mark.parametrize(
    ("template", "path"),
    [
        (EmailTemplate.VERIFICATION, "/verify-email"),
        (EmailTemplate.PASSWORD_RESET, "/reset-password"),
        (EmailTemplate.INVITATION, "/accept-invitation"),
    ],
)
def test_links_point_at_frontend(template, path):
    assert build_link(template, "abc123") == f"https://app.autocontrol.example.com{path}?token=abc123"


def test_render_invitation():
    message = render_email(EmailTemplate.INVITATION, "cook@barcentral.com", "f00d", "Carlos", "Bar Central")

    assert message.to == "cook@barcentral.com"
    assert message.subject == "You have been invited to Bar Central"
    assert "Hello Carlos" in message.text
    assert "valid for 24 hours" in message.text
    link = "https://app.autocontrol.example.com/accept-invitation?token=f00d"
    assert link in message.text
    assert f'<a href="{link}">{link}</a>' in message.html
    assert message.template == "invitation"


def test_render_reset_validity():
    message = render_email(EmailTemplate.PASSWORD_RESET, "a@barcentral.com", "beef", "Ana")

    assert "valid for 1 hour(s)" in message.text


# ============================================================================
# Dispatch
# ============================================================================

@pytest.mark.asyncio
async def test_dispatch_enqueues_send_email_job():
    queue = FakeQueue()
    dispatcher = dispatcher_for(queue)

    job_id = await dispatcher.dispatch(EmailTemplate.VERIFICATION, "ana@barcentral.com", "cafe", "Ana")

    assert job_id == "job-1"
    function, payload = queue.jobs[0]
    assert function == "send_email"
    assert payload["to"] == "ana@barcentral.com"
    assert payload["template"] == "verification"

    await dispatcher.close()
    assert queue.closed


@pytest.mark.asyncio
async def test_disabled_dispatcher_never_opens_pool():
    queue = FakeQueue()
    dispatcher = dispatcher_for(queue, enabled=False)

    assert await dispatcher.dispatch(EmailTemplate.VERIFICATION, "ana@barcentral.com", "cafe", "Ana") is None
    assert queue.jobs == []


@pytest.mark.asyncio
async def test_queue_failure_does_not_raise():
    dispatcher = dispatcher_for(FakeQueue(error=RedisConnectionError("redis down")))

    assert await dispatcher.dispatch(EmailTemplate.PASSWORD_RESET, "ana@barcentral.com", "cafe", "Ana") is None


# ============================================================================
# Worker Delivery
# ============================================================================

@pytest.fixture
def provider(monkeypatch):
    monkeypatch.setattr(settings, "EMAIL_PROVIDER_URL", "https://mail.example.com/v1/send")
    monkeypatch.setattr(settings, "EMAIL_PROVIDER_API_KEY", "test-key")


@pytest.mark.asyncio
async def test_send_email_skipped_without_provider(monkeypatch):
    monkeypatch.setattr(settings, "EMAIL_PROVIDER_URL", None)
    message = render_email(EmailTemplate.VERIFICATION, "ana@barcentral.com", "cafe", "Ana")

    result = await send_email({}, message.as_dict())

    assert result == {"status": "skipped", "template": "verification"}


@pytest.mark.asyncio
async def test_send_email_posts_to_provider(provider):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(202, json={"id": "msg-1"})

    message = render_email(EmailTemplate.VERIFICATION, "ana@barcentral.com", "cafe", "Ana")
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        result = await send_email({"http": http}, message.as_dict())

    assert result == {"status": "sent", "template": "verification", "status_code": 202}
    request = requests[0]
    assert str(request.url) == "https://mail.example.com/v1/send"
    assert request.headers["Authorization"] == "Bearer test-key"
    body = json.loads(request.content)
    assert body["to"] == ["ana@barcentral.com"]
    assert body["subject"] == "Confirm your email address"
    assert body["from"] == settings.EMAIL_FROM


@pytest.mark.asyncio
async def test_send_email_raises_for_retry(provider):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"error": "unavailable"})

    message = render_email(EmailTemplate.PASSWORD_RESET, "ana@barcentral.com", "cafe", "Ana")
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        with pytest.raises(httpx.HTTPStatusError):
            await send_email({"http": http}, message.as_dict())
