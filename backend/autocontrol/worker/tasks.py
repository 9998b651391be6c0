"""ARQ async task definitions for background processing."""

import logging
from typing import Any

import httpx

from autocontrol.core.config import settings

logger = logging.getLogger(__name__)


async def send_email(ctx: dict[str, Any], message: dict[str, str]) -> dict[str, Any]:
    """
    Deliver a rendered email through the provider's HTTP API.

    Workflow:
    1. Skip (and log) when no provider is configured
    2. POST the message as JSON with the API key as bearer token
    3. Raise on HTTP errors so ARQ retries the job

    Args:
        ctx: ARQ context with the shared httpx client under "http"
        message: EmailMessage.as_dict() payload

    Returns:
        Dict with delivery status and provider HTTP status

    Raises:
        httpx.HTTPError: Provider unreachable or returned an error status
    """
    template = message.get("template")

    if not settings.EMAIL_PROVIDER_URL:
        logger.warning("Email provider not configured, message skipped", extra={"template": template})
        return {"status": "skipped", "template": template}

    client: httpx.AsyncClient = ctx["http"]
    response = await client.post(
        settings.EMAIL_PROVIDER_URL,
        json={
            "from": settings.EMAIL_FROM,
            "to": [message["to"]],
            "subject": message["subject"],
            "text": message["text"],
            "html": message["html"],
        },
        headers={"Authorization": f"Bearer {settings.EMAIL_PROVIDER_API_KEY}"},
    )

    try:
        response.raise_for_status()
    except httpx.HTTPStatusError:
        logger.error(
            "Email provider rejected message",
            extra={"template": template, "status_code": response.status_code},
        )
        raise

    logger.info("Email delivered", extra={"template": template, "status_code": response.status_code})
    return {"status": "sent", "template": template, "status_code": response.status_code}
