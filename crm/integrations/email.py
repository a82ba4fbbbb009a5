"""Transactional email through the SendGrid v3 mail-send API."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Mapping

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..config import settings
from .base import IntegrationConfigError, IntegrationError, http_client, transient_retry

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")


class EmailError(IntegrationError):
    """Raised when an email cannot be sent."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message, provider="sendgrid", status_code=status_code)


@dataclass
class EmailResult:
    success: bool
    to: str
    subject: str


def render(template: str | None, variables: Mapping[str, Any]) -> str | None:
    """Fill ``{{name}}`` placeholders; unknown placeholders are left untouched."""
    if template is None:
        return None
    return _PLACEHOLDER_RE.sub(
        lambda m: str(variables[m.group(1)]) if m.group(1) in variables else m.group(0),
        template,
    )


def build_payload(to: str, subject: str, html: str | None, text: str | None) -> dict[str, Any]:
    content = []
    # SendGrid requires text/plain before text/html
    if text:
        content.append({"type": "text/plain", "value": text})
    if html:
        content.append({"type": "text/html", "value": html})
    return {
        "personalizations": [{"to": [{"email": to}]}],
        "from": {"email": settings.email.from_email, "name": settings.email.from_name},
        "subject": subject,
        "content": content,
    }


@transient_retry
async def _post(client: httpx.AsyncClient, payload: dict[str, Any], api_key: str) -> httpx.Response:
    return await client.post(
        settings.email.api_url,
        json=payload,
        headers={"Authorization": f"Bearer {api_key}"},
    )


async def send_email(
    session: AsyncSession,
    *,
    to: str,
    subject: str,
    html: str | None = None,
    text: str | None = None,
    template_name: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> EmailResult:
    """Send one email and log it to ``email_logs``.

    Raises:
        EmailError: Missing fields or the provider rejected the message
        IntegrationConfigError: SendGrid key not configured
    """
    if not to or not subject or not (html or text):
        raise EmailError("Missing required fields: to, subject, and html or text", status_code=400)

    api_key = settings.email.sendgrid_api_key
    if not api_key:
        raise IntegrationConfigError("SendGrid API key not configured", provider="sendgrid")

    payload = build_payload(to, subject, html, text)
    error: str | None = None
    try:
        async with http_client(client) as http:
            response = await _post(http, payload, api_key)
        if not response.is_success:
            error = f"SendGrid error: {response.status_code} - {response.text[:500]}"
    except httpx.HTTPError as e:
        error = f"SendGrid request failed: {e}"

    session.add(models.EmailLog(
        to_email=to,
        subject=subject,
        template_name=template_name,
        provider="sendgrid",
        status="failed" if error else "sent",
        error_message=error,
    ))
    await session.commit()

    if error:
        logger.error(error)
        raise EmailError(error, status_code=502)

    logger.info(f"Email sent to {to[:5]}*** ({subject[:30]})")
    return EmailResult(success=True, to=to, subject=subject)


async def send_template_email(
    session: AsyncSession,
    template_name: str,
    *,
    to: str,
    variables: Mapping[str, Any] | None = None,
    client: httpx.AsyncClient | None = None,
) -> EmailResult:
    """Render an active email template and send it.

    Raises:
        EmailError: Template missing or inactive, or sending failed
    """
    result = await session.execute(
        select(models.EmailTemplate).where(
            models.EmailTemplate.name == template_name,
            models.EmailTemplate.active.is_(True),
        )
    )
    template = result.scalar_one_or_none()
    if template is None:
        raise EmailError(f"Email template '{template_name}' not found", status_code=404)

    variables = variables or {}
    return await send_email(
        session,
        to=to,
        subject=render(template.subject, variables),
        html=render(template.html_body, variables),
        text=render(template.text_body, variables),
        template_name=template_name,
        client=client,
    )
