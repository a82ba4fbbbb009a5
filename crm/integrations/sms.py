"""SMS delivery over two Twilio accounts and MessageBird.

Provider choice: explicit request, else the default active config row for
the context, else the active row with the lowest priority, else
``twilio_primary``. If the chosen provider has no credentials the next
configured one in its fallback chain is used. Every send is written to
``sms_logs``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..config import SMSSettings, settings
from ..pipelines.consent import check_consent
from ..pipelines.normalization import format_phone_e164
from .base import IntegrationConfigError, IntegrationError, error_detail, http_client, transient_retry

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
MESSAGEBIRD_MESSAGES_URL = "https://rest.messagebird.com/messages"


class SMSProvider(str, Enum):
    TWILIO_PRIMARY = "twilio_primary"
    TWILIO_BACKUP = "twilio_backup"
    MESSAGEBIRD = "messagebird"


PROVIDER_NAMES = {
    SMSProvider.TWILIO_PRIMARY: "Twilio Primary",
    SMSProvider.TWILIO_BACKUP: "Twilio Backup",
    SMSProvider.MESSAGEBIRD: "MessageBird",
}

FALLBACK_CHAINS = {
    SMSProvider.TWILIO_PRIMARY: (SMSProvider.TWILIO_BACKUP, SMSProvider.MESSAGEBIRD),
    SMSProvider.TWILIO_BACKUP: (SMSProvider.TWILIO_PRIMARY, SMSProvider.MESSAGEBIRD),
    SMSProvider.MESSAGEBIRD: (SMSProvider.TWILIO_PRIMARY, SMSProvider.TWILIO_BACKUP),
}


class SMSError(IntegrationError):
    """Raised when an SMS cannot be sent."""

    def __init__(self, message: str, *, provider: str = "sms", status_code: int | None = None) -> None:
        super().__init__(message, provider=provider, status_code=status_code)


@dataclass
class RecipientResult:
    recipient: str
    success: bool
    message_id: str | None = None
    error: str | None = None


@dataclass
class SMSResult:
    success: bool
    provider: SMSProvider
    from_number: str | None
    message_id: str | None = None
    error: str | None = None
    recipients: list[RecipientResult] = field(default_factory=list)


def configured_providers(sms: SMSSettings | None = None) -> set[SMSProvider]:
    """Providers whose credentials are all present."""
    sms = sms or settings.sms
    available = set()
    if sms.twilio_account_sid and sms.twilio_auth_token and sms.twilio_phone_number:
        available.add(SMSProvider.TWILIO_PRIMARY)
    if sms.twilio_backup_account_sid and sms.twilio_backup_auth_token and sms.twilio_backup_phone_number:
        available.add(SMSProvider.TWILIO_BACKUP)
    if sms.messagebird_api_key and sms.messagebird_originator:
        available.add(SMSProvider.MESSAGEBIRD)
    return available


def resolve_fallback(selected: SMSProvider, available: set[SMSProvider]) -> SMSProvider:
    """Keep ``selected`` if configured, else walk its fallback chain.

    Raises:
        IntegrationConfigError: No provider has credentials
    """
    if selected in available:
        return selected
    for candidate in FALLBACK_CHAINS[selected]:
        if candidate in available:
            logger.warning(f"{selected.value} not configured, falling back to {candidate.value}")
            return candidate
    raise IntegrationConfigError(
        "No SMS provider is configured. Please configure Twilio or MessageBird credentials.",
        provider="sms",
    )


async def select_provider(
    session: AsyncSession,
    requested: SMSProvider | str | None = None,
    context: str | None = None,
) -> SMSProvider:
    """Pick the provider from the request or the admin config rows."""
    if requested:
        return SMSProvider(requested)

    query = select(models.SMSProviderConfig).where(models.SMSProviderConfig.is_active.is_(True))
    if context == "admin":
        query = query.where(models.SMSProviderConfig.use_for_admin.is_(True))
    elif context == "client":
        query = query.where(models.SMSProviderConfig.use_for_clients.is_(True))

    result = await session.execute(
        query.order_by(
            models.SMSProviderConfig.is_default.desc(),
            models.SMSProviderConfig.priority.asc(),
        )
    )
    for config in result.scalars().all():
        try:
            return SMSProvider(config.provider_type)
        except ValueError:
            logger.warning(f"Ignoring unknown SMS provider config: {config.provider_type}")

    return SMSProvider.TWILIO_PRIMARY


class TwilioSender:
    """Form-encoded Twilio Messages API; one request per recipient."""

    def __init__(self, provider: SMSProvider, account_sid: str, auth_token: str, from_number: str) -> None:
        self.provider = provider
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = format_phone_e164(from_number)

    @transient_retry
    async def _post(self, client: httpx.AsyncClient, to: str, body: str) -> httpx.Response:
        return await client.post(
            TWILIO_MESSAGES_URL.format(sid=self.account_sid),
            data={"To": to, "From": self.from_number, "Body": body},
            auth=(self.account_sid, self.auth_token),
        )

    async def send(self, recipients: list[str], body: str, client: httpx.AsyncClient | None = None) -> SMSResult:
        results = []
        async with http_client(client) as http:
            for recipient in recipients:
                to = format_phone_e164(recipient)
                try:
                    response = await self._post(http, to, body)
                except httpx.HTTPError as e:
                    results.append(RecipientResult(recipient=to, success=False, error=str(e)))
                    continue
                if response.is_success:
                    results.append(RecipientResult(recipient=to, success=True, message_id=response.json().get("sid")))
                else:
                    results.append(RecipientResult(recipient=to, success=False, error=error_detail(response)))

        errors = [r.error for r in results if not r.success and r.error]
        return SMSResult(
            success=all(r.success for r in results),
            provider=self.provider,
            from_number=self.from_number,
            message_id=",".join(r.message_id for r in results if r.message_id) or None,
            error="; ".join(errors) or None,
            recipients=results,
        )


class MessageBirdSender:
    """MessageBird REST API; all recipients in one request."""

    provider = SMSProvider.MESSAGEBIRD

    def __init__(self, api_key: str, originator: str) -> None:
        self.api_key = api_key
        self.from_number = originator

    @transient_retry
    async def _post(self, client: httpx.AsyncClient, recipients: list[str], body: str) -> httpx.Response:
        return await client.post(
            MESSAGEBIRD_MESSAGES_URL,
            json={"originator": self.from_number, "recipients": recipients, "body": body},
            headers={"Authorization": f"AccessKey {self.api_key}"},
        )

    async def send(self, recipients: list[str], body: str, client: httpx.AsyncClient | None = None) -> SMSResult:
        formatted = [format_phone_e164(r) for r in recipients]
        try:
            async with http_client(client) as http:
                response = await self._post(http, formatted, body)
        except httpx.HTTPError as e:
            return SMSResult(success=False, provider=self.provider, from_number=self.from_number, error=str(e))

        if not response.is_success:
            return SMSResult(
                success=False,
                provider=self.provider,
                from_number=self.from_number,
                error=error_detail(response),
            )
        return SMSResult(
            success=True,
            provider=self.provider,
            from_number=self.from_number,
            message_id=response.json().get("id"),
            recipients=[RecipientResult(recipient=r, success=True) for r in formatted],
        )


def build_sender(provider: SMSProvider, from_number: str | None = None) -> TwilioSender | MessageBirdSender:
    """Sender for a configured provider; ``from_number`` overrides the account default."""
    sms = settings.sms
    if provider == SMSProvider.TWILIO_PRIMARY:
        return TwilioSender(provider, sms.twilio_account_sid, sms.twilio_auth_token, from_number or sms.twilio_phone_number)
    if provider == SMSProvider.TWILIO_BACKUP:
        return TwilioSender(
            provider,
            sms.twilio_backup_account_sid,
            sms.twilio_backup_auth_token,
            from_number or sms.twilio_backup_phone_number,
        )
    return MessageBirdSender(sms.messagebird_api_key, sms.messagebird_originator)


async def send_sms(
    session: AsyncSession,
    to: str | list[str],
    message: str,
    *,
    provider: SMSProvider | str | None = None,
    context: str | None = None,
    from_number: str | None = None,
    sent_by: str | None = None,
    metadata: dict[str, Any] | None = None,
    client: httpx.AsyncClient | None = None,
) -> SMSResult:
    """Send an SMS to one or more recipients and log it.

    Args:
        session: Database session
        to: Recipient or list of recipients (group message)
        message: Message body
        provider: Explicit provider; otherwise chosen from config rows
        context: ``admin`` or ``client`` traffic, filters config rows
        from_number: Override the sending number (Twilio only)
        sent_by: Caller label for the audit row
        metadata: Extra fields stored on the log row
        client: Injected HTTP client

    Returns:
        SMSResult of a successful send

    Raises:
        IntegrationConfigError: No provider configured
        SMSError: Consent missing or the provider rejected the message
    """
    recipients = [to] if isinstance(to, str) else list(to)
    if not recipients:
        raise SMSError("At least one recipient is required")

    if settings.sms.require_consent:
        for recipient in recipients:
            consent = await check_consent(session, recipient)
            if not consent.can_send:
                raise SMSError(f"Cannot text {format_phone_e164(recipient)}: {consent.reason}", status_code=403)

    selected = await select_provider(session, provider, context)
    selected = resolve_fallback(selected, configured_providers())
    logger.info(f"Sending SMS via {selected.value} to {len(recipients)} recipient(s)")

    sender = build_sender(selected, from_number)
    result = await sender.send(recipients, message, client)

    session.add(models.SMSLog(
        provider_type=selected.value,
        to_number=",".join(format_phone_e164(r) for r in recipients),
        from_number=result.from_number,
        message_body=message,
        status="sent" if result.success else "failed",
        external_id=result.message_id,
        error_message=result.error,
        sent_by=sent_by,
        metadata_={
            **(metadata or {}),
            "provider_name": PROVIDER_NAMES[selected],
            "is_group_message": len(recipients) > 1,
            "recipient_count": len(recipients),
        },
    ))
    await session.commit()

    if not result.success:
        logger.error(f"SMS via {selected.value} failed: {result.error}")
        raise SMSError(result.error or "Failed to send SMS", provider=selected.value, status_code=502)

    return result
