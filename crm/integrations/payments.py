"""Payment links through the Stripe REST API.

An admin creates a one-off price and a payment link for a client; the link
is stored and delivered by email, SMS or both.
"""
from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..config import settings
from .base import IntegrationConfigError, IntegrationError, error_detail, http_client, transient_retry
from .email import send_email
from .sms import send_sms

logger = logging.getLogger(__name__)


class DeliveryChannel(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    BOTH = "both"


class PaymentError(IntegrationError):
    """Raised when a payment link cannot be created or delivered."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message, provider="stripe", status_code=status_code)


@dataclass
class PaymentLinkResult:
    payment_link_id: int
    url: str
    email_sent: bool = False
    sms_sent: bool = False


class StripeClient:
    """Minimal form-encoded Stripe client for prices and payment links."""

    def __init__(self, secret_key: str | None = None, client: httpx.AsyncClient | None = None) -> None:
        self.secret_key = secret_key or settings.payment.stripe_secret_key
        if not self.secret_key:
            raise IntegrationConfigError("PAYMENT_STRIPE_SECRET_KEY not configured", provider="stripe")
        self._client = client

    @transient_retry
    async def _post(self, http: httpx.AsyncClient, path: str, data: dict[str, Any]) -> httpx.Response:
        return await http.post(
            f"{settings.payment.api_base}/{path}",
            data=data,
            auth=(self.secret_key, ""),
        )

    async def _create(self, path: str, data: dict[str, Any]) -> dict[str, Any]:
        try:
            async with http_client(self._client) as http:
                response = await self._post(http, path, data)
        except httpx.HTTPError as e:
            raise PaymentError(f"Stripe request failed: {e}", status_code=502) from e
        if not response.is_success:
            raise PaymentError(f"Stripe {path} failed: {error_detail(response)}", status_code=502)
        return response.json()

    async def create_price(self, amount: float, name: str) -> dict[str, Any]:
        return await self._create("prices", {
            "unit_amount": int(round(amount * 100)),
            "currency": settings.payment.currency,
            "product_data[name]": name,
        })

    async def create_payment_link(self, price_id: str, metadata: dict[str, Any]) -> dict[str, Any]:
        data = {"line_items[0][price]": price_id, "line_items[0][quantity]": 1}
        for key, value in metadata.items():
            data[f"metadata[{key}]"] = str(value)
        return await self._create("payment_links", data)


def payment_email_html(company_name: str, amount: float, description: str, url: str, message: str | None) -> str:
    custom = f"<p>{html.escape(message)}</p>" if message else ""
    return (
        "<h2>Payment Request</h2>"
        f"<p>Hello {html.escape(company_name)},</p>"
        f"{custom}"
        f"<p>You have a payment request for <strong>${amount:.2f}</strong>.</p>"
        f"<p><strong>Description:</strong> {html.escape(description)}</p>"
        f'<p><a href="{url}">Pay Now</a></p>'
        f"<p>Or copy this link: {url}</p>"
        "<p>Thank you!</p>"
    )


def payment_sms_body(amount: float, description: str, url: str, message: str | None) -> str:
    if message:
        return f"{message}\n\nPay ${amount:.2f} for {description}: {url}"
    return f"You have a payment request for ${amount:.2f} - {description}. Pay here: {url}"


async def create_payment_link(
    session: AsyncSession,
    *,
    client_id: int,
    amount: float,
    description: str,
    send_via: DeliveryChannel | str = DeliveryChannel.EMAIL,
    email_message: str | None = None,
    sms_message: str | None = None,
    created_by: str | None = None,
    stripe: StripeClient | None = None,
    http: httpx.AsyncClient | None = None,
) -> PaymentLinkResult:
    """Create a Stripe payment link for a client and deliver it.

    Raises:
        PaymentError: Client missing or Stripe rejected the request
        IntegrationConfigError: Stripe key not configured
    """
    client_row = await session.get(models.Client, client_id)
    if client_row is None:
        raise PaymentError(f"Client {client_id} not found", status_code=404)

    channel = DeliveryChannel(send_via)
    stripe = stripe or StripeClient()

    price = await stripe.create_price(amount, description)
    link = await stripe.create_payment_link(
        price["id"],
        {"client_id": client_id, "description": description},
    )

    row = models.PaymentLink(
        client_id=client_id,
        amount=amount,
        description=description,
        provider_link_id=link.get("id"),
        url=link.get("url"),
        sent_via=channel.value,
        email_message=email_message,
        sms_message=sms_message,
        created_by=created_by,
    )
    session.add(row)
    await session.commit()
    logger.info(f"Payment link {row.id} created for client {client_id}: ${amount:.2f}")

    result = PaymentLinkResult(payment_link_id=row.id, url=row.url or "")

    if channel in (DeliveryChannel.EMAIL, DeliveryChannel.BOTH):
        await send_email(
            session,
            to=client_row.email,
            subject=f"Payment Request - {description}",
            html=payment_email_html(client_row.company_name, amount, description, result.url, email_message),
            client=http,
        )
        result.email_sent = True

    if channel in (DeliveryChannel.SMS, DeliveryChannel.BOTH):
        if client_row.phone:
            await send_sms(
                session,
                client_row.phone,
                payment_sms_body(amount, description, result.url, sms_message),
                context="admin",
                sent_by=created_by,
                metadata={"payment_link_id": row.id},
                client=http,
            )
            result.sms_sent = True
        else:
            logger.info(f"Client {client_id} has no phone number, SMS skipped")

    return result
