"""Billing pipeline: credit auto-charge for matches, eligibility and recruit pricing.

Implements the match purchase flow (charge on match creation) and the
recruit price quote used by client dashboards.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models

logger = logging.getLogger(__name__)

TIER_PRICES = {"premium": 500.0, "qualified": 300.0}
DEFAULT_LEAD_PRICE = 50.0
LOW_CREDIT_THRESHOLD = 100.0
DEFAULT_BASE_PRICE = 100.0
DEFAULT_MOTIVATION_MAX = 999.0
DEFAULT_TRANSACTIONS_MAX = 999999.0


class BillingError(Exception):
    """Raised when a billing operation fails unexpectedly."""

    def __init__(self, message: str, correlation_id: str | None = None) -> None:
        super().__init__(message)
        self.correlation_id = correlation_id


class BillingNotFoundError(BillingError):
    """Raised when the match, client or pro does not exist."""
    pass


@dataclass
class ChargeResult:
    """Outcome of charging one match against client credits."""
    success: bool
    match_id: int
    already_purchased: bool = False
    amount_charged: float = 0.0
    new_balance: float | None = None
    error: str | None = None
    required: float | None = None
    available: float | None = None


@dataclass
class TriggerResult:
    """Outcome of the match-created hook."""
    charged: bool
    skipped: bool = False
    reason: str | None = None
    charge: ChargeResult | None = None


@dataclass
class EligibilityResult:
    client_id: int
    eligible: bool
    needs_payment_method: bool
    credits_balance: float
    package_id: int | None
    reasons: list[str] = field(default_factory=list)


@dataclass
class PriceQuote:
    base_price: float
    total_before_discounts: float
    final_price: float
    breakdown: dict[str, Any] = field(default_factory=dict)


def match_price(match: models.Match) -> float:
    """Explicit match cost, else the pricing-tier price."""
    if match.cost:
        return float(match.cost)
    return TIER_PRICES.get(match.pricing_tier or "", DEFAULT_LEAD_PRICE)


async def _log_activity(
    session: AsyncSession,
    *,
    client_id: int | None,
    activity_type: str,
    amount: float | None,
    status: str,
    metadata: dict[str, Any],
    error_message: str | None = None,
) -> None:
    session.add(models.PaymentActivityLog(
        client_id=client_id,
        activity_type=activity_type,
        amount=amount,
        status=status,
        error_message=error_message,
        metadata_=metadata,
    ))


async def auto_charge_match(session: AsyncSession, match_id: int) -> ChargeResult:
    """Charge a match against the client's credit balance.

    Idempotent: a purchased match is reported as such without a second charge.

    Args:
        session: Database session
        match_id: Match to charge

    Returns:
        ChargeResult; ``success`` is False with ``error="insufficient_credits"``
        when the balance does not cover the price

    Raises:
        BillingNotFoundError: Match or client missing
        BillingError: Unexpected failure (a failed activity row is written)
    """
    match = await session.get(models.Match, match_id)
    if match is None:
        raise BillingNotFoundError(f"Match {match_id} not found")

    if match.purchased:
        logger.info(f"Match {match_id} already purchased")
        return ChargeResult(success=True, match_id=match_id, already_purchased=True, amount_charged=match.cost or 0.0)

    client = await session.get(models.Client, match.client_id)
    if client is None:
        raise BillingNotFoundError(f"Client {match.client_id} not found")

    price = match_price(match)
    if client.credits_balance < price:
        logger.info(
            f"Insufficient credits for match {match_id}: "
            f"required {price}, available {client.credits_balance}"
        )
        return ChargeResult(
            success=False,
            match_id=match_id,
            error="insufficient_credits",
            required=price,
            available=client.credits_balance,
        )

    client_id = client.id
    try:
        client.credits_balance -= price
        client.credits_used = (client.credits_used or 0) + price
        client.current_month_spend = (client.current_month_spend or 0) + price

        match.purchased = True
        match.status = "purchased"
        match.auto_charged_at = models.utcnow()
        match.cost = price

        await _log_activity(
            session,
            client_id=client_id,
            activity_type="match_auto_charge_credits",
            amount=price,
            status="success",
            metadata={"match_id": match_id, "new_balance": client.credits_balance},
        )
        await session.commit()

        logger.info(f"Charged {price} credits for match {match_id}, balance {client.credits_balance}")
        return ChargeResult(
            success=True,
            match_id=match_id,
            amount_charged=price,
            new_balance=client.credits_balance,
        )

    except Exception as e:
        correlation_id = str(uuid.uuid4())
        logger.error(f"Auto-charge failed for match {match_id} ({correlation_id}): {e}", exc_info=True)
        await session.rollback()
        await _log_activity(
            session,
            client_id=client_id,
            activity_type="match_auto_charge_failed",
            amount=price,
            status="failed",
            error_message=str(e),
            metadata={"match_id": match_id, "correlation_id": correlation_id},
        )
        await session.commit()
        raise BillingError(f"Failed to charge match {match_id}", correlation_id=correlation_id) from e


async def handle_match_created(session: AsyncSession, match_id: int) -> TriggerResult:
    """Charge a newly created match when the client has opted into auto-charge.

    Skips clients with auto-charge disabled, and clients with no payment
    method whose credits are at or below the low-credit threshold.
    """
    match = await session.get(models.Match, match_id)
    if match is None:
        raise BillingNotFoundError(f"Match {match_id} not found")
    client = await session.get(models.Client, match.client_id)
    if client is None:
        raise BillingNotFoundError(f"Client {match.client_id} not found")

    if not client.auto_charge_enabled:
        return TriggerResult(charged=False, skipped=True, reason="disabled")
    if not client.has_payment_method and client.credits_balance <= LOW_CREDIT_THRESHOLD:
        return TriggerResult(charged=False, skipped=True, reason="no_payment_method_and_low_credits")

    charge = await auto_charge_match(session, match_id)
    return TriggerResult(charged=charge.success and not charge.already_purchased, charge=charge, reason=charge.error)


async def check_client_eligibility(session: AsyncSession, client_id: int) -> EligibilityResult:
    """Whether a client can receive leads, and whether they should add a card."""
    client = await session.get(models.Client, client_id)
    if client is None:
        raise BillingNotFoundError(f"Client {client_id} not found")

    reasons = []
    if not client.active:
        reasons.append("Client account is not active")
    if client.current_package_id is None:
        reasons.append("No pricing package selected")
    needs_payment_method = client.credits_balance <= LOW_CREDIT_THRESHOLD
    if needs_payment_method:
        reasons.append(f"Credits at or below {LOW_CREDIT_THRESHOLD:g}")

    return EligibilityResult(
        client_id=client_id,
        eligible=client.active and client.current_package_id is not None,
        needs_payment_method=needs_payment_method,
        credits_balance=client.credits_balance,
        package_id=client.current_package_id,
        reasons=reasons,
    )


def discount_code_amount(code: models.DiscountCode | None, total: float, now: datetime) -> float:
    """Discount from a code, 0 when inactive, expired or used up."""
    if code is None or not code.active:
        return 0.0
    if code.expires_at is not None and code.expires_at < now:
        return 0.0
    if code.max_uses and code.current_uses >= code.max_uses:
        return 0.0
    if code.discount_type == "percentage":
        return total * (code.discount_value / 100)
    return float(code.discount_value)


def quote_price(
    configs: Sequence[models.PricingConfig],
    *,
    motivation: float,
    transactions: float,
    hours_old: float,
    discount_code: models.DiscountCode | None = None,
    now: datetime | None = None,
) -> PriceQuote:
    """Compute a recruit price from active pricing rows.

    Base price, plus the highest applicable motivation add-on, plus the first
    matching transactions add-on; then minus the largest time discount the
    recruit's age qualifies for (a fraction of the total) and any valid
    discount code. Never below zero.
    """
    now = now or models.utcnow()
    by_type: dict[str, list[models.PricingConfig]] = {}
    for config in configs:
        if config.active:
            by_type.setdefault(config.config_type, []).append(config)

    base_rows = by_type.get("base", [])
    base_price = base_rows[0].price_modifier if base_rows and base_rows[0].price_modifier else DEFAULT_BASE_PRICE
    total = base_price
    breakdown: dict[str, Any] = {"base": base_price}

    motivation_rows = sorted(
        (
            c for c in by_type.get("motivation", [])
            if (c.min_value or 0) <= motivation <= (c.max_value if c.max_value is not None else DEFAULT_MOTIVATION_MAX)
        ),
        key=lambda c: c.price_modifier,
        reverse=True,
    )
    if motivation_rows:
        addon = motivation_rows[0].price_modifier
        total += addon
        breakdown["motivation"] = {"score": motivation, "addon": addon, "tier": motivation_rows[0].tier_name}

    transaction_row = next(
        (
            c for c in sorted(by_type.get("transactions", []), key=lambda c: c.min_value or 0)
            if (c.min_value or 0) <= transactions <= (c.max_value if c.max_value is not None else DEFAULT_TRANSACTIONS_MAX)
        ),
        None,
    )
    if transaction_row is not None:
        total += transaction_row.price_modifier
        breakdown["transactions"] = {
            "count": transactions,
            "addon": transaction_row.price_modifier,
            "tier": transaction_row.tier_name,
        }

    time_rows = sorted(
        (c for c in by_type.get("time_discount", []) if hours_old >= (c.min_value or 0)),
        key=lambda c: c.price_modifier,
        reverse=True,
    )
    time_discount = 0.0
    if time_rows:
        fraction = time_rows[0].price_modifier
        time_discount = total * fraction
        breakdown["time_discount"] = {
            "hours": int(hours_old),
            "percent": fraction * 100,
            "amount": time_discount,
            "tier": time_rows[0].tier_name,
        }

    code_discount = discount_code_amount(discount_code, total, now)
    if code_discount and discount_code is not None:
        breakdown["discount_code"] = {
            "code": discount_code.code,
            "type": discount_code.discount_type,
            "value": discount_code.discount_value,
            "amount": code_discount,
        }

    return PriceQuote(
        base_price=base_price,
        total_before_discounts=total,
        final_price=max(0.0, total - time_discount - code_discount),
        breakdown=breakdown,
    )


async def calculate_recruit_price(
    session: AsyncSession,
    *,
    pro_id: int,
    client_id: int | None = None,
    discount_code: str | None = None,
    now: datetime | None = None,
) -> PriceQuote:
    """Quote the price of a recruit for a client.

    An active admin flat-price override for the client wins outright.

    Raises:
        BillingNotFoundError: Pro missing
    """
    now = now or models.utcnow()
    pro = await session.get(models.Pro, pro_id)
    if pro is None:
        raise BillingNotFoundError(f"Recruit {pro_id} not found")

    if client_id is not None:
        override = (await session.execute(
            select(models.AdminPricingOverride).where(
                models.AdminPricingOverride.client_id == client_id,
                models.AdminPricingOverride.active.is_(True),
            ).limit(1)
        )).scalar_one_or_none()
        if override is not None and override.flat_price is not None:
            return PriceQuote(
                base_price=override.flat_price,
                total_before_discounts=override.flat_price,
                final_price=override.flat_price,
                breakdown={"type": "admin_override", "flat_price": override.flat_price},
            )

    configs = (await session.execute(
        select(models.PricingConfig).where(models.PricingConfig.active.is_(True))
    )).scalars().all()

    code = None
    if discount_code:
        code = (await session.execute(
            select(models.DiscountCode).where(models.DiscountCode.code == discount_code)
        )).scalar_one_or_none()

    hours_old = max(0.0, (now - pro.created_at).total_seconds() / 3600)
    return quote_price(
        configs,
        motivation=pro.motivation or 0,
        transactions=pro.transactions or 0,
        hours_old=hours_old,
        discount_code=code,
        now=now,
    )
