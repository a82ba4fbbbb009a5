"""Payment links and recruit price quotes."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import require_admin
from ..config import settings
from ..db import get_session
from ..integrations.payments import create_payment_link
from ..pipelines.billing import calculate_recruit_price
from ..rate_limit import rate_limited
from ..schemas import PaymentLinkRequest, PaymentLinkResponse, PriceQuoteRequest, PriceQuoteResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments"])


@router.post("/payments/links", response_model=PaymentLinkResponse, status_code=201)
async def payment_link(
    request: PaymentLinkRequest,
    session: AsyncSession = Depends(get_session),
    caller: str = Depends(require_admin),
) -> PaymentLinkResponse:
    """Create a Stripe payment link for a client and send it by email and/or SMS."""
    result = await create_payment_link(
        session,
        client_id=request.client_id,
        amount=request.amount,
        description=request.description,
        send_via=request.send_via,
        email_message=request.email_message,
        sms_message=request.sms_message,
        created_by=caller,
    )
    return PaymentLinkResponse(success=True, **result.__dict__)


@router.post(
    "/pricing/quote",
    response_model=PriceQuoteResponse,
    dependencies=[Depends(rate_limited(
        "pricing",
        settings.rate_limit.pricing_max,
        settings.rate_limit.pricing_window_minutes,
    ))],
)
async def price_quote(request: PriceQuoteRequest, session: AsyncSession = Depends(get_session)):
    """Quote the price of a recruit for a client."""
    quote = await calculate_recruit_price(
        session,
        pro_id=request.recruit_id,
        client_id=request.client_id,
        discount_code=request.discount_code,
    )
    return PriceQuoteResponse(**quote.__dict__)
