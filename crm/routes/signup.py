"""Public signup funnels."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..db import get_session
from ..pipelines.signup import SignupError, register_client, register_pro, resolve_signup_link
from ..rate_limit import client_identifier
from ..schemas import ClientSignupRequest, ProSignupRequest, SignupLinkStatus, SignupResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/signup", tags=["signup"])


@router.post("/pro", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
async def signup_pro(
    payload: ProSignupRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> SignupResponse:
    """Register a pro from the agent or loan-officer funnel."""
    data = payload.model_dump(exclude={"sms_consent", "consent_text"})
    data["full_name"] = f"{payload.first_name.strip()} {payload.last_name.strip()}"
    result = await register_pro(
        session,
        data,
        sms_consent=payload.sms_consent,
        consent_text=payload.consent_text,
        ip_address=client_identifier(request),
        user_agent=request.headers.get("user-agent"),
    )
    return SignupResponse(status="success", **result.__dict__)


@router.post("/client", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
async def signup_client(payload: ClientSignupRequest, session: AsyncSession = Depends(get_session)):
    """Register a client account, optionally through a signup link."""
    result = await register_client(
        session,
        payload.model_dump(exclude={"link_slug"}),
        link_slug=payload.link_slug,
    )
    return SignupResponse(status="success", **result.__dict__)


@router.get("/links/{slug}", response_model=SignupLinkStatus)
async def signup_link_status(slug: str, session: AsyncSession = Depends(get_session)):
    """Validate a signup link before showing the form."""
    try:
        link = await resolve_signup_link(session, slug)
    except SignupError as e:
        return SignupLinkStatus(valid=False, detail=str(e))
    return SignupLinkStatus(
        valid=True,
        name=link.name,
        package_id=link.package_id,
        custom_verbiage=link.custom_verbiage,
    )
