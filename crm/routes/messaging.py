"""SMS, TCPA consent and email endpoints."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import require_admin
from ..db import get_session
from ..integrations.email import send_email, send_template_email
from ..integrations.sms import send_sms
from ..pipelines.consent import check_consent, log_consent, log_opt_out
from ..rate_limit import client_identifier
from ..schemas import (
    ConsentCheckResponse,
    ConsentLogRequest,
    ConsentLogResponse,
    EmailSendRequest,
    EmailSendResponse,
    OptOutRequest,
    RecipientResultDTO,
    SMSSendRequest,
    SMSSendResponse,
    TemplateEmailRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["messaging"])


@router.post("/sms/send", response_model=SMSSendResponse)
async def sms_send(
    request: SMSSendRequest,
    session: AsyncSession = Depends(get_session),
    caller: str = Depends(require_admin),
) -> SMSSendResponse:
    """Send an SMS through the selected provider, with fallback."""
    result = await send_sms(
        session,
        request.to,
        request.message,
        provider=request.provider,
        context=request.context,
        from_number=request.from_number,
        sent_by=caller,
        metadata=request.metadata,
    )
    return SMSSendResponse(
        success=result.success,
        provider=result.provider.value,
        from_number=result.from_number,
        message_id=result.message_id,
        recipients=[RecipientResultDTO(**r.__dict__) for r in result.recipients],
    )


@router.post("/sms/consent", response_model=ConsentLogResponse, status_code=201)
async def sms_consent(
    payload: ConsentLogRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ConsentLogResponse:
    """Record TCPA consent captured by a form, call or text."""
    record = await log_consent(
        session,
        phone_number=payload.phone_number,
        consent_method=payload.consent_method,
        consent_text=payload.consent_text,
        consent_given=payload.consent_given,
        ip_address=client_identifier(request),
        user_agent=request.headers.get("user-agent"),
        double_opt_in_confirmed=payload.double_opt_in_confirmed,
    )
    return ConsentLogResponse(success=True, consent_id=record.id)


@router.get("/sms/consent/{phone_number}", response_model=ConsentCheckResponse)
async def sms_consent_check(phone_number: str, session: AsyncSession = Depends(get_session)):
    """Whether the latest consent record allows texting this number."""
    result = await check_consent(session, phone_number)
    return ConsentCheckResponse(**result.__dict__)


@router.post("/sms/opt-out", response_model=ConsentCheckResponse)
async def sms_opt_out(payload: OptOutRequest, session: AsyncSession = Depends(get_session)):
    await log_opt_out(session, payload.phone_number, payload.method)
    result = await check_consent(session, payload.phone_number)
    return ConsentCheckResponse(**result.__dict__)


@router.post("/email/send", response_model=EmailSendResponse, dependencies=[Depends(require_admin)])
async def email_send(request: EmailSendRequest, session: AsyncSession = Depends(get_session)):
    result = await send_email(session, to=request.to, subject=request.subject, html=request.html, text=request.text)
    return EmailSendResponse(**result.__dict__)


@router.post("/email/template", response_model=EmailSendResponse, dependencies=[Depends(require_admin)])
async def email_template_send(request: TemplateEmailRequest, session: AsyncSession = Depends(get_session)):
    """Render a stored template with variables and send it."""
    result = await send_template_email(
        session,
        request.template_name,
        to=request.to,
        variables=request.variables,
    )
    return EmailSendResponse(**result.__dict__)
