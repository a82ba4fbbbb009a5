"""TCPA SMS consent: logging consent, checking it before sends, opt-outs.

Consent rows are append-only except for opt-out, which stamps the latest
row for the phone. The latest row decides whether a number can be texted.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from .normalization import format_phone_e164

logger = logging.getLogger(__name__)


class ConsentMethod(str, Enum):
    WEBSITE = "website"
    SMS = "sms"
    PHONE = "phone"
    VERBAL = "verbal"


class ConsentError(Exception):
    """Raised when a consent record cannot be written."""
    pass


@dataclass
class ConsentStatus:
    can_send: bool
    reason: str
    phone_number: str
    consent_timestamp: datetime | None = None
    double_opt_in_confirmed: bool = False


async def latest_consent(session: AsyncSession, phone: str) -> models.SMSConsentLog | None:
    result = await session.execute(
        select(models.SMSConsentLog)
        .where(models.SMSConsentLog.phone_number == format_phone_e164(phone))
        .order_by(models.SMSConsentLog.created_at.desc(), models.SMSConsentLog.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def log_consent(
    session: AsyncSession,
    *,
    phone_number: str,
    consent_method: ConsentMethod | str,
    consent_text: str,
    consent_given: bool = True,
    ip_address: str | None = None,
    user_agent: str | None = None,
    double_opt_in_confirmed: bool = False,
) -> models.SMSConsentLog:
    """Append a consent record.

    Raises:
        ConsentError: If the record cannot be stored
    """
    record = models.SMSConsentLog(
        phone_number=format_phone_e164(phone_number),
        consent_given=consent_given,
        consent_method=ConsentMethod(consent_method).value,
        consent_text=consent_text,
        ip_address=ip_address,
        user_agent=user_agent,
        double_opt_in_confirmed=double_opt_in_confirmed,
    )
    try:
        session.add(record)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to log consent for {record.phone_number}: {e}", exc_info=True)
        raise ConsentError(f"Failed to log consent: {e}") from e

    logger.info(f"Consent logged for {record.phone_number} via {record.consent_method}")
    return record


async def check_consent(session: AsyncSession, phone_number: str) -> ConsentStatus:
    """Decide from the latest record whether ``phone_number`` may be texted."""
    phone = format_phone_e164(phone_number)
    record = await latest_consent(session, phone)

    if record is None:
        return ConsentStatus(can_send=False, reason="no_consent_record", phone_number=phone)
    if record.opt_out_timestamp is not None:
        return ConsentStatus(
            can_send=False,
            reason="opted_out",
            phone_number=phone,
            consent_timestamp=record.consent_timestamp,
        )
    if not record.consent_given:
        return ConsentStatus(
            can_send=False,
            reason="consent_not_given",
            phone_number=phone,
            consent_timestamp=record.consent_timestamp,
        )
    return ConsentStatus(
        can_send=True,
        reason="can_send",
        phone_number=phone,
        consent_timestamp=record.consent_timestamp,
        double_opt_in_confirmed=record.double_opt_in_confirmed,
    )


async def log_opt_out(
    session: AsyncSession,
    phone_number: str,
    method: ConsentMethod | str = ConsentMethod.SMS,
) -> models.SMSConsentLog:
    """Record an opt-out on the latest consent row, or a new opt-out row if none exists.

    Raises:
        ConsentError: If the record cannot be stored
    """
    phone = format_phone_e164(phone_number)
    method = ConsentMethod(method).value
    now = models.utcnow()

    try:
        record = await latest_consent(session, phone)
        if record is None:
            record = models.SMSConsentLog(
                phone_number=phone,
                consent_given=False,
                consent_method=method,
                consent_text=f"User opted out via {method}",
                opt_out_timestamp=now,
            )
            session.add(record)
        else:
            record.consent_given = False
            record.opt_out_timestamp = now
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to log opt-out for {phone}: {e}", exc_info=True)
        raise ConsentError(f"Failed to log opt-out: {e}") from e

    logger.info(f"Opt-out recorded for {phone}")
    return record
