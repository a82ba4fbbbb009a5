"""Signup funnels for pros and clients.

Pro signup stores the profile through the ingest pipeline and records SMS
consent. Client signup can go through a shareable signup link that
assigns a package and counts its uses. Both notify the admin inbox.
"""
from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, Mapping

import httpx
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..config import settings
from ..integrations.base import IntegrationError
from ..integrations.email import send_email
from .consent import ConsentError, ConsentMethod, log_consent
from .ingest import IngestError, upsert_pro
from .normalization import format_phone_e164, is_missing, parse_list

logger = logging.getLogger(__name__)

DEFAULT_CONSENT_TEXT = (
    "By providing my phone number I agree to receive text messages about "
    "recruiting opportunities. Message and data rates may apply. Reply STOP to opt out."
)


class SignupError(Exception):
    """Raised when a signup cannot be completed."""

    def __init__(self, message: str, *, status_code: int = 400) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class SignupResult:
    record_id: int
    created: bool
    consent_logged: bool = False
    admin_notified: bool = False


def slugify(text: str) -> str:
    """Lowercase slug of letters, digits and dashes."""
    slug = re.sub(r"[^a-z0-9-]", "-", text.strip().lower())
    return re.sub(r"-{2,}", "-", slug).strip("-")


def generate_slug(name: str) -> str:
    """Slug from a link name plus a short random suffix."""
    base = slugify(name) or "signup"
    return f"{base}-{uuid.uuid4().hex[:6]}"


def link_problem(link: models.SignupLink | None, now=None) -> str | None:
    """Why a signup link cannot be used, or None when it is valid."""
    now = now or models.utcnow()
    if link is None or not link.active:
        return "This sign-up link is not valid or has expired."
    if link.max_uses and link.current_uses >= link.max_uses:
        return "This sign-up link has reached its maximum uses."
    if link.expires_at is not None and link.expires_at < now:
        return "This sign-up link has expired."
    return None


async def resolve_signup_link(session: AsyncSession, slug: str) -> models.SignupLink:
    """Load an active, unexpired signup link with uses left.

    Raises:
        SignupError: Unknown, inactive, expired or used-up link (404)
    """
    link = (await session.execute(
        select(models.SignupLink).where(models.SignupLink.link_slug == slug)
    )).scalar_one_or_none()
    problem = link_problem(link)
    if problem:
        raise SignupError(problem, status_code=404)
    return link


async def notify_admin(
    session: AsyncSession,
    subject: str,
    details: Mapping[str, Any],
    client: httpx.AsyncClient | None = None,
) -> bool:
    """Email the admin inbox about a signup. Failures are logged, never raised."""
    to = settings.email.admin_notify_email
    if not to:
        return False

    rows = "".join(f"<li><strong>{k}:</strong> {v}</li>" for k, v in details.items() if v not in (None, ""))
    try:
        await send_email(session, to=to, subject=subject, html=f"<ul>{rows}</ul>", client=client)
    except IntegrationError as e:
        logger.warning(f"Admin signup notification failed: {e}")
        return False
    return True


async def register_pro(
    session: AsyncSession,
    data: Mapping[str, Any],
    *,
    sms_consent: bool = False,
    consent_text: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> SignupResult:
    """Store a pro from a signup form and record their SMS consent.

    A consent logging failure does not fail the signup.

    Raises:
        SignupError: Invalid form data or the profile cannot be stored
    """
    fields = dict(data)
    fields.setdefault("source", "signup")
    fields.setdefault("pipeline_stage", "new")
    try:
        pro, created = await upsert_pro(session, fields)
    except IngestError as e:
        raise SignupError(str(e)) from e

    # Plain values survive the rollback a failed consent write performs.
    pro_id = pro.id
    details = {"Name": pro.full_name, "Email": pro.email, "Phone": pro.phone, "Type": pro.pro_type}
    result = SignupResult(record_id=pro_id, created=created)

    if sms_consent:
        try:
            await log_consent(
                session,
                phone_number=details["Phone"],
                consent_method=ConsentMethod.WEBSITE,
                consent_text=consent_text or DEFAULT_CONSENT_TEXT,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            result.consent_logged = True
        except ConsentError as e:
            logger.error(f"Consent logging failed for pro {pro_id}, signup continues: {e}")

    result.admin_notified = await notify_admin(
        session,
        f"New pro signup: {details['Name']}",
        details,
        client=client,
    )
    logger.info(f"Pro signup {'created' if created else 'updated'} pro {pro_id}")
    return result


async def register_client(
    session: AsyncSession,
    data: Mapping[str, Any],
    *,
    link_slug: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> SignupResult:
    """Create a client account, optionally through a signup link.

    The link's package becomes the client's package and its use count is
    incremented in the same transaction.

    Raises:
        SignupError: Missing fields, invalid link (404) or duplicate email (409)
    """
    company_name = data.get("company_name")
    email = data.get("email")
    if is_missing(company_name) or is_missing(email):
        raise SignupError("Company name and email are required")

    link = await resolve_signup_link(session, link_slug) if link_slug else None

    row = models.Client(
        company_name=str(company_name).strip(),
        email=str(email).strip().lower(),
        contact_name=data.get("contact_name"),
        phone=format_phone_e164(str(data["phone"])) if not is_missing(data.get("phone")) else None,
        brokerage=data.get("brokerage"),
        client_type=data.get("client_type") or "real_estate",
        cities=parse_list(data.get("cities")),
        states=parse_list(data.get("states")),
        zip_codes=parse_list(data.get("zip_codes")),
        provides=parse_list(data.get("provides")),
        wants=data.get("wants"),
        needs=data.get("needs"),
        current_package_id=link.package_id if link is not None else data.get("current_package_id"),
    )

    try:
        session.add(row)
        if link is not None:
            link.current_uses += 1
        await session.commit()
    except IntegrityError as e:
        await session.rollback()
        raise SignupError(f"A client with email {row.email} already exists", status_code=409) from e
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Client signup failed for {row.email}: {e}", exc_info=True)
        raise SignupError(f"Client signup failed: {e}", status_code=500) from e

    result = SignupResult(record_id=row.id, created=True)
    result.admin_notified = await notify_admin(
        session,
        f"New client signup: {row.company_name}",
        {
            "Company": row.company_name,
            "Contact": row.contact_name,
            "Email": row.email,
            "Signup link": link.name if link is not None else None,
        },
        client=client,
    )
    logger.info(f"Client {row.id} signed up{f' via link {link.link_slug}' if link else ''}")
    return result
