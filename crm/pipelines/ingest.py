"""Ingestion pipeline for pros.

Validates and normalizes structured pro data, derives the qualification
percentage and status, and upserts by phone number. Shared by the signup
funnel, the admin API and bulk spreadsheet imports.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from .normalization import (
    clamp_int,
    format_phone_e164,
    is_missing,
    normalize_state,
    normalize_whitespace,
    parse_list,
    parse_coordinate,
    parse_money,
    placeholder_email,
    split_name,
)

logger = logging.getLogger(__name__)

QUALIFICATION_FIELDS = ("full_name", "phone", "cities", "states", "zip_codes")
LIST_LIMITS = {
    "zip_codes": 100,
    "wants": 50,
    "counties": 20,
    "cities": 50,
    "states": 20,
    "primary_neighborhoods": 50,
    "specializations": 20,
    "skills": 50,
    "tags": 50,
    "loan_types_specialized": 20,
}
COORDINATE_BOUNDS = {"latitude": 90.0, "longitude": 180.0}
INT_RANGES = {
    "experience": (0, 80),
    "transactions": (0, 10000),
    "transactions_12mo": (0, 10000),
    "motivation": (0, 10),
}
MONEY_FIELDS = ("total_volume_12mo", "annual_loan_volume", "qualification_score", "on_time_close_rate")
TEXT_FIELDS = (
    "email", "brokerage", "company", "job_title", "license_type", "nmls_id", "needs", "notes", "source", "pro_type",
)


class IngestError(Exception):
    """Raised when a pro record is invalid or cannot be stored."""
    pass


@dataclass
class ImportReport:
    total: int = 0
    created: int = 0
    updated: int = 0
    failed: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def success(self) -> int:
        return self.created + self.updated


def qualification(fields: Mapping[str, Any]) -> tuple[float, str]:
    """Percent of required fields present and the status it implies."""
    present = sum(1 for name in QUALIFICATION_FIELDS if fields.get(name))
    percent = round(present / len(QUALIFICATION_FIELDS) * 100, 1)
    if percent >= 100:
        return percent, "qualified"
    if percent >= 50:
        return percent, "qualifying"
    return percent, "new"


def prepare_pro_fields(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Validate and normalize raw pro data into model fields.

    Raises:
        IngestError: Name or phone missing, or unparseable coordinates
    """
    full_name = raw.get("full_name")
    if is_missing(full_name):
        parts = [raw.get("first_name"), raw.get("last_name")]
        full_name = " ".join(str(p) for p in parts if not is_missing(p))
    if is_missing(full_name):
        raise IngestError("Name is required")
    full_name = normalize_whitespace(str(full_name))

    phone = raw.get("phone")
    if is_missing(phone):
        raise IngestError("Phone is required")
    phone = format_phone_e164(str(phone))

    first, last = split_name(full_name)
    fields: dict[str, Any] = {
        "full_name": full_name,
        "first_name": raw.get("first_name") if not is_missing(raw.get("first_name")) else first,
        "last_name": raw.get("last_name") if not is_missing(raw.get("last_name")) else last,
        "phone": phone,
    }

    for name in TEXT_FIELDS:
        if not is_missing(raw.get(name)):
            fields[name] = normalize_whitespace(str(raw[name]))
    if "email" not in fields:
        fields["email"] = placeholder_email(full_name)
    else:
        fields["email"] = fields["email"].lower()

    for name, limit in LIST_LIMITS.items():
        if name in raw:
            values = parse_list(raw[name], limit=limit)
            if name == "states":
                values = [normalize_state(v) for v in values]
            fields[name] = values

    for name, (low, high) in INT_RANGES.items():
        if name in raw:
            fields[name] = clamp_int(raw[name], low, high)

    for name in MONEY_FIELDS:
        if name in raw:
            fields[name] = parse_money(raw[name])

    for name, bound in COORDINATE_BOUNDS.items():
        if not is_missing(raw.get(name)):
            fields[name] = parse_coordinate(raw[name], bound)
            if fields[name] is None:
                raise IngestError(f"Invalid {name}: {raw[name]!r}")

    for name in ("pipeline_stage", "status"):
        if not is_missing(raw.get(name)):
            fields[name] = raw[name]

    if "status" not in fields:
        _, fields["status"] = qualification(fields)

    return fields


async def upsert_pro(
    session: AsyncSession,
    raw: Mapping[str, Any],
    *,
    metadata: Mapping[str, Any] | None = None,
    commit: bool = True,
) -> tuple[models.Pro, bool]:
    """Create a pro, or update the existing pro with the same phone.

    Args:
        session: Database session
        raw: Unvalidated pro data
        metadata: Extra data stored on the pro's metadata column
        commit: Commit the transaction (False lets callers batch)

    Returns:
        Tuple of (pro, created)

    Raises:
        IngestError: Invalid data or a database failure
    """
    fields = prepare_pro_fields(raw)

    try:
        existing = (await session.execute(
            select(models.Pro).where(models.Pro.phone == fields["phone"])
        )).scalar_one_or_none()

        if existing is None:
            pro = models.Pro(**fields, metadata_=dict(metadata) if metadata is not None else None)
            session.add(pro)
            created = True
        else:
            pro = existing
            # Imports never downgrade a pro's status
            fields.pop("status", None)
            for key, value in fields.items():
                if value is not None and value != []:
                    setattr(pro, key, value)
            if metadata is not None:
                pro.metadata_ = {**(pro.metadata_ or {}), **metadata}
            created = False

        await session.flush()
        if commit:
            await session.commit()
    except SQLAlchemyError as e:
        # Batched callers roll back their own savepoint
        if commit:
            await session.rollback()
        logger.error(f"Failed to store pro {fields['phone']}: {e}", exc_info=True)
        raise IngestError(f"Failed to store pro: {e}") from e

    logger.info(f"{'Created' if created else 'Updated'} pro {pro.id} ({pro.full_name})")
    return pro, created


async def import_pro_rows(
    session: AsyncSession,
    rows: list[Mapping[str, Any]],
    *,
    source: str = "import",
) -> ImportReport:
    """Upsert many pros; invalid rows are reported, not fatal.

    Each row is staged in its own savepoint, so a failing row never discards
    the rows before it. Row numbers in errors are 1-based spreadsheet data rows.
    """
    report = ImportReport(total=len(rows))

    for index, row in enumerate(rows, start=1):
        data = dict(row)
        data.setdefault("source", source)
        try:
            async with session.begin_nested():
                _, created = await upsert_pro(session, data, commit=False)
        except IngestError as e:
            report.failed += 1
            report.errors.append({"row": index, "error": str(e)})
            continue
        if created:
            report.created += 1
        else:
            report.updated += 1

    await session.commit()
    logger.info(
        f"Import finished: {report.created} created, {report.updated} updated, "
        f"{report.failed} failed of {report.total}"
    )
    return report
