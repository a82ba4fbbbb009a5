"""Normalization utilities for contact and territory data.

Phones are stored in E.164, list cells arrive comma separated from forms and
spreadsheets, and comparisons are done on lowercased, trimmed values.
"""
from __future__ import annotations

import logging
import math
import re
import unicodedata
from typing import Any, Iterable

logger = logging.getLogger(__name__)

US_STATES = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "district of columbia": "DC", "florida": "FL", "georgia": "GA", "hawaii": "HI",
    "idaho": "ID", "illinois": "IL", "indiana": "IN", "iowa": "IA",
    "kansas": "KS", "kentucky": "KY", "louisiana": "LA", "maine": "ME",
    "maryland": "MD", "massachusetts": "MA", "michigan": "MI", "minnesota": "MN",
    "mississippi": "MS", "missouri": "MO", "montana": "MT", "nebraska": "NE",
    "nevada": "NV", "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM",
    "new york": "NY", "north carolina": "NC", "north dakota": "ND", "ohio": "OH",
    "oklahoma": "OK", "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI",
    "south carolina": "SC", "south dakota": "SD", "tennessee": "TN", "texas": "TX",
    "utah": "UT", "vermont": "VT", "virginia": "VA", "washington": "WA",
    "west virginia": "WV", "wisconsin": "WI", "wyoming": "WY",
}


def normalize_whitespace(text: str) -> str:
    """Normalize whitespace: collapse multiple spaces, remove leading/trailing."""
    text = re.sub(r'\s+', ' ', text)
    return text.strip()


def normalize_text(text: str | None) -> str:
    """Lowercase, NFC-normalize and collapse whitespace."""
    if not text:
        return ""
    text = unicodedata.normalize('NFC', str(text))
    return normalize_whitespace(text.lower())


def is_missing(value: Any) -> bool:
    """True for None, blank strings and NaN (pandas empty cells)."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def digits_only(value: str) -> str:
    return re.sub(r'\D', '', value)


def format_phone_e164(phone: str) -> str:
    """Format a US phone number as E.164.

    11 digits with a leading 1 and bare 10-digit numbers are converted;
    anything else is returned unchanged so international numbers that are
    already formatted pass through.
    """
    if not phone:
        return phone
    digits = digits_only(str(phone))
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    return str(phone).strip()


def normalize_state(value: str | None) -> str | None:
    """Map a US state name or code to its two-letter code."""
    if is_missing(value):
        return None
    cleaned = normalize_whitespace(str(value))
    if len(cleaned) == 2:
        return cleaned.upper()
    return US_STATES.get(cleaned.lower(), cleaned)


def parse_list(value: Any, *, limit: int | None = None) -> list[str]:
    """Turn a list or comma/semicolon separated cell into a clean list of strings."""
    if is_missing(value):
        return []
    if isinstance(value, (list, tuple, set)):
        items = [str(v) for v in value if not is_missing(v)]
    else:
        items = re.split(r'[,;]', str(value))
    cleaned = [normalize_whitespace(item) for item in items]
    cleaned = [item for item in cleaned if item]
    return cleaned[:limit] if limit is not None else cleaned


def normalized_set(values: Iterable[Any] | None) -> set[str]:
    """Lowercased, trimmed set used for overlap comparisons."""
    if not values:
        return set()
    return {normalize_text(str(v)) for v in values if not is_missing(v)}


def clamp_int(value: Any, low: int, high: int) -> int | None:
    """Parse ``value`` as an int and clamp it to ``[low, high]``; None when unparseable."""
    if is_missing(value):
        return None
    try:
        number = int(float(str(value).replace(",", "").replace("$", "")))
    except ValueError:
        logger.debug(f"Could not parse integer from {value!r}")
        return None
    return max(low, min(high, number))


def parse_money(value: Any) -> float | None:
    """Parse ``$1,250,000`` style cells; None when unparseable."""
    if is_missing(value):
        return None
    try:
        return float(str(value).replace(",", "").replace("$", "").strip())
    except ValueError:
        logger.debug(f"Could not parse amount from {value!r}")
        return None


def parse_coordinate(value: Any, bound: float) -> float | None:
    """Parse a latitude or longitude within ``[-bound, bound]``; None when invalid."""
    if is_missing(value):
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        logger.debug(f"Could not parse coordinate from {value!r}")
        return None
    if math.isnan(number) or abs(number) > bound:
        return None
    return number


def split_name(full_name: str) -> tuple[str, str]:
    """Split a display name into (first, last)."""
    parts = normalize_whitespace(full_name).split(" ")
    if len(parts) == 1:
        return parts[0], ""
    return parts[0], " ".join(parts[1:])


def placeholder_email(full_name: str) -> str:
    """Synthetic address for imported pros that arrive without an email."""
    first, last = split_name(full_name)
    local = ".".join(p for p in (first, last) if p).lower()
    local = re.sub(r'[^a-z0-9.]', '', local) or "pro"
    return f"{local}@placeholder.com"
