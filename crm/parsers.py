"""Spreadsheet parsing for bulk pro imports.

Supports CSV and Excel via pandas with proper error handling. Column
headers are normalized to snake_case and mapped onto pro fields.
"""
from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Any, BinaryIO

import pandas as pd

logger = logging.getLogger(__name__)

# Common spreadsheet headers -> pro field
COLUMN_ALIASES = {
    "name": "full_name",
    "agent_name": "full_name",
    "full_name": "full_name",
    "first_name": "first_name",
    "last_name": "last_name",
    "phone_number": "phone",
    "mobile": "phone",
    "cell": "phone",
    "phone": "phone",
    "email_address": "email",
    "email": "email",
    "city": "cities",
    "cities": "cities",
    "state": "states",
    "states": "states",
    "zip": "zip_codes",
    "zip_code": "zip_codes",
    "zip_codes": "zip_codes",
    "zipcodes": "zip_codes",
    "county": "counties",
    "counties": "counties",
    "neighborhoods": "primary_neighborhoods",
    "brokerage": "brokerage",
    "company": "company",
    "license_type": "license_type",
    "years_experience": "experience",
    "experience": "experience",
    "transactions": "transactions",
    "total_transactions": "transactions",
    "transactions_12mo": "transactions_12mo",
    "volume": "total_volume_12mo",
    "total_volume": "total_volume_12mo",
    "total_volume_12mo": "total_volume_12mo",
    "motivation": "motivation",
    "wants": "wants",
    "needs": "needs",
    "pro_type": "pro_type",
    "type": "pro_type",
    "nmls": "nmls_id",
    "nmls_id": "nmls_id",
    "notes": "notes",
    "source": "source",
}


class FileType(str, Enum):
    """Supported file types."""
    CSV = "csv"
    EXCEL = "excel"
    UNKNOWN = "unknown"


class ParseError(Exception):
    """Raised when a spreadsheet cannot be parsed."""
    pass


def detect_file_type(filename: str) -> FileType:
    """Detect file type from the filename extension."""
    filename_lower = filename.lower()
    if filename_lower.endswith(".csv"):
        return FileType.CSV
    if filename_lower.endswith((".xlsx", ".xls")):
        return FileType.EXCEL
    return FileType.UNKNOWN


def normalize_header(header: Any) -> str:
    text = re.sub(r"[^0-9a-z]+", "_", str(header).strip().lower())
    return text.strip("_")


def map_columns(records: list[dict[str, Any]], mapping: dict[str, str] | None = None) -> list[dict[str, Any]]:
    """Rename spreadsheet columns to pro fields; unmapped columns are dropped.

    Args:
        records: Rows keyed by raw header
        mapping: Explicit header -> field mapping, applied before the aliases
    """
    explicit = {normalize_header(k): v for k, v in (mapping or {}).items()}
    mapped_rows = []
    for record in records:
        row: dict[str, Any] = {}
        for header, value in record.items():
            key = normalize_header(header)
            target = explicit.get(key) or COLUMN_ALIASES.get(key)
            if target and target not in row:
                row[target] = value
        mapped_rows.append(row)
    return mapped_rows


def _to_records(df: pd.DataFrame) -> list[dict[str, Any]]:
    # Empty cells become None rather than NaN
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict("records")


def parse_csv(file_obj: BinaryIO) -> list[dict[str, Any]]:
    """Parse CSV file into structured records.

    Raises:
        ParseError: If CSV parsing fails
    """
    try:
        df = pd.read_csv(file_obj, encoding="utf-8", dtype=str)
    except Exception as e:
        logger.error(f"CSV parsing failed: {e}")
        raise ParseError(f"Failed to parse CSV: {e}") from e

    if df.empty:
        raise ParseError("CSV file is empty")

    logger.info(f"Parsed CSV with {len(df)} rows and {len(df.columns)} columns")
    return _to_records(df)


def parse_excel(file_obj: BinaryIO, sheet_name: str | int = 0) -> list[dict[str, Any]]:
    """Parse Excel file into structured records.

    Raises:
        ParseError: If Excel parsing fails
    """
    try:
        df = pd.read_excel(file_obj, sheet_name=sheet_name, engine="openpyxl", dtype=str)
    except Exception as e:
        logger.error(f"Excel parsing failed: {e}")
        raise ParseError(f"Failed to parse Excel: {e}") from e

    if df.empty:
        raise ParseError("Excel sheet is empty")

    logger.info(f"Parsed Excel with {len(df)} rows and {len(df.columns)} columns")
    return _to_records(df)


def parse_file(file_obj: BinaryIO, filename: str) -> list[dict[str, Any]]:
    """Parse an uploaded spreadsheet based on type.

    Raises:
        ParseError: If file type unsupported or parsing fails
    """
    file_type = detect_file_type(filename)

    if file_type == FileType.CSV:
        return parse_csv(file_obj)
    if file_type == FileType.EXCEL:
        return parse_excel(file_obj)
    raise ParseError(f"Unsupported file type: {filename}")
