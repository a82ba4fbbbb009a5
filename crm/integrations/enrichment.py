"""People Data Labs person/company search and enrichment.

Enrich results for a given record id are written back onto the pro or
client. A 404 from PDL means "no data" and is returned as an empty result.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from .. import models
from ..config import settings
from .base import IntegrationConfigError, IntegrationError, error_detail, http_client, transient_retry

logger = logging.getLogger(__name__)

PERSON_TERMS = {
    "email": "emails",
    "phone": "phone_numbers",
    "first_name": "first_name",
    "last_name": "last_name",
    "company": "job_company_name",
    "job_title": "job_title",
    "location": "location_name",
}

COMPANY_TERMS = {
    "name": "name",
    "website": "website",
    "location": "location.name",
}

MAX_SKILLS = 10


class EnrichmentAction(str, Enum):
    SEARCH = "search"
    ENRICH = "enrich"


class EnrichmentType(str, Enum):
    PERSON = "person"
    COMPANY = "company"


class EnrichmentError(IntegrationError):
    """Raised when PDL returns an error other than 'no data'."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message, provider="peopledatalabs", status_code=status_code)


@dataclass
class EnrichmentResult:
    status: int
    data: Any
    message: str | None = None
    record_updated: bool = False


def build_search_query(kind: EnrichmentType, params: Mapping[str, Any]) -> dict[str, Any]:
    """Elasticsearch-style bool/must term query from the known search params."""
    terms = PERSON_TERMS if kind == EnrichmentType.PERSON else COMPANY_TERMS
    must = [{"term": {pdl_field: params[key]}} for key, pdl_field in terms.items() if params.get(key)]
    return {"bool": {"must": must}}


def build_request(
    action: EnrichmentAction,
    kind: EnrichmentType,
    params: Mapping[str, Any],
) -> tuple[str, dict[str, Any]]:
    """Endpoint path and body for an action/type pair."""
    path = f"{kind.value}/{action.value}"
    if action == EnrichmentAction.SEARCH:
        return path, {
            "query": build_search_query(kind, params),
            "size": params.get("limit") or settings.enrichment.default_limit,
        }
    return path, {k: v for k, v in params.items() if v is not None}


def apply_person_data(pro: models.Pro, data: Mapping[str, Any], now_iso: str) -> None:
    """Map a PDL person record onto a pro, appending the raw payload to notes."""
    if data.get("job_title"):
        pro.job_title = data["job_title"]
    if data.get("job_company_name"):
        pro.company = data["job_company_name"]
    if data.get("location_name"):
        parts = [p.strip() for p in data["location_name"].split(",")]
        pro.cities = [parts[0]]
        if len(parts) > 1:
            pro.states = [parts[-1]]
    if data.get("experience"):
        pro.experience = len(data["experience"])
    if data.get("skills"):
        pro.skills = list(data["skills"])[:MAX_SKILLS]

    existing = pro.notes or ""
    pro.notes = (
        f"{existing}\n\n--- PDL Enrichment Data ({now_iso}) ---\n"
        f"{json.dumps(data, indent=2, default=str)}"
    ).lstrip()


def apply_company_data(client: models.Client, data: Mapping[str, Any], now_iso: str) -> None:
    """Map a PDL company record onto a client; the raw payload goes to preferences."""
    if data.get("name"):
        client.company_name = data["name"]
    location = data.get("location") or {}
    if location.get("locality"):
        client.cities = [location["locality"]]
    if location.get("region"):
        client.states = [location["region"]]
    if data.get("employee_count"):
        client.employee_count = int(data["employee_count"])

    # Reassign so the JSON column is flagged dirty
    client.preferences = {
        **(client.preferences or {}),
        "pdl_enrichment": dict(data),
        "pdl_enrichment_date": now_iso,
    }


@transient_retry
async def _post(http: httpx.AsyncClient, url: str, body: dict[str, Any], api_key: str) -> httpx.Response:
    return await http.post(url, json=body, headers={"X-Api-Key": api_key})


async def run_enrichment(
    session: AsyncSession,
    *,
    action: EnrichmentAction | str,
    kind: EnrichmentType | str,
    params: Mapping[str, Any],
    record_id: int | None = None,
    client: httpx.AsyncClient | None = None,
) -> EnrichmentResult:
    """Call PDL and, for enrich calls with a record id, update that record.

    Raises:
        IntegrationConfigError: PDL key not configured
        EnrichmentError: PDL returned an error other than 404
    """
    api_key = settings.enrichment.pdl_api_key
    if not api_key:
        raise IntegrationConfigError("ENRICHMENT_PDL_API_KEY not configured", provider="peopledatalabs")

    action, kind = EnrichmentAction(action), EnrichmentType(kind)
    path, body = build_request(action, kind, params)
    url = f"{settings.enrichment.base_url}/{path}"
    logger.info(f"PDL {action.value} {kind.value} (record={record_id})")

    try:
        async with http_client(client) as http:
            response = await _post(http, url, body, api_key)
    except httpx.HTTPError as e:
        raise EnrichmentError(f"PDL request failed: {e}", status_code=502) from e

    if response.status_code == 404:
        logger.info("PDL has no data for this record")
        return EnrichmentResult(status=404, data=None, message="No data found")
    if not response.is_success:
        raise EnrichmentError(f"PDL API error: {error_detail(response)}", status_code=response.status_code)

    payload = response.json()
    result = EnrichmentResult(status=payload.get("status", response.status_code), data=payload.get("data"))

    if record_id is not None and action == EnrichmentAction.ENRICH and result.status == 200 and result.data:
        now_iso = models.utcnow().isoformat()
        if kind == EnrichmentType.PERSON:
            pro = await session.get(models.Pro, record_id)
            if pro is not None:
                apply_person_data(pro, result.data, now_iso)
                result.record_updated = True
        else:
            client_row = await session.get(models.Client, record_id)
            if client_row is not None:
                apply_company_data(client_row, result.data, now_iso)
                result.record_updated = True

        if result.record_updated:
            await session.commit()
            logger.info(f"{kind.value} record {record_id} updated with PDL data")
        else:
            logger.warning(f"{kind.value} record {record_id} not found, enrichment not stored")

    return result
