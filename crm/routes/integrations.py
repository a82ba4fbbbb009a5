"""People-data enrichment and geocoding endpoints."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import require_admin
from ..config import settings
from ..db import get_session
from ..integrations.enrichment import run_enrichment
from ..integrations.geocoding import GeocodeRequest, GeocodeResult, geocode
from ..rate_limit import rate_limited
from ..schemas import EnrichmentRequest, EnrichmentResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["integrations"])


@router.post("/enrichment", response_model=EnrichmentResponse, dependencies=[Depends(require_admin)])
async def enrichment(request: EnrichmentRequest, session: AsyncSession = Depends(get_session)):
    """Search or enrich a person/company through People Data Labs."""
    result = await run_enrichment(
        session,
        action=request.action,
        kind=request.type,
        params=request.params,
        record_id=request.record_id,
    )
    return EnrichmentResponse(**result.__dict__)


@router.post(
    "/geocode",
    response_model=GeocodeResult,
    dependencies=[Depends(rate_limited(
        "geocode",
        settings.rate_limit.geocode_max,
        settings.rate_limit.geocode_window_minutes,
    ))],
)
async def geocode_address(request: GeocodeRequest) -> GeocodeResult:
    """Forward or reverse geocode through Google."""
    return await geocode(request)
