"""Matching endpoints: pair scoring, previews, auto-match and match billing."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from semantic import TextComparer, get_comparer

from .. import models
from ..auth import require_admin
from ..config import settings
from ..db import get_session
from ..pipelines.billing import auto_charge_match, handle_match_created
from ..pipelines.matching import auto_match, preview_matches, score_pro_client
from ..rate_limit import rate_limited
from ..schemas import (
    AutoMatchResponse,
    ChargeResponse,
    FieldBreakdownDTO,
    MatchPreviewDTO,
    MatchRead,
    PreviewRequest,
    PreviewResponse,
    ScoreRequest,
    ScoreResponse,
    TriggerResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/matches", tags=["matching"], dependencies=[Depends(require_admin)])


def comparer_dependency() -> TextComparer | None:
    """Semantic comparer for AI-enabled fields; overridable in tests."""
    return get_comparer()


@router.post("/score", response_model=ScoreResponse)
async def score_pair(
    request: ScoreRequest,
    session: AsyncSession = Depends(get_session),
    comparer: TextComparer | None = Depends(comparer_dependency),
) -> ScoreResponse:
    """Score one pro against one client over the weighted field definitions."""
    logger.info(f"Scoring pro {request.pro_id} vs client {request.client_id}")
    pair = await score_pro_client(
        session,
        request.pro_id,
        request.client_id,
        use_ai=request.use_ai,
        comparer=comparer,
    )
    data = pair.breakdown.to_dict()
    return ScoreResponse(
        pro_id=pair.pro_id,
        client_id=pair.client_id,
        total_score=data["total_score"],
        field_scores={k: FieldBreakdownDTO(**v) for k, v in data["field_scores"].items()},
        geographic_score=data["geographic_score"],
        performance_score=data["performance_score"],
        ai_semantic_score=data["ai_semantic_score"],
        computed_at=pair.computed_at.isoformat(),
    )


@router.post("/preview", response_model=PreviewResponse)
async def preview(
    request: PreviewRequest = PreviewRequest(),
    session: AsyncSession = Depends(get_session),
) -> PreviewResponse:
    """Dry-run the bid matcher without writing anything."""
    report = await preview_matches(session, client_id=request.client_id)
    return PreviewResponse(
        previews=[MatchPreviewDTO(**p.__dict__) for p in report.previews],
        summary=report.summary,
    )


@router.post(
    "/auto",
    response_model=AutoMatchResponse,
    dependencies=[Depends(rate_limited(
        "auto-match",
        settings.rate_limit.auto_match_max,
        settings.rate_limit.auto_match_window_minutes,
    ))],
)
async def run_auto_match(session: AsyncSession = Depends(get_session)) -> AutoMatchResponse:
    """Create and auto-charge lead-purchase matches for match-ready pros."""
    report = await auto_match(session)
    created = report.stats["matches_created"]
    return AutoMatchResponse(
        success=True,
        stats=report.stats,
        match_ids=report.match_ids,
        charge_failures=report.charge_failures,
        message=f"Created {created} matches",
    )


@router.get("", response_model=list[MatchRead])
async def list_matches(
    client_id: int | None = None,
    pro_id: int | None = None,
    match_status: str | None = Query(default=None, alias="status"),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    """List matches, best first."""
    query = select(models.Match)
    if client_id is not None:
        query = query.where(models.Match.client_id == client_id)
    if pro_id is not None:
        query = query.where(models.Match.pro_id == pro_id)
    if match_status is not None:
        query = query.where(models.Match.status == match_status)
    query = query.order_by(models.Match.match_score.desc(), models.Match.id).limit(limit).offset(offset)
    result = await session.execute(query)
    return result.scalars().all()


@router.get("/{match_id}", response_model=MatchRead)
async def get_match(match_id: int, session: AsyncSession = Depends(get_session)):
    match = await session.get(models.Match, match_id)
    if match is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Match {match_id} not found")
    return match


@router.post("/{match_id}/charge", response_model=ChargeResponse)
async def charge_match(match_id: int, session: AsyncSession = Depends(get_session)) -> ChargeResponse:
    """Charge a match against the client's credits (idempotent)."""
    result = await auto_charge_match(session, match_id)
    return ChargeResponse(**result.__dict__)


@router.post("/{match_id}/created", response_model=TriggerResponse)
async def match_created(match_id: int, session: AsyncSession = Depends(get_session)) -> TriggerResponse:
    """Hook for newly inserted matches: charge when the client opted in."""
    result = await handle_match_created(session, match_id)
    return TriggerResponse(
        charged=result.charged,
        skipped=result.skipped,
        reason=result.reason,
        charge=ChargeResponse(**result.charge.__dict__) if result.charge else None,
    )
