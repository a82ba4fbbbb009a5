"""Matching pipeline: pro ↔ client scoring, bid previews and auto-matching.

Three entry points:
- ``score_pro_client``: field-definition score for one pair (match scorer).
- ``preview_matches``: dry run of match-ready pros against active bids.
- ``auto_match``: create and charge lead-purchase matches for eligible clients.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from semantic import TextComparer

from .. import models
from ..config import settings
from ..rules import RuleEngine, RuleStatus, RuleType
from ..scoring import FieldSpec, MatchBreakdown, MatchScorer
from .billing import BillingError, auto_charge_match

logger = logging.getLogger(__name__)

MATCH_READY_STATUSES = ("active", "verified", "qualified")

# Hard rules that need a client; skipped when checking pro readiness alone
HARD_TYPES_AFTER_READINESS = frozenset({
    RuleType.TYPE_COMPATIBLE,
    RuleType.MIN_EXPERIENCE,
    RuleType.MIN_TRANSACTIONS,
    RuleType.SPEND_LIMIT,
    RuleType.GEOGRAPHIC_OVERLAP,
})


class MatchingError(Exception):
    """Raised when matching pipeline fails."""
    pass


class MatchingNotFoundError(MatchingError):
    """Raised when a pro or client referenced by a request does not exist."""
    pass


@dataclass
class PairScore:
    pro_id: int
    client_id: int
    breakdown: MatchBreakdown
    computed_at: datetime


@dataclass
class MatchPreview:
    """Would-be match of a pro against one bid."""
    pro_id: int
    pro_name: str
    client_id: int
    client_name: str
    bid_id: int
    match_score: int
    score_breakdown: dict[str, float]
    match_reason: str
    would_create: bool
    block_reason: str | None = None
    is_perfect_match: bool = False
    wants_matched: int = 0


@dataclass
class PreviewReport:
    previews: list[MatchPreview]
    summary: dict[str, int]


@dataclass
class AutoMatchReport:
    stats: dict[str, int]
    match_ids: list[int] = field(default_factory=list)
    charge_failures: list[int] = field(default_factory=list)


async def load_field_specs(session: AsyncSession) -> list[FieldSpec]:
    """Active field definitions with a positive matching weight, heaviest first."""
    result = await session.execute(
        select(models.FieldDefinition)
        .where(
            models.FieldDefinition.active.is_(True),
            models.FieldDefinition.matching_weight > 0,
        )
        .order_by(models.FieldDefinition.matching_weight.desc())
    )
    return [FieldSpec.from_model(d) for d in result.scalars().all()]


async def score_pro_client(
    session: AsyncSession,
    pro_id: int,
    client_id: int,
    *,
    use_ai: bool = False,
    comparer: TextComparer | None = None,
) -> PairScore:
    """Score one pro against one client over the weighted field definitions.

    Args:
        session: Database session
        pro_id: Pro to score
        client_id: Client to score against
        use_ai: Use the semantic comparer for AI-enabled text fields
        comparer: Semantic comparer (required for AI scoring)

    Returns:
        PairScore with the full breakdown

    Raises:
        MatchingNotFoundError: Pro or client missing
        MatchingError: If scoring fails
    """
    pro = await session.get(models.Pro, pro_id)
    if pro is None:
        raise MatchingNotFoundError(f"Pro {pro_id} not found")
    client = await session.get(models.Client, client_id)
    if client is None:
        raise MatchingNotFoundError(f"Client {client_id} not found")

    try:
        specs = await load_field_specs(session)
        logger.info(f"Scoring pro {pro_id} vs client {client_id} over {len(specs)} weighted fields (ai={use_ai})")

        scorer = MatchScorer(specs, comparer=comparer)
        breakdown = await scorer.score(pro.to_dict(), client.to_dict(), use_ai=use_ai)

        logger.info(f"Match calculated: {breakdown.total_score}/100")
        return PairScore(
            pro_id=pro_id,
            client_id=client_id,
            breakdown=breakdown,
            computed_at=models.utcnow(),
        )
    except Exception as e:
        logger.error(f"Scoring failed for pro {pro_id} / client {client_id}: {e}", exc_info=True)
        raise MatchingError(f"Scoring failed: {e}") from e


async def _match_ready_pros(session: AsyncSession) -> list[models.Pro]:
    result = await session.execute(
        select(models.Pro)
        .where(
            models.Pro.pipeline_stage == "match_ready",
            models.Pro.status.in_(MATCH_READY_STATUSES),
        )
        .order_by(models.Pro.id)
    )
    return list(result.scalars().all())


async def _existing_pairs(session: AsyncSession) -> set[tuple[int, int]]:
    result = await session.execute(select(models.Match.pro_id, models.Match.client_id))
    return {(row[0], row[1]) for row in result.all()}


def _failed_reason(traces) -> str:
    return traces[-1].reason if traces and traces[-1].status == RuleStatus.FAIL else "Blocked"


async def preview_matches(
    session: AsyncSession,
    client_id: int | None = None,
    engine: RuleEngine | None = None,
) -> PreviewReport:
    """Dry-run match-ready pros against the active bids of eligible clients.

    Eligible clients are active, have credits and a package. Nothing is
    written; each pro/bid pair gets a preview with its score and either
    ``would_create`` or the reason it is blocked.

    Raises:
        MatchingError: If the preview fails
    """
    engine = engine or RuleEngine()
    min_score = settings.matching.min_score

    try:
        pros = await _match_ready_pros(session)

        client_query = select(models.Client).where(
            models.Client.active.is_(True),
            models.Client.credits_balance > 0,
            models.Client.current_package_id.is_not(None),
        )
        if client_id is not None:
            client_query = client_query.where(models.Client.id == client_id)
        clients = {c.id: c for c in (await session.execute(client_query)).scalars().all()}

        bids: list[models.Bid] = []
        if clients:
            bids = list((await session.execute(
                select(models.Bid)
                .where(models.Bid.active.is_(True), models.Bid.client_id.in_(list(clients)))
                .order_by(models.Bid.id)
            )).scalars().all())

        existing = await _existing_pairs(session)
        logger.info(f"Previewing {len(pros)} pros against {len(bids)} bids from {len(clients)} clients")

        previews: list[MatchPreview] = []
        for pro in pros:
            pro_data = pro.to_dict()
            for bid in bids:
                client = clients[bid.client_id]
                client_data, bid_data = client.to_dict(), bid.to_dict()

                passed, traces = engine.evaluate_hard_rules(pro_data, client_data, bid_data)
                lead = engine.score(pro_data, client_data, bid_data)

                block_reason = None
                if not passed:
                    block_reason = _failed_reason(traces)
                elif (pro.id, client.id) in existing:
                    block_reason = "Match already exists"
                elif lead.score < min_score:
                    block_reason = f"Score too low ({lead.score} < {min_score})"

                previews.append(MatchPreview(
                    pro_id=pro.id,
                    pro_name=pro.full_name,
                    client_id=client.id,
                    client_name=client.company_name,
                    bid_id=bid.id,
                    match_score=lead.score if passed else 0,
                    score_breakdown=lead.breakdown,
                    match_reason=lead.reason,
                    would_create=block_reason is None,
                    block_reason=block_reason,
                    is_perfect_match=lead.perfect_match,
                    wants_matched=lead.wants_matched,
                ))

        previews.sort(key=lambda p: p.match_score, reverse=True)
        would_create = sum(1 for p in previews if p.would_create)
        summary = {
            "total_pros": len(pros),
            "eligible_clients": len(clients),
            "potential_matches": len(previews),
            "would_create": would_create,
            "blocked": len(previews) - would_create,
        }
        logger.info(f"Preview summary: {summary}")
        return PreviewReport(previews=previews, summary=summary)

    except Exception as e:
        logger.error(f"Match preview failed: {e}", exc_info=True)
        raise MatchingError(f"Match preview failed: {e}") from e


def _stat_for_failure(rule_id: str, engine: RuleEngine) -> str:
    rule_type = next((r.type for r in engine.hard_rules if r.id == rule_id), None)
    return {
        RuleType.TYPE_COMPATIBLE: "type_mismatches",
        RuleType.SPEND_LIMIT: "spend_limit_reached",
        RuleType.GEOGRAPHIC_OVERLAP: "no_overlap",
    }.get(rule_type, "criteria_failed")


async def auto_match(
    session: AsyncSession,
    *,
    engine: RuleEngine | None = None,
    charge: bool = True,
) -> AutoMatchReport:
    """Create lead-purchase matches for match-ready pros and charge them.

    Pros that are not lead-ready are skipped entirely. Each new match is
    auto-charged; a failed charge is logged and does not stop the run.
    Matched pros move to the ``matched`` pipeline stage.

    Raises:
        MatchingError: If match creation fails (the transaction is rolled back)
    """
    engine = engine or RuleEngine()
    stats = {
        "pros_processed": 0,
        "clients_checked": 0,
        "type_mismatches": 0,
        "no_overlap": 0,
        "criteria_failed": 0,
        "spend_limit_reached": 0,
        "matches_created": 0,
    }
    report = AutoMatchReport(stats=stats)

    try:
        pros = await _match_ready_pros(session)
        clients = list((await session.execute(
            select(models.Client)
            .where(models.Client.active.is_(True), models.Client.credits_balance > 0)
            .order_by(models.Client.id)
        )).scalars().all())
        existing = await _existing_pairs(session)
        logger.info(f"Auto-matching {len(pros)} pros against {len(clients)} clients")

        matched_pro_ids: set[int] = set()
        new_matches: list[models.Match] = []

        for pro in pros:
            pro_data = pro.to_dict()
            ready, _ = engine.evaluate_hard_rules(
                pro_data,
                {},
                skip=HARD_TYPES_AFTER_READINESS,
            )
            if not ready:
                logger.debug(f"Pro {pro.id} not lead-ready, skipping")
                stats["criteria_failed"] += 1
                continue
            stats["pros_processed"] += 1

            for client in clients:
                stats["clients_checked"] += 1
                if (pro.id, client.id) in existing:
                    continue

                client_data = client.to_dict()
                passed, traces = engine.evaluate_hard_rules(
                    pro_data,
                    client_data,
                    skip=frozenset({RuleType.PAID_LEAD_READY}),
                )
                if not passed:
                    stats[_stat_for_failure(traces[-1].rule_id, engine)] += 1
                    continue

                lead = engine.score(pro_data, client_data)
                match = models.Match(
                    pro_id=pro.id,
                    client_id=client.id,
                    match_score=lead.score,
                    match_type="lead_purchase",
                    status="pending",
                    score_breakdown={**lead.breakdown, "reason": lead.reason},
                )
                session.add(match)
                new_matches.append(match)
                existing.add((pro.id, client.id))
                matched_pro_ids.add(pro.id)

        for pro in pros:
            if pro.id in matched_pro_ids:
                pro.pipeline_stage = "matched"

        await session.commit()
        stats["matches_created"] = len(new_matches)
        report.match_ids = [m.id for m in new_matches]
        logger.info(f"Created {len(new_matches)} matches")

    except Exception as e:
        logger.error(f"Auto-match failed: {e}", exc_info=True)
        await session.rollback()
        raise MatchingError(f"Auto-match failed: {e}") from e

    if charge:
        for match_id in report.match_ids:
            try:
                result = await auto_charge_match(session, match_id)
                if not result.success:
                    report.charge_failures.append(match_id)
            except BillingError as e:
                logger.error(f"Auto-charge failed for match {match_id}: {e}")
                report.charge_failures.append(match_id)

    logger.info(f"Auto-match stats: {stats}")
    return report
