"""Rule engine for config-driven lead eligibility and bid scoring.

Hard rules filter pro/client (or pro/bid) pairs and stop at the first
failure, whose reason becomes the block reason. Soft rules add points by
category (geographic, performance, specialization, type_specific, bonus)
with an audit trace per rule.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from semantic.wants import WantsMatcher, get_wants_matcher

from .config import settings
from .geo import distance_between, territory_overlap

logger = logging.getLogger(__name__)

CATEGORIES = ("geographic", "performance", "specialization", "type_specific", "bonus")

PRO_TYPE_TO_CLIENT_TYPE = {
    "real_estate_agent": "real_estate",
    "mortgage_officer": "mortgage",
}


class RuleType(str, Enum):
    """Rule types."""
    # Hard rules (filters)
    PAID_LEAD_READY = "paid_lead_ready"
    TYPE_COMPATIBLE = "type_compatible"
    MIN_EXPERIENCE = "min_experience"
    MIN_TRANSACTIONS = "min_transactions"
    SPEND_LIMIT = "spend_limit"
    GEOGRAPHIC_OVERLAP = "geographic_overlap"

    # Soft rules (scoring)
    GEOGRAPHIC_TIER = "geographic_tier"
    TIER_BONUS = "tier_bonus"
    WANTS_PROVIDES = "wants_provides"
    PERFECT_WANTS_BONUS = "perfect_wants_bonus"


HARD_RULE_TYPES = frozenset({
    RuleType.PAID_LEAD_READY,
    RuleType.TYPE_COMPATIBLE,
    RuleType.MIN_EXPERIENCE,
    RuleType.MIN_TRANSACTIONS,
    RuleType.SPEND_LIMIT,
    RuleType.GEOGRAPHIC_OVERLAP,
})


class RuleStatus(str, Enum):
    """Rule evaluation status."""
    PASS = "PASS"
    FAIL = "FAIL"
    SKIP = "SKIP"


@dataclass
class RuleTrace:
    """Audit trace for a single rule evaluation."""
    rule_id: str
    name: str
    status: RuleStatus
    reason: str
    score_delta: float = 0.0
    category: str | None = None


@dataclass
class RuleConfig:
    """Configuration for a single rule."""
    id: str
    name: str
    type: RuleType
    params: dict[str, Any] = field(default_factory=dict)
    weight: float = 1.0


@dataclass
class LeadScore:
    """Soft-rule outcome for one pair."""
    score: int
    breakdown: dict[str, float]
    traces: list[RuleTrace]
    wants_matched: int = 0
    perfect_match: bool = False
    reason: str = "Basic match"


def default_rules() -> list[RuleConfig]:
    """Production rule set; thresholds mirror the business rules sheet."""
    return [
        RuleConfig("ready", "Paid lead readiness", RuleType.PAID_LEAD_READY, {"min_motivation": 5}),
        RuleConfig("type", "Pro/client type compatibility", RuleType.TYPE_COMPATIBLE),
        RuleConfig("min_exp", "Bid minimum experience", RuleType.MIN_EXPERIENCE),
        RuleConfig("min_tx", "Bid minimum transactions", RuleType.MIN_TRANSACTIONS),
        RuleConfig(
            "spend",
            "Monthly spend limit",
            RuleType.SPEND_LIMIT,
            {"estimated_cost": settings.matching.estimated_lead_cost},
        ),
        RuleConfig(
            "geo",
            "Territory overlap",
            RuleType.GEOGRAPHIC_OVERLAP,
            {"max_distance_miles": settings.matching.max_distance_miles},
        ),
        RuleConfig(
            "geo_tier",
            "Geographic fit",
            RuleType.GEOGRAPHIC_TIER,
            {
                "distance_bands": [[5, 40], [10, 35], [25, 30], [50, 20]],
                "zip": 40,
                "neighborhood": 35,
                "city_state": 30,
                "city": 20,
                "state": 10,
            },
        ),
        RuleConfig(
            "volume",
            "12-month production volume",
            RuleType.TIER_BONUS,
            {
                "field": "total_volume_12mo",
                "applies_to": "real_estate_agent",
                "category": "performance",
                "tiers": [[5_000_000, 15], [2_000_000, 12], [1_000_000, 9], [500_000, 6]],
            },
        ),
        RuleConfig(
            "transactions",
            "12-month transactions",
            RuleType.TIER_BONUS,
            {
                "field": "transactions_12mo",
                "applies_to": "real_estate_agent",
                "category": "performance",
                "tiers": [[30, 10], [20, 7], [10, 5]],
            },
        ),
        RuleConfig(
            "loan_volume",
            "Annual loan volume",
            RuleType.TIER_BONUS,
            {
                "field": "annual_loan_volume",
                "applies_to": "mortgage_officer",
                "category": "type_specific",
                "tiers": [[50_000_000, 15], [25_000_000, 12], [10_000_000, 9], [5_000_000, 6]],
            },
        ),
        RuleConfig(
            "close_rate",
            "On-time close rate",
            RuleType.TIER_BONUS,
            {
                "field": "on_time_close_rate",
                "applies_to": "mortgage_officer",
                "category": "type_specific",
                "tiers": [[95, 10], [90, 7], [80, 5]],
            },
        ),
        RuleConfig(
            "wants",
            "Wants vs provides",
            RuleType.WANTS_PROVIDES,
            {"points": {"1": 5, "2": 10, "3": 15}},
        ),
        RuleConfig(
            "perfect",
            "Perfect wants match",
            RuleType.PERFECT_WANTS_BONUS,
            {"required": 3, "bonus": 10},
        ),
        RuleConfig(
            "motivation",
            "Motivation",
            RuleType.TIER_BONUS,
            {"field": "motivation", "category": "bonus", "tiers": [[8, 10], [6, 5]]},
        ),
    ]


def match_reason(breakdown: dict[str, float], perfect_match: bool = False, motivation_bonus: float = 0.0) -> str:
    """Short human-readable summary of why a pair scored."""
    reasons = []
    geo = breakdown.get("geographic", 0)
    if geo >= 30:
        reasons.append(f"Strong geo match ({geo:g}pts)")
    elif geo > 0:
        reasons.append("Geo match")

    perf = breakdown.get("performance", 0) + breakdown.get("type_specific", 0)
    if perf >= 15:
        reasons.append("High performer")
    elif perf > 0:
        reasons.append("Performance")

    if perfect_match:
        reasons.append("Perfect wants match")
    elif breakdown.get("specialization", 0) > 0:
        reasons.append("Wants aligned")

    if motivation_bonus > 0:
        reasons.append("Motivation bonus")

    return ", ".join(reasons) if reasons else "Basic match"


class RuleEngine:
    """Config-driven rule engine for pro/client lead evaluation.

    Evaluates both hard rules (filters) and soft rules (scoring) with
    full audit trails. When a bid is given, its territory and minimums are
    used instead of the client's.
    """

    def __init__(self, rules: list[RuleConfig] | None = None, wants_matcher: WantsMatcher | None = None):
        """Initialize rule engine.

        Args:
            rules: List of RuleConfig objects; defaults to ``default_rules()``
            wants_matcher: Matcher for wants vs provides
        """
        self.rules = rules if rules is not None else default_rules()
        self.hard_rules = [r for r in self.rules if r.type in HARD_RULE_TYPES]
        self.soft_rules = [r for r in self.rules if r.type not in HARD_RULE_TYPES]
        self.wants_matcher = wants_matcher or get_wants_matcher()

        logger.debug(
            f"Initialized rule engine: {len(self.hard_rules)} hard, "
            f"{len(self.soft_rules)} soft rules"
        )

    def evaluate_hard_rules(
        self,
        pro: dict[str, Any],
        client: dict[str, Any],
        bid: dict[str, Any] | None = None,
        *,
        skip: set[RuleType] | frozenset[RuleType] = frozenset(),
    ) -> tuple[bool, list[RuleTrace]]:
        """Evaluate hard filtering rules.

        Args:
            pro: Pro attributes
            client: Client attributes
            bid: Optional bid attributes
            skip: Rule types not applied by this caller

        Returns:
            Tuple of (passed, rule_traces); the last trace is the failure when not passed
        """
        traces = []

        for rule in self.hard_rules:
            if rule.type in skip:
                continue
            trace = self._evaluate_rule(rule, pro, client, bid)
            traces.append(trace)

            if trace.status == RuleStatus.FAIL:
                return False, traces

        return True, traces

    def evaluate_soft_rules(
        self,
        pro: dict[str, Any],
        client: dict[str, Any],
        bid: dict[str, Any] | None = None,
        base_score: float = 0.0,
    ) -> tuple[float, list[RuleTrace]]:
        """Evaluate soft scoring rules.

        Returns:
            Tuple of (adjusted_score, rule_traces)
        """
        traces = []
        total_delta = 0.0

        for rule in self.soft_rules:
            trace = self._evaluate_rule(rule, pro, client, bid)
            traces.append(trace)

            if trace.status == RuleStatus.PASS:
                total_delta += trace.score_delta * rule.weight

        return base_score + total_delta, traces

    def score(
        self,
        pro: dict[str, Any],
        client: dict[str, Any],
        bid: dict[str, Any] | None = None,
    ) -> LeadScore:
        """Soft-rule score capped at 100 with a per-category breakdown."""
        raw, traces = self.evaluate_soft_rules(pro, client, bid)

        rule_weights = {r.id: r.weight for r in self.soft_rules}
        breakdown = {category: 0.0 for category in CATEGORIES}
        for trace in traces:
            if trace.status == RuleStatus.PASS and trace.category in breakdown:
                breakdown[trace.category] += trace.score_delta * rule_weights.get(trace.rule_id, 1.0)

        perfect_ids = {r.id for r in self.soft_rules if r.type == RuleType.PERFECT_WANTS_BONUS}
        motivation_ids = {
            r.id for r in self.soft_rules
            if r.type == RuleType.TIER_BONUS and r.params.get("field") == "motivation"
        }
        perfect = any(t.rule_id in perfect_ids and t.score_delta > 0 for t in traces)
        motivation_bonus = sum(t.score_delta for t in traces if t.rule_id in motivation_ids)

        wants = self.wants_matcher.match(pro.get("wants"), client.get("provides"))

        return LeadScore(
            score=int(min(100, round(raw))),
            breakdown=breakdown,
            traces=traces,
            wants_matched=wants.count,
            perfect_match=perfect,
            reason=match_reason(breakdown, perfect, motivation_bonus),
        )

    def _evaluate_rule(
        self,
        rule: RuleConfig,
        pro: dict[str, Any],
        client: dict[str, Any],
        bid: dict[str, Any] | None,
    ) -> RuleTrace:
        """Evaluate a single rule.

        Returns:
            RuleTrace with evaluation result
        """
        handlers = {
            RuleType.PAID_LEAD_READY: self._eval_paid_lead_ready,
            RuleType.TYPE_COMPATIBLE: self._eval_type_compatible,
            RuleType.MIN_EXPERIENCE: self._eval_min_experience,
            RuleType.MIN_TRANSACTIONS: self._eval_min_transactions,
            RuleType.SPEND_LIMIT: self._eval_spend_limit,
            RuleType.GEOGRAPHIC_OVERLAP: self._eval_geographic_overlap,
            RuleType.GEOGRAPHIC_TIER: self._eval_geographic_tier,
            RuleType.TIER_BONUS: self._eval_tier_bonus,
            RuleType.WANTS_PROVIDES: self._eval_wants_provides,
            RuleType.PERFECT_WANTS_BONUS: self._eval_perfect_wants_bonus,
        }
        handler = handlers.get(rule.type)
        if handler is None:
            logger.warning(f"Unknown rule type: {rule.type}")
            return RuleTrace(
                rule_id=rule.id,
                name=rule.name,
                status=RuleStatus.SKIP,
                reason=f"Unknown rule type: {rule.type}",
            )

        try:
            return handler(rule, pro, client, bid)
        except (TypeError, ValueError, KeyError) as e:
            logger.error(f"Rule evaluation failed for {rule.id}: {e}")
            return RuleTrace(
                rule_id=rule.id,
                name=rule.name,
                status=RuleStatus.SKIP,
                reason=f"Evaluation error: {e}",
            )

    @staticmethod
    def _trace(rule: RuleConfig, status: RuleStatus, reason: str, delta: float = 0.0, category: str | None = None) -> RuleTrace:
        return RuleTrace(
            rule_id=rule.id,
            name=rule.name,
            status=status,
            reason=reason,
            score_delta=delta,
            category=category,
        )

    def _eval_paid_lead_ready(self, rule, pro, client, bid) -> RuleTrace:
        """Motivated pros, or pros who told us both what they want and need."""
        min_motivation = rule.params.get("min_motivation", 5)
        motivation = pro.get("motivation") or 0
        has_wants = bool(pro.get("wants"))
        needs = pro.get("needs")
        has_needs = bool(needs.strip()) if isinstance(needs, str) else bool(needs)

        if motivation > min_motivation or (has_wants and has_needs):
            return self._trace(rule, RuleStatus.PASS, f"Motivation {motivation}, wants={has_wants}, needs={has_needs}")
        return self._trace(
            rule,
            RuleStatus.FAIL,
            f"Must have motivation > {min_motivation} OR both wants AND needs",
        )

    def _eval_type_compatible(self, rule, pro, client, bid) -> RuleTrace:
        pro_type = pro.get("pro_type") or "real_estate_agent"
        if bid is not None:
            required = bid.get("pro_type") or "real_estate"
        else:
            required = client.get("client_type") or "real_estate"

        if PRO_TYPE_TO_CLIENT_TYPE.get(pro_type) == required:
            return self._trace(rule, RuleStatus.PASS, f"{pro_type} fits {required}")
        return self._trace(rule, RuleStatus.FAIL, f"Type mismatch: {pro_type} vs {required}")

    def _eval_minimum(self, rule, pro, bid, bid_field: str, pro_field: str, label: str) -> RuleTrace:
        minimum = (bid or {}).get(bid_field)
        if not minimum:
            return self._trace(rule, RuleStatus.SKIP, f"No minimum {label}")

        actual = pro.get(pro_field)
        # Unreported values are not held against the pro
        if actual is None:
            return self._trace(rule, RuleStatus.PASS, f"{label.capitalize()} not reported")
        if actual < minimum:
            return self._trace(rule, RuleStatus.FAIL, f"{label.capitalize()} {actual} < {minimum} required")
        return self._trace(rule, RuleStatus.PASS, f"{label.capitalize()} {actual} >= {minimum}")

    def _eval_min_experience(self, rule, pro, client, bid) -> RuleTrace:
        return self._eval_minimum(rule, pro, bid, "min_experience", "experience", "experience")

    def _eval_min_transactions(self, rule, pro, client, bid) -> RuleTrace:
        return self._eval_minimum(rule, pro, bid, "min_transactions", "transactions_12mo", "transactions")

    def _eval_spend_limit(self, rule, pro, client, bid) -> RuleTrace:
        limit = client.get("monthly_spend_limit")
        if not limit:
            return self._trace(rule, RuleStatus.SKIP, "No monthly spend limit")

        cost = rule.params.get("estimated_cost", 300)
        spent = client.get("current_month_spend") or 0
        if spent + cost > limit:
            return self._trace(rule, RuleStatus.FAIL, f"Monthly spend limit reached ({spent:g} + {cost:g} > {limit:g})")
        return self._trace(rule, RuleStatus.PASS, f"Within spend limit ({spent:g}/{limit:g})")

    def _eval_geographic_overlap(self, rule, pro, client, bid) -> RuleTrace:
        territory = bid if bid is not None else client
        max_distance = rule.params.get("max_distance_miles", 50)

        distance = distance_between(pro, territory)
        if distance is not None and distance <= max_distance:
            return self._trace(rule, RuleStatus.PASS, f"{distance:.1f} miles apart")

        overlap = territory_overlap(pro, territory)
        if overlap.any or overlap.neighborhoods:
            return self._trace(rule, RuleStatus.PASS, "Shared zip, city or state")
        return self._trace(rule, RuleStatus.FAIL, "No geographic overlap")

    def _eval_geographic_tier(self, rule, pro, client, bid) -> RuleTrace:
        """Best of the distance band and the territory tier (zip > neighborhood > city+state > city > state)."""
        territory = bid if bid is not None else client
        params = rule.params

        distance_points, distance_reason = 0, ""
        distance = distance_between(pro, territory)
        if distance is not None:
            for max_miles, points in params.get("distance_bands", []):
                if distance <= max_miles:
                    distance_points, distance_reason = points, f"{distance:.1f} miles"
                    break

        overlap = territory_overlap(pro, territory)
        if overlap.zip_codes:
            tier_points, tier_reason = params.get("zip", 40), f"Zip overlap ({len(overlap.zip_codes)})"
        elif overlap.neighborhoods:
            tier_points, tier_reason = params.get("neighborhood", 35), "Neighborhood in territory"
        elif overlap.cities and overlap.states:
            tier_points, tier_reason = params.get("city_state", 30), "City and state match"
        elif overlap.cities:
            tier_points, tier_reason = params.get("city", 20), "City match"
        elif overlap.states:
            tier_points, tier_reason = params.get("state", 10), "State match"
        else:
            tier_points, tier_reason = 0, "No territory match"

        if distance_points > tier_points:
            points, reason = distance_points, distance_reason
        else:
            points, reason = tier_points, tier_reason
        return self._trace(rule, RuleStatus.PASS, reason, points, "geographic")

    def _eval_tier_bonus(self, rule, pro, client, bid) -> RuleTrace:
        """Points from the first tier whose threshold the pro's value reaches."""
        params = rule.params
        category = params.get("category", "bonus")
        applies_to = params.get("applies_to")
        if applies_to and (pro.get("pro_type") or "real_estate_agent") != applies_to:
            return self._trace(rule, RuleStatus.SKIP, f"Only for {applies_to}", category=category)

        value = pro.get(params["field"])
        if value is None:
            return self._trace(rule, RuleStatus.PASS, f"No {params['field']}", 0.0, category)

        for threshold, points in params.get("tiers", []):
            if value >= threshold:
                return self._trace(rule, RuleStatus.PASS, f"{params['field']} {value:g} >= {threshold:g}", points, category)
        return self._trace(rule, RuleStatus.PASS, f"{params['field']} {value:g} below tiers", 0.0, category)

    def _eval_wants_provides(self, rule, pro, client, bid) -> RuleTrace:
        result = self.wants_matcher.match(pro.get("wants"), client.get("provides"))
        points_by_count = rule.params.get("points", {})
        capped = min(result.count, max((int(k) for k in points_by_count), default=0))
        points = points_by_count.get(str(capped), 0)

        if not result.matched:
            return self._trace(rule, RuleStatus.PASS, "No wants matched", 0.0, "specialization")
        return self._trace(
            rule,
            RuleStatus.PASS,
            f"{result.count}/{result.total_wants} wants matched: {', '.join(result.matched)}",
            points,
            "specialization",
        )

    def _eval_perfect_wants_bonus(self, rule, pro, client, bid) -> RuleTrace:
        required = rule.params.get("required", 3)
        result = self.wants_matcher.match(pro.get("wants"), client.get("provides"))
        if result.count >= required:
            return self._trace(rule, RuleStatus.PASS, f"All {required} wants matched", rule.params.get("bonus", 10), "bonus")
        return self._trace(rule, RuleStatus.PASS, f"{result.count}/{required} wants matched", 0.0, "bonus")
