"""Field-definition driven match scorer.

Scores a pro against a client over the admin-managed field definitions.
Each field yields a sub-score in [0, 100] chosen by its type, weighted by
``matching_weight``; the total is the weighted mean rescaled to 0-100.
Geographic and performance fields also accumulate into subtotals so the UI
can explain a score.
"""
from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Mapping, Sequence

from rapidfuzz import fuzz

from semantic import SemanticComparisonError, TextComparer

from .config import settings
from .pipelines.normalization import is_missing, normalize_text, normalized_set

logger = logging.getLogger(__name__)

GEOGRAPHIC_FIELDS = frozenset({"cities", "states", "zip_codes", "counties", "primary_neighborhoods"})
PERFORMANCE_FIELDS = frozenset({
    "experience",
    "transactions",
    "total_volume_12mo",
    "transactions_12mo",
    "annual_loan_volume",
    "qualification_score",
})

# (max percent difference, score); first band that fits wins
RANGE_BANDS: tuple[tuple[float, int], ...] = ((10, 90), (25, 70), (50, 50), (75, 30), (100, 10))

CONTAINMENT_WEIGHT = 70


class MatchType(str, Enum):
    """How a field sub-score was produced."""
    EXACT = "exact"
    OVERLAP = "overlap"
    RANGE = "range"
    SEMANTIC = "semantic"
    NONE = "none"


@dataclass
class FieldSpec:
    """The parts of a field definition the scorer needs."""
    field_name: str
    field_type: str
    matching_weight: float
    use_ai_matching: bool = False

    @classmethod
    def from_model(cls, definition: Any) -> FieldSpec:
        return cls(
            field_name=definition.field_name,
            field_type=definition.field_type,
            matching_weight=float(definition.matching_weight or 0),
            use_ai_matching=bool(definition.use_ai_matching),
        )


@dataclass
class FieldScore:
    """Unweighted sub-score for one field."""
    score: float
    match_type: MatchType
    details: str

    def __post_init__(self) -> None:
        self.score = max(0.0, min(100.0, float(self.score)))


@dataclass
class FieldBreakdown:
    field_name: str
    score: float  # weighted
    max_score: float  # the field's weight
    match_type: MatchType
    details: str


@dataclass
class MatchBreakdown:
    """Full result of scoring one pro/client pair."""
    total_score: int
    field_scores: dict[str, FieldBreakdown] = field(default_factory=dict)
    geographic_score: float = 0.0
    performance_score: float = 0.0
    ai_semantic_score: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for entry in data["field_scores"].values():
            entry["match_type"] = MatchType(entry["match_type"]).value
        return data


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, (list, tuple, set)):
        return list(value)
    if isinstance(value, str):
        return [v for v in value.split(",") if v.strip()]
    return []


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def _as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "y", "1"}:
            return True
        if lowered in {"false", "no", "n", "0"}:
            return False
        return None
    if isinstance(value, (int, float)):
        return bool(value)
    return None


def score_array_fields(value1: Any, value2: Any) -> FieldScore:
    """Jaccard overlap of two lists, case and whitespace insensitive."""
    set1 = normalized_set(_as_list(value1))
    set2 = normalized_set(_as_list(value2))

    if not set1 or not set2:
        return FieldScore(0, MatchType.OVERLAP, "Empty array(s)")

    intersection = set1 & set2
    union = set1 | set2
    score = round_half_up(len(intersection) / len(union) * 100)
    return FieldScore(score, MatchType.OVERLAP, f"{len(intersection)}/{len(union)} items match")


def score_numeric_fields(value1: Any, value2: Any) -> FieldScore:
    """Band the percent difference of two numbers relative to their mean."""
    num1, num2 = _as_number(value1), _as_number(value2)
    if num1 is None or num2 is None:
        return FieldScore(0, MatchType.RANGE, "Invalid number(s)")

    if num1 == num2:
        return FieldScore(100, MatchType.EXACT, "Exact match")

    avg = (num1 + num2) / 2
    percent_diff = abs(num1 - num2) / abs(avg) * 100 if avg != 0 else 100.0

    for limit, band_score in RANGE_BANDS:
        if percent_diff < limit:
            return FieldScore(band_score, MatchType.RANGE, f"{percent_diff:.1f}% difference")
    return FieldScore(0, MatchType.RANGE, f"{percent_diff:.1f}% difference")


def score_boolean_fields(value1: Any, value2: Any) -> FieldScore:
    b1, b2 = _as_bool(value1), _as_bool(value2)
    if b1 is not None and b1 == b2:
        return FieldScore(100, MatchType.EXACT, "Match")
    return FieldScore(0, MatchType.EXACT, "No match")


def score_select_fields(value1: Any, value2: Any) -> FieldScore:
    if normalize_text(str(value1)) == normalize_text(str(value2)):
        return FieldScore(100, MatchType.EXACT, "Exact match")
    return FieldScore(0, MatchType.EXACT, "No match")


def local_text_similarity(text1: str, text2: str, fuzzy_threshold: int | None = None) -> FieldScore:
    """Similarity without the AI service: containment, then fuzzy token ratio.

    Containment scores ``len(shorter) / len(longer) * 70``. Otherwise a
    rapidfuzz token-sort ratio at or above the threshold scores ``ratio * 0.7``.
    """
    threshold = settings.matching.fuzzy_threshold if fuzzy_threshold is None else fuzzy_threshold
    shorter, longer = sorted((text1, text2), key=len)

    if shorter and shorter in longer:
        score = round_half_up(len(shorter) / len(longer) * CONTAINMENT_WEIGHT)
        return FieldScore(score, MatchType.SEMANTIC, f"{score}% similarity")

    ratio = fuzz.token_sort_ratio(text1, text2)
    if ratio >= threshold:
        score = round_half_up(ratio * CONTAINMENT_WEIGHT / 100)
        return FieldScore(score, MatchType.SEMANTIC, f"{score}% similarity")

    return FieldScore(0, MatchType.SEMANTIC, "No similarity")


async def score_text_fields(
    value1: Any,
    value2: Any,
    spec: FieldSpec,
    *,
    use_ai: bool = False,
    comparer: TextComparer | None = None,
) -> FieldScore:
    """Exact comparison, then AI similarity when enabled, then local similarity."""
    text1, text2 = normalize_text(str(value1)), normalize_text(str(value2))

    if text1 == text2:
        return FieldScore(100, MatchType.EXACT, "Exact match")

    if use_ai and spec.use_ai_matching and comparer is not None:
        try:
            result = await comparer.compare(str(value1), str(value2), spec.field_name)
            return FieldScore(
                round_half_up(result.score * 100),
                MatchType.SEMANTIC,
                result.reasoning,
            )
        except SemanticComparisonError as e:
            logger.warning(f"AI similarity failed for {spec.field_name}, using local similarity: {e}")

    return local_text_similarity(text1, text2)


async def score_field(
    spec: FieldSpec,
    value1: Any,
    value2: Any,
    *,
    use_ai: bool = False,
    comparer: TextComparer | None = None,
) -> FieldScore:
    """Dispatch on field type. Missing values and unknown types score 0."""
    if is_missing(value1) or is_missing(value2):
        return FieldScore(0, MatchType.NONE, "Missing value(s)")

    field_type = spec.field_type
    if field_type in ("array", "multi_select"):
        return score_array_fields(value1, value2)
    if field_type in ("number", "currency"):
        return score_numeric_fields(value1, value2)
    if field_type in ("text", "textarea"):
        return await score_text_fields(value1, value2, spec, use_ai=use_ai, comparer=comparer)
    if field_type == "boolean":
        return score_boolean_fields(value1, value2)
    if field_type in ("select", "enum"):
        return score_select_fields(value1, value2)

    return FieldScore(0, MatchType.NONE, "Unknown type")


class MatchScorer:
    """Weighted scorer over a set of field definitions.

    Fields with a non-positive weight are ignored, so the total is always a
    weighted mean of sub-scores in [0, 100].
    """

    def __init__(self, fields: Sequence[FieldSpec], comparer: TextComparer | None = None) -> None:
        self.fields = sorted(
            (f for f in fields if f.matching_weight > 0),
            key=lambda f: f.matching_weight,
            reverse=True,
        )
        self.comparer = comparer

    @property
    def total_weight(self) -> float:
        return sum(f.matching_weight for f in self.fields)

    async def score(
        self,
        pro: Mapping[str, Any],
        client: Mapping[str, Any],
        *,
        use_ai: bool = False,
    ) -> MatchBreakdown:
        """Score a pro/client pair.

        Args:
            pro: Pro attributes keyed by field name
            client: Client attributes keyed by field name
            use_ai: Allow the semantic comparer for AI-enabled text fields

        Returns:
            MatchBreakdown with total, per-field scores and subtotals
        """
        breakdown = MatchBreakdown(total_score=0)
        weighted_sum = 0.0

        for spec in self.fields:
            result = await score_field(
                spec,
                pro.get(spec.field_name),
                client.get(spec.field_name),
                use_ai=use_ai,
                comparer=self.comparer,
            )
            weighted = result.score / 100 * spec.matching_weight

            breakdown.field_scores[spec.field_name] = FieldBreakdown(
                field_name=spec.field_name,
                score=round(weighted, 2),
                max_score=spec.matching_weight,
                match_type=result.match_type,
                details=result.details,
            )

            if spec.field_name in GEOGRAPHIC_FIELDS:
                breakdown.geographic_score += weighted
            elif spec.field_name in PERFORMANCE_FIELDS:
                breakdown.performance_score += weighted
            elif result.match_type == MatchType.SEMANTIC:
                breakdown.ai_semantic_score += weighted

            weighted_sum += weighted

        total_weight = self.total_weight
        breakdown.total_score = round_half_up(weighted_sum / total_weight * 100) if total_weight > 0 else 0
        breakdown.geographic_score = round(breakdown.geographic_score, 2)
        breakdown.performance_score = round(breakdown.performance_score, 2)
        breakdown.ai_semantic_score = round(breakdown.ai_semantic_score, 2)

        logger.debug(
            f"Scored pair: total={breakdown.total_score} geo={breakdown.geographic_score} "
            f"perf={breakdown.performance_score} ai={breakdown.ai_semantic_score}"
        )
        return breakdown
