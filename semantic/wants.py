"""Wants-vs-provides matching using the wants taxonomy + rapidfuzz.

A pro's wants ("more leads", "better split") and a client's provides
("lead generation", "90/10 commission split") are mapped to canonical wants
via synonyms, then fuzzy matching. Two phrases match when their canonical
forms agree or one contains the other.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache

from rapidfuzz import fuzz, process

from catalog.wants_taxonomy import WANTS_TAXONOMY
from crm.config import settings
from crm.pipelines.normalization import normalize_text

logger = logging.getLogger(__name__)


@dataclass
class WantsMatch:
    """Result of comparing a pro's wants to a client's provides."""
    matched: list[str] = field(default_factory=list)
    total_wants: int = 0

    @property
    def count(self) -> int:
        return len(self.matched)


class WantsMatcher:
    """Canonicalizes free-text wants and counts overlaps."""

    def __init__(self, taxonomy: list[dict] | None = None, fuzzy_threshold: int | None = None) -> None:
        self.taxonomy = taxonomy if taxonomy is not None else WANTS_TAXONOMY
        self.fuzzy_threshold = fuzzy_threshold if fuzzy_threshold is not None else settings.matching.fuzzy_threshold

        self._synonym_map: dict[str, str] = {}  # synonym -> canonical
        for entry in self.taxonomy:
            canonical = entry["canonical"]
            self._synonym_map[normalize_text(canonical)] = canonical
            for syn in entry.get("synonyms", []):
                self._synonym_map[normalize_text(syn)] = canonical
        self._choices = list(self._synonym_map.keys())

        logger.debug(f"Loaded {len(self.taxonomy)} wants with {len(self._synonym_map)} synonyms")

    def canonicalize(self, phrase: str) -> str:
        """Map a phrase to its canonical want, or its normalized self when unknown."""
        text = normalize_text(phrase)
        if not text:
            return ""
        if text in self._synonym_map:
            return self._synonym_map[text]

        best = process.extractOne(
            text,
            self._choices,
            scorer=fuzz.token_set_ratio,
            score_cutoff=self.fuzzy_threshold,
        )
        if best is not None:
            return self._synonym_map[best[0]]
        return text

    def phrases_match(self, want: str, provide: str) -> bool:
        want_text, provide_text = normalize_text(want), normalize_text(provide)
        if not want_text or not provide_text:
            return False
        if want_text in provide_text or provide_text in want_text:
            return True
        return self.canonicalize(want_text) == self.canonicalize(provide_text)

    def match(self, wants: list[str] | None, provides: list[str] | None) -> WantsMatch:
        """Return the wants that at least one provide satisfies."""
        wants = [w for w in (wants or []) if normalize_text(w)]
        provides = [p for p in (provides or []) if normalize_text(p)]

        matched = [w for w in wants if any(self.phrases_match(w, p) for p in provides)]
        return WantsMatch(matched=matched, total_wants=len(wants))


@lru_cache(maxsize=1)
def get_wants_matcher() -> WantsMatcher:
    """Process-wide matcher built from the default taxonomy."""
    return WantsMatcher()
