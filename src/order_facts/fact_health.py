"""Fact health scoring.

A pure reduction over fact warnings. The score is descriptive only; nothing
in this package branches on it.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from .fact_warnings import LEVEL_HIGH, LEVEL_LOW, LEVEL_MEDIUM, WARNING_LEVELS, FactWarning

MAX_SCORE = 100
MIN_SCORE = 0

_LEVEL_PENALTY = {
    LEVEL_HIGH: 30,
    LEVEL_MEDIUM: 10,
    LEVEL_LOW: 3,
}


@dataclass(frozen=True)
class FactHealthSummary:
    total: int
    by_level: dict[str, int]
    by_code: dict[str, int]
    score: int = MAX_SCORE

    def to_dict(self) -> dict[str, Any]:
        return {
            "score": self.score,
            "summary": {level: self.by_level.get(level, 0) for level in WARNING_LEVELS},
            "by_code": dict(self.by_code),
            "total": self.total,
        }


def _compute_fact_score(by_level: dict[str, int]) -> int:
    penalty = sum(_LEVEL_PENALTY[level] * count for level, count in by_level.items())
    return max(MIN_SCORE, min(MAX_SCORE, MAX_SCORE - penalty))


def score_warnings(warnings: Iterable[FactWarning]) -> FactHealthSummary:
    """Reduce warnings to counts by level/code and a score in [0, 100]."""
    level_counts: Counter[str] = Counter()
    code_counts: Counter[str] = Counter()
    for warning in warnings:
        level_counts[warning.level] += 1
        code_counts[warning.code] += 1

    by_level = {level: level_counts.get(level, 0) for level in WARNING_LEVELS}
    score = _compute_fact_score(by_level)
    return FactHealthSummary(
        total=sum(by_level.values()),
        by_level=by_level,
        by_code=dict(sorted(code_counts.items())),
        score=score,
    )
