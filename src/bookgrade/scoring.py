"""Scoring: rules applied to evidence, totals, and grade bands."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, TYPE_CHECKING

from bookgrade.errors import MissingSignalError

if TYPE_CHECKING:
    from bookgrade.catalog import Rule
    from bookgrade.evidence import Evidence

logger = logging.getLogger(__name__)

SIGNAL_UNAVAILABLE = "signal unavailable"


class Grade(str, Enum):
    A_PLUS = "A+"
    A = "A"
    B_PLUS = "B+"
    B = "B"
    C = "C"
    F = "F"

    @property
    def floor(self) -> float:
        return _GRADE_FLOORS[self]

    def meets(self, minimum: Grade) -> bool:
        return self.floor >= minimum.floor


# Highest band first; every percentage falls into exactly one band.
GRADE_BANDS: tuple[tuple[float, Grade], ...] = (
    (95.0, Grade.A_PLUS),
    (90.0, Grade.A),
    (85.0, Grade.B_PLUS),
    (80.0, Grade.B),
    (70.0, Grade.C),
    (0.0, Grade.F),
)
_GRADE_FLOORS = {grade: floor for floor, grade in GRADE_BANDS}


def grade_for(percentage: float) -> Grade:
    """Map a 0-100 percentage to its grade band."""
    for floor, grade in GRADE_BANDS:
        if percentage >= floor:
            return grade
    return Grade.F


@dataclass(frozen=True)
class SubScore:
    """Outcome of one rule for one chapter."""

    rule: str
    category: str
    points_earned: float
    points_possible: float
    justification: str

    @property
    def is_zero(self) -> bool:
        return self.points_earned <= 0

    @property
    def is_full(self) -> bool:
        return self.points_earned >= self.points_possible

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ScoreReport:
    """Scored result for one evidence snapshot against one catalog."""

    chapter_id: str
    subscores: tuple[SubScore, ...]
    total_earned: float
    total_possible: float
    grade: Grade
    recommendations: tuple[str, ...]
    catalog_version: str = ""
    evidence_digest: str = ""

    @property
    def percentage(self) -> float:
        if self.total_possible <= 0:
            return 0.0
        return round(self.total_earned / self.total_possible * 100, 2)

    @property
    def exact_percentage(self) -> float:
        """Unrounded percentage; grades and thresholds are decided on this value."""
        if self.total_possible <= 0:
            return 0.0
        return self.total_earned / self.total_possible * 100

    @property
    def has_zero_subscore(self) -> bool:
        return any(s.is_zero for s in self.subscores)

    def by_category(self) -> dict[str, tuple[float, float]]:
        """Earned and possible points per category, in catalog order."""
        totals: dict[str, tuple[float, float]] = {}
        for s in self.subscores:
            earned, possible = totals.get(s.category, (0.0, 0.0))
            totals[s.category] = (earned + s.points_earned, possible + s.points_possible)
        return totals

    def to_dict(self) -> dict[str, Any]:
        return {
            "chapter_id": self.chapter_id,
            "subscores": [s.to_dict() for s in self.subscores],
            "total_earned": self.total_earned,
            "total_possible": self.total_possible,
            "percentage": self.percentage,
            "grade": self.grade.value,
            "recommendations": list(self.recommendations),
            "catalog_version": self.catalog_version,
            "evidence_digest": self.evidence_digest,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScoreReport:
        return cls(
            chapter_id=data["chapter_id"],
            subscores=tuple(SubScore(**s) for s in data["subscores"]),
            total_earned=data["total_earned"],
            total_possible=data["total_possible"],
            grade=Grade(data["grade"]),
            recommendations=tuple(data.get("recommendations", [])),
            catalog_version=data.get("catalog_version", ""),
            evidence_digest=data.get("evidence_digest", ""),
        )


def _recommendation(rule: Rule, subscore: SubScore) -> str:
    missing = subscore.points_possible - subscore.points_earned
    hint = rule.remediation or rule.description or f"improve {rule.signal}"
    return f"{rule.category} / {rule.name}: {hint} (+{missing:g} pts available)"


def score(evidence: Evidence, rules: Iterable[Rule]) -> ScoreReport:
    """Score one evidence snapshot against an ordered set of rules.

    A rule whose signal is missing or unusable scores zero with the
    justification "signal unavailable"; the remaining rules are scored
    normally and the possible total is unchanged. The result depends only
    on the inputs, so repeated calls produce identical reports.
    """
    version = getattr(rules, "version", "") or ""
    rules = list(rules)
    subscores: list[SubScore] = []
    recommendations: list[str] = []

    for rule in rules:
        try:
            subscore = rule.apply(evidence)
        except MissingSignalError as e:
            logger.warning(f"Chapter '{evidence.chapter_id}': {e}; scoring 0")
            subscore = SubScore(
                rule=rule.name,
                category=rule.category,
                points_earned=0.0,
                points_possible=rule.max_points,
                justification=SIGNAL_UNAVAILABLE,
            )
        subscores.append(subscore)
        if not subscore.is_full:
            recommendations.append(_recommendation(rule, subscore))

    total_earned = sum(s.points_earned for s in subscores)
    total_possible = sum(s.points_possible for s in subscores)
    percentage = total_earned / total_possible * 100 if total_possible > 0 else 0.0

    return ScoreReport(
        chapter_id=evidence.chapter_id,
        subscores=tuple(subscores),
        total_earned=total_earned,
        total_possible=total_possible,
        grade=grade_for(percentage),
        recommendations=tuple(recommendations),
        catalog_version=version,
        evidence_digest=evidence.digest,
    )
