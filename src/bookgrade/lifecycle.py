"""Chapter lifecycle: Planned -> InProgress -> Complete -> Published.

Scoring drives two automatic transitions. A chapter in progress becomes
Complete once it grades A or better with partial credit in every rule, and a
Complete or Published chapter falls back to InProgress as soon as a rule that
used to earn points drops to zero. Publishing is always an explicit action.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum

from bookgrade.errors import InvalidTransitionError
from bookgrade.scoring import Grade, ScoreReport

logger = logging.getLogger(__name__)

COMPLETE_GRADES = frozenset({Grade.A_PLUS, Grade.A})


class ChapterStatus(str, Enum):
    PLANNED = "Planned"
    IN_PROGRESS = "InProgress"
    COMPLETE = "Complete"
    PUBLISHED = "Published"


DONE_STATUSES = frozenset({ChapterStatus.COMPLETE, ChapterStatus.PUBLISHED})


@dataclass(frozen=True)
class Chapter:
    id: str
    number: int
    title: str
    status: ChapterStatus = ChapterStatus.PLANNED

    def with_status(self, status: ChapterStatus) -> Chapter:
        return replace(self, status=status)


def meets_completion_gate(report: ScoreReport) -> bool:
    """Grade A or better and no rule left at zero points."""
    return report.grade in COMPLETE_GRADES and not report.has_zero_subscore


def regressed_rules(report: ScoreReport, previous: ScoreReport | None) -> list[str]:
    """Rules that are zero now but earned points in ``previous``.

    Without a previous report every zero rule counts as a regression.
    """
    if previous is None:
        return [s.rule for s in report.subscores if s.is_zero]

    earned_before = {s.rule for s in previous.subscores if not s.is_zero}
    return [s.rule for s in report.subscores if s.is_zero and s.rule in earned_before]


def evaluate_transition(
    chapter: Chapter,
    report: ScoreReport,
    previous: ScoreReport | None = None,
) -> ChapterStatus:
    """Return the status ``chapter`` should hold after being scored as ``report``."""
    if chapter.status is ChapterStatus.IN_PROGRESS:
        if meets_completion_gate(report):
            return ChapterStatus.COMPLETE
        return chapter.status

    if chapter.status in DONE_STATUSES:
        regressed = regressed_rules(report, previous)
        if regressed:
            logger.warning(
                f"Chapter '{chapter.id}' regressed ({', '.join(regressed)} now zero); "
                f"{chapter.status.value} -> {ChapterStatus.IN_PROGRESS.value}"
            )
            return ChapterStatus.IN_PROGRESS

    return chapter.status


def apply_report(
    chapter: Chapter,
    report: ScoreReport,
    previous: ScoreReport | None = None,
) -> Chapter:
    status = evaluate_transition(chapter, report, previous)
    if status is not chapter.status:
        logger.info(f"Chapter '{chapter.id}': {chapter.status.value} -> {status.value}")
        return chapter.with_status(status)
    return chapter


def start(chapter: Chapter) -> Chapter:
    """Begin work on a planned chapter."""
    if chapter.status is not ChapterStatus.PLANNED:
        raise InvalidTransitionError(
            f"Chapter '{chapter.id}' cannot start from {chapter.status.value}"
        )
    return chapter.with_status(ChapterStatus.IN_PROGRESS)


def publish(chapter: Chapter) -> Chapter:
    """Human sign-off. Only a Complete chapter can be published."""
    if chapter.status is not ChapterStatus.COMPLETE:
        raise InvalidTransitionError(
            f"Chapter '{chapter.id}' cannot be published from {chapter.status.value}; "
            f"it must be {ChapterStatus.COMPLETE.value}"
        )
    return chapter.with_status(ChapterStatus.PUBLISHED)
