from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, asdict
from typing import Any

import numpy as np

from bookgrade.lifecycle import Chapter, ChapterStatus, DONE_STATUSES
from bookgrade.scoring import Grade, ScoreReport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetricStatistics:
    """Statistics for chapter percentages across the book."""

    avg: float | None
    min: float | None
    max: float | None
    stddev: float | None

    def to_dict(self) -> dict[str, float | None]:
        return asdict(self)


@dataclass(frozen=True)
class BookSummary:
    """Book-level roll-up of per-chapter reports."""

    total_chapters: int
    grade_counts: dict[str, int]
    status_counts: dict[str, int]
    completion_fraction: float
    score_stats: MetricStatistics

    @property
    def completed(self) -> int:
        return sum(self.status_counts[s.value] for s in DONE_STATUSES)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_chapters": self.total_chapters,
            "grade_counts": dict(self.grade_counts),
            "status_counts": dict(self.status_counts),
            "completion_fraction": self.completion_fraction,
            "score_stats": self.score_stats.to_dict(),
        }


def compute_stats(values: Iterable[float | int | None]) -> MetricStatistics:
    """Compute avg, min, max, stddev for a list of numeric values."""
    # Sorted so the result does not depend on input order.
    nums = sorted(v for v in values if v is not None)
    if not nums:
        return MetricStatistics(avg=None, min=None, max=None, stddev=None)

    arr = np.array(nums, dtype=float)
    return MetricStatistics(
        avg=round(float(np.mean(arr)), 4),
        min=round(float(np.min(arr)), 4),
        max=round(float(np.max(arr)), 4),
        stddev=round(float(np.std(arr)), 4),
    )


def aggregate(reports: Iterable[tuple[Chapter, ScoreReport]]) -> BookSummary:
    """Fold per-chapter reports into a book summary.

    A multiset reduction: any ordering of ``reports`` gives the same summary.
    Empty input gives a summary with every count at zero.
    """
    pairs = list(reports)
    if not pairs:
        logger.warning("No chapter reports to aggregate; returning an empty summary")

    grade_counts = {grade.value: 0 for grade in Grade}
    status_counts = {status.value: 0 for status in ChapterStatus}
    for chapter, report in pairs:
        grade_counts[report.grade.value] += 1
        status_counts[chapter.status.value] += 1

    total = len(pairs)
    completed = sum(status_counts[s.value] for s in DONE_STATUSES)

    return BookSummary(
        total_chapters=total,
        grade_counts=grade_counts,
        status_counts=status_counts,
        completion_fraction=round(completed / total, 4) if total else 0.0,
        score_stats=compute_stats(report.percentage for _, report in pairs),
    )
