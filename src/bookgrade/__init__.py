"""Quality scoring for book chapters: rule catalogs, grading and lifecycle."""

from bookgrade.catalog import Rule, RuleCatalog, ThresholdRung, default_catalog, load_catalog
from bookgrade.errors import (
    BookgradeError,
    InvalidTransitionError,
    MalformedRuleError,
    MissingSignalError,
)
from bookgrade.evidence import UNKNOWN, Evidence
from bookgrade.lifecycle import Chapter, ChapterStatus
from bookgrade.metrics import BookSummary, aggregate
from bookgrade.scoring import Grade, ScoreReport, SubScore, grade_for, score

__all__ = [
    "UNKNOWN",
    "BookSummary",
    "BookgradeError",
    "Chapter",
    "ChapterStatus",
    "Evidence",
    "Grade",
    "InvalidTransitionError",
    "MalformedRuleError",
    "MissingSignalError",
    "Rule",
    "RuleCatalog",
    "ScoreReport",
    "SubScore",
    "ThresholdRung",
    "aggregate",
    "default_catalog",
    "grade_for",
    "load_catalog",
    "score",
]
