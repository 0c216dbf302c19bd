import itertools

from bookgrade.lifecycle import Chapter, ChapterStatus
from bookgrade.metrics import aggregate, compute_stats
from bookgrade.scoring import Grade, ScoreReport, grade_for


def _pair(idx: int, percentage: float, status: ChapterStatus):
    report = ScoreReport(
        chapter_id=f"ch{idx:02d}",
        subscores=(),
        total_earned=percentage,
        total_possible=100,
        grade=grade_for(percentage),
        recommendations=(),
    )
    return Chapter(id=f"ch{idx:02d}", number=idx, title="", status=status), report


PAIRS = [
    _pair(1, 97, ChapterStatus.PUBLISHED),
    _pair(2, 92, ChapterStatus.COMPLETE),
    _pair(3, 81, ChapterStatus.IN_PROGRESS),
    _pair(4, 40, ChapterStatus.IN_PROGRESS),
]


def test_compute_stats_basic():
    stats = compute_stats([1.0, 2.0, 3.0])
    assert stats.avg == 2.0
    assert stats.min == 1.0
    assert stats.max == 3.0
    assert abs(stats.stddev - 0.8165) < 0.001


def test_compute_stats_empty():
    stats = compute_stats([])
    assert stats.avg is None
    assert stats.stddev is None


def test_compute_stats_ignores_none():
    assert compute_stats([None, 4.0]).avg == 4.0


def test_aggregate_counts():
    summary = aggregate(PAIRS)

    assert summary.total_chapters == 4
    assert summary.grade_counts[Grade.A_PLUS.value] == 1
    assert summary.grade_counts[Grade.A.value] == 1
    assert summary.grade_counts[Grade.B.value] == 1
    assert summary.grade_counts[Grade.F.value] == 1
    assert summary.grade_counts[Grade.C.value] == 0
    assert summary.status_counts["InProgress"] == 2
    assert summary.status_counts["Planned"] == 0
    assert summary.completed == 2
    assert summary.completion_fraction == 0.5
    assert summary.score_stats.max == 97.0


def test_aggregate_is_order_independent():
    expected = aggregate(PAIRS).to_dict()
    for perm in itertools.permutations(PAIRS):
        assert aggregate(perm).to_dict() == expected


def test_aggregate_empty(caplog):
    summary = aggregate([])

    assert summary.total_chapters == 0
    assert summary.completion_fraction == 0.0
    assert all(count == 0 for count in summary.grade_counts.values())
    assert summary.score_stats.avg is None
    assert "No chapter reports" in caplog.text
