import pytest
from pydantic import ValidationError

from bookgrade.config import BookConfig, RungConfig, load_config
from bookgrade.lifecycle import ChapterStatus
from bookgrade.scoring import Grade, ScoreReport


def test_load_minimal_config(tmp_yaml):
    path = tmp_yaml("""\
        chapters:
          - id: ch01
            number: 1
    """)
    config = load_config(path)

    assert config.min_score == 90
    assert config.catalog is None
    assert config.chapters[0].status is ChapterStatus.PLANNED
    assert config.evidence_dir == str((path.parent / "evidence").resolve())
    assert config.state_file == str((path.parent / ".bookgrade" / "state.json").resolve())


def test_relative_paths_resolve_against_config_dir(tmp_yaml):
    path = tmp_yaml(
        """\
        catalog: ../rules/checklist.yaml
        chapters:
          - id: ch01
            number: 1
            source: ./src/ch01
        """,
        name="book/book.yaml",
    )
    config = load_config(path)

    assert config.catalog == str((path.parent.parent / "rules" / "checklist.yaml").resolve())
    assert config.chapters[0].source == str((path.parent / "src" / "ch01").resolve())


def test_env_var_expansion(tmp_yaml, monkeypatch, tmp_path):
    monkeypatch.setenv("BOOK_EVIDENCE", str(tmp_path / "captured"))
    path = tmp_yaml("""\
        evidence_dir: ${BOOK_EVIDENCE}
        cache_dir: ${BOOK_CACHE:-/tmp/bookgrade-cache}
        chapters:
          - id: ch01
            number: 1
    """)
    config = load_config(path)

    assert config.evidence_dir == str(tmp_path / "captured")
    assert config.cache_dir == "/tmp/bookgrade-cache"


def test_unset_env_var_is_an_error(tmp_yaml, monkeypatch):
    monkeypatch.delenv("BOOKGRADE_UNSET_VAR", raising=False)
    path = tmp_yaml("""\
        evidence_dir: ${BOOKGRADE_UNSET_VAR}
        chapters:
          - id: ch01
            number: 1
    """)
    with pytest.raises(ValidationError):
        load_config(path)


def test_duplicate_chapter_ids_rejected(tmp_yaml):
    path = tmp_yaml("""\
        chapters:
          - id: ch01
            number: 1
          - id: ch01
            number: 2
    """)
    with pytest.raises(ValidationError, match="duplicate chapter ids"):
        load_config(path)


def test_chapters_required(tmp_yaml):
    with pytest.raises(ValidationError):
        load_config(tmp_yaml("title: Empty\n"))


def test_chapter_id_all_is_reserved():
    with pytest.raises(ValidationError):
        BookConfig(chapters=[{"id": "all", "number": 1}])


def test_unknown_keys_rejected():
    with pytest.raises(ValidationError):
        BookConfig(chapters=[{"id": "ch01", "number": 1}], min_scroe=80)


def test_min_score_range():
    with pytest.raises(ValidationError):
        BookConfig(chapters=[{"id": "ch01", "number": 1}], min_score=120)


def test_rung_needs_exactly_one_comparison():
    assert RungConfig(ge=95, points=15).op == "ge"
    assert RungConfig(le=0, points=10).threshold == 0
    with pytest.raises(ValidationError):
        RungConfig(points=5)
    with pytest.raises(ValidationError):
        RungConfig(ge=90, le=95, points=5)


def _report(percentage: float, grade: Grade) -> ScoreReport:
    return ScoreReport(
        chapter_id="ch01",
        subscores=(),
        total_earned=percentage,
        total_possible=100,
        grade=grade,
        recommendations=(),
    )


def test_passes_uses_min_score_and_override():
    config = BookConfig(chapters=[{"id": "ch01", "number": 1}], min_score=90)

    assert config.passes(_report(92, Grade.A))
    assert not config.passes(_report(85, Grade.B_PLUS))
    assert config.passes(_report(85, Grade.B_PLUS), min_score=80)


def test_passes_with_min_grade():
    config = BookConfig(
        chapters=[{"id": "ch01", "number": 1}], min_score=0, min_grade="A+"
    )
    assert config.passes(_report(96, Grade.A_PLUS))
    assert not config.passes(_report(92, Grade.A))


def test_passes_uses_unrounded_percentage():
    config = BookConfig(chapters=[{"id": "ch01", "number": 1}], min_score=90)
    report = _report(89.996, Grade.B_PLUS)

    assert report.percentage == 90.0
    assert not config.passes(report)
