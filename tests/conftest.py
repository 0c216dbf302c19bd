"""Pytest configuration and fixtures."""

import logging
import textwrap
from pathlib import Path

import pytest

from bookgrade.catalog import Op, Rule, RuleCatalog, ThresholdRung, default_catalog
from bookgrade.evidence import Evidence

EXAMPLE_SIGNALS = {
    "warnings": 0,
    "unit_tests": 5,
    "coverage": 96.0,
    "readme_sections": 4,
    "unsafe_blocks": 0,
    "external_api_calls": 0,
}


@pytest.fixture(autouse=True)
def cleanup_loggers():
    """Detach handlers from bookgrade loggers after each test."""
    yield

    for name in list(logging.Logger.manager.loggerDict.keys()):
        if name.startswith("bookgrade"):
            logger = logging.getLogger(name)
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)
            logger.propagate = True


@pytest.fixture
def catalog() -> RuleCatalog:
    return default_catalog()


@pytest.fixture
def example_evidence() -> Evidence:
    """The worked example from the chapter checklist (92/100, grade A)."""
    return Evidence(chapter_id="ch05", signals=EXAMPLE_SIGNALS)


@pytest.fixture
def small_catalog() -> RuleCatalog:
    """Two rules, 10 points each."""
    return RuleCatalog(
        [
            Rule(
                name="zero_warnings",
                category="Code Quality",
                signal="warnings",
                max_points=10,
                ladder=(
                    ThresholdRung(Op.LE, 0, 10),
                    ThresholdRung(Op.LE, 5, 5),
                ),
            ),
            Rule(
                name="unit_tests",
                category="Testing",
                signal="unit_tests",
                max_points=10,
                ladder=(
                    ThresholdRung(Op.GE, 10, 10),
                    ThresholdRung(Op.GE, 1, 4),
                ),
                remediation="write more tests",
            ),
        ],
        version="small-1",
    )


@pytest.fixture()
def tmp_yaml(tmp_path):
    """Helper that writes YAML content to a temp file and returns its path."""

    def _write(content: str, name: str = "book.yaml") -> Path:
        p = tmp_path / name
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(textwrap.dedent(content))
        return p

    return _write


@pytest.fixture
def book_project(tmp_path, tmp_yaml):
    """A book with two chapters: ch01 clears the bar, ch02 has no tests."""
    evidence = tmp_path / "evidence"
    evidence.mkdir()
    (evidence / "ch01.yaml").write_text(
        textwrap.dedent("""\
            warnings: 0
            unit_tests: 12
            coverage: 97.5
            mutation_score: 85.0
            readme_sections: 5
            unsafe_blocks: 0
            external_api_calls: 0
        """)
    )
    (evidence / "ch02.json").write_text(
        '{"warnings": 3, "unit_tests": 0, "coverage": 40.0, "mutation_score": 10.0,'
        ' "readme_sections": 2, "unsafe_blocks": 1, "external_api_calls": 0}'
    )
    return tmp_yaml("""\
        title: Sovereign Stack
        evidence_dir: ./evidence
        min_score: 90
        chapters:
          - id: ch01
            number: 1
            title: Introduction
            status: InProgress
          - id: ch02
            number: 2
            title: Crisis
            status: InProgress
    """)
