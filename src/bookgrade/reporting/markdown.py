from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader

from bookgrade.lifecycle import Chapter, ChapterStatus
from bookgrade.metrics import BookSummary, MetricStatistics
from bookgrade.scoring import ScoreReport


def _pts(value: float | int | None) -> str:
    if value is None:
        return "-"
    return f"{round(float(value), 2):g}"


def _environment() -> Environment:
    tmpl_dir = Path(__file__).parent / "templates"
    env = Environment(
        loader=FileSystemLoader(str(tmpl_dir)),
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )
    env.filters["pts"] = _pts
    return env


def render_report(
    chapter: Chapter,
    report: ScoreReport,
    passed: bool | None = None,
    previous_status: ChapterStatus | None = None,
    cached: bool = False,
) -> str:
    """Render one chapter's report as a Markdown ``Category | Score | Notes`` table."""
    heading = f"{chapter.id}: {chapter.title}" if chapter.title else chapter.id

    status = chapter.status.value
    if previous_status is not None and previous_status is not chapter.status:
        status += f" (was {previous_status.value})"
    parts = [f"Status: {status}", f"Catalog: {report.catalog_version or 'unversioned'}"]
    if cached:
        parts.append("cached")

    grade_line = report.grade.value
    if passed is not None:
        grade_line += " (PASS)" if passed else " (BELOW THRESHOLD)"

    template = _environment().get_template("chapter.md.j2")
    return template.render(
        heading=heading,
        status_line=" | ".join(parts),
        grade_line=grade_line,
        report=report,
    )


def render_summary(summary: BookSummary, title: str = "") -> str:
    template = _environment().get_template("summary.md.j2")
    return template.render(summary=summary, title=title)


def generate_report(run_dir: Path) -> Path:
    """Re-render report.md from the reports.json of a previous run, return path."""
    data: dict[str, Any] = json.loads((run_dir / "reports.json").read_text())

    sections = []
    for item in data.get("chapters", []):
        chapter = Chapter(
            id=item["chapter"]["id"],
            number=item["chapter"]["number"],
            title=item["chapter"].get("title", ""),
            status=ChapterStatus(item["chapter"]["status"]),
        )
        previous = item.get("previous_status")
        sections.append(
            render_report(
                chapter,
                ScoreReport.from_dict(item["report"]),
                passed=item.get("passed"),
                previous_status=ChapterStatus(previous) if previous else None,
                cached=item.get("cached", False),
            )
        )

    summary_data = data["summary"]
    summary = BookSummary(
        total_chapters=summary_data["total_chapters"],
        grade_counts=summary_data["grade_counts"],
        status_counts=summary_data["status_counts"],
        completion_fraction=summary_data["completion_fraction"],
        score_stats=MetricStatistics(**summary_data["score_stats"]),
    )
    sections.append(render_summary(summary, title=data.get("title", "")))

    report_path = run_dir / "report.md"
    report_path.write_text("\n".join(sections), encoding="utf-8")
    return report_path
