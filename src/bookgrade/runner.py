from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from bookgrade.cache import ReportCache, ScoreHistory, StateStore, cache_key, hash_tree
from bookgrade.catalog import RuleCatalog, default_catalog, load_catalog
from bookgrade.config import BookConfig, ChapterConfig
from bookgrade.evidence import BaseEvidenceCollector, FileEvidenceCollector
from bookgrade.lifecycle import Chapter, ChapterStatus, apply_report
from bookgrade.metrics import BookSummary, aggregate
from bookgrade.reporting.markdown import render_report, render_summary
from bookgrade.scoring import ScoreReport, score
from bookgrade.verbose import close_logger, setup_logger


@dataclass
class ChapterResult:
    chapter: Chapter
    previous_status: ChapterStatus
    report: ScoreReport
    passed: bool
    cached: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "chapter": {
                "id": self.chapter.id,
                "number": self.chapter.number,
                "title": self.chapter.title,
                "status": self.chapter.status.value,
            },
            "previous_status": self.previous_status.value,
            "report": self.report.to_dict(),
            "passed": self.passed,
            "cached": self.cached,
        }


@dataclass
class RunOutcome:
    run_dir: Path
    results: list[ChapterResult]
    summary: BookSummary

    @property
    def all_passed(self) -> bool:
        return all(r.passed for r in self.results)


def load_catalog_for(config: BookConfig) -> RuleCatalog:
    if config.catalog:
        return load_catalog(Path(config.catalog))
    return default_catalog()


class Runner:
    """Scores the chapters of a book and records the outcome of the run."""

    def __init__(
        self,
        config: BookConfig,
        output_dir: Path,
        catalog: RuleCatalog | None = None,
        collector: BaseEvidenceCollector | None = None,
        chapter_filter: str | None = None,
        min_score: float | None = None,
        verbose: bool = False,
        parallel: int = 1,
        use_cache: bool = True,
    ):
        self.config = config
        self.output_dir = output_dir
        self.catalog = catalog if catalog is not None else load_catalog_for(config)
        self.collector = collector or FileEvidenceCollector(
            config.evidence_dir, signals=self.catalog.signals
        )
        self.chapter_filter = chapter_filter
        self.min_score = min_score
        self.verbose = verbose
        self.parallel = parallel
        self.use_cache = use_cache

    def _selected_chapters(self) -> list[ChapterConfig]:
        chapters = self.config.chapters
        if self.chapter_filter and self.chapter_filter != "all":
            chapters = [c for c in chapters if c.id == self.chapter_filter]
            if not chapters:
                raise ValueError(f"Unknown chapter: {self.chapter_filter}")
        return sorted(chapters, key=lambda c: c.number)

    def execute(self) -> RunOutcome:
        """Score every selected chapter. Returns the run outcome."""
        run_id = datetime.now(timezone.utc).strftime("%Y-%m-%d_%H%M%S")
        run_dir = self.output_dir / run_id
        run_dir.mkdir(parents=True, exist_ok=True)

        logger = setup_logger(
            run_dir / "debug.log", verbose=self.verbose, logger_name="bookgrade"
        )
        try:
            return self._execute(run_dir, logger)
        finally:
            close_logger(logger)

    def _execute(self, run_dir: Path, logger: logging.Logger) -> RunOutcome:
        logger.debug(
            f"Starting run with catalog {self.catalog.version} "
            f"({len(self.catalog)} rules, {self.catalog.max_points:g} pts)"
        )

        state = StateStore(self.config.state_file)
        cache = ReportCache(self.config.cache_dir)
        history = ScoreHistory(self.config.history_file)

        chapters = [state.resolve(c.to_chapter()) for c in self._selected_chapters()]
        sources = {c.id: c.source for c in self.config.chapters}

        scored: dict[str, tuple[ScoreReport, bool]] = {}
        with ThreadPoolExecutor(max_workers=self.parallel) as executor:
            future_to_chapter = {
                executor.submit(
                    self._score_chapter, chapter, sources.get(chapter.id), cache, logger
                ): chapter
                for chapter in chapters
            }
            for future in as_completed(future_to_chapter):
                chapter = future_to_chapter[future]
                try:
                    scored[chapter.id] = future.result()
                except Exception as e:
                    logger.error(f"Scoring chapter '{chapter.id}' failed: {e}")
                    raise

        # Lifecycle and output run in chapter order regardless of completion order.
        results: list[ChapterResult] = []
        for chapter in chapters:
            report, cached = scored[chapter.id]
            previous = state.latest_report(chapter.id)
            updated = apply_report(chapter, report, previous)
            passed = self.config.passes(report, self.min_score)
            results.append(
                ChapterResult(
                    chapter=updated,
                    previous_status=chapter.status,
                    report=report,
                    passed=passed,
                    cached=cached,
                )
            )
            state.record(updated, report)
            history.append(report)
            logger.info(
                f"{chapter.id}: {report.total_earned:g}/{report.total_possible:g} "
                f"grade {report.grade.value} {'PASS' if passed else 'FAIL'}"
            )

        state.save()

        summary = aggregate((r.chapter, r.report) for r in results)
        self._write_results(run_dir, results, summary)
        return RunOutcome(run_dir=run_dir, results=results, summary=summary)

    def _score_chapter(
        self,
        chapter: Chapter,
        source: str | None,
        cache: ReportCache,
        logger: logging.Logger,
    ) -> tuple[ScoreReport, bool]:
        """Score one chapter, reusing a cached report when source and evidence are unchanged."""
        evidence = self.collector.collect(chapter)

        key = None
        if source and self.use_cache:
            key = cache_key(
                chapter.id, hash_tree(Path(source)), evidence.digest, self.catalog.version
            )
            cached = cache.get(key)
            if cached is not None and cached.chapter_id == chapter.id:
                logger.debug(f"Cache hit for '{chapter.id}' ({key[:12]})")
                return cached, True
            if cached is not None:
                logger.warning(
                    f"Ignoring cache entry {key[:12]} for '{chapter.id}': "
                    f"it holds a report for '{cached.chapter_id}'"
                )
            else:
                logger.debug(f"Cache miss for '{chapter.id}' ({key[:12]})")

        report = score(evidence, self.catalog)

        if key is not None:
            cache.put(key, report)
        return report, False

    def _write_results(
        self, run_dir: Path, results: list[ChapterResult], summary: BookSummary
    ) -> None:
        """Write reports.json, report.md, junit.xml and meta.yaml to the run directory."""
        from bookgrade.reporting.junit import write_junit

        chapters = [r.to_dict() for r in results]
        (run_dir / "reports.json").write_text(
            json.dumps(
                {
                    "title": self.config.title,
                    "chapters": chapters,
                    "summary": summary.to_dict(),
                },
                indent=2,
            )
        )

        sections = [
            render_report(
                r.chapter,
                r.report,
                passed=r.passed,
                previous_status=r.previous_status,
                cached=r.cached,
            )
            for r in results
        ]
        sections.append(render_summary(summary, title=self.config.title))
        (run_dir / "report.md").write_text("\n".join(sections), encoding="utf-8")

        write_junit(run_dir, chapters)

        try:
            import importlib.metadata

            bookgrade_version = importlib.metadata.version("bookgrade")
        except Exception:
            bookgrade_version = "unknown"

        meta: dict[str, Any] = {
            "run_id": run_dir.name,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "chapters": [r.chapter.id for r in results],
            "catalog_version": self.catalog.version,
            "min_score": self.min_score if self.min_score is not None else self.config.min_score,
            "bookgrade_version": bookgrade_version,
        }
        (run_dir / "meta.yaml").write_text(yaml.dump(meta, default_flow_style=False))
