"""Content-addressed report cache, score history and lifecycle state on disk."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from bookgrade.lifecycle import Chapter, ChapterStatus
from bookgrade.scoring import ScoreReport

logger = logging.getLogger(__name__)

_IGNORED_DIRS = frozenset({".git", "target", "__pycache__", ".bookgrade"})


def write_json_atomic(path: Path, data: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        mode="w",
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
        encoding="utf-8",
        delete=False,
    ) as handle:
        tmp_path = Path(handle.name)
        json.dump(data, handle, indent=2, sort_keys=True)
        handle.write("\n")

    try:
        os.replace(tmp_path, path)
    except Exception:
        tmp_path.unlink(missing_ok=True)
        raise


def hash_tree(root: Path) -> str:
    """sha256 over the relative paths and bytes of every file under ``root``."""
    digest = hashlib.sha256()
    root = Path(root)
    if root.is_file():
        digest.update(root.read_bytes())
        return digest.hexdigest()

    for f in sorted(root.rglob("*")):
        if not f.is_file():
            continue
        rel = f.relative_to(root)
        if _IGNORED_DIRS.intersection(rel.parts):
            continue
        digest.update(rel.as_posix().encode("utf-8"))
        digest.update(b"\0")
        digest.update(f.read_bytes())
        digest.update(b"\0")
    return digest.hexdigest()


def cache_key(
    chapter_id: str, source_digest: str, evidence_digest: str, catalog_version: str
) -> str:
    """Key for a cached report.

    Changing the chapter, its source, its evidence or the catalog changes the key.
    """
    payload = "\0".join((chapter_id, source_digest, evidence_digest, catalog_version))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ReportCache:
    """Maps cache keys to score reports, one JSON file per key.

    Entries are never invalidated explicitly; a changed source, evidence
    snapshot or catalog simply produces a key that has no entry yet.
    """

    def __init__(self, cache_dir: Path | str) -> None:
        self.cache_dir = Path(cache_dir)

    def _path(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def get(self, key: str) -> ScoreReport | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return ScoreReport.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cache entry {path.name}: {e}")
            return None

    def put(self, key: str, report: ScoreReport) -> Path:
        path = self._path(key)
        write_json_atomic(path, report.to_dict())
        return path


@dataclass(frozen=True)
class HistoryEntry:
    chapter_id: str
    timestamp: str
    catalog_version: str
    percentage: float
    grade: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ScoreHistory:
    """Append-only JSON Lines log of every score, for trend analysis."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def append(self, report: ScoreReport, timestamp: str | None = None) -> HistoryEntry:
        entry = HistoryEntry(
            chapter_id=report.chapter_id,
            timestamp=timestamp or datetime.now(timezone.utc).isoformat(),
            catalog_version=report.catalog_version,
            percentage=report.percentage,
            grade=report.grade.value,
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), sort_keys=True) + "\n")
        return entry

    def entries(self, chapter_id: str | None = None) -> list[HistoryEntry]:
        if not self.path.exists():
            return []
        result = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            entry = HistoryEntry(**json.loads(line))
            if chapter_id is None or entry.chapter_id == chapter_id:
                result.append(entry)
        return result

    def trend(self, chapter_id: str) -> list[float]:
        return [e.percentage for e in self.entries(chapter_id)]


class StateStore:
    """Persists each chapter's lifecycle status and latest report.

    The latest report is what the next run compares against to detect
    regressions.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._data: dict[str, Any] = {"chapters": {}}
        if self.path.exists():
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(raw, dict) or not isinstance(raw.get("chapters"), dict):
                raise ValueError(f"Malformed state file: {self.path}")
            self._data = raw

    def _entry(self, chapter_id: str) -> dict[str, Any]:
        return self._data["chapters"].get(chapter_id, {})

    def status(self, chapter_id: str) -> ChapterStatus | None:
        value = self._entry(chapter_id).get("status")
        return ChapterStatus(value) if value else None

    def latest_report(self, chapter_id: str) -> ScoreReport | None:
        data = self._entry(chapter_id).get("report")
        return ScoreReport.from_dict(data) if data else None

    def resolve(self, chapter: Chapter) -> Chapter:
        """Apply the persisted status, if any, over the configured one."""
        status = self.status(chapter.id)
        return chapter.with_status(status) if status else chapter

    def record(self, chapter: Chapter, report: ScoreReport | None = None) -> None:
        entry = dict(self._entry(chapter.id))
        entry["status"] = chapter.status.value
        if report is not None:
            entry["report"] = report.to_dict()
        self._data["chapters"][chapter.id] = entry

    def save(self) -> None:
        write_json_atomic(self.path, self._data)
