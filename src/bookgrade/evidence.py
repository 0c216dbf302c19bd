"""Evidence snapshots and the collector interface that produces them."""

from __future__ import annotations

import hashlib
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any, TYPE_CHECKING

import yaml

if TYPE_CHECKING:
    from bookgrade.lifecycle import Chapter

logger = logging.getLogger(__name__)

EVIDENCE_SUFFIXES = (".json", ".yaml", ".yml")


class _Unknown:
    """Sentinel for a promised signal whose value could not be determined."""

    _instance: _Unknown | None = None

    def __new__(cls) -> _Unknown:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNKNOWN"

    def __bool__(self) -> bool:
        return False


UNKNOWN: Any = _Unknown()


def _freeze(value: Any) -> Any:
    if value is None or (isinstance(value, str) and value.lower() == "unknown"):
        return UNKNOWN
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return value


def _canonical(value: Any) -> Any:
    if value is UNKNOWN:
        return None
    if isinstance(value, tuple):
        return list(value)
    return value


@dataclass(frozen=True)
class Evidence:
    """Immutable signal map for one chapter, as captured by a single collection run.

    Lists are stored as tuples and ``None``/``"unknown"`` values become
    :data:`UNKNOWN`. Re-collecting evidence produces a new snapshot; use
    :meth:`with_signals` to derive one from an existing snapshot.
    """

    chapter_id: str
    signals: Mapping[str, Any]
    captured_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def __post_init__(self) -> None:
        frozen = {str(k): _freeze(v) for k, v in dict(self.signals).items()}
        object.__setattr__(self, "signals", MappingProxyType(frozen))

    def __contains__(self, key: object) -> bool:
        return key in self.signals

    def get(self, key: str, default: Any = None) -> Any:
        return self.signals.get(key, default)

    def has_signal(self, key: str) -> bool:
        """True when the signal is present and not UNKNOWN."""
        return key in self.signals and self.signals[key] is not UNKNOWN

    @property
    def digest(self) -> str:
        """sha256 over the canonical signal content (capture time excluded)."""
        payload = json.dumps(
            {
                "chapter_id": self.chapter_id,
                "signals": {k: _canonical(v) for k, v in self.signals.items()},
            },
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def with_signals(self, **updates: Any) -> Evidence:
        merged = dict(self.signals)
        merged.update(updates)
        return Evidence(chapter_id=self.chapter_id, signals=merged)

    def to_dict(self) -> dict[str, Any]:
        return {
            "chapter_id": self.chapter_id,
            "captured_at": self.captured_at,
            "signals": {k: _canonical(v) for k, v in self.signals.items()},
        }


class BaseEvidenceCollector(ABC):
    """Produces evidence for chapters.

    Contract: every key in :attr:`signals` is present in the returned
    evidence, with :data:`UNKNOWN` standing in for values that could not be
    determined. A key is never silently omitted.
    """

    signals: tuple[str, ...] = ()

    @abstractmethod
    def collect(self, chapter: Chapter) -> Evidence:
        """Capture a fresh evidence snapshot for ``chapter``."""
        ...


def read_evidence_file(path: Path) -> dict[str, Any]:
    """Read a JSON or YAML evidence file into a plain dict of signals.

    Files may either hold the signal map directly or nest it under a
    ``signals`` key (the layout written by :meth:`Evidence.to_dict`).
    """
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix == ".json":
            raw = json.loads(text)
        else:
            raw = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ValueError(f"Unreadable evidence file {path}: {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"Expected a mapping of signals in {path}")
    if isinstance(raw.get("signals"), dict):
        return dict(raw["signals"])
    return raw


class FileEvidenceCollector(BaseEvidenceCollector):
    """Reads evidence captured earlier by build/test tooling from ``evidence_dir``.

    Looks for ``<chapter_id>.json``, ``.yaml`` or ``.yml``.
    """

    def __init__(self, evidence_dir: Path | str, signals: Iterable[str] = ()) -> None:
        self.evidence_dir = Path(evidence_dir)
        self.signals = tuple(signals)

    def find(self, chapter_id: str) -> Path | None:
        for suffix in EVIDENCE_SUFFIXES:
            candidate = self.evidence_dir / f"{chapter_id}{suffix}"
            if candidate.exists():
                return candidate
        return None

    def collect(self, chapter: Chapter) -> Evidence:
        path = self.find(chapter.id)
        if path is None:
            raise FileNotFoundError(
                f"No evidence for chapter '{chapter.id}' in {self.evidence_dir}"
            )

        raw = read_evidence_file(path)
        for key in self.signals:
            if key not in raw:
                logger.debug(f"Evidence for {chapter.id} lacks '{key}', marking unknown")
                raw[key] = None

        return Evidence(chapter_id=chapter.id, signals=raw)
