from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from expandvars import expandvars
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from bookgrade.lifecycle import Chapter, ChapterStatus
from bookgrade.scoring import Grade, ScoreReport

_RUNG_OPS = ("eq", "ge", "gt", "le", "lt")


class RungConfig(BaseModel):
    """One ladder step, written as ``{ge: 95, points: 15}``."""

    model_config = ConfigDict(extra="forbid")
    eq: bool | int | float | str | None = None
    ge: float | None = None
    gt: float | None = None
    le: float | None = None
    lt: float | None = None
    points: float

    @model_validator(mode="after")
    def exactly_one_comparison(self) -> "RungConfig":
        given = [op for op in _RUNG_OPS if op in self.model_fields_set]
        if len(given) != 1:
            raise ValueError(
                f"each ladder rung needs exactly one of {', '.join(_RUNG_OPS)}; got {given or 'none'}"
            )
        return self

    @property
    def op(self) -> str:
        return next(op for op in _RUNG_OPS if op in self.model_fields_set)

    @property
    def threshold(self) -> Any:
        return getattr(self, self.op)


class RuleConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    name: str
    category: str
    signal: str
    max_points: float
    ladder: list[RungConfig]
    description: str = ""
    remediation: str = ""


class CatalogConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    version: str | None = None
    rules: list[RuleConfig]

    @field_validator("rules")
    @classmethod
    def rules_must_not_be_empty(cls, v: list[RuleConfig]) -> list[RuleConfig]:
        if not v:
            raise ValueError("rules must not be empty")
        return v


class ChapterConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    id: str
    number: int
    title: str = ""
    status: ChapterStatus = ChapterStatus.PLANNED
    source: str | None = None

    @field_validator("id")
    @classmethod
    def id_is_a_plain_name(cls, v: str) -> str:
        if not v or any(c in v for c in "/\\ ") or v == "all":
            raise ValueError(f"Chapter id '{v}' must be a plain name (not 'all')")
        return v

    def to_chapter(self) -> Chapter:
        return Chapter(id=self.id, number=self.number, title=self.title, status=self.status)


class BookConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    title: str = ""
    catalog: str | None = None
    evidence_dir: str = "evidence"
    min_score: float = Field(default=90.0, ge=0.0, le=100.0)
    min_grade: Grade | None = None
    state_file: str = ".bookgrade/state.json"
    cache_dir: str = ".bookgrade/cache"
    history_file: str = ".bookgrade/history.jsonl"
    chapters: list[ChapterConfig]

    @field_validator(
        "catalog", "evidence_dir", "state_file", "cache_dir", "history_file"
    )
    @classmethod
    def expand_env_variables(cls, v: str | None) -> str | None:
        """Expand ${VAR} and ${VAR:-default}; unset variables without a default are errors."""
        if v is None:
            return v
        try:
            return expandvars(v, nounset=True)
        except Exception as e:
            raise ValueError(f"cannot expand '{v}': {e}") from e

    @model_validator(mode="after")
    def chapters_are_unique(self) -> BookConfig:
        if not self.chapters:
            raise ValueError("chapters must not be empty")
        ids = [c.id for c in self.chapters]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"duplicate chapter ids: {', '.join(duplicates)}")
        numbers = [c.number for c in self.chapters]
        if len(numbers) != len(set(numbers)):
            raise ValueError("chapter numbers must be unique")
        return self

    def get_chapter(self, chapter_id: str) -> ChapterConfig:
        for chapter in self.chapters:
            if chapter.id == chapter_id:
                return chapter
        raise KeyError(chapter_id)

    def passes(self, report: ScoreReport, min_score: float | None = None) -> bool:
        """True when the report clears the configured passing threshold."""
        threshold = self.min_score if min_score is None else min_score
        if report.exact_percentage < threshold:
            return False
        if self.min_grade is not None and not report.grade.meets(self.min_grade):
            return False
        return True


def load_config(path: Path) -> BookConfig:
    """Load and validate a book config from a YAML file."""
    config_dir = path.parent.resolve()

    with open(path) as f:
        raw = yaml.safe_load(f)

    config = BookConfig(**(raw or {}))

    # Resolve relative paths relative to config file location
    for field in ("catalog", "evidence_dir", "state_file", "cache_dir", "history_file"):
        value = getattr(config, field)
        if value is None:
            continue
        p = Path(value)
        if not p.is_absolute():
            setattr(config, field, str((config_dir / p).resolve()))

    for chapter in config.chapters:
        if chapter.source and not Path(chapter.source).is_absolute():
            chapter.source = str((config_dir / chapter.source).resolve())

    return config
