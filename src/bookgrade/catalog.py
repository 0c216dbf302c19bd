"""Rule catalog: threshold ladders, rule evaluation and load-time validation."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from enum import Enum
from numbers import Real
from pathlib import Path
from typing import Any, TYPE_CHECKING

import yaml
from pydantic import ValidationError

from bookgrade.errors import MalformedRuleError, MissingSignalError
from bookgrade.scoring import SubScore

if TYPE_CHECKING:
    from bookgrade.config import CatalogConfig
    from bookgrade.evidence import Evidence

DEFAULT_CATALOG_PATH = Path(__file__).parent / "catalogs" / "checklist.yaml"


class Op(str, Enum):
    EQ = "eq"
    GE = "ge"
    GT = "gt"
    LE = "le"
    LT = "lt"


_SYMBOLS = {Op.EQ: "==", Op.GE: ">=", Op.GT: ">", Op.LE: "<=", Op.LT: "<"}
_HIGHER_IS_STRICTER = frozenset({Op.GE, Op.GT})
_LOWER_IS_STRICTER = frozenset({Op.LE, Op.LT})


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _fmt(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


@dataclass(frozen=True)
class ThresholdRung:
    """One step of a threshold ladder: ``value <op> threshold`` earns ``points``."""

    op: Op
    threshold: Any
    points: float

    def holds(self, value: Any) -> bool:
        if self.op is Op.EQ:
            return value == self.threshold
        if self.op is Op.GE:
            return value >= self.threshold
        if self.op is Op.GT:
            return value > self.threshold
        if self.op is Op.LE:
            return value <= self.threshold
        return value < self.threshold

    def describe(self) -> str:
        return f"{_SYMBOLS[self.op]} {_fmt(self.threshold)}"

    def strictness_key(self) -> tuple[float, int]:
        """Orders rungs so that a larger key accepts a strictly smaller value set.

        Only meaningful between rungs of the same direction.
        """
        if self.op in _HIGHER_IS_STRICTER:
            return (float(self.threshold), 1 if self.op is Op.GT else 0)
        return (-float(self.threshold), 1 if self.op is Op.LT else 0)


@dataclass(frozen=True)
class Rule:
    """A named check turning one evidence signal into a bounded sub-score.

    The ladder is evaluated top to bottom and the first rung that holds wins,
    so rungs must run from strictest to most lenient. List-valued signals are
    compared by their length against ordered rungs.
    """

    name: str
    category: str
    signal: str
    max_points: float
    ladder: tuple[ThresholdRung, ...]
    description: str = ""
    remediation: str = ""

    @property
    def ordered(self) -> bool:
        return any(rung.op is not Op.EQ for rung in self.ladder)

    def measure(self, evidence: Evidence) -> Any:
        """Return the value the ladder is compared against.

        Raises MissingSignalError when the signal is absent, unknown, or not
        comparable with the ladder's thresholds.
        """
        if not evidence.has_signal(self.signal):
            raise MissingSignalError(self.name, self.signal)

        value = evidence.get(self.signal)
        if not self.ordered:
            return value
        if isinstance(value, tuple):
            return len(value)
        if isinstance(value, bool) or not _is_number(value):
            raise MissingSignalError(
                self.name, self.signal, reason="signal is not numeric"
            )
        return value

    def apply(self, evidence: Evidence) -> SubScore:
        measured = self.measure(evidence)
        shown = f"{self.signal}={_fmt(measured)}"

        for rung in self.ladder:
            if rung.holds(measured):
                return SubScore(
                    rule=self.name,
                    category=self.category,
                    points_earned=rung.points,
                    points_possible=self.max_points,
                    justification=f"{shown} ({rung.describe()})",
                )

        return SubScore(
            rule=self.name,
            category=self.category,
            points_earned=0.0,
            points_possible=self.max_points,
            justification=f"{shown} (below every threshold)",
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category,
            "signal": self.signal,
            "max_points": self.max_points,
            "ladder": [
                {rung.op.value: rung.threshold, "points": rung.points}
                for rung in self.ladder
            ],
            "description": self.description,
            "remediation": self.remediation,
        }


def validate_rule(rule: Rule) -> None:
    """Raise MalformedRuleError unless the rule's ladder is safe to evaluate first-match."""
    if not rule.ladder:
        raise MalformedRuleError(rule.name, "threshold ladder is empty")
    if rule.max_points <= 0:
        raise MalformedRuleError(rule.name, "max_points must be positive")

    for index, rung in enumerate(rule.ladder):
        if not 0 <= rung.points <= rule.max_points:
            raise MalformedRuleError(
                rule.name,
                f"rung {index} awards {_fmt(rung.points)} points, "
                f"outside 0..{_fmt(rule.max_points)}",
            )

    ops = {rung.op for rung in rule.ladder}
    if Op.EQ in ops:
        if len(ops) > 1:
            raise MalformedRuleError(
                rule.name, "ladder mixes 'eq' with ordered comparisons"
            )
        values = [rung.threshold for rung in rule.ladder]
        if len(values) != len({json.dumps(v, sort_keys=True) for v in values}):
            raise MalformedRuleError(rule.name, "ladder repeats an 'eq' value")
        return

    if ops & _HIGHER_IS_STRICTER and ops & _LOWER_IS_STRICTER:
        raise MalformedRuleError(
            rule.name, "ladder mixes upper and lower bound comparisons"
        )

    for index, rung in enumerate(rule.ladder):
        if not _is_number(rung.threshold):
            raise MalformedRuleError(
                rule.name,
                f"rung {index} compares with non-numeric threshold {rung.threshold!r}",
            )

    for index in range(1, len(rule.ladder)):
        stricter, looser = rule.ladder[index - 1], rule.ladder[index]
        if not stricter.strictness_key() > looser.strictness_key():
            raise MalformedRuleError(
                rule.name,
                f"rung {index} ({looser.describe()}) is not more lenient than "
                f"rung {index - 1} ({stricter.describe()}); "
                "ladders must run from strictest to most lenient",
            )
        if looser.points > stricter.points:
            raise MalformedRuleError(
                rule.name,
                f"rung {index} awards more points than the stricter rung above it",
            )


class RuleCatalog(Sequence):
    """Ordered, validated rules. Validation happens once, here, before any scoring."""

    def __init__(self, rules: Iterable[Rule], version: str | None = None) -> None:
        rules = tuple(rules)
        seen: set[str] = set()
        for rule in rules:
            if rule.name in seen:
                raise MalformedRuleError(rule.name, "duplicate rule name")
            seen.add(rule.name)
            validate_rule(rule)

        self.rules: tuple[Rule, ...] = rules
        self.version: str = version or self._content_digest(rules)

    @staticmethod
    def _content_digest(rules: tuple[Rule, ...]) -> str:
        payload = json.dumps([r.to_dict() for r in rules], sort_keys=True, default=str)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:12]

    def __iter__(self) -> Iterator[Rule]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)

    def __getitem__(self, index):  # type: ignore[override]
        return self.rules[index]

    @property
    def signals(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(rule.signal for rule in self.rules))

    @property
    def categories(self) -> tuple[str, ...]:
        return tuple(dict.fromkeys(rule.category for rule in self.rules))

    @property
    def max_points(self) -> float:
        return sum(rule.max_points for rule in self.rules)

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "rules": [r.to_dict() for r in self.rules]}


def catalog_from_config(config: CatalogConfig) -> RuleCatalog:
    rules = []
    for rule_cfg in config.rules:
        ladder = tuple(
            ThresholdRung(op=Op(rung.op), threshold=rung.threshold, points=rung.points)
            for rung in rule_cfg.ladder
        )
        rules.append(
            Rule(
                name=rule_cfg.name,
                category=rule_cfg.category,
                signal=rule_cfg.signal,
                max_points=rule_cfg.max_points,
                ladder=ladder,
                description=rule_cfg.description,
                remediation=rule_cfg.remediation,
            )
        )
    return RuleCatalog(rules, version=config.version)


def load_catalog(path: Path) -> RuleCatalog:
    """Load and validate a rule catalog from a YAML file.

    Both schema errors and ladder ordering problems surface as
    MalformedRuleError so callers have a single fatal error to handle.
    """
    from bookgrade.config import CatalogConfig

    with open(path) as f:
        try:
            raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise MalformedRuleError(str(path), f"invalid YAML: {e}") from e
    if not isinstance(raw, dict):
        raise MalformedRuleError(str(path), "catalog must be a mapping with a rules list")

    try:
        config = CatalogConfig(**raw)
    except ValidationError as e:
        raise MalformedRuleError(str(path), str(e)) from e
    return catalog_from_config(config)


def default_catalog() -> RuleCatalog:
    """The bundled 100-point chapter checklist."""
    return load_catalog(DEFAULT_CATALOG_PATH)
