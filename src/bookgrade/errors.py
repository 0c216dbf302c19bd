"""Error taxonomy for catalog loading, scoring and lifecycle actions."""

from __future__ import annotations


class BookgradeError(Exception):
    """Base class for all bookgrade errors."""


class MissingSignalError(BookgradeError):
    """A rule referenced a signal the evidence does not carry.

    Recoverable: the scorer turns it into a zero sub-score for that rule only.
    """

    def __init__(self, rule: str, signal: str, reason: str = "signal unavailable"):
        self.rule = rule
        self.signal = signal
        self.reason = reason
        super().__init__(f"Rule '{rule}': {reason} ({signal!r})")


class MalformedRuleError(BookgradeError):
    """A rule in the catalog is not well formed. Raised at catalog load time."""

    def __init__(self, rule: str, reason: str):
        self.rule = rule
        self.reason = reason
        super().__init__(f"Malformed rule '{rule}': {reason}")


class InvalidTransitionError(BookgradeError):
    """An explicit lifecycle action is not allowed from the chapter's status."""
