"""Error taxonomy for the scoring and shoot-off engine.

Every error carries a machine-readable ``kind`` next to the human message so
API layers can map failures without parsing strings.
"""
from __future__ import annotations


class ScoringError(Exception):
    """Base class for all engine errors."""

    kind = "scoring_error"

    def __init__(self, message: str, *, kind: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind


class ScoreValidationError(ScoringError):
    """Malformed or out-of-range input. Nothing was mutated."""

    kind = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        constraint: str | None = None,
        kind: str | None = None,
    ) -> None:
        super().__init__(message, kind=kind)
        self.field = field
        self.constraint = constraint


class StateConflictError(ScoringError):
    """Operation attempted in a state that does not allow it."""

    kind = "state_conflict"

    def __init__(
        self,
        message: str,
        *,
        current_status: str | None = None,
        operation: str | None = None,
        kind: str | None = None,
    ) -> None:
        super().__init__(message, kind=kind)
        self.current_status = current_status
        self.operation = operation


class InvariantViolation(ScoringError):
    """Stored data disagrees with the values derived from its source rows."""

    kind = "invariant_violation"


class ConfigurationError(ScoringError):
    """Tournament shoot-off configuration is missing or invalid."""

    kind = "configuration_error"


class NotFoundError(ScoringError):
    """Unknown shoot-off, round or participant id."""

    kind = "not_found"


__all__ = [
    "ScoringError",
    "ScoreValidationError",
    "StateConflictError",
    "InvariantViolation",
    "ConfigurationError",
    "NotFoundError",
]
