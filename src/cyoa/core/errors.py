"""Exceptions raised by the gameplay engine."""
from __future__ import annotations

from typing import Any, Sequence


class EngineError(Exception):
    """Base class for every failure raised by the gameplay engine."""


class FormatError(EngineError):
    """Raised when a dice formula cannot be parsed."""

    def __init__(self, formula: object) -> None:
        super().__init__(f"Invalid dice formula: {formula!r}")
        self.formula = formula


class RangeError(EngineError):
    """Raised when dice or random-range parameters are out of bounds."""

    def __init__(self, message: str, formula: str | None = None) -> None:
        super().__init__(message)
        self.formula = formula


class EmptyInputError(EngineError):
    """Raised when a random selection is requested from an empty sequence."""


class EvaluationError(EngineError):
    """Raised inside condition evaluation; never escapes the evaluator."""


class InvalidOperationError(EngineError):
    """Raised when an effect cannot be applied to the current state."""


class ValidationError(EngineError):
    """Raised when a game state violates a core invariant."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class ConflictError(EngineError):
    """Raised when two states cannot be reconciled."""


class NotFoundError(EngineError):
    """Raised when a referenced story, node or save does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier


class InvalidChoiceError(EngineError):
    """Raised when a choice index does not address a choice on the node."""

    def __init__(self, node_id: str, choice_index: int, choice_count: int) -> None:
        super().__init__(
            f"Choice index {choice_index} is invalid for node '{node_id}' "
            f"({choice_count} choices available)."
        )
        self.node_id = node_id
        self.choice_index = choice_index
        self.choice_count = choice_count


class PreconditionFailedError(EngineError):
    """Base class for requests that are well-formed but not allowed right now."""


class ConditionsNotMetError(PreconditionFailedError):
    """Raised when a chosen choice is locked by its conditions."""

    def __init__(self, node_id: str, choice_index: int, failed_conditions: Sequence[Any]) -> None:
        indices = ", ".join(str(failed.index) for failed in failed_conditions)
        super().__init__(
            f"Choice {choice_index} on node '{node_id}' is locked (failed conditions: {indices})."
        )
        self.node_id = node_id
        self.choice_index = choice_index
        self.failed_conditions = list(failed_conditions)


class UnknownStatError(PreconditionFailedError):
    """Raised when a roll requirement names a stat the player does not have."""

    def __init__(self, stat: str) -> None:
        super().__init__(f"Stat not found: {stat}")
        self.stat = stat


class SaveLoadError(EngineError):
    """Raised when a persisted save cannot be read or written."""
