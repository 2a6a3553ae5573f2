"""Condition evaluation against a read-only projection of the game state.

Conditions use JSON-logic, for example::

    {">=": [{"var": "stats.knowledge"}, 10]}
    {"and": [{">=": [{"walletBalance": "gold"}, 50]}, {"hasItem": "castle_key"}]}

Evaluation fails closed: a condition that cannot be parsed or evaluated is
logged and treated as not met, so a broken story never unlocks content.
"""
from __future__ import annotations

import logging
import reprlib
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Sequence, Union

from cyoa.core.errors import EvaluationError
from cyoa.domain.conditions import (
    ConditionContext,
    PredicateFunction,
    PredicateTable,
    evaluate_expression,
    truthy,
)
from cyoa.domain.defs import ConditionDef
from cyoa.domain.state import GameState

logger = logging.getLogger(__name__)

ConditionLike = Union[ConditionDef, Mapping[str, Any]]


@dataclass(frozen=True, slots=True)
class FailedCondition:
    """Index and source of a condition that did not pass."""

    index: int
    logic: Any


@dataclass(slots=True)
class Availability:
    """Whether a condition list passes, and which entries failed."""

    available: bool
    failed_conditions: List[FailedCondition] = field(default_factory=list)

    @property
    def failed_indices(self) -> List[int]:
        return [failed.index for failed in self.failed_conditions]


def _single_arg(args: Sequence[Any], name: str) -> Any:
    if not args:
        raise EvaluationError(f"'{name}' needs an argument.")
    return args[0]


def _has_item(context: ConditionContext, args: Sequence[Any]) -> bool:
    quantity = context.inventory.get(_single_arg(args, "hasItem"), 0)
    return isinstance(quantity, (int, float)) and quantity > 0


def _has_items(context: ConditionContext, args: Sequence[Any]) -> bool:
    keys = args[0] if len(args) == 1 and isinstance(args[0], (list, tuple)) else args
    return all(_has_item(context, [key]) for key in keys)


def _item_count(context: ConditionContext, args: Sequence[Any]) -> Any:
    return context.inventory.get(_single_arg(args, "itemCount"), 0) or 0


def _has_visited_node(context: ConditionContext, args: Sequence[Any]) -> bool:
    return context.has_visited.get(_single_arg(args, "hasVisitedNode"), False)


def _has_status_effect(context: ConditionContext, args: Sequence[Any]) -> bool:
    return context.has_status_effect.get(_single_arg(args, "hasStatusEffect"), False)


def _wallet_balance(context: ConditionContext, args: Sequence[Any]) -> Any:
    return context.wallets.get(_single_arg(args, "walletBalance"), 0) or 0


def build_default_predicates(extra: Mapping[str, PredicateFunction] | None = None) -> PredicateTable:
    """Return the immutable table of story-specific operations.

    ``extra`` entries are added on top of (and may replace) the defaults.
    """
    table: Dict[str, PredicateFunction] = {
        "hasItem": _has_item,
        "hasItems": _has_items,
        "itemCount": _item_count,
        "hasVisitedNode": _has_visited_node,
        "hasStatusEffect": _has_status_effect,
        "walletBalance": _wallet_balance,
    }
    if extra:
        table.update(extra)
    return MappingProxyType(table)


class ConditionEvaluator:
    """Evaluates authored conditions with an explicit predicate table."""

    def __init__(self, predicates: PredicateTable | None = None) -> None:
        self._predicates = predicates if predicates is not None else build_default_predicates()

    @property
    def predicates(self) -> PredicateTable:
        return self._predicates

    def evaluate(self, condition: ConditionLike, state: GameState) -> bool:
        """Return True when the condition passes; any error counts as False."""
        return self._evaluate_in(condition, ConditionContext.from_state(state))

    def evaluate_all(self, conditions: Sequence[ConditionLike] | None, state: GameState) -> bool:
        """True when every condition passes; an empty list always passes."""
        if not conditions:
            return True
        context = ConditionContext.from_state(state)
        return all(self._evaluate_in(condition, context) for condition in conditions)

    def evaluate_any(self, conditions: Sequence[ConditionLike] | None, state: GameState) -> bool:
        """True when at least one condition passes; an empty list always passes."""
        if not conditions:
            return True
        context = ConditionContext.from_state(state)
        return any(self._evaluate_in(condition, context) for condition in conditions)

    def check_availability(self, conditions: Sequence[ConditionLike] | None, state: GameState) -> Availability:
        """Evaluate every condition and report the indices that failed."""
        if not conditions:
            return Availability(available=True)
        context = ConditionContext.from_state(state)
        failed: List[FailedCondition] = []
        for index, condition in enumerate(conditions):
            if not self._evaluate_in(condition, context):
                failed.append(FailedCondition(index=index, logic=_logic_of(condition)))
        return Availability(available=not failed, failed_conditions=failed)

    def _evaluate_in(self, condition: ConditionLike, context: ConditionContext) -> bool:
        try:
            parsed = self._coerce(condition)
            return truthy(evaluate_expression(parsed.expression, context, self._predicates))
        except Exception:
            # Fail closed: a broken condition never unlocks content.
            logger.error("Condition evaluation error for %s", reprlib.repr(_logic_of(condition)), exc_info=True)
            return False

    @staticmethod
    def _coerce(condition: ConditionLike) -> ConditionDef:
        if isinstance(condition, ConditionDef):
            return condition
        return ConditionDef.from_raw(condition)


def _logic_of(condition: ConditionLike) -> Any:
    if isinstance(condition, ConditionDef):
        return condition.logic
    if isinstance(condition, Mapping) and "logic" in condition:
        return condition["logic"]
    return condition
