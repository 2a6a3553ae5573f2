"""Condition expressions: a closed AST parsed from JSON-logic documents.

Authored conditions are stored as JSON-logic trees such as::

    {">=": [{"var": "stats.knowledge"}, 10]}
    {"and": [{"hasItem": "castle_key"}, {">=": [{"walletBalance": "gold"}, 50]}]}

``parse_expression`` turns a tree into one of the node classes below exactly
once; ``evaluate_expression`` interprets the node against a read-only
``ConditionContext``. Operators outside the built-in set become ``Predicate``
nodes and are resolved through an explicit predicate table at evaluation time.
Anything that cannot be parsed becomes an ``Invalid`` node, which always
raises when evaluated.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Mapping, Sequence, Tuple, Union

from cyoa.core.errors import EvaluationError
from cyoa.domain.state import GameState


@dataclass(frozen=True, slots=True)
class Const:
    value: Any


@dataclass(frozen=True, slots=True)
class Array:
    items: Tuple["Expr", ...]


@dataclass(frozen=True, slots=True)
class Var:
    path: "Expr"
    default: "Expr | None" = None


@dataclass(frozen=True, slots=True)
class Missing:
    keys: Tuple["Expr", ...]


@dataclass(frozen=True, slots=True)
class Compare:
    operator: str
    operands: Tuple["Expr", ...]


@dataclass(frozen=True, slots=True)
class And:
    operands: Tuple["Expr", ...]


@dataclass(frozen=True, slots=True)
class Or:
    operands: Tuple["Expr", ...]


@dataclass(frozen=True, slots=True)
class Not:
    operand: "Expr"


@dataclass(frozen=True, slots=True)
class Truthy:
    operand: "Expr"


@dataclass(frozen=True, slots=True)
class Conditional:
    """``if`` chain: condition, result, condition, result, ..., fallback."""

    branches: Tuple["Expr", ...]


@dataclass(frozen=True, slots=True)
class Arithmetic:
    operator: str
    operands: Tuple["Expr", ...]


@dataclass(frozen=True, slots=True)
class Membership:
    needle: "Expr"
    haystack: "Expr"


@dataclass(frozen=True, slots=True)
class Predicate:
    name: str
    args: Tuple["Expr", ...]


@dataclass(frozen=True, slots=True)
class Invalid:
    reason: str


Expr = Union[
    Const,
    Array,
    Var,
    Missing,
    Compare,
    And,
    Or,
    Not,
    Truthy,
    Conditional,
    Arithmetic,
    Membership,
    Predicate,
    Invalid,
]

MAX_CONDITION_DEPTH = 64

_COMPARISON_ARITY = {
    "==": (2, 2),
    "!=": (2, 2),
    "===": (2, 2),
    "!==": (2, 2),
    ">": (2, 2),
    ">=": (2, 2),
    "<": (2, 3),
    "<=": (2, 3),
}
_ARITHMETIC_ARITY = {
    "+": (1, None),
    "*": (1, None),
    "-": (1, 2),
    "/": (2, 2),
    "%": (2, 2),
    "min": (1, None),
    "max": (1, None),
}


@dataclass(frozen=True, slots=True)
class ConditionContext:
    """Read-only projection of a game state used by condition evaluation."""

    stats: Mapping[str, Any]
    wallets: Mapping[str, Any]
    inventory: Mapping[str, Any]
    flags: Mapping[str, Any]
    status_effects: Tuple[Mapping[str, Any], ...]
    has_status_effect: Mapping[str, bool]
    visited_nodes: Tuple[str, ...]
    has_visited: Mapping[str, bool]
    current_node_id: str
    choice_count: int

    @classmethod
    def from_state(cls, state: GameState) -> "ConditionContext":
        status_effects = tuple(
            MappingProxyType(
                {
                    "type": effect.type,
                    "value": effect.value,
                    "duration": effect.duration,
                    "source": effect.source,
                }
            )
            for effect in state.status_effects
        )
        return cls(
            stats=MappingProxyType(dict(state.stats)),
            wallets=MappingProxyType(dict(state.wallets)),
            inventory=MappingProxyType(dict(state.inventory)),
            flags=MappingProxyType(dict(state.flags)),
            status_effects=status_effects,
            has_status_effect=MappingProxyType({effect.type: True for effect in state.status_effects}),
            visited_nodes=tuple(state.visited_nodes),
            has_visited=MappingProxyType({node_id: True for node_id in state.visited_nodes}),
            current_node_id=state.current_node_id,
            choice_count=len(state.choices_history),
        )

    def as_data(self) -> Mapping[str, Any]:
        """Return the variable namespace addressed by ``var`` lookups."""
        return MappingProxyType(
            {
                "stats": self.stats,
                "wallets": self.wallets,
                "inventory": self.inventory,
                "flags": self.flags,
                "statusEffects": self.status_effects,
                "hasStatusEffect": self.has_status_effect,
                "visitedNodes": self.visited_nodes,
                "hasVisited": self.has_visited,
                "currentNodeId": self.current_node_id,
                "choiceCount": self.choice_count,
            }
        )


PredicateFunction = Callable[[ConditionContext, Sequence[Any]], Any]
PredicateTable = Mapping[str, PredicateFunction]


def parse_expression(logic: Any) -> Expr:
    """Parse a JSON-logic tree, returning ``Invalid`` instead of raising."""
    try:
        return _parse(logic, 0)
    except EvaluationError as exc:
        return Invalid(reason=str(exc))
    except RecursionError:
        return Invalid(reason="Condition is nested too deeply.")


def _parse(logic: Any, depth: int) -> Expr:
    if depth > MAX_CONDITION_DEPTH:
        raise EvaluationError(f"Condition is nested deeper than {MAX_CONDITION_DEPTH} levels.")
    if logic is None or isinstance(logic, (bool, int, float, str)):
        return Const(logic)
    if isinstance(logic, (list, tuple)):
        return Array(tuple(_parse(item, depth + 1) for item in logic))
    if not isinstance(logic, Mapping):
        raise EvaluationError(f"Unsupported condition node of type {type(logic).__name__}.")
    if len(logic) != 1:
        raise EvaluationError(f"Operation objects need exactly one operator key, got {sorted(map(str, logic))}.")

    operator, raw_args = next(iter(logic.items()))
    if not isinstance(operator, str) or not operator:
        raise EvaluationError("Operator names must be non-empty strings.")
    raw_list = list(raw_args) if isinstance(raw_args, (list, tuple)) else [raw_args]

    if operator == "var":
        if not raw_list or len(raw_list) > 2:
            raise EvaluationError("'var' takes a path and an optional default.")
        default = _parse(raw_list[1], depth + 1) if len(raw_list) == 2 else None
        return Var(path=_parse(raw_list[0], depth + 1), default=default)
    if operator == "missing":
        if len(raw_list) == 1 and isinstance(raw_list[0], (list, tuple)):
            raw_list = list(raw_list[0])
        return Missing(tuple(_parse(key, depth + 1) for key in raw_list))

    args = tuple(_parse(arg, depth + 1) for arg in raw_list)
    if operator in _COMPARISON_ARITY:
        _check_arity(operator, args, *_COMPARISON_ARITY[operator])
        return Compare(operator, args)
    if operator in _ARITHMETIC_ARITY:
        _check_arity(operator, args, *_ARITHMETIC_ARITY[operator])
        return Arithmetic(operator, args)
    if operator == "and":
        _check_arity(operator, args, 1, None)
        return And(args)
    if operator == "or":
        _check_arity(operator, args, 1, None)
        return Or(args)
    if operator == "!":
        _check_arity(operator, args, 1, 1)
        return Not(args[0])
    if operator == "!!":
        _check_arity(operator, args, 1, 1)
        return Truthy(args[0])
    if operator in ("if", "?:"):
        _check_arity(operator, args, 1, None)
        return Conditional(args)
    if operator == "in":
        _check_arity(operator, args, 2, 2)
        return Membership(needle=args[0], haystack=args[1])
    return Predicate(operator, args)


def _check_arity(operator: str, args: Sequence[Expr], minimum: int, maximum: int | None) -> None:
    if len(args) < minimum or (maximum is not None and len(args) > maximum):
        expected = str(minimum) if minimum == maximum else f"{minimum}..{maximum if maximum is not None else 'n'}"
        raise EvaluationError(f"'{operator}' expects {expected} operands, got {len(args)}.")


def truthy(value: Any) -> bool:
    """JSON-logic truthiness: empty arrays are false, objects are true."""
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    if isinstance(value, Mapping):
        return True
    return bool(value)


def evaluate_expression(expr: Expr, context: ConditionContext, predicates: PredicateTable) -> Any:
    """Interpret ``expr`` and return its raw value.

    Raises:
        EvaluationError: On invalid nodes, unknown predicates and type errors.
    """
    return _Interpreter(context, predicates).run(expr)


class _Interpreter:
    def __init__(self, context: ConditionContext, predicates: PredicateTable) -> None:
        self._context = context
        self._data = context.as_data()
        self._predicates = predicates

    def run(self, expr: Expr) -> Any:
        if isinstance(expr, Const):
            return expr.value
        if isinstance(expr, Array):
            return [self.run(item) for item in expr.items]
        if isinstance(expr, Var):
            return self._lookup(expr)
        if isinstance(expr, Missing):
            return self._missing(expr)
        if isinstance(expr, Compare):
            return self._compare(expr)
        if isinstance(expr, And):
            value: Any = None
            for operand in expr.operands:
                value = self.run(operand)
                if not truthy(value):
                    return value
            return value
        if isinstance(expr, Or):
            value = None
            for operand in expr.operands:
                value = self.run(operand)
                if truthy(value):
                    return value
            return value
        if isinstance(expr, Not):
            return not truthy(self.run(expr.operand))
        if isinstance(expr, Truthy):
            return truthy(self.run(expr.operand))
        if isinstance(expr, Conditional):
            return self._conditional(expr)
        if isinstance(expr, Arithmetic):
            return self._arithmetic(expr)
        if isinstance(expr, Membership):
            return self._membership(expr)
        if isinstance(expr, Predicate):
            function = self._predicates.get(expr.name)
            if function is None:
                raise EvaluationError(f"Unrecognized operation: {expr.name}")
            return function(self._context, [self.run(arg) for arg in expr.args])
        if isinstance(expr, Invalid):
            raise EvaluationError(expr.reason)
        raise EvaluationError(f"Unsupported expression node: {type(expr).__name__}")

    def _lookup(self, expr: Var) -> Any:
        path = self.run(expr.path)
        if path is None or path == "":
            return self._data
        if not isinstance(path, (str, int)) or isinstance(path, bool):
            raise EvaluationError(f"Variable paths must be strings or integers, got {path!r}.")
        current: Any = self._data
        for part in str(path).split("."):
            if isinstance(current, Mapping) and part in current:
                current = current[part]
            elif isinstance(current, (list, tuple)) and part.isdigit() and int(part) < len(current):
                current = current[int(part)]
            else:
                return self.run(expr.default) if expr.default is not None else None
        return current

    def _missing(self, expr: Missing) -> list[Any]:
        missing = []
        for key_expr in expr.keys:
            key = self.run(key_expr)
            value = self._lookup(Var(path=Const(key)))
            if value is None or value == "":
                missing.append(key)
        return missing

    def _compare(self, expr: Compare) -> bool:
        values = [self.run(operand) for operand in expr.operands]
        operator = expr.operator
        if operator == "==":
            return _loose_equals(values[0], values[1])
        if operator == "!=":
            return not _loose_equals(values[0], values[1])
        if operator == "===":
            return _strict_equals(values[0], values[1])
        if operator == "!==":
            return not _strict_equals(values[0], values[1])
        if len(values) == 3:
            return _ordered(operator, values[0], values[1]) and _ordered(operator, values[1], values[2])
        return _ordered(operator, values[0], values[1])

    def _conditional(self, expr: Conditional) -> Any:
        branches = expr.branches
        index = 0
        while index + 1 < len(branches):
            if truthy(self.run(branches[index])):
                return self.run(branches[index + 1])
            index += 2
        if index < len(branches):
            return self.run(branches[index])
        return None

    def _arithmetic(self, expr: Arithmetic) -> float | int:
        values = [_to_number(self.run(operand)) for operand in expr.operands]
        operator = expr.operator
        if operator == "+":
            return sum(values)
        if operator == "*":
            return math.prod(values)
        if operator == "-":
            return -values[0] if len(values) == 1 else values[0] - values[1]
        if operator == "min":
            return min(values)
        if operator == "max":
            return max(values)
        if values[1] == 0:
            raise EvaluationError(f"Division by zero in '{operator}'.")
        if operator == "/":
            return values[0] / values[1]
        return math.fmod(values[0], values[1])

    def _membership(self, expr: Membership) -> bool:
        needle = self.run(expr.needle)
        haystack = self.run(expr.haystack)
        if isinstance(haystack, str):
            if not isinstance(needle, str):
                raise EvaluationError("'in' on a string needs a string needle.")
            return needle in haystack
        if isinstance(haystack, (list, tuple, Mapping)):
            return needle in haystack
        raise EvaluationError(f"'in' cannot search a value of type {type(haystack).__name__}.")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _to_number(value: Any) -> int | float:
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if _is_number(value):
        return value
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError as exc:
            raise EvaluationError(f"Cannot use {value!r} as a number.") from exc
    raise EvaluationError(f"Cannot use a value of type {type(value).__name__} as a number.")


def _loose_equals(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    scalar = (bool, int, float, str)
    if isinstance(left, scalar) and isinstance(right, scalar):
        try:
            return _to_number(left) == _to_number(right)
        except EvaluationError:
            return False
    return left == right


def _strict_equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if _is_number(left) and _is_number(right):
        return left == right
    return type(left) is type(right) and left == right


def _ordered(operator: str, left: Any, right: Any) -> bool:
    if isinstance(left, str) and isinstance(right, str):
        pair: tuple[Any, Any] = (left, right)
    else:
        pair = (_to_number(left), _to_number(right))
    if operator == "<":
        return pair[0] < pair[1]
    if operator == "<=":
        return pair[0] <= pair[1]
    if operator == ">":
        return pair[0] > pair[1]
    return pair[0] >= pair[1]


__all__ = [
    "And",
    "Arithmetic",
    "Array",
    "Compare",
    "ConditionContext",
    "Conditional",
    "Const",
    "Expr",
    "Invalid",
    "MAX_CONDITION_DEPTH",
    "Membership",
    "Missing",
    "Not",
    "Or",
    "Predicate",
    "PredicateFunction",
    "PredicateTable",
    "Truthy",
    "Var",
    "evaluate_expression",
    "parse_expression",
    "truthy",
]
