"""Pure helpers that compute the outcome of state-mutating effects."""
from __future__ import annotations

import math
from dataclasses import replace
from typing import List, Sequence

from cyoa.core.errors import InvalidOperationError
from cyoa.core.types import FlagValue, Number
from cyoa.domain.state import StatusEffect

WALLET_FLOOR = 0
INVENTORY_FLOOR = 0
STAT_FLOOR = 1


def coerce_number(value: object, context: str) -> Number:
    """Return ``value`` as an int or float, accepting numeric strings."""
    if isinstance(value, bool):
        raise InvalidOperationError(f"{context} must be numeric, got a boolean.")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidOperationError(f"{context} must be a finite number.")
        return int(value) if value.is_integer() else value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            parsed = float(text)
        except ValueError as exc:
            raise InvalidOperationError(f"{context} must be numeric, got {value!r}.") from exc
        return coerce_number(parsed, context)
    raise InvalidOperationError(f"{context} must be numeric, got {type(value).__name__}.")


def combine(current: Number, operation: str, value: Number) -> Number:
    """Apply an arithmetic effect operation to ``current``."""
    try:
        if operation == "add":
            result = current + value
        elif operation == "subtract":
            result = current - value
        elif operation == "set":
            result = value
        elif operation == "multiply":
            result = current * value
        else:
            raise InvalidOperationError(f"Unknown effect operation: {operation}")
    except OverflowError as exc:
        raise InvalidOperationError(f"Result of {operation} {value!r} on {current!r} is out of range.") from exc
    if isinstance(result, float) and not math.isfinite(result):
        raise InvalidOperationError(f"Result of {operation} {value!r} on {current!r} is not a finite number.")
    return result


def to_whole_number(value: Number) -> int:
    """Round down to an integer; wallets, inventory and stats hold whole numbers."""
    if isinstance(value, int):
        return value
    try:
        return math.floor(value)
    except (OverflowError, ValueError) as exc:
        raise InvalidOperationError(f"Cannot round {value!r} to a whole number.") from exc


def next_wallet_balance(current: Number, operation: str, value: Number) -> int:
    return max(WALLET_FLOOR, to_whole_number(combine(current, operation, value)))


def next_inventory_quantity(current: Number, operation: str, value: Number) -> int:
    """Return the new quantity; callers delete the key when this is zero."""
    return max(INVENTORY_FLOOR, to_whole_number(combine(current, operation, value)))


def next_stat_value(current: Number, operation: str, value: Number) -> int:
    return max(STAT_FLOOR, to_whole_number(combine(current, operation, value)))


def next_flag_value(flag_name: str, current: FlagValue | None, operation: str, value: object) -> FlagValue:
    """Compute a flag update.

    ``set`` stores the literal. Arithmetic operations treat an absent flag as
    zero and need both sides to be numbers.
    """
    if operation == "set":
        return value  # type: ignore[return-value]
    if operation not in ("add", "subtract", "multiply"):
        raise InvalidOperationError(f"Unknown effect operation: {operation}")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidOperationError(f"Cannot {operation} non-numeric value {value!r} on flag '{flag_name}'.")
    existing = 0 if current is None else current
    if isinstance(existing, bool) or not isinstance(existing, (int, float)):
        raise InvalidOperationError(
            f"Cannot {operation} on flag '{flag_name}' holding non-numeric value {existing!r}."
        )
    return combine(existing, operation, value)


def upsert_status_effect(effects: Sequence[StatusEffect], status: StatusEffect) -> List[StatusEffect]:
    """Return a new list where ``status`` replaces any effect of the same type."""
    updated: List[StatusEffect] = []
    replaced = False
    for existing in effects:
        if existing.type != status.type:
            updated.append(existing)
        elif not replaced:
            updated.append(status)
            replaced = True
    if not replaced:
        updated.append(status)
    return updated


def remove_status_effects(effects: Sequence[StatusEffect], effect_type: str) -> List[StatusEffect]:
    return [effect for effect in effects if effect.type != effect_type]


def tick_status_effects(effects: Sequence[StatusEffect]) -> List[StatusEffect]:
    """Advance timed effects by one turn and drop the expired ones."""
    remaining: List[StatusEffect] = []
    for effect in effects:
        if effect.duration is None:
            remaining.append(effect)
            continue
        duration = effect.duration - 1 if effect.duration > 0 else effect.duration
        if duration > 0:
            remaining.append(replace(effect, duration=duration))
    return remaining
