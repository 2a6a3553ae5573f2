"""Applies authored effects to a game state.

Effects mutate the state they are given; the navigator only ever hands this
processor the clone it created for the current transition.
"""
from __future__ import annotations

import logging
from typing import Any, List, Mapping, Sequence, Union

from cyoa.core.errors import InvalidOperationError
from cyoa.domain.defs import EffectDef
from cyoa.domain.effects import (
    coerce_number,
    next_flag_value,
    next_inventory_quantity,
    next_stat_value,
    next_wallet_balance,
    remove_status_effects,
    tick_status_effects,
    upsert_status_effect,
)
from cyoa.domain.state import GameState, StatusEffect

logger = logging.getLogger(__name__)

DEFAULT_WALLET_BALANCE = 0
DEFAULT_INVENTORY_QUANTITY = 0
DEFAULT_STAT_VALUE = 10

EffectLike = Union[EffectDef, Mapping[str, Any]]


def effect_from_mapping(raw: Mapping[str, Any]) -> EffectDef:
    """Build an EffectDef from its JSON form."""
    metadata = raw.get("metadata")
    return EffectDef(
        type=str(raw.get("type", "")),
        target=str(raw.get("target", "")),
        operation=str(raw.get("operation", "")),
        value=raw.get("value"),
        metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
    )


class EffectProcessor:
    """Interpreter for wallet, inventory, stat, flag and status effects."""

    def apply_effect(self, effect: EffectLike, state: GameState) -> bool:
        """Apply one effect in place.

        Returns:
            ``True`` when the effect was applied, ``False`` for unknown types.

        Raises:
            InvalidOperationError: If the operation or value cannot be applied.
        """
        effect = self._coerce(effect)
        if effect.type == "wallet":
            self._apply_wallet(effect, state)
        elif effect.type == "inventory":
            self._apply_inventory(effect, state)
        elif effect.type == "stat":
            self._apply_stat(effect, state)
        elif effect.type == "flag":
            self._apply_flag(effect, state)
        elif effect.type == "status_effect":
            self._apply_status_effect(effect, state)
        else:
            logger.warning("Unknown effect type: %s", effect.type)
            return False
        return True

    def apply_effects(self, effects: Sequence[EffectLike] | None, state: GameState) -> List[EffectDef]:
        """Apply effects in order and return the ones that took hold.

        A failing effect is logged and skipped; the rest of the batch still runs.
        """
        if not effects:
            return []
        applied: List[EffectDef] = []
        for raw in effects:
            effect = self._coerce(raw)
            try:
                if self.apply_effect(effect, state):
                    applied.append(effect)
            except InvalidOperationError:
                logger.error("Error applying effect %r", effect, exc_info=True)
        state.touch()
        return applied

    def process_status_effect_durations(self, state: GameState) -> None:
        """Advance timed status effects by one node transition."""
        before = len(state.status_effects)
        state.status_effects = tick_status_effects(state.status_effects)
        expired = before - len(state.status_effects)
        if expired:
            logger.debug("Expired %d status effect(s)", expired)

    def _apply_wallet(self, effect: EffectDef, state: GameState) -> None:
        value = coerce_number(effect.value, f"wallet value for '{effect.target}'")
        current = state.wallets.get(effect.target, DEFAULT_WALLET_BALANCE)
        state.wallets[effect.target] = next_wallet_balance(current, effect.operation, value)
        logger.debug("Wallet effect: %s %s -> %s", effect.target, current, state.wallets[effect.target])

    def _apply_inventory(self, effect: EffectDef, state: GameState) -> None:
        value = coerce_number(effect.value, f"inventory value for '{effect.target}'")
        current = state.inventory.get(effect.target, DEFAULT_INVENTORY_QUANTITY)
        quantity = next_inventory_quantity(current, effect.operation, value)
        if quantity == 0:
            state.inventory.pop(effect.target, None)
        else:
            state.inventory[effect.target] = quantity
        logger.debug("Inventory effect: %s %s -> %s", effect.target, current, quantity)

    def _apply_stat(self, effect: EffectDef, state: GameState) -> None:
        value = coerce_number(effect.value, f"stat value for '{effect.target}'")
        current = state.stats.get(effect.target, DEFAULT_STAT_VALUE)
        state.stats[effect.target] = next_stat_value(current, effect.operation, value)
        logger.debug("Stat effect: %s %s -> %s", effect.target, current, state.stats[effect.target])

    def _apply_flag(self, effect: EffectDef, state: GameState) -> None:
        current = state.flags.get(effect.target)
        state.flags[effect.target] = next_flag_value(effect.target, current, effect.operation, effect.value)
        logger.debug("Flag effect: %s -> %r", effect.target, state.flags[effect.target])

    def _apply_status_effect(self, effect: EffectDef, state: GameState) -> None:
        if effect.operation == "subtract":
            state.status_effects = remove_status_effects(state.status_effects, effect.target)
            logger.debug("Status effect removed: %s", effect.target)
            return
        if effect.operation not in ("add", "set"):
            raise InvalidOperationError(f"Invalid operation for status effect: {effect.operation}")
        status = StatusEffect(
            type=effect.target,
            value=coerce_number(effect.value, f"status effect value for '{effect.target}'"),
            duration=self._optional_duration(effect),
            source=self._optional_source(effect),
        )
        state.status_effects = upsert_status_effect(state.status_effects, status)
        logger.debug("Status effect %s: %s (value: %s)", effect.operation, effect.target, status.value)

    @staticmethod
    def _optional_duration(effect: EffectDef) -> int | None:
        duration = effect.metadata.get("duration")
        if duration is None:
            return None
        if isinstance(duration, bool) or not isinstance(duration, int) or duration < 0:
            raise InvalidOperationError(f"Status effect duration must be a non-negative integer, got {duration!r}.")
        return duration

    @staticmethod
    def _optional_source(effect: EffectDef) -> str | None:
        source = effect.metadata.get("source")
        return None if source is None else str(source)

    @staticmethod
    def _coerce(effect: EffectLike) -> EffectDef:
        if isinstance(effect, EffectDef):
            return effect
        return effect_from_mapping(effect)
