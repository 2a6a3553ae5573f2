"""Game-state lifecycle: creation, validation, cloning and snapshots."""
from __future__ import annotations

import copy
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping

from cyoa.core.errors import ConflictError, ValidationError
from cyoa.domain.state import ChoiceRecord, GameState, StatusEffect, utc_now

logger = logging.getLogger(__name__)

SnapshotPayload = Dict[str, Any]

DEFAULT_STATS: Mapping[str, int] = {
    "knowledge": 10,
    "dexterity": 10,
    "charisma": 10,
    "strength": 10,
    "luck": 10,
}
_IDENTITY_FIELDS = ("player_id", "story_id", "save_id", "current_node_id")


class StateManager:
    """Creates, validates, copies and (de)serializes game states."""

    SNAPSHOT_VERSION = 1

    def create_new_state(
        self,
        player_id: str,
        story_id: str,
        start_node_id: str,
        save_id: str,
        seed: str | None = None,
    ) -> GameState:
        """Create a fresh state positioned at the story's start node."""
        now = utc_now()
        state = GameState(
            player_id=player_id,
            story_id=story_id,
            save_id=save_id,
            current_node_id=start_node_id,
            visited_nodes=[start_node_id],
            stats=dict(DEFAULT_STATS),
            created_at=now,
            updated_at=now,
            seed=seed,
        )
        logger.info("Created new game state: %s for player %s (save: %s)", story_id, player_id, save_id)
        return state

    def create_state_with_stats(
        self,
        player_id: str,
        story_id: str,
        start_node_id: str,
        save_id: str,
        initial_stats: Mapping[str, float],
        seed: str | None = None,
    ) -> GameState:
        """Create a fresh state whose stats are overlaid with ``initial_stats``."""
        state = self.create_new_state(player_id, story_id, start_node_id, save_id, seed)
        state.stats.update(initial_stats)
        return state

    def validate_state(self, state: GameState) -> None:
        """Check the core invariants.

        Raises:
            ValidationError: Naming the first invariant that is violated.
        """
        for field_name in _IDENTITY_FIELDS:
            value = getattr(state, field_name, None)
            if not isinstance(value, str) or not value:
                raise ValidationError(field_name, "missing or not a non-empty string")

        for field_name in ("visited_nodes", "choices_history", "status_effects"):
            if not isinstance(getattr(state, field_name, None), list):
                raise ValidationError(field_name, "must be a list")
        for field_name in ("stats", "wallets", "inventory", "flags"):
            if not isinstance(getattr(state, field_name, None), dict):
                raise ValidationError(field_name, "must be a mapping")

        for name, value in state.stats.items():
            if not _is_number(value) or value < 1:
                raise ValidationError(f"stats.{name}", f"invalid stat value {value!r} (minimum 1)")
        for currency, balance in state.wallets.items():
            if not _is_number(balance) or balance < 0:
                raise ValidationError(f"wallets.{currency}", f"invalid balance {balance!r} (minimum 0)")
        for item, quantity in state.inventory.items():
            if not _is_number(quantity) or quantity < 0:
                raise ValidationError(f"inventory.{item}", f"invalid quantity {quantity!r} (minimum 0)")

        for index, effect in enumerate(state.status_effects):
            if not isinstance(effect, StatusEffect) or not isinstance(effect.type, str) or not effect.type:
                raise ValidationError(f"status_effects[{index}]", "must be a status effect with a type")
            duration = effect.duration
            if duration is not None and (isinstance(duration, bool) or not isinstance(duration, int) or duration < 0):
                raise ValidationError(f"status_effects[{index}].duration", "must be a non-negative integer or absent")
        for index, record in enumerate(state.choices_history):
            if not isinstance(record, ChoiceRecord):
                raise ValidationError(f"choices_history[{index}]", "must be a choice record")

        for field_name in ("created_at", "updated_at"):
            if not isinstance(getattr(state, field_name, None), datetime):
                raise ValidationError(field_name, "invalid timestamp")

        if state.current_node_id not in state.visited_nodes:
            raise ValidationError("visited_nodes", f"does not contain current node '{state.current_node_id}'")
        logger.debug("State validation passed for save %s", state.save_id)

    def clone_state(self, state: GameState) -> GameState:
        """Return a deep copy sharing no mutable structure with ``state``."""
        return GameState(
            player_id=state.player_id,
            story_id=state.story_id,
            save_id=state.save_id,
            current_node_id=state.current_node_id,
            visited_nodes=list(state.visited_nodes),
            choices_history=[
                ChoiceRecord(
                    node_id=record.node_id,
                    choice_index=record.choice_index,
                    choice_text=record.choice_text,
                    timestamp=record.timestamp,
                )
                for record in state.choices_history
            ],
            stats=dict(state.stats),
            wallets=dict(state.wallets),
            inventory=dict(state.inventory),
            flags=copy.deepcopy(state.flags),
            status_effects=[
                StatusEffect(type=effect.type, value=effect.value, duration=effect.duration, source=effect.source)
                for effect in state.status_effects
            ],
            created_at=state.created_at,
            updated_at=state.updated_at,
            seed=state.seed,
        )

    def record_choice(self, state: GameState, node_id: str, choice_index: int, choice_text: str) -> None:
        """Append a history entry and stamp ``updated_at``."""
        now = utc_now()
        state.choices_history.append(
            ChoiceRecord(node_id=node_id, choice_index=choice_index, choice_text=choice_text, timestamp=now)
        )
        state.updated_at = now
        logger.debug("Recorded choice: node=%s, choice=%d", node_id, choice_index)

    def move_to_node(self, state: GameState, node_id: str) -> None:
        """Point the state at ``node_id``; first visits are appended in order."""
        state.current_node_id = node_id
        if node_id not in state.visited_nodes:
            state.visited_nodes.append(node_id)
        state.touch()
        logger.debug("Moved to node: %s", node_id)

    @staticmethod
    def has_visited_node(state: GameState, node_id: str) -> bool:
        return node_id in state.visited_nodes

    @staticmethod
    def get_choice_count(state: GameState) -> int:
        return len(state.choices_history)

    def create_snapshot(self, state: GameState) -> SnapshotPayload:
        """Return a JSON-serializable copy of ``state``."""
        payload: SnapshotPayload = {
            "version": self.SNAPSHOT_VERSION,
            "playerId": state.player_id,
            "storyId": state.story_id,
            "saveId": state.save_id,
            "currentNodeId": state.current_node_id,
            "visitedNodes": list(state.visited_nodes),
            "choicesHistory": [
                {
                    "nodeId": record.node_id,
                    "choiceIndex": record.choice_index,
                    "choiceText": record.choice_text,
                    "timestamp": record.timestamp.isoformat(),
                }
                for record in state.choices_history
            ],
            "stats": dict(state.stats),
            "wallets": dict(state.wallets),
            "inventory": dict(state.inventory),
            "flags": copy.deepcopy(state.flags),
            "statusEffects": [_serialize_status_effect(effect) for effect in state.status_effects],
            "createdAt": state.created_at.isoformat(),
            "updatedAt": state.updated_at.isoformat(),
        }
        if state.seed is not None:
            payload["seed"] = state.seed
        return payload

    def restore_from_snapshot(self, snapshot: Mapping[str, Any]) -> GameState:
        """Rebuild a state from a snapshot and validate it before returning."""
        if not isinstance(snapshot, Mapping):
            raise ValidationError("snapshot", "must be a JSON object")
        version = snapshot.get("version", self.SNAPSHOT_VERSION)
        if version != self.SNAPSHOT_VERSION:
            raise ValidationError("version", f"unsupported snapshot version {version!r}")

        player_id = snapshot.get("playerId", snapshot.get("userId"))
        state = GameState(
            player_id=self._require_str(player_id, "playerId"),
            story_id=self._require_str(snapshot.get("storyId"), "storyId"),
            save_id=self._require_str(snapshot.get("saveId"), "saveId"),
            current_node_id=self._require_str(snapshot.get("currentNodeId"), "currentNodeId"),
            visited_nodes=self._coerce_str_list(snapshot.get("visitedNodes"), "visitedNodes"),
            choices_history=self._coerce_history(snapshot.get("choicesHistory")),
            stats=self._coerce_dict(snapshot.get("stats"), "stats"),
            wallets=self._coerce_dict(snapshot.get("wallets"), "wallets"),
            inventory=self._coerce_dict(snapshot.get("inventory"), "inventory"),
            flags=copy.deepcopy(self._coerce_dict(snapshot.get("flags"), "flags")),
            status_effects=self._coerce_status_effects(snapshot.get("statusEffects")),
            created_at=self._parse_timestamp(snapshot.get("createdAt"), "createdAt"),
            updated_at=self._parse_timestamp(snapshot.get("updatedAt"), "updatedAt"),
            seed=self._coerce_optional_str(snapshot.get("seed"), "seed"),
        )
        self.validate_state(state)
        return state

    def merge_states(self, primary: GameState, secondary: GameState) -> GameState:
        """Reconcile two saves of the same playthrough.

        Primary values win; visited nodes are unioned and the later
        ``updated_at`` is kept.

        Raises:
            ConflictError: If the states belong to different players or stories.
        """
        if primary.player_id != secondary.player_id or primary.story_id != secondary.story_id:
            raise ConflictError("Cannot merge states from different players or stories.")
        merged = self.clone_state(primary)
        merged.visited_nodes = list(dict.fromkeys([*primary.visited_nodes, *secondary.visited_nodes]))
        if secondary.updated_at > primary.updated_at:
            merged.updated_at = secondary.updated_at
        return merged

    @staticmethod
    def _require_str(value: Any, context: str) -> str:
        if not isinstance(value, str) or not value:
            raise ValidationError(context, "missing or not a non-empty string")
        return value

    @staticmethod
    def _coerce_optional_str(value: Any, context: str) -> str | None:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValidationError(context, "must be a string if provided")
        return value

    @staticmethod
    def _coerce_dict(value: Any, context: str) -> Dict[str, Any]:
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            raise ValidationError(context, "must be a mapping")
        return dict(value)

    @staticmethod
    def _coerce_str_list(value: Any, context: str) -> List[str]:
        if value is None:
            return []
        if not isinstance(value, list) or not all(isinstance(entry, str) for entry in value):
            raise ValidationError(context, "must be a list of strings")
        return list(value)

    def _coerce_history(self, value: Any) -> List[ChoiceRecord]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValidationError("choicesHistory", "must be a list")
        records: List[ChoiceRecord] = []
        for index, entry in enumerate(value):
            context = f"choicesHistory[{index}]"
            if not isinstance(entry, Mapping):
                raise ValidationError(context, "must be an object")
            choice_index = entry.get("choiceIndex")
            if isinstance(choice_index, bool) or not isinstance(choice_index, int):
                raise ValidationError(f"{context}.choiceIndex", "must be an integer")
            choice_text = entry.get("choiceText", "")
            if not isinstance(choice_text, str):
                raise ValidationError(f"{context}.choiceText", "must be a string")
            records.append(
                ChoiceRecord(
                    node_id=self._require_str(entry.get("nodeId"), f"{context}.nodeId"),
                    choice_index=choice_index,
                    choice_text=choice_text,
                    timestamp=self._parse_timestamp(entry.get("timestamp"), f"{context}.timestamp"),
                )
            )
        return records

    def _coerce_status_effects(self, value: Any) -> List[StatusEffect]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValidationError("statusEffects", "must be a list")
        effects: List[StatusEffect] = []
        for index, entry in enumerate(value):
            context = f"statusEffects[{index}]"
            if not isinstance(entry, Mapping):
                raise ValidationError(context, "must be an object")
            effect_value = entry.get("value", 0)
            if not _is_number(effect_value):
                raise ValidationError(f"{context}.value", "must be a number")
            duration = entry.get("duration")
            if duration is not None and (isinstance(duration, bool) or not isinstance(duration, int) or duration < 0):
                raise ValidationError(f"{context}.duration", "must be a non-negative integer if provided")
            effects.append(
                StatusEffect(
                    type=self._require_str(entry.get("type"), f"{context}.type"),
                    value=effect_value,
                    duration=duration,
                    source=self._coerce_optional_str(entry.get("source"), f"{context}.source"),
                )
            )
        return effects

    @staticmethod
    def _parse_timestamp(value: Any, context: str) -> datetime:
        if not isinstance(value, str):
            raise ValidationError(context, "invalid timestamp")
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValidationError(context, f"invalid timestamp {value!r}") from exc
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _serialize_status_effect(effect: StatusEffect) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"type": effect.type, "value": effect.value}
    if effect.duration is not None:
        payload["duration"] = effect.duration
    if effect.source is not None:
        payload["source"] = effect.source
    return payload
