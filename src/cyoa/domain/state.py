"""Domain-level state tracking for a single playthrough."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List

from cyoa.core.types import FlagValue, Number


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class ChoiceRecord:
    """One entry of the append-only choice log."""

    node_id: str
    choice_index: int
    choice_text: str
    timestamp: datetime


@dataclass(slots=True)
class StatusEffect:
    """A named modifier attached to the player; ``duration=None`` is permanent."""

    type: str
    value: Number
    duration: int | None = None
    source: str | None = None


@dataclass
class GameState:
    """Complete progress record for one player's save of one story."""

    player_id: str
    story_id: str
    save_id: str
    current_node_id: str
    visited_nodes: List[str] = field(default_factory=list)
    choices_history: List[ChoiceRecord] = field(default_factory=list)
    stats: Dict[str, Number] = field(default_factory=dict)
    wallets: Dict[str, Number] = field(default_factory=dict)
    inventory: Dict[str, Number] = field(default_factory=dict)
    flags: Dict[str, FlagValue] = field(default_factory=dict)
    status_effects: List[StatusEffect] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    seed: str | None = None

    def touch(self) -> None:
        """Stamp ``updated_at`` with the current time."""
        self.updated_at = utc_now()
