from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Dict, List

from cyoa.data.repositories import StoryRepository
from cyoa.domain.state import GameState
from cyoa.services.state_manager import StateManager
from cyoa.services.story_navigator import StoryNavigator

STORY_ID = "trial"
START_NODE_ID = "gate"

_TRIAL_STORY: Dict[str, Any] = {
    STORY_ID: {
        "title": "Trial of the Keep",
        "start": START_NODE_ID,
        "nodes": {
            "gate": {
                "key": "gate",
                "text": "A guard blocks the gate to the keep.",
                "choices": [
                    {
                        "id": "buy_armor",
                        "text": "Buy armor from the smith",
                        "target": "armory",
                        "effects": [
                            {"type": "wallet", "target": "gold", "operation": "subtract", "value": 80},
                            {"type": "inventory", "target": "armor", "operation": "add", "value": 1},
                        ],
                    },
                    {
                        "id": "sneak",
                        "text": "Sneak past the guard",
                        "target": "courtyard",
                        "roll_requirements": [{"stat": "dexterity", "difficulty": 15}],
                    },
                    {
                        "id": "seal",
                        "text": "Show the royal seal",
                        "target": "throne",
                        "conditions": [{"logic": {"hasItem": "royal_seal"}}],
                    },
                ],
            },
            "armory": {
                "key": "armory",
                "text": "The smith's forge glows.",
                "choices": [
                    {
                        "id": "to_courtyard",
                        "text": "Head to the courtyard",
                        "target": "courtyard",
                        "effects": [
                            {
                                "type": "status_effect",
                                "target": "poisoned",
                                "operation": "add",
                                "value": 2,
                                "metadata": {"duration": 2, "source": "smith"},
                            }
                        ],
                    },
                    {
                        "id": "rest",
                        "text": "Rest by the forge",
                        "target": "courtyard",
                        "effects": [{"type": "stat", "target": "luck", "operation": "multiply", "value": 1.5}],
                    },
                ],
            },
            "courtyard": {
                "key": "courtyard",
                "text": "The courtyard is empty but for a locked door.",
                "choices": [
                    {
                        "id": "force_door",
                        "text": "Force the door",
                        "target": "throne",
                        "rollRequirements": [{"stat": "strength", "difficulty": 10}],
                    },
                    {"id": "flee", "text": "Flee", "target_node_id": "ending_flee"},
                ],
            },
            "throne": {"key": "throne", "text": "You stand before the throne.", "isTerminal": True},
            "ending_flee": {"key": "flee", "text": "You run into the night.", "is_terminal": True},
        },
    }
}


def build_story_document() -> Dict[str, Any]:
    """Return a fresh copy of the in-memory test story document."""
    return copy.deepcopy(_TRIAL_STORY)


def make_repository(document: Dict[str, Any] | None = None) -> StoryRepository:
    return StoryRepository.from_mapping(document if document is not None else build_story_document())


def write_story_file(tmp_path: Path, document: Dict[str, Any] | None = None, filename: str = "stories.json") -> Path:
    path = tmp_path / filename
    path.write_text(json.dumps(document if document is not None else build_story_document()), encoding="utf-8")
    return path


def make_navigator(repository: StoryRepository | None = None, **kwargs: Any) -> StoryNavigator:
    return StoryNavigator(repository or make_repository(), **kwargs)


def make_state(**overrides: Any) -> GameState:
    """Build a state at the trial start node with optional field overrides."""
    state = StateManager().create_new_state("player-1", STORY_ID, START_NODE_ID, "save-1")
    for name, value in overrides.items():
        setattr(state, name, value)
    return state


def play(navigator: StoryNavigator, state: GameState, choices: List[int]) -> GameState:
    for choice_index in choices:
        state = navigator.make_choice(state, choice_index).updated_state
    return state
