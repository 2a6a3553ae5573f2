"""Repository for story documents."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Mapping

from cyoa.data.errors import DataReferenceError, DataValidationError
from cyoa.data.repositories.base import RepositoryBase
from cyoa.domain.defs import (
    ConditionDef,
    EffectDef,
    RollRequirementDef,
    StoryChoiceDef,
    StoryDef,
    StoryNodeDef,
)


class StoryRepository(RepositoryBase[StoryDef]):
    """Loads stories and indexes their nodes by id."""

    def __init__(
        self,
        base_path: Path | str | None = None,
        filename: str = "stories.json",
        *,
        raw: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(filename, base_path, raw=raw)
        self._nodes: Dict[str, StoryNodeDef] = {}

    @classmethod
    def from_mapping(cls, raw: Mapping[str, object]) -> "StoryRepository":
        """Build a repository over an in-memory story document."""
        return cls(raw=raw)

    def get_node(self, node_id: str) -> StoryNodeDef:
        """Return a node by id; ids are unique across the whole document."""
        self._ensure_loaded()
        try:
            return self._nodes[node_id]
        except KeyError as exc:
            raise KeyError(node_id) from exc

    def count_nodes(self, story_id: str) -> int:
        return len(self.get(story_id).nodes)

    def get_start_node_id(self, story_id: str) -> str:
        return self.get(story_id).start_node_id

    def _build(self, raw: dict[str, object]) -> Dict[str, StoryDef]:
        stories: Dict[str, StoryDef] = {}
        node_index: Dict[str, StoryNodeDef] = {}
        for story_id, story_payload in raw.items():
            if not isinstance(story_id, str):
                raise DataValidationError("Story ids must be strings.")
            story_ctx = f"story '{story_id}'"
            story_data = self._require_mapping(story_payload, story_ctx)
            title = story_data.get("title", story_id)
            if not isinstance(title, str):
                raise DataValidationError(f"{story_ctx} title must be a string.")
            start = self._require_str(story_data.get("start"), f"{story_ctx} start")
            raw_nodes = self._require_mapping(story_data.get("nodes"), f"{story_ctx} nodes")

            nodes: Dict[str, StoryNodeDef] = {}
            for node_id, node_payload in raw_nodes.items():
                if node_id in node_index:
                    raise DataValidationError(f"Duplicate story node id '{node_id}' in {story_ctx}.")
                node = self._parse_node(node_id, node_payload)
                nodes[node_id] = node
                node_index[node_id] = node
            if start not in nodes:
                raise DataReferenceError(f"{story_ctx} start node '{start}' is not defined.")
            for node in nodes.values():
                for choice in node.choices:
                    if choice.target_node_id not in nodes:
                        raise DataReferenceError(
                            f"{story_ctx} node '{node.id}' choice '{choice.id}' targets "
                            f"undefined node '{choice.target_node_id}'."
                        )
            stories[story_id] = StoryDef(id=story_id, title=title, start_node_id=start, nodes=nodes)
        self._nodes = node_index
        return stories

    def _parse_node(self, node_id: object, payload: object) -> StoryNodeDef:
        if not isinstance(node_id, str):
            raise DataValidationError("Story node ids must be strings.")
        node_ctx = f"story node '{node_id}'"
        node_data = self._require_mapping(payload, node_ctx)
        text = node_data.get("text", "")
        if not isinstance(text, str):
            raise DataValidationError(f"{node_ctx} text must be a string.")
        is_terminal = node_data.get("is_terminal", node_data.get("isTerminal", False))
        if not isinstance(is_terminal, bool):
            raise DataValidationError(f"{node_ctx} is_terminal must be a boolean.")
        dice_checks = node_data.get("dice_checks", node_data.get("diceChecks"))
        return StoryNodeDef(
            id=node_id,
            text=text,
            key=self._optional_str(node_data.get("key"), f"{node_ctx} key"),
            media_ref=self._optional_str(node_data.get("media_ref"), f"{node_ctx} media_ref"),
            choices=self._parse_choices(node_data.get("choices"), node_id),
            dice_checks=self._parse_roll_requirements(dice_checks, f"{node_ctx} dice_checks"),
            is_terminal=is_terminal,
        )

    def _parse_choices(self, raw_choices: object, node_id: str) -> List[StoryChoiceDef]:
        choices: List[StoryChoiceDef] = []
        for index, entry in enumerate(self._optional_list(raw_choices, f"story node '{node_id}' choices")):
            choice_ctx = f"story node '{node_id}' choices[{index}]"
            choice_data = self._require_mapping(entry, choice_ctx)
            choice_id = choice_data.get("id", f"{node_id}:{index}")
            if not isinstance(choice_id, str):
                raise DataValidationError(f"{choice_ctx} id must be a string.")
            target = choice_data.get("target", choice_data.get("target_node_id"))
            roll_requirements = choice_data.get("roll_requirements", choice_data.get("rollRequirements"))
            metadata = choice_data.get("metadata")
            if metadata is not None and not isinstance(metadata, dict):
                raise DataValidationError(f"{choice_ctx} metadata must be an object if provided.")
            choices.append(
                StoryChoiceDef(
                    id=choice_id,
                    text=self._require_str(choice_data.get("text"), f"{choice_ctx} text"),
                    target_node_id=self._require_str(target, f"{choice_ctx} target"),
                    conditions=self._parse_conditions(choice_data.get("conditions"), f"{choice_ctx} conditions"),
                    effects=self._parse_effects(choice_data.get("effects"), f"{choice_ctx} effects"),
                    roll_requirements=self._parse_roll_requirements(
                        roll_requirements, f"{choice_ctx} roll_requirements"
                    ),
                    metadata=dict(metadata or {}),
                )
            )
        return choices

    def _parse_conditions(self, raw_conditions: object, context: str) -> List[ConditionDef]:
        # Malformed logic still loads; it parses to an expression that never passes.
        return [ConditionDef.from_raw(entry) for entry in self._optional_list(raw_conditions, context)]

    def _parse_effects(self, raw_effects: object, context: str) -> List[EffectDef]:
        effects: List[EffectDef] = []
        for index, entry in enumerate(self._optional_list(raw_effects, context)):
            effect_ctx = f"{context}[{index}]"
            effect_data = self._require_mapping(entry, effect_ctx)
            metadata = effect_data.get("metadata")
            if metadata is not None and not isinstance(metadata, dict):
                raise DataValidationError(f"{effect_ctx} metadata must be an object if provided.")
            effects.append(
                EffectDef(
                    type=self._require_str(effect_data.get("type"), f"{effect_ctx} type"),
                    target=self._require_str(effect_data.get("target"), f"{effect_ctx} target"),
                    operation=self._require_str(effect_data.get("operation"), f"{effect_ctx} operation"),
                    value=effect_data.get("value"),
                    metadata=dict(metadata or {}),
                )
            )
        return effects

    def _parse_roll_requirements(self, raw_requirements: object, context: str) -> List[RollRequirementDef]:
        requirements: List[RollRequirementDef] = []
        for index, entry in enumerate(self._optional_list(raw_requirements, context)):
            req_ctx = f"{context}[{index}]"
            req_data = self._require_mapping(entry, req_ctx)
            difficulty = req_data.get("difficulty")
            if isinstance(difficulty, bool) or not isinstance(difficulty, int):
                raise DataValidationError(f"{req_ctx} difficulty must be an integer.")
            requirements.append(
                RollRequirementDef(
                    stat=self._require_str(req_data.get("stat"), f"{req_ctx} stat"),
                    difficulty=difficulty,
                    formula=self._optional_str(req_data.get("formula"), f"{req_ctx} formula"),
                )
            )
        return requirements

    @staticmethod
    def _optional_str(value: object, context: str) -> str | None:
        if value is None:
            return None
        if not isinstance(value, str):
            raise DataValidationError(f"{context} must be a string if provided.")
        return value
