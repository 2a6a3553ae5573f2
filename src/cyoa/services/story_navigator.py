"""Story state machine: choice availability, transitions and progress."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Protocol

from cyoa.core.errors import (
    ConditionsNotMetError,
    InvalidChoiceError,
    NotFoundError,
    UnknownStatError,
)
from cyoa.domain.defs import EffectDef, RollRequirementDef, StoryChoiceDef, StoryNodeDef
from cyoa.domain.state import GameState
from cyoa.services.condition_evaluator import ConditionEvaluator, FailedCondition
from cyoa.services.dice_roller import DiceRoller, RollResult
from cyoa.services.effect_processor import EffectProcessor
from cyoa.services.state_manager import StateManager

logger = logging.getLogger(__name__)

DEFAULT_CHECK_FORMULA = "1d20"


class NodeSource(Protocol):
    def get_node(self, node_id: str) -> StoryNodeDef: ...

    def count_nodes(self, story_id: str) -> int: ...


@dataclass(slots=True)
class ChoiceView:
    """A choice annotated with whether the player may currently take it."""

    index: int
    id: str
    text: str
    target_node_id: str
    available: bool
    failed_conditions: List[FailedCondition] = field(default_factory=list)
    has_roll_requirements: bool = False


@dataclass(slots=True)
class StateTransition:
    """Outcome of a choice: the new state plus what happened on the way."""

    previous_node_id: str
    new_node_id: str
    applied_effects: List[EffectDef]
    updated_state: GameState
    roll_results: List[RollResult] = field(default_factory=list)


@dataclass(slots=True)
class ProgressReport:
    total_nodes: int
    visited_nodes: int
    progress_percentage: int
    choices_made: int


@dataclass(slots=True)
class ChoiceValidation:
    valid: bool
    reason: str | None = None
    failed_conditions: List[FailedCondition] = field(default_factory=list)


@dataclass(slots=True)
class NodeView:
    """Read-only rendering data for a node."""

    id: str
    key: str | None
    text: str
    media_ref: str | None
    is_terminal: bool
    choices: List[StoryChoiceDef]
    dice_checks: List[RollRequirementDef]


class StoryNavigator:
    """Drives a game state through the story graph.

    The input state is never mutated: every transition works on a clone that
    the caller commits after the call returns.
    """

    def __init__(
        self,
        story_source: NodeSource,
        *,
        state_manager: StateManager | None = None,
        condition_evaluator: ConditionEvaluator | None = None,
        effect_processor: EffectProcessor | None = None,
        dice_roller: DiceRoller | None = None,
    ) -> None:
        self._story_source = story_source
        self._state_manager = state_manager or StateManager()
        self._conditions = condition_evaluator or ConditionEvaluator()
        self._effects = effect_processor or EffectProcessor()
        self._dice = dice_roller or DiceRoller()

    def get_available_choices(self, state: GameState) -> List[ChoiceView]:
        """Return every choice on the current node, annotated but never filtered."""
        node = self._current_node(state)
        views: List[ChoiceView] = []
        for index, choice in enumerate(node.choices):
            availability = self._conditions.check_availability(choice.conditions, state)
            views.append(
                ChoiceView(
                    index=index,
                    id=choice.id,
                    text=choice.text,
                    target_node_id=choice.target_node_id,
                    available=availability.available,
                    failed_conditions=availability.failed_conditions,
                    has_roll_requirements=bool(choice.roll_requirements),
                )
            )
        return views

    def make_choice(self, state: GameState, choice_index: int) -> StateTransition:
        """Take the choice at ``choice_index`` and return the resulting transition.

        Raises:
            NotFoundError: If the current or target node does not exist.
            InvalidChoiceError: If the index does not address a choice, or
                the current node is terminal.
            ConditionsNotMetError: If the choice is locked.
            UnknownStatError: If a roll requirement names a missing stat.
        """
        return self._transition(state, choice_index, self._roller_for(state))

    def simulate_choice(self, state: GameState, choice_index: int) -> StateTransition:
        """Preview a choice without touching the shared dice roller.

        Seeded states preview exactly the rolls ``make_choice`` would produce.
        """
        roller = self._roller_for(state) if state.seed is not None else DiceRoller()
        return self._transition(state, choice_index, roller)

    def is_at_ending(self, state: GameState) -> bool:
        return self._current_node(state).is_terminal

    def get_progress(self, state: GameState) -> ProgressReport:
        """Report visited nodes as a whole percentage of the story."""
        total = self._story_source.count_nodes(state.story_id)
        visited = len(state.visited_nodes)
        percentage = int(visited * 100 / total + 0.5) if total > 0 else 0
        return ProgressReport(
            total_nodes=total,
            visited_nodes=visited,
            progress_percentage=percentage,
            choices_made=len(state.choices_history),
        )

    def validate_choice(self, state: GameState, choice_index: int) -> ChoiceValidation:
        """Dry-run the index and condition checks of ``make_choice``."""
        try:
            node = self._current_node(state)
            choice = self._select_choice(node, choice_index)
        except (NotFoundError, InvalidChoiceError) as exc:
            return ChoiceValidation(valid=False, reason=str(exc))
        availability = self._conditions.check_availability(choice.conditions, state)
        if not availability.available:
            return ChoiceValidation(
                valid=False,
                reason="Conditions not met",
                failed_conditions=availability.failed_conditions,
            )
        return ChoiceValidation(valid=True)

    def get_node_content(self, node_id: str) -> NodeView:
        node = self._get_node(node_id)
        return NodeView(
            id=node.id,
            key=node.key,
            text=node.text,
            media_ref=node.media_ref,
            is_terminal=node.is_terminal,
            choices=list(node.choices),
            dice_checks=list(node.dice_checks),
        )

    def _transition(self, state: GameState, choice_index: int, roller: DiceRoller) -> StateTransition:
        node = self._current_node(state)
        choice = self._select_choice(node, choice_index)

        availability = self._conditions.check_availability(choice.conditions, state)
        if not availability.available:
            raise ConditionsNotMetError(node.id, choice_index, availability.failed_conditions)

        target = self._get_node(choice.target_node_id)
        roll_results = [self._resolve_roll(requirement, state, roller) for requirement in choice.roll_requirements]

        next_state = self._state_manager.clone_state(state)
        applied = self._effects.apply_effects(choice.effects, next_state)
        self._state_manager.record_choice(next_state, node.id, choice_index, choice.text)
        self._state_manager.move_to_node(next_state, target.id)
        self._effects.process_status_effect_durations(next_state)

        logger.info(
            "Choice processed: %s -> %s (%d effects applied, %d rolls)",
            node.id,
            target.id,
            len(applied),
            len(roll_results),
        )
        return StateTransition(
            previous_node_id=node.id,
            new_node_id=target.id,
            applied_effects=applied,
            updated_state=next_state,
            roll_results=roll_results,
        )

    def _resolve_roll(self, requirement: RollRequirementDef, state: GameState, roller: DiceRoller) -> RollResult:
        if requirement.stat not in state.stats:
            raise UnknownStatError(requirement.stat)
        result = roller.roll_with_stat_modifier(
            state.stats[requirement.stat],
            requirement.difficulty,
            base_formula=requirement.formula or DEFAULT_CHECK_FORMULA,
        )
        result.stat = requirement.stat
        if not result.success:
            # Failed checks never block the transition; stories branch on them downstream.
            logger.warning(
                "Roll failed: %s check (needed %d, got %d)",
                requirement.stat,
                requirement.difficulty,
                result.total,
            )
        return result

    def _roller_for(self, state: GameState) -> DiceRoller:
        if state.seed is None:
            return self._dice
        return DiceRoller.seeded(f"{state.seed}-{len(state.choices_history)}")

    def _current_node(self, state: GameState) -> StoryNodeDef:
        return self._get_node(state.current_node_id)

    def _get_node(self, node_id: str) -> StoryNodeDef:
        try:
            return self._story_source.get_node(node_id)
        except KeyError as exc:
            raise NotFoundError("Node", node_id) from exc

    @staticmethod
    def _select_choice(node: StoryNodeDef, choice_index: int) -> StoryChoiceDef:
        if isinstance(choice_index, bool) or not isinstance(choice_index, int):
            raise InvalidChoiceError(node.id, choice_index, len(node.choices))
        if node.is_terminal:
            # Endings close the story even when authored choices remain.
            raise InvalidChoiceError(node.id, choice_index, 0)
        if choice_index < 0 or choice_index >= len(node.choices):
            raise InvalidChoiceError(node.id, choice_index, len(node.choices))
        return node.choices[choice_index]
