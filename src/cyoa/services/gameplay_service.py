"""Application service: sessions of play persisted through a SaveStore."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Mapping

from cyoa.core.errors import ConflictError, NotFoundError, SaveLoadError, ValidationError
from cyoa.data.repositories import StoryRepository
from cyoa.data.save_store import SaveStore
from cyoa.domain.state import GameState
from cyoa.services.dice_roller import RollResult
from cyoa.services.state_manager import StateManager
from cyoa.services.story_navigator import (
    ChoiceView,
    NodeView,
    ProgressReport,
    StateTransition,
    StoryNavigator,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GameView:
    """Everything the presentation layer needs to render the current node."""

    save_id: str
    story_id: str
    node: NodeView
    choices: List[ChoiceView]
    progress: ProgressReport
    is_ending: bool
    state: GameState


@dataclass(slots=True)
class ChoiceOutcome:
    transition: StateTransition
    view: GameView

    @property
    def roll_results(self) -> List[RollResult]:
        return self.transition.roll_results

    @property
    def is_ending(self) -> bool:
        return self.view.is_ending


@dataclass(slots=True)
class SaveSummary:
    """Describes a stored save for menu display."""

    save_id: str
    player_id: str | None = None
    story_id: str | None = None
    current_node_id: str | None = None
    updated_at: str | None = None
    choices_made: int = 0
    is_corrupt: bool = False
    errors: List[str] = field(default_factory=list)


class GameplayService:
    """Starts, resumes and advances saved games."""

    def __init__(
        self,
        story_repo: StoryRepository,
        save_store: SaveStore,
        *,
        navigator: StoryNavigator | None = None,
        state_manager: StateManager | None = None,
    ) -> None:
        self._story_repo = story_repo
        self._save_store = save_store
        self._state_manager = state_manager or StateManager()
        self._navigator = navigator or StoryNavigator(story_repo, state_manager=self._state_manager)

    def start_game(
        self,
        player_id: str,
        story_id: str,
        save_id: str,
        *,
        seed: str | None = None,
        initial_stats: Mapping[str, float] | None = None,
        overwrite: bool = False,
    ) -> GameView:
        """Create a new save positioned at the story's start node.

        Raises:
            NotFoundError: If the story does not exist.
            ConflictError: If the save id is taken and ``overwrite`` is False.
        """
        try:
            start_node_id = self._story_repo.get_start_node_id(story_id)
        except KeyError as exc:
            raise NotFoundError("Story", story_id) from exc

        with self._save_store.lock(save_id):
            if self._save_store.exists(save_id) and not overwrite:
                raise ConflictError(f"Save already exists: {save_id}")
            if initial_stats:
                state = self._state_manager.create_state_with_stats(
                    player_id, story_id, start_node_id, save_id, initial_stats, seed
                )
            else:
                state = self._state_manager.create_new_state(player_id, story_id, start_node_id, save_id, seed)
            self._state_manager.validate_state(state)
            self._persist(state)
        return self._build_view(state)

    def load_game(self, save_id: str) -> GameView:
        return self._build_view(self._load_state(save_id))

    def make_choice(self, save_id: str, choice_index: int) -> ChoiceOutcome:
        """Apply a choice to a stored save and persist the result."""
        with self._save_store.lock(save_id):
            state = self._load_state(save_id)
            transition = self._navigator.make_choice(state, choice_index)
            self._persist(transition.updated_state)
        view = self._build_view(transition.updated_state)
        if view.is_ending:
            logger.info("Save %s reached ending node %s", save_id, view.node.id)
        return ChoiceOutcome(transition=transition, view=view)

    def get_progress(self, save_id: str) -> ProgressReport:
        return self._navigator.get_progress(self._load_state(save_id))

    def list_saves(self, player_id: str | None = None, story_id: str | None = None) -> List[SaveSummary]:
        """Summarize stored saves, optionally filtered by player and story.

        Unreadable saves are listed as corrupt when no filter is given.
        """
        summaries: List[SaveSummary] = []
        filtered = player_id is not None or story_id is not None
        for save_id in self._save_store.list_saves():
            try:
                state = self._load_state(save_id)
            except (SaveLoadError, NotFoundError) as exc:
                if not filtered:
                    summaries.append(SaveSummary(save_id=save_id, is_corrupt=True, errors=[str(exc)]))
                continue
            if player_id is not None and state.player_id != player_id:
                continue
            if story_id is not None and state.story_id != story_id:
                continue
            summaries.append(
                SaveSummary(
                    save_id=save_id,
                    player_id=state.player_id,
                    story_id=state.story_id,
                    current_node_id=state.current_node_id,
                    updated_at=state.updated_at.isoformat(),
                    choices_made=len(state.choices_history),
                )
            )
        return summaries

    def delete_save(self, save_id: str) -> None:
        with self._save_store.lock(save_id):
            if not self._save_store.delete(save_id):
                raise NotFoundError("Save", save_id)
        logger.info("Deleted save %s", save_id)

    def _load_state(self, save_id: str) -> GameState:
        try:
            snapshot = self._save_store.read(save_id)
        except KeyError as exc:
            raise NotFoundError("Save", save_id) from exc
        try:
            return self._state_manager.restore_from_snapshot(snapshot)
        except ValidationError as exc:
            raise SaveLoadError(f"Save '{save_id}' is corrupt: {exc}") from exc

    def _persist(self, state: GameState) -> None:
        self._save_store.write(state.save_id, self._state_manager.create_snapshot(state))

    def _build_view(self, state: GameState) -> GameView:
        node = self._navigator.get_node_content(state.current_node_id)
        return GameView(
            save_id=state.save_id,
            story_id=state.story_id,
            node=node,
            choices=self._navigator.get_available_choices(state),
            progress=self._navigator.get_progress(state),
            is_ending=node.is_terminal,
            state=state,
        )
