"""Console-driven UI loops for the story engine."""
from __future__ import annotations

import logging
import secrets
import sys
from pathlib import Path
from typing import Literal

from cyoa.core.errors import EngineError, InvalidChoiceError, PreconditionFailedError
from cyoa.data.errors import DataError
from cyoa.data.repositories import StoryRepository
from cyoa.data.save_store import SaveStore
from cyoa.domain.defs import StoryDef
from cyoa.presentation.cli import config
from cyoa.presentation.cli.render import (
    debug_enabled,
    format_progress,
    render_choices,
    render_menu,
    render_node,
    render_rolls,
)
from cyoa.services import GameplayService, GameView

MenuAction = Literal["new_game", "continue", "quit"]


def main() -> None:
    """Start the interactive CLI session."""
    logging.basicConfig(
        level=logging.DEBUG if debug_enabled() else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    settings = config.load_config()
    story_repo = _build_story_repository(settings.get("stories_path"))
    try:
        stories = story_repo.all()
    except DataError as exc:
        print(f"Unable to load stories: {exc}")
        sys.exit(1)
    service = GameplayService(story_repo, SaveStore(config.get_save_dir()))
    show_locked = bool(settings.get("show_locked_choices", True))

    print("=== Choose Your Own Adventure ===")
    while True:
        action = _main_menu_loop()
        if action == "quit":
            break
        if action == "new_game":
            view = _start_new_game(service, stories)
        else:
            view = _continue_game(service)
        if view is None:
            continue
        if not _run_story_loop(service, view, show_locked=show_locked):
            break
    print("Goodbye!")


def _build_story_repository(stories_path: str | None) -> StoryRepository:
    if not stories_path:
        return StoryRepository()
    path = Path(stories_path)
    return StoryRepository(base_path=path.parent, filename=path.name)


def _main_menu_loop() -> MenuAction:
    while True:
        render_menu("Main Menu", ["New Game", "Continue", "Quit"])
        choice = input("Select an option: ").strip()
        if choice == "1":
            return "new_game"
        if choice == "2":
            return "continue"
        if choice == "3":
            return "quit"
        print("Invalid selection. Please enter 1, 2 or 3.")


def _start_new_game(service: GameplayService, stories: list[StoryDef]) -> GameView | None:
    if not stories:
        print("No stories available.")
        return None
    render_menu("Stories", [story.title for story in stories])
    story = _prompt_index(len(stories), "Select a story (blank to cancel): ")
    if story is None:
        return None
    selected = stories[story]
    player_id = input("Enter your name (default player): ").strip() or "player"
    seed = input("Enter seed (blank for random): ").strip() or secrets.token_hex(8)
    save_id = f"{selected.id}_{secrets.token_hex(4)}"
    view = service.start_game(player_id, selected.id, save_id, seed=seed)
    print(f"Game started with seed: {seed} (save: {save_id})")
    return view


def _continue_game(service: GameplayService) -> GameView | None:
    saves = [summary for summary in service.list_saves() if not summary.is_corrupt]
    if not saves:
        print("No saved games found.")
        return None
    render_menu(
        "Saved Games",
        [f"{summary.save_id} - {summary.story_id} ({summary.choices_made} choices)" for summary in saves],
    )
    index = _prompt_index(len(saves), "Select a save (blank to cancel): ")
    if index is None:
        return None
    try:
        return service.load_game(saves[index].save_id)
    except EngineError as exc:
        print(f"Unable to load save: {exc}")
        return None


def _prompt_index(count: int, prompt: str) -> int | None:
    while True:
        raw_value = input(prompt).strip()
        if not raw_value:
            return None
        if raw_value.isdigit() and 1 <= int(raw_value) <= count:
            return int(raw_value) - 1
        print(f"Invalid selection. Please enter a number between 1 and {count}.")


def _run_story_loop(service: GameplayService, view: GameView, *, show_locked: bool) -> bool:
    """Play until an ending or until the player leaves; False means quit the app."""
    while True:
        render_node(view.node.id, view.node.text)
        print(format_progress(view.progress))
        if view.is_ending:
            print("\n*** The End ***")
            return True
        render_choices(view.choices, show_locked=show_locked)
        raw_value = input("Choose (number, m for menu, q to quit): ").strip().lower()
        if raw_value == "q":
            return False
        if raw_value == "m":
            return True
        if not raw_value.isdigit():
            print("Please enter a choice number.")
            continue
        try:
            outcome = service.make_choice(view.save_id, int(raw_value) - 1)
        except (InvalidChoiceError, PreconditionFailedError) as exc:
            print(f"That choice is not available: {exc}")
            continue
        render_rolls(outcome.roll_results)
        view = outcome.view
