from __future__ import annotations

import json
from pathlib import Path

import pytest

from cyoa.core.errors import ConditionsNotMetError, ConflictError, InvalidChoiceError, NotFoundError, SaveLoadError
from cyoa.data.save_store import SaveStore
from cyoa.domain.defs import StoryChoiceDef, StoryNodeDef
from cyoa.services.gameplay_service import GameplayService
from tests.helpers.story_fixtures import make_repository


def _make_service(tmp_path: Path) -> GameplayService:
    return GameplayService(make_repository(), SaveStore(tmp_path / "saves"))


def test_start_game_persists_snapshot(tmp_path: Path) -> None:
    service = _make_service(tmp_path)

    view = service.start_game("player-1", "trial", "run-1", seed="abc", initial_stats={"dexterity": 14})

    assert view.node.id == "gate"
    assert [choice.available for choice in view.choices] == [True, True, False]
    assert view.progress.progress_percentage == 20
    assert view.is_ending is False
    assert view.state.stats["dexterity"] == 14
    payload = json.loads((tmp_path / "saves" / "run-1.json").read_text(encoding="utf-8"))
    assert payload["storyId"] == "trial"
    assert payload["seed"] == "abc"


def test_start_game_unknown_story(tmp_path: Path) -> None:
    with pytest.raises(NotFoundError):
        _make_service(tmp_path).start_game("player-1", "missing", "run-1")


def test_start_game_refuses_to_overwrite(tmp_path: Path) -> None:
    service = _make_service(tmp_path)
    service.start_game("player-1", "trial", "run-1")

    with pytest.raises(ConflictError):
        service.start_game("player-1", "trial", "run-1")
    assert service.start_game("player-1", "trial", "run-1", overwrite=True).node.id == "gate"


def test_make_choice_persists_transition(tmp_path: Path) -> None:
    service = _make_service(tmp_path)
    service.start_game("player-1", "trial", "run-1")

    outcome = service.make_choice("run-1", 0)
    reloaded = service.load_game("run-1")

    assert outcome.transition.new_node_id == "armory"
    assert outcome.view.node.id == "armory"
    assert reloaded.node.id == "armory"
    assert reloaded.state.inventory == {"armor": 1}
    assert reloaded.state.wallets == {"gold": 0}
    assert len(reloaded.state.choices_history) == 1


def test_make_choice_reaches_an_ending(tmp_path: Path) -> None:
    service = _make_service(tmp_path)
    service.start_game("player-1", "trial", "run-1")

    for choice_index in (0, 0, 1):
        outcome = service.make_choice("run-1", choice_index)

    assert outcome.is_ending is True
    assert outcome.roll_results == []
    assert service.get_progress("run-1").progress_percentage == 80


def test_rejected_choice_leaves_save_untouched(tmp_path: Path) -> None:
    service = _make_service(tmp_path)
    service.start_game("player-1", "trial", "run-1")
    save_path = tmp_path / "saves" / "run-1.json"
    before = save_path.read_text(encoding="utf-8")

    with pytest.raises(ConditionsNotMetError):
        service.make_choice("run-1", 2)
    with pytest.raises(InvalidChoiceError):
        service.make_choice("run-1", 5)

    assert save_path.read_text(encoding="utf-8") == before


def test_load_missing_save(tmp_path: Path) -> None:
    with pytest.raises(NotFoundError):
        _make_service(tmp_path).load_game("nothing")


def test_load_corrupt_save_fails_loudly(tmp_path: Path) -> None:
    service = _make_service(tmp_path)
    service.start_game("player-1", "trial", "run-1")
    save_path = tmp_path / "saves" / "run-1.json"
    payload = json.loads(save_path.read_text(encoding="utf-8"))
    payload["stats"]["luck"] = 0
    save_path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(SaveLoadError):
        service.load_game("run-1")


def test_list_saves_filters_and_flags_corrupt(tmp_path: Path) -> None:
    service = _make_service(tmp_path)
    service.start_game("alice", "trial", "alice-1")
    service.start_game("bob", "trial", "bob-1")
    service.make_choice("bob-1", 0)
    (tmp_path / "saves" / "junk.json").write_text("{", encoding="utf-8")

    everything = service.list_saves()
    bobs = service.list_saves(player_id="bob")

    assert [(summary.save_id, summary.is_corrupt) for summary in everything] == [
        ("alice-1", False),
        ("bob-1", False),
        ("junk", True),
    ]
    assert [summary.save_id for summary in bobs] == ["bob-1"]
    assert bobs[0].choices_made == 1
    assert bobs[0].current_node_id == "armory"
    assert service.list_saves(story_id="other") == []


def test_delete_save(tmp_path: Path) -> None:
    service = _make_service(tmp_path)
    service.start_game("player-1", "trial", "run-1")

    service.delete_save("run-1")

    assert service.list_saves() == []
    with pytest.raises(NotFoundError):
        service.delete_save("run-1")


def test_seeded_games_replay_identically(tmp_path: Path) -> None:
    service = _make_service(tmp_path)
    for save_id in ("first", "second"):
        service.start_game("player-1", "trial", save_id, seed="abc")
        for choice_index in (1, 0):
            service.make_choice(save_id, choice_index)

    first = service.load_game("first").state
    second = service.load_game("second").state

    assert first.current_node_id == second.current_node_id == "throne"
    assert first.stats == second.stats


class _DanglingStory:
    """Node source whose only choice points at a node that was never authored."""

    def __init__(self) -> None:
        choice = StoryChoiceDef(id="go", text="Go", target_node_id="nowhere")
        self._nodes = {"a": StoryNodeDef(id="a", text="A", choices=[choice])}

    def get_start_node_id(self, story_id: str) -> str:
        return "a"

    def get_node(self, node_id: str) -> StoryNodeDef:
        return self._nodes[node_id]

    def count_nodes(self, story_id: str) -> int:
        return len(self._nodes)


def test_missing_target_node_leaves_save_untouched(tmp_path: Path) -> None:
    service = GameplayService(_DanglingStory(), SaveStore(tmp_path / "saves"))  # type: ignore[arg-type]
    service.start_game("player-1", "dangling", "save1")

    with pytest.raises(NotFoundError):
        service.make_choice("save1", 0)

    payload = json.loads((tmp_path / "saves" / "save1.json").read_text(encoding="utf-8"))
    assert payload["currentNodeId"] == "a"
    assert payload["choicesHistory"] == []
    assert service.load_game("save1").node.id == "a"
