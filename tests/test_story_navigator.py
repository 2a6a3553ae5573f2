from __future__ import annotations

from typing import Any, Dict

import pytest

from cyoa.core.errors import (
    ConditionsNotMetError,
    InvalidChoiceError,
    NotFoundError,
    PreconditionFailedError,
    UnknownStatError,
)
from cyoa.services.dice_roller import DiceRoller
from cyoa.services.state_manager import StateManager
from cyoa.services.story_navigator import StoryNavigator
from tests.helpers.story_fixtures import build_story_document, make_navigator, make_repository, make_state, play


class _ScriptedRNG:
    def __init__(self, values: list[int]) -> None:
        self._values = list(values)

    def randint(self, a: int, b: int) -> int:
        return self._values.pop(0)


class _CountingSource:
    def __init__(self, total: int) -> None:
        self._total = total

    def get_node(self, node_id: str):
        raise KeyError(node_id)

    def count_nodes(self, story_id: str) -> int:
        return self._total


def _scripted_navigator(*values: int) -> StoryNavigator:
    return make_navigator(dice_roller=DiceRoller(rng=_ScriptedRNG(list(values))))  # type: ignore[arg-type]


def _snapshot(state) -> Dict[str, Any]:
    return StateManager().create_snapshot(state)


def _strip_times(snapshot: Dict[str, Any]) -> Dict[str, Any]:
    stripped = {key: value for key, value in snapshot.items() if key not in ("createdAt", "updatedAt")}
    stripped["choicesHistory"] = [
        {key: value for key, value in entry.items() if key != "timestamp"} for entry in snapshot["choicesHistory"]
    ]
    return stripped


def test_available_choices_are_annotated_not_filtered() -> None:
    choices = make_navigator().get_available_choices(make_state())

    assert [choice.id for choice in choices] == ["buy_armor", "sneak", "seal"]
    assert [choice.available for choice in choices] == [True, True, False]
    assert [failed.index for failed in choices[2].failed_conditions] == [0]
    assert choices[1].has_roll_requirements is True
    assert choices[0].target_node_id == "armory"


def test_locked_choice_becomes_available_when_condition_is_met() -> None:
    choices = make_navigator().get_available_choices(make_state(inventory={"royal_seal": 1}))

    assert choices[2].available is True


def test_end_to_end_purchase() -> None:
    state = make_state(wallets={"gold": 100})

    transition = make_navigator().make_choice(state, 0)
    updated = transition.updated_state

    assert transition.previous_node_id == "gate"
    assert transition.new_node_id == "armory"
    assert updated.wallets["gold"] == 20
    assert updated.inventory["armor"] == 1
    assert "armory" in updated.visited_nodes
    assert len(updated.choices_history) == len(state.choices_history) + 1
    assert updated.choices_history[-1].choice_text == "Buy armor from the smith"
    assert [effect.target for effect in transition.applied_effects] == ["gold", "armor"]
    assert transition.roll_results == []


def test_make_choice_never_mutates_input_state() -> None:
    state = make_state(wallets={"gold": 100})
    before = _snapshot(state)

    make_navigator().make_choice(state, 0)

    assert _snapshot(state) == before


@pytest.mark.parametrize("choice_index", [3, -1, 99])
def test_out_of_range_index_raises_and_leaves_state(choice_index: int) -> None:
    state = make_state()
    before = _snapshot(state)

    with pytest.raises(InvalidChoiceError) as excinfo:
        make_navigator().make_choice(state, choice_index)

    assert excinfo.value.choice_index == choice_index
    assert excinfo.value.node_id == "gate"
    assert _snapshot(state) == before


def test_locked_choice_raises_conditions_not_met() -> None:
    state = make_state()
    before = _snapshot(state)

    with pytest.raises(ConditionsNotMetError) as excinfo:
        make_navigator().make_choice(state, 2)

    assert isinstance(excinfo.value, PreconditionFailedError)
    assert [failed.index for failed in excinfo.value.failed_conditions] == [0]
    assert _snapshot(state) == before


def test_roll_requirement_on_missing_stat_raises() -> None:
    state = make_state(stats={"strength": 12})

    with pytest.raises(UnknownStatError) as excinfo:
        make_navigator().make_choice(state, 1)

    assert excinfo.value.stat == "dexterity"


def test_failed_roll_does_not_block_transition() -> None:
    transition = _scripted_navigator(1).make_choice(make_state(), 1)

    assert transition.new_node_id == "courtyard"
    assert len(transition.roll_results) == 1
    result = transition.roll_results[0]
    assert result.stat == "dexterity"
    assert result.success is False
    assert result.critical_failure is True
    assert result.formula == "1d20"


def test_roll_uses_stat_modifier() -> None:
    state = make_state(stats={"dexterity": 16})

    result = _scripted_navigator(12).make_choice(state, 1).roll_results[0]

    assert result.formula == "1d20+3"
    assert result.total == 15
    assert result.success is True


def test_seeded_state_uses_its_own_roller() -> None:
    state = make_state(seed="abc")
    shared = DiceRoller(rng=_ScriptedRNG([]))  # type: ignore[arg-type]

    first = make_navigator(dice_roller=shared).make_choice(state, 1)
    second = make_navigator().make_choice(state, 1)

    assert first.roll_results[0].rolls == second.roll_results[0].rolls
    assert first.roll_results[0].rolls == DiceRoller.seeded("abc-0").roll("1d20").rolls


def test_status_effects_tick_each_transition() -> None:
    navigator = make_navigator()
    state = play(navigator, make_state(), [0, 0])

    assert [(effect.type, effect.duration) for effect in state.status_effects] == [("poisoned", 1)]

    state = navigator.make_choice(state, 1).updated_state
    assert state.status_effects == []


def test_stat_multiply_effect_through_a_choice() -> None:
    state = play(make_navigator(), make_state(), [0, 1])

    assert state.stats["luck"] == 15


def test_is_at_ending() -> None:
    navigator = make_navigator()
    state = make_state()

    assert navigator.is_at_ending(state) is False
    state = play(navigator, state, [0, 0, 1])
    assert state.current_node_id == "ending_flee"
    assert navigator.is_at_ending(state) is True


def test_progress_counts_visited_nodes() -> None:
    navigator = make_navigator()
    state = make_state()

    progress = navigator.get_progress(state)
    assert (progress.total_nodes, progress.visited_nodes, progress.progress_percentage) == (5, 1, 20)

    state = play(navigator, state, [0])
    progress = navigator.get_progress(state)
    assert progress.progress_percentage == 40
    assert progress.choices_made == 1


@pytest.mark.parametrize(("total", "visited", "expected"), [(8, 1, 13), (3, 1, 33), (3, 2, 67), (0, 1, 0)])
def test_progress_rounds_half_up(total: int, visited: int, expected: int) -> None:
    navigator = StoryNavigator(_CountingSource(total))
    state = make_state(visited_nodes=["gate", "armory", "courtyard"][:visited])

    assert navigator.get_progress(state).progress_percentage == expected


def test_validate_choice_reports_reasons() -> None:
    navigator = make_navigator()
    state = make_state()

    assert navigator.validate_choice(state, 0).valid is True

    out_of_range = navigator.validate_choice(state, 7)
    assert out_of_range.valid is False
    assert "invalid" in (out_of_range.reason or "")

    locked = navigator.validate_choice(state, 2)
    assert locked.valid is False
    assert locked.reason == "Conditions not met"
    assert [failed.index for failed in locked.failed_conditions] == [0]


def test_get_node_content() -> None:
    view = make_navigator().get_node_content("gate")

    assert view.id == "gate"
    assert view.key == "gate"
    assert view.is_terminal is False
    assert len(view.choices) == 3

    with pytest.raises(NotFoundError):
        make_navigator().get_node_content("nowhere")


def test_missing_current_node_raises_not_found() -> None:
    state = make_state(current_node_id="nowhere", visited_nodes=["gate", "nowhere"])

    with pytest.raises(NotFoundError):
        make_navigator().make_choice(state, 0)
    with pytest.raises(NotFoundError):
        make_navigator().get_available_choices(state)


def test_simulate_choice_matches_make_choice_without_side_effects() -> None:
    navigator = make_navigator()
    state = make_state(seed="preview", wallets={"gold": 100})
    before = _snapshot(state)

    preview = navigator.simulate_choice(state, 1)
    actual = navigator.make_choice(state, 1)

    assert _snapshot(state) == before
    assert preview.roll_results[0].rolls == actual.roll_results[0].rolls
    assert _strip_times(_snapshot(preview.updated_state)) == _strip_times(_snapshot(actual.updated_state))


def test_seeded_replay_is_deterministic() -> None:
    repository = make_repository()
    start = make_state(seed="abc", wallets={"gold": 100})

    first = play(StoryNavigator(repository), start, [0, 1, 0])
    second = play(StoryNavigator(repository), start, [0, 1, 0])

    assert first.current_node_id == "throne"
    assert _strip_times(_snapshot(first)) == _strip_times(_snapshot(second))


def test_terminal_node_processes_no_choices() -> None:
    document = build_story_document()
    document["trial"]["nodes"]["throne"]["choices"] = [{"id": "again", "text": "Begin again", "target": "gate"}]
    navigator = make_navigator(make_repository(document))
    state = make_state(current_node_id="throne", visited_nodes=["gate", "throne"])

    with pytest.raises(InvalidChoiceError):
        navigator.make_choice(state, 0)
    assert navigator.validate_choice(state, 0).valid is False
    assert state.current_node_id == "throne"
