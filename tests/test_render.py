from __future__ import annotations

import pytest

from cyoa.presentation.cli import render
from cyoa.services.dice_roller import RollResult
from cyoa.services.story_navigator import ChoiceView, ProgressReport


def _choice(index: int, text: str, *, available: bool = True, rolls: bool = False) -> ChoiceView:
    return ChoiceView(
        index=index,
        id=f"c{index}",
        text=text,
        target_node_id="next",
        available=available,
        has_roll_requirements=rolls,
    )


def test_debug_enabled_only_for_one(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CYOA_DEBUG", "1")
    assert render.debug_enabled() is True
    monkeypatch.setenv("CYOA_DEBUG", "true")
    assert render.debug_enabled() is False
    monkeypatch.delenv("CYOA_DEBUG")
    assert render.debug_enabled() is False


def test_wrap_text_keeps_paragraph_breaks() -> None:
    lines = render.wrap_text("one two three four\n\nfive", width=9)

    assert lines == ["one two", "three", "four", "", "five"]


def test_format_choice_marks_locked_and_checks() -> None:
    assert render.format_choice(_choice(0, "Open")) == "Open"
    assert render.format_choice(_choice(1, "Climb", rolls=True)) == "Climb [check]"
    assert render.format_choice(_choice(2, "Bribe", available=False)) == "Bribe (locked)"


def test_render_choices_can_hide_locked(capsys: pytest.CaptureFixture[str]) -> None:
    choices = [_choice(0, "Open"), _choice(1, "Bribe", available=False), _choice(2, "Leave")]

    render.render_choices(choices, show_locked=False)
    output = capsys.readouterr().out

    assert "1. Open" in output
    assert "Bribe" not in output
    assert "3. Leave" in output


def test_format_roll() -> None:
    result = RollResult(total=21, rolls=[20], modifier=1, formula="1d20+1", success=True,
                        critical_success=True, difficulty=15, stat="luck")

    assert render.format_roll(result) == "luck check 1d20+1 vs 15: [20] = 21 (critical success)"


def test_format_progress() -> None:
    progress = ProgressReport(total_nodes=5, visited_nodes=2, progress_percentage=40, choices_made=1)

    assert render.format_progress(progress) == "Progress: 40% (2/5 nodes, 1 choices)"
