from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from cyoa.presentation.cli import app, config
from tests.helpers.story_fixtures import write_story_file


def _feed_input(monkeypatch: pytest.MonkeyPatch, answers: list[str]) -> None:
    replies: Iterator[str] = iter(answers)
    monkeypatch.setattr("builtins.input", lambda prompt="": next(replies))


def _configure(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("CYOA_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("CYOA_DEBUG", raising=False)
    stories = write_story_file(tmp_path)
    config.save_config({"stories_path": str(stories), "show_locked_choices": True})


def test_new_game_session_plays_and_saves(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _configure(monkeypatch, tmp_path)
    _feed_input(monkeypatch, ["1", "1", "tester", "abc", "1", "q"])

    app.main()
    output = capsys.readouterr().out

    assert "Trial of the Keep" in output
    assert "A guard blocks the gate to the keep." in output
    assert "Show the royal seal (locked)" in output
    assert "The smith's forge glows." in output
    assert "Goodbye!" in output
    saves = list((tmp_path / "home" / "saves").glob("trial_*.json"))
    assert len(saves) == 1


def test_locked_choice_is_explained(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _configure(monkeypatch, tmp_path)
    _feed_input(monkeypatch, ["1", "1", "", "", "3", "q"])

    app.main()

    assert "That choice is not available" in capsys.readouterr().out


def test_continue_without_saves(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    _configure(monkeypatch, tmp_path)
    _feed_input(monkeypatch, ["2", "3"])

    app.main()

    assert "No saved games found." in capsys.readouterr().out


def test_build_story_repository_uses_configured_path(tmp_path: Path) -> None:
    path = write_story_file(tmp_path, filename="custom.json")

    repo = app._build_story_repository(str(path))

    assert repo.get_start_node_id("trial") == "gate"
