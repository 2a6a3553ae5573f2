"""Shared CLI rendering helpers."""
from __future__ import annotations

import os
import textwrap
from typing import Sequence

from cyoa.services import ChoiceView, ProgressReport, RollResult

_TEXT_WIDTH = 76


def debug_enabled() -> bool:
    """Return True only when CYOA_DEBUG is explicitly set to '1'."""
    return os.getenv("CYOA_DEBUG") == "1"


def wrap_text(text: str, width: int = _TEXT_WIDTH) -> list[str]:
    """Wrap each paragraph on word boundaries, keeping blank lines between them."""
    lines: list[str] = []
    for paragraph in text.split("\n"):
        if not paragraph.strip():
            lines.append("")
            continue
        lines.extend(textwrap.wrap(paragraph, width=width, break_long_words=False, break_on_hyphens=False))
    return lines


def render_heading(title: str) -> None:
    """Print a consistent section heading."""
    print(f"\n=== {title} ===")


def render_node(node_id: str, text: str) -> None:
    render_heading("Story")
    if debug_enabled():
        print(f"[{node_id}]")
    for line in wrap_text(text):
        print(line)


def format_choice(choice: ChoiceView) -> str:
    """Label a choice, marking locked ones and those with a skill check."""
    label = choice.text
    if choice.has_roll_requirements:
        label += " [check]"
    if not choice.available:
        label += " (locked)"
    return label


def render_choices(choices: Sequence[ChoiceView], *, show_locked: bool = True) -> None:
    """Display numbered story choices; numbers match choice indices plus one."""
    visible = [choice for choice in choices if show_locked or choice.available]
    if not visible:
        return
    render_heading("Choices")
    for choice in visible:
        print(f"{choice.index + 1}. {format_choice(choice)}")


def format_roll(result: RollResult) -> str:
    outcome = "success" if result.success else "failure"
    if result.critical_success:
        outcome = "critical success"
    elif result.critical_failure:
        outcome = "critical failure"
    rolls = ", ".join(str(value) for value in result.rolls)
    stat = f"{result.stat} " if result.stat else ""
    return f"{stat}check {result.formula} vs {result.difficulty}: [{rolls}] = {result.total} ({outcome})"


def render_rolls(results: Sequence[RollResult]) -> None:
    if not results:
        return
    render_heading("Rolls")
    for result in results:
        print(f"- {format_roll(result)}")


def format_progress(progress: ProgressReport) -> str:
    return (
        f"Progress: {progress.progress_percentage}% "
        f"({progress.visited_nodes}/{progress.total_nodes} nodes, {progress.choices_made} choices)"
    )


def render_menu(title: str, options: Sequence[str]) -> None:
    """Display a menu section with numbered options."""
    render_heading(title)
    for idx, label in enumerate(options, start=1):
        print(f"{idx}. {label}")
