"""Dice rolling with a seeded RNG so sessions can be replayed.

Formulas use standard RPG notation ``XdY+Z``:

* ``1d20+3`` rolls one twenty-sided die and adds 3
* ``2d6`` rolls two six-sided dice
* ``3d10-2`` rolls three ten-sided dice and subtracts 2
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, TypeVar

from cyoa.core.errors import EmptyInputError, FormatError, RangeError
from cyoa.core.rng import RNG, Seed

T = TypeVar("T")

_FORMULA_PATTERN = re.compile(r"^(\d+)d(\d+)([+-]\d+)?$", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class DiceFormula:
    """Parsed ``XdY+Z`` formula."""

    count: int
    sides: int
    modifier: int = 0

    @property
    def is_single_d20(self) -> bool:
        return self.count == 1 and self.sides == 20

    def render(self) -> str:
        if self.modifier > 0:
            return f"{self.count}d{self.sides}+{self.modifier}"
        if self.modifier < 0:
            return f"{self.count}d{self.sides}{self.modifier}"
        return f"{self.count}d{self.sides}"


@dataclass(slots=True)
class RollResult:
    """Detailed outcome of a single roll."""

    total: int
    rolls: List[int]
    modifier: int
    formula: str
    success: bool | None = None
    critical_success: bool = False
    critical_failure: bool = False
    difficulty: int | None = None
    stat: str | None = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "total": self.total,
            "rolls": list(self.rolls),
            "modifier": self.modifier,
            "formula": self.formula,
            "success": self.success,
            "criticalSuccess": self.critical_success,
            "criticalFailure": self.critical_failure,
        }
        if self.difficulty is not None:
            payload["difficulty"] = self.difficulty
        if self.stat is not None:
            payload["stat"] = self.stat
        return payload


def parse_formula(formula: object) -> DiceFormula:
    """Parse a dice formula, ignoring whitespace.

    Raises:
        FormatError: If the text does not match ``XdY[+-Z]``.
        RangeError: If fewer than one die or fewer than two sides are requested.
    """
    if not isinstance(formula, str):
        raise FormatError(formula)
    cleaned = re.sub(r"\s", "", formula)
    match = _FORMULA_PATTERN.match(cleaned)
    if not match:
        raise FormatError(formula)
    count = int(match.group(1))
    sides = int(match.group(2))
    modifier = int(match.group(3)) if match.group(3) else 0
    if count < 1 or sides < 2:
        raise RangeError(
            f"Invalid dice parameters in {formula!r}: need at least 1 die with 2 or more sides.",
            formula=formula,
        )
    return DiceFormula(count=count, sides=sides, modifier=modifier)


def calculate_modifier(stat_value: float) -> int:
    """D&D style ability modifier: ``floor((stat - 10) / 2)``."""
    return math.floor((stat_value - 10) / 2)


class DiceRoller:
    """Rolls dice formulas against an injectable RNG."""

    def __init__(self, rng: RNG | None = None) -> None:
        self._rng = rng or RNG()

    @classmethod
    def seeded(cls, seed: Seed) -> "DiceRoller":
        return cls(RNG(seed))

    def set_seed(self, seed: Seed) -> None:
        """Replace the generator; the same seed always replays the same rolls."""
        self._rng = RNG(seed)

    def roll(self, formula: str, difficulty: int | None = None) -> RollResult:
        """Roll ``formula`` and optionally compare the total with ``difficulty``.

        A single d20 that lands on 20 always succeeds and one that lands on 1
        always fails, whatever the difficulty.
        """
        parsed = parse_formula(formula)
        return self._roll_parsed(parsed, formula, difficulty)

    def roll_with_stat_modifier(
        self,
        stat_value: float,
        difficulty: int,
        *,
        base_formula: str = "1d20",
    ) -> RollResult:
        """Roll ``base_formula`` with the stat's ability modifier folded in."""
        base = parse_formula(base_formula)
        combined = DiceFormula(
            count=base.count,
            sides=base.sides,
            modifier=base.modifier + calculate_modifier(stat_value),
        )
        return self._roll_parsed(combined, combined.render(), difficulty)

    def random_int(self, minimum: int, maximum: int) -> int:
        """Return an integer in ``[minimum, maximum]``."""
        if minimum > maximum:
            raise RangeError(f"Empty range: {minimum} > {maximum}.")
        return self._rng.randint(minimum, maximum)

    def random_element(self, items: Sequence[T]) -> T:
        if not items:
            raise EmptyInputError("Cannot select from an empty sequence.")
        return items[self.random_int(0, len(items) - 1)]

    def _roll_parsed(self, parsed: DiceFormula, formula: str, difficulty: int | None) -> RollResult:
        rolls = [self._rng.randint(1, parsed.sides) for _ in range(parsed.count)]
        result = RollResult(
            total=sum(rolls) + parsed.modifier,
            rolls=rolls,
            modifier=parsed.modifier,
            formula=formula,
            difficulty=difficulty,
        )
        if parsed.is_single_d20 and rolls[0] == 20:
            result.critical_success = True
            result.success = True
        elif parsed.is_single_d20 and rolls[0] == 1:
            result.critical_failure = True
            result.success = False
        elif difficulty is not None:
            result.success = result.total >= difficulty
        return result
