"""Deterministic RNG wrapper built on top of random.Random."""
from __future__ import annotations

import secrets
from random import Random
from typing import Sequence, TypeVar

T_co = TypeVar("T_co")

Seed = int | str


class RNG:
    """Wrapper around random.Random that provides deterministic helpers.

    String seeds are hashed by ``random.Random`` itself, so the same seed text
    reproduces the same sequence across processes.
    """

    def __init__(self, seed: Seed | None = None) -> None:
        self._seed: Seed = seed if seed is not None else secrets.randbits(64)
        self._random = Random(self._seed)

    @property
    def seed(self) -> Seed:
        return self._seed

    def randint(self, a: int, b: int) -> int:
        """Return a random integer N such that a <= N <= b."""
        return self._random.randint(a, b)

    def random(self) -> float:
        """Return the next random floating point number in the range [0.0, 1.0)."""
        return self._random.random()

    def choice(self, seq: Sequence[T_co]) -> T_co:
        """Return a random element from the non-empty sequence."""
        if not seq:
            raise ValueError("Cannot choose from an empty sequence.")
        return self._random.choice(seq)
