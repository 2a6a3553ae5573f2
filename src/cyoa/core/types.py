"""Shared type aliases for the core and domain layers."""
from typing import Union

FlagValue = Union[bool, int, float, str]
Number = Union[int, float]

EFFECT_TYPES: tuple[str, ...] = ("wallet", "inventory", "stat", "flag", "status_effect")
EFFECT_OPERATIONS: tuple[str, ...] = ("add", "subtract", "set", "multiply")

__all__ = [
    "EFFECT_OPERATIONS",
    "EFFECT_TYPES",
    "FlagValue",
    "Number",
]
