"""Story definition structures used by the runtime."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from cyoa.domain.conditions import Expr, parse_expression


@dataclass(slots=True)
class EffectDef:
    """Declarative state mutation attached to a choice."""

    type: str
    target: str
    operation: str
    value: Any
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": self.type,
            "target": self.target,
            "operation": self.operation,
            "value": self.value,
        }
        if self.metadata:
            payload["metadata"] = dict(self.metadata)
        return payload


@dataclass(frozen=True, slots=True)
class ConditionDef:
    """Authored JSON-logic tree plus its parsed expression."""

    logic: Any
    expression: Expr

    @classmethod
    def from_logic(cls, logic: Any) -> "ConditionDef":
        return cls(logic=logic, expression=parse_expression(logic))

    @classmethod
    def from_raw(cls, raw: Any) -> "ConditionDef":
        """Accept either ``{"logic": tree}`` or a bare tree."""
        if isinstance(raw, Mapping) and "logic" in raw:
            return cls.from_logic(raw["logic"])
        return cls.from_logic(raw)


@dataclass(slots=True)
class RollRequirementDef:
    """Stat check attached to a choice or node."""

    stat: str
    difficulty: int
    formula: str | None = None


@dataclass(slots=True)
class StoryChoiceDef:
    """Represents a selectable choice on a story node."""

    id: str
    text: str
    target_node_id: str
    conditions: List[ConditionDef] = field(default_factory=list)
    effects: List[EffectDef] = field(default_factory=list)
    roll_requirements: List[RollRequirementDef] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class StoryNodeDef:
    """Fully parsed story node."""

    id: str
    text: str
    key: str | None = None
    media_ref: str | None = None
    choices: List[StoryChoiceDef] = field(default_factory=list)
    dice_checks: List[RollRequirementDef] = field(default_factory=list)
    is_terminal: bool = False


@dataclass(slots=True)
class StoryDef:
    """A whole story: its nodes and the designated start node."""

    id: str
    title: str
    start_node_id: str
    nodes: Dict[str, StoryNodeDef] = field(default_factory=dict)
