"""Domain definition exports."""

from .story_def import (
    ConditionDef,
    EffectDef,
    RollRequirementDef,
    StoryChoiceDef,
    StoryDef,
    StoryNodeDef,
)

__all__ = [
    "ConditionDef",
    "EffectDef",
    "RollRequirementDef",
    "StoryChoiceDef",
    "StoryDef",
    "StoryNodeDef",
]
