"""Service layer exports."""

from .condition_evaluator import Availability, ConditionEvaluator, FailedCondition, build_default_predicates
from .dice_roller import DiceFormula, DiceRoller, RollResult, calculate_modifier, parse_formula
from .effect_processor import EffectProcessor
from .state_manager import DEFAULT_STATS, StateManager
from .story_navigator import (
    ChoiceValidation,
    ChoiceView,
    NodeView,
    ProgressReport,
    StateTransition,
    StoryNavigator,
)
from .gameplay_service import ChoiceOutcome, GameplayService, GameView, SaveSummary

__all__ = [
    "Availability",
    "ConditionEvaluator",
    "FailedCondition",
    "build_default_predicates",
    "DiceFormula",
    "DiceRoller",
    "RollResult",
    "calculate_modifier",
    "parse_formula",
    "EffectProcessor",
    "DEFAULT_STATS",
    "StateManager",
    "ChoiceValidation",
    "ChoiceView",
    "NodeView",
    "ProgressReport",
    "StateTransition",
    "StoryNavigator",
    "ChoiceOutcome",
    "GameplayService",
    "GameView",
    "SaveSummary",
]
