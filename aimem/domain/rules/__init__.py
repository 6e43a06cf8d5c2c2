"""Rule evaluation for pre-modification checks."""

from .defaults import default_rules
from .evaluator import RuleEvaluator
from .expression import ConditionContext, compile_condition, evaluate_condition

__all__ = [
    "default_rules",
    "RuleEvaluator",
    "ConditionContext",
    "compile_condition",
    "evaluate_condition",
]
