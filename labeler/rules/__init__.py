from labeler.rules.classifier import classify, match_rules, order_rules
from labeler.rules.errors import RuleEngineError, RuleNotFoundError, StoreError, ValidationError
from labeler.rules.evaluator import evaluate_condition, evaluate_group, evaluate_rule
from labeler.rules.models import (
    Condition,
    ConditionGroup,
    ProcessedRecord,
    Rule,
    StatisticsFilter,
    StatisticsSnapshot,
)
from labeler.rules.statistics import aggregate

__all__ = [
    "Condition",
    "ConditionGroup",
    "ProcessedRecord",
    "Rule",
    "StatisticsFilter",
    "StatisticsSnapshot",
    "RuleEngineError",
    "RuleNotFoundError",
    "StoreError",
    "ValidationError",
    "evaluate_condition",
    "evaluate_group",
    "evaluate_rule",
    "classify",
    "match_rules",
    "order_rules",
    "aggregate",
]
