"""Scoring rules: model, evaluator and KPI weight translation."""

from .models import (
    Operator,
    Logic,
    RuleCategory,
    SimpleCondition,
    CompoundCondition,
    FixedScore,
    RatioScore,
    InverseRatioScore,
    RangeScore,
    BuiltinFunction,
    BuiltinScore,
    UnsupportedScore,
    ScoringRule,
    rule_from_dict,
    rule_to_dict,
    rules_from_list,
)
from .evaluator import (
    RuleEvaluationResult,
    evaluate_condition,
    evaluate_rule,
    evaluate_rules,
    calculate_match_score,
    get_field_value,
)
from .weights import (
    DEFAULT_KPI_WEIGHTS,
    kpi_weights_to_rules,
    normalize_weights,
    normalize_rule_weights,
    validate_weights,
)

__all__ = [
    'Operator',
    'Logic',
    'RuleCategory',
    'SimpleCondition',
    'CompoundCondition',
    'FixedScore',
    'RatioScore',
    'InverseRatioScore',
    'RangeScore',
    'BuiltinFunction',
    'BuiltinScore',
    'UnsupportedScore',
    'ScoringRule',
    'rule_from_dict',
    'rule_to_dict',
    'rules_from_list',
    'RuleEvaluationResult',
    'evaluate_condition',
    'evaluate_rule',
    'evaluate_rules',
    'calculate_match_score',
    'get_field_value',
    'DEFAULT_KPI_WEIGHTS',
    'kpi_weights_to_rules',
    'normalize_weights',
    'normalize_rule_weights',
    'validate_weights',
]
