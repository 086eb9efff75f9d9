"""Evaluate weighted scoring rules against one (lead, agent) pair.

Nothing in here raises on bad configuration. An unknown operator, malformed
condition or unsupported scoring strategy scores 0 and is reported through
``RuleEvaluationResult.config_error`` so callers can surface it as a warning.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from ..core.models import AgentProfile, NormalizedLead
from .models import (
    BuiltinFunction,
    BuiltinScore,
    CompoundCondition,
    Condition,
    FixedScore,
    InverseRatioScore,
    Logic,
    MatchScore,
    Operator,
    RangeScore,
    RatioScore,
    RuleCategory,
    ScoringRule,
    SimpleCondition,
    UnsupportedScore,
)

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


@dataclass
class ConditionResult:
    """Outcome of a condition tree with a readable trace."""
    matched: bool
    details: str
    error: Optional[str] = None


@dataclass
class RuleEvaluationResult:
    """Result of one rule for one agent."""
    rule_id: str
    rule_name: str
    category: RuleCategory
    weight: float
    applied: bool
    match_score: float
    contribution: float
    explanation: str
    condition_details: str = ""
    config_error: Optional[str] = None


# ============================================================================
# Field resolution
# ============================================================================

def _snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _lookup(obj: Any, key: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(key)
    for attr in (key, _snake(key)):
        if attr in getattr(obj, "__dataclass_fields__", {}):
            return getattr(obj, attr)
    return None


def _lookup_lead(lead: NormalizedLead, key: str) -> Any:
    for attr in (key, _snake(key)):
        if attr in lead.__dataclass_fields__ and attr != "extra":
            return getattr(lead, attr)
    if key in lead.extra:
        return lead.extra[key]
    return lead.extra.get(_snake(key))


def get_field_value(path: str, lead: NormalizedLead, agent: AgentProfile) -> Any:
    """Resolve a dotted path such as ``lead.industry`` or ``agent.industryScores.Legal``.

    camelCase segments resolve to snake_case attributes. Lead keys that are
    not lead attributes are looked up in ``lead.extra``. Unknown roots give None.
    """
    parts = path.split(".") if path else []
    if len(parts) < 2:
        return None

    root, first, rest = parts[0], parts[1], parts[2:]
    if root == "lead":
        current = _lookup_lead(lead, first)
    elif root == "agent":
        current = _lookup(agent, first)
    else:
        return None

    for key in rest:
        current = _lookup(current, key)
        if current is None:
            return None
    return current


# ============================================================================
# Conditions
# ============================================================================

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _to_json(value: Any) -> str:
    return json.dumps(value, default=str)


def compare_values(actual: Any, operator: Operator, expected: Any) -> bool:
    """Apply one comparison operator."""
    if actual is None:
        if operator is Operator.EQUALS:
            return expected is None
        if operator is Operator.NOT_EQUALS:
            return expected is not None
        return False

    if operator is Operator.EQUALS:
        return actual == expected
    if operator is Operator.NOT_EQUALS:
        return actual != expected

    if operator in (Operator.GREATER_THAN, Operator.LESS_THAN,
                    Operator.GREATER_OR_EQUAL, Operator.LESS_OR_EQUAL):
        if not (_is_number(actual) and _is_number(expected)):
            return False
        if operator is Operator.GREATER_THAN:
            return actual > expected
        if operator is Operator.LESS_THAN:
            return actual < expected
        if operator is Operator.GREATER_OR_EQUAL:
            return actual >= expected
        return actual <= expected

    if operator is Operator.CONTAINS:
        if isinstance(actual, str) and isinstance(expected, str):
            return expected.lower() in actual.lower()
        if isinstance(actual, (list, tuple, set)):
            return expected in actual
        return False

    if operator is Operator.IN:
        return isinstance(expected, (list, tuple, set)) and actual in expected
    if operator is Operator.NOT_IN:
        return isinstance(expected, (list, tuple, set)) and actual not in expected

    return False


def evaluate_condition(condition: Condition, lead: NormalizedLead, agent: AgentProfile) -> ConditionResult:
    """Evaluate a condition tree."""
    if isinstance(condition, CompoundCondition):
        if not condition.conditions:
            return ConditionResult(False, "No sub-conditions")

        results = [evaluate_condition(c, lead, agent) for c in condition.conditions]
        if condition.logic is Logic.OR:
            matched = any(r.matched for r in results)
        else:
            matched = all(r.matched for r in results)

        details = f"{condition.logic.value}({', '.join(r.details for r in results)})"
        error = next((r.error for r in results if r.error), None)
        return ConditionResult(matched, details, error)

    if not condition.field_path or (condition.operator is None and not condition.operator_name):
        return ConditionResult(
            False,
            "Invalid condition: missing field or operator",
            error="Condition is missing a field or operator",
        )

    if condition.operator is None:
        return ConditionResult(
            False,
            f"Unknown operator: {condition.operator_name}",
            error=f"Unknown operator '{condition.operator_name}' on {condition.field_path}",
        )

    actual = get_field_value(condition.field_path, lead, agent)
    matched = compare_values(actual, condition.operator, condition.value)
    details = (
        f"{condition.field_path} {condition.operator.value} {_to_json(condition.value)} "
        f"(actual: {_to_json(actual)})"
    )
    return ConditionResult(matched, details)


# ============================================================================
# Match scores
# ============================================================================

def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(high, max(low, value))


def _lead_industry(lead: NormalizedLead) -> Optional[str]:
    return lead.industry or lead.extra.get("lead_industry")


def _builtin_score(function: BuiltinFunction, lead: NormalizedLead, agent: AgentProfile) -> float:
    if function is BuiltinFunction.INDUSTRY_MATCH:
        industry = _lead_industry(lead)
        if not industry:
            return 0.0
        score = agent.industry_scores.get(industry)
        return _clamp(score / 100) if _is_number(score) else 0.0
    if function is BuiltinFunction.AVAILABILITY_SCORE:
        return _clamp(agent.availability or 0.0)
    if function is BuiltinFunction.CONVERSION_SCORE:
        return _clamp(agent.conversion_rate or 0.0)
    return 0.0


def calculate_match_score(
    score: MatchScore,
    lead: NormalizedLead,
    agent: AgentProfile,
) -> Tuple[float, Optional[str]]:
    """Compute a match score in [0, 1].

    Returns:
        (score, config_error) where config_error is set when the strategy
        could not be applied as configured.
    """
    if isinstance(score, FixedScore):
        return _clamp(score.value), None

    if isinstance(score, (RatioScore, InverseRatioScore)):
        value = get_field_value(score.field_path, lead, agent)
        if not _is_number(value) or not score.ratio_max:
            return 0.0, None
        ratio = value / score.ratio_max
        if isinstance(score, InverseRatioScore):
            ratio = 1 - ratio
        return _clamp(ratio), None

    if isinstance(score, RangeScore):
        if score.range_max == score.range_min:
            return 0.0, f"Empty range {score.range_min}..{score.range_max} on {score.field_path}"
        value = get_field_value(score.field_path, lead, agent)
        if not _is_number(value):
            return 0.0, None
        position = _clamp((value - score.range_min) / (score.range_max - score.range_min))
        return _clamp(score.score_min + (score.score_max - score.score_min) * position), None

    if isinstance(score, BuiltinScore):
        return _builtin_score(score.function, lead, agent), None

    if isinstance(score, UnsupportedScore):
        message = f"Unsupported scoring function '{score.name}'"
        if score.reason:
            message += f" ({score.reason})"
        return 0.0, message

    return 0.0, f"Unrecognized match score strategy: {type(score).__name__}"


# ============================================================================
# Rules
# ============================================================================

def _format_number(value: float) -> str:
    return f"{value:g}"


def explain_rule(rule: ScoringRule, lead: NormalizedLead, agent: AgentProfile) -> str:
    """Human-readable explanation for an applied rule."""
    if rule.category is RuleCategory.EXPERTISE:
        industry = _lead_industry(lead)
        score = agent.industry_scores.get(industry) if industry else None
        if industry and score is not None:
            return f"Strong {industry} expertise ({_format_number(score)}/100 score)"
        return "Industry match"

    if rule.category is RuleCategory.CAPACITY:
        return f"{agent.availability * 100:.0f}% available ({agent.current_active_leads} active leads)"

    if rule.category is RuleCategory.PERFORMANCE:
        if agent.conversion_rate is not None:
            return (
                f"{agent.conversion_rate * 100:.1f}% conversion rate "
                f"({agent.total_leads_converted}/{agent.total_leads_handled} deals)"
            )
        return "Historical performance"

    if rule.category is RuleCategory.MOMENTUM:
        if agent.hot_streak_active and agent.hot_streak_count:
            return f"Hot streak: {agent.hot_streak_count} recent wins"
        return "Performance momentum"

    return rule.description or rule.name


def evaluate_rule(rule: ScoringRule, lead: NormalizedLead, agent: AgentProfile) -> RuleEvaluationResult:
    """Evaluate a single rule for one agent."""
    result = RuleEvaluationResult(
        rule_id=rule.id,
        rule_name=rule.name,
        category=rule.category,
        weight=rule.weight,
        applied=False,
        match_score=0.0,
        contribution=0.0,
        explanation="Rule disabled",
    )
    if not rule.enabled:
        return result

    condition = evaluate_condition(rule.condition, lead, agent)
    result.condition_details = condition.details
    if condition.error:
        logger.warning(f"Rule {rule.id} has an invalid condition: {condition.error}")
        result.config_error = f"Rule '{rule.name}': {condition.error}"
    if not condition.matched:
        result.explanation = "Condition not met"
        return result

    match_score, error = calculate_match_score(rule.match_score, lead, agent)
    if error:
        logger.warning(f"Rule {rule.id} scored 0: {error}")
        result.config_error = f"Rule '{rule.name}': {error}"

    result.applied = True
    result.match_score = match_score
    result.contribution = rule.weight * match_score
    result.explanation = explain_rule(rule, lead, agent)
    return result


def evaluate_rules(
    rules: List[ScoringRule],
    lead: NormalizedLead,
    agent: AgentProfile,
) -> Tuple[List[RuleEvaluationResult], float]:
    """Evaluate every rule for one agent.

    Returns:
        (results, total) where total is the sum of contributions
    """
    results = [evaluate_rule(rule, lead, agent) for rule in rules]
    total = sum(r.contribution for r in results)
    return results, total
