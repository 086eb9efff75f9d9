"""KPI weight configuration and its translation into scoring rules."""

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List

from ..core.constants import WEIGHT_EPSILON, WEIGHT_TOLERANCE_MAX, WEIGHT_TOLERANCE_MIN, WEIGHT_TOTAL
from ..core.models import round_half_up
from .models import (
    BuiltinFunction,
    BuiltinScore,
    CompoundCondition,
    InverseRatioScore,
    Logic,
    Operator,
    RatioScore,
    RuleCategory,
    ScoringRule,
    SimpleCondition,
)

logger = logging.getLogger(__name__)

# Ordered: the last positive entry absorbs rounding drift during normalization
DEFAULT_KPI_WEIGHTS: Dict[str, float] = {
    "workload": 20,
    "conversionHistorical": 25,
    "recentPerformance": 15,
    "responseTime": 10,
    "avgTimeToClose": 10,
    "avgDealSize": 10,
    "industryMatch": 5,
    "hotStreak": 5,
}

KPI_KEYS = list(DEFAULT_KPI_WEIGHTS)

RESPONSE_TIME_MAX_SECONDS = 86400  # 24h
TIME_TO_CLOSE_MAX_SECONDS = 2592000  # 30 days
DEAL_SIZE_MAX = 100000
HOT_STREAK_MAX_WINS = 10


@dataclass
class WeightValidation:
    """Outcome of checking a weight configuration."""
    valid: bool
    total: float
    errors: List[str] = field(default_factory=list)


def validate_weights(weights: Dict[str, float]) -> WeightValidation:
    """Check weights are non-negative and total roughly 100."""
    errors = []
    for key, value in weights.items():
        if value < 0:
            errors.append(f"Weight for {key} is negative ({value})")

    total = sum(weights.values())
    if not WEIGHT_TOLERANCE_MIN <= total <= WEIGHT_TOLERANCE_MAX:
        errors.append(f"Weights total {total:g}, expected {WEIGHT_TOTAL}")

    return WeightValidation(valid=not errors, total=total, errors=errors)


def normalize_weights(weights: Dict[str, float]) -> Dict[str, float]:
    """Rescale weights proportionally so they sum to exactly 100.

    A total already within 0.01 of 100 is returned as configured, fractions
    included. Otherwise each weight is rounded half-up and the last positive
    weight absorbs the rounding remainder. An all-zero configuration falls
    back to the defaults.
    """
    total = sum(weights.values())
    if total <= 0:
        logger.warning("KPI weights sum to zero, falling back to defaults")
        return dict(DEFAULT_KPI_WEIGHTS)
    if abs(total - WEIGHT_TOTAL) < WEIGHT_EPSILON:
        return dict(weights)

    factor = WEIGHT_TOTAL / total
    normalized = {key: round_half_up(value * factor) for key, value in weights.items()}

    positive = [key for key, value in weights.items() if value > 0]
    anchor = positive[-1]
    others = sum(value for key, value in normalized.items() if key != anchor)
    normalized[anchor] = WEIGHT_TOTAL - others

    logger.info(f"Normalized KPI weights from total {total:g} to {WEIGHT_TOTAL}")
    return normalized


def normalize_rule_weights(rules: List[ScoringRule]) -> List[ScoringRule]:
    """Normalize the weights of enabled rules, leaving disabled rules untouched.

    Rules are matched up by position, so rules sharing an id keep separate weights.
    """
    enabled = {index: rule.weight for index, rule in enumerate(rules) if rule.enabled}
    if not enabled or sum(enabled.values()) <= 0:
        return list(rules)

    normalized = normalize_weights(enabled)
    return [
        replace(rule, weight=normalized[index]) if rule.enabled else rule
        for index, rule in enumerate(rules)
    ]


def _not_null(field_path: str) -> SimpleCondition:
    return SimpleCondition(field_path, Operator.NOT_EQUALS, None)


def _build_rule(key: str, weight: float) -> ScoringRule:
    if key == "workload":
        return ScoringRule(
            id="kpi_workload",
            name="Workload Balance",
            description="Prefers agents with spare capacity",
            weight=weight,
            category=RuleCategory.CAPACITY,
            condition=SimpleCondition("agent.availability", Operator.GREATER_THAN, 0),
            match_score=BuiltinScore(BuiltinFunction.AVAILABILITY_SCORE),
        )
    if key == "conversionHistorical":
        return ScoringRule(
            id="kpi_conversion_historical",
            name="Historical Conversion",
            description="Conversion rate over the full history window",
            weight=weight,
            category=RuleCategory.PERFORMANCE,
            condition=_not_null("agent.conversionRate"),
            match_score=BuiltinScore(BuiltinFunction.CONVERSION_SCORE),
        )
    if key == "recentPerformance":
        # Same formula as historical conversion; only the profile window differs
        return ScoringRule(
            id="kpi_recent_performance",
            name="Recent Performance",
            description="Conversion rate over the recent window",
            weight=weight,
            category=RuleCategory.PERFORMANCE,
            condition=_not_null("agent.conversionRate"),
            match_score=BuiltinScore(BuiltinFunction.CONVERSION_SCORE),
        )
    if key == "responseTime":
        return ScoringRule(
            id="kpi_response_time",
            name="Response Time",
            description="Faster first response scores higher",
            weight=weight,
            category=RuleCategory.PERFORMANCE,
            condition=_not_null("agent.avgResponseTime"),
            match_score=InverseRatioScore("agent.avgResponseTime", RESPONSE_TIME_MAX_SECONDS),
        )
    if key == "avgTimeToClose":
        return ScoringRule(
            id="kpi_avg_time_to_close",
            name="Time to Close",
            description="Shorter sales cycles score higher",
            weight=weight,
            category=RuleCategory.PERFORMANCE,
            condition=_not_null("agent.avgTimeToClose"),
            match_score=InverseRatioScore("agent.avgTimeToClose", TIME_TO_CLOSE_MAX_SECONDS),
        )
    if key == "avgDealSize":
        return ScoringRule(
            id="kpi_avg_deal_size",
            name="Deal Size",
            description="Larger average won deal scores higher",
            weight=weight,
            category=RuleCategory.PERFORMANCE,
            condition=_not_null("agent.avgDealSize"),
            match_score=RatioScore("agent.avgDealSize", DEAL_SIZE_MAX),
        )
    if key == "industryMatch":
        return ScoringRule(
            id="kpi_industry_match",
            name="Industry Expertise",
            description="Expertise in the lead's industry",
            weight=weight,
            category=RuleCategory.EXPERTISE,
            condition=CompoundCondition(
                conditions=(_not_null("lead.industry"), _not_null("lead.lead_industry")),
                logic=Logic.OR,
            ),
            match_score=BuiltinScore(BuiltinFunction.INDUSTRY_MATCH),
        )
    if key == "hotStreak":
        return ScoringRule(
            id="kpi_hot_streak",
            name="Hot Streak",
            description="Recent run of closed deals",
            weight=weight,
            category=RuleCategory.MOMENTUM,
            condition=SimpleCondition("agent.hotStreakActive", Operator.EQUALS, True),
            match_score=RatioScore("agent.hotStreakCount", HOT_STREAK_MAX_WINS),
        )
    raise KeyError(key)


def kpi_weights_to_rules(weights: Dict[str, float], normalize: bool = True) -> List[ScoringRule]:
    """Generate one scoring rule per KPI with a positive weight.

    Args:
        weights: KPI key to weight, keys as in DEFAULT_KPI_WEIGHTS
        normalize: Rescale weights to sum to 100 first
    """
    for key in weights:
        if key not in DEFAULT_KPI_WEIGHTS:
            logger.warning(f"Ignoring unknown KPI weight: {key}")
    known = {key: weights[key] for key in KPI_KEYS if key in weights}

    if normalize:
        known = normalize_weights(known) if known else dict(DEFAULT_KPI_WEIGHTS)

    return [
        _build_rule(key, known[key])
        for key in KPI_KEYS
        if known.get(key, 0) > 0
    ]
