"""Scoring rule model: conditions, match-score strategies and config parsing."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)


class Operator(Enum):
    """Comparison operators for simple conditions."""
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    GREATER_OR_EQUAL = "greaterOrEqual"
    LESS_OR_EQUAL = "lessOrEqual"
    CONTAINS = "contains"
    IN = "in"
    NOT_IN = "notIn"


class Logic(Enum):
    """Combinators for compound conditions."""
    AND = "AND"
    OR = "OR"


class RuleCategory(Enum):
    """What a rule measures; drives explanation wording."""
    PERFORMANCE = "performance"
    CAPACITY = "capacity"
    EXPERTISE = "expertise"
    MOMENTUM = "momentum"
    OTHER = "other"


@dataclass(frozen=True)
class SimpleCondition:
    """Compare one field against an expected value."""
    field_path: str
    operator: Optional[Operator]
    value: Any = None
    operator_name: str = ""  # As written in config, kept for traces of unknown operators


@dataclass(frozen=True)
class CompoundCondition:
    """AND/OR over nested conditions."""
    conditions: Tuple["Condition", ...] = ()
    logic: Logic = Logic.AND


Condition = Union[SimpleCondition, CompoundCondition]


# Match-score strategies. The set is closed: evaluator dispatch covers every variant.

@dataclass(frozen=True)
class FixedScore:
    value: float = 1.0


@dataclass(frozen=True)
class RatioScore:
    """value / ratio_max, clamped to [0, 1]."""
    field_path: str
    ratio_max: float


@dataclass(frozen=True)
class InverseRatioScore:
    """1 - value / ratio_max, clamped to [0, 1]. For lower-is-better metrics."""
    field_path: str
    ratio_max: float


@dataclass(frozen=True)
class RangeScore:
    """Linear map of [range_min, range_max] onto [score_min, score_max]."""
    field_path: str
    range_min: float
    range_max: float
    score_min: float = 0.0
    score_max: float = 1.0


class BuiltinFunction(Enum):
    """Named scoring functions available to rules."""
    INDUSTRY_MATCH = "industryMatch"
    AVAILABILITY_SCORE = "availabilityScore"
    CONVERSION_SCORE = "conversionScore"


@dataclass(frozen=True)
class BuiltinScore:
    function: BuiltinFunction


@dataclass(frozen=True)
class UnsupportedScore:
    """A strategy the engine does not recognize. Always scores 0."""
    name: str
    reason: str = ""


MatchScore = Union[FixedScore, RatioScore, InverseRatioScore, RangeScore, BuiltinScore, UnsupportedScore]


@dataclass(frozen=True)
class ScoringRule:
    """A weighted, conditional scoring unit."""
    id: str
    name: str
    weight: float
    condition: Condition
    match_score: MatchScore = field(default_factory=FixedScore)
    enabled: bool = True
    category: RuleCategory = RuleCategory.OTHER
    description: str = ""


# ============================================================================
# Config boundary (camelCase JSON as stored by the rule editor)
# ============================================================================

def parse_operator(name: Optional[str]) -> Optional[Operator]:
    """Map a configured operator name to an Operator, or None if unknown."""
    if not name:
        return None
    try:
        return Operator(name)
    except ValueError:
        logger.warning(f"Unknown condition operator in rule config: {name!r}")
        return None


def condition_from_dict(data: Dict[str, Any]) -> Condition:
    """Parse a condition tree."""
    if "conditions" in data:
        logic_name = str(data.get("logic") or "AND").upper()
        try:
            logic = Logic(logic_name)
        except ValueError:
            logger.warning(f"Unknown condition logic {logic_name!r}, using AND")
            logic = Logic.AND
        children = tuple(condition_from_dict(c) for c in data.get("conditions") or [])
        return CompoundCondition(conditions=children, logic=logic)

    operator_name = data.get("operator") or ""
    return SimpleCondition(
        field_path=data.get("field") or "",
        operator=parse_operator(operator_name),
        value=data.get("value"),
        operator_name=operator_name,
    )


def condition_to_dict(condition: Condition) -> Dict[str, Any]:
    if isinstance(condition, CompoundCondition):
        return {
            "logic": condition.logic.value,
            "conditions": [condition_to_dict(c) for c in condition.conditions],
        }
    return {
        "field": condition.field_path,
        "operator": condition.operator.value if condition.operator else condition.operator_name,
        "value": condition.value,
    }


def match_score_from_dict(data: Optional[Dict[str, Any]]) -> MatchScore:
    """Parse a match-score definition into a strategy variant.

    Unknown types and custom function names become UnsupportedScore so the
    rule still loads and can be reported, rather than failing the whole set.
    """
    if not data:
        return FixedScore()

    score_type = data.get("type", "fixed")

    if score_type == "fixed":
        fixed = data.get("fixedValue")
        return FixedScore(value=float(fixed) if fixed is not None else 1.0)

    if score_type in ("ratio", "inverse_ratio"):
        field_path = data.get("ratioField")
        ratio_max = data.get("ratioMax")
        if not field_path or not ratio_max:
            return UnsupportedScore(name=score_type, reason="missing ratioField or ratioMax")
        cls = RatioScore if score_type == "ratio" else InverseRatioScore
        return cls(field_path=field_path, ratio_max=float(ratio_max))

    if score_type == "range":
        field_path = data.get("rangeField") or data.get("ratioField")
        range_min = data.get("rangeMin")
        range_max = data.get("rangeMax")
        if not field_path or range_min is None or range_max is None:
            return UnsupportedScore(name=score_type, reason="missing rangeField, rangeMin or rangeMax")
        return RangeScore(
            field_path=field_path,
            range_min=float(range_min),
            range_max=float(range_max),
            score_min=float(data.get("scoreMin", 0)),
            score_max=float(data.get("scoreMax", 1)),
        )

    if score_type == "custom":
        name = data.get("customFunction") or ""
        try:
            return BuiltinScore(function=BuiltinFunction(name))
        except ValueError:
            logger.warning(f"Unknown custom scoring function in rule config: {name!r}")
            return UnsupportedScore(name=name or "custom", reason="unknown custom function")

    logger.warning(f"Unknown match score type in rule config: {score_type!r}")
    return UnsupportedScore(name=str(score_type), reason="unknown match score type")


def match_score_to_dict(score: MatchScore) -> Dict[str, Any]:
    if isinstance(score, FixedScore):
        return {"type": "fixed", "fixedValue": score.value}
    if isinstance(score, RatioScore):
        return {"type": "ratio", "ratioField": score.field_path, "ratioMax": score.ratio_max}
    if isinstance(score, InverseRatioScore):
        return {"type": "inverse_ratio", "ratioField": score.field_path, "ratioMax": score.ratio_max}
    if isinstance(score, RangeScore):
        return {
            "type": "range",
            "rangeField": score.field_path,
            "rangeMin": score.range_min,
            "rangeMax": score.range_max,
            "scoreMin": score.score_min,
            "scoreMax": score.score_max,
        }
    if isinstance(score, BuiltinScore):
        return {"type": "custom", "customFunction": score.function.value}
    return {"type": "custom", "customFunction": score.name}


def rule_from_dict(data: Dict[str, Any]) -> ScoringRule:
    """Parse one rule from its stored config form."""
    category_name = data.get("category", "other")
    try:
        category = RuleCategory(category_name)
    except ValueError:
        category = RuleCategory.OTHER

    return ScoringRule(
        id=str(data["id"]),
        name=data.get("name", data["id"]),
        description=data.get("description", ""),
        weight=float(data.get("weight", 0)),
        enabled=bool(data.get("enabled", True)),
        category=category,
        condition=condition_from_dict(data.get("condition") or {}),
        match_score=match_score_from_dict(data.get("matchScore")),
    )


def rule_to_dict(rule: ScoringRule) -> Dict[str, Any]:
    return {
        "id": rule.id,
        "name": rule.name,
        "description": rule.description,
        "weight": rule.weight,
        "enabled": rule.enabled,
        "category": rule.category.value,
        "condition": condition_to_dict(rule.condition),
        "matchScore": match_score_to_dict(rule.match_score),
    }


def rules_from_list(items: List[Dict[str, Any]]) -> List[ScoringRule]:
    return [rule_from_dict(item) for item in items]
