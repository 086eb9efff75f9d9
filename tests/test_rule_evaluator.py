"""Tests for rule conditions, match scores and rule evaluation."""

import pytest

from lead_router.core.models import AgentProfile, NormalizedLead
from lead_router.rules import (
    BuiltinFunction,
    BuiltinScore,
    CompoundCondition,
    FixedScore,
    InverseRatioScore,
    Logic,
    Operator,
    RangeScore,
    RatioScore,
    RuleCategory,
    ScoringRule,
    SimpleCondition,
    UnsupportedScore,
    calculate_match_score,
    evaluate_condition,
    evaluate_rule,
    evaluate_rules,
    get_field_value,
    rule_from_dict,
    rule_to_dict,
)
from lead_router.rules.evaluator import compare_values


def condition(field_path, operator, value=None):
    return SimpleCondition(field_path, operator, value)


@pytest.fixture
def lead():
    return NormalizedLead(
        lead_id="lead-1",
        industry="Legal",
        deal_size=5000,
        source="website",
        extra={"region": "Midwest", "company_size": 40},
    )


@pytest.fixture
def agent():
    return AgentProfile(
        agent_id="a1",
        agent_name="Agent A",
        conversion_rate=0.5,
        total_leads_handled=20,
        total_leads_converted=10,
        avg_deal_size=50000,
        avg_response_time=43200,
        availability=0.9,
        current_active_leads=2,
        industry_scores={"Legal": 80},
    )


class TestFieldResolution:
    """Tests for dotted field paths."""

    def test_lead_attribute(self, lead, agent):
        """Lead attributes resolve directly."""
        assert get_field_value("lead.industry", lead, agent) == "Legal"

    def test_camel_case_maps_to_snake_case(self, lead, agent):
        """camelCase paths resolve to snake_case attributes."""
        assert get_field_value("lead.dealSize", lead, agent) == 5000
        assert get_field_value("agent.conversionRate", lead, agent) == 0.5

    def test_nested_dict_lookup(self, lead, agent):
        """Nested keys walk into dict fields."""
        assert get_field_value("agent.industryScores.Legal", lead, agent) == 80
        assert get_field_value("agent.industryScores.Retail", lead, agent) is None

    def test_lead_extra_fallback(self, lead, agent):
        """Unknown lead keys come from the extra attributes."""
        assert get_field_value("lead.region", lead, agent) == "Midwest"
        assert get_field_value("lead.companySize", lead, agent) == 40

    def test_unknown_root(self, lead, agent):
        """Paths outside lead/agent resolve to None."""
        assert get_field_value("org.name", lead, agent) is None
        assert get_field_value("lead", lead, agent) is None


class TestCompareValues:
    """Tests for comparison operators."""

    def test_null_handling(self):
        """None only matches equals None / notEquals something."""
        assert compare_values(None, Operator.EQUALS, None)
        assert compare_values(None, Operator.NOT_EQUALS, "x")
        assert not compare_values(None, Operator.NOT_EQUALS, None)
        assert not compare_values(None, Operator.GREATER_THAN, 0)

    def test_numeric_operators_require_numbers(self):
        """Ordering operators never match non-numbers."""
        assert compare_values(5, Operator.GREATER_THAN, 3)
        assert compare_values(3, Operator.LESS_OR_EQUAL, 3)
        assert not compare_values("5", Operator.GREATER_THAN, 3)
        assert not compare_values(True, Operator.GREATER_THAN, 0)

    def test_contains(self):
        """Contains is case-insensitive for strings and membership for lists."""
        assert compare_values("Corporate Legal", Operator.CONTAINS, "legal")
        assert compare_values(["a", "b"], Operator.CONTAINS, "b")
        assert not compare_values(42, Operator.CONTAINS, "4")

    def test_in_and_not_in(self):
        """In/notIn require a list of expected values."""
        assert compare_values("Legal", Operator.IN, ["Legal", "Finance"])
        assert compare_values("Retail", Operator.NOT_IN, ["Legal", "Finance"])
        assert not compare_values("Legal", Operator.IN, "Legal")


class TestConditions:
    """Tests for condition trees."""

    def test_simple_condition_trace(self, lead, agent):
        """Simple conditions report the actual value."""
        result = evaluate_condition(condition("lead.industry", Operator.EQUALS, "Legal"), lead, agent)
        assert result.matched
        assert 'actual: "Legal"' in result.details

    def test_condition_without_operator_name(self, lead, agent):
        """Conditions built in code need only the operator enum."""
        built = SimpleCondition("lead.industry", Operator.EQUALS, "Legal")
        result = evaluate_condition(built, lead, agent)
        assert result.matched
        assert result.error is None

        rule = ScoringRule(id="r", name="R", weight=50, condition=built, match_score=FixedScore(1.0))
        evaluated = evaluate_rule(rule, lead, agent)
        assert evaluated.applied
        assert evaluated.contribution == pytest.approx(50)
        assert evaluated.config_error is None

    def test_and_or(self, lead, agent):
        """AND needs every child, OR needs one."""
        yes = condition("lead.industry", Operator.EQUALS, "Legal")
        no = condition("lead.dealSize", Operator.GREATER_THAN, 10000)

        assert not evaluate_condition(CompoundCondition((yes, no), Logic.AND), lead, agent).matched
        assert evaluate_condition(CompoundCondition((yes, no), Logic.OR), lead, agent).matched

    def test_empty_compound_does_not_match(self, lead, agent):
        """A compound with no children never matches."""
        assert not evaluate_condition(CompoundCondition((), Logic.AND), lead, agent).matched

    def test_unknown_operator_fails_closed(self, lead, agent):
        """Unknown operators evaluate to false and carry an error."""
        bad = SimpleCondition("lead.industry", None, "Le", "startsWith")
        result = evaluate_condition(bad, lead, agent)
        assert not result.matched
        assert "startsWith" in result.error

    def test_missing_field(self, lead, agent):
        """A condition without a field is invalid."""
        result = evaluate_condition(SimpleCondition("", Operator.EQUALS, 1, "equals"), lead, agent)
        assert not result.matched
        assert result.error


class TestMatchScores:
    """Tests for match-score strategies."""

    def test_fixed_is_clamped(self, lead, agent):
        """Fixed values are clamped to [0, 1]."""
        assert calculate_match_score(FixedScore(0.4), lead, agent) == (0.4, None)
        assert calculate_match_score(FixedScore(2.0), lead, agent) == (1.0, None)

    def test_ratio(self, lead, agent):
        """Ratio divides by the maximum."""
        score, error = calculate_match_score(RatioScore("agent.avgDealSize", 100000), lead, agent)
        assert score == pytest.approx(0.5)
        assert error is None

    def test_inverse_ratio(self, lead, agent):
        """Inverse ratio favors lower values."""
        score, _ = calculate_match_score(InverseRatioScore("agent.avgResponseTime", 86400), lead, agent)
        assert score == pytest.approx(0.5)

    def test_ratio_with_missing_value(self, lead, agent):
        """Missing values score 0 without an error."""
        assert calculate_match_score(RatioScore("agent.avgTimeToClose", 100), lead, agent) == (0.0, None)

    def test_range(self, lead, agent):
        """Range maps linearly onto the score interval."""
        score, _ = calculate_match_score(RangeScore("lead.dealSize", 0, 10000, 0.2, 1.0), lead, agent)
        assert score == pytest.approx(0.6)

    def test_empty_range_is_config_error(self, lead, agent):
        """An empty range scores 0 and reports a configuration problem."""
        score, error = calculate_match_score(RangeScore("lead.dealSize", 10, 10), lead, agent)
        assert score == 0.0
        assert "Empty range" in error

    def test_builtin_functions(self, lead, agent):
        """Built-in functions read profile fields."""
        assert calculate_match_score(BuiltinScore(BuiltinFunction.INDUSTRY_MATCH), lead, agent)[0] == pytest.approx(0.8)
        assert calculate_match_score(BuiltinScore(BuiltinFunction.AVAILABILITY_SCORE), lead, agent)[0] == pytest.approx(0.9)
        assert calculate_match_score(BuiltinScore(BuiltinFunction.CONVERSION_SCORE), lead, agent)[0] == pytest.approx(0.5)

    def test_unsupported_scores_zero(self, lead, agent):
        """Unsupported functions score 0 with an error instead of a fixed guess."""
        score, error = calculate_match_score(UnsupportedScore("responseTimeScore", "unknown custom function"), lead, agent)
        assert score == 0.0
        assert "responseTimeScore" in error


class TestEvaluateRule:
    """Tests for evaluating whole rules."""

    def make_rule(self, **kwargs):
        defaults = dict(
            id="r1",
            name="Legal Specialist",
            weight=40,
            condition=condition("lead.industry", Operator.EQUALS, "Legal"),
            match_score=BuiltinScore(BuiltinFunction.INDUSTRY_MATCH),
            category=RuleCategory.EXPERTISE,
        )
        defaults.update(kwargs)
        return ScoringRule(**defaults)

    def test_applied_rule(self, lead, agent):
        """Contribution is weight times match score."""
        result = evaluate_rule(self.make_rule(), lead, agent)
        assert result.applied
        assert result.contribution == pytest.approx(32)
        assert result.explanation == "Strong Legal expertise (80/100 score)"

    def test_disabled_rule(self, lead, agent):
        """Disabled rules are reported but contribute nothing."""
        result = evaluate_rule(self.make_rule(enabled=False), lead, agent)
        assert not result.applied
        assert result.contribution == 0
        assert result.explanation == "Rule disabled"

    def test_condition_not_met(self, lead, agent):
        """Rules whose condition fails contribute nothing."""
        rule = self.make_rule(condition=condition("lead.industry", Operator.EQUALS, "Retail"))
        result = evaluate_rule(rule, lead, agent)
        assert not result.applied
        assert result.explanation == "Condition not met"

    def test_unsupported_function_reports_config_error(self, lead, agent):
        """An unsupported strategy applies with zero contribution and an error."""
        rule = self.make_rule(match_score=UnsupportedScore("mystery"))
        result = evaluate_rule(rule, lead, agent)
        assert result.applied
        assert result.contribution == 0
        assert "mystery" in result.config_error

    def test_capacity_explanation(self, lead, agent):
        """Capacity rules describe availability."""
        rule = self.make_rule(
            category=RuleCategory.CAPACITY,
            condition=condition("agent.availability", Operator.GREATER_THAN, 0),
            match_score=BuiltinScore(BuiltinFunction.AVAILABILITY_SCORE),
        )
        result = evaluate_rule(rule, lead, agent)
        assert result.explanation == "90% available (2 active leads)"

    def test_evaluate_rules_total(self, lead, agent):
        """The total is the sum of contributions."""
        rules = [
            self.make_rule(),
            self.make_rule(id="r2", name="Flat", weight=10, match_score=FixedScore(0.5),
                           category=RuleCategory.OTHER),
        ]
        results, total = evaluate_rules(rules, lead, agent)
        assert len(results) == 2
        assert total == pytest.approx(37)


class TestRuleParsing:
    """Tests for the stored rule format."""

    def test_parse_rule(self):
        """camelCase config parses into typed rules."""
        rule = rule_from_dict({
            "id": "big_deals",
            "name": "Big Deals",
            "weight": 30,
            "category": "performance",
            "condition": {
                "logic": "AND",
                "conditions": [
                    {"field": "lead.dealSize", "operator": "greaterThan", "value": 10000},
                    {"field": "agent.avgDealSize", "operator": "notEquals", "value": None},
                ],
            },
            "matchScore": {"type": "ratio", "ratioField": "agent.avgDealSize", "ratioMax": 100000},
        })
        assert rule.category is RuleCategory.PERFORMANCE
        assert isinstance(rule.condition, CompoundCondition)
        assert rule.condition.conditions[0].operator is Operator.GREATER_THAN
        assert rule.match_score == RatioScore("agent.avgDealSize", 100000)

    def test_unknown_names_still_load(self):
        """Unknown operators and functions load so they can be reported."""
        rule = rule_from_dict({
            "id": "odd",
            "weight": 10,
            "condition": {"field": "lead.industry", "operator": "startsWith", "value": "L"},
            "matchScore": {"type": "custom", "customFunction": "responseTimeScore"},
        })
        assert rule.condition.operator is None
        assert rule.condition.operator_name == "startsWith"
        assert isinstance(rule.match_score, UnsupportedScore)

    def test_rule_to_dict_keeps_operator_name(self):
        """Serialized rules keep what was configured."""
        rule = rule_from_dict({
            "id": "odd",
            "condition": {"field": "lead.industry", "operator": "startsWith", "value": "L"},
        })
        data = rule_to_dict(rule)
        assert data["condition"]["operator"] == "startsWith"
        assert data["matchScore"] == {"type": "fixed", "fixedValue": 1.0}
