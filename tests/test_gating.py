"""Tests for eligibility gating."""

from datetime import datetime

from lead_router.core.config import CapacityLimits, GatingConfig
from lead_router.core.models import AgentProfile, NormalizedLead
from lead_router.profiling import calculate_capacity
from lead_router.scoring import apply_gating_filters, is_agent_eligible


def make_agent(agent_id, **kwargs):
    return AgentProfile(agent_id=agent_id, agent_name=f"Agent {agent_id}", **kwargs)


LEAD = NormalizedLead(lead_id="lead-1", industry="Legal")


class TestEligibility:
    """Tests for the basic eligibility check."""

    def test_available_agent(self):
        """An agent with capacity is eligible."""
        assert is_agent_eligible(make_agent("a", availability=0.5), 20) == (True, None)

    def test_no_availability(self):
        """Zero availability excludes the agent."""
        assert is_agent_eligible(make_agent("a", availability=0), 20) == (False, "Agent at capacity")

    def test_daily_threshold(self):
        """Reaching the daily threshold excludes the agent."""
        eligible, reason = is_agent_eligible(make_agent("a", daily_leads_today=20), 20)
        assert not eligible
        assert reason == "Daily lead threshold reached"


class TestGatingFilters:
    """Tests for apply_gating_filters."""

    def test_partitions_agents(self):
        """Agents are split with a reason for every exclusion."""
        agents = [
            make_agent("a"),
            make_agent("b", availability=0),
            make_agent("c", daily_leads_today=25),
        ]
        result = apply_gating_filters(agents, LEAD)
        assert [a.agent_id for a in result.eligible] == ["a"]
        assert result.excluded == {"b": "Agent at capacity", "c": "Daily lead threshold reached"}
        assert result.summary == "2 agents excluded"

    def test_min_conversion_rate(self):
        """Agents below the minimum conversion rate, or without one, are excluded."""
        config = GatingConfig(min_conversion_rate=0.3)
        agents = [make_agent("a", conversion_rate=0.4), make_agent("b", conversion_rate=0.1), make_agent("c")]
        result = apply_gating_filters(agents, LEAD, config)
        assert [a.agent_id for a in result.eligible] == ["a"]
        assert "Conversion rate below minimum" in result.excluded["b"]
        assert "c" in result.excluded

    def test_min_industry_score(self):
        """Industry minimums only apply to the lead's industry."""
        config = GatingConfig(min_industry_score=50)
        agents = [
            make_agent("a", industry_scores={"Legal": 70}),
            make_agent("b", industry_scores={"Retail": 90}),
        ]
        result = apply_gating_filters(agents, LEAD, config)
        assert [a.agent_id for a in result.eligible] == ["a"]
        assert result.excluded["b"] == "Industry expertise below minimum for Legal"

    def test_burnout_exclusion_is_opt_in(self):
        """High burnout only excludes when configured."""
        agents = [make_agent("a", burnout_score=95)]
        assert apply_gating_filters(agents, LEAD).eligible

        result = apply_gating_filters(agents, LEAD, GatingConfig(exclude_high_burnout=True))
        assert result.excluded["a"] == "High burnout score (95)"

    def test_capacity_limits(self):
        """Capacity issues exclude the agent with the limit warning."""
        now = datetime(2024, 6, 5, 15, 0)
        capacity = {
            "a": calculate_capacity("a", [datetime(2024, 6, 5, 9, 0)], CapacityLimits(daily_limit=1), now),
        }
        result = apply_gating_filters([make_agent("a"), make_agent("b")], LEAD, capacity=capacity)
        assert [a.agent_id for a in result.eligible] == ["b"]
        assert result.excluded["a"] == "Capacity limit reached: Daily limit reached (1/1)"

    def test_is_eligible(self):
        """is_eligible reflects exclusions."""
        result = apply_gating_filters([make_agent("a"), make_agent("b", availability=0)], LEAD)
        assert result.is_eligible("a")
        assert not result.is_eligible("b")
