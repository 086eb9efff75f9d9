"""Tests for the decision service."""

import random
from datetime import datetime, timedelta

import pytest

from lead_router.core.config import DecisionConfig
from lead_router.core.models import AgentProfile, Confidence, ConfigVersions, DecisionMode, NormalizedLead
from lead_router.decision import (
    ProposalStatus,
    build_idempotency_key,
    decide,
    should_auto_apply,
)
from lead_router.explain import ExplanationMode
from lead_router.rules import kpi_weights_to_rules
from lead_router.scoring import evaluate

NOW = datetime(2024, 6, 5, 12, 0)
LEGAL_LEAD = NormalizedLead(lead_id="lead-1", industry="Legal", deal_size=5000, board_id="b1", item_id="i1")
LEGAL_RULES = kpi_weights_to_rules({"industryMatch": 50, "conversionHistorical": 50})


def make_agent(agent_id, **kwargs):
    defaults = dict(availability=0.9, conversion_rate=0.5)
    defaults.update(kwargs)
    return AgentProfile(agent_id=agent_id, agent_name=f"Agent {agent_id.upper()}", **defaults)


@pytest.fixture
def legal_agents():
    return [
        make_agent("a", industry_scores={"Legal": 80}),
        make_agent("b", industry_scores={"Legal": 20}),
    ]


@pytest.fixture
def unavailable_agents():
    return [make_agent("a", availability=0), make_agent("b", availability=0)]


def run(lead, agents, config, rng=None):
    result = evaluate(lead, agents, LEGAL_RULES)
    return decide(lead, result, config, ConfigVersions(), agents=agents, rng=rng, now=NOW)


class TestIdempotencyKey:
    """Tests for idempotency keys."""

    def test_board_and_item(self):
        """Keys combine board, item and config versions."""
        assert build_idempotency_key(LEGAL_LEAD, ConfigVersions()) == "b1:i1:1:1"

    def test_rules_version_appended(self):
        """A rules version is appended when present."""
        versions = ConfigVersions(rules_version="3")
        assert build_idempotency_key(LEGAL_LEAD, versions) == "b1:i1:1:1:3"

    def test_defaults(self):
        """Leads without a board use the default board and their own id."""
        lead = NormalizedLead(lead_id="lead-9")
        assert build_idempotency_key(lead, ConfigVersions(mapping_version="2")) == "default:lead-9:1:2"


class TestShouldAutoApply:
    """Tests for the auto-apply rule."""

    def test_manual_never_auto_applies(self):
        """Manual mode ignores score and confidence."""
        config = DecisionConfig(mode=DecisionMode.MANUAL)
        assert not should_auto_apply(config, 100, Confidence.HIGH)

    def test_auto_at_threshold(self):
        """Auto mode applies at or above the threshold with enough confidence."""
        config = DecisionConfig(mode=DecisionMode.AUTO, auto_approve_threshold=80)
        assert should_auto_apply(config, 80, Confidence.HIGH)
        assert not should_auto_apply(config, 79.9, Confidence.HIGH)
        assert not should_auto_apply(config, 95, Confidence.MEDIUM)

    def test_hybrid_never_on_low_confidence(self):
        """Hybrid mode refuses low confidence even without a minimum."""
        config = DecisionConfig(mode=DecisionMode.HYBRID, auto_approve_min_confidence=None)
        assert should_auto_apply(config, 90, Confidence.MEDIUM)
        assert not should_auto_apply(config, 90, Confidence.LOW)


class TestDecide:
    """Tests for decide."""

    def test_manual_mode_proposes(self, legal_agents):
        """Manual mode leaves a proposal for review."""
        decision = run(LEGAL_LEAD, legal_agents, DecisionConfig())
        proposal = decision.proposal

        assert not decision.should_auto_apply
        assert proposal.status is ProposalStatus.PROPOSED
        assert proposal.recommended_agent_id == "a"
        assert proposal.score == 100
        assert proposal.confidence is Confidence.HIGH
        assert proposal.alternative_agent_ids == ["b"]
        assert proposal.idempotency_key == "b1:i1:1:1"
        assert proposal.expires_at == NOW + timedelta(hours=24)
        assert decision.reason.startswith("Manual approval required")

    def test_auto_mode_applies(self, legal_agents):
        """Auto mode applies a confident, high-scoring recommendation."""
        decision = run(LEGAL_LEAD, legal_agents, DecisionConfig(mode=DecisionMode.AUTO))
        proposal = decision.proposal

        assert decision.should_auto_apply
        assert proposal.status is ProposalStatus.APPLIED
        assert proposal.auto_applied
        assert proposal.applied_agent_id == "a"
        assert proposal.awaiting_writeback

    def test_no_expiry(self, legal_agents):
        """Expiry can be disabled."""
        decision = run(LEGAL_LEAD, legal_agents, DecisionConfig(proposal_expiry_hours=None))
        assert decision.proposal.expires_at is None

    def test_zero_eligible_manual(self, unavailable_agents):
        """Without eligible agents manual mode proposes nobody."""
        decision = run(LEGAL_LEAD, unavailable_agents, DecisionConfig())
        proposal = decision.proposal

        assert not decision.should_auto_apply
        assert proposal.status is ProposalStatus.PROPOSED
        assert proposal.score == 0
        assert proposal.confidence is Confidence.LOW
        assert proposal.recommended_agent_id is None
        assert proposal.explanation.warnings
        assert proposal.explanation.gating_summary == "2 agents excluded"

    def test_zero_eligible_random_fallback(self, unavailable_agents):
        """Auto mode with random fallback applies a random agent."""
        config = DecisionConfig(mode=DecisionMode.AUTO, enable_random_fallback=True)
        decision = run(LEGAL_LEAD, unavailable_agents, config, rng=random.Random(7))
        proposal = decision.proposal

        assert decision.should_auto_apply
        assert proposal.status is ProposalStatus.APPLIED
        assert proposal.explanation.decision_mode is ExplanationMode.RANDOM_FALLBACK
        assert proposal.recommended_agent_id in {"a", "b"}

    def test_random_fallback_is_reproducible(self, unavailable_agents):
        """The same seed picks the same agent."""
        config = DecisionConfig(mode=DecisionMode.AUTO, enable_random_fallback=True)
        first = run(LEGAL_LEAD, unavailable_agents, config, rng=random.Random(3))
        second = run(LEGAL_LEAD, list(reversed(unavailable_agents)), config, rng=random.Random(3))
        assert first.proposal.recommended_agent_id == second.proposal.recommended_agent_id

    def test_fallback_needs_auto_mode(self, unavailable_agents):
        """Random fallback never fires outside auto mode."""
        config = DecisionConfig(mode=DecisionMode.HYBRID, enable_random_fallback=True)
        decision = run(LEGAL_LEAD, unavailable_agents, config)
        assert decision.proposal.status is ProposalStatus.PROPOSED
        assert decision.proposal.explanation.decision_mode is ExplanationMode.NO_MATCH
