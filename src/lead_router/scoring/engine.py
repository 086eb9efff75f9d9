"""Score, rank and tie-break agents for a lead.

``evaluate`` is pure: same inputs, same ScoringResult. It reads no clock and
draws no random numbers, so results can be recomputed and compared later.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import cmp_to_key
from typing import Dict, List, Optional, Tuple

from ..core.config import GatingConfig
from ..core.constants import (
    MAX_ALTERNATIVES,
    RANK_INELIGIBLE,
    RANK_TOP,
    SCORE_EPSILON,
    SCORE_MAX,
    WEIGHT_TOLERANCE_MAX,
    WEIGHT_TOLERANCE_MIN,
)
from ..core.models import AgentProfile, NormalizedLead
from ..profiling.availability import CapacityStatus
from ..rules.evaluator import RuleEvaluationResult, evaluate_rules
from ..rules.models import ScoringRule
from ..rules.weights import normalize_rule_weights
from .gating import GatingResult, apply_gating_filters

logger = logging.getLogger(__name__)


class TieBreakCriterion(Enum):
    """Criteria used, in order, when two agents score within epsilon."""
    AVAILABILITY = "higher availability"
    WORKLOAD = "lower workload"
    CONVERSION = "better conversion rate"
    HOT_STREAK = "hot streak active"
    AGENT_ID = "agent id order"


@dataclass
class AgentScore:
    """Score and rank for one agent."""
    agent_id: str
    agent_name: str
    total_score: float = 0.0
    normalized_score: float = 0.0
    rank: int = RANK_INELIGIBLE
    eligible: bool = True
    ineligibility_reason: Optional[str] = None
    tie_break_used: bool = False
    tie_break_reason: Optional[str] = None
    rule_results: List[RuleEvaluationResult] = field(default_factory=list)

    def applied_rules(self) -> List[RuleEvaluationResult]:
        return [r for r in self.rule_results if r.applied]


@dataclass
class ScoringResult:
    """Ranked scores for every agent considered for a lead."""
    lead_id: str
    scores: List[AgentScore] = field(default_factory=list)
    top_agent: Optional[AgentScore] = None
    alternatives: List[AgentScore] = field(default_factory=list)
    total_agents_evaluated: int = 0
    eligible_agents: int = 0
    rules_applied: int = 0
    gating: GatingResult = field(default_factory=GatingResult)
    config_warnings: List[str] = field(default_factory=list)

    def get(self, agent_id: str) -> Optional[AgentScore]:
        for score in self.scores:
            if score.agent_id == agent_id:
                return score
        return None

    @property
    def eligible_scores(self) -> List[AgentScore]:
        return [s for s in self.scores if s.eligible]


def compare_agents(a: AgentProfile, b: AgentProfile) -> Tuple[int, TieBreakCriterion]:
    """Order two agents with equal scores.

    Returns:
        (cmp, criterion) where cmp < 0 means ``a`` wins. The order is total:
        agent id settles anything the profile criteria leave equal.
    """
    if a.availability != b.availability:
        return (-1 if a.availability > b.availability else 1), TieBreakCriterion.AVAILABILITY

    if a.current_active_leads != b.current_active_leads:
        return (-1 if a.current_active_leads < b.current_active_leads else 1), TieBreakCriterion.WORKLOAD

    if a.conversion_rate is not None and b.conversion_rate is not None:
        if a.conversion_rate != b.conversion_rate:
            return (-1 if a.conversion_rate > b.conversion_rate else 1), TieBreakCriterion.CONVERSION

    if a.hot_streak_active != b.hot_streak_active:
        return (-1 if a.hot_streak_active else 1), TieBreakCriterion.HOT_STREAK

    if a.agent_id == b.agent_id:
        return 0, TieBreakCriterion.AGENT_ID
    return (-1 if a.agent_id < b.agent_id else 1), TieBreakCriterion.AGENT_ID


def _weight_warnings(rules: List[ScoringRule]) -> List[str]:
    enabled = [rule for rule in rules if rule.enabled]
    if not enabled:
        return ["No enabled scoring rules; all agents score 0"]

    warnings = []
    seen = set()
    for rule in enabled:
        if rule.id in seen:
            warnings.append(f"Duplicate rule id '{rule.id}'; explanations may merge these rules")
        seen.add(rule.id)

    total = sum(rule.weight for rule in enabled)
    if not WEIGHT_TOLERANCE_MIN <= total <= WEIGHT_TOLERANCE_MAX:
        warnings.append(f"Rule weights total {total:g}; rescaled to 100")
    return warnings


def evaluate(
    lead: NormalizedLead,
    agents: List[AgentProfile],
    rules: List[ScoringRule],
    gating_config: Optional[GatingConfig] = None,
    capacity: Optional[Dict[str, CapacityStatus]] = None,
) -> ScoringResult:
    """Gate, score, normalize and rank agents for one lead.

    Args:
        lead: Lead being routed
        agents: Agent profile snapshots
        rules: Scoring rules; enabled weights are rescaled to sum to 100
        gating_config: Eligibility filters, defaults if omitted
        capacity: Optional capacity status per agent id, used by gating

    Returns:
        ScoringResult with eligible agents ranked from 1 and ineligible
        agents after them at RANK_INELIGIBLE.
    """
    warnings = _weight_warnings(rules)
    active_rules = [rule for rule in normalize_rule_weights(rules) if rule.enabled]

    gating = apply_gating_filters(agents, lead, gating_config, capacity)
    profiles = {agent.agent_id: agent for agent in agents}

    eligible_scores = []
    for agent in gating.eligible:
        results, total = evaluate_rules(active_rules, lead, agent)
        eligible_scores.append(AgentScore(
            agent_id=agent.agent_id,
            agent_name=agent.agent_name,
            total_score=total,
            rule_results=results,
        ))
        for result in results:
            if result.config_error and result.config_error not in warnings:
                warnings.append(result.config_error)

    max_total = max((s.total_score for s in eligible_scores), default=0.0)
    for score in eligible_scores:
        score.normalized_score = score.total_score / max_total * SCORE_MAX if max_total > 0 else 0.0

    def order(a: AgentScore, b: AgentScore) -> int:
        if abs(a.normalized_score - b.normalized_score) >= SCORE_EPSILON:
            return -1 if a.normalized_score > b.normalized_score else 1
        cmp, _ = compare_agents(profiles[a.agent_id], profiles[b.agent_id])
        return cmp

    ranked = sorted(eligible_scores, key=cmp_to_key(order))
    for index, score in enumerate(ranked):
        score.rank = RANK_TOP + index

    for upper, lower in zip(ranked, ranked[1:]):
        if abs(upper.normalized_score - lower.normalized_score) < SCORE_EPSILON:
            _, criterion = compare_agents(profiles[upper.agent_id], profiles[lower.agent_id])
            upper.tie_break_used = True
            upper.tie_break_reason = criterion.value

    ineligible = sorted(
        (
            AgentScore(
                agent_id=agent.agent_id,
                agent_name=agent.agent_name,
                eligible=False,
                ineligibility_reason=gating.excluded[agent.agent_id],
            )
            for agent in agents
            if agent.agent_id in gating.excluded
        ),
        key=lambda s: s.agent_id,
    )

    result = ScoringResult(
        lead_id=lead.lead_id,
        scores=ranked + ineligible,
        top_agent=ranked[0] if ranked else None,
        alternatives=ranked[1:1 + MAX_ALTERNATIVES],
        total_agents_evaluated=len(agents),
        eligible_agents=len(ranked),
        rules_applied=len(active_rules),
        gating=gating,
        config_warnings=warnings,
    )

    if result.top_agent:
        logger.debug(
            f"Lead {lead.lead_id}: top agent {result.top_agent.agent_id} "
            f"({result.top_agent.normalized_score:.1f}) of {result.eligible_agents} eligible"
        )
    return result
