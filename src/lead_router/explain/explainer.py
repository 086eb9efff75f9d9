"""Turn a ScoringResult into a structured, human-readable explanation."""

import logging
from typing import Dict, Iterable, List, Optional, Union

from ..core.constants import (
    CONFIDENCE_HIGH_GAP,
    CONFIDENCE_MEDIUM_GAP,
    HIGH_BURNOUT_WARNING,
    LOW_INDUSTRY_EXPERIENCE,
    MAX_PRIMARY_REASONS,
    MAX_SECONDARY_FACTORS,
    SECONDARY_MIN_CONTRIBUTION,
)
from ..core.models import AgentProfile, Confidence, NormalizedLead, round_half_up
from ..rules.evaluator import RuleEvaluationResult
from ..scoring.engine import AgentScore, ScoringResult
from .models import (
    AlternativeSummary,
    ExplanationMode,
    ReasonItem,
    RecommendedAgent,
    RoutingExplanation,
)

logger = logging.getLogger(__name__)

NO_AGENT_SUMMARY = "No suitable agent found. Consider adjusting eligibility criteria or adding more agents."
NO_MATCH_REASON = "No agents met the eligibility criteria for this lead"

AgentIndex = Union[Dict[str, AgentProfile], Iterable[AgentProfile]]


def _index(agents: AgentIndex) -> Dict[str, AgentProfile]:
    if isinstance(agents, dict):
        return agents
    return {agent.agent_id: agent for agent in agents}


def summarize_lead(lead: NormalizedLead) -> str:
    """One-line description such as ``Legal, $5,000 budget, from website``."""
    parts = []
    if lead.industry:
        parts.append(lead.industry)
    if lead.deal_size:
        parts.append(f"${lead.deal_size:,.0f} budget")
    if lead.source:
        parts.append(f"from {lead.source}")
    return ", ".join(parts) if parts else "New lead"


def calculate_confidence(result: ScoringResult) -> Confidence:
    """Confidence tier from the gap between rank 1 and rank 2."""
    eligible = result.eligible_scores
    if len(eligible) < 2:
        return Confidence.LOW

    gap = eligible[0].normalized_score - eligible[1].normalized_score
    if gap >= CONFIDENCE_HIGH_GAP:
        return Confidence.HIGH
    if gap >= CONFIDENCE_MEDIUM_GAP:
        return Confidence.MEDIUM
    return Confidence.LOW


def _reason(result: RuleEvaluationResult) -> ReasonItem:
    return ReasonItem(
        category=result.category.value,
        rule_id=result.rule_id,
        rule_name=result.rule_name,
        score=round_half_up(result.match_score * 100),
        contribution=round(result.contribution, 1),
        explanation=result.explanation,
    )


def _ranked_contributions(score: AgentScore) -> List[RuleEvaluationResult]:
    contributing = [r for r in score.applied_rules() if r.contribution > 0]
    return sorted(contributing, key=lambda r: r.contribution, reverse=True)


def _alternative_summary(score: AgentScore, agent: Optional[AgentProfile]) -> str:
    ranked = _ranked_contributions(score)
    summary = f"Good {ranked[0].rule_name}" if ranked else "Alternative candidate"
    if agent is not None:
        if agent.availability < 0.5:
            summary += ", lower availability"
        if agent.conversion_rate is not None and agent.conversion_rate < 0.4:
            summary += ", lower conversion rate"
    return summary


def _alternatives(result: ScoringResult, top: AgentScore, index: Dict[str, AgentProfile]) -> List[AlternativeSummary]:
    return [
        AlternativeSummary(
            agent_id=alt.agent_id,
            agent_name=alt.agent_name,
            rank=alt.rank,
            score=round_half_up(alt.normalized_score),
            score_difference=round(top.normalized_score - alt.normalized_score, 1),
            summary=_alternative_summary(alt, index.get(alt.agent_id)),
        )
        for alt in result.alternatives
    ]


def _agent_warnings(lead: NormalizedLead, agent: Optional[AgentProfile]) -> List[str]:
    warnings = []
    if agent is None:
        return warnings
    if lead.industry:
        industry_score = agent.industry_scores.get(lead.industry)
        if industry_score is None or industry_score < LOW_INDUSTRY_EXPERIENCE:
            warnings.append(f"Agent has limited experience in {lead.industry} industry.")
    if agent.burnout_score is not None and agent.burnout_score > HIGH_BURNOUT_WARNING:
        warnings.append(
            f"Agent may be experiencing high workload (burnout score: {agent.burnout_score:g}/100)."
        )
    return warnings


def _config_warnings(result: ScoringResult) -> List[str]:
    return [f"Configuration issue: {warning}" for warning in result.config_warnings]


def _no_match_explanation(
    lead: NormalizedLead,
    result: ScoringResult,
    mode: ExplanationMode,
    assigned: Optional[AgentProfile],
    index: Dict[str, AgentProfile],
) -> RoutingExplanation:
    gating_summary = result.gating.summary
    warnings = [f"No eligible agents: {gating_summary}."]

    if mode is ExplanationMode.RANDOM_FALLBACK and assigned is not None:
        summary = (
            f"Assigned to {assigned.agent_name} (random selection). "
            f"No clear scoring winner was identified across the evaluated metrics."
        )
        recommended = RecommendedAgent(assigned.agent_id, assigned.agent_name, 0)
        reason = ReasonItem("system", "random_fallback", "Random Fallback", 0, 0,
                            "No eligible agent; selected at random from all agents")
        warnings.extend(_agent_warnings(lead, assigned))
    else:
        mode = ExplanationMode.NO_MATCH
        summary = NO_AGENT_SUMMARY
        recommended = None
        reason = ReasonItem("system", "no_match", "No Match", 0, 0, NO_MATCH_REASON)

    warnings.extend(_config_warnings(result))
    return RoutingExplanation(
        lead_id=lead.lead_id,
        lead_summary=summarize_lead(lead),
        confidence=Confidence.LOW,
        decision_mode=mode,
        summary=summary,
        recommended_agent=recommended,
        primary_reasons=[reason],
        gating_summary=gating_summary,
        excluded_agents=dict(result.gating.excluded),
        warnings=warnings,
        total_agents_evaluated=result.total_agents_evaluated,
        eligible_agents=result.eligible_agents,
    )


def generate_explanation(
    lead: NormalizedLead,
    result: ScoringResult,
    agents: AgentIndex,
    mode: ExplanationMode = ExplanationMode.SCORED,
    assigned_agent: Optional[AgentProfile] = None,
) -> RoutingExplanation:
    """Explain a scoring result.

    Args:
        lead: Lead that was scored
        result: Output of ``evaluate``
        agents: Agent profiles by id (or an iterable of profiles)
        mode: How the assigned agent was picked
        assigned_agent: The agent actually chosen for random fallback or
            override; the top-ranked agent otherwise

    Returns:
        RoutingExplanation. Identical inputs give identical output.
    """
    index = _index(agents)

    if mode is ExplanationMode.OVERRIDE and assigned_agent is not None:
        chosen = result.get(assigned_agent.agent_id) or AgentScore(
            agent_id=assigned_agent.agent_id, agent_name=assigned_agent.agent_name, eligible=False
        )
    else:
        chosen = result.top_agent

    if chosen is None:
        return _no_match_explanation(lead, result, mode, assigned_agent, index)

    agent = index.get(chosen.agent_id)
    confidence = calculate_confidence(result)
    ranked = _ranked_contributions(chosen)
    primary = [_reason(r) for r in ranked[:MAX_PRIMARY_REASONS]]
    secondary = [
        _reason(r)
        for r in ranked[MAX_PRIMARY_REASONS:MAX_PRIMARY_REASONS + MAX_SECONDARY_FACTORS]
        if r.contribution > SECONDARY_MIN_CONTRIBUTION
    ]
    score = round_half_up(chosen.normalized_score)

    if mode is ExplanationMode.OVERRIDE:
        summary = (
            f"Manually assigned to {chosen.agent_name} by manager (override), "
            f"bypassing automated scoring logic."
        )
    else:
        mode = ExplanationMode.SCORED
        summary = f"{chosen.agent_name} was identified as the optimal candidate for this lead with a match score of {score}/100."
        if primary:
            summary += (
                f" This recommendation is primarily driven by {primary[0].explanation}, "
                f"showing high compatibility with the lead's requirements."
            )

    warnings = []
    if result.eligible_agents == 1:
        warnings.append("Only one eligible agent available. Consider reviewing agent availability.")
    if confidence is Confidence.LOW:
        warnings.append("Low confidence match (small score difference between agents).")
    if chosen.tie_break_used and chosen.tie_break_reason:
        warnings.append(f"Tie broken by {chosen.tie_break_reason}.")
    warnings.extend(_agent_warnings(lead, agent))
    warnings.extend(_config_warnings(result))

    top = result.top_agent
    return RoutingExplanation(
        lead_id=lead.lead_id,
        lead_summary=summarize_lead(lead),
        confidence=confidence,
        decision_mode=mode,
        summary=summary,
        recommended_agent=RecommendedAgent(chosen.agent_id, chosen.agent_name, score, chosen.rank),
        primary_reasons=primary,
        secondary_factors=secondary,
        all_kpi_scores={r.rule_id: round_half_up(r.match_score * 100) for r in chosen.rule_results},
        gating_summary=result.gating.summary,
        excluded_agents=dict(result.gating.excluded),
        alternatives=_alternatives(result, top, index) if top else [],
        warnings=warnings,
        total_agents_evaluated=result.total_agents_evaluated,
        eligible_agents=result.eligible_agents,
    )


def explain(lead: NormalizedLead, result: ScoringResult, agents: AgentIndex) -> RoutingExplanation:
    """Explain the top-ranked recommendation."""
    return generate_explanation(lead, result, agents)


def format_explanation_for_display(explanation: RoutingExplanation) -> str:
    """Render an explanation as a plain-text block."""
    lines = [f"Lead: {explanation.lead_summary}"]

    agent = explanation.recommended_agent
    if agent:
        lines.append(f"Recommended: {agent.agent_name} ({agent.score}/100, {explanation.confidence.value} confidence)")
    else:
        lines.append("Recommended: none")

    lines.append("")
    lines.append(explanation.summary)

    if explanation.primary_reasons:
        lines.append("")
        lines.append("Primary reasons:")
        for reason in explanation.primary_reasons:
            lines.append(f"  - {reason.rule_name}: {reason.explanation} (+{reason.contribution:g} pts)")

    if explanation.secondary_factors:
        lines.append("")
        lines.append("Also considered:")
        for reason in explanation.secondary_factors:
            lines.append(f"  - {reason.rule_name}: {reason.explanation} (+{reason.contribution:g} pts)")

    if explanation.alternatives:
        lines.append("")
        lines.append("Alternatives:")
        for alt in explanation.alternatives:
            lines.append(f"  {alt.rank}. {alt.agent_name} ({alt.score}/100, -{alt.score_difference:g}) {alt.summary}")

    if explanation.warnings:
        lines.append("")
        lines.append("Warnings:")
        for warning in explanation.warnings:
            lines.append(f"  ! {warning}")

    return "\n".join(lines)
