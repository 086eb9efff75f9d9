"""Hard eligibility filters applied before any scoring."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..core.config import GatingConfig
from ..core.models import AgentProfile, NormalizedLead
from ..profiling.availability import CapacityStatus

logger = logging.getLogger(__name__)


@dataclass
class GatingResult:
    """Agents split into eligible and excluded-with-reason."""
    eligible: List[AgentProfile] = field(default_factory=list)
    excluded: Dict[str, str] = field(default_factory=dict)  # agent_id -> reason

    @property
    def summary(self) -> str:
        return f"{len(self.excluded)} agents excluded"

    def is_eligible(self, agent_id: str) -> bool:
        return agent_id not in self.excluded


def is_agent_eligible(agent: AgentProfile, daily_lead_threshold: int) -> Tuple[bool, Optional[str]]:
    """Basic eligibility: some availability left and daily quota not used up."""
    if agent.availability <= 0:
        return False, "Agent at capacity"
    if agent.daily_leads_today >= daily_lead_threshold:
        return False, "Daily lead threshold reached"
    return True, None


def check_agent(
    agent: AgentProfile,
    lead: NormalizedLead,
    config: GatingConfig,
    capacity: Optional[CapacityStatus] = None,
) -> Optional[str]:
    """Return the first failing check's reason, or None if the agent passes."""
    eligible, reason = is_agent_eligible(agent, config.daily_lead_threshold)
    if not eligible:
        return reason
    if capacity is not None and capacity.has_capacity_issue:
        return f"Capacity limit reached: {capacity.warning}"

    if config.require_availability and agent.availability <= 0:
        return "No availability"

    if config.min_conversion_rate is not None:
        if agent.conversion_rate is None or agent.conversion_rate < config.min_conversion_rate:
            return f"Conversion rate below minimum ({config.min_conversion_rate:g})"

    if config.min_industry_score is not None and lead.industry:
        score = agent.industry_scores.get(lead.industry)
        if score is None or score < config.min_industry_score:
            return f"Industry expertise below minimum for {lead.industry}"

    if config.exclude_high_burnout and agent.burnout_score is not None:
        if agent.burnout_score > config.max_burnout_score:
            return f"High burnout score ({agent.burnout_score:g})"

    return None


def apply_gating_filters(
    agents: List[AgentProfile],
    lead: NormalizedLead,
    config: Optional[GatingConfig] = None,
    capacity: Optional[Dict[str, CapacityStatus]] = None,
) -> GatingResult:
    """Partition agents into eligible and excluded.

    Args:
        agents: Candidate agent profiles
        lead: Lead being routed
        config: Filter settings, defaults if omitted
        capacity: Optional capacity status per agent id
    """
    config = config or GatingConfig()
    capacity = capacity or {}
    result = GatingResult()

    for agent in agents:
        reason = check_agent(agent, lead, config, capacity.get(agent.agent_id))
        if reason is None:
            result.eligible.append(agent)
        else:
            logger.debug(f"Gated out {agent.agent_id} for lead {lead.lead_id}: {reason}")
            result.excluded[agent.agent_id] = reason

    if not result.eligible and agents:
        logger.info(f"No eligible agents for lead {lead.lead_id} ({result.summary})")
    return result
