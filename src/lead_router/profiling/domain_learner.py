"""Learn per-industry agent expertise from historical leads.

Expertise blends three signals per industry:

    conversion rate   60%
    lead volume       25%  (saturates at 50 leads)
    average deal size 15%  (saturates at 100,000)

Industries with fewer than ``min_leads`` handled leads are skipped; a handful
of leads says more about luck than expertise.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from ..core.models import LeadRecord

logger = logging.getLogger(__name__)

DEFAULT_MIN_LEADS = 5
VOLUME_SATURATION = 50
DEAL_SIZE_SATURATION = 100000

CONVERSION_WEIGHT = 0.60
VOLUME_WEIGHT = 0.25
DEAL_SIZE_WEIGHT = 0.15

EXPERT_SCORE = 70
PROFICIENT_SCORE = 50


@dataclass
class DomainExpertise:
    """Performance of one agent in one industry."""
    industry: str
    leads_handled: int
    leads_converted: int
    conversion_rate: float
    avg_deal_size: float
    total_revenue: float
    expertise_score: int  # 0-100
    confidence: str  # low, medium, high
    last_updated: datetime = field(default_factory=datetime.now)


@dataclass
class AgentDomainProfile:
    """All learned industries for an agent."""
    agent_id: str
    domains: Dict[str, DomainExpertise] = field(default_factory=dict)
    agent_name: Optional[str] = None
    last_updated: datetime = field(default_factory=datetime.now)

    @property
    def industry_scores(self) -> Dict[str, float]:
        """Industry to expertise score, the shape AgentProfile.industry_scores expects."""
        return {industry: d.expertise_score for industry, d in self.domains.items()}


@dataclass
class DomainMatch:
    agent_id: str
    expertise_score: int
    confidence: str


@dataclass
class DomainSummary:
    agent_id: str
    total_domains: int
    expert_domains: int
    proficient_domains: int
    learning_domains: int
    top_domain: Optional[DomainExpertise]
    avg_expertise_score: int
    total_leads_handled: int
    total_revenue: float


def _sample_confidence(leads_handled: int) -> str:
    if leads_handled < 10:
        return "low"
    if leads_handled < 30:
        return "medium"
    return "high"


def _expertise(industry: str, leads: List[LeadRecord], now: datetime) -> DomainExpertise:
    handled = len(leads)
    converted = sum(1 for lead in leads if lead.is_won)
    conversion_rate = converted / handled if handled else 0.0

    won_with_amount = [lead for lead in leads if lead.is_won and lead.deal_amount]
    total_revenue = sum(lead.deal_amount for lead in won_with_amount)
    avg_deal_size = total_revenue / len(won_with_amount) if won_with_amount else 0.0

    conversion_score = conversion_rate * 100
    volume_score = min(handled / VOLUME_SATURATION, 1) * 100
    deal_size_score = min(avg_deal_size / DEAL_SIZE_SATURATION, 1) * 100

    score = (
        conversion_score * CONVERSION_WEIGHT
        + volume_score * VOLUME_WEIGHT
        + deal_size_score * DEAL_SIZE_WEIGHT
    )

    return DomainExpertise(
        industry=industry,
        leads_handled=handled,
        leads_converted=converted,
        conversion_rate=conversion_rate,
        avg_deal_size=avg_deal_size,
        total_revenue=total_revenue,
        expertise_score=int(score + 0.5),
        confidence=_sample_confidence(handled),
        last_updated=now,
    )


def learn_domain_profile(
    agent_id: str,
    leads: Iterable[LeadRecord],
    min_leads: int = DEFAULT_MIN_LEADS,
    now: Optional[datetime] = None,
) -> AgentDomainProfile:
    """Build an agent's domain profile from their historical leads."""
    now = now or datetime.now()

    by_industry: Dict[str, List[LeadRecord]] = {}
    for lead in leads:
        if not lead.industry:
            continue
        by_industry.setdefault(lead.industry, []).append(lead)

    profile = AgentDomainProfile(agent_id=agent_id, last_updated=now)
    for industry, industry_leads in by_industry.items():
        if len(industry_leads) < min_leads:
            logger.debug(f"Skipping {industry} for {agent_id}: only {len(industry_leads)} leads")
            continue
        profile.domains[industry] = _expertise(industry, industry_leads, now)

    return profile


def learn_bulk(
    leads_by_agent: Dict[str, Iterable[LeadRecord]],
    min_leads: int = DEFAULT_MIN_LEADS,
    now: Optional[datetime] = None,
) -> Dict[str, AgentDomainProfile]:
    """Build domain profiles for several agents."""
    now = now or datetime.now()
    return {
        agent_id: learn_domain_profile(agent_id, leads, min_leads, now)
        for agent_id, leads in leads_by_agent.items()
    }


def get_top_domains(profile: AgentDomainProfile, top_n: int = 3) -> List[DomainExpertise]:
    return sorted(profile.domains.values(), key=lambda d: d.expertise_score, reverse=True)[:top_n]


def get_domain_expertise(profile: AgentDomainProfile, industry: str, min_score: float = PROFICIENT_SCORE) -> Optional[int]:
    """Expertise score for an industry, or None if the agent isn't proficient."""
    expertise = profile.domains.get(industry)
    if expertise is None or expertise.expertise_score < min_score:
        return None
    return expertise.expertise_score


def find_best_agents_by_domain(
    industry: str,
    profiles: Iterable[AgentDomainProfile],
    min_score: float = PROFICIENT_SCORE,
) -> List[DomainMatch]:
    """Agents proficient in an industry, best first."""
    matches = []
    for profile in profiles:
        expertise = profile.domains.get(industry)
        if expertise and expertise.expertise_score >= min_score:
            matches.append(DomainMatch(profile.agent_id, expertise.expertise_score, expertise.confidence))

    matches.sort(key=lambda m: m.expertise_score, reverse=True)
    return matches


def summarize_domains(profile: AgentDomainProfile) -> DomainSummary:
    domains = list(profile.domains.values())
    scores = [d.expertise_score for d in domains]

    return DomainSummary(
        agent_id=profile.agent_id,
        total_domains=len(domains),
        expert_domains=sum(1 for s in scores if s >= EXPERT_SCORE),
        proficient_domains=sum(1 for s in scores if PROFICIENT_SCORE <= s < EXPERT_SCORE),
        learning_domains=sum(1 for s in scores if s < PROFICIENT_SCORE),
        top_domain=max(domains, key=lambda d: d.expertise_score) if domains else None,
        avg_expertise_score=int(sum(scores) / len(scores) + 0.5) if scores else 0,
        total_leads_handled=sum(d.leads_handled for d in domains),
        total_revenue=sum(d.total_revenue for d in domains),
    )
