"""Build AgentProfile snapshots from historical lead records."""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from ..core.constants import (
    AVG_DEAL_WINDOW_DAYS,
    BURNOUT_ACTIVITY_DECAY_HOURS,
    BURNOUT_WIN_DECAY_HOURS,
    CONVERSION_WINDOW_DAYS,
    DEFAULT_DAILY_LEAD_THRESHOLD,
    HOT_STREAK_HOURS,
    HOT_STREAK_MIN_WINS,
)
from ..core.models import AgentProfile, LeadRecord
from .availability import start_of_day
from .domain_learner import DEFAULT_MIN_LEADS, learn_domain_profile

logger = logging.getLogger(__name__)

WIN_BURNOUT_SHARE = 0.6
ACTIVITY_BURNOUT_SHARE = 0.4


@dataclass
class ProfilerConfig:
    """Time windows and thresholds for profile computation."""
    conversion_window_days: int = CONVERSION_WINDOW_DAYS
    avg_deal_window_days: int = AVG_DEAL_WINDOW_DAYS
    response_window_days: int = 30
    hot_streak_window_hours: int = HOT_STREAK_HOURS
    hot_streak_min_deals: int = HOT_STREAK_MIN_WINS
    burnout_win_decay_hours: int = BURNOUT_WIN_DECAY_HOURS
    burnout_activity_decay_hours: int = BURNOUT_ACTIVITY_DECAY_HOURS
    daily_lead_threshold: int = DEFAULT_DAILY_LEAD_THRESHOLD
    min_leads_for_domain: int = DEFAULT_MIN_LEADS


def _hours_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 3600


def calculate_burnout(leads: List[LeadRecord], now: datetime, config: ProfilerConfig) -> int:
    """Burnout from time since the last win (60%) and last activity (40%).

    An agent with no wins or no activity at all takes the full share for
    that component.
    """
    score = 0.0

    wins = [lead.closed_at for lead in leads if lead.is_won and lead.closed_at]
    if wins:
        hours = _hours_between(max(wins), now)
        score += min(100.0, hours / config.burnout_win_decay_hours * 100) * WIN_BURNOUT_SHARE
    else:
        score += 100 * WIN_BURNOUT_SHARE

    activity = [lead.first_touch_at or lead.updated_at for lead in leads
                if lead.first_touch_at or lead.updated_at]
    if activity:
        hours = _hours_between(max(activity), now)
        score += min(100.0, hours / config.burnout_activity_decay_hours * 100) * ACTIVITY_BURNOUT_SHARE
    else:
        score += 100 * ACTIVITY_BURNOUT_SHARE

    return min(100, int(score + 0.5))


def calculate_agent_profile(
    agent_id: str,
    leads: Iterable[LeadRecord],
    config: Optional[ProfilerConfig] = None,
    agent_name: str = "",
    now: Optional[datetime] = None,
) -> AgentProfile:
    """Compute a profile snapshot for one agent.

    Args:
        agent_id: Agent identifier
        leads: Every lead record assigned to the agent
        config: Windows and thresholds, defaults if omitted
        agent_name: Display name carried onto the profile
        now: Reference time, defaults to the current time
    """
    config = config or ProfilerConfig()
    now = now or datetime.now()
    leads = list(leads)

    conversion_since = now - timedelta(days=config.conversion_window_days)
    deal_since = now - timedelta(days=config.avg_deal_window_days)
    response_since = now - timedelta(days=config.response_window_days)
    streak_since = now - timedelta(hours=config.hot_streak_window_hours)
    today = start_of_day(now)

    in_window = [lead for lead in leads if lead.entered_at and lead.entered_at >= conversion_since]
    handled = len(in_window)
    converted = sum(1 for lead in in_window if lead.is_won)
    conversion_rate = converted / handled if handled else None

    deals = [lead for lead in leads
             if lead.is_won and lead.closed_at and lead.closed_at >= deal_since and lead.deal_amount]
    avg_deal_size = sum(lead.deal_amount for lead in deals) / len(deals) if deals else None

    closings = [(lead.closed_at - lead.entered_at).total_seconds() for lead in deals if lead.entered_at]
    avg_time_to_close = sum(closings) / len(closings) if closings else None

    responses = [
        (lead.first_touch_at - lead.entered_at).total_seconds()
        for lead in leads
        if lead.entered_at and lead.first_touch_at and lead.entered_at >= response_since
    ]
    avg_response_time = sum(responses) / len(responses) if responses else None

    active = sum(1 for lead in leads if lead.is_active)
    availability = max(0.0, 1 - active / config.daily_lead_threshold)
    daily_leads = sum(1 for lead in leads if lead.entered_at and lead.entered_at >= today)

    streak = sum(1 for lead in leads if lead.is_won and lead.closed_at and lead.closed_at >= streak_since)

    domains = learn_domain_profile(agent_id, leads, config.min_leads_for_domain, now)

    profile = AgentProfile(
        agent_id=agent_id,
        agent_name=agent_name or agent_id,
        conversion_rate=conversion_rate,
        total_leads_handled=handled,
        total_leads_converted=converted,
        avg_deal_size=avg_deal_size,
        avg_response_time=avg_response_time,
        avg_time_to_close=avg_time_to_close,
        availability=availability,
        current_active_leads=active,
        daily_leads_today=daily_leads,
        hot_streak_active=streak >= config.hot_streak_min_deals,
        hot_streak_count=streak,
        burnout_score=calculate_burnout(leads, now, config),
        industry_scores=domains.industry_scores,
        computed_at=now,
        window_days=config.conversion_window_days,
    )
    logger.debug(f"Profiled {agent_id}: {handled} leads, availability {availability:.2f}")
    return profile


def calculate_all_profiles(
    leads_by_agent: Dict[str, Iterable[LeadRecord]],
    config: Optional[ProfilerConfig] = None,
    names: Optional[Dict[str, str]] = None,
    now: Optional[datetime] = None,
) -> List[AgentProfile]:
    """Profile every agent, sharing one reference time."""
    now = now or datetime.now()
    names = names or {}
    return [
        calculate_agent_profile(agent_id, leads, config, names.get(agent_id, ""), now)
        for agent_id, leads in leads_by_agent.items()
    ]


def profile_summary(profile: AgentProfile) -> Dict[str, object]:
    """Display-ready strings for a profile."""
    top = sorted(profile.industry_scores.items(), key=lambda item: item[1], reverse=True)[:3]
    return {
        "agent_id": profile.agent_id,
        "conversion_rate": f"{profile.conversion_rate * 100:.1f}%" if profile.conversion_rate else "N/A",
        "avg_deal_size": f"${profile.avg_deal_size:,.0f}" if profile.avg_deal_size else "N/A",
        "availability": f"{profile.availability * 100:.0f}%",
        "current_load": f"{profile.current_active_leads} leads",
        "hot_streak": f"{profile.hot_streak_count} wins" if profile.hot_streak_active else "Normal",
        "top_industries": [f"{industry} ({score:g})" for industry, score in top],
    }
