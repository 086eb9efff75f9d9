"""Availability and capacity calculations from an agent's current workload."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from ..core.config import AvailabilityConfig, CapacityLimits

logger = logging.getLogger(__name__)


@dataclass
class AvailabilityStatus:
    """Availability score (0-100) derived from workload."""
    agent_id: str
    score: float
    leads_in_treatment: int
    leads_today: int
    is_available: bool
    reason: str

    @property
    def availability(self) -> float:
        """Score as a 0-1 fraction, the scale AgentProfile.availability uses."""
        return self.score / 100


@dataclass
class CapacityStatus:
    """Assignment counts against daily/weekly/monthly limits."""
    agent_id: str
    daily_count: int = 0
    weekly_count: int = 0
    monthly_count: int = 0
    daily_limit: Optional[int] = None
    weekly_limit: Optional[int] = None
    monthly_limit: Optional[int] = None
    daily_reached: bool = False
    weekly_reached: bool = False
    monthly_reached: bool = False
    warnings: List[str] = field(default_factory=list)

    @property
    def has_capacity_issue(self) -> bool:
        return self.daily_reached or self.weekly_reached or self.monthly_reached

    @property
    def warning(self) -> str:
        return "; ".join(self.warnings)


def calculate_availability(
    agent_id: str,
    leads_in_treatment: int,
    leads_today: int,
    config: Optional[AvailabilityConfig] = None,
) -> AvailabilityStatus:
    """Score availability from leads in treatment and leads assigned today.

    Starts at 100 and deducts for total workload, then for the daily quota.
    The agent counts as available while the score stays above 20.
    """
    config = config or AvailabilityConfig()
    threshold = config.daily_lead_threshold

    score = 100.0
    reason = "Agent is fully available"

    (high, high_cut), (moderate, moderate_cut), (light, light_cut) = config.treatment_steps
    if leads_in_treatment > high:
        score -= high_cut
        reason = f"High workload ({high}+ leads in treatment)"
    elif leads_in_treatment > moderate:
        score -= moderate_cut
        reason = f"Moderate workload ({moderate}-{high} leads in treatment)"
    elif leads_in_treatment > light:
        score -= light_cut
        reason = f"Light workload ({light}-{moderate} leads in treatment)"

    if leads_today >= threshold:
        score -= config.quota_reached_deduction
        reason = f"Daily quota reached ({leads_today}/{threshold} leads today)"
    elif leads_today >= threshold * config.quota_warning_ratio:
        score -= config.quota_warning_deduction
        reason = f"Approaching daily quota ({leads_today}/{threshold} leads today)"

    score = max(0.0, score)
    return AvailabilityStatus(
        agent_id=agent_id,
        score=score,
        leads_in_treatment=leads_in_treatment,
        leads_today=leads_today,
        is_available=score > config.available_above,
        reason=reason,
    )


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week(now: datetime) -> datetime:
    """Most recent Sunday at midnight."""
    days_since_sunday = (now.weekday() + 1) % 7
    return start_of_day(now) - timedelta(days=days_since_sunday)


def start_of_month(now: datetime) -> datetime:
    return start_of_day(now).replace(day=1)


def calculate_capacity(
    agent_id: str,
    assignment_times: Iterable[datetime],
    limits: Optional[CapacityLimits] = None,
    now: Optional[datetime] = None,
) -> CapacityStatus:
    """Count approved assignments since the start of the day, week and month."""
    limits = limits or CapacityLimits()
    now = now or datetime.now()

    day_start = start_of_day(now)
    week_start = start_of_week(now)
    month_start = start_of_month(now)

    status = CapacityStatus(
        agent_id=agent_id,
        daily_limit=limits.daily_limit,
        weekly_limit=limits.weekly_limit,
        monthly_limit=limits.monthly_limit,
    )
    for assigned_at in assignment_times:
        if assigned_at > now:
            continue
        if assigned_at >= day_start:
            status.daily_count += 1
        if assigned_at >= week_start:
            status.weekly_count += 1
        if assigned_at >= month_start:
            status.monthly_count += 1

    for period in ("daily", "weekly", "monthly"):
        count = getattr(status, f"{period}_count")
        limit = getattr(status, f"{period}_limit")
        if limit is not None and count >= limit:
            setattr(status, f"{period}_reached", True)
            status.warnings.append(f"{period.capitalize()} limit reached ({count}/{limit})")

    return status


class CapacityCalculator:
    """Availability and capacity for agents backed by a lead history provider."""

    def __init__(
        self,
        history_provider,  # LeadHistoryProvider
        limits: Optional[CapacityLimits] = None,
        availability_config: Optional[AvailabilityConfig] = None,
        in_treatment_statuses: Iterable[str] = ("in_treatment",),
    ):
        self.history_provider = history_provider
        self.limits = limits or CapacityLimits()
        self.availability_config = availability_config or AvailabilityConfig()
        self.in_treatment_statuses = list(in_treatment_statuses)

    def availability_for(self, org_id: str, agent_id: str, now: Optional[datetime] = None) -> AvailabilityStatus:
        now = now or datetime.now()
        in_treatment = self.history_provider.count_leads(
            org_id, agent_id, statuses=self.in_treatment_statuses
        )
        today = self.history_provider.count_leads(org_id, agent_id, since=start_of_day(now))
        return calculate_availability(agent_id, in_treatment, today, self.availability_config)

    def capacity_for(self, org_id: str, agent_id: str, now: Optional[datetime] = None) -> CapacityStatus:
        now = now or datetime.now()
        # Month start can be later than week start, so fetch from whichever is earlier
        since = min(start_of_week(now), start_of_month(now))
        times = self.history_provider.list_assignment_times(org_id, agent_id, since=since)
        return calculate_capacity(agent_id, times, self.limits, now)

    def capacity_for_all(
        self, org_id: str, agent_ids: Iterable[str], now: Optional[datetime] = None
    ) -> Dict[str, CapacityStatus]:
        statuses = {}
        for agent_id in agent_ids:
            status = self.capacity_for(org_id, agent_id, now)
            if status.has_capacity_issue:
                logger.info(f"Agent {agent_id} at capacity: {status.warning}")
            statuses[agent_id] = status
        return statuses
