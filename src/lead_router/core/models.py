"""Normalized inputs to a routing cycle."""

import math
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


def _pick(data: Dict[str, Any], *keys, default=None):
    """Return the first key present in data, accepting snake_case or camelCase spellings."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves going up (``round`` rounds halves to even)."""
    return int(math.floor(value + 0.5))


def _parse_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is not None:
        # Engine works in naive local time
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


@dataclass(frozen=True)
class NormalizedLead:
    """A lead whose attributes have already been mapped from the source system."""

    lead_id: str
    name: Optional[str] = None
    industry: Optional[str] = None
    deal_size: Optional[float] = None
    source: Optional[str] = None
    created_at: Optional[datetime] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    board_id: Optional[str] = None
    item_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NormalizedLead":
        """Build a lead from a JSON-style dict."""
        lead_id = str(_pick(data, "lead_id", "leadId", "id", "item_id", "itemId", default=""))
        deal_size = _pick(data, "deal_size", "dealSize")
        return cls(
            lead_id=lead_id,
            name=_pick(data, "name"),
            industry=_pick(data, "industry"),
            deal_size=float(deal_size) if deal_size is not None else None,
            source=_pick(data, "source"),
            created_at=_parse_datetime(_pick(data, "created_at", "createdAt")),
            extra=dict(_pick(data, "extra", "attributes", default={})),
            board_id=_pick(data, "board_id", "boardId"),
            item_id=_pick(data, "item_id", "itemId"),
        )


@dataclass
class AgentProfile:
    """Time-windowed performance snapshot for one agent."""

    agent_id: str
    agent_name: str = ""
    conversion_rate: Optional[float] = None  # 0-1
    total_leads_handled: int = 0
    total_leads_converted: int = 0
    avg_deal_size: Optional[float] = None
    avg_response_time: Optional[float] = None  # seconds
    avg_time_to_close: Optional[float] = None  # seconds
    availability: float = 1.0  # 0-1
    current_active_leads: int = 0
    daily_leads_today: int = 0
    hot_streak_active: bool = False
    hot_streak_count: int = 0
    burnout_score: Optional[float] = None  # 0-100
    industry_scores: Dict[str, float] = field(default_factory=dict)
    computed_at: Optional[datetime] = None
    window_days: int = 90

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["computed_at"] = self.computed_at.isoformat() if self.computed_at else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentProfile":
        """Build a profile from a JSON-style dict."""
        agent_id = str(_pick(data, "agent_id", "agentId", "id", default=""))
        return cls(
            agent_id=agent_id,
            agent_name=_pick(data, "agent_name", "agentName", "name", default=agent_id),
            conversion_rate=_pick(data, "conversion_rate", "conversionRate"),
            total_leads_handled=int(_pick(data, "total_leads_handled", "totalLeadsHandled", default=0)),
            total_leads_converted=int(_pick(data, "total_leads_converted", "totalLeadsConverted", default=0)),
            avg_deal_size=_pick(data, "avg_deal_size", "avgDealSize"),
            avg_response_time=_pick(data, "avg_response_time", "avgResponseTime"),
            avg_time_to_close=_pick(data, "avg_time_to_close", "avgTimeToClose"),
            availability=float(_pick(data, "availability", default=1.0)),
            current_active_leads=int(_pick(data, "current_active_leads", "currentActiveLeads", default=0)),
            daily_leads_today=int(_pick(data, "daily_leads_today", "dailyLeadsToday", default=0)),
            hot_streak_active=bool(_pick(data, "hot_streak_active", "hotStreakActive", default=False)),
            hot_streak_count=int(_pick(data, "hot_streak_count", "hotStreakCount", default=0)),
            burnout_score=_pick(data, "burnout_score", "burnoutScore"),
            industry_scores=dict(_pick(data, "industry_scores", "industryScores", default={})),
            computed_at=_parse_datetime(_pick(data, "computed_at", "computedAt")),
            window_days=int(_pick(data, "window_days", "windowDays", default=90)),
        )


@dataclass
class LeadRecord:
    """Historical lead as seen by an agent, used for learning and capacity counts."""

    lead_id: str
    agent_id: str
    status: str = "open"  # open, in_treatment, won, lost
    industry: Optional[str] = None
    deal_amount: Optional[float] = None
    entered_at: Optional[datetime] = None
    first_touch_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    WON_STATUSES = ("won",)
    CLOSED_STATUSES = ("won", "lost")
    ACTIVE_STATUSES = ("open", "in_treatment")

    @property
    def is_won(self) -> bool:
        return self.status in self.WON_STATUSES

    @property
    def is_closed(self) -> bool:
        return self.status in self.CLOSED_STATUSES

    @property
    def is_active(self) -> bool:
        return self.status in self.ACTIVE_STATUSES

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LeadRecord":
        return cls(
            lead_id=str(_pick(data, "lead_id", "leadId", "id", default="")),
            agent_id=str(_pick(data, "agent_id", "agentId", default="")),
            status=_pick(data, "status", default="open"),
            industry=_pick(data, "industry"),
            deal_amount=_pick(data, "deal_amount", "dealAmount"),
            entered_at=_parse_datetime(_pick(data, "entered_at", "enteredAt")),
            first_touch_at=_parse_datetime(_pick(data, "first_touch_at", "firstTouchAt")),
            closed_at=_parse_datetime(_pick(data, "closed_at", "closedAt")),
            updated_at=_parse_datetime(_pick(data, "updated_at", "updatedAt")),
        )


@dataclass(frozen=True)
class ConfigVersions:
    """Versions of the configuration in effect when a lead was routed."""

    schema_version: str = "1"
    mapping_version: str = "1"
    rules_version: Optional[str] = None


def agents_by_id(agents: List[AgentProfile]) -> Dict[str, AgentProfile]:
    return {agent.agent_id: agent for agent in agents}


class Confidence(Enum):
    """Confidence tier derived from the gap between the top two agents."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def level(self) -> int:
        return {"low": 0, "medium": 1, "high": 2}[self.value]

    def at_least(self, other: "Confidence") -> bool:
        return self.level >= other.level


class DecisionMode(Enum):
    """How proposals move from recommendation to assignment."""
    MANUAL = "manual"
    AUTO = "auto"
    HYBRID = "hybrid"
