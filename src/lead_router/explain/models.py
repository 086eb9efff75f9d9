"""Versioned explanation structure stored with each proposal."""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional

from ..core.constants import EXPLANATION_SCHEMA_VERSION
from ..core.errors import ConfigurationError
from ..core.models import Confidence


class ExplanationMode(Enum):
    """How the assigned agent was chosen."""
    SCORED = "scored"
    RANDOM_FALLBACK = "random_fallback"
    OVERRIDE = "override"
    NO_MATCH = "no_match"


@dataclass
class ReasonItem:
    """One rule's share of the recommendation."""
    category: str
    rule_id: str
    rule_name: str
    score: int  # match score, 0-100
    contribution: float  # points
    explanation: str


@dataclass
class RecommendedAgent:
    agent_id: str
    agent_name: str
    score: int  # normalized, 0-100
    rank: Optional[int] = None


@dataclass
class AlternativeSummary:
    agent_id: str
    agent_name: str
    rank: int
    score: int
    score_difference: float
    summary: str


@dataclass
class RoutingExplanation:
    """Human-readable justification for a routing decision."""
    lead_id: str
    lead_summary: str
    confidence: Confidence
    decision_mode: ExplanationMode
    summary: str
    recommended_agent: Optional[RecommendedAgent] = None
    primary_reasons: List[ReasonItem] = field(default_factory=list)
    secondary_factors: List[ReasonItem] = field(default_factory=list)
    all_kpi_scores: Dict[str, int] = field(default_factory=dict)
    gating_summary: str = ""
    excluded_agents: Dict[str, str] = field(default_factory=dict)
    alternatives: List[AlternativeSummary] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    total_agents_evaluated: int = 0
    eligible_agents: int = 0
    schema_version: int = EXPLANATION_SCHEMA_VERSION

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["confidence"] = self.confidence.value
        data["decision_mode"] = self.decision_mode.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoutingExplanation":
        """Decode a stored explanation.

        Fields added after the stored record's schema version fall back to
        their defaults. Records from a newer schema are refused.
        """
        version = int(data.get("schema_version", 1))
        if version > EXPLANATION_SCHEMA_VERSION:
            raise ConfigurationError(
                f"Explanation schema version {version} is newer than supported ({EXPLANATION_SCHEMA_VERSION})"
            )

        agent = data.get("recommended_agent")
        return cls(
            lead_id=data.get("lead_id", ""),
            lead_summary=data.get("lead_summary", ""),
            confidence=Confidence(data.get("confidence", "low")),
            decision_mode=ExplanationMode(data.get("decision_mode", "scored")),
            summary=data.get("summary", ""),
            recommended_agent=RecommendedAgent(**agent) if agent else None,
            primary_reasons=[ReasonItem(**r) for r in data.get("primary_reasons", [])],
            secondary_factors=[ReasonItem(**r) for r in data.get("secondary_factors", [])],
            all_kpi_scores=dict(data.get("all_kpi_scores", {})),
            gating_summary=data.get("gating_summary", ""),
            excluded_agents=dict(data.get("excluded_agents", {})),
            alternatives=[AlternativeSummary(**a) for a in data.get("alternatives", [])],
            warnings=list(data.get("warnings", [])),
            total_agents_evaluated=data.get("total_agents_evaluated", 0),
            eligible_agents=data.get("eligible_agents", 0),
            schema_version=version,
        )
