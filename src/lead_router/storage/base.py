"""Interfaces the engine consumes for profiles, history, rules and proposals."""

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from ..core.models import AgentProfile, LeadRecord
from ..decision.proposals import ProposalStatus, RoutingProposal, mark_applied
from ..rules.models import ScoringRule


class ApplyGuardResult(Enum):
    """Outcome of trying to start an apply."""
    BEGIN = "BEGIN"
    ALREADY = "ALREADY"


def filter_eligible(profiles: Iterable[AgentProfile]) -> List[AgentProfile]:
    """Agents with availability left, most available first, then best converting."""
    eligible = [p for p in profiles if p.availability > 0]
    return sorted(
        eligible,
        key=lambda p: (-p.availability, -(p.conversion_rate or 0.0), p.agent_id),
    )


class AgentProfileProvider(ABC):
    """Source of agent profile snapshots."""

    @abstractmethod
    def list_profiles(self, org_id: str, eligible_only: bool = False) -> List[AgentProfile]:
        """List profiles for an org, optionally only agents with availability."""
        pass

    @abstractmethod
    def get_profile(self, org_id: str, agent_id: str) -> Optional[AgentProfile]:
        pass


class LeadHistoryProvider(ABC):
    """Historical leads per agent, for learning and capacity counts."""

    @abstractmethod
    def list_leads(
        self,
        org_id: str,
        agent_id: str,
        statuses: Optional[Iterable[str]] = None,
        since: Optional[datetime] = None,
    ) -> List[LeadRecord]:
        """List an agent's leads, filtered by status and entry time."""
        pass

    def count_leads(
        self,
        org_id: str,
        agent_id: str,
        statuses: Optional[Iterable[str]] = None,
        since: Optional[datetime] = None,
    ) -> int:
        return len(self.list_leads(org_id, agent_id, statuses, since))

    @abstractmethod
    def list_assignment_times(self, org_id: str, agent_id: str, since: Optional[datetime] = None) -> List[datetime]:
        """When leads were assigned to the agent, for capacity limits."""
        pass


class RuleConfigProvider(ABC):
    """Current scoring configuration for an org."""

    @abstractmethod
    def get_rules(self, org_id: str) -> List[ScoringRule]:
        """Enabled rules with weights normalized to sum to 100."""
        pass

    @abstractmethod
    def get_kpi_weights(self, org_id: str) -> Dict[str, float]:
        pass


class ProposalStore(ABC):
    """Persistence for routing proposals."""

    @abstractmethod
    def create_if_absent(self, proposal: RoutingProposal) -> Tuple[RoutingProposal, bool]:
        """Insert unless a proposal with the same (org, idempotency key) exists.

        Returns:
            (stored_proposal, created). An existing record comes back unchanged.
        """
        pass

    @abstractmethod
    def get(self, org_id: str, proposal_id: str) -> RoutingProposal:
        """Fetch a proposal. Raises ProposalNotFoundError if missing."""
        pass

    @abstractmethod
    def update(self, proposal: RoutingProposal) -> RoutingProposal:
        """Persist a transitioned proposal. Raises ProposalNotFoundError if missing."""
        pass

    @abstractmethod
    def list_proposals(
        self,
        org_id: str,
        status: Optional[ProposalStatus] = None,
        limit: Optional[int] = 100,
    ) -> List[RoutingProposal]:
        """Newest first; a limit of None returns every match."""
        pass

    @abstractmethod
    def discard_failed(self, org_id: str, proposal_id: str) -> bool:
        """Delete a WRITEBACK_FAILED proposal so the lead can be routed again."""
        pass

    def mark_applied(
        self,
        org_id: str,
        proposal_id: str,
        success: bool,
        error: Optional[str] = None,
    ) -> RoutingProposal:
        """Record a writeback outcome on a stored proposal."""
        proposal = self.get(org_id, proposal_id)
        return self.update(mark_applied(proposal, success, error))


class ApplyGuard(ABC):
    """At-most-once gate for writing a proposal to the external system."""

    @abstractmethod
    def begin(self, org_id: str, proposal_id: str) -> ApplyGuardResult:
        """Atomically claim the apply. BEGIN for exactly one caller, ALREADY for the rest."""
        pass

    @abstractmethod
    def remove(self, org_id: str, proposal_id: str):
        """Release a claim after a failed writeback so a retry can claim it."""
        pass

    @abstractmethod
    def mark_complete(self, org_id: str, proposal_id: str):
        pass
