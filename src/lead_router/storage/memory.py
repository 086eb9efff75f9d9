"""In-process implementations of the storage interfaces."""

import logging
import threading
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from ..core.errors import ProposalNotFoundError
from ..core.models import AgentProfile, LeadRecord
from ..decision.proposals import ProposalStatus, RoutingProposal
from ..rules.models import ScoringRule
from ..rules.weights import DEFAULT_KPI_WEIGHTS, kpi_weights_to_rules, normalize_rule_weights
from .base import (
    AgentProfileProvider,
    ApplyGuard,
    ApplyGuardResult,
    LeadHistoryProvider,
    ProposalStore,
    RuleConfigProvider,
    filter_eligible,
)

logger = logging.getLogger(__name__)


class InMemoryAgentProfiles(AgentProfileProvider):
    """Profiles held in a dict per org."""

    def __init__(self, profiles: Optional[Dict[str, List[AgentProfile]]] = None):
        self.profiles: Dict[str, Dict[str, AgentProfile]] = {}
        for org_id, items in (profiles or {}).items():
            for profile in items:
                self.save_profile(org_id, profile)

    def save_profile(self, org_id: str, profile: AgentProfile):
        self.profiles.setdefault(org_id, {})[profile.agent_id] = profile

    def list_profiles(self, org_id: str, eligible_only: bool = False) -> List[AgentProfile]:
        profiles = list(self.profiles.get(org_id, {}).values())
        return filter_eligible(profiles) if eligible_only else profiles

    def get_profile(self, org_id: str, agent_id: str) -> Optional[AgentProfile]:
        return self.profiles.get(org_id, {}).get(agent_id)


class InMemoryLeadHistory(LeadHistoryProvider):
    """Lead records and assignment times held in lists."""

    def __init__(self):
        self.leads: Dict[str, List[LeadRecord]] = {}
        self.assignments: Dict[Tuple[str, str], List[datetime]] = {}

    def add_lead(self, org_id: str, lead: LeadRecord):
        self.leads.setdefault(org_id, []).append(lead)

    def record_assignment(self, org_id: str, agent_id: str, assigned_at: datetime):
        self.assignments.setdefault((org_id, agent_id), []).append(assigned_at)

    def list_leads(
        self,
        org_id: str,
        agent_id: str,
        statuses: Optional[Iterable[str]] = None,
        since: Optional[datetime] = None,
    ) -> List[LeadRecord]:
        wanted = set(statuses) if statuses is not None else None
        return [
            lead for lead in self.leads.get(org_id, [])
            if lead.agent_id == agent_id
            and (wanted is None or lead.status in wanted)
            and (since is None or (lead.entered_at is not None and lead.entered_at >= since))
        ]

    def list_assignment_times(self, org_id: str, agent_id: str, since: Optional[datetime] = None) -> List[datetime]:
        times = self.assignments.get((org_id, agent_id), [])
        return [t for t in times if since is None or t >= since]


class InMemoryProposalStore(ProposalStore):
    """Proposals in dicts, with a lock so create-if-absent is atomic."""

    def __init__(self):
        self._lock = threading.Lock()
        self._proposals: Dict[Tuple[str, str], RoutingProposal] = {}
        self._by_key: Dict[Tuple[str, str], str] = {}

    def create_if_absent(self, proposal: RoutingProposal) -> Tuple[RoutingProposal, bool]:
        key = (proposal.org_id, proposal.idempotency_key)
        with self._lock:
            existing_id = self._by_key.get(key)
            if existing_id is not None:
                existing = self._proposals[(proposal.org_id, existing_id)]
                logger.debug(f"Proposal for {proposal.idempotency_key} exists ({existing.status.value})")
                return existing, False
            self._proposals[(proposal.org_id, proposal.id)] = proposal
            self._by_key[key] = proposal.id
            return proposal, True

    def get(self, org_id: str, proposal_id: str) -> RoutingProposal:
        proposal = self._proposals.get((org_id, proposal_id))
        if proposal is None:
            raise ProposalNotFoundError(f"Proposal {proposal_id} not found", proposal_id)
        return proposal

    def update(self, proposal: RoutingProposal) -> RoutingProposal:
        with self._lock:
            if (proposal.org_id, proposal.id) not in self._proposals:
                raise ProposalNotFoundError(f"Proposal {proposal.id} not found", proposal.id)
            self._proposals[(proposal.org_id, proposal.id)] = proposal
        return proposal

    def list_proposals(
        self,
        org_id: str,
        status: Optional[ProposalStatus] = None,
        limit: Optional[int] = 100,
    ) -> List[RoutingProposal]:
        items = [
            p for (org, _), p in self._proposals.items()
            if org == org_id and (status is None or p.status is status)
        ]
        items.sort(key=lambda p: p.created_at, reverse=True)
        return items if limit is None else items[:limit]

    def discard_failed(self, org_id: str, proposal_id: str) -> bool:
        with self._lock:
            proposal = self._proposals.get((org_id, proposal_id))
            if proposal is None or proposal.status is not ProposalStatus.WRITEBACK_FAILED:
                return False
            del self._proposals[(org_id, proposal_id)]
            self._by_key.pop((org_id, proposal.idempotency_key), None)
        logger.info(f"Discarded failed proposal {proposal_id}")
        return True


class InMemoryApplyGuard(ApplyGuard):
    """Apply claims in a set guarded by a lock."""

    def __init__(self):
        self._lock = threading.Lock()
        self._claims: Dict[Tuple[str, str], Optional[datetime]] = {}

    def begin(self, org_id: str, proposal_id: str) -> ApplyGuardResult:
        with self._lock:
            if (org_id, proposal_id) in self._claims:
                return ApplyGuardResult.ALREADY
            self._claims[(org_id, proposal_id)] = None
            return ApplyGuardResult.BEGIN

    def remove(self, org_id: str, proposal_id: str):
        with self._lock:
            self._claims.pop((org_id, proposal_id), None)

    def mark_complete(self, org_id: str, proposal_id: str):
        with self._lock:
            if (org_id, proposal_id) in self._claims:
                self._claims[(org_id, proposal_id)] = datetime.now()

    def is_complete(self, org_id: str, proposal_id: str) -> bool:
        return self._claims.get((org_id, proposal_id)) is not None


class InMemoryRuleConfig(RuleConfigProvider):
    """Fixed rules, or rules generated from KPI weights."""

    def __init__(self, rules: Optional[List[ScoringRule]] = None, kpi_weights: Optional[Dict[str, float]] = None):
        self.rules = list(rules or [])
        self.kpi_weights = dict(kpi_weights or DEFAULT_KPI_WEIGHTS)

    def get_rules(self, org_id: str = "default") -> List[ScoringRule]:
        if self.rules:
            return [rule for rule in normalize_rule_weights(self.rules) if rule.enabled]
        return kpi_weights_to_rules(self.kpi_weights)

    def get_kpi_weights(self, org_id: str = "default") -> Dict[str, float]:
        return dict(self.kpi_weights)
