"""Route leads end to end over injected providers and stores.

The pure engine (evaluate, explain, decide and the proposal transitions)
never touches storage. This service does the I/O around it: loads profiles
and rules, persists proposals and runs guarded writebacks.
"""

import logging
import random
from datetime import datetime
from typing import List, Optional

from ..core.config import DecisionConfig, GatingConfig
from ..core.errors import InvalidTransitionError, WritebackError
from ..core.models import ConfigVersions, NormalizedLead
from ..decision.proposals import (
    APPLYABLE_STATUSES,
    ProposalStatus,
    RoutingProposal,
    approve,
    expire,
    is_expired,
    mark_applied,
    override,
    reject,
)
from ..decision.service import DecisionResult, decide
from ..profiling.availability import CapacityCalculator
from ..scoring.engine import evaluate
from ..storage.base import (
    AgentProfileProvider,
    ApplyGuard,
    ApplyGuardResult,
    ProposalStore,
    RuleConfigProvider,
)
from .writeback import Writeback

logger = logging.getLogger(__name__)


class RoutingService:
    """Routes leads and manages proposal approval and application."""

    def __init__(
        self,
        profiles: AgentProfileProvider,
        rules: RuleConfigProvider,
        store: ProposalStore,
        guard: ApplyGuard,
        writeback: Writeback,
        gating_config: Optional[GatingConfig] = None,
        decision_config: Optional[DecisionConfig] = None,
        versions: Optional[ConfigVersions] = None,
        capacity: Optional[CapacityCalculator] = None,
        rng: Optional[random.Random] = None,
    ):
        self.profiles = profiles
        self.rules = rules
        self.store = store
        self.guard = guard
        self.writeback = writeback
        self.gating_config = gating_config or GatingConfig()
        self.decision_config = decision_config or DecisionConfig()
        self.versions = versions or ConfigVersions()
        self.capacity = capacity
        self.rng = rng

    def route_lead(self, org_id: str, lead: NormalizedLead, now: Optional[datetime] = None) -> DecisionResult:
        """Score a lead, persist the proposal and auto-apply when the decision says so.

        A lead already routed under the same configuration returns the stored
        proposal untouched.
        """
        agents = self.profiles.list_profiles(org_id)
        rules = self.rules.get_rules(org_id)
        capacity = None
        if self.capacity is not None:
            capacity = self.capacity.capacity_for_all(org_id, [a.agent_id for a in agents], now)

        result = evaluate(lead, agents, rules, self.gating_config, capacity)
        decision = decide(
            lead, result, self.decision_config, self.versions,
            agents=agents, org_id=org_id, rng=self.rng, now=now,
        )

        stored, created = self.store.create_if_absent(decision.proposal)
        if not created:
            logger.info(f"Lead {lead.lead_id} already has proposal {stored.id} ({stored.status.value})")
            return DecisionResult(stored, False, "Proposal already exists for this lead and configuration")

        if decision.should_auto_apply:
            stored = self.apply_proposal(org_id, stored.id, now)
        return DecisionResult(stored, decision.should_auto_apply, decision.reason)

    def apply_proposal(self, org_id: str, proposal_id: str, now: Optional[datetime] = None) -> RoutingProposal:
        """Write the proposal's assignment to the external system at most once.

        Concurrent or repeated calls that lose the guard return the current
        stored proposal without writing. A failed writeback moves the proposal
        to WRITEBACK_FAILED and releases the guard so a later call can retry.
        """
        proposal = self.store.get(org_id, proposal_id)
        if proposal.status is ProposalStatus.APPLIED and not proposal.awaiting_writeback:
            return proposal
        if proposal.status not in APPLYABLE_STATUSES and not proposal.awaiting_writeback:
            raise InvalidTransitionError(
                f"Proposal {proposal_id} is {proposal.status.value} and cannot be applied",
                proposal_id,
                proposal.status.value,
                ProposalStatus.APPLIED.value,
            )

        if self.guard.begin(org_id, proposal_id) is ApplyGuardResult.ALREADY:
            logger.info(f"Skipping apply of {proposal_id}: already in progress or done")
            return self.store.get(org_id, proposal_id)

        agent_id = proposal.target_agent_id
        try:
            self.writeback.apply(proposal, agent_id)
        except WritebackError as e:
            failed = self.store.update(mark_applied(proposal, False, str(e), now))
            self._release_guard(org_id, proposal_id)
            return failed
        except Exception:
            self._release_guard(org_id, proposal_id)
            raise

        applied = self.store.update(mark_applied(proposal, True, now=now))
        self.guard.mark_complete(org_id, proposal_id)
        return applied

    def _release_guard(self, org_id: str, proposal_id: str):
        try:
            self.guard.remove(org_id, proposal_id)
        except Exception as e:
            # Retry will see ALREADY until the claim is cleared by hand
            logger.error(f"Failed to release apply guard for {proposal_id}: {e}")

    def approve_and_apply(self, org_id: str, proposal_id: str, actor: str, now: Optional[datetime] = None) -> RoutingProposal:
        proposal = self.store.get(org_id, proposal_id)
        self.store.update(approve(proposal, actor, now))
        return self.apply_proposal(org_id, proposal_id, now)

    def reject_proposal(self, org_id: str, proposal_id: str, actor: str, reason: str = "",
                        now: Optional[datetime] = None) -> RoutingProposal:
        proposal = self.store.get(org_id, proposal_id)
        return self.store.update(reject(proposal, actor, reason, now))

    def override_and_apply(
        self,
        org_id: str,
        proposal_id: str,
        actor: str,
        agent_id: str,
        apply_now: bool = True,
        now: Optional[datetime] = None,
    ) -> RoutingProposal:
        """Assign a manager-chosen agent, optionally applying right away."""
        proposal = self.store.get(org_id, proposal_id)
        profile = self.profiles.get_profile(org_id, agent_id)
        updated = override(
            proposal,
            actor,
            agent_id,
            agent_name=profile.agent_name if profile else agent_id,
            allow_override=self.decision_config.allow_override,
            allow_from_overridden=self.decision_config.allow_override_from_overridden,
            now=now,
        )
        self.store.update(updated)
        if apply_now:
            return self.apply_proposal(org_id, proposal_id, now)
        return updated

    def expire_stale(self, org_id: str, now: Optional[datetime] = None) -> List[RoutingProposal]:
        """Move every proposed-but-expired proposal to EXPIRED."""
        now = now or datetime.now()
        expired = []
        for proposal in self.store.list_proposals(org_id, ProposalStatus.PROPOSED, limit=None):
            if is_expired(proposal, now):
                expired.append(self.store.update(expire(proposal, now)))
        if expired:
            logger.info(f"Expired {len(expired)} stale proposals for {org_id}")
        return expired

    def discard_failed(self, org_id: str, proposal_id: str) -> bool:
        """Drop a failed proposal so the lead can be routed again from scratch."""
        return self.store.discard_failed(org_id, proposal_id)
