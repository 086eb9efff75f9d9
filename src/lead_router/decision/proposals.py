"""Routing proposals and their lifecycle.

    PROPOSED ──> APPROVED ──┐
       │ ├────> OVERRIDDEN ─┼──> APPLIED
       │ ├────> REJECTED    └──> WRITEBACK_FAILED ──(retry)──> APPLIED | WRITEBACK_FAILED
       │ └────> EXPIRED

Transitions are pure: each returns an updated copy and leaves the input
untouched. Persisting the result is the caller's job.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..core.errors import (
    InvalidTransitionError,
    OverrideNotAllowedError,
    ProposalExpiredError,
)
from ..core.models import Confidence, DecisionMode
from ..explain.models import ExplanationMode, RoutingExplanation

logger = logging.getLogger(__name__)


class ProposalStatus(Enum):
    """Lifecycle state of a proposal."""
    PROPOSED = "PROPOSED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    OVERRIDDEN = "OVERRIDDEN"
    APPLIED = "APPLIED"
    WRITEBACK_FAILED = "WRITEBACK_FAILED"
    EXPIRED = "EXPIRED"

    @classmethod
    def parse(cls, value: str) -> "ProposalStatus":
        """Parse a status name, accepting PENDING as an alias for PROPOSED."""
        name = value.upper()
        if name == "PENDING":
            return cls.PROPOSED
        return cls(name)


APPLYABLE_STATUSES = (ProposalStatus.APPROVED, ProposalStatus.OVERRIDDEN, ProposalStatus.WRITEBACK_FAILED)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class RoutingProposal:
    """Persisted record of one routing decision."""
    id: str
    org_id: str
    lead_id: str
    idempotency_key: str
    explanation: RoutingExplanation
    recommended_agent_id: Optional[str] = None
    recommended_agent_name: Optional[str] = None
    score: float = 0.0
    confidence: Confidence = Confidence.LOW
    alternative_agent_ids: List[str] = field(default_factory=list)
    status: ProposalStatus = ProposalStatus.PROPOSED
    decision_mode: DecisionMode = DecisionMode.MANUAL
    decision_reason: str = ""
    auto_applied: bool = False
    board_id: Optional[str] = None
    item_id: Optional[str] = None

    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    overridden_by: Optional[str] = None
    overridden_at: Optional[datetime] = None
    override_agent_id: Optional[str] = None
    override_agent_name: Optional[str] = None

    applied_agent_id: Optional[str] = None
    applied_at: Optional[datetime] = None
    applied_success: Optional[bool] = None
    applied_error: Optional[str] = None
    apply_attempts: int = 0

    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    expires_at: Optional[datetime] = None

    @property
    def target_agent_id(self) -> Optional[str]:
        """Agent the writeback should assign: the override if any, else the recommendation."""
        return self.override_agent_id or self.recommended_agent_id

    @property
    def awaiting_writeback(self) -> bool:
        """Auto-applied proposals are APPLIED before the external write is confirmed."""
        return self.status is ProposalStatus.APPLIED and self.auto_applied and self.applied_success is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "lead_id": self.lead_id,
            "idempotency_key": self.idempotency_key,
            "explanation": self.explanation.to_dict(),
            "recommended_agent_id": self.recommended_agent_id,
            "recommended_agent_name": self.recommended_agent_name,
            "score": self.score,
            "confidence": self.confidence.value,
            "alternative_agent_ids": list(self.alternative_agent_ids),
            "status": self.status.value,
            "decision_mode": self.decision_mode.value,
            "decision_reason": self.decision_reason,
            "auto_applied": self.auto_applied,
            "board_id": self.board_id,
            "item_id": self.item_id,
            "approved_by": self.approved_by,
            "approved_at": _iso(self.approved_at),
            "rejected_by": self.rejected_by,
            "rejected_at": _iso(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "overridden_by": self.overridden_by,
            "overridden_at": _iso(self.overridden_at),
            "override_agent_id": self.override_agent_id,
            "override_agent_name": self.override_agent_name,
            "applied_agent_id": self.applied_agent_id,
            "applied_at": _iso(self.applied_at),
            "applied_success": self.applied_success,
            "applied_error": self.applied_error,
            "apply_attempts": self.apply_attempts,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "expires_at": _iso(self.expires_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoutingProposal":
        return cls(
            id=data["id"],
            org_id=data["org_id"],
            lead_id=data["lead_id"],
            idempotency_key=data["idempotency_key"],
            explanation=RoutingExplanation.from_dict(data["explanation"]),
            recommended_agent_id=data.get("recommended_agent_id"),
            recommended_agent_name=data.get("recommended_agent_name"),
            score=data.get("score", 0.0),
            confidence=Confidence(data.get("confidence", "low")),
            alternative_agent_ids=list(data.get("alternative_agent_ids", [])),
            status=ProposalStatus(data.get("status", "PROPOSED")),
            decision_mode=DecisionMode(data.get("decision_mode", "manual")),
            decision_reason=data.get("decision_reason", ""),
            auto_applied=data.get("auto_applied", False),
            board_id=data.get("board_id"),
            item_id=data.get("item_id"),
            approved_by=data.get("approved_by"),
            approved_at=_dt(data.get("approved_at")),
            rejected_by=data.get("rejected_by"),
            rejected_at=_dt(data.get("rejected_at")),
            rejection_reason=data.get("rejection_reason"),
            overridden_by=data.get("overridden_by"),
            overridden_at=_dt(data.get("overridden_at")),
            override_agent_id=data.get("override_agent_id"),
            override_agent_name=data.get("override_agent_name"),
            applied_agent_id=data.get("applied_agent_id"),
            applied_at=_dt(data.get("applied_at")),
            applied_success=data.get("applied_success"),
            applied_error=data.get("applied_error"),
            apply_attempts=data.get("apply_attempts", 0),
            created_at=_dt(data.get("created_at")) or datetime.now(),
            updated_at=_dt(data.get("updated_at")) or datetime.now(),
            expires_at=_dt(data.get("expires_at")),
        )


# ============================================================================
# Guards
# ============================================================================

def is_expired(proposal: RoutingProposal, now: Optional[datetime] = None) -> bool:
    if proposal.status is ProposalStatus.EXPIRED:
        return True
    if proposal.expires_at is None:
        return False
    return (now or datetime.now()) >= proposal.expires_at


def can_approve(proposal: RoutingProposal, now: Optional[datetime] = None) -> bool:
    return proposal.status is ProposalStatus.PROPOSED and not is_expired(proposal, now)


def can_override(
    proposal: RoutingProposal,
    allow_override: bool = True,
    allow_from_overridden: bool = False,
    now: Optional[datetime] = None,
) -> bool:
    allowed = [ProposalStatus.PROPOSED]
    if allow_from_overridden:
        allowed.append(ProposalStatus.OVERRIDDEN)
    return allow_override and proposal.status in allowed and not is_expired(proposal, now)


def _require_open(proposal: RoutingProposal, allowed, target: ProposalStatus, now: datetime):
    if proposal.status is ProposalStatus.EXPIRED or (
        proposal.status in allowed and is_expired(proposal, now)
    ):
        raise ProposalExpiredError(
            f"Proposal {proposal.id} expired at {_iso(proposal.expires_at)}", proposal.id
        )
    if proposal.status not in allowed:
        raise InvalidTransitionError(
            f"Cannot move proposal {proposal.id} from {proposal.status.value} to {target.value}",
            proposal.id,
            proposal.status.value,
            target.value,
        )


# ============================================================================
# Transitions
# ============================================================================

def approve(proposal: RoutingProposal, actor: str, now: Optional[datetime] = None) -> RoutingProposal:
    """PROPOSED -> APPROVED."""
    now = now or datetime.now()
    _require_open(proposal, (ProposalStatus.PROPOSED,), ProposalStatus.APPROVED, now)
    if not proposal.recommended_agent_id:
        raise InvalidTransitionError(
            f"Proposal {proposal.id} has no recommended agent; override it instead",
            proposal.id,
            proposal.status.value,
            ProposalStatus.APPROVED.value,
        )

    logger.info(f"Proposal {proposal.id} approved by {actor}")
    return replace(
        proposal,
        status=ProposalStatus.APPROVED,
        approved_by=actor,
        approved_at=now,
        updated_at=now,
    )


def reject(proposal: RoutingProposal, actor: str, reason: str = "", now: Optional[datetime] = None) -> RoutingProposal:
    """PROPOSED -> REJECTED."""
    now = now or datetime.now()
    if proposal.status is not ProposalStatus.PROPOSED:
        raise InvalidTransitionError(
            f"Cannot reject proposal {proposal.id} in status {proposal.status.value}",
            proposal.id,
            proposal.status.value,
            ProposalStatus.REJECTED.value,
        )

    logger.info(f"Proposal {proposal.id} rejected by {actor}: {reason or 'no reason given'}")
    return replace(
        proposal,
        status=ProposalStatus.REJECTED,
        rejected_by=actor,
        rejected_at=now,
        rejection_reason=reason or None,
        updated_at=now,
    )


def override(
    proposal: RoutingProposal,
    actor: str,
    agent_id: str,
    agent_name: str = "",
    allow_override: bool = True,
    allow_from_overridden: bool = False,
    now: Optional[datetime] = None,
) -> RoutingProposal:
    """PROPOSED (or OVERRIDDEN, if allowed) -> OVERRIDDEN with a manager-chosen agent.

    Gating and scoring are not re-run; the original recommendation stays on
    the record for audit.
    """
    now = now or datetime.now()
    if not allow_override:
        raise OverrideNotAllowedError(f"Overrides are disabled (proposal {proposal.id})", proposal.id)

    allowed = [ProposalStatus.PROPOSED]
    if allow_from_overridden:
        allowed.append(ProposalStatus.OVERRIDDEN)
    _require_open(proposal, tuple(allowed), ProposalStatus.OVERRIDDEN, now)

    agent_name = agent_name or agent_id
    explanation = replace(
        proposal.explanation,
        decision_mode=ExplanationMode.OVERRIDE,
        summary=(
            f"Manually assigned to {agent_name} by manager (override), "
            f"bypassing automated scoring logic."
        ),
    )

    logger.info(f"Proposal {proposal.id} overridden by {actor}: {proposal.recommended_agent_id} -> {agent_id}")
    return replace(
        proposal,
        status=ProposalStatus.OVERRIDDEN,
        overridden_by=actor,
        overridden_at=now,
        override_agent_id=agent_id,
        override_agent_name=agent_name,
        explanation=explanation,
        updated_at=now,
    )


def mark_applied(
    proposal: RoutingProposal,
    success: bool,
    error: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RoutingProposal:
    """Record the outcome of a writeback attempt.

    Allowed from APPROVED, OVERRIDDEN and WRITEBACK_FAILED, and once from an
    auto-applied proposal still awaiting confirmation. A confirmed APPLIED
    proposal is terminal.
    """
    now = now or datetime.now()
    target = ProposalStatus.APPLIED if success else ProposalStatus.WRITEBACK_FAILED
    if proposal.status not in APPLYABLE_STATUSES and not proposal.awaiting_writeback:
        raise InvalidTransitionError(
            f"Cannot record writeback for proposal {proposal.id} in status {proposal.status.value}",
            proposal.id,
            proposal.status.value,
            target.value,
        )

    if success:
        logger.info(f"Proposal {proposal.id} applied to {proposal.target_agent_id}")
    else:
        logger.warning(f"Writeback failed for proposal {proposal.id}: {error}")

    return replace(
        proposal,
        status=target,
        applied_agent_id=proposal.target_agent_id,
        applied_at=now if success else proposal.applied_at,
        applied_success=success,
        applied_error=None if success else error,
        apply_attempts=proposal.apply_attempts + 1,
        updated_at=now,
    )


def expire(proposal: RoutingProposal, now: Optional[datetime] = None) -> RoutingProposal:
    """PROPOSED -> EXPIRED once the expiry time has passed."""
    now = now or datetime.now()
    if proposal.status is not ProposalStatus.PROPOSED:
        raise InvalidTransitionError(
            f"Only proposed proposals can expire (proposal {proposal.id} is {proposal.status.value})",
            proposal.id,
            proposal.status.value,
            ProposalStatus.EXPIRED.value,
        )
    if not is_expired(proposal, now):
        raise InvalidTransitionError(
            f"Proposal {proposal.id} has not reached its expiry",
            proposal.id,
            proposal.status.value,
            ProposalStatus.EXPIRED.value,
        )

    logger.info(f"Proposal {proposal.id} expired")
    return replace(proposal, status=ProposalStatus.EXPIRED, updated_at=now)
