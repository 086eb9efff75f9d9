"""Routing decisions and the proposal lifecycle."""

from .proposals import (
    ProposalStatus,
    RoutingProposal,
    approve,
    reject,
    override,
    mark_applied,
    expire,
    is_expired,
    can_approve,
    can_override,
)
from .service import DecisionResult, build_idempotency_key, decide, should_auto_apply

__all__ = [
    'ProposalStatus',
    'RoutingProposal',
    'approve',
    'reject',
    'override',
    'mark_applied',
    'expire',
    'is_expired',
    'can_approve',
    'can_override',
    'DecisionResult',
    'build_idempotency_key',
    'decide',
    'should_auto_apply',
]
