"""Decide between manual approval and auto-apply, and build the proposal."""

import logging
import random
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from ..core.config import DecisionConfig
from ..core.models import AgentProfile, Confidence, ConfigVersions, DecisionMode, NormalizedLead
from ..explain.explainer import generate_explanation
from ..explain.models import ExplanationMode
from ..scoring.engine import ScoringResult
from .proposals import ProposalStatus, RoutingProposal

logger = logging.getLogger(__name__)


@dataclass
class DecisionResult:
    """Proposal plus whether the caller should apply it now."""
    proposal: RoutingProposal
    should_auto_apply: bool
    reason: str


def build_idempotency_key(lead: NormalizedLead, versions: ConfigVersions) -> str:
    """Deterministic key for one lead under one configuration.

    ``board:item:schema:mapping`` with ``:rules`` appended when a rule-set
    version is in effect.
    """
    parts = [
        lead.board_id or "default",
        lead.item_id or lead.lead_id,
        versions.schema_version,
        versions.mapping_version,
    ]
    if versions.rules_version:
        parts.append(versions.rules_version)
    return ":".join(str(part) for part in parts)


def should_auto_apply(config: DecisionConfig, score: float, confidence: Confidence) -> bool:
    """Auto-apply only outside manual mode, at or above the threshold and confidence."""
    if config.mode is DecisionMode.MANUAL:
        return False
    if score < config.auto_approve_threshold:
        return False
    if config.auto_approve_min_confidence and not confidence.at_least(config.auto_approve_min_confidence):
        return False
    if config.mode is DecisionMode.HYBRID and confidence is Confidence.LOW:
        return False
    return True


def _manual_reason(config: DecisionConfig, score: int, confidence: Confidence) -> str:
    if config.mode is DecisionMode.MANUAL:
        return f"Manual approval required: manual mode (score {score}/100, confidence {confidence.value})"
    return f"Manual approval required: score {score}/100 or confidence {confidence.value}"


def decide(
    lead: NormalizedLead,
    result: ScoringResult,
    config: DecisionConfig,
    versions: ConfigVersions,
    agents: Iterable[AgentProfile] = (),
    org_id: str = "default",
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> DecisionResult:
    """Build a proposal for a scored lead.

    Args:
        lead: Lead that was scored
        result: Output of ``evaluate``
        config: Decision mode and thresholds
        versions: Configuration versions, used for the idempotency key
        agents: All agent profiles, for explanation detail and random fallback
        org_id: Owning organization
        rng: Random source for the fallback pick
        now: Reference time for timestamps and expiry
    """
    now = now or datetime.now()
    agents = list(agents)
    expires_at = (
        now + timedelta(hours=config.proposal_expiry_hours)
        if config.proposal_expiry_hours else None
    )

    def new_proposal(explanation) -> RoutingProposal:
        return RoutingProposal(
            id=str(uuid.uuid4())[:12],
            org_id=org_id,
            lead_id=lead.lead_id,
            board_id=lead.board_id,
            item_id=lead.item_id,
            idempotency_key=build_idempotency_key(lead, versions),
            explanation=explanation,
            decision_mode=config.mode,
            created_at=now,
            updated_at=now,
            expires_at=expires_at,
        )

    top = result.top_agent
    if top is None:
        if config.mode is DecisionMode.AUTO and config.enable_random_fallback and agents:
            rng = rng or random.Random()
            chosen = rng.choice(sorted(agents, key=lambda a: a.agent_id))
            proposal = new_proposal(generate_explanation(
                lead, result, agents, ExplanationMode.RANDOM_FALLBACK, chosen
            ))
            proposal.recommended_agent_id = chosen.agent_id
            proposal.recommended_agent_name = chosen.agent_name
            proposal.status = ProposalStatus.APPLIED
            proposal.auto_applied = True
            proposal.applied_agent_id = chosen.agent_id
            proposal.applied_at = now
            reason = "No clear winner - random agent selected (auto mode)"
            logger.info(f"Lead {lead.lead_id}: random fallback to {chosen.agent_id}")
            proposal.decision_reason = reason
            return DecisionResult(proposal, True, reason)

        proposal = new_proposal(generate_explanation(lead, result, agents))
        reason = "No eligible agents - manual review required"
        logger.info(f"Lead {lead.lead_id}: {reason}")
        proposal.decision_reason = reason
        return DecisionResult(proposal, False, reason)

    explanation = generate_explanation(lead, result, agents)
    confidence = explanation.confidence
    score = explanation.recommended_agent.score

    proposal = new_proposal(explanation)
    proposal.recommended_agent_id = top.agent_id
    proposal.recommended_agent_name = top.agent_name
    proposal.score = round(top.normalized_score, 2)
    proposal.confidence = confidence
    proposal.alternative_agent_ids = [alt.agent_id for alt in result.alternatives]

    if should_auto_apply(config, top.normalized_score, confidence):
        proposal.status = ProposalStatus.APPLIED
        proposal.auto_applied = True
        proposal.applied_agent_id = top.agent_id
        proposal.applied_at = now
        reason = f"Auto-applied: score {score}/100 meets threshold ({config.auto_approve_threshold:g})"
        auto = True
    else:
        reason = _manual_reason(config, score, confidence)
        auto = False

    proposal.decision_reason = reason
    logger.info(f"Lead {lead.lead_id}: {top.agent_id} recommended. {reason}")
    return DecisionResult(proposal, auto, reason)
