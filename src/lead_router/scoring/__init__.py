"""Gating and score aggregation."""

from .gating import GatingResult, apply_gating_filters, is_agent_eligible
from .engine import AgentScore, ScoringResult, TieBreakCriterion, compare_agents, evaluate

__all__ = [
    'GatingResult',
    'apply_gating_filters',
    'is_agent_eligible',
    'AgentScore',
    'ScoringResult',
    'TieBreakCriterion',
    'compare_agents',
    'evaluate',
]
