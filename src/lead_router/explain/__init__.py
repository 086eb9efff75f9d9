"""Explanations for routing decisions."""

from .models import (
    ExplanationMode,
    ReasonItem,
    RecommendedAgent,
    AlternativeSummary,
    RoutingExplanation,
)
from .explainer import (
    calculate_confidence,
    explain,
    format_explanation_for_display,
    generate_explanation,
    summarize_lead,
)

__all__ = [
    'ExplanationMode',
    'ReasonItem',
    'RecommendedAgent',
    'AlternativeSummary',
    'RoutingExplanation',
    'calculate_confidence',
    'explain',
    'format_explanation_for_display',
    'generate_explanation',
    'summarize_lead',
]
