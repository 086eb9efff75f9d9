"""Core models, configuration and errors."""

from .models import (
    NormalizedLead,
    AgentProfile,
    LeadRecord,
    ConfigVersions,
    Confidence,
    DecisionMode,
)
from .config import (
    GatingConfig,
    DecisionConfig,
    CapacityLimits,
    AvailabilityConfig,
    Settings,
    settings,
)
from .errors import (
    RoutingError,
    ConfigurationError,
    ProposalError,
    ProposalNotFoundError,
    ProposalExpiredError,
    InvalidTransitionError,
    OverrideNotAllowedError,
    WritebackError,
)

__all__ = [
    'NormalizedLead',
    'AgentProfile',
    'LeadRecord',
    'ConfigVersions',
    'Confidence',
    'DecisionMode',
    'GatingConfig',
    'DecisionConfig',
    'CapacityLimits',
    'AvailabilityConfig',
    'Settings',
    'settings',
    'RoutingError',
    'ConfigurationError',
    'ProposalError',
    'ProposalNotFoundError',
    'ProposalExpiredError',
    'InvalidTransitionError',
    'OverrideNotAllowedError',
    'WritebackError',
]
