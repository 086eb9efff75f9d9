"""Storage interfaces and their SQLite, in-memory and JSON implementations."""

from .base import (
    AgentProfileProvider,
    LeadHistoryProvider,
    RuleConfigProvider,
    ProposalStore,
    ApplyGuard,
    ApplyGuardResult,
    filter_eligible,
)
from .database import RoutingDatabase
from .memory import (
    InMemoryAgentProfiles,
    InMemoryLeadHistory,
    InMemoryProposalStore,
    InMemoryApplyGuard,
    InMemoryRuleConfig,
)
from .json_config import RoutingConfig, RoutingConfigManager

__all__ = [
    'AgentProfileProvider',
    'LeadHistoryProvider',
    'RuleConfigProvider',
    'ProposalStore',
    'ApplyGuard',
    'ApplyGuardResult',
    'filter_eligible',
    'RoutingDatabase',
    'InMemoryAgentProfiles',
    'InMemoryLeadHistory',
    'InMemoryProposalStore',
    'InMemoryApplyGuard',
    'InMemoryRuleConfig',
    'RoutingConfig',
    'RoutingConfigManager',
]
