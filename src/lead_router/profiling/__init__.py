"""Agent profiling: domain expertise, availability and capacity."""

from .availability import (
    AvailabilityStatus,
    CapacityStatus,
    CapacityCalculator,
    calculate_availability,
    calculate_capacity,
)
from .domain_learner import (
    AgentDomainProfile,
    DomainExpertise,
    learn_domain_profile,
    learn_bulk,
    get_top_domains,
    get_domain_expertise,
    find_best_agents_by_domain,
    summarize_domains,
)
from .profiler import ProfilerConfig, calculate_agent_profile, calculate_all_profiles, profile_summary

__all__ = [
    'AvailabilityStatus',
    'CapacityStatus',
    'CapacityCalculator',
    'calculate_availability',
    'calculate_capacity',
    'AgentDomainProfile',
    'DomainExpertise',
    'learn_domain_profile',
    'learn_bulk',
    'get_top_domains',
    'get_domain_expertise',
    'find_best_agents_by_domain',
    'summarize_domains',
    'ProfilerConfig',
    'calculate_agent_profile',
    'calculate_all_profiles',
    'profile_summary',
]
