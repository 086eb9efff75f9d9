"""Routing configuration: gating, decision, capacity settings and environment."""

import logging
import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Optional

from .constants import (
    DEFAULT_DAILY_LEAD_THRESHOLD,
    DEFAULT_EXCLUDE_HIGH_BURNOUT,
    DEFAULT_MAX_BURNOUT_SCORE,
    DEFAULT_REQUIRE_AVAILABILITY,
)
from .models import Confidence, DecisionMode

logger = logging.getLogger(__name__)

DEFAULT_HOME = Path.home() / ".lead-router"


@dataclass
class GatingConfig:
    """Hard eligibility filters applied before scoring."""

    require_availability: bool = DEFAULT_REQUIRE_AVAILABILITY
    min_conversion_rate: Optional[float] = None
    min_industry_score: Optional[float] = None
    exclude_high_burnout: bool = DEFAULT_EXCLUDE_HIGH_BURNOUT
    max_burnout_score: float = DEFAULT_MAX_BURNOUT_SCORE
    daily_lead_threshold: int = DEFAULT_DAILY_LEAD_THRESHOLD

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GatingConfig":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class DecisionConfig:
    """Controls when a recommendation is applied without a human."""

    mode: DecisionMode = DecisionMode.MANUAL
    auto_approve_threshold: float = 80
    auto_approve_min_confidence: Optional[Confidence] = Confidence.HIGH
    proposal_expiry_hours: Optional[float] = 24
    allow_override: bool = True
    allow_override_from_overridden: bool = False
    enable_random_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["mode"] = self.mode.value
        data["auto_approve_min_confidence"] = (
            self.auto_approve_min_confidence.value if self.auto_approve_min_confidence else None
        )
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DecisionConfig":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        if "mode" in known:
            known["mode"] = DecisionMode(known["mode"])
        if known.get("auto_approve_min_confidence"):
            known["auto_approve_min_confidence"] = Confidence(known["auto_approve_min_confidence"])
        return cls(**known)


@dataclass
class CapacityLimits:
    """Per-agent assignment limits. None means unlimited."""

    daily_limit: Optional[int] = None
    weekly_limit: Optional[int] = None
    monthly_limit: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CapacityLimits":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class AvailabilityConfig:
    """Workload deductions used by the availability calculator."""

    daily_lead_threshold: int = DEFAULT_DAILY_LEAD_THRESHOLD
    quota_warning_ratio: float = 0.8
    available_above: float = 20

    # (leads in treatment above, points deducted), checked in order
    treatment_steps: tuple = ((50, 40), (30, 20), (15, 10))
    quota_reached_deduction: float = 50
    quota_warning_deduction: float = 25


class Settings:
    """Engine configuration loaded from environment variables."""

    def __init__(self):
        home = Path(os.getenv("LEAD_ROUTER_HOME", str(DEFAULT_HOME)))
        self.db_path = Path(os.getenv("LEAD_ROUTER_DB_PATH", str(home / "routing.db")))
        self.config_path = Path(os.getenv("LEAD_ROUTER_CONFIG_PATH", str(home / "routing_config.json")))
        self.assignments_path = Path(
            os.getenv("LEAD_ROUTER_ASSIGNMENTS_PATH", str(home / "assignments.json"))
        )
        self.default_org = os.getenv("LEAD_ROUTER_DEFAULT_ORG", "default")
        self.log_level = os.getenv("LEAD_ROUTER_LOG_LEVEL", "WARNING").upper()


_settings = None


def _get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings():
    """Drop cached settings so the environment is read again."""
    global _settings
    _settings = None


class _SettingsProxy:
    """Lazy proxy so settings aren't loaded until first access."""

    def __getattr__(self, name):
        return getattr(_get_settings(), name)


settings = _SettingsProxy()
