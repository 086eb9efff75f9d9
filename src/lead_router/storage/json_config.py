"""JSON-file routing configuration: KPI weights, rules, gating and decision settings."""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.config import DEFAULT_HOME, CapacityLimits, DecisionConfig, GatingConfig
from ..core.models import ConfigVersions
from ..rules.models import ScoringRule, rule_to_dict, rules_from_list
from ..rules.weights import (
    DEFAULT_KPI_WEIGHTS,
    kpi_weights_to_rules,
    normalize_rule_weights,
    normalize_weights,
    validate_weights,
)
from .base import RuleConfigProvider

logger = logging.getLogger(__name__)


@dataclass
class RoutingConfig:
    """Everything the engine needs besides leads and profiles."""

    kpi_weights: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_KPI_WEIGHTS))
    custom_rules: List[Dict[str, Any]] = field(default_factory=list)
    gating: GatingConfig = field(default_factory=GatingConfig)
    decision: DecisionConfig = field(default_factory=DecisionConfig)
    capacity: CapacityLimits = field(default_factory=CapacityLimits)
    schema_version: str = "1"
    mapping_version: str = "1"
    rules_version: int = 1
    updated_at: datetime = field(default_factory=datetime.now)

    @property
    def versions(self) -> ConfigVersions:
        return ConfigVersions(self.schema_version, self.mapping_version, str(self.rules_version))


class RoutingConfigManager(RuleConfigProvider):
    """Manage and persist routing configuration.

    The file holds one configuration; ``org_id`` arguments are accepted for
    the provider interface and ignored.
    """

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize config manager."""
        self.config_path = Path(config_path) if config_path else DEFAULT_HOME / "routing_config.json"
        self.config = self._load_config()

    def _load_config(self) -> RoutingConfig:
        """Load configuration from file."""
        if self.config_path.exists():
            try:
                with open(self.config_path, 'r') as f:
                    data = json.load(f)
                return RoutingConfig(
                    kpi_weights=data.get("kpi_weights", dict(DEFAULT_KPI_WEIGHTS)),
                    custom_rules=data.get("custom_rules", []),
                    gating=GatingConfig.from_dict(data.get("gating", {})),
                    decision=DecisionConfig.from_dict(data.get("decision", {})),
                    capacity=CapacityLimits.from_dict(data.get("capacity", {})),
                    schema_version=str(data.get("schema_version", "1")),
                    mapping_version=str(data.get("mapping_version", "1")),
                    rules_version=int(data.get("rules_version", 1)),
                    updated_at=datetime.fromisoformat(data["updated_at"]) if data.get("updated_at") else datetime.now(),
                )
            except (OSError, ValueError, KeyError, TypeError) as e:
                logger.error(f"Error loading routing config from {self.config_path}: {e}")

        return RoutingConfig()

    def save_config(self):
        """Save configuration to file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "kpi_weights": self.config.kpi_weights,
            "custom_rules": self.config.custom_rules,
            "gating": self.config.gating.to_dict(),
            "decision": self.config.decision.to_dict(),
            "capacity": self.config.capacity.to_dict(),
            "schema_version": self.config.schema_version,
            "mapping_version": self.config.mapping_version,
            "rules_version": self.config.rules_version,
            "updated_at": self.config.updated_at.isoformat(),
        }
        with open(self.config_path, 'w') as f:
            json.dump(data, f, indent=2)

    def _touch_rules(self):
        # Any scoring change gets a new rules version so leads re-route under it
        self.config.rules_version += 1
        self.config.updated_at = datetime.now()
        self.save_config()

    def set_kpi_weights(self, weights: Dict[str, float], normalize: bool = True) -> Dict[str, float]:
        """Replace KPI weights. Returns the stored weights."""
        validation = validate_weights(weights)
        if not validation.valid:
            logger.warning(f"KPI weights need normalization: {'; '.join(validation.errors)}")
        stored = normalize_weights(weights) if normalize else dict(weights)
        self.config.kpi_weights = stored
        self._touch_rules()
        return stored

    def reset_kpi_weights(self):
        self.config.kpi_weights = dict(DEFAULT_KPI_WEIGHTS)
        self._touch_rules()

    def set_custom_rules(self, rules: List[ScoringRule]):
        """Use explicit rules instead of KPI-generated ones. Empty list reverts to KPIs."""
        self.config.custom_rules = [rule_to_dict(rule) for rule in rules]
        self._touch_rules()

    def update_gating(self, **changes):
        for key, value in changes.items():
            if not hasattr(self.config.gating, key):
                raise AttributeError(f"Unknown gating setting: {key}")
            setattr(self.config.gating, key, value)
        self.config.updated_at = datetime.now()
        self.save_config()

    def update_decision(self, **changes):
        for key, value in changes.items():
            if not hasattr(self.config.decision, key):
                raise AttributeError(f"Unknown decision setting: {key}")
            setattr(self.config.decision, key, value)
        self.config.updated_at = datetime.now()
        self.save_config()

    def get_kpi_weights(self, org_id: str = "default") -> Dict[str, float]:
        return dict(self.config.kpi_weights)

    def get_rules(self, org_id: str = "default") -> List[ScoringRule]:
        """Enabled rules, weights normalized to 100."""
        if self.config.custom_rules:
            rules = normalize_rule_weights(rules_from_list(self.config.custom_rules))
            return [rule for rule in rules if rule.enabled]
        return kpi_weights_to_rules(self.config.kpi_weights)
