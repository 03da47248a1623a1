"""KPI configuration: scoring weights, penalty tables and the JSON-backed store."""
import os
import json
import math
import logging
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional

from config import (
    KPI_CONFIG_PATH,
    DEFAULT_DELIVERY_WEIGHT,
    DEFAULT_QUALITY_WEIGHT,
    DEFAULT_BUG_PENALTIES,
    DEFAULT_CONCEPTUAL_PENALTIES,
    DEFAULT_REOPEN_PENALTY,
    DEFAULT_EARLY_DELIVERY_BONUS,
    DEFAULT_LATE_CRITICAL_PENALTY,
    WEIGHT_SUM_TOLERANCE,
)
from errors import InvalidConfigError
from models import BugSeverity

logger = logging.getLogger(__name__)


@dataclass
class BugPenalties:
    """Points deducted from the quality score per bug, by severity."""
    critical: float
    high: float
    medium: float
    low: float

    def for_severity(self, severity) -> float:
        return getattr(self, BugSeverity.parse(severity).value)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BugPenalties":
        return cls(
            critical=float(data["critical"]),
            high=float(data["high"]),
            medium=float(data["medium"]),
            low=float(data["low"]),
        )


def _default_bug_penalties():
    return BugPenalties.from_dict(DEFAULT_BUG_PENALTIES)


def _default_conceptual_penalties():
    return BugPenalties.from_dict(DEFAULT_CONCEPTUAL_PENALTIES)


@dataclass
class KPIConfig:
    delivery_weight: float = DEFAULT_DELIVERY_WEIGHT
    quality_weight: float = DEFAULT_QUALITY_WEIGHT
    bug_penalties: BugPenalties = field(default_factory=_default_bug_penalties)
    conceptual_penalties: BugPenalties = field(default_factory=_default_conceptual_penalties)
    reopen_penalty: float = DEFAULT_REOPEN_PENALTY
    early_delivery_bonus: float = DEFAULT_EARLY_DELIVERY_BONUS
    late_critical_penalty: float = DEFAULT_LATE_CRITICAL_PENALTY

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KPIConfig":
        """Build a config from a (possibly partial) dict, filling gaps with defaults."""
        defaults = cls()
        try:
            config = cls(
                delivery_weight=float(data.get("delivery_weight", defaults.delivery_weight)),
                quality_weight=float(data.get("quality_weight", defaults.quality_weight)),
                bug_penalties=(
                    BugPenalties.from_dict(data["bug_penalties"])
                    if "bug_penalties" in data else defaults.bug_penalties
                ),
                conceptual_penalties=(
                    BugPenalties.from_dict(data["conceptual_penalties"])
                    if "conceptual_penalties" in data else defaults.conceptual_penalties
                ),
                reopen_penalty=float(data.get("reopen_penalty", defaults.reopen_penalty)),
                early_delivery_bonus=float(data.get("early_delivery_bonus", defaults.early_delivery_bonus)),
                late_critical_penalty=float(data.get("late_critical_penalty", defaults.late_critical_penalty)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidConfigError(f"Malformed KPI configuration: {e}") from e
        _require_finite(config)
        return config


def _require_finite(config: KPIConfig):
    """Reject NaN and infinite weights, penalties and bonuses."""
    values = config.to_dict()
    for table_name in ("bug_penalties", "conceptual_penalties"):
        for severity, points in values.pop(table_name).items():
            values[f"{table_name}.{severity}"] = points
    for name, value in values.items():
        if not math.isfinite(value):
            raise InvalidConfigError(f"{name} must be a finite number (got {value})")


def validate_kpi_config(config: KPIConfig):
    """Raise InvalidConfigError unless the config is acceptable for scoring.

    Weights must each be within [0, 1] and sum to 1.0 (within tolerance);
    every penalty and bonus must be non-negative. NaN fails every check.
    """
    _require_finite(config)

    for name in ("delivery_weight", "quality_weight"):
        value = getattr(config, name)
        if not 0.0 <= value <= 1.0:
            raise InvalidConfigError(f"{name.replace('_', ' ').capitalize()} must be between 0 and 1")

    total_weight = config.delivery_weight + config.quality_weight
    if not abs(total_weight - 1.0) <= WEIGHT_SUM_TOLERANCE:
        raise InvalidConfigError(f"Weights must sum to 1.0 (current: {total_weight:.2f})")

    for table_name in ("bug_penalties", "conceptual_penalties"):
        table = getattr(config, table_name)
        for severity in BugSeverity:
            if not table.for_severity(severity) >= 0.0:
                raise InvalidConfigError(f"{table_name} must be non-negative ({severity.value})")

    for name in ("reopen_penalty", "early_delivery_bonus", "late_critical_penalty"):
        if not getattr(config, name) >= 0.0:
            raise InvalidConfigError(f"{name} must be non-negative")


class ConfigStore:
    """Holds the active KPI configuration, persisted as JSON."""

    def __init__(self, path: Optional[str] = None):
        self.path = path if path is not None else KPI_CONFIG_PATH

    def get(self) -> KPIConfig:
        """Load the configuration, or return defaults if no file exists yet."""
        if not os.path.exists(self.path):
            return KPIConfig()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidConfigError(f"Failed to parse config file {self.path}: {e}") from e

        return KPIConfig.from_dict(data)

    def set(self, config: KPIConfig):
        """Validate and persist a new configuration."""
        validate_kpi_config(config)

        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(config.to_dict(), f, indent=2)

        logger.info(
            f"Saved KPI config to {self.path} "
            f"(delivery={config.delivery_weight}, quality={config.quality_weight})"
        )
