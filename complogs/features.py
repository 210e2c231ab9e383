"""Feature gates that control the logging options."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

# Enables looking up a logger from a context instead of using the global
# fallback logger.
CONTEXTUAL_LOGGING = "ContextualLogging"
CONTEXTUAL_LOGGING_DEFAULT = True

# Guards the group of alpha-quality logging options. Never graduates.
LOGGING_ALPHA_OPTIONS = "LoggingAlphaOptions"

# Guards the group of beta-quality logging options. Never graduates.
LOGGING_BETA_OPTIONS = "LoggingBetaOptions"

# Stable logging options. Always enabled, not a real gate.
LOGGING_STABLE_OPTIONS = "LoggingStableOptions"


class PreRelease(str, Enum):
    """Maturity of a feature."""

    ALPHA = "ALPHA"
    BETA = "BETA"
    GA = ""


@dataclass(frozen=True)
class FeatureSpec:
    """Default state and maturity of one feature."""

    default: bool = False
    pre_release: PreRelease = PreRelease.GA


def feature_gates() -> dict[str, FeatureSpec]:
    """Return the features used by the logging configuration."""
    return {
        CONTEXTUAL_LOGGING: FeatureSpec(CONTEXTUAL_LOGGING_DEFAULT, PreRelease.BETA),
        LOGGING_ALPHA_OPTIONS: FeatureSpec(False, PreRelease.ALPHA),
        LOGGING_BETA_OPTIONS: FeatureSpec(True, PreRelease.BETA),
    }


def add_feature_gates(mutable_feature_gate: Any) -> None:
    """Add all features of this package to a gate that has an ``add`` method."""
    mutable_feature_gate.add(feature_gates())


def feature_enabled(feature_gate: Any, feature: str) -> bool:
    """Return whether ``feature`` is enabled; a missing gate enables nothing.

    The gate is either an object with an ``enabled`` method or a mapping
    from feature names to booleans or ``FeatureSpec`` defaults.
    """
    if feature_gate is None:
        return False
    if isinstance(feature_gate, Mapping):
        value = feature_gate.get(feature, False)
        if isinstance(value, FeatureSpec):
            return value.default
        return bool(value)
    return bool(feature_gate.enabled(feature))