"""Domain-level validation rules for matching runs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from rentmatch.domain.models import (
    CRITERIA,
    FEATURE_FLAGS,
    UTILITY_FLAGS,
    PreferenceSpec,
    WeightVector,
)


WEIGHT_SUM_TOLERANCE = 0.01
BATCH_STRATEGIES = ("cp_sat", "greedy")


class InvalidWeightsError(ValueError):
    """Raised when a weight vector cannot be used for scoring."""


class PreferenceValidationError(ValueError):
    """Raised when a preference bundle violates its structural invariants."""


@dataclass(frozen=True)
class EngineConfig:
    default_weights: Mapping[str, float]
    min_match_threshold: float
    max_execution_time_ms: int
    max_candidates_per_run: int
    batch_strategy: str
    objective_scale: int
    solver_workers: int
    solver_random_seed: int


def validate_weights(weights: WeightVector) -> WeightVector:
    for criterion, value in weights.as_dict().items():
        if not 0.0 <= value <= 1.0:
            raise InvalidWeightsError(
                f"Weight for {criterion} must be between 0 and 1, got {value}"
            )
    total = weights.total
    if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
        raise InvalidWeightsError(f"Optimization weights must sum to 1.0, got {total:.4f}")
    return weights


def resolve_weights(
    defaults: Mapping[str, float],
    overrides: Optional[Mapping[str, float]] = None,
) -> WeightVector:
    """Merge partial overrides onto defaults and validate the result."""
    unknown = sorted(set(overrides or {}) - set(CRITERIA))
    if unknown:
        raise InvalidWeightsError(f"Unknown weight keys: {', '.join(unknown)}")
    missing = sorted(set(CRITERIA) - set(defaults))
    if missing:
        raise InvalidWeightsError(f"Default weights missing keys: {', '.join(missing)}")

    merged = {criterion: float(defaults[criterion]) for criterion in CRITERIA}
    for criterion, value in (overrides or {}).items():
        if value is None:
            continue
        merged[criterion] = float(value)
    return validate_weights(WeightVector(**merged))


def _validate_flag_map(flags: Mapping[str, bool], vocabulary: tuple[str, ...], label: str) -> None:
    unknown = sorted(set(flags) - set(vocabulary))
    if unknown:
        raise PreferenceValidationError(f"Unknown {label} flags: {', '.join(unknown)}")


def validate_preference(preference: PreferenceSpec) -> None:
    if preference.budget_min < 0 or preference.budget_max < 0:
        raise PreferenceValidationError("budget bounds must be >= 0")
    if preference.budget_min > preference.budget_max:
        raise PreferenceValidationError("budget_min must not exceed budget_max")
    if preference.min_bedrooms < 1:
        raise PreferenceValidationError("min_bedrooms must be >= 1")
    if preference.min_bathrooms < 1:
        raise PreferenceValidationError("min_bathrooms must be >= 1")
    if preference.max_commute is not None and preference.max_commute <= 0:
        raise PreferenceValidationError("max_commute must be > 0 when provided")
    _validate_flag_map(preference.features, FEATURE_FLAGS, "feature")
    _validate_flag_map(preference.utilities, UTILITY_FLAGS, "utility")


def validate_engine_config(config: EngineConfig) -> None:
    if not 0.0 <= config.min_match_threshold <= 100.0:
        raise ValueError("min_match_threshold must be between 0 and 100")
    if config.max_execution_time_ms <= 0:
        raise ValueError("max_execution_time_ms must be > 0")
    if config.max_candidates_per_run <= 0:
        raise ValueError("max_candidates_per_run must be > 0")
    if config.batch_strategy not in BATCH_STRATEGIES:
        raise ValueError(f"batch_strategy must be one of {', '.join(BATCH_STRATEGIES)}")
    if config.objective_scale <= 0:
        raise ValueError("objective_scale must be > 0")
    if config.solver_workers <= 0:
        raise ValueError("solver_workers must be > 0")
    if config.solver_random_seed < 0:
        raise ValueError("solver_random_seed must be >= 0")
    try:
        resolve_weights(config.default_weights)
    except InvalidWeightsError as exc:
        raise ValueError(f"default weights are invalid: {exc}") from exc
