"""Tests for weight, preference and engine configuration validation."""

from __future__ import annotations

import pytest

from rentmatch.domain.constraints import (
    EngineConfig,
    InvalidWeightsError,
    PreferenceValidationError,
    resolve_weights,
    validate_engine_config,
    validate_preference,
    validate_weights,
)
from rentmatch.domain.models import PreferenceSpec, WeightVector


DEFAULT_WEIGHTS = {
    "budget": 0.25,
    "location": 0.2,
    "amenities": 0.15,
    "size": 0.15,
    "features": 0.15,
    "utilities": 0.1,
}


def valid_config(**overrides) -> EngineConfig:
    """Return a valid baseline EngineConfig, optionally overriding fields."""
    defaults = {
        "default_weights": DEFAULT_WEIGHTS,
        "min_match_threshold": 30.0,
        "max_execution_time_ms": 30000,
        "max_candidates_per_run": 100,
        "batch_strategy": "cp_sat",
        "objective_scale": 1000,
        "solver_workers": 1,
        "solver_random_seed": 42,
    }
    defaults.update(overrides)
    return EngineConfig(**defaults)


def valid_preference(**overrides) -> PreferenceSpec:
    defaults = {
        "budget_min": 50000.0,
        "budget_max": 150000.0,
        "preferred_location": "Lagos",
        "required_amenities": ("parking",),
        "min_bedrooms": 2,
        "min_bathrooms": 1,
    }
    defaults.update(overrides)
    return PreferenceSpec(**defaults)


# --- Weights ---

def test_default_weights_resolve_to_valid_vector() -> None:
    weights = resolve_weights(DEFAULT_WEIGHTS)
    assert weights.total == pytest.approx(1.0)
    assert weights.budget == 0.25


def test_partial_override_merges_onto_defaults() -> None:
    weights = resolve_weights(DEFAULT_WEIGHTS, {"budget": 0.35, "utilities": 0.0})
    assert weights.budget == 0.35
    assert weights.utilities == 0.0
    assert weights.location == 0.2


def test_none_override_keeps_default() -> None:
    weights = resolve_weights(DEFAULT_WEIGHTS, {"budget": None})
    assert weights.budget == 0.25


def test_override_breaking_sum_raises() -> None:
    with pytest.raises(InvalidWeightsError):
        resolve_weights(DEFAULT_WEIGHTS, {"budget": 0.9})


def test_sum_within_tolerance_passes() -> None:
    validate_weights(WeightVector(0.255, 0.2, 0.15, 0.15, 0.15, 0.1))


def test_sum_outside_tolerance_raises() -> None:
    with pytest.raises(InvalidWeightsError):
        validate_weights(WeightVector(0.27, 0.2, 0.15, 0.15, 0.15, 0.1))


def test_negative_component_raises() -> None:
    with pytest.raises(InvalidWeightsError):
        validate_weights(WeightVector(-0.1, 0.4, 0.2, 0.2, 0.2, 0.1))


def test_component_above_one_raises() -> None:
    with pytest.raises(InvalidWeightsError):
        validate_weights(WeightVector(1.2, -0.2, 0.0, 0.0, 0.0, 0.0))


def test_unknown_weight_key_raises() -> None:
    with pytest.raises(InvalidWeightsError, match="Unknown weight keys"):
        resolve_weights(DEFAULT_WEIGHTS, {"commute": 0.1})


def test_invalid_weights_error_is_value_error() -> None:
    assert issubclass(InvalidWeightsError, ValueError)


# --- Preferences ---

def test_valid_preference_passes() -> None:
    validate_preference(valid_preference())


def test_equal_budget_bounds_pass() -> None:
    validate_preference(valid_preference(budget_min=0.0, budget_max=0.0))


def test_inverted_budget_raises() -> None:
    with pytest.raises(PreferenceValidationError):
        validate_preference(valid_preference(budget_min=200000.0))


def test_negative_budget_raises() -> None:
    with pytest.raises(PreferenceValidationError):
        validate_preference(valid_preference(budget_min=-1.0))


def test_zero_bedrooms_raises() -> None:
    with pytest.raises(PreferenceValidationError):
        validate_preference(valid_preference(min_bedrooms=0))


def test_zero_bathrooms_raises() -> None:
    with pytest.raises(PreferenceValidationError):
        validate_preference(valid_preference(min_bathrooms=0))


def test_non_positive_commute_raises() -> None:
    with pytest.raises(PreferenceValidationError):
        validate_preference(valid_preference(max_commute=0))


def test_unknown_feature_flag_raises() -> None:
    with pytest.raises(PreferenceValidationError, match="feature"):
        validate_preference(valid_preference(features={"swimming_pool": True}))


def test_unknown_utility_flag_raises() -> None:
    with pytest.raises(PreferenceValidationError, match="utility"):
        validate_preference(valid_preference(utilities={"solar": True}))


def test_constraint_count_includes_true_flags_only() -> None:
    preference = valid_preference(
        features={"furnished": True, "balcony": False},
        utilities={"water": True},
    )
    # budget, bedrooms, bathrooms, availability, location, amenities, two flags
    assert preference.constraint_count == 8


# --- Engine config ---

def test_valid_config_passes() -> None:
    validate_engine_config(valid_config())


def test_threshold_above_hundred_raises() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(valid_config(min_match_threshold=100.5))


def test_threshold_boundaries_pass() -> None:
    validate_engine_config(valid_config(min_match_threshold=0.0))
    validate_engine_config(valid_config(min_match_threshold=100.0))


def test_zero_execution_budget_raises() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(valid_config(max_execution_time_ms=0))


def test_zero_candidate_cap_raises() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(valid_config(max_candidates_per_run=0))


def test_unknown_batch_strategy_raises() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(valid_config(batch_strategy="simplex"))


def test_zero_workers_raises() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(valid_config(solver_workers=0))


def test_negative_seed_raises() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(valid_config(solver_random_seed=-1))


def test_invalid_default_weights_raise() -> None:
    with pytest.raises(ValueError, match="default weights"):
        validate_engine_config(valid_config(default_weights={**DEFAULT_WEIGHTS, "budget": 0.5}))
