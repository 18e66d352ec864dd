#!/usr/bin/env python3
"""Run named matching scenarios against a freshly seeded store and report telemetry."""

from __future__ import annotations

import shutil
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from rentmatch.domain.constraints import InvalidWeightsError
from rentmatch.domain.models import PreferenceSpec
from rentmatch.repository.data_repository import DataRepository
from rentmatch.services.matching_service import MatchingOptimizationService
from rentmatch.services.telemetry_service import TelemetryStore
from rentmatch.utils.config import get_settings

SEPARATOR_LINE = "=" * 72


@dataclass(frozen=True)
class Scenario:
    name: str
    preference: PreferenceSpec
    expected_min_matches: int
    expected_max_execution_ms: float = 5000.0


@dataclass
class ScenarioResult:
    scenario: str
    success: bool
    execution_time_ms: float
    matches_found: int
    objective_value: float
    constraints_satisfied: list[str] = field(default_factory=list)
    error: Optional[str] = None


SCENARIOS = [
    Scenario(
        name="Basic Budget Constraint",
        preference=PreferenceSpec(
            budget_min=50000,
            budget_max=150000,
            preferred_location="Lagos",
            required_amenities=("parking", "security"),
            min_bedrooms=2,
            min_bathrooms=1,
        ),
        expected_min_matches=0,
    ),
    Scenario(
        name="High-End Property Search",
        preference=PreferenceSpec(
            budget_min=200000,
            budget_max=500000,
            preferred_location="Victoria Island",
            required_amenities=("gym", "pool", "security", "parking"),
            min_bedrooms=3,
            min_bathrooms=2,
            features={"furnished": True, "pet_friendly": True, "parking": True, "balcony": True},
            utilities={"electricity": True, "water": True, "internet": True, "gas": True},
        ),
        expected_min_matches=0,
    ),
    Scenario(
        name="Student Budget Search",
        preference=PreferenceSpec(
            budget_min=30000,
            budget_max=80000,
            preferred_location="Yaba",
            required_amenities=("wifi",),
            min_bedrooms=1,
            min_bathrooms=1,
            features={"furnished": False, "pet_friendly": False, "parking": False, "balcony": False},
        ),
        expected_min_matches=0,
    ),
    Scenario(
        name="Family Home Search",
        preference=PreferenceSpec(
            budget_min=100000,
            budget_max=300000,
            preferred_location="Lekki",
            required_amenities=("parking", "security", "playground"),
            min_bedrooms=4,
            min_bathrooms=3,
            features={"furnished": False, "pet_friendly": True, "parking": True, "balcony": True},
        ),
        expected_min_matches=0,
    ),
    Scenario(
        name="Flexible Location Search",
        preference=PreferenceSpec(
            budget_min=50000,
            budget_max=600000,
            preferred_location="Lagos",
            min_bedrooms=1,
            min_bathrooms=1,
        ),
        expected_min_matches=1,
    ),
]

CUSTOM_WEIGHTS = [
    {"budget": 0.4, "location": 0.3, "amenities": 0.1, "size": 0.1, "features": 0.05, "utilities": 0.05},
    {"budget": 0.2, "location": 0.4, "amenities": 0.2, "size": 0.1, "features": 0.05, "utilities": 0.05},
    {"budget": 0.1, "location": 0.2, "amenities": 0.3, "size": 0.2, "features": 0.1, "utilities": 0.1},
]


def _run_scenario(
    service: MatchingOptimizationService,
    scenario: Scenario,
    weights: Optional[dict[str, float]] = None,
) -> ScenarioResult:
    label = scenario.name if weights is None else f"{scenario.name} (custom weights)"
    try:
        result = service.optimize(scenario.preference, weight_overrides=weights)
    except InvalidWeightsError as exc:
        return ScenarioResult(label, False, 0.0, 0, 0.0, error=str(exc))
    success = (
        result.matches_found >= scenario.expected_min_matches
        and result.execution_time_ms <= scenario.expected_max_execution_ms
        and not result.timed_out
    )
    return ScenarioResult(
        scenario=label,
        success=success,
        execution_time_ms=result.execution_time_ms,
        matches_found=result.matches_found,
        objective_value=result.objective_value,
        constraints_satisfied=result.constraints_satisfied,
    )


def main() -> int:
    temp_dir = tempfile.mkdtemp(prefix="rentmatch-bench-")
    try:
        settings = get_settings().model_copy(
            update={
                "database_path": Path(temp_dir) / "rentmatch_benchmark.db",
                "synthetic_listing_count": max(get_settings().synthetic_listing_count, 500),
            },
        )
        repository = DataRepository(settings)
        repository.initialize_database()
        repository.seed_synthetic_data()

        telemetry = TelemetryStore(
            settings.telemetry_capacity,
            efficiency_window=settings.telemetry_efficiency_window,
            latency_ceiling_ms=float(settings.max_execution_time_ms),
        )
        service = MatchingOptimizationService(
            repository=repository,
            settings=settings,
            telemetry=telemetry,
        )

        results = [_run_scenario(service, scenario) for scenario in SCENARIOS]
        for weights in CUSTOM_WEIGHTS:
            results.append(_run_scenario(service, SCENARIOS[0], weights))
        batch = service.optimize_batch()
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" rentmatch Optimization Benchmark")
    print(SEPARATOR_LINE)
    for item in results:
        status = "PASS" if item.success else "FAIL"
        print(
            f" [{status}] {item.scenario}: matches={item.matches_found} "
            f"time={item.execution_time_ms:.2f}ms objective={item.objective_value:.3f}"
        )
        if item.constraints_satisfied:
            print(f"        satisfied: {', '.join(item.constraints_satisfied)}")
        if item.error:
            print(f"        error: {item.error}")
    print(
        f" [INFO] Batch ({batch.algorithm}): {len(batch.matches)} of "
        f"{batch.requesters_evaluated} tenants matched, status={batch.status.value}"
    )

    overall = telemetry.overall_stats()
    print(SEPARATOR_LINE)
    print(f" Runs recorded     : {overall.total_optimizations}")
    print(f" Success rate      : {overall.success_rate:.1f}%")
    print(f" Mean latency      : {overall.average_execution_time_ms:.2f}ms")
    print(f" Mean objective    : {overall.average_objective_value:.3f}")
    print(f" Efficiency score  : {telemetry.efficiency_score()}")
    print(SEPARATOR_LINE)
    return 0 if all(item.success for item in results) else 1


if __name__ == "__main__":
    raise SystemExit(main())
