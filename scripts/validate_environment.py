#!/usr/bin/env python3
"""Validate local rentmatch environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from importlib.metadata import version
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from rentmatch.domain.models import PreferenceSpec
from rentmatch.repository.data_repository import DataRepository
from rentmatch.services.matching_service import MatchingOptimizationService
from rentmatch.services.telemetry_service import TelemetryStore
from rentmatch.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="rentmatch-env-")

    # CHECK 1 — Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2 — Required packages importable with versions
    package_specs = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("pydantic_settings", "pydantic-settings"),
        ("numpy", "numpy"),
        ("pandas", "pandas"),
        ("ortools", "ortools"),
        ("requests", "requests"),
        ("httpx", "httpx"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    for module_name, dist_name in package_specs:
        try:
            importlib.import_module(module_name)
            version(dist_name)
        except Exception as exc:  # pragma: no cover - runtime guard
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        validation_settings = get_settings().model_copy(
            update={"database_path": Path(temp_dir) / "rentmatch_validation.db"},
        )
        repository = DataRepository(validation_settings)

        # CHECK 3 — Database initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Database initialization", True)
        except Exception as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4 — Synthetic data seeding
        try:
            repository.seed_synthetic_data()
            listing_count = repository.count_listings()
            expected = validation_settings.synthetic_listing_count
            if listing_count != expected:
                raise RuntimeError(f"expected {expected} listings, got {listing_count}")
            ok, line = _print_result("Synthetic dataset", True, f": {listing_count} listings")
        except Exception as exc:
            ok, line = _print_result("Synthetic dataset", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5 — Matching run with telemetry
        telemetry = TelemetryStore(
            validation_settings.telemetry_capacity,
            latency_ceiling_ms=float(validation_settings.max_execution_time_ms),
        )
        service = MatchingOptimizationService(
            repository=repository,
            settings=validation_settings,
            telemetry=telemetry,
        )
        try:
            result = service.optimize(
                PreferenceSpec(
                    budget_min=50000,
                    budget_max=400000,
                    preferred_location="Lagos",
                )
            )
            if len(telemetry) != 1:
                raise RuntimeError(f"expected 1 telemetry record, got {len(telemetry)}")
            ok, line = _print_result(
                "Matching run",
                True,
                f": {result.matches_found} matches from {result.candidates_evaluated} listings",
            )
        except Exception as exc:
            ok, line = _print_result("Matching run", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 6 — Batch assignment through CP-SAT
        try:
            batch = service.optimize_batch()
            listing_ids = [match.listing_id for match in batch.matches]
            if len(listing_ids) != len(set(listing_ids)):
                raise RuntimeError("a listing was assigned twice")
            ok, line = _print_result(
                "Batch assignment",
                True,
                f": {len(batch.matches)} of {batch.requesters_evaluated} tenants matched",
            )
        except Exception as exc:
            ok, line = _print_result("Batch assignment", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" rentmatch Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
