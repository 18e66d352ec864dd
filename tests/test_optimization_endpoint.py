from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

pytest.importorskip("ortools")

from rentmatch.controllers.optimization_controller import router
from rentmatch.domain.models import PreferenceSpec
from rentmatch.domain.ports import DataSourceUnavailableError
from rentmatch.repository.data_repository import DataRepository
from rentmatch.services.matching_service import MatchingOptimizationService
from rentmatch.services.pool_stats_service import PoolStatisticsService
from rentmatch.services.telemetry_service import TelemetryStore
from rentmatch.utils.config import get_settings


def _build_test_settings(tmp_path, filename: str):
    return get_settings().model_copy(
        update={
            "database_path": tmp_path / filename,
            "max_execution_time_ms": 30000,
            "min_match_threshold": 30.0,
            "solver_workers": 1,
        },
    )


def _build_client(tmp_path, filename: str) -> tuple[TestClient, DataRepository, MatchingOptimizationService]:
    settings = _build_test_settings(tmp_path, filename)
    repository = DataRepository(settings)
    repository.initialize_database()
    telemetry = TelemetryStore(settings.telemetry_capacity)
    service = MatchingOptimizationService(
        repository=repository,
        settings=settings,
        telemetry=telemetry,
    )

    app = FastAPI()
    app.include_router(router)
    app.state.repository = repository
    app.state.telemetry = telemetry
    app.state.matching_service = service
    app.state.pool_stats_service = PoolStatisticsService(repository=repository, settings=settings)
    return TestClient(app), repository, service


def _match_payload(**overrides) -> dict:
    payload = {
        "constraints": {
            "budget": {"min": 50000, "max": 150000},
            "location": "Lagos",
            "amenities": ["parking"],
            "bedrooms": 2,
            "bathrooms": 1,
        },
    }
    payload.update(overrides)
    return payload


def _create_listing(repository: DataRepository, **overrides) -> str:
    payload = {
        "rent": 90000,
        "bedrooms": 2,
        "bathrooms": 1,
        "city": "Lagos",
        "address": "14 Allen Avenue",
        "amenities": ["parking", "security"],
    }
    payload.update(overrides)
    return repository.create_listing(**payload)


def test_match_endpoint_returns_ranked_matches(tmp_path):
    client, repository, _ = _build_client(tmp_path, "endpoint_match.db")
    listing_id = _create_listing(repository)

    response = client.post("/optimization/match", json=_match_payload())

    assert response.status_code == 200
    body = response.json()
    assert [match["listing_id"] for match in body["matches"]] == [listing_id]
    match = body["matches"][0]
    assert match["details"]["budget_score"] == 100
    assert match["details"]["amenity_score"] == 100
    assert match["match_score"] >= 70
    assert body["optimization_details"]["algorithm"] == "top_k"
    assert body["optimization_details"]["status"] == "completed"
    assert body["optimization_details"]["matches_found"] == 1
    assert body["weights"]["budget"] == 0.25


def test_match_endpoint_rejects_unknown_fields(tmp_path):
    client, _, _ = _build_client(tmp_path, "endpoint_extra.db")

    payload = _match_payload()
    payload["constraints"]["features"] = {"jacuzzi": True}

    assert client.post("/optimization/match", json=payload).status_code == 422
    assert client.post("/optimization/match", json=_match_payload(sort="asc")).status_code == 422


def test_match_endpoint_rejects_inverted_budget(tmp_path):
    client, _, _ = _build_client(tmp_path, "endpoint_budget.db")
    payload = _match_payload()
    payload["constraints"]["budget"] = {"min": 150000, "max": 50000}

    assert client.post("/optimization/match", json=payload).status_code == 422


def test_match_endpoint_maps_invalid_weight_sum_to_400(tmp_path):
    client, _, service = _build_client(tmp_path, "endpoint_weights.db")

    response = client.post("/optimization/match", json=_match_payload(weights={"budget": 0.9}))

    assert response.status_code == 400
    assert "sum to 1.0" in response.json()["detail"]
    assert service.telemetry.overall_stats().success_rate == 0.0


def test_match_endpoint_maps_data_source_failure_to_503(monkeypatch, tmp_path):
    client, repository, _ = _build_client(tmp_path, "endpoint_source.db")

    def _broken_query(*args, **kwargs):
        raise DataSourceUnavailableError("listing store offline")

    monkeypatch.setattr(repository, "find_candidates", _broken_query)

    response = client.post("/optimization/match", json=_match_payload())

    assert response.status_code == 503
    assert response.json()["detail"] == "listing store offline"


def test_tenant_matches_endpoint(tmp_path):
    client, repository, _ = _build_client(tmp_path, "endpoint_tenant.db")
    listing_id = _create_listing(repository)
    response = client.post("/optimization/match", json=_match_payload())
    assert response.status_code == 200

    tenant_id = repository.create_tenant(
        PreferenceSpec(budget_min=50000, budget_max=150000, preferred_location="Lagos"),
    )

    response = client.get(f"/optimization/matches/{tenant_id}")

    assert response.status_code == 200
    assert [match["tenant_id"] for match in response.json()["matches"]] == [tenant_id]
    assert repository.list_search_history(tenant_id) == [listing_id]
    assert client.get("/optimization/matches/999").status_code == 404


def test_listing_matches_endpoint(tmp_path):
    client, repository, _ = _build_client(tmp_path, "endpoint_listing.db")
    repository.seed_synthetic_data()
    listing_id = "1"

    response = client.get(f"/optimization/listing-matches/{listing_id}", params={"max_results": 3})

    assert response.status_code == 200
    body = response.json()
    assert body["listing_id"] == listing_id
    assert body["algorithm"] == "reverse_match"
    assert len(body["matches"]) <= 3
    for item in body["matches"]:
        assert item["preferences_summary"].startswith("Budget: ₦")
    assert client.get("/optimization/listing-matches/9999").status_code == 404


def test_batch_endpoint(tmp_path):
    client, repository, _ = _build_client(tmp_path, "endpoint_batch.db")
    repository.seed_synthetic_data()

    response = client.post("/optimization/batch", json={"max_results": 5})

    assert response.status_code == 200
    body = response.json()
    assert body["algorithm"] == "cp_sat_matching"
    assert len(body["matches"]) <= 5
    listing_ids = [match["listing_id"] for match in body["matches"]]
    assert len(listing_ids) == len(set(listing_ids))
    assert body["proven_optimal"] is True


def test_performance_endpoints_report_recorded_runs(tmp_path):
    client, repository, _ = _build_client(tmp_path, "endpoint_performance.db")
    _create_listing(repository)
    client.post("/optimization/match", json=_match_payload())
    client.post("/optimization/match", json=_match_payload(weights={"budget": 0.9}))

    overview = client.get("/optimization/performance")
    assert overview.status_code == 200
    body = overview.json()
    assert body["total_optimizations"] == 2
    assert body["success_rate"] == pytest.approx(50.0)
    assert 0 <= body["efficiency_score"] <= 100
    assert [item["algorithm"] for item in body["algorithm_breakdown"]] == ["top_k"]

    per_algorithm = client.get("/optimization/performance/top_k")
    assert per_algorithm.status_code == 200
    assert per_algorithm.json()["total_runs"] == 2

    trends = client.get("/optimization/performance/trends", params={"days": 7})
    assert trends.status_code == 200
    assert sum(point["optimizations"] for point in trends.json()["trends"]) == 2
    assert client.get("/optimization/performance/trends", params={"days": 0}).status_code == 422

    memory = client.get("/optimization/performance/memory")
    assert memory.status_code == 200
    assert memory.json()["peak_memory_bytes"] >= 0


def test_missing_service_returns_503():
    app = FastAPI()
    app.include_router(router)
    client = TestClient(app)

    assert client.post("/optimization/match", json=_match_payload()).status_code == 503
    assert client.get("/optimization/performance").status_code == 503


def test_out_of_range_weight_is_rejected_by_engine_with_400(tmp_path):
    client, _, service = _build_client(tmp_path, "endpoint_weight_range.db")

    response = client.post(
        "/optimization/match",
        json=_match_payload(weights={"budget": 1.5, "location": -0.3, "amenities": 0.0}),
    )

    assert response.status_code == 400
    assert "between 0 and 1" in response.json()["detail"]
    records = service.telemetry.export()
    assert len(records) == 1
    assert records[0].success is False


def test_stats_endpoint_summarizes_pools(tmp_path):
    client, repository, _ = _build_client(tmp_path, "endpoint_stats.db")
    _create_listing(repository, rent=100000, size=80)
    _create_listing(repository, rent=200000, city="Abuja", amenities=["Parking", "gym"])
    _create_listing(repository, rent=999000, status="rented")
    repository.create_tenant(PreferenceSpec(budget_min=50000, budget_max=400000))
    repository.create_tenant(PreferenceSpec(budget_min=500000, budget_max=2500000))

    response = client.get("/optimization/stats")

    assert response.status_code == 200
    body = response.json()
    assert body["total_listings"] == 2
    assert body["total_tenants"] == 2
    assert body["listing_metrics"]["average_rent"] == pytest.approx(150000.0)
    assert body["listing_metrics"]["average_size"] == pytest.approx(80.0)
    assert body["most_requested_amenities"][0] == {"value": "parking", "count": 2}
    assert [item["value"] for item in body["popular_locations"]] == ["Abuja", "Lagos"]
    assert body["budget_distribution"] == [
        {"value": "0-500k", "count": 1},
        {"value": "2M+", "count": 1},
    ]


def test_stats_endpoint_without_service_returns_503():
    app = FastAPI()
    app.include_router(router)

    assert TestClient(app).get("/optimization/stats").status_code == 503
