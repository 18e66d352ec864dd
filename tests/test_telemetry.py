from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from rentmatch.domain.models import RunOutcome
from rentmatch.services.telemetry_service import TelemetryStore


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def _store(capacity: int = 1000, **kwargs) -> tuple[TelemetryStore, FakeClock]:
    clock = FakeClock(datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc))
    return TelemetryStore(capacity, clock=clock, **kwargs), clock


def _record(store: TelemetryStore, **overrides):
    payload = {
        "algorithm": "top_k",
        "execution_time_ms": 100.0,
        "outcome": RunOutcome.SUCCESS,
        "objective_value": 0.8,
        "matches_found": 3,
    }
    payload.update(overrides)
    return store.record_run(**payload)


def test_capacity_evicts_oldest_first() -> None:
    store, _ = _store(capacity=3)
    for index in range(5):
        _record(store, execution_time_ms=float(index))
    assert len(store) == 3
    assert [record.execution_time_ms for record in store.export()] == [2.0, 3.0, 4.0]


def test_invalid_construction_raises() -> None:
    with pytest.raises(ValueError):
        TelemetryStore(0)
    with pytest.raises(ValueError):
        TelemetryStore(10, efficiency_window=0)


def test_algorithm_stats_average_successful_runs_only() -> None:
    store, _ = _store()
    _record(store, execution_time_ms=100.0, objective_value=0.9)
    _record(store, execution_time_ms=300.0, objective_value=0.7)
    _record(store, execution_time_ms=5000.0, outcome=RunOutcome.FAILURE, error="boom")
    _record(store, algorithm="reverse_match", execution_time_ms=50.0)

    stats = store.algorithm_stats("top_k")

    assert stats.total_runs == 3
    assert stats.success_rate == pytest.approx(200.0 / 3.0)
    assert stats.average_execution_time_ms == pytest.approx(200.0)
    assert stats.average_objective_value == pytest.approx(0.8)
    assert stats.last_run == datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def test_algorithm_stats_for_unknown_algorithm_is_empty() -> None:
    store, _ = _store()
    _record(store)
    stats = store.algorithm_stats("simplex")
    assert stats.total_runs == 0
    assert stats.last_run is None


def test_overall_stats_include_breakdown() -> None:
    store, _ = _store()
    _record(store)
    _record(store, algorithm="reverse_match", outcome=RunOutcome.TIMEOUT)

    overall = store.overall_stats()

    assert overall.total_optimizations == 2
    assert overall.success_rate == pytest.approx(50.0)
    assert {item.algorithm for item in overall.algorithm_breakdown} == {"top_k", "reverse_match"}


def test_overall_stats_on_empty_store() -> None:
    store, _ = _store()
    overall = store.overall_stats()
    assert overall.total_optimizations == 0
    assert overall.algorithm_breakdown == []
    assert store.efficiency_score() == 0


def test_trends_bucket_by_day_within_window() -> None:
    store, clock = _store()
    _record(store, execution_time_ms=10.0)
    clock.advance(days=1)
    _record(store, execution_time_ms=20.0)
    _record(store, execution_time_ms=40.0, outcome=RunOutcome.FAILURE)
    clock.advance(days=9)
    _record(store, execution_time_ms=80.0)

    trends = store.trends(days=7)

    assert [point.date for point in trends] == ["2026-03-12"]
    assert trends[0].optimizations == 1

    wide = store.trends(days=30)
    assert [point.date for point in wide] == ["2026-03-02", "2026-03-03", "2026-03-12"]
    assert wide[1].optimizations == 2
    assert wide[1].average_execution_time_ms == pytest.approx(20.0)
    assert wide[1].success_rate == pytest.approx(50.0)


def test_trends_reject_non_positive_window() -> None:
    store, _ = _store()
    with pytest.raises(ValueError):
        store.trends(days=0)


def test_efficiency_score_formula() -> None:
    store, _ = _store(latency_ceiling_ms=1000.0)
    _record(store, execution_time_ms=200.0, objective_value=0.5)
    _record(store, execution_time_ms=400.0, objective_value=0.7)
    _record(store, outcome=RunOutcome.FAILURE, execution_time_ms=900.0)
    _record(store, outcome=RunOutcome.TIMEOUT, execution_time_ms=1000.0)

    # 0.4 * 50 + 30 * (1 - 300 / 1000) + 30 * 0.6
    assert store.efficiency_score() == 59


def test_efficiency_score_uses_recent_window() -> None:
    store, _ = _store(efficiency_window=2)
    _record(store, outcome=RunOutcome.FAILURE)
    _record(store, outcome=RunOutcome.FAILURE)
    _record(store, execution_time_ms=0.0, objective_value=1.0)
    _record(store, execution_time_ms=0.0, objective_value=1.0)
    assert store.efficiency_score() == 100


def test_efficiency_score_all_failures() -> None:
    store, _ = _store()
    _record(store, outcome=RunOutcome.FAILURE)
    assert store.efficiency_score() == 0


def test_queries_do_not_mutate_records() -> None:
    store, _ = _store()
    _record(store)
    _record(store, outcome=RunOutcome.FAILURE)
    before = store.export()

    store.overall_stats()
    store.trends(days=7)
    store.efficiency_score()
    store.memory_usage_stats()

    assert store.export() == before


def test_memory_usage_stats_trend() -> None:
    store, _ = _store()
    for delta in (100, 100, 300, 300):
        _record(store, memory_delta_bytes=delta)
    _record(store, memory_delta_bytes=10_000, outcome=RunOutcome.FAILURE)

    stats = store.memory_usage_stats()

    assert stats.average_memory_bytes == pytest.approx(200.0)
    assert stats.peak_memory_bytes == 300
    assert stats.memory_trend_percent == pytest.approx(200.0)


def test_clear_older_than_removes_stale_records() -> None:
    store, clock = _store()
    _record(store)
    clock.advance(days=40)
    _record(store)

    removed = store.clear_older_than(days=30)

    assert removed == 1
    assert len(store) == 1


def test_record_to_dict_reports_success_flag() -> None:
    store, _ = _store()
    record = _record(store, outcome=RunOutcome.TIMEOUT)
    payload = record.to_dict()
    assert payload["success"] is False
    assert payload["outcome"] == "timeout"
    assert payload["timestamp"] == "2026-03-02T09:00:00+00:00"


def test_concurrent_appends_keep_capacity_bound() -> None:
    store = TelemetryStore(capacity=250)
    barrier = threading.Barrier(8)

    def worker() -> None:
        barrier.wait()
        for index in range(100):
            store.record_run(
                algorithm="top_k",
                execution_time_ms=float(index),
                outcome=RunOutcome.SUCCESS,
            )

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(store) == 250
    assert store.overall_stats().total_optimizations == 250
