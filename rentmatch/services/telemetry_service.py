"""Process-wide run history for the matching engine.

One ``TelemetryStore`` is created at application start and handed to every
service that runs optimizations. Appends are serialized by a lock; queries
work on a snapshot copied under the same lock and never touch stored
records.
"""

from __future__ import annotations

import tracemalloc
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Callable, Optional

import numpy as np
import pandas as pd

from rentmatch.domain.models import PerformanceRecord, RunOutcome
from rentmatch.utils.logger import get_logger


logger = get_logger(__name__)


SUCCESS_RATE_WEIGHT = 0.4
EXECUTION_TIME_POINTS = 30.0
OBJECTIVE_POINTS = 30.0


def start_memory_tracing() -> None:
    if not tracemalloc.is_tracing():
        tracemalloc.start()


def traced_memory_bytes() -> int:
    if not tracemalloc.is_tracing():
        return 0
    current, _ = tracemalloc.get_traced_memory()
    return int(current)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AlgorithmPerformance:
    algorithm: str
    total_runs: int
    success_rate: float
    average_execution_time_ms: float
    average_objective_value: float
    last_run: Optional[datetime]

    def to_dict(self) -> dict[str, object]:
        return {
            "algorithm": self.algorithm,
            "total_runs": self.total_runs,
            "success_rate": self.success_rate,
            "average_execution_time_ms": self.average_execution_time_ms,
            "average_objective_value": self.average_objective_value,
            "last_run": self.last_run.isoformat() if self.last_run else None,
        }


@dataclass(frozen=True)
class OverallPerformance:
    total_optimizations: int
    success_rate: float
    average_execution_time_ms: float
    average_objective_value: float
    algorithm_breakdown: list[AlgorithmPerformance]

    def to_dict(self) -> dict[str, object]:
        return {
            "total_optimizations": self.total_optimizations,
            "success_rate": self.success_rate,
            "average_execution_time_ms": self.average_execution_time_ms,
            "average_objective_value": self.average_objective_value,
            "algorithm_breakdown": [item.to_dict() for item in self.algorithm_breakdown],
        }


@dataclass(frozen=True)
class TrendPoint:
    date: str
    optimizations: int
    average_execution_time_ms: float
    success_rate: float

    def to_dict(self) -> dict[str, object]:
        return {
            "date": self.date,
            "optimizations": self.optimizations,
            "average_execution_time_ms": self.average_execution_time_ms,
            "success_rate": self.success_rate,
        }


@dataclass(frozen=True)
class MemoryUsageStats:
    average_memory_bytes: float
    peak_memory_bytes: int
    memory_trend_percent: float

    def to_dict(self) -> dict[str, float | int]:
        return {
            "average_memory_bytes": self.average_memory_bytes,
            "peak_memory_bytes": self.peak_memory_bytes,
            "memory_trend_percent": self.memory_trend_percent,
        }


def _records_frame(records: list[PerformanceRecord]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "algorithm": record.algorithm,
                "execution_time_ms": float(record.execution_time_ms),
                "objective_value": float(record.objective_value),
                "success": bool(record.success),
                "timestamp": record.timestamp,
            }
            for record in records
        ],
        columns=["algorithm", "execution_time_ms", "objective_value", "success", "timestamp"],
    )


def _day_key(timestamp: datetime) -> str:
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc)
    return timestamp.date().isoformat()


def _successful_mean(frame: pd.DataFrame, column: str) -> float:
    if frame.empty:
        return 0.0
    successful = frame.loc[frame["success"], column]
    if successful.empty:
        return 0.0
    return float(successful.mean())


def _success_rate(frame: pd.DataFrame) -> float:
    if frame.empty:
        return 0.0
    return float(frame["success"].mean() * 100.0)


def _algorithm_performance(algorithm: str, frame: pd.DataFrame) -> AlgorithmPerformance:
    if frame.empty:
        return AlgorithmPerformance(
            algorithm=algorithm,
            total_runs=0,
            success_rate=0.0,
            average_execution_time_ms=0.0,
            average_objective_value=0.0,
            last_run=None,
        )
    return AlgorithmPerformance(
        algorithm=algorithm,
        total_runs=int(len(frame)),
        success_rate=_success_rate(frame),
        average_execution_time_ms=_successful_mean(frame, "execution_time_ms"),
        average_objective_value=_successful_mean(frame, "objective_value"),
        last_run=pd.Timestamp(frame["timestamp"].iloc[-1]).to_pydatetime(),
    )


class TelemetryStore:
    """Bounded, thread-safe history of optimization runs."""

    def __init__(
        self,
        capacity: int = 1000,
        *,
        efficiency_window: int = 100,
        latency_ceiling_ms: float = 30000.0,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        if efficiency_window <= 0:
            raise ValueError("efficiency_window must be > 0")
        if latency_ceiling_ms <= 0:
            raise ValueError("latency_ceiling_ms must be > 0")
        self._records: deque[PerformanceRecord] = deque(maxlen=capacity)
        self._lock = Lock()
        self._capacity = capacity
        self._efficiency_window = efficiency_window
        self._latency_ceiling_ms = float(latency_ceiling_ms)
        self._clock = clock

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def _snapshot(self) -> list[PerformanceRecord]:
        with self._lock:
            return list(self._records)

    def record(self, record: PerformanceRecord) -> None:
        with self._lock:
            self._records.append(record)
        logger.info(
            "Performance record stored | algorithm=%s | outcome=%s | execution_time_ms=%.3f",
            record.algorithm,
            record.outcome.value,
            record.execution_time_ms,
        )

    def record_run(
        self,
        *,
        algorithm: str,
        execution_time_ms: float,
        outcome: RunOutcome,
        memory_delta_bytes: int = 0,
        constraints_count: int = 0,
        candidates_evaluated: int = 0,
        matches_found: int = 0,
        objective_value: float = 0.0,
        error: Optional[str] = None,
    ) -> PerformanceRecord:
        record = PerformanceRecord(
            execution_time_ms=float(execution_time_ms),
            memory_delta_bytes=int(memory_delta_bytes),
            algorithm=algorithm,
            constraints_count=int(constraints_count),
            candidates_evaluated=int(candidates_evaluated),
            matches_found=int(matches_found),
            objective_value=float(objective_value),
            outcome=outcome,
            timestamp=self._clock(),
            error=error,
        )
        self.record(record)
        return record

    def algorithm_stats(self, algorithm: str) -> AlgorithmPerformance:
        frame = _records_frame(self._snapshot())
        return _algorithm_performance(algorithm, frame.loc[frame["algorithm"] == algorithm])

    def overall_stats(self) -> OverallPerformance:
        frame = _records_frame(self._snapshot())
        breakdown = [
            _algorithm_performance(str(algorithm), group)
            for algorithm, group in frame.groupby("algorithm", sort=False)
        ]
        return OverallPerformance(
            total_optimizations=int(len(frame)),
            success_rate=_success_rate(frame),
            average_execution_time_ms=_successful_mean(frame, "execution_time_ms"),
            average_objective_value=_successful_mean(frame, "objective_value"),
            algorithm_breakdown=breakdown,
        )

    def trends(self, days: int = 7) -> list[TrendPoint]:
        """Per-day run counts, latency and success rate for the last ``days``."""
        if days <= 0:
            raise ValueError("days must be > 0")
        cutoff = self._clock() - timedelta(days=days)
        recent = [record for record in self._snapshot() if record.timestamp >= cutoff]
        frame = _records_frame(recent)
        if frame.empty:
            return []

        frame["day"] = [_day_key(record.timestamp) for record in recent]
        points: list[TrendPoint] = []
        for day, group in frame.groupby("day", sort=True):
            points.append(
                TrendPoint(
                    date=str(day),
                    optimizations=int(len(group)),
                    average_execution_time_ms=_successful_mean(group, "execution_time_ms"),
                    success_rate=_success_rate(group),
                )
            )
        return points

    def efficiency_score(self) -> int:
        """Blend of success rate, latency and objective over recent runs, 0-100."""
        recent = self._snapshot()[-self._efficiency_window:]
        if not recent:
            return 0
        frame = _records_frame(recent)
        success_rate = _success_rate(frame)

        successful = frame.loc[frame["success"]]
        if successful.empty:
            execution_component = 0.0
            objective_component = 0.0
        else:
            mean_ms = float(successful["execution_time_ms"].mean())
            mean_objective = float(np.clip(successful["objective_value"].mean(), 0.0, 1.0))
            execution_component = EXECUTION_TIME_POINTS * max(
                0.0, 1.0 - mean_ms / self._latency_ceiling_ms
            )
            objective_component = OBJECTIVE_POINTS * mean_objective

        score = SUCCESS_RATE_WEIGHT * success_rate + execution_component + objective_component
        return int(round(min(100.0, max(0.0, score))))

    def memory_usage_stats(self) -> MemoryUsageStats:
        samples = [
            record.memory_delta_bytes
            for record in self._snapshot()
            if record.success and record.memory_delta_bytes > 0
        ]
        if not samples:
            return MemoryUsageStats(
                average_memory_bytes=0.0,
                peak_memory_bytes=0,
                memory_trend_percent=0.0,
            )
        values = np.asarray(samples, dtype=float)
        midpoint = len(values) // 2
        first_half = values[:midpoint]
        second_half = values[midpoint:]
        first_mean = float(first_half.mean()) if first_half.size else 0.0
        second_mean = float(second_half.mean())
        trend = ((second_mean - first_mean) / first_mean) * 100.0 if first_mean > 0 else 0.0
        return MemoryUsageStats(
            average_memory_bytes=float(values.mean()),
            peak_memory_bytes=int(values.max()),
            memory_trend_percent=trend,
        )

    def clear_older_than(self, days: int = 30) -> int:
        cutoff = self._clock() - timedelta(days=days)
        with self._lock:
            kept = [record for record in self._records if record.timestamp >= cutoff]
            removed = len(self._records) - len(kept)
            self._records = deque(kept, maxlen=self._capacity)
        logger.info(
            "Cleared old performance records | removed=%s | remaining=%s",
            removed,
            len(kept),
        )
        return removed

    def export(self) -> list[PerformanceRecord]:
        return self._snapshot()
