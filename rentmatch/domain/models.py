"""Domain models for tenant preference matching and run telemetry."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


FEATURE_FLAGS: tuple[str, ...] = ("furnished", "pet_friendly", "parking", "balcony")
UTILITY_FLAGS: tuple[str, ...] = ("electricity", "water", "internet", "gas")
CRITERIA: tuple[str, ...] = ("budget", "location", "amenities", "size", "features", "utilities")


class AvailabilityStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"
    PENDING = "pending"


class RunStatus(str, Enum):
    COMPLETED = "completed"
    TIMEOUT = "timeout"


class RunOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class Location:
    address: str
    city: str
    state: str = ""


@dataclass(frozen=True)
class PreferenceSpec:
    """Hard constraints and soft preferences of one requester."""

    budget_min: float
    budget_max: float
    preferred_location: str = ""
    required_amenities: tuple[str, ...] = ()
    min_bedrooms: int = 1
    min_bathrooms: int = 1
    max_commute: Optional[int] = None
    features: dict[str, bool] = field(default_factory=dict)
    utilities: dict[str, bool] = field(default_factory=dict)
    requester_id: Optional[str] = None

    @property
    def constraint_count(self) -> int:
        count = 4  # budget range, bedrooms, bathrooms, availability
        if self.preferred_location.strip():
            count += 1
        if self.required_amenities:
            count += 1
        count += sum(1 for required in self.features.values() if required)
        count += sum(1 for required in self.utilities.values() if required)
        return count


@dataclass(frozen=True)
class WeightVector:
    budget: float
    location: float
    amenities: float
    size: float
    features: float
    utilities: float

    @property
    def total(self) -> float:
        return sum(self.as_dict().values())

    def as_dict(self) -> dict[str, float]:
        return {criterion: float(getattr(self, criterion)) for criterion in CRITERIA}


@dataclass(frozen=True)
class Candidate:
    """Read-only snapshot of a listing supplied by the listing store."""

    listing_id: str
    rent: float
    location: Location
    bedrooms: int
    bathrooms: int
    size: Optional[float] = None
    amenities: tuple[str, ...] = ()
    features: dict[str, bool] = field(default_factory=dict)
    utilities: dict[str, bool] = field(default_factory=dict)
    availability_status: str = AvailabilityStatus.AVAILABLE.value
    title: str = ""


@dataclass(frozen=True)
class SubScores:
    budget: float
    location: float
    amenity: float
    size: float
    feature: float
    utility: float

    def by_criterion(self) -> dict[str, float]:
        """Key sub-scores by the weight vector's criterion names."""
        return {
            "budget": self.budget,
            "location": self.location,
            "amenities": self.amenity,
            "size": self.size,
            "features": self.feature,
            "utilities": self.utility,
        }

    def rounded(self) -> "SubScores":
        return SubScores(
            budget=round(self.budget),
            location=round(self.location),
            amenity=round(self.amenity),
            size=round(self.size),
            feature=round(self.feature),
            utility=round(self.utility),
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "budget_score": self.budget,
            "location_score": self.location,
            "amenity_score": self.amenity,
            "size_score": self.size,
            "feature_score": self.feature,
            "utility_score": self.utility,
        }


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: Candidate
    composite: float
    sub_scores: SubScores
    position: int


@dataclass(frozen=True)
class Match:
    listing_id: str
    requester_id: Optional[str]
    match_score: int
    details: SubScores
    explanation: tuple[str, ...]
    computed_at: datetime


@dataclass(frozen=True)
class OptimizationResult:
    matches: list[Match]
    algorithm: str
    execution_time_ms: float
    constraints_satisfied: list[str]
    objective_value: float
    candidates_evaluated: int
    weights: WeightVector
    preference: PreferenceSpec
    status: RunStatus = RunStatus.COMPLETED

    @property
    def matches_found(self) -> int:
        return len(self.matches)

    @property
    def timed_out(self) -> bool:
        return self.status is RunStatus.TIMEOUT


@dataclass(frozen=True)
class RequesterMatch:
    requester_id: str
    match_score: int
    details: SubScores
    preferences_summary: str


@dataclass(frozen=True)
class ReverseOptimizationResult:
    listing_id: str
    matches: list[RequesterMatch]
    algorithm: str
    execution_time_ms: float
    requesters_evaluated: int
    objective_value: float
    status: RunStatus = RunStatus.COMPLETED

    @property
    def timed_out(self) -> bool:
        return self.status is RunStatus.TIMEOUT


@dataclass(frozen=True)
class BatchOptimizationResult:
    matches: list[Match]
    algorithm: str
    execution_time_ms: float
    objective_value: float
    requesters_evaluated: int
    candidates_evaluated: int
    unmatched_requester_ids: list[str]
    status: RunStatus = RunStatus.COMPLETED
    proven_optimal: bool = False

    @property
    def timed_out(self) -> bool:
        return self.status is RunStatus.TIMEOUT


@dataclass(frozen=True)
class PerformanceRecord:
    execution_time_ms: float
    memory_delta_bytes: int
    algorithm: str
    constraints_count: int
    candidates_evaluated: int
    matches_found: int
    objective_value: float
    outcome: RunOutcome
    timestamp: datetime
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome is RunOutcome.SUCCESS

    def to_dict(self) -> dict[str, object]:
        return {
            "execution_time_ms": self.execution_time_ms,
            "memory_delta_bytes": self.memory_delta_bytes,
            "algorithm": self.algorithm,
            "constraints_count": self.constraints_count,
            "candidates_evaluated": self.candidates_evaluated,
            "matches_found": self.matches_found,
            "objective_value": self.objective_value,
            "success": self.success,
            "outcome": self.outcome.value,
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }
