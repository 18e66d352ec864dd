"""HTTP controller layer for listing matching and run telemetry."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from rentmatch.controllers.dependencies import (
    get_matching_service,
    get_pool_stats_service,
    get_telemetry_store,
)
from rentmatch.domain.constraints import InvalidWeightsError, PreferenceValidationError
from rentmatch.domain.models import Match, OptimizationResult, PreferenceSpec, SubScores
from rentmatch.domain.ports import DataSourceUnavailableError
from rentmatch.services.matching_service import (
    MatchingOptimizationService,
    UnknownListingError,
    UnknownTenantError,
)
from rentmatch.services.pool_stats_service import PoolStatisticsService
from rentmatch.services.telemetry_service import TelemetryStore
from rentmatch.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/optimization", tags=["optimization"])


class BudgetRange(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min: float = Field(ge=0.0)
    max: float = Field(ge=0.0)

    @model_validator(mode="after")
    def validate_bounds(self) -> "BudgetRange":
        if self.max <= self.min:
            raise ValueError("budget max must be greater than budget min")
        return self


class FeaturePreferences(BaseModel):
    model_config = ConfigDict(extra="forbid")

    furnished: Optional[bool] = None
    pet_friendly: Optional[bool] = None
    parking: Optional[bool] = None
    balcony: Optional[bool] = None

    def to_flags(self) -> dict[str, bool]:
        return {key: value for key, value in self.model_dump().items() if value is not None}


class UtilityPreferences(BaseModel):
    model_config = ConfigDict(extra="forbid")

    electricity: Optional[bool] = None
    water: Optional[bool] = None
    internet: Optional[bool] = None
    gas: Optional[bool] = None

    def to_flags(self) -> dict[str, bool]:
        return {key: value for key, value in self.model_dump().items() if value is not None}


class WeightOverrides(BaseModel):
    """Partial weight vector; omitted criteria keep the configured defaults.

    Values are range-checked by the engine so rejections surface as 400s.
    """

    model_config = ConfigDict(extra="forbid")

    budget: Optional[float] = None
    location: Optional[float] = None
    amenities: Optional[float] = None
    size: Optional[float] = None
    features: Optional[float] = None
    utilities: Optional[float] = None


class MatchConstraints(BaseModel):
    model_config = ConfigDict(extra="forbid")

    budget: BudgetRange
    location: str = Field(default="", max_length=200)
    amenities: list[str] = Field(default_factory=list, max_length=50)
    bedrooms: int = Field(default=1, ge=1, le=20)
    bathrooms: int = Field(default=1, ge=1, le=20)
    max_commute: Optional[int] = Field(default=None, gt=0)
    features: FeaturePreferences = Field(default_factory=FeaturePreferences)
    utilities: UtilityPreferences = Field(default_factory=UtilityPreferences)

    @field_validator("amenities")
    @classmethod
    def strip_amenities(cls, value: list[str]) -> list[str]:
        return [item.strip() for item in value if item.strip()]

    def to_preference(self, tenant_id: Optional[str] = None) -> PreferenceSpec:
        return PreferenceSpec(
            budget_min=self.budget.min,
            budget_max=self.budget.max,
            preferred_location=self.location.strip(),
            required_amenities=tuple(self.amenities),
            min_bedrooms=self.bedrooms,
            min_bathrooms=self.bathrooms,
            max_commute=self.max_commute,
            features=self.features.to_flags(),
            utilities=self.utilities.to_flags(),
            requester_id=tenant_id,
        )


class MatchRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    constraints: MatchConstraints
    weights: Optional[WeightOverrides] = None
    max_results: Optional[int] = Field(default=None, ge=1, le=50)
    tenant_id: Optional[str] = Field(default=None, min_length=1)


class BatchRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_results: Optional[int] = Field(default=None, ge=1, le=500)
    persist_outputs: bool = False


class SubScoresResponse(BaseModel):
    budget_score: float = Field(ge=0.0, le=100.0)
    location_score: float = Field(ge=0.0, le=100.0)
    amenity_score: float = Field(ge=0.0, le=100.0)
    size_score: float = Field(ge=0.0, le=100.0)
    feature_score: float = Field(ge=0.0, le=100.0)
    utility_score: float = Field(ge=0.0, le=100.0)

    @classmethod
    def from_domain(cls, details: SubScores) -> "SubScoresResponse":
        return cls(**details.to_dict())


class MatchResponse(BaseModel):
    listing_id: str
    tenant_id: Optional[str] = None
    match_score: int = Field(ge=0, le=100)
    details: SubScoresResponse
    explanation: list[str]
    computed_at: datetime

    @classmethod
    def from_domain(cls, match: Match) -> "MatchResponse":
        return cls(
            listing_id=match.listing_id,
            tenant_id=match.requester_id,
            match_score=match.match_score,
            details=SubScoresResponse.from_domain(match.details),
            explanation=list(match.explanation),
            computed_at=match.computed_at,
        )


class OptimizationDetailsResponse(BaseModel):
    algorithm: str
    status: str
    execution_time_ms: float = Field(ge=0.0)
    constraints_satisfied: list[str]
    objective_value: float = Field(ge=0.0, le=1.0)
    candidates_evaluated: int = Field(ge=0)
    matches_found: int = Field(ge=0)


class OptimizationResponse(BaseModel):
    matches: list[MatchResponse]
    optimization_details: OptimizationDetailsResponse
    weights: dict[str, float]


class TenantMatchResponse(BaseModel):
    tenant_id: str
    match_score: int = Field(ge=0, le=100)
    details: SubScoresResponse
    preferences_summary: str


class ReverseOptimizationResponse(BaseModel):
    listing_id: str
    matches: list[TenantMatchResponse]
    algorithm: str
    status: str
    execution_time_ms: float = Field(ge=0.0)
    tenants_evaluated: int = Field(ge=0)
    objective_value: float = Field(ge=0.0, le=1.0)


class BatchOptimizationResponse(BaseModel):
    matches: list[MatchResponse]
    algorithm: str
    status: str
    execution_time_ms: float = Field(ge=0.0)
    objective_value: float = Field(ge=0.0, le=1.0)
    tenants_evaluated: int = Field(ge=0)
    candidates_evaluated: int = Field(ge=0)
    unmatched_tenant_ids: list[str]
    proven_optimal: bool


class AlgorithmPerformanceResponse(BaseModel):
    algorithm: str
    total_runs: int = Field(ge=0)
    success_rate: float = Field(ge=0.0, le=100.0)
    average_execution_time_ms: float = Field(ge=0.0)
    average_objective_value: float = Field(ge=0.0)
    last_run: Optional[datetime] = None


class OverallPerformanceResponse(BaseModel):
    total_optimizations: int = Field(ge=0)
    success_rate: float = Field(ge=0.0, le=100.0)
    average_execution_time_ms: float = Field(ge=0.0)
    average_objective_value: float = Field(ge=0.0)
    efficiency_score: int = Field(ge=0, le=100)
    algorithm_breakdown: list[AlgorithmPerformanceResponse]


class TrendPointResponse(BaseModel):
    date: str
    optimizations: int = Field(ge=0)
    average_execution_time_ms: float = Field(ge=0.0)
    success_rate: float = Field(ge=0.0, le=100.0)


class TrendsResponse(BaseModel):
    days: int = Field(ge=1)
    trends: list[TrendPointResponse]


class MemoryUsageResponse(BaseModel):
    average_memory_bytes: float = Field(ge=0.0)
    peak_memory_bytes: int = Field(ge=0)
    memory_trend_percent: float


class CountItemResponse(BaseModel):
    value: str
    count: int = Field(ge=0)


class ListingMetricsResponse(BaseModel):
    average_rent: Optional[float] = None
    average_bedrooms: Optional[float] = None
    average_bathrooms: Optional[float] = None
    average_size: Optional[float] = None


class PoolStatisticsResponse(BaseModel):
    total_listings: int = Field(ge=0)
    total_tenants: int = Field(ge=0)
    listing_metrics: ListingMetricsResponse
    most_requested_amenities: list[CountItemResponse]
    popular_locations: list[CountItemResponse]
    budget_distribution: list[CountItemResponse]


def _bad_request(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _not_found(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


def _unavailable(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


def _optimization_response(result: OptimizationResult) -> OptimizationResponse:
    return OptimizationResponse(
        matches=[MatchResponse.from_domain(match) for match in result.matches],
        optimization_details=OptimizationDetailsResponse(
            algorithm=result.algorithm,
            status=result.status.value,
            execution_time_ms=result.execution_time_ms,
            constraints_satisfied=result.constraints_satisfied,
            objective_value=result.objective_value,
            candidates_evaluated=result.candidates_evaluated,
            matches_found=result.matches_found,
        ),
        weights=result.weights.as_dict(),
    )


@router.post(
    "/match",
    response_model=OptimizationResponse,
    status_code=status.HTTP_200_OK,
)
def match_listings(
    payload: MatchRequest,
    service: MatchingOptimizationService = Depends(get_matching_service),
) -> OptimizationResponse:
    """Rank available listings against an ad-hoc preference bundle."""
    try:
        result = service.optimize(
            payload.constraints.to_preference(payload.tenant_id),
            weight_overrides=payload.weights.model_dump() if payload.weights else None,
            max_results=payload.max_results,
            persist_outputs=payload.tenant_id is not None,
        )
        return _optimization_response(result)
    except (InvalidWeightsError, PreferenceValidationError) as exc:
        raise _bad_request(exc) from exc
    except DataSourceUnavailableError as exc:
        raise _unavailable(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected matching failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute matches",
        ) from exc


@router.get(
    "/matches/{tenant_id}",
    response_model=OptimizationResponse,
    status_code=status.HTTP_200_OK,
)
def match_for_tenant(
    tenant_id: str,
    max_results: Optional[int] = Query(default=None, ge=1, le=50),
    service: MatchingOptimizationService = Depends(get_matching_service),
) -> OptimizationResponse:
    """Rank listings against a stored tenant's preferences and log the results."""
    try:
        result = service.optimize_for_tenant(tenant_id, max_results=max_results)
        return _optimization_response(result)
    except UnknownTenantError as exc:
        raise _not_found(exc) from exc
    except (InvalidWeightsError, PreferenceValidationError) as exc:
        raise _bad_request(exc) from exc
    except DataSourceUnavailableError as exc:
        raise _unavailable(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected tenant matching failure | tenant_id=%s", tenant_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute matches",
        ) from exc


@router.get(
    "/listing-matches/{listing_id}",
    response_model=ReverseOptimizationResponse,
    status_code=status.HTTP_200_OK,
)
def match_for_listing(
    listing_id: str,
    max_results: Optional[int] = Query(default=None, ge=1, le=50),
    service: MatchingOptimizationService = Depends(get_matching_service),
) -> ReverseOptimizationResponse:
    """Rank stored tenants by how well one listing suits them."""
    try:
        result = service.optimize_reverse_for_listing(listing_id, max_results=max_results)
        return ReverseOptimizationResponse(
            listing_id=result.listing_id,
            matches=[
                TenantMatchResponse(
                    tenant_id=item.requester_id,
                    match_score=item.match_score,
                    details=SubScoresResponse.from_domain(item.details),
                    preferences_summary=item.preferences_summary,
                )
                for item in result.matches
            ],
            algorithm=result.algorithm,
            status=result.status.value,
            execution_time_ms=result.execution_time_ms,
            tenants_evaluated=result.requesters_evaluated,
            objective_value=result.objective_value,
        )
    except UnknownListingError as exc:
        raise _not_found(exc) from exc
    except DataSourceUnavailableError as exc:
        raise _unavailable(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected reverse matching failure | listing_id=%s", listing_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to rank tenants",
        ) from exc


@router.post(
    "/batch",
    response_model=BatchOptimizationResponse,
    status_code=status.HTTP_200_OK,
)
def match_batch(
    payload: BatchRequest,
    service: MatchingOptimizationService = Depends(get_matching_service),
) -> BatchOptimizationResponse:
    """Assign stored tenants to distinct listings maximizing total score."""
    try:
        result = service.optimize_batch(
            max_results=payload.max_results,
            persist_outputs=payload.persist_outputs,
        )
        return BatchOptimizationResponse(
            matches=[MatchResponse.from_domain(match) for match in result.matches],
            algorithm=result.algorithm,
            status=result.status.value,
            execution_time_ms=result.execution_time_ms,
            objective_value=result.objective_value,
            tenants_evaluated=result.requesters_evaluated,
            candidates_evaluated=result.candidates_evaluated,
            unmatched_tenant_ids=result.unmatched_requester_ids,
            proven_optimal=result.proven_optimal,
        )
    except PreferenceValidationError as exc:
        raise _bad_request(exc) from exc
    except DataSourceUnavailableError as exc:
        raise _unavailable(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected batch matching failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute batch matches",
        ) from exc


@router.get(
    "/performance",
    response_model=OverallPerformanceResponse,
    status_code=status.HTTP_200_OK,
)
def performance_overview(
    store: TelemetryStore = Depends(get_telemetry_store),
) -> OverallPerformanceResponse:
    stats = store.overall_stats()
    return OverallPerformanceResponse(
        total_optimizations=stats.total_optimizations,
        success_rate=stats.success_rate,
        average_execution_time_ms=stats.average_execution_time_ms,
        average_objective_value=stats.average_objective_value,
        efficiency_score=store.efficiency_score(),
        algorithm_breakdown=[
            AlgorithmPerformanceResponse(**item.to_dict()) for item in stats.algorithm_breakdown
        ],
    )


@router.get(
    "/performance/trends",
    response_model=TrendsResponse,
    status_code=status.HTTP_200_OK,
)
def performance_trends(
    days: int = Query(default=7, ge=1, le=365),
    store: TelemetryStore = Depends(get_telemetry_store),
) -> TrendsResponse:
    return TrendsResponse(
        days=days,
        trends=[TrendPointResponse(**point.to_dict()) for point in store.trends(days)],
    )


@router.get(
    "/performance/memory",
    response_model=MemoryUsageResponse,
    status_code=status.HTTP_200_OK,
)
def performance_memory(
    store: TelemetryStore = Depends(get_telemetry_store),
) -> MemoryUsageResponse:
    return MemoryUsageResponse(**store.memory_usage_stats().to_dict())


@router.get(
    "/performance/{algorithm}",
    response_model=AlgorithmPerformanceResponse,
    status_code=status.HTTP_200_OK,
)
def performance_for_algorithm(
    algorithm: str,
    store: TelemetryStore = Depends(get_telemetry_store),
) -> AlgorithmPerformanceResponse:
    return AlgorithmPerformanceResponse(**store.algorithm_stats(algorithm).to_dict())


def _count_items(pairs: list[tuple[str, int]]) -> list[CountItemResponse]:
    return [CountItemResponse(value=value, count=count) for value, count in pairs]


@router.get(
    "/stats",
    response_model=PoolStatisticsResponse,
    status_code=status.HTTP_200_OK,
)
def pool_statistics(
    service: PoolStatisticsService = Depends(get_pool_stats_service),
) -> PoolStatisticsResponse:
    """Summarize available listings and stored tenant budgets."""
    try:
        stats = service.pool_statistics()
    except DataSourceUnavailableError as exc:
        raise _unavailable(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected pool statistics failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute pool statistics",
        ) from exc
    return PoolStatisticsResponse(
        total_listings=stats.total_listings,
        total_tenants=stats.total_tenants,
        listing_metrics=ListingMetricsResponse(
            average_rent=stats.listing_metrics.average_rent,
            average_bedrooms=stats.listing_metrics.average_bedrooms,
            average_bathrooms=stats.listing_metrics.average_bathrooms,
            average_size=stats.listing_metrics.average_size,
        ),
        most_requested_amenities=_count_items(stats.most_requested_amenities),
        popular_locations=_count_items(stats.popular_locations),
        budget_distribution=_count_items(stats.budget_distribution),
    )
