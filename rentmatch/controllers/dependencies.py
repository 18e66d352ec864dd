"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from rentmatch.services.matching_service import MatchingOptimizationService
from rentmatch.services.pool_stats_service import PoolStatisticsService
from rentmatch.services.telemetry_service import TelemetryStore


def get_matching_service(request: Request) -> MatchingOptimizationService:
    service = getattr(request.app.state, "matching_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Matching service is not initialized",
        )
    return service


def get_telemetry_store(request: Request) -> TelemetryStore:
    store = getattr(request.app.state, "telemetry", None)
    if store is None:
        service = getattr(request.app.state, "matching_service", None)
        if service is not None:
            store = service.telemetry
            request.app.state.telemetry = store
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Telemetry store is not initialized",
        )
    return store


def get_pool_stats_service(request: Request) -> PoolStatisticsService:
    service = getattr(request.app.state, "pool_stats_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pool statistics service is not initialized",
        )
    return service
