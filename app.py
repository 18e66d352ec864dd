"""
app.py — FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires the repository, telemetry store and services, registers
routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from rentmatch.controllers.optimization_controller import router as optimization_router
from rentmatch.repository.data_repository import DataRepository
from rentmatch.services.matching_service import MatchingOptimizationService
from rentmatch.services.pool_stats_service import PoolStatisticsService
from rentmatch.services.telemetry_service import TelemetryStore, start_memory_tracing
from rentmatch.utils.config import Settings, get_settings
from rentmatch.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    One TelemetryStore is created here and shared by every request through
    the matching service; nothing in the engine holds process globals.
    """
    settings = settings or get_settings()

    # --- Repository (SQLite connection factory) ---
    repository = DataRepository(settings)

    # --- Telemetry (process-wide run history) ---
    telemetry = TelemetryStore(
        settings.telemetry_capacity,
        efficiency_window=settings.telemetry_efficiency_window,
        latency_ceiling_ms=float(settings.max_execution_time_ms),
    )

    # --- Services ---
    matching_service = MatchingOptimizationService(
        repository=repository,
        settings=settings,
        telemetry=telemetry,
    )
    pool_stats_service = PoolStatisticsService(repository=repository, settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app, settings)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.include_router(optimization_router)

    app.state.repository = repository
    app.state.telemetry = telemetry
    app.state.matching_service = matching_service
    app.state.pool_stats_service = pool_stats_service

    return app


def _startup(app: FastAPI, settings: Settings) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Schema creation runs before seeding; seeding is skipped when listings
    already exist.
    """
    repository: DataRepository = app.state.repository

    if settings.telemetry_trace_memory:
        logger.info("Startup: enabling tracemalloc for run memory deltas")
        start_memory_tracing()

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    logger.info("Startup: seeding synthetic listings and tenants")
    repository.seed_synthetic_data()

    logger.info("Startup complete | database=%s", repository.database_path)


# Module-level app object for uvicorn
app = create_app()
