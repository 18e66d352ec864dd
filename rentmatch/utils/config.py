"""Environment-driven runtime settings."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


PROJECT_ROOT = Path(__file__).resolve().parents[2]
_ENV_FILE = PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Engine, store and telemetry settings; tests derive variants with ``model_copy``."""

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    app_name: str = Field("rentmatch", validation_alias="RENTMATCH_APP_NAME")
    app_version: str = Field("0.1.0", validation_alias="RENTMATCH_APP_VERSION")
    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")
    database_path: Path = Field(
        PROJECT_ROOT / "data" / "rentmatch.db",
        validation_alias="RENTMATCH_DATABASE_PATH",
    )

    # Matching weights; must sum to 1.0
    default_weight_budget: float = Field(0.25, validation_alias="LP_DEFAULT_WEIGHTS_BUDGET")
    default_weight_location: float = Field(0.2, validation_alias="LP_DEFAULT_WEIGHTS_LOCATION")
    default_weight_amenities: float = Field(0.15, validation_alias="LP_DEFAULT_WEIGHTS_AMENITIES")
    default_weight_size: float = Field(0.15, validation_alias="LP_DEFAULT_WEIGHTS_SIZE")
    default_weight_features: float = Field(0.15, validation_alias="LP_DEFAULT_WEIGHTS_FEATURES")
    default_weight_utilities: float = Field(0.1, validation_alias="LP_DEFAULT_WEIGHTS_UTILITIES")

    max_execution_time_ms: int = Field(30000, validation_alias="LP_MAX_EXECUTION_TIME")
    min_match_threshold: float = Field(30.0, validation_alias="MIN_MATCH_SCORE_THRESHOLD")
    max_candidates_per_run: int = Field(100, validation_alias="MAX_PROPERTIES_PER_OPTIMIZATION")
    default_max_results: int = Field(10, validation_alias="RENTMATCH_DEFAULT_MAX_RESULTS")
    reverse_default_max_results: int = Field(5, validation_alias="RENTMATCH_REVERSE_MAX_RESULTS")

    # Batch assignment
    batch_strategy: str = Field("cp_sat", validation_alias="RENTMATCH_BATCH_STRATEGY")
    solver_objective_scale: int = Field(1000, validation_alias="RENTMATCH_SOLVER_OBJECTIVE_SCALE")
    solver_random_seed: int = Field(42, validation_alias="RENTMATCH_SOLVER_RANDOM_SEED")
    solver_workers: int = Field(1, validation_alias="RENTMATCH_SOLVER_WORKERS")

    telemetry_capacity: int = Field(1000, validation_alias="RENTMATCH_TELEMETRY_CAPACITY")
    telemetry_efficiency_window: int = Field(
        100, validation_alias="RENTMATCH_TELEMETRY_EFFICIENCY_WINDOW"
    )
    telemetry_trace_memory: bool = Field(False, validation_alias="RENTMATCH_TELEMETRY_TRACE_MEMORY")

    synthetic_random_seed: int = Field(7, validation_alias="RENTMATCH_SYNTHETIC_RANDOM_SEED")
    synthetic_listing_count: int = Field(60, validation_alias="RENTMATCH_SYNTHETIC_LISTING_COUNT")
    synthetic_tenant_count: int = Field(12, validation_alias="RENTMATCH_SYNTHETIC_TENANT_COUNT")

    @field_validator("batch_strategy", "log_level", mode="before")
    @classmethod
    def normalize_token(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("batch_strategy")
    @classmethod
    def lower_strategy(cls, value: str) -> str:
        return value.lower()

    @property
    def default_weights(self) -> dict[str, float]:
        return {
            "budget": self.default_weight_budget,
            "location": self.default_weight_location,
            "amenities": self.default_weight_amenities,
            "size": self.default_weight_size,
            "features": self.default_weight_features,
            "utilities": self.default_weight_utilities,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Read settings once per process; call ``get_settings.cache_clear()`` to reload."""
    return Settings()
