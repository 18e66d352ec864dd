"""Aggregate statistics over the listing and tenant pools."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from rentmatch.domain.models import Candidate, PreferenceSpec
from rentmatch.domain.ports import RequesterQuery
from rentmatch.repository.data_repository import DataRepository
from rentmatch.utils.config import Settings, get_settings
from rentmatch.utils.logger import get_logger


logger = get_logger(__name__)


TOP_N = 10
BUDGET_BAND_EDGES = [-np.inf, 500_000.0, 1_000_000.0, 2_000_000.0, np.inf]
BUDGET_BAND_LABELS = ["0-500k", "500k-1M", "1M-2M", "2M+"]


@dataclass(frozen=True)
class ListingMetrics:
    average_rent: Optional[float]
    average_bedrooms: Optional[float]
    average_bathrooms: Optional[float]
    average_size: Optional[float]


@dataclass(frozen=True)
class PoolStatistics:
    total_listings: int
    total_tenants: int
    listing_metrics: ListingMetrics
    most_requested_amenities: list[tuple[str, int]]
    popular_locations: list[tuple[str, int]]
    budget_distribution: list[tuple[str, int]]


def _mean_or_none(series: pd.Series) -> Optional[float]:
    values = series.dropna()
    if values.empty:
        return None
    return float(values.mean())


def _ranked_counts(values: Sequence[str]) -> list[tuple[str, int]]:
    """Top counts, most frequent first, ties in alphabetical order."""
    if not values:
        return []
    counts = (
        pd.Series(list(values), dtype="object")
        .value_counts()
        .rename_axis("value")
        .reset_index(name="count")
        .sort_values(["count", "value"], ascending=[False, True], kind="mergesort")
        .head(TOP_N)
    )
    return [(str(value), int(count)) for value, count in zip(counts["value"], counts["count"])]


def listing_metrics(listings: Sequence[Candidate]) -> ListingMetrics:
    frame = pd.DataFrame(
        [
            {
                "rent": float(listing.rent),
                "bedrooms": float(listing.bedrooms),
                "bathrooms": float(listing.bathrooms),
                "size": float(listing.size) if listing.size else np.nan,
            }
            for listing in listings
        ],
        columns=["rent", "bedrooms", "bathrooms", "size"],
    )
    return ListingMetrics(
        average_rent=_mean_or_none(frame["rent"]),
        average_bedrooms=_mean_or_none(frame["bedrooms"]),
        average_bathrooms=_mean_or_none(frame["bathrooms"]),
        average_size=_mean_or_none(frame["size"]),
    )


def budget_distribution(preferences: Sequence[PreferenceSpec]) -> list[tuple[str, int]]:
    """Tenant counts per budget-ceiling band; empty bands are omitted."""
    if not preferences:
        return []
    bands = pd.cut(
        pd.Series([float(preference.budget_max) for preference in preferences]),
        bins=BUDGET_BAND_EDGES,
        labels=BUDGET_BAND_LABELS,
        right=True,
    )
    counts = bands.value_counts(sort=False).reindex(BUDGET_BAND_LABELS, fill_value=0)
    return [(str(label), int(count)) for label, count in counts.items() if count > 0]


def compute_pool_statistics(
    listings: Sequence[Candidate],
    preferences: Sequence[PreferenceSpec],
) -> PoolStatistics:
    amenities = [
        amenity.strip().lower()
        for listing in listings
        for amenity in listing.amenities
        if amenity.strip()
    ]
    cities = [listing.location.city.strip() for listing in listings if listing.location.city.strip()]
    return PoolStatistics(
        total_listings=len(listings),
        total_tenants=len(preferences),
        listing_metrics=listing_metrics(listings),
        most_requested_amenities=_ranked_counts(amenities),
        popular_locations=_ranked_counts(cities),
        budget_distribution=budget_distribution(preferences),
    )


class PoolStatisticsService:
    """Reads the available listings and stored tenants and summarizes them."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def pool_statistics(self) -> PoolStatistics:
        listings = self._repository.list_listings()
        preferences = self._repository.find_requesters(RequesterQuery())
        stats = compute_pool_statistics(listings, preferences)
        logger.info(
            "Pool statistics computed | listings=%s | tenants=%s",
            stats.total_listings,
            stats.total_tenants,
        )
        return stats
