"""Collaborator interfaces the matching engine reads from."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Protocol, Sequence

from rentmatch.domain.models import AvailabilityStatus, Candidate, PreferenceSpec


class DataSourceUnavailableError(Exception):
    """Raised when a listing or preference store query fails; safe to retry."""


@dataclass(frozen=True)
class CandidateQuery:
    budget_min: float
    budget_max: float
    min_bedrooms: int
    min_bathrooms: int
    status: str = AvailabilityStatus.AVAILABLE.value
    location: str = ""
    amenities: tuple[str, ...] = ()


@dataclass(frozen=True)
class RequesterQuery:
    requester_ids: Optional[tuple[str, ...]] = None
    limit: Optional[int] = None


class CandidateSource(Protocol):
    def find_candidates(self, criteria: CandidateQuery, limit: int) -> list[Candidate]:
        ...


class RequesterSource(Protocol):
    def find_requesters(self, criteria: RequesterQuery) -> list[PreferenceSpec]:
        ...


class MatchStore(CandidateSource, RequesterSource, Protocol):
    """Everything a matching run reads from and writes back to."""

    def get_listing(self, listing_id: str) -> Optional[Candidate]:
        ...

    def get_tenant_preference(self, tenant_id: str) -> Optional[PreferenceSpec]:
        ...

    def save_match_logs(
        self,
        matches: Iterable[tuple[Optional[str], str, int]],
        algorithm: str,
    ) -> None:
        ...

    def add_search_history(self, tenant_id: str, listing_ids: Sequence[str]) -> None:
        ...
