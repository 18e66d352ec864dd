"""Hard-constraint filtering of the listing pool."""

from __future__ import annotations

from rentmatch.domain.models import AvailabilityStatus, Candidate, PreferenceSpec
from rentmatch.domain.ports import CandidateQuery, CandidateSource
from rentmatch.utils.logger import get_logger


logger = get_logger(__name__)


def build_candidate_query(preference: PreferenceSpec) -> CandidateQuery:
    return CandidateQuery(
        budget_min=preference.budget_min,
        budget_max=preference.budget_max,
        min_bedrooms=preference.min_bedrooms,
        min_bathrooms=preference.min_bathrooms,
        status=AvailabilityStatus.AVAILABLE.value,
        location=preference.preferred_location.strip(),
        amenities=tuple(
            amenity.strip() for amenity in preference.required_amenities if amenity.strip()
        ),
    )


def is_eligible(candidate: Candidate, preference: PreferenceSpec) -> bool:
    if not preference.budget_min <= candidate.rent <= preference.budget_max:
        return False
    if candidate.bedrooms < preference.min_bedrooms:
        return False
    if candidate.bathrooms < preference.min_bathrooms:
        return False
    if candidate.availability_status != AvailabilityStatus.AVAILABLE.value:
        return False

    preferred = preference.preferred_location.strip().lower()
    if preferred:
        city = (candidate.location.city or "").lower()
        address = (candidate.location.address or "").lower()
        if preferred not in city and preferred not in address:
            return False

    # Any overlap passes here; the degree of overlap is scored later.
    required = {amenity.strip().lower() for amenity in preference.required_amenities if amenity.strip()}
    if required:
        offered = {amenity.strip().lower() for amenity in candidate.amenities}
        if not required & offered:
            return False
    return True


def filter_eligible(
    source: CandidateSource,
    preference: PreferenceSpec,
    max_candidates: int,
) -> list[Candidate]:
    """Query the source and keep at most ``max_candidates`` eligible listings.

    The source is asked to pre-filter, and the predicate is applied again so
    a permissive source cannot leak ineligible listings into scoring. Source
    order is preserved; it is the tie-break order downstream.
    """
    if max_candidates <= 0:
        return []
    query = build_candidate_query(preference)
    fetched = source.find_candidates(query, max_candidates)
    eligible = [candidate for candidate in fetched if is_eligible(candidate, preference)]
    if len(eligible) < len(fetched):
        logger.debug(
            "Source returned ineligible listings | fetched=%s | eligible=%s",
            len(fetched),
            len(eligible),
        )
    return eligible[:max_candidates]
