"""Soft scoring of listings against a preference bundle.

Every sub-score lies in [0, 100]. The composite is the weight-vector dot
product of the six sub-scores, clamped to the same range.
"""

from __future__ import annotations

from typing import Iterable, Mapping, Optional, Sequence

from rentmatch.domain.models import (
    Candidate,
    Location,
    PreferenceSpec,
    ScoredCandidate,
    SubScores,
    WeightVector,
)


NEUTRAL_SIZE_SCORE = 70.0
ADDRESS_MATCH_SCORE = 80.0
PARTIAL_LOCATION_CEILING = 60.0
LOCATION_FLOOR_SCORE = 20.0
BUDGET_DECAY_FRACTION = 0.5
SQM_PER_BEDROOM = 40.0
SQM_COMMON_AREA = 20.0
SIZE_TOLERANCE_FRACTION = 0.5


def _clamp(value: float, lower: float = 0.0, upper: float = 100.0) -> float:
    return max(lower, min(upper, float(value)))


def budget_score(rent: float, budget_min: float, budget_max: float) -> float:
    """Full marks inside the range, linear decay outside it.

    Below the range the score reaches 0 once the shortfall is half of
    ``budget_min``; above it, once the excess is half of ``budget_max``.
    """
    if budget_min <= rent <= budget_max:
        return 100.0
    if rent < budget_min:
        tolerance = BUDGET_DECAY_FRACTION * budget_min
        shortfall = budget_min - rent
        return _clamp(100.0 * (1.0 - shortfall / tolerance))
    tolerance = BUDGET_DECAY_FRACTION * budget_max
    if tolerance <= 0.0:
        return 0.0
    excess = rent - budget_max
    return _clamp(100.0 * (1.0 - excess / tolerance))


def location_score(location: Location, preferred_location: str) -> float:
    preferred = preferred_location.strip().lower()
    if not preferred:
        return 100.0

    city = (location.city or "").strip().lower()
    address = (location.address or "").strip().lower()

    if city and (preferred in city or city in preferred):
        return 100.0
    if preferred in address:
        return ADDRESS_MATCH_SCORE

    preferred_words = preferred.split()
    shared_words = [
        word
        for word in city.split()
        if any(word in preferred_word or preferred_word in word for preferred_word in preferred_words)
    ]
    if shared_words:
        return _clamp(PARTIAL_LOCATION_CEILING * len(shared_words) / len(preferred_words))
    return LOCATION_FLOOR_SCORE


def matched_amenities(candidate_amenities: Iterable[str], required_amenities: Sequence[str]) -> list[str]:
    """Return required amenities present on the listing, in request order.

    Matching is case-insensitive substring containment in either direction,
    so "parking" matches "Covered Parking".
    """
    available = [amenity.strip().lower() for amenity in candidate_amenities if amenity.strip()]
    matched: list[str] = []
    for amenity in required_amenities:
        needle = amenity.strip().lower()
        if not needle:
            continue
        if any(needle in offered or offered in needle for offered in available):
            matched.append(amenity)
    return matched


def amenity_score(candidate_amenities: Iterable[str], required_amenities: Sequence[str]) -> float:
    required = [amenity for amenity in required_amenities if amenity.strip()]
    if not required:
        return 100.0
    matched = matched_amenities(candidate_amenities, required)
    return _clamp(100.0 * len(matched) / len(required))


def ideal_size(min_bedrooms: int) -> float:
    return SQM_PER_BEDROOM * min_bedrooms + SQM_COMMON_AREA


def size_score(size: Optional[float], min_bedrooms: int) -> float:
    if not size:
        return NEUTRAL_SIZE_SCORE
    ideal = ideal_size(min_bedrooms)
    max_difference = SIZE_TOLERANCE_FRACTION * ideal
    return _clamp(100.0 - 100.0 * abs(size - ideal) / max_difference)


def matched_flags(offered: Mapping[str, bool], required: Mapping[str, bool]) -> list[str]:
    return [flag for flag, wanted in required.items() if wanted and offered.get(flag, False)]


def flag_score(offered: Mapping[str, bool], required: Mapping[str, bool]) -> float:
    """Share of the ``True`` preference flags the listing also offers."""
    required_true = [flag for flag, wanted in required.items() if wanted]
    if not required_true:
        return 100.0
    return _clamp(100.0 * len(matched_flags(offered, required)) / len(required_true))


def compute_sub_scores(candidate: Candidate, preference: PreferenceSpec) -> SubScores:
    return SubScores(
        budget=budget_score(candidate.rent, preference.budget_min, preference.budget_max),
        location=location_score(candidate.location, preference.preferred_location),
        amenity=amenity_score(candidate.amenities, preference.required_amenities),
        size=size_score(candidate.size, preference.min_bedrooms),
        feature=flag_score(candidate.features, preference.features),
        utility=flag_score(candidate.utilities, preference.utilities),
    )


def composite_score(sub_scores: SubScores, weights: WeightVector) -> float:
    weight_by_criterion = weights.as_dict()
    total = sum(
        weight_by_criterion[criterion] * value
        for criterion, value in sub_scores.by_criterion().items()
    )
    return _clamp(total)


def score_candidate(
    candidate: Candidate,
    preference: PreferenceSpec,
    weights: WeightVector,
    position: int = 0,
) -> ScoredCandidate:
    sub_scores = compute_sub_scores(candidate, preference)
    return ScoredCandidate(
        candidate=candidate,
        composite=composite_score(sub_scores, weights),
        sub_scores=sub_scores,
        position=position,
    )


def score_candidates(
    candidates: Sequence[Candidate],
    preference: PreferenceSpec,
    weights: WeightVector,
) -> list[ScoredCandidate]:
    """Score candidates, remembering each one's position in the input order."""
    return [
        score_candidate(candidate, preference, weights, position=index)
        for index, candidate in enumerate(candidates)
    ]
