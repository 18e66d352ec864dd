from __future__ import annotations

import pytest

from rentmatch.domain.models import Candidate, Location, PreferenceSpec, SubScores, WeightVector
from rentmatch.services.scoring import (
    amenity_score,
    budget_score,
    composite_score,
    compute_sub_scores,
    flag_score,
    location_score,
    score_candidate,
    score_candidates,
    size_score,
)


DEFAULT_WEIGHTS = WeightVector(
    budget=0.25,
    location=0.2,
    amenities=0.15,
    size=0.15,
    features=0.15,
    utilities=0.1,
)


def _candidate(listing_id: str = "1", **overrides) -> Candidate:
    defaults = {
        "listing_id": listing_id,
        "rent": 90000.0,
        "location": Location(address="14 Allen Avenue", city="Lagos"),
        "bedrooms": 2,
        "bathrooms": 1,
        "amenities": ("parking", "security"),
    }
    defaults.update(overrides)
    return Candidate(**defaults)


def _preference(**overrides) -> PreferenceSpec:
    defaults = {
        "budget_min": 50000.0,
        "budget_max": 150000.0,
        "preferred_location": "Lagos",
        "required_amenities": ("parking",),
        "min_bedrooms": 2,
        "min_bathrooms": 1,
    }
    defaults.update(overrides)
    return PreferenceSpec(**defaults)


@pytest.mark.parametrize("rent", [50000.0, 90000.0, 150000.0])
def test_budget_score_is_full_inside_range(rent: float) -> None:
    assert budget_score(rent, 50000.0, 150000.0) == 100.0


def test_budget_score_decays_below_minimum() -> None:
    # Shortfall of 10k against a 25k tolerance (half of the minimum).
    assert budget_score(40000.0, 50000.0, 150000.0) == pytest.approx(60.0)


def test_budget_score_decays_above_maximum() -> None:
    # Excess of 15k against a 75k tolerance (half of the maximum).
    assert budget_score(165000.0, 50000.0, 150000.0) == pytest.approx(80.0)


def test_budget_score_bottoms_out_at_zero() -> None:
    assert budget_score(400000.0, 50000.0, 150000.0) == 0.0
    assert budget_score(10000.0, 50000.0, 150000.0) == 0.0


def test_budget_score_zero_bounds() -> None:
    assert budget_score(0.0, 0.0, 0.0) == 100.0
    assert budget_score(1000.0, 0.0, 0.0) == 0.0


def test_budget_score_never_increases_with_rent_above_maximum() -> None:
    scores = [budget_score(rent, 50000.0, 150000.0) for rent in range(150000, 260000, 10000)]
    assert scores == sorted(scores, reverse=True)


def test_location_score_without_preference_is_full() -> None:
    assert location_score(Location(address="", city="Abuja"), "   ") == 100.0


def test_location_score_city_match_is_case_insensitive() -> None:
    assert location_score(Location(address="", city="LAGOS"), "lagos") == 100.0
    assert location_score(Location(address="", city="Lagos"), "Lagos Island") == 100.0


def test_location_score_address_match() -> None:
    location = Location(address="3 Victoria Island Road", city="Eti-Osa")
    assert location_score(location, "Victoria Island") == 80.0


def test_location_score_partial_word_overlap() -> None:
    location = Location(address="", city="Lekki Phase 1")
    assert location_score(location, "Lekki Gardens") == pytest.approx(30.0)


def test_location_score_floor_without_shared_words() -> None:
    assert location_score(Location(address="", city="Abuja"), "Yaba") == 20.0


def test_location_score_empty_city_is_not_a_match() -> None:
    assert location_score(Location(address="", city=""), "Lagos") == 20.0


def test_amenity_score_without_requirements_ignores_listing() -> None:
    assert amenity_score((), ()) == 100.0
    assert amenity_score(("gym", "pool"), ()) == 100.0


def test_amenity_score_uses_substring_matching() -> None:
    assert amenity_score(("Covered Parking",), ("parking",)) == 100.0


def test_amenity_score_is_proportional() -> None:
    assert amenity_score(("parking",), ("parking", "gym")) == pytest.approx(50.0)


def test_size_score_is_neutral_without_size() -> None:
    assert size_score(None, 2) == 70.0


def test_size_score_peaks_at_ideal_size() -> None:
    # 40 m² per bedroom plus 20 m² of common area.
    assert size_score(100.0, 2) == 100.0
    assert size_score(75.0, 2) == pytest.approx(50.0)
    assert size_score(200.0, 2) == 0.0


def test_flag_score_counts_only_true_preferences() -> None:
    assert flag_score({}, {}) == 100.0
    assert flag_score({}, {"furnished": False}) == 100.0
    assert flag_score({"furnished": True}, {"furnished": True, "balcony": True}) == pytest.approx(50.0)
    assert flag_score({"furnished": False}, {"furnished": True}) == 0.0


def test_sub_scores_and_composite_for_lagos_flat() -> None:
    scored = score_candidate(_candidate(), _preference(), DEFAULT_WEIGHTS)

    assert scored.sub_scores == SubScores(
        budget=100.0,
        location=100.0,
        amenity=100.0,
        size=70.0,
        feature=100.0,
        utility=100.0,
    )
    assert scored.composite == pytest.approx(95.5)


def test_composite_is_weighted_sum() -> None:
    sub_scores = SubScores(budget=80, location=60, amenity=40, size=70, feature=100, utility=0)
    expected = 0.25 * 80 + 0.2 * 60 + 0.15 * 40 + 0.15 * 70 + 0.15 * 100 + 0.1 * 0
    assert composite_score(sub_scores, DEFAULT_WEIGHTS) == pytest.approx(expected)


def test_every_sub_score_is_bounded() -> None:
    candidate = _candidate(
        rent=1_000_000.0,
        location=Location(address="", city=""),
        size=10_000.0,
        amenities=(),
        features={"furnished": True},
    )
    preference = _preference(
        required_amenities=("gym", "pool"),
        features={"furnished": True, "parking": True},
        utilities={"water": True},
    )
    for value in compute_sub_scores(candidate, preference).by_criterion().values():
        assert 0.0 <= value <= 100.0


def test_score_candidates_keeps_input_positions() -> None:
    candidates = [_candidate("a"), _candidate("b"), _candidate("c")]
    scored = score_candidates(candidates, _preference(), DEFAULT_WEIGHTS)
    assert [item.position for item in scored] == [0, 1, 2]
    assert [item.candidate.listing_id for item in scored] == ["a", "b", "c"]
