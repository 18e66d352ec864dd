from __future__ import annotations

from rentmatch.domain.models import Candidate, Location, PreferenceSpec
from rentmatch.services.explanation import generate_explanation


def _candidate(**overrides) -> Candidate:
    defaults = {
        "listing_id": "1",
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


def test_explanation_lines_in_order() -> None:
    lines = generate_explanation(_candidate(), _preference(), 96)
    assert lines == [
        "Rent (₦90,000) is within your budget, saving you ₦60,000",
        "Located in 14 Allen Avenue, Lagos",
        "2 bedrooms, 1 bathroom",
        "Includes 1 of your required amenities: parking",
        "Overall match score: 96%",
    ]


def test_explanation_at_budget_maximum() -> None:
    lines = generate_explanation(_candidate(rent=150000.0), _preference(), 90)
    assert lines[0] == "Rent (₦150,000) is within your budget, matching your maximum"


def test_explanation_states_budget_excess() -> None:
    lines = generate_explanation(_candidate(rent=165000.0), _preference(), 70)
    assert lines[0] == "Rent (₦165,000) exceeds your maximum budget by ₦15,000"


def test_explanation_names_matched_flags() -> None:
    candidate = _candidate(
        size=110.0,
        features={"furnished": True, "pet_friendly": True, "balcony": False},
        utilities={"water": True, "gas": False},
    )
    preference = _preference(
        features={"furnished": True, "pet_friendly": True, "balcony": True},
        utilities={"water": True, "gas": True},
    )
    lines = generate_explanation(candidate, preference, 88)
    assert "110 m² of living space" in lines
    assert "Matches your feature preferences: Furnished, Pet friendly" in lines
    assert "Includes utilities: Water" in lines


def test_explanation_omits_missing_optional_fields() -> None:
    candidate = _candidate(
        location=Location(address="", city=""),
        amenities=(),
        size=None,
    )
    lines = generate_explanation(candidate, _preference(required_amenities=()), 50)
    assert lines == [
        "Rent (₦90,000) is within your budget, saving you ₦60,000",
        "2 bedrooms, 1 bathroom",
        "Overall match score: 50%",
    ]
