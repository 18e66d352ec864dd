"""Human-readable reasons attached to each committed match."""

from __future__ import annotations

from rentmatch.domain.models import Candidate, PreferenceSpec
from rentmatch.services.scoring import matched_amenities, matched_flags


CURRENCY_SYMBOL = "₦"


def _money(value: float) -> str:
    return f"{CURRENCY_SYMBOL}{value:,.0f}"


def _flag_label(flag: str) -> str:
    return flag.replace("_", " ").capitalize()


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'s' if count != 1 else ''}"


def _budget_line(candidate: Candidate, preference: PreferenceSpec) -> str:
    rent = _money(candidate.rent)
    difference = preference.budget_max - candidate.rent
    if difference < 0:
        return f"Rent ({rent}) exceeds your maximum budget by {_money(-difference)}"
    if candidate.rent < preference.budget_min:
        return f"Rent ({rent}) is below your minimum budget, saving you {_money(difference)}"
    if difference == 0:
        return f"Rent ({rent}) is within your budget, matching your maximum"
    return f"Rent ({rent}) is within your budget, saving you {_money(difference)}"


def _location_line(candidate: Candidate) -> str | None:
    parts = [
        part.strip()
        for part in (candidate.location.address, candidate.location.city)
        if part and part.strip()
    ]
    if not parts:
        return None
    return f"Located in {', '.join(parts)}"


def generate_explanation(
    candidate: Candidate,
    preference: PreferenceSpec,
    match_score: float,
) -> list[str]:
    explanations = [_budget_line(candidate, preference)]

    location_line = _location_line(candidate)
    if location_line:
        explanations.append(location_line)

    explanations.append(
        f"{_plural(candidate.bedrooms, 'bedroom')}, {_plural(candidate.bathrooms, 'bathroom')}"
    )

    if candidate.size:
        explanations.append(f"{candidate.size:,.0f} m² of living space")

    if preference.required_amenities:
        present = matched_amenities(candidate.amenities, preference.required_amenities)
        if present:
            explanations.append(
                f"Includes {len(present)} of your required amenities: {', '.join(present)}"
            )

    features = matched_flags(candidate.features or {}, preference.features or {})
    if features:
        explanations.append(
            f"Matches your feature preferences: {', '.join(_flag_label(flag) for flag in features)}"
        )

    utilities = matched_flags(candidate.utilities or {}, preference.utilities or {})
    if utilities:
        explanations.append(
            f"Includes utilities: {', '.join(_flag_label(flag) for flag in utilities)}"
        )

    explanations.append(f"Overall match score: {match_score:.0f}%")
    return explanations
