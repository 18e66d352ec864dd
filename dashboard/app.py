"""Streamlit operator console for the rentmatch matching API."""

from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

import pandas as pd
import requests
import streamlit as st

# ==========================================
# Configuration & Constants
# ==========================================
API_BASE_URL = os.getenv("RENTMATCH_API_URL", "http://127.0.0.1:8000")
AMENITY_CHOICES = [
    "parking",
    "security",
    "wifi",
    "gym",
    "pool",
    "generator",
    "air conditioning",
    "water heater",
]

st.set_page_config(
    page_title="rentmatch Console",
    page_icon="🏠",
    layout="wide",
)

# ==========================================
# API Helper Functions
# ==========================================
def _error_detail(response: requests.Response) -> str:
    try:
        return str(response.json().get("detail", response.text))
    except ValueError:
        return response.text


def fetch_matches(payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Calls the single-tenant matching endpoint."""
    try:
        response = requests.post(
            f"{API_BASE_URL}/optimization/match",
            json=payload,
            timeout=35,
        )
        if response.status_code == 400:
            st.warning(f"Request rejected: {_error_detail(response)}")
            return None
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        st.error(f"Backend connection failed: {e}")
        return None


def fetch_listing_matches(listing_id: str, max_results: int) -> Optional[Dict[str, Any]]:
    """Calls the reverse ranking endpoint for one listing."""
    try:
        response = requests.get(
            f"{API_BASE_URL}/optimization/listing-matches/{listing_id}",
            params={"max_results": max_results},
            timeout=35,
        )
        if response.status_code == 404:
            st.warning(f"Listing {listing_id} was not found.")
            return None
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        st.error(f"Reverse ranking failed: {e}")
        return None


def fetch_performance() -> Optional[Dict[str, Any]]:
    try:
        response = requests.get(f"{API_BASE_URL}/optimization/performance", timeout=5)
        response.raise_for_status()
        return response.json()
    except requests.exceptions.RequestException as e:
        st.error(f"Telemetry fetch failed: {e}")
        return None


def fetch_trends(days: int) -> List[Dict[str, Any]]:
    try:
        response = requests.get(
            f"{API_BASE_URL}/optimization/performance/trends",
            params={"days": days},
            timeout=5,
        )
        response.raise_for_status()
        return response.json().get("trends", [])
    except requests.exceptions.RequestException as e:
        st.error(f"Trend fetch failed: {e}")
        return []


# ==========================================
# UI Page Functions
# ==========================================
def render_match_page() -> None:
    st.header("🔎 Listing Search")
    st.markdown("Rank available listings against a tenant's budget and preferences.")

    col1, col2, col3 = st.columns(3)
    with col1:
        budget_min = st.number_input("Minimum budget (₦)", min_value=0, value=50000, step=5000)
        budget_max = st.number_input("Maximum budget (₦)", min_value=0, value=150000, step=5000)
    with col2:
        location = st.text_input("Preferred location", "Lagos")
        amenities = st.multiselect("Required amenities", AMENITY_CHOICES, ["parking"])
    with col3:
        bedrooms = st.number_input("Minimum bedrooms", min_value=1, max_value=20, value=1)
        bathrooms = st.number_input("Minimum bathrooms", min_value=1, max_value=20, value=1)
        max_results = st.slider("Results", 1, 50, 10)

    with st.expander("Feature and utility preferences"):
        feature_col, utility_col = st.columns(2)
        with feature_col:
            features = {
                flag: True
                for flag in ("furnished", "pet_friendly", "parking", "balcony")
                if st.checkbox(flag.replace("_", " ").capitalize(), key=f"feature_{flag}")
            }
        with utility_col:
            utilities = {
                flag: True
                for flag in ("electricity", "water", "internet", "gas")
                if st.checkbox(flag.capitalize(), key=f"utility_{flag}")
            }

    if st.button("Find Matches", type="primary"):
        with st.spinner("Scoring listings..."):
            result = fetch_matches(
                {
                    "constraints": {
                        "budget": {"min": budget_min, "max": budget_max},
                        "location": location,
                        "amenities": amenities,
                        "bedrooms": int(bedrooms),
                        "bathrooms": int(bathrooms),
                        "features": features,
                        "utilities": utilities,
                    },
                    "max_results": max_results,
                }
            )

            if result:
                details = result.get("optimization_details", {})
                metric_col1, metric_col2, metric_col3 = st.columns(3)
                metric_col1.metric("Matches", details.get("matches_found", 0))
                metric_col2.metric("Listings evaluated", details.get("candidates_evaluated", 0))
                metric_col3.metric("Objective", f"{details.get('objective_value', 0.0):.2f}")
                if details.get("status") == "timeout":
                    st.warning("The run hit its time budget; results are partial.")

                matches = result.get("matches", [])
                if not matches:
                    st.info("No listing cleared the minimum match score.")
                for match in matches:
                    with st.container(border=True):
                        st.subheader(f"Listing {match['listing_id']} · {match['match_score']}%")
                        for line in match.get("explanation", []):
                            st.write(f"- {line}")


def render_listing_page() -> None:
    st.header("👥 Tenant Ranking")
    st.markdown("Find the stored tenants a listing suits best.")

    col1, col2 = st.columns(2)
    with col1:
        listing_id = st.text_input("Listing ID", "1")
    with col2:
        max_results = st.slider("Tenants", 1, 50, 5)

    if st.button("Rank Tenants", type="primary"):
        with st.spinner("Scoring tenants..."):
            result = fetch_listing_matches(listing_id.strip(), max_results)
            if result:
                matches = result.get("matches", [])
                st.metric("Tenants evaluated", result.get("tenants_evaluated", 0))
                if matches:
                    df = pd.DataFrame(
                        [
                            {
                                "tenant_id": item["tenant_id"],
                                "match_score": item["match_score"],
                                "preferences": item["preferences_summary"],
                            }
                            for item in matches
                        ]
                    )
                    st.dataframe(df, use_container_width=True)
                else:
                    st.info("No tenant cleared the minimum match score.")


def render_telemetry_page() -> None:
    st.header("📈 Engine Telemetry")

    overview = fetch_performance()
    if overview:
        metric_col1, metric_col2, metric_col3 = st.columns(3)
        metric_col1.metric("Runs", overview.get("total_optimizations", 0))
        metric_col2.metric("Success rate", f"{overview.get('success_rate', 0.0):.1f}%")
        metric_col3.metric("Efficiency", overview.get("efficiency_score", 0))

        breakdown = overview.get("algorithm_breakdown", [])
        if breakdown:
            st.write("### By algorithm")
            st.dataframe(pd.DataFrame(breakdown), use_container_width=True)

    days = st.slider("Trend window (days)", 1, 30, 7)
    trends = fetch_trends(days)
    if trends:
        frame = pd.DataFrame(trends).set_index("date")
        st.line_chart(frame[["optimizations"]])
        st.line_chart(frame[["average_execution_time_ms"]])
    else:
        st.info("No runs recorded in this window.")


# ==========================================
# Main App Router
# ==========================================
def main() -> None:
    st.sidebar.title("rentmatch")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigation Module",
        ["Listing Search", "Tenant Ranking", "Telemetry"]
    )

    st.sidebar.markdown("---")
    st.sidebar.caption(f"API: {API_BASE_URL}")
    st.sidebar.caption("Batch solver: OR-Tools CP-SAT")

    if page == "Listing Search":
        render_match_page()
    elif page == "Tenant Ranking":
        render_listing_page()
    elif page == "Telemetry":
        render_telemetry_page()


if __name__ == "__main__":
    main()
