"""Repository layer responsible for all database access."""

from __future__ import annotations

import json
import random
import sqlite3
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

from rentmatch.domain.models import (
    FEATURE_FLAGS,
    UTILITY_FLAGS,
    AvailabilityStatus,
    Candidate,
    Location,
    PreferenceSpec,
)
from rentmatch.domain.ports import CandidateQuery, DataSourceUnavailableError, RequesterQuery
from rentmatch.utils.config import Settings, get_settings
from rentmatch.utils.logger import get_logger


logger = get_logger(__name__)


_SEED_AREAS = [
    ("Lagos", "Lagos", ["Allen Avenue", "Awolowo Road", "Herbert Macaulay Way"]),
    ("Ikeja", "Lagos", ["Obafemi Awolowo Way", "Opebi Road", "Toyin Street"]),
    ("Lekki", "Lagos", ["Admiralty Way", "Freedom Way", "Chevron Drive"]),
    ("Yaba", "Lagos", ["Commercial Avenue", "Sabo Road", "Akoka Road"]),
    ("Victoria Island", "Lagos", ["Adeola Odeku Street", "Ahmadu Bello Way"]),
    ("Surulere", "Lagos", ["Adeniran Ogunsanya Street", "Bode Thomas Street"]),
    ("Abuja", "FCT", ["Aminu Kano Crescent", "Adetokunbo Ademola Crescent"]),
]
_SEED_AMENITIES = [
    "parking",
    "security",
    "wifi",
    "gym",
    "pool",
    "generator",
    "air conditioning",
    "water heater",
]


def _dump_list(values: Iterable[str]) -> str:
    return json.dumps([str(value) for value in values])


def _dump_flags(flags: dict[str, bool], vocabulary: Sequence[str]) -> str:
    return json.dumps({flag: bool(flags[flag]) for flag in vocabulary if flag in flags})


def _load_list(raw: Optional[str]) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(str(value) for value in json.loads(raw))


def _load_flags(raw: Optional[str]) -> dict[str, bool]:
    if not raw:
        return {}
    return {str(key): bool(value) for key, value in json.loads(raw).items()}


def _row_to_candidate(row: sqlite3.Row) -> Candidate:
    return Candidate(
        listing_id=str(row["id"]),
        rent=float(row["rent"]),
        location=Location(
            address=str(row["address"] or ""),
            city=str(row["city"] or ""),
            state=str(row["state"] or ""),
        ),
        bedrooms=int(row["bedrooms"]),
        bathrooms=int(row["bathrooms"]),
        size=float(row["size"]) if row["size"] is not None else None,
        amenities=_load_list(row["amenities"]),
        features=_load_flags(row["features"]),
        utilities=_load_flags(row["utilities"]),
        availability_status=str(row["status"]),
        title=str(row["title"] or ""),
    )


def _row_to_preference(row: sqlite3.Row) -> PreferenceSpec:
    return PreferenceSpec(
        budget_min=float(row["budget_min"]),
        budget_max=float(row["budget_max"]),
        preferred_location=str(row["preferred_location"] or ""),
        required_amenities=_load_list(row["required_amenities"]),
        min_bedrooms=int(row["min_bedrooms"]),
        min_bathrooms=int(row["min_bathrooms"]),
        max_commute=int(row["max_commute"]) if row["max_commute"] is not None else None,
        features=_load_flags(row["features"]),
        utilities=_load_flags(row["utilities"]),
        requester_id=str(row["id"]),
    )


class DataRepository:
    """SQLite-backed listing and tenant-preference store.

    Implements the ``find_candidates`` / ``find_requesters`` collaborator
    queries the matching engine consumes.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Listings (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        title TEXT NOT NULL DEFAULT '',
                        address TEXT NOT NULL DEFAULT '',
                        city TEXT NOT NULL DEFAULT '',
                        state TEXT NOT NULL DEFAULT '',
                        rent REAL NOT NULL CHECK (rent >= 0),
                        bedrooms INTEGER NOT NULL CHECK (bedrooms >= 0),
                        bathrooms INTEGER NOT NULL CHECK (bathrooms >= 0),
                        size REAL,
                        amenities TEXT NOT NULL DEFAULT '[]',
                        features TEXT NOT NULL DEFAULT '{}',
                        utilities TEXT NOT NULL DEFAULT '{}',
                        status TEXT NOT NULL DEFAULT 'available',
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS TenantPreferences (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL DEFAULT '',
                        budget_min REAL NOT NULL CHECK (budget_min >= 0),
                        budget_max REAL NOT NULL CHECK (budget_max >= 0),
                        preferred_location TEXT NOT NULL DEFAULT '',
                        required_amenities TEXT NOT NULL DEFAULT '[]',
                        min_bedrooms INTEGER NOT NULL DEFAULT 1,
                        min_bathrooms INTEGER NOT NULL DEFAULT 1,
                        max_commute INTEGER,
                        features TEXT NOT NULL DEFAULT '{}',
                        utilities TEXT NOT NULL DEFAULT '{}',
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS MatchLogs (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        tenant_id TEXT,
                        listing_id TEXT NOT NULL,
                        match_score INTEGER NOT NULL,
                        algorithm TEXT NOT NULL,
                        computed_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS SearchHistory (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        tenant_id TEXT NOT NULL,
                        listing_id TEXT NOT NULL,
                        added_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        UNIQUE (tenant_id, listing_id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_listings_status_rent
                    ON Listings(status, rent);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_synthetic_data(self) -> None:
        """Seed deterministic listings and tenants only when tables are empty."""
        rng = random.Random(self._settings.synthetic_random_seed)
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute("SELECT COUNT(*) AS count FROM Listings;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Synthetic data already present; skipping seed")
                    return

                listing_rows = []
                for index in range(self._settings.synthetic_listing_count):
                    city, state, streets = _SEED_AREAS[index % len(_SEED_AREAS)]
                    bedrooms = rng.randint(1, 4)
                    listing_rows.append(
                        (
                            f"{bedrooms}-bedroom flat in {city}",
                            f"{rng.randint(1, 120)} {rng.choice(streets)}",
                            city,
                            state,
                            float(rng.randrange(40000, 600000, 5000)),
                            bedrooms,
                            rng.randint(1, bedrooms),
                            float(rng.randint(35, 220)) if rng.random() > 0.2 else None,
                            _dump_list(rng.sample(_SEED_AMENITIES, rng.randint(1, 4))),
                            _dump_flags(
                                {flag: rng.random() > 0.5 for flag in FEATURE_FLAGS},
                                FEATURE_FLAGS,
                            ),
                            _dump_flags(
                                {flag: rng.random() > 0.3 for flag in UTILITY_FLAGS},
                                UTILITY_FLAGS,
                            ),
                            AvailabilityStatus.AVAILABLE.value
                            if rng.random() > 0.15
                            else AvailabilityStatus.OCCUPIED.value,
                        )
                    )
                cursor.executemany(
                    """
                    INSERT INTO Listings (
                        title, address, city, state, rent, bedrooms, bathrooms,
                        size, amenities, features, utilities, status
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    listing_rows,
                )

                tenant_rows = []
                for index in range(self._settings.synthetic_tenant_count):
                    city, _, _ = _SEED_AREAS[index % len(_SEED_AREAS)]
                    budget_min = float(rng.randrange(30000, 250000, 10000))
                    tenant_rows.append(
                        (
                            f"Tenant {index + 1}",
                            budget_min,
                            budget_min + float(rng.randrange(50000, 350000, 10000)),
                            city,
                            _dump_list(rng.sample(_SEED_AMENITIES, rng.randint(0, 3))),
                            rng.randint(1, 3),
                            1,
                            _dump_flags({"parking": rng.random() > 0.5}, FEATURE_FLAGS),
                            _dump_flags({"water": True, "internet": rng.random() > 0.5}, UTILITY_FLAGS),
                        )
                    )
                cursor.executemany(
                    """
                    INSERT INTO TenantPreferences (
                        name, budget_min, budget_max, preferred_location,
                        required_amenities, min_bedrooms, min_bathrooms,
                        features, utilities
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
                    """,
                    tenant_rows,
                )
                conn.commit()
            logger.info(
                "Synthetic seed completed | listings=%s | tenants=%s",
                len(listing_rows),
                len(tenant_rows),
            )
        except sqlite3.Error as exc:
            raise RuntimeError(f"Synthetic data seeding failed: {exc}") from exc

    def create_listing(
        self,
        *,
        rent: float,
        bedrooms: int,
        bathrooms: int,
        city: str,
        address: str = "",
        state: str = "",
        title: str = "",
        size: Optional[float] = None,
        amenities: Sequence[str] = (),
        features: Optional[dict[str, bool]] = None,
        utilities: Optional[dict[str, bool]] = None,
        status: str = AvailabilityStatus.AVAILABLE.value,
    ) -> str:
        """Insert a listing row and return the created id."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Listings (
                    title, address, city, state, rent, bedrooms, bathrooms,
                    size, amenities, features, utilities, status
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    title,
                    address,
                    city,
                    state,
                    float(rent),
                    int(bedrooms),
                    int(bathrooms),
                    size,
                    _dump_list(amenities),
                    _dump_flags(features or {}, FEATURE_FLAGS),
                    _dump_flags(utilities or {}, UTILITY_FLAGS),
                    status,
                ),
            )
            conn.commit()
            return str(cursor.lastrowid)

    def create_listings(self, rows: Iterable[dict[str, Any]]) -> int:
        """Bulk insert listings given as ``create_listing`` keyword dicts."""
        payload = [
            (
                row.get("title", ""),
                row.get("address", ""),
                row["city"],
                row.get("state", ""),
                float(row["rent"]),
                int(row["bedrooms"]),
                int(row["bathrooms"]),
                row.get("size"),
                _dump_list(row.get("amenities", ())),
                _dump_flags(row.get("features") or {}, FEATURE_FLAGS),
                _dump_flags(row.get("utilities") or {}, UTILITY_FLAGS),
                row.get("status", AvailabilityStatus.AVAILABLE.value),
            )
            for row in rows
        ]
        if not payload:
            return 0
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.executemany(
                """
                INSERT INTO Listings (
                    title, address, city, state, rent, bedrooms, bathrooms,
                    size, amenities, features, utilities, status
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                payload,
            )
            conn.commit()
        return len(payload)

    def create_tenant(self, preference: PreferenceSpec, name: str = "") -> str:
        """Insert a tenant preference row and return the created id."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO TenantPreferences (
                    name, budget_min, budget_max, preferred_location,
                    required_amenities, min_bedrooms, min_bathrooms,
                    max_commute, features, utilities
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    name,
                    preference.budget_min,
                    preference.budget_max,
                    preference.preferred_location,
                    _dump_list(preference.required_amenities),
                    preference.min_bedrooms,
                    preference.min_bathrooms,
                    preference.max_commute,
                    _dump_flags(dict(preference.features), FEATURE_FLAGS),
                    _dump_flags(dict(preference.utilities), UTILITY_FLAGS),
                ),
            )
            conn.commit()
            return str(cursor.lastrowid)

    def get_listing(self, listing_id: str) -> Optional[Candidate]:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT * FROM Listings WHERE id = ?;", (listing_id,))
                row = cursor.fetchone()
        except sqlite3.Error as exc:
            raise DataSourceUnavailableError(f"Listing lookup failed: {exc}") from exc
        if row is None:
            return None
        return _row_to_candidate(row)

    def get_tenant_preference(self, tenant_id: str) -> Optional[PreferenceSpec]:
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT * FROM TenantPreferences WHERE id = ?;", (tenant_id,))
                row = cursor.fetchone()
        except sqlite3.Error as exc:
            raise DataSourceUnavailableError(f"Tenant lookup failed: {exc}") from exc
        if row is None:
            return None
        return _row_to_preference(row)

    def find_candidates(self, criteria: CandidateQuery, limit: int) -> list[Candidate]:
        """Return listings passing the hard filters in insertion order."""
        clauses = [
            "status = ?",
            "rent >= ?",
            "rent <= ?",
            "bedrooms >= ?",
            "bathrooms >= ?",
        ]
        params: list[Any] = [
            criteria.status,
            criteria.budget_min,
            criteria.budget_max,
            criteria.min_bedrooms,
            criteria.min_bathrooms,
        ]
        if criteria.location:
            clauses.append("(instr(lower(city), lower(?)) > 0 OR instr(lower(address), lower(?)) > 0)")
            params.extend([criteria.location, criteria.location])
        if criteria.amenities:
            placeholders = ",".join("?" for _ in criteria.amenities)
            clauses.append(
                f"""
                EXISTS (
                    SELECT 1 FROM json_each(Listings.amenities)
                    WHERE lower(trim(json_each.value)) IN ({placeholders})
                )
                """
            )
            params.extend(amenity.strip().lower() for amenity in criteria.amenities)
        params.append(int(limit))

        query = f"""
            SELECT *
            FROM Listings
            WHERE {' AND '.join(clauses)}
            ORDER BY id ASC
            LIMIT ?;
        """
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(query, tuple(params))
                rows = cursor.fetchall()
        except sqlite3.Error as exc:
            raise DataSourceUnavailableError(f"Listing query failed: {exc}") from exc
        return [_row_to_candidate(row) for row in rows]

    def find_requesters(self, criteria: RequesterQuery) -> list[PreferenceSpec]:
        """Return stored tenant preferences in insertion order."""
        query = "SELECT * FROM TenantPreferences"
        params: list[Any] = []
        if criteria.requester_ids is not None:
            if not criteria.requester_ids:
                return []
            placeholders = ",".join("?" for _ in criteria.requester_ids)
            query += f" WHERE id IN ({placeholders})"
            params.extend(criteria.requester_ids)
        query += " ORDER BY id ASC"
        if criteria.limit is not None:
            query += " LIMIT ?"
            params.append(int(criteria.limit))
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(query + ";", tuple(params))
                rows = cursor.fetchall()
        except sqlite3.Error as exc:
            raise DataSourceUnavailableError(f"Tenant query failed: {exc}") from exc
        return [_row_to_preference(row) for row in rows]

    def list_listings(self, status: Optional[str] = AvailabilityStatus.AVAILABLE.value) -> list[Candidate]:
        """Return listings in insertion order, optionally restricted to one status."""
        query = "SELECT * FROM Listings"
        params: tuple[Any, ...] = ()
        if status is not None:
            query += " WHERE status = ?"
            params = (status,)
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute(query + " ORDER BY id ASC;", params)
                rows = cursor.fetchall()
        except sqlite3.Error as exc:
            raise DataSourceUnavailableError(f"Listing scan failed: {exc}") from exc
        return [_row_to_candidate(row) for row in rows]

    def save_match_logs(
        self,
        matches: Iterable[tuple[Optional[str], str, int]],
        algorithm: str,
    ) -> None:
        """Persist (tenant_id, listing_id, score) rows for audit trails."""
        rows = [
            (tenant_id, listing_id, int(score), algorithm)
            for tenant_id, listing_id, score in matches
        ]
        if not rows:
            return
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.executemany(
                    """
                    INSERT INTO MatchLogs (tenant_id, listing_id, match_score, algorithm)
                    VALUES (?, ?, ?, ?);
                    """,
                    rows,
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise DataSourceUnavailableError(f"Match log write failed: {exc}") from exc

    def add_search_history(self, tenant_id: str, listing_ids: Sequence[str]) -> None:
        if not listing_ids:
            return
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.executemany(
                    """
                    INSERT OR IGNORE INTO SearchHistory (tenant_id, listing_id)
                    VALUES (?, ?);
                    """,
                    [(tenant_id, listing_id) for listing_id in listing_ids],
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise DataSourceUnavailableError(f"Search history write failed: {exc}") from exc

    def list_search_history(self, tenant_id: str) -> list[str]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT listing_id
                FROM SearchHistory
                WHERE tenant_id = ?
                ORDER BY id ASC;
                """,
                (tenant_id,),
            )
            return [str(row["listing_id"]) for row in cursor.fetchall()]

    def count_match_logs(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM MatchLogs;")
            return int(cursor.fetchone()["count"])

    def count_listings(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM Listings;")
            return int(cursor.fetchone()["count"])
