"""
User and listing stores consumed by the quota engine.

The engine only asks these for existence checks and counts; it never creates
or mutates users or listings. The SQLite implementations read the `users`
and `listings` tables created by `initialize_schema`, and carry small insert
helpers for seeding.
"""

from datetime import datetime, timezone
from typing import Optional, Protocol

from listing_guard.core.period import Period
from .db import DEFAULT_BUSY_TIMEOUT, DEFAULT_DB_PATH, get_connection, storage_errors

LISTING_STATUS_ACTIVE = "active"


def to_utc(moment: datetime) -> datetime:
    """Convert to UTC, taking naive values as UTC.

    Period counts compare stored ISO strings, which only order correctly when
    every row shares the same offset.
    """
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class UserStore(Protocol):
    def exists(self, user_id: str) -> bool: ...

    def count(self) -> int: ...


class ListingStore(Protocol):
    def count_total(self) -> int: ...

    def count_active(self) -> int: ...

    def count_created_in(self, period: Period) -> int: ...


class SqliteUserStore:
    """User lookups backed by the `users` table."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH, timeout: float = DEFAULT_BUSY_TIMEOUT):
        self.db_path = db_path
        self.timeout = timeout

    def exists(self, user_id: str) -> bool:
        conn = get_connection(self.db_path, self.timeout)
        try:
            with storage_errors("user_exists"):
                row = conn.execute("SELECT 1 FROM users WHERE id = ?", (user_id,)).fetchone()
        finally:
            conn.close()
        return row is not None

    def count(self) -> int:
        conn = get_connection(self.db_path, self.timeout)
        try:
            with storage_errors("count_users"):
                row = conn.execute("SELECT COUNT(*) FROM users").fetchone()
        finally:
            conn.close()
        return row[0]

    def add_user(self, user_id: str, created_at: datetime) -> None:
        """Register a user id; re-adding an existing id is a no-op."""
        conn = get_connection(self.db_path, self.timeout)
        try:
            with storage_errors("add_user"):
                conn.execute(
                    "INSERT INTO users (id, created_at) VALUES (?, ?) ON CONFLICT (id) DO NOTHING",
                    (user_id, to_utc(created_at).isoformat()),
                )
        finally:
            conn.close()


class SqliteListingStore:
    """Listing counts backed by the `listings` table."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH, timeout: float = DEFAULT_BUSY_TIMEOUT):
        self.db_path = db_path
        self.timeout = timeout

    def count_total(self) -> int:
        return self._count("count_listings", "SELECT COUNT(*) FROM listings")

    def count_active(self) -> int:
        return self._count(
            "count_active_listings",
            "SELECT COUNT(*) FROM listings WHERE status = ?",
            (LISTING_STATUS_ACTIVE,),
        )

    def count_created_in(self, period: Period) -> int:
        return self._count(
            "count_period_listings",
            "SELECT COUNT(*) FROM listings WHERE created_at >= ? AND created_at < ?",
            (period.start().isoformat(), period.reset_date().isoformat()),
        )

    def add_listing(
        self,
        user_id: str,
        created_at: datetime,
        status: str = LISTING_STATUS_ACTIVE
    ) -> Optional[int]:
        """Insert a listing row and return its id."""
        conn = get_connection(self.db_path, self.timeout)
        try:
            with storage_errors("add_listing"):
                cursor = conn.execute(
                    "INSERT INTO listings (user_id, status, created_at) VALUES (?, ?, ?)",
                    (user_id, status, to_utc(created_at).isoformat()),
                )
        finally:
            conn.close()
        return cursor.lastrowid

    def _count(self, operation: str, query: str, params: tuple = ()) -> int:
        conn = get_connection(self.db_path, self.timeout)
        try:
            with storage_errors(operation):
                row = conn.execute(query, params).fetchone()
        finally:
            conn.close()
        return row[0]
