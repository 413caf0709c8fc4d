"""
Repository pattern for data access.

Owns every SQL statement that touches the pricing configuration and the
per-user quotas. Each mutation is a single atomic statement or a short
BEGIN IMMEDIATE transaction; nothing here reads a value and writes it back
unconditionally.
"""

import logging
import math
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from listing_guard.config.loader import PricingDefaults
from listing_guard.core.errors import (
    ConfigMissingError,
    InvalidLaunchDateError,
    InvalidPriceFieldError,
    InvalidPriceValueError,
    InvalidTransitionError,
    QuotaExhaustedError,
)
from listing_guard.core.period import Period
from listing_guard.core.phases import Phase, is_final, next_phase
from .db import (
    DEFAULT_BUSY_TIMEOUT,
    DEFAULT_DB_PATH,
    get_connection,
    storage_errors,
    write_transaction,
)
from .models import ListingQuota, PricingConfig, compute_pack_discounts

logger = logging.getLogger(__name__)

# Writable price fields and the smallest value each accepts (inclusive flag).
PRICE_FIELDS = {
    "standard_listing_price": (0.0, False),
    "premium_boost_price": (0.0, True),
    "featured_color_price": (0.0, True),
    "pack_5_listings_price": (0.0, False),
    "pack_10_listings_price": (0.0, False),
}

_CONFIG_COLUMNS = """
    current_phase, launch_phase_end_date, launch_phase_message,
    monthly_free_listings, paid_system_active, standard_listing_price,
    currency, premium_boost_price, featured_color_price,
    pack_5_listings_price, pack_10_listings_price, pack_5_discount,
    pack_10_discount, updated_by, created_at, updated_at
"""

_QUOTA_COLUMNS = """
    user_id, month, year, free_listings_limit, free_listings_used,
    paid_listings, created_at, updated_at
"""


@dataclass(frozen=True)
class PeriodTotals:
    """Aggregate quota counters for one period across all users."""
    free_listings_used: int
    paid_listings: int
    active_users: int


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create all tables if they don't exist.

    `pricing_config` can hold only the row with id 1. `listing_quota` is
    unique per (user, period) and its CHECK constraint refuses any write that
    would push usage past the limit.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        with storage_errors("initialize_schema"):
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS pricing_config (
                    id INTEGER PRIMARY KEY CHECK (id = 1),
                    current_phase TEXT NOT NULL
                        CHECK (current_phase IN ('launch_free', 'credit_system', 'paid_system')),
                    launch_phase_end_date TEXT NOT NULL,
                    launch_phase_message TEXT NOT NULL,
                    monthly_free_listings INTEGER NOT NULL CHECK (monthly_free_listings >= 0),
                    paid_system_active INTEGER NOT NULL DEFAULT 0,
                    standard_listing_price REAL NOT NULL,
                    currency TEXT NOT NULL,
                    premium_boost_price REAL NOT NULL,
                    featured_color_price REAL NOT NULL,
                    pack_5_listings_price REAL NOT NULL,
                    pack_10_listings_price REAL NOT NULL,
                    pack_5_discount REAL NOT NULL DEFAULT 0,
                    pack_10_discount REAL NOT NULL DEFAULT 0,
                    updated_by TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS listing_quota (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    month INTEGER NOT NULL CHECK (month BETWEEN 1 AND 12),
                    year INTEGER NOT NULL CHECK (year >= 2025),
                    free_listings_limit INTEGER NOT NULL CHECK (free_listings_limit >= 0),
                    free_listings_used INTEGER NOT NULL DEFAULT 0,
                    paid_listings INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (user_id, year, month),
                    CHECK (free_listings_used >= 0 AND free_listings_used <= free_listings_limit)
                );

                CREATE INDEX IF NOT EXISTS idx_listing_quota_period
                    ON listing_quota (year, month);

                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS listings (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'active',
                    created_at TEXT NOT NULL
                );
            """)
    finally:
        conn.close()


class PricingConfigRepository:
    """Access to the global pricing configuration row.

    Reads never take the write lock. Every mutation runs inside one
    BEGIN IMMEDIATE transaction so concurrent admin actions are serialized
    and each sees the result of the previous one.
    """

    def __init__(
        self,
        db_path: str = DEFAULT_DB_PATH,
        defaults: Optional[PricingDefaults] = None,
        timeout: float = DEFAULT_BUSY_TIMEOUT
    ):
        """Initialize the repository.

        Args:
            db_path: Path to SQLite database file
            defaults: Values used when the row is created lazily
            timeout: Seconds to wait for the write lock
        """
        self.db_path = db_path
        self.defaults = defaults or PricingDefaults()
        self.timeout = timeout

    def get_or_create(self, now: datetime) -> PricingConfig:
        """Return the configuration, creating it from defaults if absent.

        Creation is INSERT ... ON CONFLICT DO NOTHING followed by a re-select,
        so concurrent first readers converge on the same single row.

        Raises:
            ConfigMissingError: If the configuration table is missing or the
                row is still absent after creation
            StorageError: On any other driver failure, such as a lock timeout
        """
        conn = get_connection(self.db_path, self.timeout)
        try:
            with storage_errors("get_or_create_config"):
                try:
                    row = self._select(conn)
                except sqlite3.OperationalError as e:
                    if not _is_missing_table(e):
                        raise
                    raise ConfigMissingError(
                        f"Global pricing configuration is unavailable: {e}"
                    ) from e
                if row is None:
                    if self._insert_defaults(conn, now):
                        logger.info("Created global pricing configuration with defaults")
                    row = self._select(conn)
        finally:
            conn.close()

        if row is None:
            raise ConfigMissingError()
        return _row_to_config(row)

    def transition_to_next_phase(self, admin_id: str, now: datetime) -> PricingConfig:
        """Advance the phase by exactly one step.

        Raises:
            InvalidTransitionError: If already at the final phase
        """
        conn = get_connection(self.db_path, self.timeout)
        try:
            with storage_errors("transition_to_next_phase"), write_transaction(conn):
                current = self._locked_config(conn, now)
                if is_final(current.current_phase):
                    raise InvalidTransitionError(
                        f"Already at the final phase ({current.current_phase.value})",
                        current.current_phase.value,
                    )
                target = next_phase(current.current_phase)
                conn.execute(
                    """
                    UPDATE pricing_config
                    SET current_phase = ?, paid_system_active = ?,
                        updated_by = ?, updated_at = ?
                    WHERE id = 1
                    """,
                    (
                        target.value,
                        int(target is Phase.PAID_SYSTEM or current.paid_system_active),
                        admin_id,
                        now.isoformat(),
                    ),
                )
                updated = _row_to_config(self._select(conn))
        finally:
            conn.close()

        logger.info(
            "Phase transition %s -> %s by admin %s",
            current.current_phase.value, target.value, admin_id,
        )
        return updated

    def extend_launch_phase(self, new_end_date: datetime, admin_id: str, now: datetime) -> PricingConfig:
        """Move the launch end date while the platform is still in launch_free.

        Raises:
            InvalidLaunchDateError: If new_end_date is not in the future
            InvalidTransitionError: If the launch phase has already been left
        """
        if new_end_date <= now:
            raise InvalidLaunchDateError(new_end_date)

        conn = get_connection(self.db_path, self.timeout)
        try:
            with storage_errors("extend_launch_phase"), write_transaction(conn):
                current = self._locked_config(conn, now)
                if current.current_phase is not Phase.LAUNCH_FREE:
                    raise InvalidTransitionError(
                        "Launch phase can only be extended while in launch_free",
                        current.current_phase.value,
                    )
                conn.execute(
                    """
                    UPDATE pricing_config
                    SET launch_phase_end_date = ?, updated_by = ?, updated_at = ?
                    WHERE id = 1
                    """,
                    (new_end_date.isoformat(), admin_id, now.isoformat()),
                )
                updated = _row_to_config(self._select(conn))
        finally:
            conn.close()

        logger.info(
            "Launch phase extended from %s to %s by admin %s",
            current.launch_phase_end_date.isoformat(), new_end_date.isoformat(), admin_id,
        )
        return updated

    def update_prices(self, prices: Dict[str, float], admin_id: str, now: datetime) -> PricingConfig:
        """Apply a set of price changes atomically and recompute pack discounts.

        All fields are validated before anything is written, so an update
        either applies completely or not at all.

        Args:
            prices: Mapping of price field name to new value
            admin_id: Acting administrator
            now: Current time

        Returns:
            The updated configuration

        Raises:
            InvalidPriceFieldError: If a field is outside the writable whitelist
            InvalidPriceValueError: If a value is out of range or the update is empty
        """
        validated = validate_price_update(prices)

        conn = get_connection(self.db_path, self.timeout)
        try:
            with storage_errors("update_prices"), write_transaction(conn):
                current = self._locked_config(conn, now)
                merged = {
                    name: getattr(current, name) for name in PRICE_FIELDS
                }
                merged.update(validated)
                pack_5_discount, pack_10_discount = compute_pack_discounts(
                    merged["standard_listing_price"],
                    merged["pack_5_listings_price"],
                    merged["pack_10_listings_price"],
                )
                conn.execute(
                    """
                    UPDATE pricing_config
                    SET standard_listing_price = ?, premium_boost_price = ?,
                        featured_color_price = ?, pack_5_listings_price = ?,
                        pack_10_listings_price = ?, pack_5_discount = ?,
                        pack_10_discount = ?, updated_by = ?, updated_at = ?
                    WHERE id = 1
                    """,
                    (
                        merged["standard_listing_price"],
                        merged["premium_boost_price"],
                        merged["featured_color_price"],
                        merged["pack_5_listings_price"],
                        merged["pack_10_listings_price"],
                        pack_5_discount,
                        pack_10_discount,
                        admin_id,
                        now.isoformat(),
                    ),
                )
                updated = _row_to_config(self._select(conn))
        finally:
            conn.close()

        logger.info("Prices updated by admin %s: %s", admin_id, validated)
        return updated

    def _locked_config(self, conn: sqlite3.Connection, now: datetime) -> PricingConfig:
        self._insert_defaults(conn, now)
        return _row_to_config(self._select(conn))

    def _select(self, conn: sqlite3.Connection) -> Optional[sqlite3.Row]:
        return conn.execute(f"SELECT {_CONFIG_COLUMNS} FROM pricing_config WHERE id = 1").fetchone()

    def _insert_defaults(self, conn: sqlite3.Connection, now: datetime) -> bool:
        """Insert the default row unless one exists; returns True if inserted."""
        d = self.defaults
        pack_5_discount, pack_10_discount = compute_pack_discounts(
            d.standard_listing_price, d.pack_5_listings_price, d.pack_10_listings_price
        )
        cursor = conn.execute(
            f"""
            INSERT INTO pricing_config (id, {_CONFIG_COLUMNS})
            VALUES (1, ?, ?, ?, ?, 0, ?, ?, ?, ?, ?, ?, ?, ?, NULL, ?, ?)
            ON CONFLICT (id) DO NOTHING
            """,
            (
                Phase.LAUNCH_FREE.value,
                d.launch_phase_end_date.isoformat(),
                d.launch_phase_message,
                d.monthly_free_listings,
                d.standard_listing_price,
                d.currency,
                d.premium_boost_price,
                d.featured_color_price,
                d.pack_5_listings_price,
                d.pack_10_listings_price,
                pack_5_discount,
                pack_10_discount,
                now.isoformat(),
                now.isoformat(),
            ),
        )
        return cursor.rowcount == 1


def validate_price_update(prices: Dict[str, float]) -> Dict[str, float]:
    """Check a price update against the whitelist and value ranges.

    Raises:
        InvalidPriceFieldError: If any field is not a writable price
        InvalidPriceValueError: If a value is not a finite number, out of
            range, or the update is empty
    """
    if not prices:
        raise InvalidPriceValueError("prices", prices, "no price fields given")

    unknown = set(prices) - set(PRICE_FIELDS)
    if unknown:
        raise InvalidPriceFieldError(unknown, PRICE_FIELDS)

    validated = {}
    for name, value in prices.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidPriceValueError(name, value, "must be a number")
        if not math.isfinite(value):
            raise InvalidPriceValueError(name, value, "must be a finite number")
        minimum, inclusive = PRICE_FIELDS[name]
        if value < minimum or (value == minimum and not inclusive):
            bound = ">=" if inclusive else ">"
            raise InvalidPriceValueError(name, value, f"must be {bound} {minimum:g}")
        validated[name] = float(value)
    return validated


class QuotaRepository:
    """Access to per-user, per-period listing quotas."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH, timeout: float = DEFAULT_BUSY_TIMEOUT):
        self.db_path = db_path
        self.timeout = timeout

    def get_or_create_for_period(
        self,
        user_id: str,
        period: Period,
        free_listings_limit: int,
        now: datetime
    ) -> ListingQuota:
        """Return the user's quota for a period, creating it on first touch.

        Args:
            user_id: User the quota belongs to
            period: Calendar period
            free_listings_limit: Allotment used only if the row is created now
            now: Creation timestamp

        Returns:
            The (possibly new) quota
        """
        conn = get_connection(self.db_path, self.timeout)
        try:
            with storage_errors("get_or_create_for_period"):
                row = self._select(conn, user_id, period)
                if row is None:
                    self._insert_ignore(conn, user_id, period, free_listings_limit, now)
                    row = self._select(conn, user_id, period)
        finally:
            conn.close()
        return _row_to_quota(row)

    def consume_free_listing(
        self,
        user_id: str,
        period: Period,
        free_listings_limit: int,
        now: datetime
    ) -> ListingQuota:
        """Use one free listing if, and only if, one is still available.

        The increment is a single conditional UPDATE guarded by
        `free_listings_used < free_listings_limit`; a zero row count means the
        allotment was already used up, however many callers raced for it.

        Returns:
            The quota after consumption

        Raises:
            QuotaExhaustedError: If no free listing was left
        """
        conn = get_connection(self.db_path, self.timeout)
        try:
            with storage_errors("consume_free_listing"), write_transaction(conn):
                self._insert_ignore(conn, user_id, period, free_listings_limit, now)
                cursor = conn.execute(
                    """
                    UPDATE listing_quota
                    SET free_listings_used = free_listings_used + 1, updated_at = ?
                    WHERE user_id = ? AND year = ? AND month = ?
                      AND free_listings_used < free_listings_limit
                    """,
                    (now.isoformat(), user_id, period.year, period.month),
                )
                quota = _row_to_quota(self._select(conn, user_id, period))
                if cursor.rowcount == 0:
                    raise QuotaExhaustedError(
                        user_id, quota.free_listings_used, quota.free_listings_limit
                    )
        finally:
            conn.close()

        logger.debug(
            "User %s consumed free listing %d/%d for %s",
            user_id, quota.free_listings_used, quota.free_listings_limit, period,
        )
        return quota

    def add_paid_listing(
        self,
        user_id: str,
        period: Period,
        free_listings_limit: int,
        now: datetime
    ) -> ListingQuota:
        """Count one paid listing for the period; always succeeds."""
        conn = get_connection(self.db_path, self.timeout)
        try:
            with storage_errors("add_paid_listing"), write_transaction(conn):
                self._insert_ignore(conn, user_id, period, free_listings_limit, now)
                conn.execute(
                    """
                    UPDATE listing_quota
                    SET paid_listings = paid_listings + 1, updated_at = ?
                    WHERE user_id = ? AND year = ? AND month = ?
                    """,
                    (now.isoformat(), user_id, period.year, period.month),
                )
                quota = _row_to_quota(self._select(conn, user_id, period))
        finally:
            conn.close()

        logger.debug("User %s recorded paid listing #%d for %s", user_id, quota.paid_listings, period)
        return quota

    def get_history(self, user_id: str, limit: int) -> List[ListingQuota]:
        """Return the user's most recent quotas, newest period first."""
        conn = get_connection(self.db_path, self.timeout)
        try:
            with storage_errors("get_history"):
                rows = conn.execute(
                    f"""
                    SELECT {_QUOTA_COLUMNS} FROM listing_quota
                    WHERE user_id = ?
                    ORDER BY year DESC, month DESC
                    LIMIT ?
                    """,
                    (user_id, limit),
                ).fetchall()
        finally:
            conn.close()
        return [_row_to_quota(row) for row in rows]

    def get_period_totals(self, period: Period) -> PeriodTotals:
        """Sum free and paid usage for a period and count users with any activity."""
        conn = get_connection(self.db_path, self.timeout)
        try:
            with storage_errors("get_period_totals"):
                row = conn.execute(
                    """
                    SELECT
                        COALESCE(SUM(free_listings_used), 0),
                        COALESCE(SUM(paid_listings), 0),
                        COALESCE(SUM(free_listings_used > 0 OR paid_listings > 0), 0)
                    FROM listing_quota
                    WHERE year = ? AND month = ?
                    """,
                    (period.year, period.month),
                ).fetchone()
        finally:
            conn.close()
        return PeriodTotals(
            free_listings_used=row[0],
            paid_listings=row[1],
            active_users=row[2],
        )

    def delete_before(self, cutoff: Period) -> int:
        """Delete every quota whose period is strictly before `cutoff`.

        Returns:
            Number of deleted rows
        """
        conn = get_connection(self.db_path, self.timeout)
        try:
            with storage_errors("delete_before"), write_transaction(conn):
                cursor = conn.execute(
                    """
                    DELETE FROM listing_quota
                    WHERE year < ? OR (year = ? AND month < ?)
                    """,
                    (cutoff.year, cutoff.year, cutoff.month),
                )
                deleted = cursor.rowcount
        finally:
            conn.close()
        return deleted

    def _select(self, conn: sqlite3.Connection, user_id: str, period: Period) -> Optional[sqlite3.Row]:
        return conn.execute(
            f"""
            SELECT {_QUOTA_COLUMNS} FROM listing_quota
            WHERE user_id = ? AND year = ? AND month = ?
            """,
            (user_id, period.year, period.month),
        ).fetchone()

    def _insert_ignore(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        period: Period,
        free_listings_limit: int,
        now: datetime
    ) -> None:
        cursor = conn.execute(
            f"""
            INSERT INTO listing_quota ({_QUOTA_COLUMNS})
            VALUES (?, ?, ?, ?, 0, 0, ?, ?)
            ON CONFLICT (user_id, year, month) DO NOTHING
            """,
            (
                user_id,
                period.month,
                period.year,
                free_listings_limit,
                now.isoformat(),
                now.isoformat(),
            ),
        )
        if cursor.rowcount == 1:
            logger.debug(
                "Created quota for user %s in %s with limit %d",
                user_id, period, free_listings_limit,
            )


def _is_missing_table(error: sqlite3.OperationalError) -> bool:
    return str(error).startswith("no such table")


def _row_to_config(row: sqlite3.Row) -> PricingConfig:
    return PricingConfig(
        current_phase=Phase(row["current_phase"]),
        launch_phase_end_date=datetime.fromisoformat(row["launch_phase_end_date"]),
        launch_phase_message=row["launch_phase_message"],
        monthly_free_listings=row["monthly_free_listings"],
        paid_system_active=bool(row["paid_system_active"]),
        standard_listing_price=row["standard_listing_price"],
        currency=row["currency"],
        premium_boost_price=row["premium_boost_price"],
        featured_color_price=row["featured_color_price"],
        pack_5_listings_price=row["pack_5_listings_price"],
        pack_10_listings_price=row["pack_10_listings_price"],
        pack_5_discount=row["pack_5_discount"],
        pack_10_discount=row["pack_10_discount"],
        updated_by=row["updated_by"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _row_to_quota(row: sqlite3.Row) -> ListingQuota:
    return ListingQuota(
        user_id=row["user_id"],
        period=Period(year=row["year"], month=row["month"]),
        free_listings_limit=row["free_listings_limit"],
        free_listings_used=row["free_listings_used"],
        paid_listings=row["paid_listings"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )
