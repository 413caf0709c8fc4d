"""
Data models for storage layer.

Defines the pricing configuration singleton and per-user monthly quota
records. Records are immutable snapshots of a row; every mutation goes through
the repository, which returns a fresh snapshot.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from listing_guard.core.period import Period
from listing_guard.core.phases import Phase

SECONDS_PER_DAY = 86400


def compute_pack_discounts(
    standard_price: float,
    pack_5_price: float,
    pack_10_price: float
) -> Tuple[float, float]:
    """Derive pack discount percentages from the unit price.

    A pack that costs as much as (or more than) buying its listings one by one
    carries no discount.

    Args:
        standard_price: Price of one standard listing
        pack_5_price: Price of the 5-listing pack
        pack_10_price: Price of the 10-listing pack

    Returns:
        (pack_5_discount, pack_10_discount) as percentages
    """
    if standard_price <= 0:
        return 0.0, 0.0

    def _discount(count: int, pack_price: float) -> float:
        full_price = standard_price * count
        if pack_price >= full_price:
            return 0.0
        return (full_price - pack_price) * 100 / full_price

    return _discount(5, pack_5_price), _discount(10, pack_10_price)


@dataclass(frozen=True)
class PricingConfig:
    """Snapshot of the global monetization configuration.

    Exactly one row of this exists per deployment. It is created lazily with
    defaults and only changed by admin actions, each recording `updated_by`.
    """
    current_phase: Phase
    launch_phase_end_date: datetime
    launch_phase_message: str
    monthly_free_listings: int
    paid_system_active: bool
    standard_listing_price: float
    currency: str
    premium_boost_price: float
    featured_color_price: float
    pack_5_listings_price: float
    pack_10_listings_price: float
    pack_5_discount: float
    pack_10_discount: float
    created_at: datetime
    updated_at: datetime
    updated_by: Optional[str] = None

    def is_free_launch_active(self, now: datetime) -> bool:
        """Launch shortcut applies only while in launch_free and before the end date."""
        return self.current_phase is Phase.LAUNCH_FREE and now < self.launch_phase_end_date

    def get_current_phase(self) -> Phase:
        return self.current_phase

    def get_days_until_launch_end(self, now: datetime) -> int:
        if not self.is_free_launch_active(now):
            return 0
        remaining = self.launch_phase_end_date - now
        return max(int(remaining.total_seconds() // SECONDS_PER_DAY), 0)

    def get_phase_message(self, remaining: int, now: datetime) -> str:
        """User-facing message for the current phase.

        Args:
            remaining: Free listings left for the user, or -1 for "unlimited"
            now: Current time

        Returns:
            Message string
        """
        if self.is_free_launch_active(now):
            return self.launch_phase_message
        if self.current_phase is Phase.PAID_SYSTEM:
            return f"Price: {self.standard_listing_price:.0f} {self.currency} per listing"
        if remaining >= 0:
            return f"You have {remaining} free listing(s) left this month"
        return f"{self.monthly_free_listings} free listings per month"


@dataclass(frozen=True)
class ListingQuota:
    """One user's free/paid listing counters for one calendar period."""
    user_id: str
    period: Period
    free_listings_limit: int
    free_listings_used: int
    paid_listings: int
    created_at: datetime
    updated_at: datetime

    @property
    def month(self) -> int:
        return self.period.month

    @property
    def year(self) -> int:
        return self.period.year

    @property
    def total_listings(self) -> int:
        return self.free_listings_used + self.paid_listings

    def can_create_free_listing(self) -> bool:
        """Advisory check only; consumption is decided atomically in storage."""
        return self.free_listings_used < self.free_listings_limit

    def remaining_free_listings(self) -> int:
        return max(self.free_listings_limit - self.free_listings_used, 0)

    def get_progress(self) -> float:
        """Share of the free allotment used, as a ratio between 0.0 and 1.0."""
        if self.free_listings_limit <= 0:
            return 0.0
        return min(self.free_listings_used / self.free_listings_limit, 1.0)

    def next_reset_date(self) -> datetime:
        return self.period.reset_date()

    def days_until_reset(self, now: datetime) -> int:
        reset = self.next_reset_date()
        if now >= reset:
            return 0
        return int((reset - now).total_seconds() // SECONDS_PER_DAY)

    def get_period_string(self) -> str:
        return str(self.period)

    def is_current_period(self, now: datetime) -> bool:
        return self.period == Period.of(now)
