"""
Structured results returned by the quota engine.

Quota status is a tagged union: `UnlimitedQuotaStatus` while the free launch
runs, `MeteredQuotaStatus` afterwards. The `kind` field carries the tag for
serializers; callers can also branch with isinstance().
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from .phases import Phase


@dataclass(frozen=True)
class PremiumOptions:
    """Add-on price menu, offered once the paid system is active."""
    boost_price: float
    featured_price: float
    pack_5_price: float
    pack_10_price: float
    pack_5_discount: float
    pack_10_discount: float


@dataclass(frozen=True)
class EligibilityReport:
    """Answer to "may this user publish for free right now", with pricing context.

    The quota fields are only set when payment is required and the user has
    a metered quota.
    """
    can_create_free: bool
    current_phase: Phase
    standard_price: float
    currency: str
    reason: Optional[str] = None
    quota_reset_date: Optional[datetime] = None
    days_until_reset: Optional[int] = None
    used_this_period: Optional[int] = None
    limit_this_period: Optional[int] = None
    premium_options: Optional[PremiumOptions] = None

    @property
    def requires_payment(self) -> bool:
        return not self.can_create_free


@dataclass(frozen=True)
class UnlimitedQuotaStatus:
    """Quota status during the free launch phase."""
    current_phase: Phase
    launch_end_date: datetime
    days_until_launch_end: int
    currency: str
    standard_price: float
    phase_name: str
    phase_description: str
    message: str
    kind: str = field(default="unlimited", init=False)

    @property
    def can_create_free(self) -> bool:
        return True


@dataclass(frozen=True)
class MeteredQuotaStatus:
    """Quota status once monthly allotments apply."""
    current_phase: Phase
    launch_end_date: datetime
    currency: str
    standard_price: float
    period: str
    monthly_limit: int
    used_this_period: int
    remaining_free: int
    paid_this_period: int
    progress: float
    reset_date: datetime
    days_until_reset: int
    phase_name: str
    phase_description: str
    message: str
    kind: str = field(default="metered", init=False)

    @property
    def can_create_free(self) -> bool:
        return self.remaining_free > 0

    @property
    def total_this_period(self) -> int:
        return self.used_this_period + self.paid_this_period


QuotaStatus = Union[UnlimitedQuotaStatus, MeteredQuotaStatus]


@dataclass(frozen=True)
class QuotaSummary:
    """Compact status for front-ends. `remaining_free` is None when unlimited."""
    can_create_free: bool
    unlimited_free: bool
    remaining_free: Optional[int]
    message: str
    current_phase: Phase
    price_per_listing: Optional[float] = None
    currency: Optional[str] = None

    @property
    def requires_payment(self) -> bool:
        return not self.can_create_free


@dataclass(frozen=True)
class PlatformStats:
    """Platform-wide counters for the current period.

    `revenue_this_period` is zero while the launch phase is active, even if
    paid listings were recorded.
    """
    current_phase: Phase
    is_launch_active: bool
    days_until_launch_end: int
    current_month: int
    current_year: int
    total_users: int
    total_listings: int
    active_listings: int
    listings_created_this_period: int
    free_listings_this_period: int
    paid_listings_this_period: int
    revenue_this_period: float
    currency: str
    active_users_this_period: int

    @property
    def total_listings_this_period(self) -> int:
        return self.free_listings_this_period + self.paid_listings_this_period


@dataclass(frozen=True)
class PricingInfo:
    """Full pricing sheet plus phase state."""
    current_phase: Phase
    is_launch_active: bool
    days_until_launch_end: int
    launch_end_date: datetime
    standard_price: float
    premium_boost_price: float
    featured_color_price: float
    currency: str
    pack_5_price: float
    pack_10_price: float
    pack_5_discount: float
    pack_10_discount: float
    monthly_free_limit: int
    paid_system_active: bool
    phase_message: str
    updated_by: Optional[str]
    updated_at: datetime


def to_dict(report: Any) -> Dict[str, Any]:
    """Flatten a report into JSON-friendly primitives.

    Phases become their string value and datetimes ISO-8601 strings.
    """
    return _plain(asdict(report))


def _plain(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    if isinstance(value, Phase):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def history_to_dicts(quotas: List[Any]) -> List[Dict[str, Any]]:
    """Serialize a quota history, one dict per period, newest first."""
    return [
        {
            "period": quota.get_period_string(),
            "month": quota.month,
            "year": quota.year,
            "free_used": quota.free_listings_used,
            "free_limit": quota.free_listings_limit,
            "free_remaining": quota.remaining_free_listings(),
            "paid_listings": quota.paid_listings,
            "total_listings": quota.total_listings,
            "progress": quota.get_progress(),
        }
        for quota in quotas
    ]
