"""
Quota engine.

Decides, per listing-creation attempt, whether a user may publish for free,
records consumption, and exposes phase and price management to admins.

Decision order:
1. Free launch active - always free, no quota is read or written
2. Otherwise          - the user's quota for the current period decides

Free consumption is a single conditional write in storage. The read-only
`can_create_free_listing` is advisory (for UX) and never a precondition for
`consume_free_listing`.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from listing_guard.config.loader import Settings
from listing_guard.storage.directory import (
    ListingStore,
    SqliteListingStore,
    SqliteUserStore,
    UserStore,
)
from listing_guard.storage.models import ListingQuota, PricingConfig
from listing_guard.storage.repository import PricingConfigRepository, QuotaRepository
from .errors import InvalidUserError, QuotaExhaustedError
from .period import Period
from .phases import Phase
from .reports import (
    EligibilityReport,
    MeteredQuotaStatus,
    PlatformStats,
    PremiumOptions,
    PricingInfo,
    QuotaStatus,
    QuotaSummary,
    UnlimitedQuotaStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_PERIODS = 6
DEFAULT_RETENTION_MONTHS = 6

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QuotaEngine:
    """Orchestrates the pricing configuration and per-user quotas.

    The engine holds no mutable state of its own. Every call reads the
    configuration from storage, so admin changes apply to the very next
    request in every worker.
    """

    def __init__(
        self,
        pricing: PricingConfigRepository,
        quotas: QuotaRepository,
        users: UserStore,
        listings: ListingStore,
        clock: Optional[Clock] = None,
        retention_months: int = DEFAULT_RETENTION_MONTHS,
        history_periods: int = DEFAULT_HISTORY_PERIODS
    ):
        """Initialize the engine with its collaborators.

        Args:
            pricing: Repository for the global pricing configuration
            quotas: Repository for per-user quotas
            users: User store for existence checks and counts
            listings: Listing store for platform counts
            clock: Returns the current timezone-aware time (defaults to UTC now)
            retention_months: Months of quota history kept by cleanup
            history_periods: Default number of periods returned by history
        """
        self.pricing = pricing
        self.quotas = quotas
        self.users = users
        self.listings = listings
        self.clock = clock or utc_now
        self.retention_months = retention_months
        self.history_periods = history_periods

    # Configuration

    def get_global_config(self) -> PricingConfig:
        return self.pricing.get_or_create(self.clock())

    def is_launch_phase_active(self) -> bool:
        return self.get_global_config().is_free_launch_active(self.clock())

    def get_or_create_current_quota(self, user_id: str) -> ListingQuota:
        now = self.clock()
        config = self.pricing.get_or_create(now)
        return self.quotas.get_or_create_for_period(
            user_id, Period.of(now), config.monthly_free_listings, now
        )

    # Listing-creation workflow

    def can_create_free_listing(self, user_id: str) -> Tuple[bool, Optional[ListingQuota]]:
        """Advisory check of whether the user may publish for free.

        Returns:
            (True, None) during the free launch, otherwise the verdict and the
            user's current-period quota
        """
        now = self.clock()
        return self._free_verdict(user_id, self.pricing.get_or_create(now), now)

    def consume_free_listing(self, user_id: str) -> Optional[ListingQuota]:
        """Use one free listing for the user.

        A no-op during the free launch. Call this once a free publish has
        succeeded.

        Returns:
            The updated quota, or None during the free launch

        Raises:
            QuotaExhaustedError: If the user has no free listings left
        """
        now = self.clock()
        config = self.pricing.get_or_create(now)
        if config.is_free_launch_active(now):
            return None

        try:
            return self.quotas.consume_free_listing(
                user_id, Period.of(now), config.monthly_free_listings, now
            )
        except QuotaExhaustedError:
            logger.warning("User %s has no free listings left for %s", user_id, Period.of(now))
            raise

    def add_paid_listing(self, user_id: str) -> ListingQuota:
        """Count a paid listing. Applies in every phase, launch included."""
        now = self.clock()
        config = self.pricing.get_or_create(now)
        return self.quotas.add_paid_listing(
            user_id, Period.of(now), config.monthly_free_listings, now
        )

    def check_listing_eligibility(self, user_id: str) -> EligibilityReport:
        """Combine the free-listing verdict with the pricing a paid path would need."""
        now = self.clock()
        config = self.pricing.get_or_create(now)
        can_create_free, quota = self._free_verdict(user_id, config, now)

        quota_fields = {}
        if not can_create_free and quota is not None:
            quota_fields = dict(
                reason=f"You have used your {quota.free_listings_limit} free listings this month",
                quota_reset_date=quota.next_reset_date(),
                days_until_reset=quota.days_until_reset(now),
                used_this_period=quota.free_listings_used,
                limit_this_period=quota.free_listings_limit,
            )

        premium_options = None
        if config.paid_system_active:
            premium_options = PremiumOptions(
                boost_price=config.premium_boost_price,
                featured_price=config.featured_color_price,
                pack_5_price=config.pack_5_listings_price,
                pack_10_price=config.pack_10_listings_price,
                pack_5_discount=config.pack_5_discount,
                pack_10_discount=config.pack_10_discount,
            )

        return EligibilityReport(
            can_create_free=can_create_free,
            current_phase=config.current_phase,
            standard_price=config.standard_listing_price,
            currency=config.currency,
            premium_options=premium_options,
            **quota_fields,
        )

    # Reporting

    def get_user_quota_status(self, user_id: str) -> QuotaStatus:
        """Phase-tagged quota status for one user.

        Raises:
            InvalidUserError: If the user does not exist
        """
        self._require_user(user_id)
        now = self.clock()
        config = self.pricing.get_or_create(now)

        if config.is_free_launch_active(now):
            return UnlimitedQuotaStatus(
                current_phase=config.current_phase,
                launch_end_date=config.launch_phase_end_date,
                days_until_launch_end=config.get_days_until_launch_end(now),
                currency=config.currency,
                standard_price=config.standard_listing_price,
                phase_name=Phase.LAUNCH_FREE.display_name,
                phase_description="Unlimited free listings",
                message=config.get_phase_message(-1, now),
            )

        quota = self.quotas.get_or_create_for_period(
            user_id, Period.of(now), config.monthly_free_listings, now
        )
        remaining = quota.remaining_free_listings()

        if config.current_phase is Phase.PAID_SYSTEM:
            phase_name = Phase.PAID_SYSTEM.display_name
            description = f"{config.standard_listing_price:.0f} {config.currency} per listing"
        else:
            phase_name = Phase.CREDIT_SYSTEM.display_name
            description = f"{quota.free_listings_limit} free listings per month"

        return MeteredQuotaStatus(
            current_phase=config.current_phase,
            launch_end_date=config.launch_phase_end_date,
            currency=config.currency,
            standard_price=config.standard_listing_price,
            period=quota.get_period_string(),
            monthly_limit=quota.free_listings_limit,
            used_this_period=quota.free_listings_used,
            remaining_free=remaining,
            paid_this_period=quota.paid_listings,
            progress=quota.get_progress(),
            reset_date=quota.next_reset_date(),
            days_until_reset=quota.days_until_reset(now),
            phase_name=phase_name,
            phase_description=description,
            message=config.get_phase_message(remaining, now),
        )

    def get_quota_summary(self, user_id: str) -> QuotaSummary:
        """Compact status for front-ends, with the price when payment is due."""
        status = self.get_user_quota_status(user_id)
        unlimited = isinstance(status, UnlimitedQuotaStatus)
        can_create_free = status.can_create_free

        return QuotaSummary(
            can_create_free=can_create_free,
            unlimited_free=unlimited,
            remaining_free=None if unlimited else status.remaining_free,
            message=status.message,
            current_phase=status.current_phase,
            price_per_listing=None if can_create_free else status.standard_price,
            currency=None if can_create_free else status.currency,
        )

    def get_user_quota_history(self, user_id: str, periods: int = 0) -> List[ListingQuota]:
        """Past quotas for a user, most recent period first.

        Args:
            user_id: User to report on
            periods: How many periods to return; non-positive means the default

        Raises:
            InvalidUserError: If the user does not exist
        """
        self._require_user(user_id)
        if periods <= 0:
            periods = self.history_periods
        return self.quotas.get_history(user_id, periods)

    def get_platform_stats(self) -> PlatformStats:
        """Platform counters for the current period.

        Estimated revenue is paid listings times the standard price, counted
        only once the launch phase is over; paid listings recorded during the
        launch still show up in the counts but add nothing to revenue.
        """
        now = self.clock()
        config = self.pricing.get_or_create(now)
        period = Period.of(now)
        totals = self.quotas.get_period_totals(period)

        launch_active = config.is_free_launch_active(now)
        revenue = 0.0
        if not launch_active:
            revenue = totals.paid_listings * config.standard_listing_price

        return PlatformStats(
            current_phase=config.current_phase,
            is_launch_active=launch_active,
            days_until_launch_end=config.get_days_until_launch_end(now),
            current_month=period.month,
            current_year=period.year,
            total_users=self.users.count(),
            total_listings=self.listings.count_total(),
            active_listings=self.listings.count_active(),
            listings_created_this_period=self.listings.count_created_in(period),
            free_listings_this_period=totals.free_listings_used,
            paid_listings_this_period=totals.paid_listings,
            revenue_this_period=revenue,
            currency=config.currency,
            active_users_this_period=totals.active_users,
        )

    def get_pricing_info(self) -> PricingInfo:
        now = self.clock()
        config = self.pricing.get_or_create(now)
        return PricingInfo(
            current_phase=config.current_phase,
            is_launch_active=config.is_free_launch_active(now),
            days_until_launch_end=config.get_days_until_launch_end(now),
            launch_end_date=config.launch_phase_end_date,
            standard_price=config.standard_listing_price,
            premium_boost_price=config.premium_boost_price,
            featured_color_price=config.featured_color_price,
            currency=config.currency,
            pack_5_price=config.pack_5_listings_price,
            pack_10_price=config.pack_10_listings_price,
            pack_5_discount=config.pack_5_discount,
            pack_10_discount=config.pack_10_discount,
            monthly_free_limit=config.monthly_free_listings,
            paid_system_active=config.paid_system_active,
            phase_message=config.get_phase_message(-1, now),
            updated_by=config.updated_by,
            updated_at=config.updated_at,
        )

    # Admin workflow

    def transition_global_to_next_phase(self, admin_id: str) -> PricingConfig:
        """Move the platform one phase forward.

        Raises:
            InvalidUserError: If the admin id does not resolve
            InvalidTransitionError: If already at paid_system
        """
        self._require_user(admin_id)
        return self.pricing.transition_to_next_phase(admin_id, self.clock())

    def extend_launch_phase(self, new_end_date: datetime, admin_id: str) -> PricingConfig:
        """Push back the end of the free launch.

        Naive datetimes are taken as UTC.

        Raises:
            InvalidUserError: If the admin id does not resolve
            InvalidLaunchDateError: If the new date is not in the future
            InvalidTransitionError: If the launch phase has already been left
        """
        self._require_user(admin_id)
        if new_end_date.tzinfo is None:
            new_end_date = new_end_date.replace(tzinfo=timezone.utc)
        return self.pricing.extend_launch_phase(new_end_date, admin_id, self.clock())

    def update_global_prices(self, prices: Dict[str, float], admin_id: str) -> PricingConfig:
        """Change one or more prices.

        Raises:
            InvalidUserError: If the admin id does not resolve
            InvalidPriceFieldError: If a field is not a writable price
            InvalidPriceValueError: If a value is out of range
        """
        self._require_user(admin_id)
        return self.pricing.update_prices(prices, admin_id, self.clock())

    def cleanup_old_quotas(self) -> int:
        """Purge quotas older than the retention horizon.

        The current period and the `retention_months` before it are kept.

        Returns:
            Number of purged quotas
        """
        cutoff = Period.of(self.clock()).months_back(self.retention_months)
        deleted = self.quotas.delete_before(cutoff)
        logger.info("Purged %d quota(s) older than %s", deleted, cutoff)
        return deleted

    def _free_verdict(
        self,
        user_id: str,
        config: PricingConfig,
        now: datetime
    ) -> Tuple[bool, Optional[ListingQuota]]:
        if config.is_free_launch_active(now):
            return True, None
        quota = self.quotas.get_or_create_for_period(
            user_id, Period.of(now), config.monthly_free_listings, now
        )
        return quota.can_create_free_listing(), quota

    def _require_user(self, user_id: str) -> None:
        if not user_id or not self.users.exists(user_id):
            raise InvalidUserError(user_id)


def create_engine(settings: Optional[Settings] = None, clock: Optional[Clock] = None) -> QuotaEngine:
    """Build an engine wired to the SQLite store described by `settings`.

    Args:
        settings: Deployment settings (defaults when omitted)
        clock: Optional clock override

    Returns:
        Ready-to-use QuotaEngine
    """
    settings = settings or Settings()
    db_path = settings.storage.db_path
    timeout = settings.storage.busy_timeout

    return QuotaEngine(
        pricing=PricingConfigRepository(db_path, settings.pricing, timeout),
        quotas=QuotaRepository(db_path, timeout),
        users=SqliteUserStore(db_path, timeout),
        listings=SqliteListingStore(db_path, timeout),
        clock=clock,
        retention_months=settings.quota.retention_months,
        history_periods=settings.quota.history_periods,
    )
