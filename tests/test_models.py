"""
Unit tests for the pricing configuration and quota records.

These cover the pure derived views; no database is involved.
"""

from dataclasses import FrozenInstanceError, replace
from datetime import datetime, timedelta, timezone

import pytest

from listing_guard.core.period import Period
from listing_guard.core.phases import Phase
from listing_guard.storage.models import ListingQuota, PricingConfig, compute_pack_discounts

NOW = datetime(2026, 10, 15, 12, 0, 0, tzinfo=timezone.utc)


def make_config(**overrides) -> PricingConfig:
    values = dict(
        current_phase=Phase.LAUNCH_FREE,
        launch_phase_end_date=NOW + timedelta(days=10, hours=5),
        launch_phase_message="Launch phase - listings are 100% free!",
        monthly_free_listings=3,
        paid_system_active=False,
        standard_listing_price=200.0,
        currency="XOF",
        premium_boost_price=100.0,
        featured_color_price=50.0,
        pack_5_listings_price=800.0,
        pack_10_listings_price=1500.0,
        pack_5_discount=20.0,
        pack_10_discount=25.0,
        created_at=NOW,
        updated_at=NOW,
    )
    values.update(overrides)
    return PricingConfig(**values)


def make_quota(**overrides) -> ListingQuota:
    values = dict(
        user_id="user-1",
        period=Period(year=2026, month=10),
        free_listings_limit=3,
        free_listings_used=0,
        paid_listings=0,
        created_at=NOW,
        updated_at=NOW,
    )
    values.update(overrides)
    return ListingQuota(**values)


class TestPackDiscounts:
    """Test automatic pack discount calculation."""

    def test_default_prices(self):
        assert compute_pack_discounts(200.0, 800.0, 1500.0) == (20.0, 25.0)

    def test_pack_not_cheaper_has_no_discount(self):
        assert compute_pack_discounts(100.0, 500.0, 1200.0) == (0.0, 0.0)

    def test_zero_standard_price(self):
        assert compute_pack_discounts(0.0, 800.0, 1500.0) == (0.0, 0.0)


class TestLaunchPhase:
    """Test the free launch shortcut."""

    def test_active_before_end_date(self):
        assert make_config().is_free_launch_active(NOW)

    def test_inactive_at_end_date(self):
        config = make_config(launch_phase_end_date=NOW)
        assert not config.is_free_launch_active(NOW)

    def test_end_date_does_not_change_phase(self):
        config = make_config(launch_phase_end_date=NOW - timedelta(days=1))
        assert not config.is_free_launch_active(NOW)
        assert config.get_current_phase() is Phase.LAUNCH_FREE

    def test_inactive_after_leaving_launch_phase(self):
        config = make_config(current_phase=Phase.CREDIT_SYSTEM)
        assert not config.is_free_launch_active(NOW)

    def test_days_until_launch_end(self):
        assert make_config().get_days_until_launch_end(NOW) == 10

    def test_days_until_launch_end_when_over(self):
        config = make_config(launch_phase_end_date=NOW - timedelta(hours=1))
        assert config.get_days_until_launch_end(NOW) == 0


class TestPhaseMessage:
    """Test user-facing phase messages."""

    def test_launch_message_while_active(self):
        config = make_config()
        assert config.get_phase_message(-1, NOW) == config.launch_phase_message

    def test_credit_message_with_remaining(self):
        config = make_config(current_phase=Phase.CREDIT_SYSTEM)
        assert config.get_phase_message(2, NOW) == "You have 2 free listing(s) left this month"

    def test_credit_message_without_remaining(self):
        config = make_config(current_phase=Phase.CREDIT_SYSTEM)
        assert config.get_phase_message(-1, NOW) == "3 free listings per month"

    def test_expired_launch_uses_credit_message(self):
        config = make_config(launch_phase_end_date=NOW - timedelta(days=1))
        assert config.get_phase_message(1, NOW) == "You have 1 free listing(s) left this month"

    def test_paid_message(self):
        config = make_config(current_phase=Phase.PAID_SYSTEM, paid_system_active=True)
        assert config.get_phase_message(0, NOW) == "Price: 200 XOF per listing"


class TestListingQuota:
    """Test quota derived views."""

    def test_fresh_quota(self):
        quota = make_quota()
        assert quota.can_create_free_listing()
        assert quota.remaining_free_listings() == 3
        assert quota.get_progress() == 0.0

    def test_exhausted_quota(self):
        quota = make_quota(free_listings_used=3, paid_listings=2)
        assert not quota.can_create_free_listing()
        assert quota.remaining_free_listings() == 0
        assert quota.get_progress() == 1.0
        assert quota.total_listings == 5

    def test_progress_ratio(self):
        assert make_quota(free_listings_used=1, free_listings_limit=4).get_progress() == 0.25

    def test_zero_limit(self):
        quota = make_quota(free_listings_limit=0)
        assert not quota.can_create_free_listing()
        assert quota.get_progress() == 0.0

    def test_next_reset_date(self):
        assert make_quota().next_reset_date() == datetime(2026, 11, 1, tzinfo=timezone.utc)

    def test_next_reset_date_in_december(self):
        quota = make_quota(period=Period(year=2026, month=12))
        assert quota.next_reset_date() == datetime(2027, 1, 1, tzinfo=timezone.utc)

    def test_days_until_reset(self):
        # 16.5 days until 1 November
        assert make_quota().days_until_reset(NOW) == 16

    def test_days_until_reset_for_past_period(self):
        quota = make_quota(period=Period(year=2026, month=8))
        assert quota.days_until_reset(NOW) == 0

    def test_period_string(self):
        assert make_quota().get_period_string() == "October 2026"

    def test_is_current_period(self):
        quota = make_quota()
        assert quota.is_current_period(NOW)
        assert not replace(quota, period=Period(year=2026, month=9)).is_current_period(NOW)

    def test_records_are_immutable(self):
        quota = make_quota()
        with pytest.raises(FrozenInstanceError):
            quota.free_listings_used = 2
