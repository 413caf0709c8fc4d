"""
Unit tests for calendar periods and phase ordering.
"""

from datetime import datetime, timezone

import pytest

from listing_guard.core.period import Period
from listing_guard.core.phases import Phase, is_final, next_phase


class TestPeriodValidation:
    """Test month and year bounds."""

    def test_valid_period(self):
        period = Period(year=2026, month=10)
        assert period.month == 10
        assert period.year == 2026

    @pytest.mark.parametrize("month", [0, 13, -1])
    def test_month_out_of_range_rejected(self, month):
        with pytest.raises(ValueError, match="month"):
            Period(year=2026, month=month)

    def test_year_before_2025_rejected(self):
        with pytest.raises(ValueError, match="year"):
            Period(year=2024, month=12)

    def test_of_moment(self):
        moment = datetime(2026, 2, 28, 23, 59, tzinfo=timezone.utc)
        assert Period.of(moment) == Period(year=2026, month=2)


class TestPeriodOrdering:
    """Test chronological comparison and equality."""

    def test_year_compared_before_month(self):
        assert Period(year=2025, month=12).is_before(Period(year=2026, month=1))
        assert not Period(year=2026, month=1).is_before(Period(year=2025, month=12))

    def test_month_compared_within_year(self):
        assert Period(year=2026, month=3).is_before(Period(year=2026, month=4))

    def test_equal_periods_are_not_before(self):
        period = Period(year=2026, month=5)
        assert not period.is_before(Period(year=2026, month=5))
        assert period == Period(year=2026, month=5)

    def test_sorting(self):
        periods = [
            Period(year=2026, month=2),
            Period(year=2025, month=11),
            Period(year=2026, month=1),
        ]
        assert sorted(periods) == [
            Period(year=2025, month=11),
            Period(year=2026, month=1),
            Period(year=2026, month=2),
        ]


class TestPeriodArithmetic:
    """Test rollover and derived dates."""

    def test_next_within_year(self):
        assert Period(year=2026, month=4).next() == Period(year=2026, month=5)

    def test_next_rolls_over_december(self):
        assert Period(year=2026, month=12).next() == Period(year=2027, month=1)

    def test_months_back_across_year(self):
        assert Period(year=2026, month=2).months_back(3) == Period(year=2025, month=11)

    def test_months_back_zero(self):
        period = Period(year=2026, month=7)
        assert period.months_back(0) == period

    def test_months_back_clamps_to_first_period(self):
        assert Period(year=2025, month=2).months_back(6) == Period(year=2025, month=1)

    def test_months_back_negative_rejected(self):
        with pytest.raises(ValueError):
            Period(year=2026, month=1).months_back(-1)

    def test_reset_date_is_first_of_next_month(self):
        assert Period(year=2026, month=12).reset_date() == datetime(2027, 1, 1, tzinfo=timezone.utc)

    def test_string_form(self):
        assert str(Period(year=2026, month=10)) == "October 2026"


class TestPhases:
    """Test the one-directional phase sequence."""

    def test_launch_is_followed_by_credit_system(self):
        assert next_phase(Phase.LAUNCH_FREE) is Phase.CREDIT_SYSTEM

    def test_credit_system_is_followed_by_paid_system(self):
        assert next_phase(Phase.CREDIT_SYSTEM) is Phase.PAID_SYSTEM

    def test_paid_system_is_final(self):
        assert is_final(Phase.PAID_SYSTEM)
        with pytest.raises(ValueError):
            next_phase(Phase.PAID_SYSTEM)

    def test_phase_values(self):
        assert [phase.value for phase in Phase] == ["launch_free", "credit_system", "paid_system"]
