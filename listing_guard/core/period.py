"""
Calendar periods for quota bucketing.

A period is a (month, year) pair. Quotas are scoped to exactly one period and
reset on the first day of the following one.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

MIN_YEAR = 2025

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


@dataclass(frozen=True, order=True)
class Period:
    """Immutable month/year bucket.

    Field order (year, month) drives the generated ordering, so periods
    compare chronologically.
    """
    year: int
    month: int

    def __post_init__(self):
        """Validate month and year ranges."""
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be between 1 and 12, got {self.month}")
        if self.year < MIN_YEAR:
            raise ValueError(f"year must be >= {MIN_YEAR}, got {self.year}")

    @classmethod
    def of(cls, moment: datetime) -> "Period":
        """Return the period containing the given moment."""
        return cls(year=moment.year, month=moment.month)

    def is_before(self, other: "Period") -> bool:
        return self < other

    def next(self) -> "Period":
        if self.month == 12:
            return Period(year=self.year + 1, month=1)
        return Period(year=self.year, month=self.month + 1)

    def months_back(self, count: int) -> "Period":
        """Return the period `count` months earlier, clamped at the first valid period.

        Args:
            count: Number of months to step back (must be >= 0)

        Returns:
            The earlier Period
        """
        if count < 0:
            raise ValueError("count must be >= 0")
        index = self.year * 12 + (self.month - 1) - count
        year, month_index = divmod(index, 12)
        if year < MIN_YEAR:
            return Period(year=MIN_YEAR, month=1)
        return Period(year=year, month=month_index + 1)

    def start(self) -> datetime:
        """First instant of the period (UTC)."""
        return datetime(self.year, self.month, 1, tzinfo=timezone.utc)

    def reset_date(self) -> datetime:
        """First instant of the following period (UTC)."""
        return self.next().start()

    @property
    def month_name(self) -> str:
        return MONTH_NAMES[self.month - 1]

    def __str__(self) -> str:
        return f"{self.month_name} {self.year}"
