"""Exception types raised by the quota engine and its storage layer."""

from datetime import datetime
from typing import Optional


class QuotaGuardError(Exception):
    """
    Base exception for all quota engine errors.

    Attributes:
        code: Stable error code for callers to branch on
        message: Human-readable error message
        details: Optional additional error details
    """

    def __init__(self, message: str, code: str = "QUOTA_GUARD_ERROR", details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict:
        """Convert exception to a dictionary for API responses."""
        result = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class QuotaExhaustedError(QuotaGuardError):
    """Raised when a user has no free listings left in the current period."""

    def __init__(self, user_id: str, used: int, limit: int):
        super().__init__(
            f"No free listings left this month ({used}/{limit} used)",
            "QUOTA_EXHAUSTED",
            {"user_id": user_id, "used": used, "limit": limit},
        )
        self.user_id = user_id
        self.used = used
        self.limit = limit


# Name used by the listing-creation workflow.
ErrNoFreeListingsLeft = QuotaExhaustedError


class InvalidUserError(QuotaGuardError):
    """Raised when a user identifier does not resolve."""

    def __init__(self, user_id: str):
        super().__init__(f"Unknown user: {user_id}", "INVALID_USER", {"user_id": user_id})
        self.user_id = user_id


class ConfigMissingError(QuotaGuardError):
    """Raised when the global pricing configuration cannot be read or created."""

    def __init__(self, message: str = "Global pricing configuration is unavailable"):
        super().__init__(message, "CONFIG_MISSING")


class InvalidTransitionError(QuotaGuardError):
    """Raised when a phase change is not allowed from the current phase."""

    def __init__(self, message: str, current_phase: str):
        super().__init__(message, "INVALID_TRANSITION", {"current_phase": current_phase})
        self.current_phase = current_phase


class InvalidPriceFieldError(QuotaGuardError):
    """Raised when a price update names a field outside the writable whitelist."""

    def __init__(self, fields, allowed):
        names = sorted(fields)
        super().__init__(
            f"Unknown price field(s): {', '.join(names)}",
            "INVALID_PRICE_FIELD",
            {"fields": names, "allowed": sorted(allowed)},
        )
        self.fields = names


class InvalidPriceValueError(QuotaGuardError):
    """Raised when a price update carries an out-of-range value."""

    def __init__(self, field: str, value, reason: str):
        super().__init__(
            f"Invalid value for {field}: {value!r} ({reason})",
            "INVALID_PRICE_VALUE",
            {"field": field, "value": value},
        )
        self.field = field


class InvalidLaunchDateError(QuotaGuardError):
    """Raised when a launch extension targets a date that is not in the future."""

    def __init__(self, new_end_date: datetime):
        super().__init__(
            f"Launch end date must be in the future, got {new_end_date.isoformat()}",
            "INVALID_LAUNCH_DATE",
            {"new_end_date": new_end_date.isoformat()},
        )


class StorageError(QuotaGuardError):
    """Raised when the underlying store fails; the original error is chained."""

    def __init__(self, operation: str, original: Exception):
        super().__init__(
            f"Storage failure during {operation}: {original}",
            "STORAGE_ERROR",
            {"operation": operation},
        )
        self.operation = operation
        self.original = original
