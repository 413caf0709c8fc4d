"""
Configuration management and loading.

Handles deployment settings: storage location, quota retention and the
defaults used when the global pricing configuration is first created.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict

import yaml

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class StorageSettings:
    """Location and lock behaviour of the SQLite store."""
    db_path: str = "listing_guard.db"
    busy_timeout: float = 30.0

    def __post_init__(self):
        if not self.db_path:
            raise ValueError("db_path cannot be empty")
        if self.busy_timeout <= 0:
            raise ValueError("busy_timeout must be > 0")


@dataclass(frozen=True)
class QuotaSettings:
    """Quota history retention."""
    retention_months: int = 6
    history_periods: int = 6

    def __post_init__(self):
        if self.retention_months < 1:
            raise ValueError("retention_months must be >= 1")
        if self.history_periods < 1:
            raise ValueError("history_periods must be >= 1")


@dataclass(frozen=True)
class PricingDefaults:
    """Values used to seed the pricing configuration the first time it is read.

    Once the configuration row exists it is authoritative; changing these
    afterwards has no effect on a live deployment.
    """
    launch_phase_end_date: datetime = datetime(2025, 8, 26, 23, 59, 59, tzinfo=timezone.utc)
    launch_phase_message: str = "Launch phase - listings are 100% free!"
    monthly_free_listings: int = 3
    standard_listing_price: float = 200.0
    currency: str = "XOF"
    premium_boost_price: float = 100.0
    featured_color_price: float = 50.0
    pack_5_listings_price: float = 800.0
    pack_10_listings_price: float = 1500.0

    def __post_init__(self):
        if self.launch_phase_end_date.tzinfo is None:
            raise ValueError("launch_phase_end_date must be timezone-aware")
        if self.monthly_free_listings < 0:
            raise ValueError("monthly_free_listings must be >= 0")
        if self.standard_listing_price <= 0:
            raise ValueError("standard_listing_price must be > 0")
        if self.pack_5_listings_price <= 0 or self.pack_10_listings_price <= 0:
            raise ValueError("pack prices must be > 0")
        prices = (
            self.standard_listing_price,
            self.premium_boost_price,
            self.featured_color_price,
            self.pack_5_listings_price,
            self.pack_10_listings_price,
        )
        if not all(math.isfinite(price) for price in prices):
            raise ValueError("prices must be finite numbers")
        if self.premium_boost_price < 0 or self.featured_color_price < 0:
            raise ValueError("add-on prices must be >= 0")
        if not self.currency:
            raise ValueError("currency cannot be empty")


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"

    def __post_init__(self):
        if self.level not in LOG_LEVELS:
            raise ValueError(f"logging level must be one of: {list(LOG_LEVELS)}")

    @property
    def numeric_level(self) -> int:
        return getattr(logging, self.level)


@dataclass(frozen=True)
class Settings:
    """Complete deployment settings."""
    storage: StorageSettings = field(default_factory=StorageSettings)
    quota: QuotaSettings = field(default_factory=QuotaSettings)
    pricing: PricingDefaults = field(default_factory=PricingDefaults)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


_INT_FIELDS = {"monthly_free_listings", "retention_months", "history_periods"}
_FLOAT_FIELDS = {
    "busy_timeout",
    "standard_listing_price",
    "premium_boost_price",
    "featured_color_price",
    "pack_5_listings_price",
    "pack_10_listings_price",
}
_STR_FIELDS = {"db_path", "currency", "launch_phase_message", "level"}

_SECTIONS = {
    "storage": StorageSettings,
    "quota": QuotaSettings,
    "pricing": PricingDefaults,
    "logging": LoggingSettings,
}


def load_settings(path: str) -> Settings:
    """Load and validate settings from a YAML file.

    Every section is optional; anything omitted keeps its default. Unknown
    keys are rejected so that typos never silently fall back to defaults.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated Settings object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return Settings()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration root must be a dictionary")

    unknown_keys = set(raw_config.keys()) - set(_SECTIONS)
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    sections = {}
    for name, section_cls in _SECTIONS.items():
        data = raw_config.get(name)
        if data is None:
            continue
        if not isinstance(data, dict):
            raise ValueError(f"'{name}' must be a dictionary")
        sections[name] = section_cls(**_parse_section(data, section_cls, name))

    return Settings(**sections)


def _parse_section(data: Dict[str, Any], section_cls, path: str) -> Dict[str, Any]:
    """Validate keys and coerce value types for one settings section.

    Args:
        data: Raw section data
        section_cls: Dataclass the section maps to
        path: Section name for error messages

    Returns:
        Keyword arguments for `section_cls`

    Raises:
        ValueError: If a key is unknown or a value has the wrong type
    """
    allowed_keys = set(section_cls.__dataclass_fields__)
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    parsed = {}
    for key, value in data.items():
        where = f"{path}.{key}"
        if key in _INT_FIELDS:
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"'{where}' must be an integer")
            parsed[key] = value
        elif key in _FLOAT_FIELDS:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"'{where}' must be a number")
            parsed[key] = float(value)
        elif key in _STR_FIELDS:
            if not isinstance(value, str):
                raise ValueError(f"'{where}' must be a string")
            parsed[key] = value.upper() if key == "level" else value
        elif key == "launch_phase_end_date":
            parsed[key] = _parse_timestamp(value, where)
    return parsed


def _parse_timestamp(value: Any, where: str) -> datetime:
    """Accept YAML timestamps, dates or ISO-8601 strings; naive values are UTC."""
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError(f"'{where}' must be an ISO-8601 timestamp")
    else:
        raise ValueError(f"'{where}' must be a timestamp")

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment
