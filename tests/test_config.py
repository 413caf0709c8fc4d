"""
Unit tests for configuration loading and validation.

Tests strict validation and error handling for deployment settings.
"""

import logging
import os
import tempfile
from datetime import date, datetime, timezone

import pytest
import yaml

from listing_guard.config.loader import (
    LoggingSettings,
    PricingDefaults,
    QuotaSettings,
    Settings,
    StorageSettings,
    load_settings,
)


class TestSettingsLoading:
    """Test settings loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "settings.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_full_config_loads_correctly(self):
        config_data = {
            "storage": {"db_path": "/var/lib/listings.db", "busy_timeout": 10},
            "quota": {"retention_months": 12, "history_periods": 3},
            "pricing": {
                "launch_phase_end_date": "2026-12-31T23:59:59Z",
                "monthly_free_listings": 5,
                "standard_listing_price": 250,
                "currency": "EUR",
            },
            "logging": {"level": "debug"},
        }

        settings = load_settings(self._write_config(config_data))

        assert settings.storage.db_path == "/var/lib/listings.db"
        assert settings.storage.busy_timeout == 10.0
        assert settings.quota.retention_months == 12
        assert settings.quota.history_periods == 3
        assert settings.pricing.launch_phase_end_date == datetime(
            2026, 12, 31, 23, 59, 59, tzinfo=timezone.utc
        )
        assert settings.pricing.monthly_free_listings == 5
        assert settings.pricing.standard_listing_price == 250.0
        assert settings.pricing.currency == "EUR"
        # Untouched pricing keys keep their defaults
        assert settings.pricing.pack_5_listings_price == 800.0
        assert settings.logging.level == "DEBUG"
        assert settings.logging.numeric_level == logging.DEBUG

    def test_missing_sections_use_defaults(self):
        settings = load_settings(self._write_config({"quota": {"retention_months": 3}}))

        assert settings.quota.retention_months == 3
        assert settings.storage == StorageSettings()
        assert settings.pricing == PricingDefaults()
        assert settings.logging == LoggingSettings()

    def test_empty_file_gives_defaults(self):
        config_path = os.path.join(self.temp_dir, "empty.yaml")
        with open(config_path, 'w', encoding='utf-8') as f:
            f.write("")

        assert load_settings(config_path) == Settings()

    def test_date_without_time_is_midnight_utc(self):
        config_path = self._write_config({"pricing": {"launch_phase_end_date": date(2026, 9, 1)}})
        settings = load_settings(config_path)
        assert settings.pricing.launch_phase_end_date == datetime(2026, 9, 1, tzinfo=timezone.utc)

    def test_offset_timestamp_is_kept(self):
        config_path = self._write_config(
            {"pricing": {"launch_phase_end_date": "2026-09-01T10:00:00+02:00"}}
        )
        end = load_settings(config_path).pricing.launch_phase_end_date
        assert end == datetime(2026, 9, 1, 8, 0, tzinfo=timezone.utc)

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            load_settings(os.path.join(self.temp_dir, "nope.yaml"))

    def test_invalid_yaml(self):
        config_path = os.path.join(self.temp_dir, "broken.yaml")
        with open(config_path, 'w', encoding='utf-8') as f:
            f.write("storage: [unclosed\n")

        with pytest.raises(yaml.YAMLError):
            load_settings(config_path)

    def test_root_must_be_mapping(self):
        with pytest.raises(ValueError, match="dictionary"):
            load_settings(self._write_config(["storage"]))

    def test_unknown_section_rejected(self):
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            load_settings(self._write_config({"budget": {"daily": 1}}))

    def test_unknown_key_rejected(self):
        with pytest.raises(ValueError, match="Unknown keys in pricing"):
            load_settings(self._write_config({"pricing": {"standard_price": 100}}))

    def test_section_must_be_mapping(self):
        with pytest.raises(ValueError, match="'quota' must be a dictionary"):
            load_settings(self._write_config({"quota": 6}))

    def test_integer_field_rejects_float(self):
        with pytest.raises(ValueError, match="must be an integer"):
            load_settings(self._write_config({"quota": {"retention_months": 1.5}}))

    def test_number_field_rejects_bool(self):
        with pytest.raises(ValueError, match="must be a number"):
            load_settings(self._write_config({"pricing": {"standard_listing_price": True}}))

    def test_bad_timestamp_rejected(self):
        with pytest.raises(ValueError, match="ISO-8601"):
            load_settings(self._write_config({"pricing": {"launch_phase_end_date": "soon"}}))

    def test_infinite_price_rejected(self):
        config_path = self._write_config({"pricing": {"pack_10_listings_price": float("inf")}})
        with pytest.raises(ValueError, match="finite"):
            load_settings(config_path)

    def test_unknown_log_level_rejected(self):
        with pytest.raises(ValueError, match="logging level"):
            load_settings(self._write_config({"logging": {"level": "chatty"}}))


class TestSettingsValidation:
    """Test dataclass-level range checks."""

    def test_zero_retention_rejected(self):
        with pytest.raises(ValueError, match="retention_months"):
            QuotaSettings(retention_months=0)

    def test_zero_history_rejected(self):
        with pytest.raises(ValueError, match="history_periods"):
            QuotaSettings(history_periods=0)

    def test_empty_db_path_rejected(self):
        with pytest.raises(ValueError, match="db_path"):
            StorageSettings(db_path="")

    def test_naive_launch_end_rejected(self):
        with pytest.raises(ValueError, match="timezone-aware"):
            PricingDefaults(launch_phase_end_date=datetime(2026, 1, 1))

    def test_zero_standard_price_rejected(self):
        with pytest.raises(ValueError, match="standard_listing_price"):
            PricingDefaults(standard_listing_price=0)

    def test_negative_addon_price_rejected(self):
        with pytest.raises(ValueError, match="add-on"):
            PricingDefaults(premium_boost_price=-1)

    def test_nan_standard_price_rejected(self):
        with pytest.raises(ValueError, match="finite"):
            PricingDefaults(standard_listing_price=float("nan"))

    def test_negative_monthly_allotment_rejected(self):
        with pytest.raises(ValueError, match="monthly_free_listings"):
            PricingDefaults(monthly_free_listings=-1)

    def test_defaults(self):
        pricing = PricingDefaults()
        assert pricing.launch_phase_end_date == datetime(2025, 8, 26, 23, 59, 59, tzinfo=timezone.utc)
        assert pricing.currency == "XOF"
        assert pricing.monthly_free_listings == 3
        assert Settings().storage.busy_timeout == 30.0
