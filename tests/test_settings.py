"""Tests for settings loading from the environment."""

import pytest
from pydantic import ValidationError

from ridehail.settings import (
    APISettings,
    FareSettings,
    LogSettings,
    MatchingSettings,
    RedisSettings,
    Settings,
    WalletSettings,
    get_settings,
)


@pytest.mark.unit
class TestFareSettings:
    def test_defaults(self):
        settings = FareSettings()
        assert settings.base_fare == 50.0
        assert settings.per_km_rate == 15.0
        assert settings.minimum_fare == 50.0
        assert settings.average_speed_kmh == 40.0

    def test_vehicle_multipliers(self):
        settings = FareSettings()
        assert settings.vehicle_multiplier("bike") == 0.7
        assert settings.vehicle_multiplier("car") == 1.0
        assert settings.vehicle_multiplier("shuttle") == 0.5
        assert settings.vehicle_multiplier("special") == 1.5

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("PER_KM_RATE", "20")
        assert FareSettings().per_km_rate == 20.0

    def test_negative_rate_rejected(self):
        with pytest.raises(ValidationError):
            FareSettings(per_km_rate=-1)


@pytest.mark.unit
class TestMatchingSettings:
    def test_defaults(self):
        settings = MatchingSettings()
        assert settings.driver_search_radius_meters == 5000.0
        assert settings.driver_availability_ttl == 300
        assert settings.matching_auto_assign is True
        assert settings.unmatched_ride_timeout_seconds == 600

    def test_auto_assign_from_env(self, monkeypatch):
        monkeypatch.setenv("MATCHING_AUTO_ASSIGN", "false")
        assert MatchingSettings().matching_auto_assign is False

    def test_h3_resolution_bounds(self):
        with pytest.raises(ValidationError):
            MatchingSettings(matching_h3_resolution=16)


@pytest.mark.unit
class TestWalletSettings:
    def test_defaults(self):
        settings = WalletSettings()
        assert settings.platform_fee_percentage == 15.0
        assert settings.cancellation_penalty_percentage == 40.0
        assert settings.max_top_up == 10_000

    def test_percentage_bounds(self):
        with pytest.raises(ValidationError):
            WalletSettings(platform_fee_percentage=120)


@pytest.mark.unit
class TestCredentials:
    def test_api_key_required(self, monkeypatch):
        monkeypatch.delenv("API_KEY", raising=False)
        with pytest.raises(ValidationError, match="API_KEY"):
            APISettings()

    def test_redis_password_required_only_when_enabled(self, monkeypatch):
        monkeypatch.delenv("REDIS_PASSWORD", raising=False)
        assert RedisSettings(enabled=False).password == ""
        with pytest.raises(ValidationError, match="REDIS_PASSWORD"):
            RedisSettings(enabled=True)


@pytest.mark.unit
class TestLogSettings:
    def test_level_normalized(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert LogSettings().level == "DEBUG"

    def test_invalid_format_rejected(self):
        with pytest.raises(ValidationError):
            LogSettings(format="xml")


@pytest.mark.unit
def test_get_settings_composes_sections(monkeypatch):
    monkeypatch.setenv("API_KEY", "from-env")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    settings = get_settings()
    assert isinstance(settings, Settings)
    assert settings.api.key == "from-env"
    assert settings.database.url == "sqlite:///:memory:"
    assert settings.fare.base_fare == 50.0
