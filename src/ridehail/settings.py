from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class FareSettings(BaseSettings):
    """Fare formula constants.

    fare = max(minimum_fare, base_fare + distance_km * per_km_rate) * vehicle multiplier
    """

    base_fare: float = Field(default=50.0, ge=0.0)
    per_km_rate: float = Field(default=15.0, ge=0.0)
    minimum_fare: float = Field(default=50.0, ge=0.0)
    bike_multiplier: float = Field(default=0.7, gt=0.0)
    car_multiplier: float = Field(default=1.0, gt=0.0)
    shuttle_multiplier: float = Field(default=0.5, gt=0.0)
    special_multiplier: float = Field(default=1.5, gt=0.0)
    average_speed_kmh: float = Field(
        default=40.0,
        gt=0.0,
        description="Average speed used to estimate ride duration from straight-line distance",
    )

    model_config = SettingsConfigDict(env_prefix="")

    def vehicle_multiplier(self, vehicle_type: str) -> float:
        multipliers: dict[str, float] = {
            "bike": self.bike_multiplier,
            "car": self.car_multiplier,
            "shuttle": self.shuttle_multiplier,
            "special": self.special_multiplier,
        }
        return multipliers[vehicle_type]


class MatchingSettings(BaseSettings):
    """Driver availability and matching configuration."""

    driver_search_radius_meters: float = Field(default=5000.0, gt=0.0, le=100_000.0)
    driver_availability_ttl: int = Field(
        default=300,
        ge=10,
        description="Seconds after the last position update before a driver is treated as offline",
    )
    matching_h3_resolution: int = Field(default=7, ge=0, le=15)
    matching_auto_assign: bool = Field(
        default=True,
        description="Assign the nearest driver at request time instead of sending an offer",
    )
    unmatched_ride_timeout_seconds: int = Field(
        default=600,
        ge=60,
        description="Seconds a ride may stay requested before it is cancelled and refunded",
    )
    unmatched_sweep_interval_seconds: float = Field(default=60.0, ge=1.0, le=3600.0)

    model_config = SettingsConfigDict(env_prefix="")


class WalletSettings(BaseSettings):
    platform_fee_percentage: float = Field(default=15.0, ge=0.0, le=100.0)
    cancellation_penalty_percentage: float = Field(default=40.0, ge=0.0, le=100.0)
    max_top_up: int = Field(default=10_000, gt=0)
    ledger_retry_attempts: int = Field(default=5, ge=1, le=20)

    model_config = SettingsConfigDict(env_prefix="")


class DatabaseSettings(BaseSettings):
    url: str = "sqlite:///data/ridehail.db"
    echo: bool = False

    model_config = SettingsConfigDict(env_prefix="DATABASE_")


class RedisSettings(BaseSettings):
    enabled: bool = False
    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: str = ""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    @model_validator(mode="after")
    def validate_credentials_provided(self) -> "RedisSettings":
        if self.enabled and not self.password:
            raise ValueError("Required credential not provided: REDIS_PASSWORD")
        return self


class APISettings(BaseSettings):
    key: str = ""
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    model_config = SettingsConfigDict(env_prefix="API_")

    @model_validator(mode="after")
    def validate_credentials_provided(self) -> "APISettings":
        if not self.key:
            raise ValueError("Required credential not provided: API_KEY")
        return self


class CORSSettings(BaseSettings):
    origins: str = "http://localhost:8081,http://localhost:19006"

    model_config = SettingsConfigDict(env_prefix="CORS_")


class LogSettings(BaseSettings):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["text", "json"] = "text"
    environment: str = "development"

    model_config = SettingsConfigDict(env_prefix="LOG_")

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class Settings(BaseSettings):
    fare: FareSettings = Field(default_factory=FareSettings)
    matching: MatchingSettings = Field(default_factory=MatchingSettings)
    wallet: WalletSettings = Field(default_factory=WalletSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    api: APISettings = Field(default_factory=APISettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        case_sensitive=False,
    )


def get_settings() -> Settings:
    """Load and validate settings from environment variables."""
    return Settings()
