# backend/repairdesk/core/config.py
import logging
import os
from pathlib import Path
from typing import Any, List, Literal, Optional

from dotenv import load_dotenv
from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    SecretStr,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class CommissionTier(BaseModel):
    """A completed-repair threshold and the platform commission it unlocks."""

    min_repairs: int = Field(ge=0)
    rate: float = Field(ge=0, le=1)


DEFAULT_COMMISSION_TIERS: List[CommissionTier] = [
    CommissionTier(min_repairs=100, rate=0.10),
    CommissionTier(min_repairs=50, rate=0.12),
    CommissionTier(min_repairs=20, rate=0.13),
]


class Settings(BaseSettings):
    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        validation_alias=AliasChoices("ENVIRONMENT", "environment"),
    )
    database_url: str = Field(
        default="sqlite:///./repairdesk.db",
        validation_alias=AliasChoices("DATABASE_URL", "database_url"),
        description="SQLAlchemy URL for the primary database",
    )

    # Earnings
    platform_commission_rate: float = Field(
        default=0.15,
        validation_alias=AliasChoices("PLATFORM_COMMISSION_RATE", "platform_commission_rate"),
        description="Commission applied when no tier or override matches",
    )
    commission_tiers: List[CommissionTier] = Field(
        default_factory=lambda: list(DEFAULT_COMMISSION_TIERS),
        description="Tiered commission rates keyed by completed repairs (JSON in env)",
    )

    # Bookings
    max_reschedules: int = Field(
        default=3,
        validation_alias=AliasChoices("MAX_RESCHEDULES", "max_reschedules"),
    )
    default_currency: str = Field(default="INR", min_length=3, max_length=3)
    platform_timezone: str = Field(
        default="UTC",
        validation_alias=AliasChoices("PLATFORM_TIMEZONE", "platform_timezone"),
        description="Timezone that decides what 'today' means for booking dates",
    )

    # Matching
    matcher_max_distance_m: float = Field(default=50_000, gt=0)
    matcher_default_limit: int = Field(default=5, gt=0)

    # Payments
    payment_gateway: str = Field(
        default="manual",
        validation_alias=AliasChoices("PAYMENT_GATEWAY", "payment_gateway"),
    )
    stripe_secret_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("STRIPE_SECRET_KEY", "stripe_secret_key"),
    )
    razorpay_key_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("RAZORPAY_KEY_ID", "razorpay_key_id"),
    )
    razorpay_key_secret: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("RAZORPAY_KEY_SECRET", "razorpay_key_secret"),
    )

    # Logging
    log_level: str = Field(default="INFO", validation_alias=AliasChoices("LOG_LEVEL", "log_level"))
    structured_logs: bool = Field(
        default=False,
        validation_alias=AliasChoices("STRUCTURED_LOGS", "structured_logs"),
    )

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("platform_commission_rate")
    @classmethod
    def validate_commission_rate(cls, v: float) -> float:
        if not 0 <= v <= 1:
            raise ValueError("PLATFORM_COMMISSION_RATE must be between 0 and 1")
        return v

    @field_validator("max_reschedules")
    @classmethod
    def validate_max_reschedules(cls, v: int) -> int:
        if v < 1:
            raise ValueError("MAX_RESCHEDULES must be at least 1")
        return v

    @field_validator("default_currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.upper()

    @field_validator("payment_gateway")
    @classmethod
    def normalize_gateway(cls, v: str) -> str:
        return v.strip().lower()

    @model_validator(mode="after")
    def _sort_commission_tiers(self) -> "Settings":
        """Tiers are evaluated highest threshold first."""
        self.commission_tiers = sorted(
            self.commission_tiers, key=lambda tier: tier.min_repairs, reverse=True
        )
        return self

    def get_database_url(self) -> str:
        """Get the database URL for the current environment."""
        if self.environment == "test" and not os.getenv("DATABASE_URL"):
            return "sqlite+pysqlite:///:memory:"
        return self.database_url

    def as_log_context(self) -> dict[str, Any]:
        return {
            "environment": self.environment,
            "payment_gateway": self.payment_gateway,
            "max_reschedules": self.max_reschedules,
            "platform_commission_rate": self.platform_commission_rate,
        }


settings = Settings()
