# backend/app/core/config.py
"""
Application settings for the MatchIndeed meetings and ledger backend.

Values are read from the environment (and ``backend/.env`` outside CI) via
pydantic-settings. Money amounts are integer minor-currency units.
"""

import logging
import os
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug("[CONFIG] Looking for .env at: %s (exists=%s)", env_path, env_path.exists())
    load_dotenv(env_path)


def is_running_tests() -> bool:
    """Detect if code is running under pytest."""
    return os.getenv("PYTEST_CURRENT_TEST") is not None


DEFAULT_TIER_MONTHLY_CREDITS: Dict[str, int] = {
    "basic": 5,
    "standard": 15,
    "premium": 30,
    "vip": 999999,
}


class Settings(BaseSettings):
    """Runtime configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    environment: str = Field(default="development", description="Deployment environment")
    database_url: str = Field(
        default="sqlite:///./matchindeed.db",
        description="SQLAlchemy database URL",
    )
    redis_url: str = Field(default="redis://localhost:6379/0", description="Celery broker URL")

    # Booking economics
    meeting_credit_cost: int = Field(default=1, ge=1, description="Credits held per booking")
    surcharge_credit_cost: int = Field(
        default=2, ge=1, description="Credits held when the tier gate signals a surcharge"
    )
    default_cancellation_fee_cents: Optional[int] = Field(
        default=None,
        ge=0,
        description="Cancellation fee for new meetings; falls back to the meeting fee when unset",
    )
    currency_code: str = Field(default="usd")
    currency_minor_unit_scale: int = Field(default=100, ge=1)
    tier_monthly_credits: Dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_TIER_MONTHLY_CREDITS)
    )

    # Ledger
    ledger_max_retries: int = Field(default=3, ge=1, description="Optimistic update attempts")

    # Side effects
    side_effect_max_attempts: int = Field(default=5, ge=1)
    side_effect_batch_size: int = Field(default=200, ge=1)

    # Stripe
    stripe_secret_key: Optional[SecretStr] = None
    stripe_webhook_secret: Optional[SecretStr] = None

    # Monitoring
    sentry_dsn: Optional[str] = None

    @field_validator("currency_code")
    @classmethod
    def _lower_currency(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("surcharge_credit_cost")
    @classmethod
    def _surcharge_not_below_base(cls, value: int, info: ValidationInfo) -> int:
        base = info.data.get("meeting_credit_cost", 1)
        if value < base:
            raise ValueError("surcharge_credit_cost must be >= meeting_credit_cost")
        return value

    @property
    def webhook_secrets(self) -> list[str]:
        """Configured Stripe webhook secrets in verification order."""
        if self.stripe_webhook_secret is None:
            return []
        secret = self.stripe_webhook_secret.get_secret_value().strip()
        return [secret] if secret else []

    def credits_for_tier(self, tier: str) -> int:
        """Monthly credit allocation granted with a subscription to ``tier``."""
        return int(self.tier_monthly_credits.get(tier, 0))

    def format_minor_units(self, amount: int) -> str:
        """Render minor units as a decimal string (500 -> '5.00')."""
        scale = self.currency_minor_unit_scale
        digits = len(str(scale)) - 1
        sign = "-" if amount < 0 else ""
        whole, frac = divmod(abs(amount), scale)
        if digits <= 0:
            return f"{sign}{whole}"
        return f"{sign}{whole}.{frac:0{digits}d}"


settings = Settings()
