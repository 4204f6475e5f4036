"""Application settings using Pydantic for environment-based configuration."""
import sys
from decimal import Decimal
from functools import lru_cache

import structlog
from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Fan-side fees (fractions of the gross amount)
    fan_platform_fee: Decimal = Field(..., description="Fee added on top of fan purchases")
    fan_gems_fee: Decimal = Field(..., description="Fee added on top of gem purchases")

    # Creator-side fees
    creator_platform_fee: Decimal = Field(..., description="Platform cut of creator revenue")
    creator_referral_fee: Decimal = Field(..., description="Referral cut of creator revenue")

    # Purchase processing fees (percentage + fixed fee in major units)
    stripe_fee: Decimal = Field(..., description="Stripe percentage fee")
    stripe_fee_fixed: Decimal = Field(..., description="Stripe fixed fee (dollars)")
    paypal_fee: Decimal = Field(..., description="PayPal percentage fee")
    paypal_fee_fixed: Decimal = Field(..., description="PayPal fixed fee (dollars)")
    authorize_net_fee: Decimal = Field(..., description="Authorize.Net percentage fee")
    authorize_net_fee_fixed: Decimal = Field(..., description="Authorize.Net fixed fee (dollars)")

    # Payout fees
    paypal_fee_payout_international_percentage: Decimal = Field(
        ..., description="PayPal payout fee outside the US"
    )
    paypal_fee_payout_us_fixed: Decimal = Field(
        ..., description="PayPal flat payout fee inside the US (dollars)"
    )

    # Payout limits (major units)
    min_payout_amount: Decimal = Field(..., description="Global minimum payout (dollars)")
    max_payout_amount: Decimal = Field(
        ..., description="Default payout ceiling per period (dollars)"
    )
    currency: str = Field(default="USD", description="Currency of all amounts")

    # Database Configuration
    database_url: str = Field(..., description="Database connection URL")
    database_pool_size: int = Field(default=20, description="Database connection pool size")
    database_max_overflow: int = Field(default=50, description="Max database connection overflow")
    database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")

    # PayPal Configuration
    paypal_client_id: str = Field(..., description="PayPal REST client id")
    paypal_client_secret: str = Field(..., description="PayPal REST client secret")
    paypal_mode: str = Field(default="sandbox", description="sandbox or production")
    paypal_webhook_payout_id: str = Field(..., description="Webhook id for payout events")
    payout_request_timeout: float = Field(
        default=30.0, description="Timeout for payout submission calls (seconds)"
    )

    # Tax service
    taxjar_api_key: str = Field(..., description="TaxJar API token")
    taxjar_api_url: str = Field(default="https://api.taxjar.com", description="TaxJar base URL")
    tax_request_timeout: float = Field(default=10.0, description="Tax call timeout (seconds)")

    # Application Configuration
    app_name: str = Field(default="creator-payouts", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    # Worker
    payout_sweep_interval_seconds: int = Field(
        default=3600, description="Seconds between automatic payout sweeps"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator(
        "fan_platform_fee",
        "fan_gems_fee",
        "creator_platform_fee",
        "creator_referral_fee",
        "stripe_fee",
        "paypal_fee",
        "authorize_net_fee",
        "paypal_fee_payout_international_percentage",
    )
    @classmethod
    def validate_rate(cls, v: Decimal) -> Decimal:
        """Rates are fractions, e.g. 0.029 for 2.9%."""
        if v < 0 or v > 1:
            raise ValueError("Fee rates must be between 0 and 1")
        return v

    @field_validator(
        "stripe_fee_fixed",
        "paypal_fee_fixed",
        "authorize_net_fee_fixed",
        "paypal_fee_payout_us_fixed",
        "min_payout_amount",
        "max_payout_amount",
    )
    @classmethod
    def validate_non_negative(cls, v: Decimal) -> Decimal:
        """Validate fixed amounts."""
        if v < 0:
            raise ValueError("Fixed fees and payout limits cannot be negative")
        return v

    @field_validator("paypal_mode")
    @classmethod
    def validate_paypal_mode(cls, v: str) -> str:
        """Validate PayPal mode."""
        if v.lower() not in ("sandbox", "production"):
            raise ValueError("PayPal mode must be 'sandbox' or 'production'")
        return v.lower()

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Validate currency format."""
        if len(v) != 3:
            raise ValueError("Currency must be 3-letter code")
        return v.upper()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @model_validator(mode="after")
    def validate_payout_limits(self) -> "Settings":
        """The minimum payout has to fit under the ceiling and cover the US payout fee."""
        if self.min_payout_amount > self.max_payout_amount:
            raise ValueError("min_payout_amount cannot exceed max_payout_amount")
        if self.min_payout_amount <= self.paypal_fee_payout_us_fixed:
            raise ValueError("min_payout_amount must exceed paypal_fee_payout_us_fixed")
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"

    @property
    def paypal_api_url(self) -> str:
        """PayPal REST base URL for the configured mode."""
        if self.paypal_mode == "sandbox":
            return "https://api-m.sandbox.paypal.com"
        return "https://api-m.paypal.com"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


def load_settings_or_exit() -> Settings:
    """
    Load settings at process start.

    Missing or invalid configuration is fatal: the error is logged and the
    process exits with status 1.
    """
    try:
        return get_settings()
    except ValidationError as e:
        logger.critical(
            "configuration_invalid",
            errors=[
                {"field": ".".join(str(p) for p in err["loc"]), "error": err["msg"]}
                for err in e.errors()
            ],
        )
        sys.exit(1)
