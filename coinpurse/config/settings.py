"""
Configuration Management for Coinpurse

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Provider names understood by pricing/sources.py
KNOWN_PRICE_PROVIDERS = ("coinbase", "coingecko", "kraken")


class PriceSettings(BaseSettings):
    """BTC price oracle configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PRICE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    provider_order: str = Field(
        default="coinbase,coingecko,kraken",
        description="Comma-separated price providers, highest priority first"
    )
    request_timeout_seconds: float = Field(
        default=5.0,
        ge=0.5,
        le=30.0,
        description="Deadline for a single provider call"
    )
    refresh_interval_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Period between scheduled refreshes"
    )

    # Values used until a provider answers
    fallback_btc_price_usd: Decimal = Field(
        default=Decimal("60000"),
        gt=0,
        description="BTC price used to derive the SATS factor before the first refresh"
    )

    # Static fiat approximations (units per USD). Not refreshed live.
    inr_per_usd: Decimal = Field(
        default=Decimal("83.0"),
        gt=0,
    )
    eur_per_usd: Decimal = Field(
        default=Decimal("0.92"),
        gt=0,
    )

    # Provider endpoints
    coinbase_url: str = Field(
        default="https://api.coinbase.com/v2/prices/BTC-USD/spot",
    )
    coingecko_url: str = Field(
        default="https://api.coingecko.com/api/v3/simple/price?ids=bitcoin&vs_currencies=usd",
    )
    kraken_url: str = Field(
        default="https://api.kraken.com/0/public/Ticker?pair=XBTUSD",
    )

    @field_validator('provider_order')
    @classmethod
    def validate_provider_order(cls, v: str) -> str:
        """Reject unknown or duplicated provider names at load time."""
        names = [name.strip().lower() for name in v.split(",") if name.strip()]
        if not names:
            raise ValueError("At least one price provider must be configured")
        unknown = [name for name in names if name not in KNOWN_PRICE_PROVIDERS]
        if unknown:
            raise ValueError(
                f"Unknown price providers: {unknown}. Known: {list(KNOWN_PRICE_PROVIDERS)}"
            )
        if len(set(names)) != len(names):
            raise ValueError("Price providers must not be listed twice")
        return ",".join(names)

    @property
    def providers(self) -> list[str]:
        """Get provider order as a list."""
        return self.provider_order.split(",")


class OnChainSettings(BaseSettings):
    """On-chain address balance provider configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ONCHAIN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    base_url: str = Field(
        default="https://mempool.space/api",
        description="Esplora-compatible API root"
    )
    request_timeout_seconds: float = Field(
        default=10.0,
        ge=0.5,
        le=60.0,
    )


class NotificationSettings(BaseSettings):
    """Outbound email (budget alerts) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SMTP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    enabled: bool = Field(
        default=False,
        description="When False, alerts are only logged"
    )
    host: str = Field(default="localhost")
    port: int = Field(default=587, ge=1, le=65535)
    username: Optional[str] = None
    password: Optional[str] = None
    sender: str = Field(
        default="alerts@coinpurse.local",
        description="From address for budget alerts"
    )
    use_tls: bool = True
    timeout_seconds: float = Field(default=10.0, gt=0)


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    transactions_sheet_name: str = Field(default="Transactions")
    budgets_sheet_name: str = Field(default="Budgets")
    audit_sheet_name: str = Field(default="AuditLog")

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    default_display_currency: str = Field(
        default="USD",
        description="Currency dashboards are shown in"
    )
    alert_recipient_domain: Optional[str] = Field(
        default=None,
        description="Appended to user ids that are not email addresses"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Note: These are loaded lazily to allow partial configuration

    @property
    def price(self) -> PriceSettings:
        return PriceSettings()

    @property
    def onchain(self) -> OnChainSettings:
        return OnChainSettings()

    @property
    def notifications(self) -> NotificationSettings:
        return NotificationSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with a
    "<name>_error" entry for every section that failed to load.
    """
    results = {}

    settings = get_settings()

    for name in ("price", "onchain", "notifications", "google_sheets", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
