"""Configuration package."""

from coinpurse.config.settings import (
    KNOWN_PRICE_PROVIDERS,
    AppSettings,
    GoogleSheetsSettings,
    NotificationSettings,
    OnChainSettings,
    PriceSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "KNOWN_PRICE_PROVIDERS",
    "AppSettings",
    "GoogleSheetsSettings",
    "NotificationSettings",
    "OnChainSettings",
    "PriceSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
