"""
Pricing package.

Multi-source BTC price acquisition, the process-wide rate snapshot,
currency conversion and the refresh timer.
"""

from coinpurse.pricing.sources import (
    PRICE_SOURCES,
    CoinbaseSource,
    CoinGeckoSource,
    KrakenSource,
    PriceSourceClient,
    PricingError,
    ProviderUnavailableError,
    build_price_sources,
)
from coinpurse.pricing.converter import (
    DEFAULT_FALLBACK_RATES,
    CurrencyConverter,
    InvalidCurrencyError,
    convert,
)
from coinpurse.pricing.oracle import AllProvidersExhaustedError, PriceOracle
from coinpurse.pricing.scheduler import RefreshScheduler

__all__ = [
    # Sources
    "PRICE_SOURCES",
    "CoinbaseSource",
    "CoinGeckoSource",
    "KrakenSource",
    "PriceSourceClient",
    "build_price_sources",
    # Conversion
    "DEFAULT_FALLBACK_RATES",
    "CurrencyConverter",
    "convert",
    # Oracle
    "PriceOracle",
    "RefreshScheduler",
    # Exceptions
    "AllProvidersExhaustedError",
    "InvalidCurrencyError",
    "PricingError",
    "ProviderUnavailableError",
]
