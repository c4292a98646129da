"""
BTC Price Sources

Each source wraps ONE public price endpoint and answers a single
question: what is one BTC worth in USD right now?

CONTRACT: fetch_quote() never raises for network errors, bad status
codes, malformed payloads or nonsensical prices. All of those collapse
into a PriceQuote with price_usd=None and an error string. The oracle
decides what to do next; a source never retries on its own.
"""

from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx
import structlog

from coinpurse.config import PriceSettings, get_settings
from coinpurse.models.ledger import PriceQuote


logger = structlog.get_logger(__name__)


class PricingError(Exception):
    """Base exception for price acquisition errors."""
    pass


class ProviderUnavailableError(PricingError):
    """A single provider could not supply a usable price."""

    def __init__(self, source: str, message: str):
        self.source = source
        super().__init__(message)


class PriceSourceClient(ABC):
    """
    One upstream BTC/USD price provider.

    Subclasses only describe where the price lives in the provider's
    JSON payload; transport and validation are shared.
    """

    name: str = "unknown"

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            url: Full endpoint URL (query string included)
            timeout_seconds: HTTP timeout for this provider
            http_client: Shared client. If None, a short-lived client is
                         created per call.
        """
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._http_client = http_client

    @abstractmethod
    def extract_price(self, payload: Any) -> Any:
        """Pull the raw price value out of the provider's JSON body."""
        ...

    async def fetch_quote(self) -> PriceQuote:
        """
        Ask the provider for the current price.

        Returns:
            PriceQuote with price_usd set, or with error set if the
            provider is unavailable for any reason.
        """
        try:
            price = await self._fetch_price()
        except ProviderUnavailableError as e:
            logger.warning("price_source_unavailable", source=self.name, error=str(e))
            return PriceQuote(source=self.name, error=str(e))
        except Exception as e:
            logger.warning(
                "price_source_unavailable",
                source=self.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return PriceQuote(source=self.name, error=f"{type(e).__name__}: {e}")

        logger.debug("price_source_answered", source=self.name, price=str(price))
        return PriceQuote(source=self.name, price_usd=price)

    async def _fetch_price(self) -> Decimal:
        payload = await self._get_json()
        try:
            raw = self.extract_price(payload)
        except (KeyError, IndexError, TypeError, AttributeError, StopIteration) as e:
            raise ProviderUnavailableError(
                self.name, f"Unexpected payload shape: {e!r}"
            ) from e
        return self.validate_price(raw)

    async def _get_json(self) -> Any:
        try:
            if self._http_client is not None:
                response = await self._http_client.get(
                    self.url, timeout=self.timeout_seconds
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.get(self.url)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise ProviderUnavailableError(self.name, f"Timed out: {e!r}") from e
        except httpx.HTTPStatusError as e:
            raise ProviderUnavailableError(
                self.name, f"HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise ProviderUnavailableError(self.name, f"Request failed: {e!r}") from e

        try:
            return response.json()
        except ValueError as e:
            raise ProviderUnavailableError(self.name, "Body is not valid JSON") from e

    def validate_price(self, raw: Any) -> Decimal:
        """Accept only positive, finite numbers (or numeric strings)."""
        if isinstance(raw, bool) or not isinstance(raw, (int, float, str, Decimal)):
            raise ProviderUnavailableError(
                self.name, f"Price is not numeric: {raw!r}"
            )
        try:
            price = Decimal(str(raw).strip())
        except InvalidOperation:
            raise ProviderUnavailableError(
                self.name, f"Price is not numeric: {raw!r}"
            ) from None
        if not price.is_finite() or price <= 0:
            raise ProviderUnavailableError(
                self.name, f"Price is not a positive finite number: {raw!r}"
            )
        return price


class CoinbaseSource(PriceSourceClient):
    """{"data": {"base": "BTC", "currency": "USD", "amount": "64000.12"}}"""

    name = "coinbase"

    def extract_price(self, payload: Any) -> Any:
        return payload["data"]["amount"]


class CoinGeckoSource(PriceSourceClient):
    """{"bitcoin": {"usd": 64000.12}}"""

    name = "coingecko"

    def extract_price(self, payload: Any) -> Any:
        return payload["bitcoin"]["usd"]


class KrakenSource(PriceSourceClient):
    """
    {"error": [], "result": {"XXBTZUSD": {"c": ["64000.1", "0.01"], ...}}}

    "c" is the last trade closed: [price, lot volume].
    """

    name = "kraken"

    def extract_price(self, payload: Any) -> Any:
        errors = payload.get("error") or []
        if errors:
            raise ProviderUnavailableError(self.name, f"Kraken error: {errors}")
        ticker = next(iter(payload["result"].values()))
        return ticker["c"][0]


PRICE_SOURCES: dict[str, type[PriceSourceClient]] = {
    CoinbaseSource.name: CoinbaseSource,
    CoinGeckoSource.name: CoinGeckoSource,
    KrakenSource.name: KrakenSource,
}


def build_price_sources(
    settings: Optional[PriceSettings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> list[PriceSourceClient]:
    """
    Instantiate the configured sources in priority order.

    Order comes from PriceSettings.provider_order and is never changed
    at runtime.
    """
    settings = settings or get_settings().price
    sources = []
    for name in settings.providers:
        source_cls = PRICE_SOURCES[name]
        sources.append(source_cls(
            url=getattr(settings, f"{name}_url"),
            timeout_seconds=settings.request_timeout_seconds,
            http_client=http_client,
        ))
    return sources
