"""
BTC Price Oracle

Single source of truth for the current BTC/USD price and the RateTable
derived from it.

DESIGN DECISION: Waterfall, not consensus. Providers are tried in the
configured order and the first usable answer wins. Order never changes
at runtime.

DESIGN DECISION: The current state is one immutable RateSnapshot held in
a single attribute. A refresh builds a complete new snapshot and rebinds
the attribute, so readers see either the old snapshot or the new one,
never a mix of the two.

FAILURE POLICY:
- A failing or slow provider only costs its own deadline; the next one is tried.
- If every provider fails the snapshot is left untouched and the failure
  is logged. refresh() never raises for it.
- The audit trail only records changes: the first success after startup
  or after an outage, and the first cycle of an outage. Routine refreshes
  and single provider failures go to the logs only.
"""

import asyncio
from decimal import Decimal
from typing import Optional, Sequence

import structlog

from coinpurse.audit import AuditLogger
from coinpurse.config import PriceSettings, get_settings
from coinpurse.models.ledger import (
    SATS_PER_BTC,
    PriceQuote,
    RateSnapshot,
    RateTable,
)
from coinpurse.pricing.converter import CurrencyConverter
from coinpurse.pricing.sources import PriceSourceClient, PricingError


logger = structlog.get_logger(__name__)


class AllProvidersExhaustedError(PricingError):
    """Every configured provider failed within one refresh cycle."""

    def __init__(self, errors: dict[str, str]):
        self.errors = errors
        if errors:
            message = "All price providers failed: " + "; ".join(
                f"{name}: {error}" for name, error in errors.items()
            )
        else:
            message = "No price providers configured"
        super().__init__(message)


class PriceOracle:
    """
    Holds the latest BTC/USD price and refreshes it through an ordered
    list of price sources.

    One instance is created per process and passed to everything that
    needs rates (scheduler, budget evaluator, reports).
    """

    def __init__(
        self,
        sources: Sequence[PriceSourceClient],
        settings: Optional[PriceSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        """
        Args:
            sources: Price sources, highest priority first
            settings: Price settings (timeouts, static rates, fallback price)
            audit_logger: Optional audit trail for refresh outcomes
        """
        self._settings = settings or get_settings().price
        self._sources = list(sources)
        self._audit_logger = audit_logger
        self._timeout = self._settings.request_timeout_seconds

        # Static part of the table; only SATS is ever refreshed
        self._fallback_rates = RateTable.build(
            sats_usd=self._settings.fallback_btc_price_usd / SATS_PER_BTC,
            inr_per_usd=self._settings.inr_per_usd,
            eur_per_usd=self._settings.eur_per_usd,
        )
        self._snapshot = RateSnapshot(rates=self._fallback_rates)
        self._refresh_lock = asyncio.Lock()
        # None until the first refresh; audit events are written on changes only
        self._healthy: Optional[bool] = None

    @property
    def sources(self) -> list[PriceSourceClient]:
        return list(self._sources)

    @property
    def fallback_rates(self) -> RateTable:
        return self._fallback_rates

    @property
    def current_price(self) -> Decimal:
        """Last fetched BTC/USD price, or 0 if none has been fetched yet."""
        return self._snapshot.btc_price_usd

    def get_current_rates(self) -> RateSnapshot:
        """
        Return the current snapshot.

        Never blocks and never fails. Before the first successful refresh
        this is the fallback table with btc_price_usd == 0.
        """
        return self._snapshot

    def converter(self) -> CurrencyConverter:
        """A converter pinned to the current snapshot."""
        return CurrencyConverter(
            self.get_current_rates().rates,
            fallback=self._fallback_rates,
        )

    async def refresh(self) -> bool:
        """
        Fetch a fresh price and publish a new snapshot.

        Concurrent calls are serialised; a second caller waits for the
        running cycle and then runs its own.

        Returns:
            True if a provider answered and the snapshot was replaced,
            False if every provider failed (snapshot unchanged).
        """
        async with self._refresh_lock:
            try:
                quote, attempts = await self._fetch_first_available()
            except AllProvidersExhaustedError as e:
                logger.error(
                    "price_refresh_failed",
                    errors=e.errors,
                    kept_price=str(self._snapshot.btc_price_usd),
                )
                if self._healthy is not False and self._audit_logger:
                    await self._audit_logger.log_price_providers_exhausted(
                        sources=[source.name for source in self._sources],
                        errors=e.errors,
                    )
                self._healthy = False
                return False

            self._snapshot = RateSnapshot(
                rates=self._fallback_rates.with_btc_price(quote.price_usd),
                btc_price_usd=quote.price_usd,
                source=quote.source,
                refreshed_at=quote.fetched_at,
            )

            logger.info(
                "price_refreshed",
                source=quote.source,
                price=str(quote.price_usd),
                attempts=attempts,
            )
            if self._healthy is not True and self._audit_logger:
                await self._audit_logger.log_price_refreshed(
                    source=quote.source,
                    price_usd=str(quote.price_usd),
                    attempts=attempts,
                )
            self._healthy = True
            return True

    async def _fetch_first_available(self) -> tuple[PriceQuote, int]:
        """
        Walk the sources in order and stop at the first usable quote.

        Raises:
            AllProvidersExhaustedError: If no source produced a price
        """
        errors: dict[str, str] = {}

        for attempt, source in enumerate(self._sources, start=1):
            quote = await self._query(source)
            if quote.available:
                return quote, attempt

            errors[source.name] = quote.error or "unavailable"
            logger.warning(
                "price_provider_failed",
                source=source.name,
                error=errors[source.name],
            )

        raise AllProvidersExhaustedError(errors)

    async def _query(self, source: PriceSourceClient) -> PriceQuote:
        """Ask one source, bounded by its own deadline."""
        try:
            return await asyncio.wait_for(source.fetch_quote(), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("price_source_timeout", source=source.name, timeout=self._timeout)
            return PriceQuote(
                source=source.name,
                error=f"No answer within {self._timeout}s",
            )
        except Exception as e:
            # Sources must not raise; treat a broken one like an unavailable one
            logger.exception("price_source_crashed", source=source.name)
            return PriceQuote(source=source.name, error=f"{type(e).__name__}: {e}")
