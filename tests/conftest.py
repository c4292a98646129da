"""
Shared fixtures.

External collaborators are replaced with in-process fakes: price sources
that answer from memory, a notifier that records messages, and the
in-memory storage backends.
"""

import asyncio
from decimal import Decimal
from typing import Any, Optional

import pytest

from coinpurse.audit import AuditLogger
from coinpurse.config import PriceSettings
from coinpurse.models.ledger import PriceQuote
from coinpurse.pricing import PriceOracle, PriceSourceClient
from coinpurse.services.notifications import NotificationError, NotifierInterface
from coinpurse.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage


class StaticSource(PriceSourceClient):
    """Answers with a fixed price, or fails, without touching the network."""

    def __init__(
        self,
        name: str,
        price: Optional[Any] = None,
        error: Optional[str] = None,
        delay: float = 0.0,
    ):
        super().__init__(url=f"memory://{name}")
        self.name = name
        self._price = price
        self._error = error
        self._delay = delay
        self.calls = 0

    def extract_price(self, payload: Any) -> Any:
        return payload

    async def fetch_quote(self) -> PriceQuote:
        self.calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            return PriceQuote(source=self.name, error=self._error)
        return PriceQuote(source=self.name, price_usd=Decimal(str(self._price)))


class RecordingNotifier(NotifierInterface):
    """Keeps every message instead of sending it."""

    def __init__(self, fail: bool = False):
        self.sent: list[tuple[str, str, str]] = []
        self.fail = fail

    async def send(self, to: str, subject: str, body: str) -> None:
        if self.fail:
            raise NotificationError("SMTP server unreachable")
        self.sent.append((to, subject, body))


@pytest.fixture
def price_settings() -> PriceSettings:
    return PriceSettings(
        provider_order="coinbase,coingecko,kraken",
        request_timeout_seconds=0.5,
        refresh_interval_seconds=60,
        fallback_btc_price_usd=Decimal("60000"),
        inr_per_usd=Decimal("83"),
        eur_per_usd=Decimal("0.92"),
    )


@pytest.fixture
def ledger_storage() -> InMemoryLedgerStorage:
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def oracle(price_settings, audit_logger) -> PriceOracle:
    """Oracle with a single source answering 50,000 USD."""
    return PriceOracle(
        sources=[StaticSource("coinbase", price="50000")],
        settings=price_settings,
        audit_logger=audit_logger,
    )


@pytest.fixture
def failing_notifier() -> RecordingNotifier:
    return RecordingNotifier(fail=True)


@pytest.fixture
def make_source():
    """Factory for in-memory price sources."""
    return StaticSource
