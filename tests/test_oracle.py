"""Tests for the BTC price oracle waterfall."""

import asyncio
import pytest
from decimal import Decimal

from coinpurse.models.audit import AuditEventType
from coinpurse.models.ledger import CurrencyCode, PriceQuote
from coinpurse.pricing import PriceOracle, PriceSourceClient


class CrashingSource(PriceSourceClient):
    """Breaks the fetch_quote contract by raising."""

    name = "crashing"

    def __init__(self):
        super().__init__(url="memory://crashing")

    def extract_price(self, payload):
        return payload

    async def fetch_quote(self) -> PriceQuote:
        raise RuntimeError("unexpected")


class OverlapTrackingSource(PriceSourceClient):
    """Records how many fetches overlap."""

    name = "overlap"

    def __init__(self):
        super().__init__(url="memory://overlap")
        self.in_flight = 0
        self.max_in_flight = 0

    def extract_price(self, payload):
        return payload

    async def fetch_quote(self) -> PriceQuote:
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0.01)
        self.in_flight -= 1
        return PriceQuote(source=self.name, price_usd=Decimal("50000"))


class SwitchableSource(PriceSourceClient):
    """Answers or fails depending on a flag the test flips."""

    name = "switchable"

    def __init__(self, price="50000"):
        super().__init__(url="memory://switchable")
        self.price = Decimal(price)
        self.failing = False

    def extract_price(self, payload):
        return payload

    async def fetch_quote(self) -> PriceQuote:
        if self.failing:
            return PriceQuote(source=self.name, error="HTTP 503")
        return PriceQuote(source=self.name, price_usd=self.price)


def event_types(audit_storage):
    return [event.event_type for event in audit_storage.events]


class TestInitialState:
    """Tests for the oracle before any refresh."""

    def test_starts_with_fallback(self, oracle):
        """Test the sentinel price and fallback SATS factor."""
        snapshot = oracle.get_current_rates()

        assert snapshot.btc_price_usd == Decimal(0)
        assert snapshot.is_live is False
        assert snapshot.source is None
        assert snapshot.rates[CurrencyCode.SATS] == Decimal("0.0006")
        assert snapshot.rates[CurrencyCode.INR] == Decimal("83")
        assert oracle.current_price == Decimal(0)

    def test_converter_works_before_refresh(self, oracle):
        """Test conversion uses the fallback constant before the first price."""
        converter = oracle.converter()
        assert converter.convert(Decimal("100000000"), "SATS", "USD") == Decimal("60000")


class TestWaterfall:
    """Tests for ordered provider fallback."""

    @pytest.mark.asyncio
    async def test_first_success_short_circuits(self, price_settings, make_source):
        """Test later providers are not called once one succeeds."""
        first = make_source("coinbase", price="50000")
        second = make_source("coingecko", price="51000")
        oracle = PriceOracle([first, second], settings=price_settings)

        assert await oracle.refresh() is True

        assert first.calls == 1
        assert second.calls == 0
        assert oracle.current_price == Decimal("50000")
        assert oracle.get_current_rates().source == "coinbase"

    @pytest.mark.asyncio
    async def test_falls_through_to_third_provider(
        self, price_settings, make_source, audit_logger, audit_storage
    ):
        """Test A and B failing leaves C's price in place."""
        a = make_source("coinbase", error="HTTP 500")
        b = make_source("coingecko", error="Timed out")
        c = make_source("kraken", price="48000")
        oracle = PriceOracle([a, b, c], settings=price_settings, audit_logger=audit_logger)

        assert await oracle.refresh() is True

        snapshot = oracle.get_current_rates()
        assert snapshot.btc_price_usd == Decimal("48000")
        assert snapshot.source == "kraken"
        assert snapshot.rates[CurrencyCode.SATS] == Decimal("0.00048")
        assert (a.calls, b.calls, c.calls) == (1, 1, 1)
        assert event_types(audit_storage) == [AuditEventType.PRICE_REFRESHED]
        assert audit_storage.events[-1].details["attempts"] == 3

    @pytest.mark.asyncio
    async def test_all_fail_leaves_snapshot_untouched(
        self, price_settings, make_source, audit_logger, audit_storage
    ):
        """Test a fully failed cycle changes nothing and does not raise."""
        oracle = PriceOracle(
            [make_source("coinbase", error="HTTP 500"), make_source("kraken", error="HTTP 502")],
            settings=price_settings,
            audit_logger=audit_logger,
        )
        before = oracle.get_current_rates()

        assert await oracle.refresh() is False

        assert oracle.get_current_rates() is before
        assert event_types(audit_storage)[-1] == AuditEventType.PRICE_PROVIDERS_EXHAUSTED
        assert audit_storage.events[-1].details["errors"] == {
            "coinbase": "HTTP 500",
            "kraken": "HTTP 502",
        }

    @pytest.mark.asyncio
    async def test_all_fail_keeps_last_good_price(self, price_settings, make_source):
        """Test a failed cycle after a success keeps the earlier price."""
        good = make_source("coinbase", price="50000")
        oracle = PriceOracle([good], settings=price_settings)
        await oracle.refresh()
        after_success = oracle.get_current_rates()

        good._error = "HTTP 500"
        assert await oracle.refresh() is False

        assert oracle.get_current_rates() is after_success
        assert oracle.current_price == Decimal("50000")

    @pytest.mark.asyncio
    async def test_slow_provider_times_out(self, price_settings, make_source):
        """Test a provider past its deadline is skipped."""
        slow = make_source("coinbase", price="50000", delay=5)
        fast = make_source("kraken", price="47000")
        oracle = PriceOracle([slow, fast], settings=price_settings)

        assert await oracle.refresh() is True

        assert oracle.get_current_rates().source == "kraken"

    @pytest.mark.asyncio
    async def test_raising_source_treated_as_unavailable(self, price_settings, make_source):
        """Test an exception from a source does not stop the waterfall."""
        oracle = PriceOracle(
            [CrashingSource(), make_source("kraken", price="47000")],
            settings=price_settings,
        )

        assert await oracle.refresh() is True
        assert oracle.current_price == Decimal("47000")

    @pytest.mark.asyncio
    async def test_no_sources_configured(self, price_settings):
        """Test an empty source list is a failed cycle, not an error."""
        oracle = PriceOracle([], settings=price_settings)
        assert await oracle.refresh() is False


class TestSnapshots:
    """Tests for atomic snapshot publication."""

    @pytest.mark.asyncio
    async def test_snapshot_fields_are_consistent(self, oracle):
        """Test price and SATS factor always come from the same refresh."""
        old = oracle.get_current_rates()

        await oracle.refresh()
        new = oracle.get_current_rates()

        assert new is not old
        assert new.rates[CurrencyCode.SATS] == new.btc_price_usd / Decimal("100000000")
        # Readers holding the old snapshot still see the old values
        assert old.btc_price_usd == Decimal(0)
        assert old.rates[CurrencyCode.SATS] == Decimal("0.0006")

    @pytest.mark.asyncio
    async def test_converter_pinned_to_snapshot(self, oracle):
        """Test a converter keeps its rates across a later refresh."""
        before = oracle.converter()
        await oracle.refresh()
        after = oracle.converter()

        sats = Decimal("100000000")
        assert before.convert(sats, "SATS", "USD") == Decimal("60000")
        assert after.convert(sats, "SATS", "USD") == Decimal("50000")

    @pytest.mark.asyncio
    async def test_fiat_factors_stay_static(self, oracle):
        """Test a refresh only changes the SATS factor."""
        before = oracle.get_current_rates().rates
        await oracle.refresh()
        after = oracle.get_current_rates().rates

        assert after[CurrencyCode.INR] == before[CurrencyCode.INR]
        assert after[CurrencyCode.EUR] == before[CurrencyCode.EUR]
        assert after[CurrencyCode.USD] == Decimal(1)

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_are_serialised(self, price_settings):
        """Test two refreshes never query providers at the same time."""
        source = OverlapTrackingSource()
        oracle = PriceOracle([source], settings=price_settings)

        results = await asyncio.gather(oracle.refresh(), oracle.refresh(), oracle.refresh())

        assert results == [True, True, True]
        assert source.max_in_flight == 1

    @pytest.mark.asyncio
    async def test_readers_never_see_partial_snapshot(self, price_settings, make_source):
        """Test reads during an in-flight refresh return a whole snapshot."""
        oracle = PriceOracle([make_source("slow", price="42000", delay=0.05)], settings=price_settings)
        fallback = oracle.get_current_rates()

        refresh = asyncio.create_task(oracle.refresh())
        seen = []
        while not refresh.done():
            seen.append(oracle.get_current_rates())
            await asyncio.sleep(0.005)
        assert await refresh is True
        seen.append(oracle.get_current_rates())

        assert len(seen) > 2
        for snapshot in seen:
            if snapshot is fallback:
                continue
            assert snapshot.btc_price_usd == Decimal("42000")
            assert snapshot.rates[CurrencyCode.SATS] == snapshot.btc_price_usd / Decimal("100000000")
        assert seen[0] is fallback
        assert seen[-1] is not fallback


class TestAuditVolume:
    """Tests that the timer does not flood the audit trail."""

    @pytest.mark.asyncio
    async def test_steady_refreshes_audit_once(self, price_settings, make_source, audit_logger, audit_storage):
        """Test a day of successful refreshes writes a single audit event."""
        oracle = PriceOracle([make_source("coinbase", price="50000")], settings=price_settings, audit_logger=audit_logger)

        for _ in range(1440):
            await oracle.refresh()

        assert event_types(audit_storage) == [AuditEventType.PRICE_REFRESHED]

    @pytest.mark.asyncio
    async def test_outage_and_recovery_audited_once_each(self, price_settings, audit_logger, audit_storage):
        """Test only the transitions into and out of an outage are audited."""
        source = SwitchableSource()
        oracle = PriceOracle([source], settings=price_settings, audit_logger=audit_logger)

        await oracle.refresh()
        source.failing = True
        for _ in range(5):
            assert await oracle.refresh() is False
        source.failing = False
        for _ in range(5):
            assert await oracle.refresh() is True

        assert event_types(audit_storage) == [
            AuditEventType.PRICE_REFRESHED,
            AuditEventType.PRICE_PROVIDERS_EXHAUSTED,
            AuditEventType.PRICE_REFRESHED,
        ]

    @pytest.mark.asyncio
    async def test_failure_at_startup_is_audited(self, price_settings, make_source, audit_logger, audit_storage):
        """Test an outage that starts before any success is still recorded."""
        oracle = PriceOracle([make_source("coinbase", error="HTTP 500")], settings=price_settings, audit_logger=audit_logger)

        await oracle.refresh()
        await oracle.refresh()

        assert event_types(audit_storage) == [AuditEventType.PRICE_PROVIDERS_EXHAUSTED]
