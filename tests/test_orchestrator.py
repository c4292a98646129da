"""Integration tests for the transaction and wallet flows."""

import pytest
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from coinpurse.budgets import BudgetEvaluator
from coinpurse.models.audit import AuditEventType
from coinpurse.models.ledger import AddressBalance, CurrencyCode, InvalidCurrencyError, TransactionType
from coinpurse.orchestrator import TransactionFlow, WalletFlow, create_app_components
from coinpurse.services.notifications import LogOnlyNotifier
from coinpurse.services.onchain import InvalidAddressError
from coinpurse.services.storage import InMemoryLedgerStorage


class BrokenEvaluator:
    async def evaluate(self, user_id, category, correlation_id=None):
        raise RuntimeError("rates unavailable")


class FakeBalanceClient:
    def __init__(self, balance=None, error=None):
        self._balance = balance
        self._error = error

    async def get_balance(self, address):
        if self._error:
            raise self._error
        return self._balance


@pytest.fixture
def flow(ledger_storage, oracle, notifier, audit_logger) -> TransactionFlow:
    evaluator = BudgetEvaluator(
        storage=ledger_storage,
        oracle=oracle,
        notifier=notifier,
        audit_logger=audit_logger,
        recipient_resolver=lambda user_id: f"{user_id}@example.com",
    )
    return TransactionFlow(ledger_storage, evaluator, audit_logger)


class TestRecordTransaction:
    """Tests for TransactionFlow.record_transaction."""

    async def test_income_skips_budget_check(self, flow, notifier):
        """Test income is stored without evaluating budgets."""
        await flow.set_budget("alice", "salary", Decimal("1"))

        tx, status = await flow.record_transaction("alice", "salary", Decimal("5000"), "INCOME")

        assert tx.type == TransactionType.INCOME
        assert status is None
        assert notifier.sent == []

    async def test_expense_over_budget_notifies(self, flow, notifier):
        """Test the expense that crosses the limit triggers an alert."""
        await flow.set_budget("alice", "Food", Decimal("100"))

        _, first = await flow.record_transaction("alice", "food", Decimal("60"), TransactionType.EXPENSE)
        _, second = await flow.record_transaction("alice", "FOOD", Decimal("41"), TransactionType.EXPENSE)

        assert first.exceeded is False
        assert second.exceeded is True
        assert len(notifier.sent) == 1

    async def test_expense_in_foreign_currency(self, flow):
        """Test the currency tag is kept and validated."""
        tx, _ = await flow.record_transaction("alice", "food", "830", "EXPENSE", currency="inr")

        assert tx.currency == CurrencyCode.INR
        assert tx.amount == Decimal("830")

    async def test_type_accepted_in_any_case(self, flow):
        """Test lower-case type names work for writes as they do for listing."""
        tx, _ = await flow.record_transaction("alice", "food", Decimal("5"), " expense ")

        assert tx.type == TransactionType.EXPENSE
        assert await flow.list_transactions("alice", tx_type="expense") == [tx]

    async def test_unknown_type_rejected_before_save(self, flow, ledger_storage):
        """Test nothing is stored for a type other than income or expense."""
        with pytest.raises(ValueError):
            await flow.record_transaction("alice", "food", Decimal("1"), "transfer")

        assert await ledger_storage.list_transactions("alice") == []

    async def test_unknown_currency_rejected_before_save(self, flow, ledger_storage):
        """Test nothing is stored for an unsupported currency."""
        with pytest.raises(InvalidCurrencyError):
            await flow.record_transaction("alice", "food", Decimal("1"), "EXPENSE", currency="GBP")

        assert await ledger_storage.list_transactions("alice") == []

    async def test_evaluation_failure_keeps_transaction(
        self, ledger_storage, audit_logger, audit_storage
    ):
        """Test a crashing budget check does not undo the write."""
        flow = TransactionFlow(ledger_storage, BrokenEvaluator(), audit_logger)

        tx, status = await flow.record_transaction("alice", "food", Decimal("10"), "EXPENSE")

        assert status is None
        assert await ledger_storage.get_transaction(tx.id) == tx
        types = [event.event_type for event in audit_storage.events]
        assert types == [AuditEventType.TRANSACTION_SAVED, AuditEventType.SYSTEM_ERROR]

    async def test_write_and_check_share_correlation_id(self, flow, audit_storage):
        """Test audit events of one write can be traced together."""
        await flow.set_budget("alice", "food", Decimal("5"))
        correlation_id = uuid4()

        await flow.record_transaction(
            "alice", "food", Decimal("10"), "EXPENSE", correlation_id=correlation_id
        )

        traced = await audit_storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in traced] == [
            AuditEventType.TRANSACTION_SAVED,
            AuditEventType.BUDGET_EXCEEDED,
            AuditEventType.NOTIFICATION_SENT,
        ]


class TestListAndDelete:
    """Tests for listing and deleting transactions."""

    async def test_list_newest_first(self, flow):
        """Test transactions come back newest first."""
        await flow.record_transaction("alice", "food", Decimal("1"), "EXPENSE", occurred_at=datetime(2024, 1, 1))
        await flow.record_transaction("alice", "food", Decimal("2"), "EXPENSE", occurred_at=datetime(2024, 3, 1))
        await flow.record_transaction("alice", "rent", Decimal("3"), "EXPENSE", occurred_at=datetime(2024, 2, 1))

        transactions = await flow.list_transactions("alice")

        assert [tx.amount for tx in transactions] == [Decimal("2"), Decimal("3"), Decimal("1")]

    async def test_list_filters(self, flow):
        """Test category and type filters."""
        await flow.record_transaction("alice", "food", Decimal("1"), "EXPENSE")
        await flow.record_transaction("alice", "salary", Decimal("2"), "INCOME")

        assert len(await flow.list_transactions("alice", tx_type="income")) == 1
        assert len(await flow.list_transactions("alice", category="Food")) == 1

    async def test_delete(self, flow, audit_storage):
        """Test deleting removes the transaction and is audited."""
        tx, _ = await flow.record_transaction("alice", "food", Decimal("1"), "EXPENSE")

        assert await flow.delete_transaction(tx.id) is True
        assert await flow.delete_transaction(tx.id) is False
        assert await flow.list_transactions("alice") == []
        deleted = [e for e in audit_storage.events if e.event_type == AuditEventType.TRANSACTION_DELETED]
        assert len(deleted) == 1


class TestBudgets:
    """Tests for budget management."""

    async def test_set_budget_replaces_limit(self, flow):
        """Test one budget per (user, category); saving again replaces it."""
        await flow.set_budget("alice", "food", Decimal("100"))
        await flow.set_budget("alice", "FOOD", Decimal("250"))

        budgets = await flow.list_budgets("alice")

        assert len(budgets) == 1
        assert budgets[0].limit_usd == Decimal("250")


class TestWalletFlow:
    """Tests for WalletFlow.get_balance."""

    async def test_balance_valued_with_current_price(self, oracle):
        """Test the sat balance is converted with the oracle's rates."""
        await oracle.refresh()  # BTC at 50,000 USD
        balance = AddressBalance(address="bc1qexample", confirmed_funded=200_000)
        wallet = WalletFlow(FakeBalanceClient(balance=balance), oracle)

        result, value = await wallet.get_balance("bc1qexample", "USD")

        assert result.balance_sats == 200_000
        assert value == Decimal("100")

    async def test_lookup_failure_audited_and_raised(self, oracle, audit_logger, audit_storage):
        """Test balance errors are audited and passed to the caller."""
        wallet = WalletFlow(
            FakeBalanceClient(error=InvalidAddressError("nope", "Address rejected")),
            oracle,
            audit_logger,
        )

        with pytest.raises(InvalidAddressError):
            await wallet.get_balance("nope")

        assert audit_storage.events[-1].event_type == AuditEventType.BALANCE_LOOKUP_FAILED


class TestAppComponents:
    """Tests for the component factory."""

    def test_builds_in_memory_components(self):
        """Test everything is wired without Google Sheets."""
        components = create_app_components(use_storage=False, notifier=LogOnlyNotifier())

        assert isinstance(components.storage, InMemoryLedgerStorage)
        assert components.sheets_client is None
        assert [s.name for s in components.oracle.sources] == ["coinbase", "coingecko", "kraken"]
        assert components.scheduler.interval_seconds == 60
        assert not components.scheduler.running
