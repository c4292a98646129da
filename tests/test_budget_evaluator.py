"""Tests for budget evaluation and alerts."""

import pytest
from decimal import Decimal

from coinpurse.budgets import BudgetEvaluator, default_recipient, sum_expenses_usd
from coinpurse.config import get_settings
from coinpurse.models.audit import AuditEventType
from coinpurse.models.ledger import Budget, Transaction, TransactionType


def expense(amount, currency="USD", category="food", user_id="alice"):
    return Transaction(
        user_id=user_id,
        category=category,
        amount=Decimal(str(amount)),
        currency=currency,
        type=TransactionType.EXPENSE,
    )


@pytest.fixture
def evaluator(ledger_storage, oracle, notifier, audit_logger) -> BudgetEvaluator:
    return BudgetEvaluator(
        storage=ledger_storage,
        oracle=oracle,
        notifier=notifier,
        audit_logger=audit_logger,
        recipient_resolver=lambda user_id: f"{user_id}@example.com",
    )


async def store(storage, *transactions):
    for tx in transactions:
        await storage.save_transaction(tx)


class TestThreshold:
    """Tests for the strict over-limit comparison."""

    @pytest.mark.asyncio
    async def test_over_limit_sends_one_notification(self, evaluator, ledger_storage, notifier):
        """Test 101 USD against a 100 USD limit sends exactly one alert."""
        await ledger_storage.save_budget(Budget(user_id="alice", category="food", limit_usd=Decimal("100")))
        await store(ledger_storage, expense("60"), expense("41"))

        status = await evaluator.evaluate("alice", "food")

        assert status.exceeded is True
        assert status.notified is True
        assert status.spent_usd == Decimal("101")
        assert len(notifier.sent) == 1
        to, subject, body = notifier.sent[0]
        assert to == "alice@example.com"
        assert "food" in subject
        assert "101.00" in body

    @pytest.mark.asyncio
    async def test_exactly_at_limit_sends_nothing(self, evaluator, ledger_storage, notifier):
        """Test spending equal to the limit is not an overrun."""
        await ledger_storage.save_budget(Budget(user_id="alice", category="food", limit_usd=Decimal("100")))
        await store(ledger_storage, expense("100"))

        status = await evaluator.evaluate("alice", "food")

        assert status.exceeded is False
        assert status.notified is False
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_no_budget_returns_none(self, evaluator, ledger_storage, notifier):
        """Test a category without a budget is skipped silently."""
        await store(ledger_storage, expense("5000"))

        assert await evaluator.evaluate("alice", "food") is None
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_income_is_not_counted(self, evaluator, ledger_storage, notifier):
        """Test only EXPENSE transactions count toward the budget."""
        await ledger_storage.save_budget(Budget(user_id="alice", category="food", limit_usd=Decimal("100")))
        await store(
            ledger_storage,
            expense("50"),
            Transaction(user_id="alice", category="food", amount=Decimal("500"), type=TransactionType.INCOME),
        )

        status = await evaluator.evaluate("alice", "food")

        assert status.spent_usd == Decimal("50")
        assert notifier.sent == []

    @pytest.mark.asyncio
    async def test_other_users_and_categories_ignored(self, evaluator, ledger_storage):
        """Test the sum is scoped to one (user, category) pair."""
        await ledger_storage.save_budget(Budget(user_id="alice", category="food", limit_usd=Decimal("100")))
        await store(
            ledger_storage,
            expense("40"),
            expense("500", user_id="bob"),
            expense("500", category="rent"),
        )

        status = await evaluator.evaluate("alice", "food")

        assert status.spent_usd == Decimal("40")


class TestConversion:
    """Tests for mixed-currency sums."""

    @pytest.mark.asyncio
    async def test_mixed_currencies_summed_in_usd(self, evaluator, ledger_storage, oracle, notifier):
        """Test INR, EUR and SATS expenses are converted before comparing."""
        await oracle.refresh()  # BTC at 50,000 USD
        await ledger_storage.save_budget(Budget(user_id="alice", category="food", limit_usd=Decimal("100")))
        await store(
            ledger_storage,
            expense("830", currency="INR"),      # 10 USD
            expense("46", currency="EUR"),       # 50 USD
            expense("82000", currency="SATS"),   # 41 USD
        )

        status = await evaluator.evaluate("alice", "food")

        assert status.spent_usd == Decimal("101")
        assert len(notifier.sent) == 1

    def test_sum_expenses_usd(self, oracle):
        """Test the helper skips income and converts expenses."""
        transactions = [
            expense("83", currency="INR"),
            Transaction(user_id="alice", category="food", amount=Decimal("1000"), type=TransactionType.INCOME),
        ]
        assert sum_expenses_usd(transactions, oracle.converter()) == Decimal("1")


class TestNotificationPolicy:
    """Tests for repeat alerts and delivery failures."""

    @pytest.mark.asyncio
    async def test_repeat_checks_notify_every_time(self, evaluator, ledger_storage, notifier):
        """Test every check while over budget sends another alert."""
        await ledger_storage.save_budget(Budget(user_id="alice", category="food", limit_usd=Decimal("100")))
        await store(ledger_storage, expense("150"))

        await evaluator.evaluate("alice", "food")
        await store(ledger_storage, expense("1"))
        await evaluator.evaluate("alice", "food")

        assert len(notifier.sent) == 2

    @pytest.mark.asyncio
    async def test_notification_failure_is_swallowed(
        self, ledger_storage, oracle, failing_notifier, audit_logger, audit_storage
    ):
        """Test a failing mailer neither raises nor touches stored expenses."""
        evaluator = BudgetEvaluator(
            storage=ledger_storage,
            oracle=oracle,
            notifier=failing_notifier,
            audit_logger=audit_logger,
            recipient_resolver=lambda user_id: "alice@example.com",
        )
        await ledger_storage.save_budget(Budget(user_id="alice", category="food", limit_usd=Decimal("100")))
        await store(ledger_storage, expense("150"))

        status = await evaluator.evaluate("alice", "food")

        assert status.exceeded is True
        assert status.notified is False
        assert len(await ledger_storage.list_transactions("alice")) == 1
        types = [event.event_type for event in audit_storage.events]
        assert AuditEventType.BUDGET_EXCEEDED in types
        assert AuditEventType.NOTIFICATION_FAILED in types
        assert AuditEventType.NOTIFICATION_SENT not in types

    @pytest.mark.asyncio
    async def test_successful_notification_audited(self, evaluator, ledger_storage, audit_storage):
        """Test a delivered alert leaves a notification_sent event."""
        await ledger_storage.save_budget(Budget(user_id="alice", category="food", limit_usd=Decimal("10")))
        await store(ledger_storage, expense("11"))

        await evaluator.evaluate("alice", "food")

        types = [event.event_type for event in audit_storage.events]
        assert types == [AuditEventType.BUDGET_EXCEEDED, AuditEventType.NOTIFICATION_SENT]


class TestRecipient:
    """Tests for alert recipient resolution."""

    def test_email_user_id_used_as_is(self):
        """Test user ids that are addresses need no domain."""
        assert default_recipient("alice@example.com") == "alice@example.com"

    def test_domain_appended(self, monkeypatch):
        """Test the configured domain is appended to plain user ids."""
        monkeypatch.setenv("ALERT_RECIPIENT_DOMAIN", "family.test")
        get_settings.cache_clear()

        assert default_recipient("alice") == "alice@family.test"
