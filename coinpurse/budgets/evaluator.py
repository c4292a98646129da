"""
Budget Evaluation

Runs after every persisted expense for a (user, category) pair:

1. No budget for the pair -> nothing to do.
2. Re-sum every EXPENSE in the category, converted to USD with one
   converter pinned to the current rate snapshot.
3. spent > limit (strictly) -> one alert per check.
4. A failed alert is logged and audited, never raised. The expense that
   triggered the check is already stored and stays stored.

DESIGN DECISION: Every check over the limit sends an alert, including
repeats while the category stays over budget. There is no suppression
state between checks.
"""

from decimal import Decimal
from typing import Callable, Iterable, Optional
from uuid import UUID

import structlog

from coinpurse.audit import AuditLogger
from coinpurse.config import get_settings
from coinpurse.models.ledger import (
    Budget,
    BudgetStatus,
    Transaction,
    TransactionType,
)
from coinpurse.pricing import CurrencyConverter, PriceOracle
from coinpurse.services.notifications import NotifierInterface
from coinpurse.services.storage import LedgerStorageInterface


logger = structlog.get_logger(__name__)


RecipientResolver = Callable[[str], str]


def sum_expenses_usd(
    transactions: Iterable[Transaction],
    converter: CurrencyConverter,
) -> Decimal:
    """Total of the EXPENSE transactions, in USD."""
    total = Decimal(0)
    for tx in transactions:
        if tx.type != TransactionType.EXPENSE:
            continue
        total += converter.to_usd(tx.amount, tx.currency)
    return total


def default_recipient(user_id: str) -> str:
    """
    Where a user's alerts go.

    User ids that already look like email addresses are used as is;
    otherwise the configured alert domain is appended when there is one.
    """
    if "@" in user_id:
        return user_id
    domain = get_settings().app.alert_recipient_domain
    if domain:
        return f"{user_id}@{domain}"
    return user_id


class BudgetEvaluator:
    """Checks a category's spending against its budget and raises alerts."""

    def __init__(
        self,
        storage: LedgerStorageInterface,
        oracle: PriceOracle,
        notifier: NotifierInterface,
        audit_logger: Optional[AuditLogger] = None,
        recipient_resolver: Optional[RecipientResolver] = None,
    ):
        self._storage = storage
        self._oracle = oracle
        self._notifier = notifier
        self._audit_logger = audit_logger
        self._resolve_recipient = recipient_resolver or default_recipient

    async def spent_usd(self, user_id: str, category: str) -> Decimal:
        """Current USD spend for a (user, category) pair."""
        expenses = await self._storage.list_transactions(
            user_id=user_id,
            category=category,
            tx_type=TransactionType.EXPENSE,
        )
        return sum_expenses_usd(expenses, self._oracle.converter())

    async def evaluate(
        self,
        user_id: str,
        category: str,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[BudgetStatus]:
        """
        Evaluate the budget of one (user, category) pair.

        Returns:
            The evaluation outcome, or None if the pair has no budget
        """
        budget = await self._storage.get_budget(user_id, category)
        if budget is None:
            return None

        spent = await self.spent_usd(user_id, budget.category)
        status = BudgetStatus(
            budget=budget,
            spent_usd=spent,
            exceeded=spent > budget.limit_usd,
        )

        if not status.exceeded:
            logger.debug(
                "budget_within_limit",
                user_id=user_id,
                category=budget.category,
                spent_usd=str(spent),
                limit_usd=str(budget.limit_usd),
            )
            return status

        logger.info(
            "budget_exceeded",
            user_id=user_id,
            category=budget.category,
            spent_usd=str(spent),
            limit_usd=str(budget.limit_usd),
        )
        if self._audit_logger:
            await self._audit_logger.log_budget_exceeded(
                budget_id=budget.id,
                category=budget.category,
                spent_usd=str(spent),
                limit_usd=str(budget.limit_usd),
                correlation_id=correlation_id,
            )

        status.notified = await self._notify(budget, spent, correlation_id)
        return status

    async def _notify(
        self,
        budget: Budget,
        spent: Decimal,
        correlation_id: Optional[UUID],
    ) -> bool:
        recipient = self._resolve_recipient(budget.user_id)
        subject = f"Budget exceeded: {budget.category}"
        body = (
            f"You have spent {spent:.2f} USD in '{budget.category}', "
            f"over your budget of {budget.limit_usd:.2f} USD."
        )

        try:
            await self._notifier.send(recipient, subject, body)
        except Exception as e:
            # The expense is already stored; a lost alert must not undo it
            logger.warning(
                "budget_notification_failed",
                budget_id=str(budget.id),
                recipient=recipient,
                error=str(e),
            )
            if self._audit_logger:
                await self._audit_logger.log_notification_failed(
                    budget_id=budget.id,
                    recipient=recipient,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            return False

        if self._audit_logger:
            await self._audit_logger.log_notification_sent(
                budget_id=budget.id,
                recipient=recipient,
                correlation_id=correlation_id,
            )
        return True
