"""
Main Orchestrator for Coinpurse

This module ties together all the components and defines the
end-to-end flows for:
1. Transactions (record -> persist -> audit -> budget check)
2. Budgets (create or replace the limit for a category)
3. Wallet (address balance -> converted with the current rates)

DESIGN DECISION: A stored transaction is never undone by anything that
happens after it. Budget checks, alerts and audit writes run after the
write and their failures are reported, not raised.

This is the "glue" that also decides what to build when parts of the
configuration (Google Sheets, SMTP) are missing.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

import structlog

from coinpurse.audit import AuditLogger, create_correlation_id
from coinpurse.budgets import BudgetEvaluator
from coinpurse.config import get_settings
from coinpurse.models.ledger import (
    AddressBalance,
    Budget,
    BudgetStatus,
    CurrencyCode,
    Transaction,
    TransactionType,
    parse_currency,
)
from coinpurse.pricing import PriceOracle, RefreshScheduler, build_price_sources
from coinpurse.reports import ReportBuilder
from coinpurse.services.notifications import NotifierInterface, create_notifier
from coinpurse.services.onchain import AddressBalanceClient, BalanceLookupError
from coinpurse.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
)


logger = structlog.get_logger(__name__)


def _parse_tx_type(value: Union[TransactionType, str]) -> TransactionType:
    """Accept enum members or their names in any case."""
    if isinstance(value, TransactionType):
        return value
    return TransactionType(value.strip().upper())


class TransactionFlow:
    """
    Orchestrates transaction and budget writes.

    Flow for a new transaction:
    1. Validate -> build the Transaction model
    2. Save -> persist to storage
    3. Audit -> transaction_saved
    4. Evaluate -> for EXPENSE only, check the category budget

    Step 4 never fails the call. The transaction is already stored.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        evaluator: BudgetEvaluator,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._evaluator = evaluator
        self._audit_logger = audit_logger

    async def record_transaction(
        self,
        user_id: str,
        category: str,
        amount: Union[Decimal, str, int],
        tx_type: Union[TransactionType, str],
        currency: Union[CurrencyCode, str] = CurrencyCode.USD,
        description: Optional[str] = None,
        occurred_at: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Transaction, Optional[BudgetStatus]]:
        """
        Record an income or expense.

        Returns:
            (transaction, budget_status)

            budget_status is None for income, for categories without a
            budget, and when the budget check itself failed.

        Raises:
            InvalidCurrencyError: If the currency is not supported
            ValueError: If tx_type is not INCOME or EXPENSE
            pydantic.ValidationError: If any other field is invalid
            StorageError: If the transaction could not be stored
        """
        correlation_id = correlation_id or create_correlation_id()

        fields = dict(
            user_id=user_id,
            category=category,
            amount=amount,
            currency=parse_currency(currency),
            type=_parse_tx_type(tx_type),
            description=description,
        )
        if occurred_at is not None:
            fields["occurred_at"] = occurred_at
        transaction = Transaction(**fields)

        await self._storage.save_transaction(transaction)

        if self._audit_logger:
            await self._audit_logger.log_transaction_saved(
                transaction_id=transaction.id,
                category=transaction.category,
                amount=str(transaction.amount),
                currency=transaction.currency.value,
                tx_type=transaction.type.value,
                correlation_id=correlation_id,
            )

        if transaction.type != TransactionType.EXPENSE:
            return transaction, None

        try:
            status = await self._evaluator.evaluate(
                user_id=transaction.user_id,
                category=transaction.category,
                correlation_id=correlation_id,
            )
        except Exception as e:
            logger.exception(
                "budget_evaluation_failed",
                transaction_id=str(transaction.id),
                category=transaction.category,
            )
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type="budget_evaluation_failed",
                    error_message=str(e),
                    details={"transaction_id": str(transaction.id)},
                    correlation_id=correlation_id,
                )
            status = None

        return transaction, status

    async def list_transactions(
        self,
        user_id: str,
        category: Optional[str] = None,
        tx_type: Optional[Union[TransactionType, str]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Transaction]:
        """A user's transactions, newest first."""
        return await self._storage.list_transactions(
            user_id=user_id,
            category=category,
            tx_type=_parse_tx_type(tx_type) if tx_type is not None else None,
            limit=limit,
            offset=offset,
        )

    async def delete_transaction(
        self,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Delete a transaction.

        Returns False if there was nothing to delete. Deleting does not
        trigger a budget check; alerts are only sent on new expenses.
        """
        correlation_id = correlation_id or create_correlation_id()

        deleted = await self._storage.delete_transaction(transaction_id)
        if deleted and self._audit_logger:
            await self._audit_logger.log_transaction_deleted(
                transaction_id=transaction_id,
                correlation_id=correlation_id,
            )
        return deleted

    async def set_budget(
        self,
        user_id: str,
        category: str,
        limit_usd: Union[Decimal, str, int],
        correlation_id: Optional[UUID] = None,
    ) -> Budget:
        """Create the budget for a category, or replace its limit."""
        correlation_id = correlation_id or create_correlation_id()

        budget = await self._storage.save_budget(Budget(
            user_id=user_id,
            category=category,
            limit_usd=limit_usd,
        ))

        if self._audit_logger:
            await self._audit_logger.log_budget_saved(
                budget_id=budget.id,
                category=budget.category,
                limit_usd=str(budget.limit_usd),
                correlation_id=correlation_id,
            )
        return budget

    async def list_budgets(self, user_id: str) -> list[Budget]:
        return await self._storage.list_budgets(user_id)


class WalletFlow:
    """Address balance lookups, valued with the oracle's current rates."""

    def __init__(
        self,
        balance_client: AddressBalanceClient,
        oracle: PriceOracle,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._balance_client = balance_client
        self._oracle = oracle
        self._audit_logger = audit_logger

    async def get_balance(
        self,
        address: str,
        display_currency: Union[CurrencyCode, str] = CurrencyCode.USD,
    ) -> tuple[AddressBalance, Decimal]:
        """
        Balance of an address, in sats and in display_currency.

        Raises:
            BalanceLookupError: If the lookup failed (already audited)
            InvalidCurrencyError: If display_currency is not supported
        """
        target = parse_currency(display_currency)
        try:
            balance = await self._balance_client.get_balance(address)
        except BalanceLookupError as e:
            if self._audit_logger:
                await self._audit_logger.log_balance_lookup_failed(
                    address=address,
                    error_message=str(e),
                )
            raise

        value = self._oracle.converter().convert(
            Decimal(balance.balance_sats), CurrencyCode.SATS, target
        )
        return balance, Decimal(value)


@dataclass
class AppComponents:
    """Everything the UI needs, built once per process."""

    oracle: PriceOracle
    scheduler: RefreshScheduler
    transactions: TransactionFlow
    reports: ReportBuilder
    wallet: WalletFlow
    storage: LedgerStorageInterface
    audit_logger: AuditLogger
    sheets_client: Optional[GoogleSheetsClient] = None


def create_app_components(
    use_storage: bool = True,
    notifier: Optional[NotifierInterface] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False (or leave Sheets unconfigured) to run
                    on in-memory storage.
        notifier: Alert channel; defaults to the configured one.
    """
    sheets_client = None
    storage: LedgerStorageInterface = InMemoryLedgerStorage()
    audit_logger = AuditLogger()  # Local-only logging

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            storage = GoogleSheetsLedgerStorage(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None

    settings = get_settings()
    oracle = PriceOracle(
        sources=build_price_sources(settings.price),
        settings=settings.price,
        audit_logger=audit_logger,
    )
    scheduler = RefreshScheduler(oracle, settings.price.refresh_interval_seconds)

    evaluator = BudgetEvaluator(
        storage=storage,
        oracle=oracle,
        notifier=notifier or create_notifier(settings.notifications),
        audit_logger=audit_logger,
    )

    return AppComponents(
        oracle=oracle,
        scheduler=scheduler,
        transactions=TransactionFlow(storage, evaluator, audit_logger),
        reports=ReportBuilder(storage, oracle),
        wallet=WalletFlow(AddressBalanceClient(settings.onchain), oracle, audit_logger),
        storage=storage,
        audit_logger=audit_logger,
        sheets_client=sheets_client,
    )
