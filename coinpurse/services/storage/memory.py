"""
In-Memory Storage Implementation

Used by tests and as the fallback when Google Sheets is not configured.
Data lives for the lifetime of the process only.
"""

from typing import Optional
from uuid import UUID

from coinpurse.models.ledger import Budget, Transaction, TransactionType
from coinpurse.models.audit import AuditEvent
from coinpurse.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dict-backed ledger storage."""

    def __init__(self):
        self._transactions: dict[UUID, Transaction] = {}
        self._budgets: dict[tuple[str, str], Budget] = {}

    async def save_transaction(self, transaction: Transaction) -> bool:
        if transaction.id in self._transactions:
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        self._transactions[transaction.id] = transaction
        return True

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        return self._transactions.get(transaction_id)

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        return self._transactions.pop(transaction_id, None) is not None

    async def list_transactions(
        self,
        user_id: str,
        category: Optional[str] = None,
        tx_type: Optional[TransactionType] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Transaction]:
        category = category.lower() if category else None
        matches = [
            tx for tx in self._transactions.values()
            if tx.user_id == user_id
            and (category is None or tx.category == category)
            and (tx_type is None or tx.type == tx_type)
        ]
        matches.sort(key=lambda tx: tx.occurred_at, reverse=True)
        if limit is None:
            return matches[offset:]
        return matches[offset:offset + limit]

    async def save_budget(self, budget: Budget) -> Budget:
        self._budgets[(budget.user_id, budget.category)] = budget
        return budget

    async def get_budget(self, user_id: str, category: str) -> Optional[Budget]:
        return self._budgets.get((user_id, category.lower()))

    async def list_budgets(self, user_id: str) -> list[Budget]:
        budgets = [b for (uid, _), b in self._budgets.items() if uid == user_id]
        return sorted(budgets, key=lambda b: b.category)


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed audit log."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)
