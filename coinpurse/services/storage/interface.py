"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep budget and report logic decoupled from storage implementation

The pricing core only ever READS through this interface: expense
transactions for a (user, category) pair and the budget for that pair.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from coinpurse.models.ledger import Budget, Transaction, TransactionType
from coinpurse.models.audit import AuditEvent


class LedgerStorageInterface(ABC):
    """
    Abstract interface for transaction and budget storage.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> bool:
        """
        Save a new transaction.

        Returns:
            True if saved successfully

        Raises:
            DuplicateError: If a transaction with the same ID exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        """Retrieve a transaction by ID, or None."""
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: UUID) -> bool:
        """
        Delete a transaction by ID.

        Returns:
            True if a transaction was deleted, False if none matched
        """
        pass

    @abstractmethod
    async def list_transactions(
        self,
        user_id: str,
        category: Optional[str] = None,
        tx_type: Optional[TransactionType] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Transaction]:
        """
        List a user's transactions, newest first.

        Args:
            user_id: Owning user
            category: Filter by category (case-insensitive)
            tx_type: Filter by INCOME / EXPENSE
            limit: Maximum number of results (None = all)
            offset: Number of results to skip
        """
        pass

    @abstractmethod
    async def save_budget(self, budget: Budget) -> Budget:
        """
        Create or replace the budget for (budget.user_id, budget.category).

        Returns:
            The stored budget
        """
        pass

    @abstractmethod
    async def get_budget(self, user_id: str, category: str) -> Optional[Budget]:
        """Get the budget for a (user, category) pair, or None."""
        pass

    @abstractmethod
    async def list_budgets(self, user_id: str) -> list[Budget]:
        """List all budgets of a user."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID in chronological order."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
