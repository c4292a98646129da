"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Traceability of which rate priced which report
2. Debugging capability when providers misbehave
3. A history of budget alerts per user

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from coinpurse.models.audit import AuditEvent, AuditEventBuilder
from coinpurse.services.storage.interface import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit storage backend (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_price_refreshed(
        self,
        source: str,
        price_usd: str,
        attempts: int,
    ) -> None:
        """Log a successful oracle refresh."""
        await self.log(AuditEventBuilder.price_refreshed(
            source=source,
            price_usd=price_usd,
            attempts=attempts,
        ))

    async def log_price_providers_exhausted(
        self,
        sources: list[str],
        errors: dict[str, str],
    ) -> None:
        """Log a refresh cycle in which every provider failed."""
        await self.log(AuditEventBuilder.price_providers_exhausted(
            sources=sources,
            errors=errors,
        ))

    async def log_transaction_saved(
        self,
        transaction_id: UUID,
        category: str,
        amount: str,
        currency: str,
        tx_type: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_saved(
            transaction_id=transaction_id,
            category=category,
            amount=amount,
            currency=currency,
            tx_type=tx_type,
            correlation_id=correlation_id,
        ))

    async def log_transaction_deleted(
        self,
        transaction_id: UUID,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_deleted(
            transaction_id=transaction_id,
            correlation_id=correlation_id,
        ))

    async def log_budget_saved(
        self,
        budget_id: UUID,
        category: str,
        limit_usd: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.budget_saved(
            budget_id=budget_id,
            category=category,
            limit_usd=limit_usd,
            correlation_id=correlation_id,
        ))

    async def log_budget_exceeded(
        self,
        budget_id: UUID,
        category: str,
        spent_usd: str,
        limit_usd: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a budget overrun."""
        await self.log(AuditEventBuilder.budget_exceeded(
            budget_id=budget_id,
            category=category,
            spent_usd=spent_usd,
            limit_usd=limit_usd,
            correlation_id=correlation_id,
        ))

    async def log_notification_sent(
        self,
        budget_id: UUID,
        recipient: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.notification_sent(
            budget_id=budget_id,
            recipient=recipient,
            correlation_id=correlation_id,
        ))

    async def log_notification_failed(
        self,
        budget_id: UUID,
        recipient: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.notification_failed(
            budget_id=budget_id,
            recipient=recipient,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_balance_lookup_failed(
        self,
        address: str,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.balance_lookup_failed(
            address=address,
            error_message=error_message,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., recording an expense).
    Pass it through all subsequent operations.
    """
    return uuid4()
