"""
Audit Models for Coinpurse

Significant actions are recorded as audit events:
1. Price refreshes and provider failures (what rate was used, and when)
2. Ledger writes (transactions, budgets)
3. Budget overruns and the notifications they triggered

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Price oracle
    PRICE_REFRESHED = "price_refreshed"
    PRICE_PROVIDERS_EXHAUSTED = "price_providers_exhausted"

    # Ledger
    TRANSACTION_SAVED = "transaction_saved"
    TRANSACTION_DELETED = "transaction_deleted"
    BUDGET_SAVED = "budget_saved"

    # Budget monitoring
    BUDGET_EXCEEDED = "budget_exceeded"
    NOTIFICATION_SENT = "notification_sent"
    NOTIFICATION_FAILED = "notification_failed"

    # Wallet
    BALANCE_LOOKUP_FAILED = "balance_lookup_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'budget', 'price')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., a write and its budget check)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        import json

        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.price_refreshed("coinbase", "64000.12")
        event = AuditEventBuilder.budget_exceeded(budget_id, ...)
    """

    @staticmethod
    def price_refreshed(
        source: str,
        price_usd: str,
        attempts: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PRICE_REFRESHED,
            entity_type="price",
            description=f"BTC price refreshed from {source}: ${price_usd}",
            details={
                "source": source,
                "price_usd": price_usd,
                "attempts": attempts,
            },
        )

    @staticmethod
    def price_providers_exhausted(
        sources: list[str],
        errors: dict[str, str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PRICE_PROVIDERS_EXHAUSTED,
            severity=AuditSeverity.ERROR,
            entity_type="price",
            description=f"All {len(sources)} price providers failed; keeping last known rates",
            details={
                "sources": sources,
                "errors": errors,
            },
        )

    @staticmethod
    def transaction_saved(
        transaction_id: UUID,
        category: str,
        amount: str,
        currency: str,
        tx_type: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"{tx_type.capitalize()} saved: {amount} {currency} ({category})",
            details={
                "category": category,
                "amount": amount,
                "currency": currency,
                "type": tx_type,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: UUID,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Transaction deleted",
            is_user_action=True,
        )

    @staticmethod
    def budget_saved(
        budget_id: UUID,
        category: str,
        limit_usd: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_SAVED,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget set for {category}: ${limit_usd}",
            details={
                "category": category,
                "limit_usd": limit_usd,
            },
            is_user_action=True,
        )

    @staticmethod
    def budget_exceeded(
        budget_id: UUID,
        category: str,
        spent_usd: str,
        limit_usd: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_EXCEEDED,
            severity=AuditSeverity.WARNING,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget exceeded for {category}: ${spent_usd} of ${limit_usd}",
            details={
                "category": category,
                "spent_usd": spent_usd,
                "limit_usd": limit_usd,
            },
        )

    @staticmethod
    def notification_sent(
        budget_id: UUID,
        recipient: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NOTIFICATION_SENT,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget alert sent to {recipient}",
            details={
                "recipient": recipient,
            },
        )

    @staticmethod
    def notification_failed(
        budget_id: UUID,
        recipient: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NOTIFICATION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget alert to {recipient} could not be delivered",
            error_message=error_message,
            details={
                "recipient": recipient,
            },
        )

    @staticmethod
    def balance_lookup_failed(
        address: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_LOOKUP_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="address",
            description=f"Balance lookup failed for {address}",
            error_message=error_message,
            details={
                "address": address,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
