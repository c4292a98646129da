"""
Data Models Package

This package contains all Pydantic models used in Coinpurse.
All data flowing through the system must conform to these schemas.
"""

from coinpurse.models.ledger import (
    SATS_PER_BTC,
    AddressBalance,
    Budget,
    BudgetProgress,
    BudgetStatus,
    CategoryTotal,
    CurrencyCode,
    DashboardSummary,
    InvalidCurrencyError,
    PriceQuote,
    RateSnapshot,
    RateTable,
    Transaction,
    TransactionType,
    TypeTotal,
    parse_currency,
)
from coinpurse.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "SATS_PER_BTC",
    "AddressBalance",
    "Budget",
    "BudgetProgress",
    "BudgetStatus",
    "CategoryTotal",
    "CurrencyCode",
    "DashboardSummary",
    "InvalidCurrencyError",
    "PriceQuote",
    "RateSnapshot",
    "RateTable",
    "Transaction",
    "TransactionType",
    "TypeTotal",
    "parse_currency",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
