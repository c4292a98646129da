"""Services package."""

from coinpurse.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    StorageError,
)
from coinpurse.services.notifications import (
    LogOnlyNotifier,
    NotificationError,
    NotifierInterface,
    SmtpMailer,
    create_notifier,
)
from coinpurse.services.onchain import (
    AddressBalanceClient,
    BalanceLookupError,
    BalanceProviderUnavailableError,
    InvalidAddressError,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "LedgerStorageInterface",
    "StorageError",
    # Notification services
    "LogOnlyNotifier",
    "NotificationError",
    "NotifierInterface",
    "SmtpMailer",
    "create_notifier",
    # On-chain services
    "AddressBalanceClient",
    "BalanceLookupError",
    "BalanceProviderUnavailableError",
    "InvalidAddressError",
]
