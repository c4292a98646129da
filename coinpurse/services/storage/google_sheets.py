"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is the default persistent backend because:
1. Users can view and fix their ledger directly in Sheets
2. No database setup required
3. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (fine for a personal ledger)
- No transactions (we handle this with careful ordering)
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interface, so we can swap
to PostgreSQL/SQLite later without changing budget or report logic.
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from coinpurse.config import get_settings
from coinpurse.models.ledger import (
    Budget,
    CurrencyCode,
    Transaction,
    TransactionType,
)
from coinpurse.models.audit import AuditEvent, AuditEventType, AuditSeverity
from coinpurse.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    StorageError,
)


TRANSACTION_COLUMNS = [
    "id",
    "user_id",
    "category",
    "amount",
    "currency",
    "type",
    "description",
    "occurred_at",
    "created_at",
]

BUDGET_COLUMNS = [
    "id",
    "user_id",
    "category",
    "limit_usd",
    "created_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

_write_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type(DuplicateError),
    reraise=True,
)


def _safe_get(row: list, index: int, default: str = "") -> str:
    """Read a cell, tolerating short rows."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        """Get or create the Transactions worksheet."""
        return self._get_or_create_sheet(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, 2000
        )

    def get_budgets_sheet(self) -> gspread.Worksheet:
        """Get or create the Budgets worksheet."""
        return self._get_or_create_sheet(
            self._settings.budgets_sheet_name, BUDGET_COLUMNS, 200
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, 5000
        )


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    One transaction per row in the Transactions sheet and one budget per
    row in the Budgets sheet.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _transaction_to_row(self, tx: Transaction) -> list:
        return [
            str(tx.id),
            tx.user_id,
            tx.category,
            str(tx.amount),
            tx.currency.value,
            tx.type.value,
            tx.description or "",
            tx.occurred_at.isoformat(),
            tx.created_at.isoformat(),
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        return Transaction(
            id=UUID(_safe_get(row, 0)),
            user_id=_safe_get(row, 1),
            category=_safe_get(row, 2),
            amount=Decimal(_safe_get(row, 3)),
            currency=CurrencyCode(_safe_get(row, 4)),
            type=TransactionType(_safe_get(row, 5)),
            description=_safe_get(row, 6) or None,
            occurred_at=datetime.fromisoformat(_safe_get(row, 7)),
            created_at=datetime.fromisoformat(_safe_get(row, 8)),
        )

    def _budget_to_row(self, budget: Budget) -> list:
        return [
            str(budget.id),
            budget.user_id,
            budget.category,
            str(budget.limit_usd),
            budget.created_at.isoformat(),
        ]

    def _row_to_budget(self, row: list) -> Budget:
        return Budget(
            id=UUID(_safe_get(row, 0)),
            user_id=_safe_get(row, 1),
            category=_safe_get(row, 2),
            limit_usd=Decimal(_safe_get(row, 3)),
            created_at=datetime.fromisoformat(_safe_get(row, 4)),
        )

    @_write_retry
    async def save_transaction(self, transaction: Transaction) -> bool:
        """Append a transaction row."""
        try:
            sheet = self._client.get_transactions_sheet()
            existing_ids = sheet.col_values(1)[1:]
            if str(transaction.id) in existing_ids:
                raise DuplicateError(f"Transaction already exists: {transaction.id}")
            sheet.append_row(
                self._transaction_to_row(transaction),
                value_input_option="RAW",
            )
            return True
        except DuplicateError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        try:
            sheet = self._client.get_transactions_sheet()
            for row in sheet.get_all_values()[1:]:
                if row and row[0] == str(transaction_id):
                    return self._row_to_transaction(row)
            return None
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

    @_write_retry
    async def delete_transaction(self, transaction_id: UUID) -> bool:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()

            for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
                if row and row[0] == str(transaction_id):
                    sheet.delete_rows(idx)
                    return True

            return False
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}")

    async def list_transactions(
        self,
        user_id: str,
        category: Optional[str] = None,
        tx_type: Optional[TransactionType] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Transaction]:
        category = category.lower() if category else None
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

        transactions = []
        for row in all_rows:
            if not row or not row[0] or _safe_get(row, 1) != user_id:
                continue

            try:
                tx = self._row_to_transaction(row)
            except Exception:
                continue  # Skip rows edited by hand into an invalid state

            if category and tx.category != category:
                continue
            if tx_type and tx.type != tx_type:
                continue

            transactions.append(tx)

        transactions.sort(key=lambda tx: tx.occurred_at, reverse=True)

        if limit is None:
            return transactions[offset:]
        return transactions[offset:offset + limit]

    @_write_retry
    async def save_budget(self, budget: Budget) -> Budget:
        """Replace the row for (user, category) if present, else append."""
        try:
            sheet = self._client.get_budgets_sheet()
            all_rows = sheet.get_all_values()
            new_row = self._budget_to_row(budget)

            for idx, row in enumerate(all_rows[1:], start=2):
                if (
                    row
                    and _safe_get(row, 1) == budget.user_id
                    and _safe_get(row, 2) == budget.category
                ):
                    for col_idx, value in enumerate(new_row, start=1):
                        sheet.update_cell(idx, col_idx, value)
                    return budget

            sheet.append_row(new_row, value_input_option="RAW")
            return budget
        except Exception as e:
            raise StorageError(f"Failed to save budget: {e}")

    async def get_budget(self, user_id: str, category: str) -> Optional[Budget]:
        category = category.lower()
        for budget in await self.list_budgets(user_id):
            if budget.category == category:
                return budget
        return None

    async def list_budgets(self, user_id: str) -> list[Budget]:
        try:
            sheet = self._client.get_budgets_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to list budgets: {e}")

        budgets = []
        for row in all_rows:
            if not row or _safe_get(row, 1) != user_id:
                continue
            try:
                budgets.append(self._row_to_budget(row))
            except Exception:
                continue
        return sorted(budgets, key=lambda b: b.category)


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_safe_get(row, 0)),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            entity_type=_safe_get(row, 4) or None,
            entity_id=UUID(_safe_get(row, 5)) if _safe_get(row, 5) else None,
            correlation_id=UUID(_safe_get(row, 6)) if _safe_get(row, 6) else None,
            description=_safe_get(row, 7),
            details=json.loads(_safe_get(row, 8)) if _safe_get(row, 8) else {},
            error_message=_safe_get(row, 9) or None,
            is_user_action=_safe_get(row, 10).lower() == "true",
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    def _load_events(self) -> list[AuditEvent]:
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        events = [
            e for e in self._load_events() if e.correlation_id == correlation_id
        ]
        events.sort(key=lambda e: e.timestamp)
        return events
