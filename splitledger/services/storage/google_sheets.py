"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the production storage backend because:
1. A group can open the spreadsheet and see exactly who paid what
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (fine for a circle of friends)
- No transactions (we handle this with careful ordering)
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interface, so we can swap
to PostgreSQL/SQLite later without changing the settlement engine.
"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import gspread
from gspread.utils import rowcol_to_a1
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from splitledger.config import GoogleSheetsSettings, get_settings
from splitledger.models.ledger import PersonalSettlement, Transaction
from splitledger.models.audit import AuditAction, AuditEntry
from splitledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    IdentityDirectoryInterface,
    ObligationStorageInterface,
    StorageError,
    TransactionStorageInterface,
)


# Column mappings for Transactions sheet
TRANSACTION_COLUMNS = [
    "id",
    "description",
    "amount",
    "timestamp",
    "payer_username",
    "payee_username",
    "created_by",
]

# Column mappings for PersonalSettlements sheet
OBLIGATION_COLUMNS = [
    "id",
    "from_user",
    "to_user",
    "amount",
    "settled",
    "settled_at",
    "settled_by",
    "source_transaction_id",
    "derived_from_transaction",
    "recipient_registered",
    "notify_only",
    "created_at",
]

# Column mappings for TransactionHistory sheet
AUDIT_COLUMNS = [
    "id",
    "source_transaction_id",
    "action",
    "payload_json",
    "performed_by",
    "timestamp",
]

# Column mappings for Users sheet (maintained by the account system)
USER_COLUMNS = [
    "username",
    "phone_number",
]


def _cell(row: list, index: int, default: str = "") -> str:
    """Handle missing columns gracefully."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _opt_datetime(value: str) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _opt_uuid(value: str) -> Optional[UUID]:
    return UUID(value) if value else None


def _flag(value: str) -> bool:
    return value.strip().lower() == "true"


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

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
        rows: int = 1000,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
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
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS
        )

    def get_obligations_sheet(self) -> gspread.Worksheet:
        """Get or create the PersonalSettlements worksheet."""
        return self._get_or_create_sheet(
            self._settings.obligations_sheet_name, OBLIGATION_COLUMNS
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )

    def get_users_sheet(self) -> gspread.Worksheet:
        """Get or create the Users worksheet."""
        return self._get_or_create_sheet(
            self._settings.users_sheet_name, USER_COLUMNS
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def append_row(self, sheet: gspread.Worksheet, values: list) -> None:
        """Append one row, retrying transient API failures."""
        sheet.append_row(values, value_input_option="RAW")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def update_row(self, sheet: gspread.Worksheet, row_index: int, values: list) -> None:
        """Rewrite one row in place (1-based index) with a single range write."""
        start = rowcol_to_a1(row_index, 1)
        end = rowcol_to_a1(row_index, len(values))
        sheet.update(
            range_name=f"{start}:{end}",
            values=[values],
            value_input_option="RAW",
        )


def _reset_sheet(sheet: gspread.Worksheet, columns: list[str]) -> int:
    """Clear all data rows, keeping the header. Returns rows removed."""
    count = len([row for row in sheet.get_all_values()[1:] if row and row[0]])
    sheet.clear()
    sheet.append_row(columns)
    return count


class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """
    Google Sheets implementation of transaction storage.

    Transactions are stored as rows in a worksheet with one transaction per row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _transaction_to_row(self, tx: Transaction) -> list:
        """Convert a Transaction to a spreadsheet row."""
        return [
            str(tx.id),
            tx.description or "",
            str(tx.amount),
            tx.timestamp.isoformat() if tx.timestamp else "",
            tx.payer_username or "",
            tx.payee_username or "",
            tx.created_by or "",
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        """Convert a spreadsheet row to a Transaction."""
        return Transaction(
            id=UUID(_cell(row, 0)),
            description=_cell(row, 1) or None,
            amount=Decimal(_cell(row, 2, "0")),
            timestamp=_opt_datetime(_cell(row, 3)),
            payer_username=_cell(row, 4) or None,
            payee_username=_cell(row, 5) or None,
            created_by=_cell(row, 6) or None,
        )

    def _load_all(self) -> list[Transaction]:
        sheet = self._client.get_transactions_sheet()
        all_rows = sheet.get_all_values()[1:]  # Skip header

        transactions = []
        for row in all_rows:
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                transactions.append(self._row_to_transaction(row))
            except Exception:
                continue  # Skip malformed rows
        return transactions

    def save_transaction(self, tx: Transaction) -> Transaction:
        """Append a transaction to Google Sheets."""
        if self.get_transaction_by_id(tx.id) is not None:
            raise DuplicateError(f"Transaction already exists: {tx.id}")
        try:
            sheet = self._client.get_transactions_sheet()
            self._client.append_row(sheet, self._transaction_to_row(tx))
            return tx
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    def get_transaction_by_id(self, transaction_id: UUID) -> Optional[Transaction]:
        """Retrieve a transaction by its ID."""
        try:
            for tx in self._load_all():
                if tx.id == transaction_id:
                    return tx
            return None
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

    def list_transactions(self) -> list[Transaction]:
        try:
            return self._load_all()
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

    def delete_transaction(self, transaction_id: UUID) -> bool:
        """Delete a transaction by ID."""
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

    def list_by_participant(
        self,
        username: str,
        ignore_case: bool = False,
    ) -> list[Transaction]:
        needle = username.strip().lower() if ignore_case else username

        def norm(value: Optional[str]) -> Optional[str]:
            if value is None or not ignore_case:
                return value
            return value.strip().lower()

        return [
            tx for tx in self.list_transactions()
            if needle in (norm(tx.payer_username), norm(tx.payee_username))
        ]

    def list_by_creator(
        self,
        username: str,
        ignore_case: bool = False,
    ) -> list[Transaction]:
        if ignore_case:
            needle = username.strip().lower()
            return [
                tx for tx in self.list_transactions()
                if tx.created_by and tx.created_by.strip().lower() == needle
            ]
        return [tx for tx in self.list_transactions() if tx.created_by == username]

    def delete_all(self) -> int:
        try:
            return _reset_sheet(self._client.get_transactions_sheet(), TRANSACTION_COLUMNS)
        except Exception as e:
            raise StorageError(f"Failed to clear transactions: {e}")


class GoogleSheetsObligationStorage(ObligationStorageInterface):
    """
    Google Sheets implementation of personal settlement storage.

    Contact annotations (phone numbers) are not persisted; they are
    attached on read by the tracker.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _obligation_to_row(self, ps: PersonalSettlement) -> list:
        """Convert a PersonalSettlement to a spreadsheet row."""
        return [
            str(ps.id),
            ps.from_user,
            ps.to_user,
            str(ps.amount),
            str(ps.settled),
            ps.settled_at.isoformat() if ps.settled_at else "",
            ps.settled_by or "",
            str(ps.source_transaction_id) if ps.source_transaction_id else "",
            str(ps.derived_from_transaction),
            str(ps.recipient_registered),
            str(ps.notify_only),
            ps.created_at.isoformat(),
        ]

    def _row_to_obligation(self, row: list) -> PersonalSettlement:
        """Convert a spreadsheet row to a PersonalSettlement."""
        return PersonalSettlement(
            id=UUID(_cell(row, 0)),
            from_user=_cell(row, 1),
            to_user=_cell(row, 2),
            amount=Decimal(_cell(row, 3, "0")),
            settled=_flag(_cell(row, 4)),
            settled_at=_opt_datetime(_cell(row, 5)),
            settled_by=_cell(row, 6) or None,
            source_transaction_id=_opt_uuid(_cell(row, 7)),
            derived_from_transaction=_flag(_cell(row, 8)),
            # Rows written before the column existed count as registered
            recipient_registered=_flag(_cell(row, 9, "True")),
            notify_only=_flag(_cell(row, 10)),
            created_at=datetime.fromisoformat(_cell(row, 11)),
        )

    def _load_all(self) -> list[PersonalSettlement]:
        sheet = self._client.get_obligations_sheet()
        obligations = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                obligations.append(self._row_to_obligation(row))
            except Exception:
                continue
        return obligations

    def save_obligation(self, obligation: PersonalSettlement) -> PersonalSettlement:
        """Insert a new row, or rewrite the row with the same id."""
        try:
            sheet = self._client.get_obligations_sheet()
            all_rows = sheet.get_all_values()
            new_row = self._obligation_to_row(obligation)

            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == str(obligation.id):
                    if _flag(_cell(row, 4)) and not obligation.settled:
                        raise StorageError(
                            f"Obligation {obligation.id} is settled and cannot be reopened"
                        )
                    self._client.update_row(sheet, idx, new_row)
                    return obligation

            self._client.append_row(sheet, new_row)
            return obligation
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save obligation: {e}")

    def get_obligation_by_id(self, obligation_id: UUID) -> Optional[PersonalSettlement]:
        try:
            for ps in self._load_all():
                if ps.id == obligation_id:
                    return ps
            return None
        except Exception as e:
            raise StorageError(f"Failed to get obligation: {e}")

    def list_for_user(self, username: str) -> list[PersonalSettlement]:
        try:
            rows = [ps for ps in self._load_all() if ps.involves(username)]
        except Exception as e:
            raise StorageError(f"Failed to list obligations: {e}")
        # Sort newest first
        rows.sort(key=lambda ps: ps.created_at, reverse=True)
        return rows

    def list_unsettled_from_user(self, username: str) -> list[PersonalSettlement]:
        return [
            ps for ps in self.list_for_user(username)
            if ps.from_user == username and not ps.settled
        ]

    def list_by_transaction_id(self, transaction_id: UUID) -> list[PersonalSettlement]:
        try:
            return [
                ps for ps in self._load_all()
                if ps.source_transaction_id == transaction_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to list obligations: {e}")

    def delete_all_by_transaction_id(self, transaction_id: UUID) -> int:
        try:
            sheet = self._client.get_obligations_sheet()
            all_rows = sheet.get_all_values()
            matches = [
                idx for idx, row in enumerate(all_rows[1:], start=2)
                if row and _cell(row, 7) == str(transaction_id)
            ]
            # Delete bottom-up so earlier indexes stay valid
            for idx in reversed(matches):
                sheet.delete_rows(idx)
            return len(matches)
        except Exception as e:
            raise StorageError(f"Failed to delete obligations: {e}")

    def delete_all(self) -> int:
        try:
            return _reset_sheet(self._client.get_obligations_sheet(), OBLIGATION_COLUMNS)
        except Exception as e:
            raise StorageError(f"Failed to clear obligations: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit entries are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _entry_to_row(self, entry: AuditEntry) -> list:
        """Convert an AuditEntry to a spreadsheet row."""
        return [
            str(entry.id),
            str(entry.source_transaction_id) if entry.source_transaction_id else "",
            entry.action.value,
            json.dumps(entry.payload) if entry.payload else "",
            entry.performed_by or "",
            entry.timestamp.isoformat(),
        ]

    def _row_to_entry(self, row: list) -> AuditEntry:
        """Convert a spreadsheet row to an AuditEntry."""
        return AuditEntry(
            id=UUID(_cell(row, 0)),
            source_transaction_id=_opt_uuid(_cell(row, 1)),
            action=AuditAction(_cell(row, 2)),
            payload=json.loads(_cell(row, 3)) if _cell(row, 3) else {},
            performed_by=_cell(row, 4) or None,
            timestamp=datetime.fromisoformat(_cell(row, 5)),
        )

    def append_entry(self, entry: AuditEntry) -> bool:
        """Append an audit entry."""
        try:
            sheet = self._client.get_audit_sheet()
            self._client.append_row(sheet, self._entry_to_row(entry))
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit entry: {e}")

    def list_entries(self, limit: Optional[int] = None) -> list[AuditEntry]:
        """Get entries, newest first."""
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]

            entries = []
            for row in reversed(all_rows):
                if row and row[0]:
                    try:
                        entries.append(self._row_to_entry(row))
                    except Exception:
                        continue

            # Sort newest first
            entries.sort(key=lambda e: e.timestamp, reverse=True)
            return entries[:limit] if limit is not None else entries
        except Exception as e:
            raise StorageError(f"Failed to get audit entries: {e}")

    def delete_all(self) -> int:
        try:
            return _reset_sheet(self._client.get_audit_sheet(), AUDIT_COLUMNS)
        except Exception as e:
            raise StorageError(f"Failed to clear audit log: {e}")


class GoogleSheetsIdentityDirectory(IdentityDirectoryInterface):
    """
    Reads registered accounts from the Users sheet.

    The sheet is owned by the account system; we only read it.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _find_row(self, username: str) -> Optional[list]:
        if not username or not username.strip():
            return None
        needle = username.strip().lower()
        try:
            sheet = self._client.get_users_sheet()
            for row in sheet.get_all_values()[1:]:
                if row and row[0].strip().lower() == needle:
                    return row
            return None
        except Exception as e:
            raise StorageError(f"Failed to read users: {e}")

    def is_registered(self, username: str) -> bool:
        return self._find_row(username) is not None

    def find_contact_info(self, username: str) -> Optional[str]:
        row = self._find_row(username)
        if row is None:
            return None
        return _cell(row, 1) or None
