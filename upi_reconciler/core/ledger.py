"""
Ledger Module
-------------
Repositories for clients, payments and screenshot uploads.

  - ClientRepository / PaymentRepository / ScreenshotRepository:
    the interfaces the matcher and the screenshot service rely on.
  - InMemoryLedger: all three in plain dicts (tests, ad-hoc runs).
  - WorkbookLedger: the same, persisted to an .xlsx workbook with
    one sheet per entity, read and written through pandas/openpyxl.
"""

import os
import re
import threading
import zipfile
from abc import ABC, abstractmethod

import pandas as pd
from pydantic import ValidationError

from upi_reconciler.core.models import (
    Client,
    ExtractedPaymentInfo,
    Payment,
    ScreenshotUpload,
)
from upi_reconciler.errors import LedgerError
from upi_reconciler.utils.logger import get_logger

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  INTERFACES
# ══════════════════════════════════════════════════════════════════════

class ClientRepository(ABC):

    @abstractmethod
    def get_client(self, client_id):
        """Client with this id, or None."""

    @abstractmethod
    def list_clients(self):
        """All clients in insertion order."""

    @abstractmethod
    def find_client_by_name(self, pattern):
        """First client whose name contains `pattern` (case-insensitive), or None."""

    @abstractmethod
    def add_client(self, client):
        """Store a new client and return it."""

    # Names used by the matcher
    def list_all(self):
        return self.list_clients()

    def find_by_name_pattern(self, pattern):
        return self.find_client_by_name(pattern)


class PaymentRepository(ABC):

    @abstractmethod
    def find_by_utr(self, utr):
        """Payment recorded with exactly this UTR, its `client` populated; or None."""

    @abstractmethod
    def add_payment(self, payment):
        """Store a new payment and return it."""

    @abstractmethod
    def delete_payment(self, payment_id):
        """Remove and return a payment, or None if it did not exist."""

    @abstractmethod
    def list_payments(self):
        """All payments in insertion order."""


class ScreenshotRepository(ABC):

    @abstractmethod
    def get_screenshot(self, screenshot_id):
        """Screenshot record with this id, or None."""

    @abstractmethod
    def find_screenshot_by_hash(self, file_hash):
        """Screenshot uploaded with these exact bytes, or None."""

    @abstractmethod
    def list_screenshots(self):
        """All screenshot records, newest first."""

    @abstractmethod
    def save_screenshot(self, screenshot):
        """Insert or replace a screenshot record (refreshes updated_at)."""

    @abstractmethod
    def delete_screenshot(self, screenshot_id):
        """Remove and return a screenshot record, or None if it did not exist."""


# ══════════════════════════════════════════════════════════════════════
#  IN-MEMORY LEDGER
# ══════════════════════════════════════════════════════════════════════

class InMemoryLedger(ClientRepository, PaymentRepository, ScreenshotRepository):
    """
    Dict-backed ledger.

    Records are copied on the way in and out, so callers never hold a
    reference into the store; changes only land through save/add.
    """

    def __init__(self, clients=(), payments=(), screenshots=()):
        self._lock = threading.RLock()
        self._clients = {c.id: c.model_copy(deep=True) for c in clients}
        self._payments = {p.id: p.model_copy(deep=True) for p in payments}
        self._screenshots = {s.id: s.model_copy(deep=True) for s in screenshots}

    def _changed(self):
        """Hook for persistent subclasses; called after every write."""

    def _write(self, store, key, value):
        """
        Put `value` under `key` (None removes it) and persist.

        If persisting raises LedgerError the previous entry is put back,
        so a write the caller saw fail is never visible or flushed later.
        """
        with self._lock:
            previous = store.get(key)
            if value is None:
                store.pop(key, None)
            else:
                store[key] = value
            try:
                self._changed()
            except LedgerError:
                if previous is None:
                    store.pop(key, None)
                else:
                    store[key] = previous
                raise
            return previous

    # ── Clients ─────────────────────────────────────────────────────

    def get_client(self, client_id):
        with self._lock:
            client = self._clients.get(client_id)
            return client.model_copy(deep=True) if client else None

    def list_clients(self):
        with self._lock:
            return [c.model_copy(deep=True) for c in self._clients.values()]

    def find_client_by_name(self, pattern):
        regex = re.compile(re.escape(pattern.strip()), re.IGNORECASE)
        with self._lock:
            for client in self._clients.values():
                if regex.search(client.name):
                    return client.model_copy(deep=True)
        return None

    def add_client(self, client):
        self._write(self._clients, client.id, client.model_copy(deep=True))
        return client

    # ── Payments ────────────────────────────────────────────────────

    def find_by_utr(self, utr):
        with self._lock:
            for payment in self._payments.values():
                if payment.utr and payment.utr == utr:
                    found = payment.model_copy(deep=True)
                    found.client = self.get_client(payment.client_id)
                    return found
        return None

    def add_payment(self, payment):
        self._write(self._payments, payment.id, payment.model_copy(deep=True))
        return payment

    def delete_payment(self, payment_id):
        with self._lock:
            if payment_id not in self._payments:
                return None
            return self._write(self._payments, payment_id, None)

    def list_payments(self):
        with self._lock:
            return [p.model_copy(deep=True) for p in self._payments.values()]

    # ── Screenshots ─────────────────────────────────────────────────

    def get_screenshot(self, screenshot_id):
        with self._lock:
            record = self._screenshots.get(screenshot_id)
            return record.model_copy(deep=True) if record else None

    def find_screenshot_by_hash(self, file_hash):
        with self._lock:
            for record in self._screenshots.values():
                if record.hash == file_hash:
                    return record.model_copy(deep=True)
        return None

    def list_screenshots(self):
        with self._lock:
            records = [s.model_copy(deep=True) for s in self._screenshots.values()]
        records.sort(key=lambda s: s.created_at, reverse=True)
        return records

    def save_screenshot(self, screenshot):
        screenshot.touch()
        self._write(self._screenshots, screenshot.id, screenshot.model_copy(deep=True))
        return screenshot

    def delete_screenshot(self, screenshot_id):
        with self._lock:
            if screenshot_id not in self._screenshots:
                return None
            return self._write(self._screenshots, screenshot_id, None)


# ══════════════════════════════════════════════════════════════════════
#  WORKBOOK LEDGER
# ══════════════════════════════════════════════════════════════════════

CLIENTS_SHEET = 'Clients'
PAYMENTS_SHEET = 'Payments'
SCREENSHOTS_SHEET = 'Screenshots'

CLIENT_COLUMNS = ['id', 'name', 'phone', 'rate_per_tray', 'farm_id']
PAYMENT_COLUMNS = [
    'id', 'client_id', 'amount', 'payment_method', 'utr', 'date',
    'sale_id', 'screenshot', 'confirmed',
]
EXTRACTED_PREFIX = 'extracted_'
SCREENSHOT_COLUMNS = [
    'id', 'filename', 'original_name', 'path', 'hash', 'size', 'status',
    'extracted_amount', 'extracted_utr', 'extracted_date',
    'extracted_payer_name', 'extracted_upi_id',
    'matched_client_id', 'payment_id', 'error', 'created_at', 'updated_at',
]


def _screenshot_to_row(screenshot):
    row = screenshot.model_dump(mode='json', exclude={'extracted'})
    for key, value in screenshot.extracted.model_dump(mode='json').items():
        row[EXTRACTED_PREFIX + key] = value
    return row


def _screenshot_from_row(row):
    extracted = {
        k[len(EXTRACTED_PREFIX):]: v
        for k, v in row.items() if k.startswith(EXTRACTED_PREFIX)
    }
    fields = {k: v for k, v in row.items() if not k.startswith(EXTRACTED_PREFIX)}
    return ScreenshotUpload(**fields, extracted=ExtractedPaymentInfo(**extracted))


def _sheet_records(sheets, name, columns):
    """
    Rows of one sheet as dicts.

    Empty cells and missing columns are left out, so the model defaults
    apply (an empty phone comes back as "", not None).
    """
    df = sheets.get(name)
    if df is None:
        return []
    records = []
    for raw in df.to_dict(orient='records'):
        row = {}
        for col in columns:
            value = raw.get(col)
            if not pd.isna(value):
                row[col] = value
        records.append(row)
    return records


class WorkbookLedger(InMemoryLedger):
    """
    Ledger persisted to an Excel workbook.

    The whole workbook is loaded on open and rewritten after every
    change (written to a temp file, then swapped in), which suits the
    few hundred rows a farm ledger holds.
    """

    def __init__(self, path):
        super().__init__()
        self.path = path
        self.reload()

    def reload(self):
        """Re-read the workbook from disk, discarding in-memory state."""
        with self._lock:
            self._clients.clear()
            self._payments.clear()
            self._screenshots.clear()
            if not os.path.exists(self.path):
                logger.info("Ledger %s does not exist yet; starting empty", self.path)
                return

            try:
                sheets = pd.read_excel(
                    self.path,
                    sheet_name=None,
                    dtype=str,
                    keep_default_na=False,
                    na_values=[''],
                    engine='openpyxl',
                )
                for row in _sheet_records(sheets, CLIENTS_SHEET, CLIENT_COLUMNS):
                    client = Client(**row)
                    self._clients[client.id] = client
                for row in _sheet_records(sheets, PAYMENTS_SHEET, PAYMENT_COLUMNS):
                    payment = Payment(**row)
                    self._payments[payment.id] = payment
                for row in _sheet_records(sheets, SCREENSHOTS_SHEET, SCREENSHOT_COLUMNS):
                    screenshot = _screenshot_from_row(row)
                    self._screenshots[screenshot.id] = screenshot
            except (OSError, ValueError, KeyError, zipfile.BadZipFile, ValidationError) as e:
                raise LedgerError(f"Cannot read ledger {self.path}: {e}") from e

            logger.info("Loaded ledger %s: %d clients, %d payments, %d screenshots",
                        self.path, len(self._clients), len(self._payments),
                        len(self._screenshots))

    def _changed(self):
        self._flush()

    def _flush(self):
        frames = {
            CLIENTS_SHEET: pd.DataFrame(
                [c.model_dump(mode='json') for c in self._clients.values()],
                columns=CLIENT_COLUMNS,
            ),
            PAYMENTS_SHEET: pd.DataFrame(
                [p.model_dump(mode='json') for p in self._payments.values()],
                columns=PAYMENT_COLUMNS,
            ),
            SCREENSHOTS_SHEET: pd.DataFrame(
                [_screenshot_to_row(s) for s in self._screenshots.values()],
                columns=SCREENSHOT_COLUMNS,
            ),
        }

        folder = os.path.dirname(os.path.abspath(self.path))
        tmp_path = os.path.join(folder, f".{os.path.basename(self.path)}.tmp.xlsx")
        try:
            os.makedirs(folder, exist_ok=True)
            with pd.ExcelWriter(tmp_path, engine='openpyxl') as writer:
                for sheet_name, df in frames.items():
                    df.to_excel(writer, index=False, sheet_name=sheet_name)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise LedgerError(f"Cannot write ledger {self.path}: {e}") from e
