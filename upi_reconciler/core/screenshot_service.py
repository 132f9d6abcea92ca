"""
Screenshot Service Module
-------------------------
Owns the lifecycle of an uploaded payment screenshot:

    uploaded → processing → processed → matched → confirmed
                   ↓
                 error

An errored screenshot is final; to retry, delete it and upload again.
The status stored in the ledger is the single source of truth for
in-flight work. Background processing only moves a record through
these states, so a restart can pick up anything left behind with
resume_pending().
"""

import hashlib
import os
import shutil
import threading
import uuid
from datetime import date as Date

from upi_reconciler.config import settings
from upi_reconciler.core.extractor import PaymentInfoExtractor
from upi_reconciler.core.matcher import ClientMatcher
from upi_reconciler.core.models import (
    Payment,
    PaymentMethod,
    ScreenshotStatus,
    ScreenshotUpload,
)
from upi_reconciler.errors import (
    ClientNotFound,
    DuplicateScreenshotError,
    InvalidStatusTransition,
    LedgerError,
    OCRError,
    ReconcilerError,
    ScreenshotNotFound,
)
from upi_reconciler.utils.logger import get_logger
from upi_reconciler.utils.validators import check_upload

logger = get_logger(__name__)

S = ScreenshotStatus

ALLOWED_TRANSITIONS = {
    S.UPLOADED: {S.PROCESSING},
    # processing → uploaded only when a stale job is re-queued
    S.PROCESSING: {S.PROCESSED, S.ERROR, S.UPLOADED},
    S.PROCESSED: {S.MATCHED, S.CONFIRMED},
    S.MATCHED: {S.CONFIRMED},
    S.CONFIRMED: set(),
    S.ERROR: set(),
}


def file_hash(path):
    """MD5 of the file bytes, used for duplicate detection."""
    digest = hashlib.md5()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(65536), b''):
            digest.update(chunk)
    return digest.hexdigest()


class ScreenshotService:
    """
    Upload → OCR → extract → match → confirm pipeline.

    The OCR engine is created lazily so the service can be used
    (and tested) without a Tesseract install.
    """

    def __init__(self, ledger, ocr=None, extractor=None, matcher=None,
                 upload_dir=None, max_upload_bytes=None):
        self.ledger = ledger
        self._ocr = ocr
        self.extractor = extractor or PaymentInfoExtractor()
        self.matcher = matcher or ClientMatcher()
        self.upload_dir = upload_dir or settings.upload_dir
        self.max_upload_bytes = max_upload_bytes or settings.max_upload_bytes

    @property
    def ocr(self):
        if self._ocr is None:
            from upi_reconciler.core.ocr_engine import OCREngine
            self._ocr = OCREngine()
        return self._ocr

    # ══════════════════════════════════════════════════════════════════
    #  STATE MACHINE
    # ══════════════════════════════════════════════════════════════════

    def _transition(self, record, target):
        if target not in ALLOWED_TRANSITIONS[record.status]:
            raise InvalidStatusTransition(record.status.value, target.value)
        logger.info("Screenshot %s: %s → %s",
                    record.original_name, record.status.value, target.value)
        record.status = target

    # ══════════════════════════════════════════════════════════════════
    #  QUERIES
    # ══════════════════════════════════════════════════════════════════

    def get(self, screenshot_id):
        record = self.ledger.get_screenshot(screenshot_id)
        if record is None:
            raise ScreenshotNotFound(screenshot_id)
        return record

    def list_all(self):
        return self.ledger.list_screenshots()

    def pending_review(self):
        """Processed screenshots that no client matched; they wait for the operator."""
        return [s for s in self.ledger.list_screenshots() if s.status == S.PROCESSED]

    # ══════════════════════════════════════════════════════════════════
    #  UPLOAD
    # ══════════════════════════════════════════════════════════════════

    def upload(self, path, original_name=None):
        """
        Store a copy of a screenshot and create its ledger record.

        Args:
            path (str): Screenshot on disk.
            original_name (str): Name to show the operator (default: basename).

        Returns:
            ScreenshotUpload: New record in status 'uploaded'.

        Raises:
            InvalidImageError: Not an image, missing, or over the size limit.
            DuplicateScreenshotError: Same bytes were uploaded before.
        """
        size = check_upload(path, self.max_upload_bytes)
        digest = file_hash(path)

        existing = self.ledger.find_screenshot_by_hash(digest)
        if existing is not None:
            logger.warning("Duplicate screenshot %s (existing id %s)",
                           os.path.basename(path), existing.id)
            raise DuplicateScreenshotError(existing)

        ext = os.path.splitext(path)[1].lower()
        filename = f"screenshot-{uuid.uuid4().hex[:12]}{ext}"
        os.makedirs(self.upload_dir, exist_ok=True)
        stored_path = os.path.join(self.upload_dir, filename)
        shutil.copyfile(path, stored_path)

        record = ScreenshotUpload(
            filename=filename,
            original_name=original_name or os.path.basename(path),
            path=stored_path,
            hash=digest,
            size=size,
        )
        self.ledger.save_screenshot(record)
        logger.info("Uploaded %s as %s", record.original_name, filename)
        return record

    # ══════════════════════════════════════════════════════════════════
    #  PROCESSING
    # ══════════════════════════════════════════════════════════════════

    def process(self, screenshot_id):
        """
        OCR a screenshot, extract payment fields and try to match a client.

        Returns:
            ScreenshotUpload: Record in 'matched' or (unmatched) 'processed'.

        Raises:
            OCRError: OCR failed; the record is left in 'error' (final).
            LedgerError: Matching failed; the record stays 'processed'
                with the failure noted in `error`.
        """
        record = self.get(screenshot_id)
        self._transition(record, S.PROCESSING)
        self.ledger.save_screenshot(record)

        try:
            text = self.ocr.extract_text(record.path)
        except OCRError as e:
            record.error = str(e)
            self._transition(record, S.ERROR)
            self.ledger.save_screenshot(record)
            raise

        record.extracted = self.extractor.extract(text)
        record.error = None
        self._transition(record, S.PROCESSED)
        self.ledger.save_screenshot(record)

        try:
            client = self.matcher.match(record.extracted, self.ledger, self.ledger)
        except LedgerError as e:
            record.error = f"Client matching failed: {e}"
            self.ledger.save_screenshot(record)
            raise

        if client is not None:
            record.matched_client_id = client.id
            self._transition(record, S.MATCHED)
            self.ledger.save_screenshot(record)

        return record

    def process_in_background(self, screenshot_id, on_complete=None):
        """
        Run process() on a daemon thread.

        Args:
            screenshot_id (str): Record to process.
            on_complete (callable): fn(screenshot_id, record, error); record
                is None and error is set when processing failed.

        Returns:
            threading.Thread: The started worker.
        """
        def worker():
            try:
                record = self.process(screenshot_id)
            except ReconcilerError as e:
                logger.error("Background processing of %s failed: %s", screenshot_id, e)
                if on_complete:
                    on_complete(screenshot_id, None, e)
                return
            if on_complete:
                on_complete(screenshot_id, record, None)

        thread = threading.Thread(target=worker, daemon=True)
        thread.start()
        return thread

    def resume_pending(self, on_complete=None):
        """
        Re-queue screenshots left 'uploaded' or 'processing' by a previous run.

        Returns:
            list[threading.Thread]: One worker per re-queued record.
        """
        threads = []
        for record in self.ledger.list_screenshots():
            if record.status == S.PROCESSING:
                self._transition(record, S.UPLOADED)
                self.ledger.save_screenshot(record)
            if record.status == S.UPLOADED:
                threads.append(self.process_in_background(record.id, on_complete))
        if threads:
            logger.info("Resumed %d pending screenshot(s)", len(threads))
        return threads

    def process_batch(self, image_paths, progress_callback=None):
        """
        Upload and process many screenshots one after another.

        Includes:
          - Error recovery: continues on failure, records the error per image
          - Duplicate detection: skips screenshots already in the ledger
          - Processing summary: counts of matched/unmatched/failed/duplicate

        Args:
            image_paths (list[str]): Screenshots to process.
            progress_callback (callable): fn(current, total, message) for progress.

        Returns:
            tuple: (list[ScreenshotUpload], dict): processed records and summary.
        """
        records = []
        total = len(image_paths)
        summary = {
            'matched': 0,
            'unmatched': 0,
            'failed': 0,
            'duplicates': 0,
            'errors': [],  # list of (filename, error_message)
        }

        for i, path in enumerate(image_paths):
            filename = os.path.basename(path)
            if progress_callback:
                progress_callback(i + 1, total, f"Processing {filename}...")

            try:
                uploaded = self.upload(path)
            except DuplicateScreenshotError:
                summary['duplicates'] += 1
                if progress_callback:
                    progress_callback(i + 1, total, f"Skipped duplicate: {filename}")
                continue
            except (ReconcilerError, OSError) as e:
                summary['failed'] += 1
                summary['errors'].append((filename, str(e)))
                continue

            try:
                record = self.process(uploaded.id)
            except ReconcilerError as e:
                summary['failed'] += 1
                summary['errors'].append((filename, str(e)))
                records.append(self.get(uploaded.id))
                continue

            records.append(record)
            if record.status == S.MATCHED:
                summary['matched'] += 1
            else:
                summary['unmatched'] += 1

        return records, summary

    # ══════════════════════════════════════════════════════════════════
    #  CONFIRMATION
    # ══════════════════════════════════════════════════════════════════

    def _require_client(self, client_id):
        client = self.ledger.get_client(client_id) if client_id else None
        if client is None:
            raise ClientNotFound(client_id)
        return client

    def confirm_match(self, screenshot_id, client_id, payment_id=None):
        """Operator confirms which client a screenshot belongs to, without recording a payment."""
        record = self.get(screenshot_id)
        client = self._require_client(client_id)
        self._transition(record, S.CONFIRMED)
        record.matched_client_id = client.id
        record.payment_id = payment_id
        self.ledger.save_screenshot(record)
        return record

    def confirm_payment(self, screenshot_id, client_id=None, amount=None,
                        sale_id=None, payment_method=PaymentMethod.UPI, date=None):
        """
        Record a confirmed payment from a screenshot.

        Client defaults to the matched client, amount to the extracted
        amount, date to the extracted date (today if none was read).
        The UTR always comes from the screenshot.

        Returns:
            Payment: The stored, confirmed payment.
        """
        record = self.get(screenshot_id)
        if S.CONFIRMED not in ALLOWED_TRANSITIONS[record.status]:
            raise InvalidStatusTransition(record.status.value, S.CONFIRMED.value)

        client = self._require_client(client_id or record.matched_client_id)
        amount = record.extracted.amount if amount is None else amount
        if amount is None:
            raise ReconcilerError(
                f"No amount was read from {record.original_name}; enter it manually"
            )

        payment = Payment(
            client_id=client.id,
            amount=amount,
            payment_method=PaymentMethod(payment_method),
            utr=record.extracted.utr,
            date=date or record.extracted.date or Date.today(),
            sale_id=sale_id,
            screenshot=record.filename,
            confirmed=True,
        )
        self.ledger.add_payment(payment)

        record.matched_client_id = client.id
        record.payment_id = payment.id
        self._transition(record, S.CONFIRMED)
        try:
            self.ledger.save_screenshot(record)
        except LedgerError:
            # the screenshot is still unconfirmed, so the payment must go too
            self.ledger.delete_payment(payment.id)
            raise
        logger.info("Confirmed payment %s of %.2f from %s", payment.id, amount, client.name)
        return payment

    # ══════════════════════════════════════════════════════════════════
    #  DELETE
    # ══════════════════════════════════════════════════════════════════

    def delete(self, screenshot_id):
        """Remove a screenshot record and its stored file."""
        record = self.ledger.delete_screenshot(screenshot_id)
        if record is None:
            raise ScreenshotNotFound(screenshot_id)
        if os.path.exists(record.path):
            os.remove(record.path)
        return record
