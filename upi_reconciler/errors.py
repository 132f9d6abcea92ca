"""
Errors Module
-------------
Exception hierarchy shared by the OCR engine, ledger and screenshot service.

A field the extractor cannot find is never an error; it is simply absent.
Everything here is a real failure the caller has to decide about.
"""


class ReconcilerError(Exception):
    """Base class for every error raised by upi_reconciler."""


class OCRError(ReconcilerError):
    """Tesseract could not read the image (unreadable file, engine failure, timeout)."""


class LedgerError(ReconcilerError):
    """A repository lookup or write failed (missing workbook, bad sheet, I/O)."""


class ScreenshotNotFound(ReconcilerError):
    def __init__(self, screenshot_id):
        super().__init__(f"Screenshot not found: {screenshot_id}")
        self.screenshot_id = screenshot_id


class ClientNotFound(ReconcilerError):
    def __init__(self, client_id):
        super().__init__(f"Client not found: {client_id}")
        self.client_id = client_id


class InvalidImageError(ReconcilerError):
    """Upload rejected: missing file, unsupported extension or over the size limit."""


class DuplicateScreenshotError(ReconcilerError):
    """The same screenshot bytes were uploaded before."""

    def __init__(self, existing):
        super().__init__(
            f"Duplicate screenshot detected (already uploaded as {existing.original_name})"
        )
        self.existing = existing


class InvalidStatusTransition(ReconcilerError):
    def __init__(self, current, target):
        super().__init__(f"Cannot move screenshot from '{current}' to '{target}'")
        self.current = current
        self.target = target
