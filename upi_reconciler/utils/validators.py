"""
Validators Module
-----------------
Upload checks for screenshot files and format checks for
extracted payment fields.
"""

import os
import re

from upi_reconciler.core.image_loader import SUPPORTED_EXTENSIONS
from upi_reconciler.errors import InvalidImageError

UTR_RE = re.compile(r'^[A-Z0-9]{10,20}$')


def check_upload(path, max_bytes):
    """
    Validate a screenshot before it is accepted for upload.

    Raises:
        InvalidImageError: Missing file, unsupported extension or too large.
    """
    if not os.path.isfile(path):
        raise InvalidImageError(f"File not found: {path}")
    if not path.lower().endswith(SUPPORTED_EXTENSIONS):
        raise InvalidImageError(
            f"Only image files are allowed ({', '.join(SUPPORTED_EXTENSIONS)}): "
            f"{os.path.basename(path)}"
        )
    size = os.path.getsize(path)
    if size > max_bytes:
        raise InvalidImageError(
            f"{os.path.basename(path)} is {size / (1024 * 1024):.1f} MB; "
            f"limit is {max_bytes / (1024 * 1024):.0f} MB"
        )
    return size


def is_valid_utr(utr):
    return bool(utr) and bool(UTR_RE.match(utr))


def is_valid_amount(amount):
    """Positive with at most two decimals."""
    return amount is not None and amount > 0 and round(amount, 2) == amount
