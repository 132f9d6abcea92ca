"""
Configuration Module
--------------------
Runtime settings read from environment variables.
A `.env` file in the working directory is loaded first, so local
overrides never need to be exported by hand.
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _env_int(name, default):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Settings:
    """
    Application settings.

    Every attribute can be overridden through the matching environment
    variable (see .env.example).
    """

    def __init__(self):
        self.ledger_path = os.getenv("UPI_LEDGER_PATH", "ledger.xlsx")
        self.upload_dir = os.getenv("UPI_UPLOAD_DIR", "uploads")
        self.log_dir = os.getenv("UPI_LOG_DIR", "logs")
        self.log_level = os.getenv("UPI_LOG_LEVEL", "INFO").upper()

        # ── OCR ──
        self.ocr_lang = os.getenv("UPI_OCR_LANG", "eng")
        self.ocr_psm = _env_int("UPI_OCR_PSM", 6)
        self.ocr_timeout = _env_int("UPI_OCR_TIMEOUT", 30)
        self.tesseract_cmd = os.getenv("TESSERACT_CMD") or None

        # ── Uploads ──
        self.max_upload_mb = _env_int("UPI_MAX_UPLOAD_MB", 5)

    @property
    def max_upload_bytes(self):
        return self.max_upload_mb * 1024 * 1024


settings = Settings()
