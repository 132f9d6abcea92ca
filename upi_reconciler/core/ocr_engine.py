"""
OCR Engine Module
-----------------
Handles Tesseract OCR configuration and text extraction from
payment screenshots. Automatically detects Tesseract installation
on Windows when it is not on PATH.
"""

import os

import pytesseract

from upi_reconciler.config import settings
from upi_reconciler.core.image_loader import load_image_pil
from upi_reconciler.errors import OCRError
from upi_reconciler.utils.image_preprocessing import preprocess_image
from upi_reconciler.utils.logger import get_logger

logger = get_logger(__name__)


class OCREngine:
    """
    Wrapper around Tesseract OCR.

    Unlike the parsers downstream, this is allowed to fail: an image
    that cannot be read raises OCRError so the caller can mark the
    screenshot as errored instead of matching on empty text.
    """

    def __init__(self, lang=None, psm=None, timeout=None, tesseract_cmd=None):
        self.lang = lang or settings.ocr_lang
        self.psm = settings.ocr_psm if psm is None else psm
        self.timeout = settings.ocr_timeout if timeout is None else timeout
        self._configure_tesseract(tesseract_cmd or settings.tesseract_cmd)

    def _configure_tesseract(self, tesseract_cmd):
        """
        Point pytesseract at the Tesseract executable.

        An explicit command wins; otherwise, if Tesseract is not already
        on PATH, common Windows install locations are tried.
        """
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
            return

        try:
            pytesseract.get_tesseract_version()
            return
        except (pytesseract.TesseractNotFoundError, OSError):
            pass

        common_paths = [
            r"C:\Program Files\Tesseract-OCR\tesseract.exe",
            r"C:\Program Files (x86)\Tesseract-OCR\tesseract.exe",
        ]
        local_app = os.getenv('LOCALAPPDATA')
        if local_app:
            common_paths.append(
                os.path.join(local_app, r"Tesseract-OCR\tesseract.exe")
            )

        for path in common_paths:
            if os.path.exists(path):
                pytesseract.pytesseract.tesseract_cmd = path
                logger.info("Using Tesseract at %s", path)
                return

        logger.warning("Tesseract not found on PATH or in common install locations")

    def _get_ocr_config(self):
        # psm 6: a screenshot is one uniform block of text
        config = f'--psm {self.psm}'
        return config + ' -c preserve_interword_spaces=1'

    def extract_text(self, image, lang=None):
        """
        Extract raw text from a screenshot.

        First attempts with the preprocessed image (grayscale + binarized),
        falling back to the raw PIL image if preprocessing fails.

        Args:
            image (str | bytes): Image file path or encoded image bytes.
            lang (str): Tesseract language code (default: engine language).

        Returns:
            str: Recognised text (possibly empty).

        Raises:
            OCRError: The image cannot be loaded or Tesseract fails.
        """
        source = image if isinstance(image, str) else '<bytes>'
        processed_img = preprocess_image(image)
        if processed_img is None:
            processed_img = load_image_pil(image)
        if processed_img is None:
            raise OCRError(f"Cannot load image {source}")

        try:
            text = pytesseract.image_to_string(
                processed_img,
                lang=lang or self.lang,
                config=self._get_ocr_config(),
                timeout=self.timeout,
            )
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError,
                RuntimeError, OSError) as e:
            logger.error("OCR failed on %s: %s", source, e)
            raise OCRError(f"OCR failed on {source}: {e}") from e

        logger.debug("OCR read %d characters from %s", len(text), source)
        return text
