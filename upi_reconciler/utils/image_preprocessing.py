"""
Image Preprocessing Module
--------------------------
Prepares screenshots for OCR: grayscale conversion, upscaling of
small phone screenshots, Otsu binarization and denoising.
"""

import cv2
import numpy as np

from upi_reconciler.utils.logger import get_logger

logger = get_logger(__name__)

# Screenshots narrower than this are upscaled before thresholding
MIN_OCR_WIDTH = 1000


def _read_image(image):
    if isinstance(image, (bytes, bytearray)):
        buffer = np.frombuffer(image, dtype=np.uint8)
        return cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    return cv2.imread(image)


def preprocess_image(image):
    """
    Reads an image and applies preprocessing to improve OCR accuracy.

    Args:
        image (str | bytes): Image file path or encoded image bytes.

    Returns:
        numpy.ndarray or None: Preprocessed image array, or None on failure.
    """
    try:
        img = _read_image(image)
        if img is None:
            return None

        gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)

        height, width = gray.shape[:2]
        if width < MIN_OCR_WIDTH:
            scale = MIN_OCR_WIDTH / float(width)
            gray = cv2.resize(gray, None, fx=scale, fy=scale,
                              interpolation=cv2.INTER_CUBIC)

        # Otsu separates text from the flat app background
        _, thresh = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)

        return cv2.fastNlMeansDenoising(thresh, None, 10, 7, 21)

    except cv2.error as e:
        logger.warning("Preprocessing failed, falling back to raw image: %s", e)
        return None
