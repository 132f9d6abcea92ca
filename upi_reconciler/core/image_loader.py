"""
Image Loader Module
-------------------
Loads screenshots with PIL and scans folders for supported images.
"""

import io
import os

from PIL import Image, UnidentifiedImageError

from upi_reconciler.utils.logger import get_logger

logger = get_logger(__name__)

# Supported image file extensions
SUPPORTED_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.bmp', '.webp')


def load_image_pil(image):
    """
    Load an image using PIL.

    Args:
        image (str | bytes): Path to the image file, or encoded image bytes.

    Returns:
        PIL.Image.Image or None: Loaded image, or None on failure.
    """
    try:
        if isinstance(image, (bytes, bytearray)):
            return Image.open(io.BytesIO(image))
        return Image.open(image)
    except (OSError, UnidentifiedImageError) as e:
        logger.error("Cannot load image %s: %s",
                     image if isinstance(image, str) else '<bytes>', e)
        return None


def load_images_from_folder(folder_path):
    """
    Recursively scan a folder and return paths to all supported image files.

    Args:
        folder_path (str): Path to the folder to scan.

    Returns:
        list[str]: Sorted paths to image files found.
    """
    image_files = []

    for root, _, filenames in os.walk(folder_path):
        for filename in filenames:
            if filename.lower().endswith(SUPPORTED_EXTENSIONS):
                image_files.append(os.path.join(root, filename))

    return sorted(image_files)
