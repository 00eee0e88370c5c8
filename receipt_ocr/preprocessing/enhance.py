"""Image enhancement steps for photographed receipts.

Each step takes and returns a numpy image. Grayscale conversion drops
colored stamps and watermarks; the remaining steps make thin receipt
print stand out for Tesseract.
"""

import io

import cv2
import numpy as np
from PIL import Image

from receipt_ocr.utils.logger import get_logger

logger = get_logger(__name__)


def decode_image(content: bytes) -> np.ndarray:
    """Decode image bytes (JPEG, PNG, GIF, WebP) into an RGB array.

    Args:
        content: Encoded image bytes.

    Returns:
        RGB image as a numpy array.

    Raises:
        OSError: If Pillow cannot identify or decode the image.
    """
    with Image.open(io.BytesIO(content)) as img:
        img.seek(0)
        return np.array(img.convert("RGB"))


def encode_png(image: np.ndarray, dpi: int = 300) -> bytes:
    """Encode an image as PNG carrying a DPI hint for Tesseract."""
    buf = io.BytesIO()
    Image.fromarray(image).save(buf, format="PNG", dpi=(dpi, dpi))
    return buf.getvalue()


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Convert an RGB image to grayscale; grayscale input is returned as-is."""
    if len(image.shape) == 3:
        return cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
    return image


def upscale_to_width(image: np.ndarray, target_width: int = 1500) -> np.ndarray:
    """Uniformly upscale an image so its width reaches ``target_width``.

    Images already at least ``target_width`` wide are returned unchanged.
    """
    h, w = image.shape[:2]
    if w >= target_width or w == 0:
        return image

    scale = target_width / w
    new_size = (target_width, max(1, round(h * scale)))
    logger.debug("Upscaling %dx%d by %.2f", w, h, scale)
    return cv2.resize(image, new_size, interpolation=cv2.INTER_CUBIC)


def enhance_contrast(image: np.ndarray, factor: float = 1.25) -> np.ndarray:
    """Stretch pixel intensities away from mid-gray by ``factor``."""
    return cv2.addWeighted(image, factor, image, 0, 128 * (1 - factor))


def sharpen(image: np.ndarray, sigma: float = 2.0) -> np.ndarray:
    """Sharpen text edges with an unsharp mask."""
    blurred = cv2.GaussianBlur(image, (0, 0), sigma)
    return cv2.addWeighted(image, 1.5, blurred, -0.5, 0)


def normalize_brightness(image: np.ndarray) -> np.ndarray:
    """Stretch intensities to the full 0-255 range."""
    return cv2.normalize(image, None, 0, 255, cv2.NORM_MINMAX)
