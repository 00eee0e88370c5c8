"""Receipt image preprocessing ahead of OCR.

Runs grayscale conversion, upscaling, contrast enhancement, sharpening and
brightness normalization, then re-encodes the image with a DPI hint.
Preprocessing is best-effort: any failure passes the original bytes through.
"""

from dataclasses import dataclass

import cv2
import numpy as np
from PIL import Image

from receipt_ocr.utils.config import PreprocessingConfig
from receipt_ocr.utils.logger import get_logger

from .enhance import (
    decode_image,
    encode_png,
    enhance_contrast,
    normalize_brightness,
    sharpen,
    to_grayscale,
    upscale_to_width,
)

logger = get_logger(__name__)


@dataclass
class QualityMetrics:
    """Before/after image quality measurements."""

    sharpness_before: float
    sharpness_after: float
    contrast_before: float
    contrast_after: float


@dataclass
class PreprocessResult:
    """Image bytes to hand to the OCR engine."""

    content: bytes
    applied: bool
    metrics: QualityMetrics | None = None


def calculate_sharpness(image: np.ndarray) -> float:
    """Calculate image sharpness using Laplacian variance.

    Args:
        image: Input image (RGB or grayscale).

    Returns:
        Sharpness score (higher means sharper).
    """
    gray = to_grayscale(image)
    return float(cv2.Laplacian(gray, cv2.CV_64F).var())


def calculate_contrast(image: np.ndarray) -> float:
    """Calculate image contrast as the standard deviation of pixel intensities.

    Args:
        image: Input image (RGB or grayscale).

    Returns:
        Contrast score (higher means more contrast).
    """
    return float(to_grayscale(image).std())


class ImagePreprocessor:
    """Normalizes receipt photos to improve recognition quality.

    Steps run in a fixed order; each can be disabled in the configuration.
    The preprocessor holds no state between calls.

    Args:
        config: Preprocessing configuration controlling which steps to apply.
    """

    def __init__(self, config: PreprocessingConfig) -> None:
        self.config = config

    def process(self, content: bytes) -> PreprocessResult:
        """Preprocess encoded image bytes.

        Args:
            content: Encoded receipt image.

        Returns:
            PNG bytes of the normalized image, or the original bytes
            when preprocessing is disabled or fails.
        """
        if not self.config.enabled:
            return PreprocessResult(content=content, applied=False)

        try:
            image = decode_image(content)
            processed, metrics = self.transform(image)
            encoded = encode_png(processed, dpi=self.config.dpi)
        except (OSError, ValueError, cv2.error, Image.DecompressionBombError) as exc:
            logger.warning(
                "Image preprocessing failed (%s), using original image", exc
            )
            return PreprocessResult(content=content, applied=False)

        return PreprocessResult(content=encoded, applied=True, metrics=metrics)

    def transform(self, image: np.ndarray) -> tuple[np.ndarray, QualityMetrics]:
        """Apply the enhancement steps to a decoded image.

        Args:
            image: RGB or grayscale receipt image.

        Returns:
            Tuple of (processed grayscale image, quality_metrics).
        """
        metrics = QualityMetrics(
            sharpness_before=calculate_sharpness(image),
            contrast_before=calculate_contrast(image),
            sharpness_after=0.0,
            contrast_after=0.0,
        )

        result = to_grayscale(image)

        if self.config.upscale_enabled:
            result = upscale_to_width(result, self.config.target_width)

        if self.config.contrast_enabled:
            for _ in range(self.config.contrast_passes):
                result = enhance_contrast(result, self.config.contrast_factor)

        if self.config.sharpen_enabled:
            result = sharpen(result, self.config.sharpen_sigma)

        if self.config.normalize_enabled:
            result = normalize_brightness(result)

        metrics.sharpness_after = calculate_sharpness(result)
        metrics.contrast_after = calculate_contrast(result)

        logger.info(
            "Preprocessing complete: %dx%d, sharpness %.1f->%.1f, "
            "contrast %.1f->%.1f",
            result.shape[1],
            result.shape[0],
            metrics.sharpness_before,
            metrics.sharpness_after,
            metrics.contrast_before,
            metrics.contrast_after,
        )
        return result, metrics
