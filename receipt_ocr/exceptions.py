"""Exception classes for the receipt OCR pipeline.

All pipeline exceptions inherit from ReceiptOcrError. The orchestrator
turns the pipeline-level ones into a failed ``PipelineResult``; they only
escape to callers that use the lower-level components directly.
"""


class ReceiptOcrError(Exception):
    """Base exception for all receipt OCR errors."""


class ImageUnavailableError(ReceiptOcrError):
    """Raised when the receipt image payload is missing or cannot be read."""


class EngineUnavailableError(ReceiptOcrError):
    """Raised when the Tesseract executable cannot be located or executed.

    Every strategy fails identically in this case, so it points at a broken
    environment rather than a bad receipt.
    """


class NoUsableTextError(ReceiptOcrError):
    """Raised when every OCR strategy ran but none produced usable text."""


class UnsupportedImageError(ReceiptOcrError):
    """Raised at intake when an upload has a disallowed type or size.

    Example:
        >>> check_upload(RawImage(b"...", "application/pdf"), IntakeConfig())
        UnsupportedImageError: Unsupported content type: application/pdf
    """
