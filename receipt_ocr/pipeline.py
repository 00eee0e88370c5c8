"""Receipt parsing pipeline.

Composes preprocessing, multi-strategy OCR, candidate scoring, field
extraction and classification into a single call that turns a receipt
image into a ``PipelineResult``.
"""

import asyncio
import mimetypes
from collections.abc import Callable
from dataclasses import asdict
from datetime import datetime

from receipt_ocr.exceptions import (
    EngineUnavailableError,
    ImageUnavailableError,
    NoUsableTextError,
    UnsupportedImageError,
)
from receipt_ocr.extraction.classifier import classify
from receipt_ocr.extraction.field_extractor import FieldExtractor
from receipt_ocr.ocr.scoring import CandidateScorer
from receipt_ocr.ocr.strategies import OcrStrategyRunner, StrategyRunReport
from receipt_ocr.ocr.tesseract_engine import TesseractEngine
from receipt_ocr.preprocessing.pipeline import ImagePreprocessor
from receipt_ocr.schemas import (
    FailureKind,
    ParsedReceipt,
    PipelineResult,
    PipelineState,
    RawImage,
    UserContext,
)
from receipt_ocr.utils.config import AppConfig, IntakeConfig
from receipt_ocr.utils.logger import get_logger

logger = get_logger(__name__)

_FAILURE_KINDS: dict[type[Exception], FailureKind] = {
    ImageUnavailableError: FailureKind.IMAGE_UNAVAILABLE,
    EngineUnavailableError: FailureKind.ENGINE_UNAVAILABLE,
    NoUsableTextError: FailureKind.NO_USABLE_TEXT,
}


def check_upload(raw: RawImage, intake: IntakeConfig) -> None:
    """Reject uploads with a disallowed content type or size.

    Args:
        raw: Uploaded image.
        intake: Allowed content types and maximum size.

    Raises:
        UnsupportedImageError: If the upload is not acceptable.
    """
    if raw.content_type not in intake.allowed_content_types:
        raise UnsupportedImageError(f"Unsupported content type: {raw.content_type}")
    if raw.size > intake.max_image_bytes:
        raise UnsupportedImageError(
            f"Image too large: {raw.size} bytes (max {intake.max_image_bytes})"
        )


class ReceiptPipeline:
    """End-to-end receipt parsing.

    Each call walks ``received -> preprocessed -> ocr_attempted -> scored
    -> extracted -> classified -> done`` or stops in ``failed``. Nothing is
    retried and no state is kept between calls.

    Args:
        config: Application configuration object.
        engine: OCR engine; built from ``config.ocr`` when omitted.
        clock: Source of "now" for receipts without a readable date.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        engine: TesseractEngine | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config or AppConfig()
        self.preprocessor = ImagePreprocessor(self.config.preprocessing)
        self.engine = engine or TesseractEngine(
            tesseract_cmd=self.config.ocr.tesseract_cmd,
            default_lang=self.config.ocr.default_lang,
            oem=self.config.ocr.oem,
            timeout_s=self.config.ocr.timeout_s,
        )
        self.runner = OcrStrategyRunner(
            self.engine,
            self.config.ocr.strategies,
            max_workers=self.config.ocr.max_workers,
        )
        self.scorer = CandidateScorer()
        self.extractor = FieldExtractor(self.config.extraction, clock=clock)

    def process(
        self, raw: RawImage | None, user: UserContext | None = None
    ) -> PipelineResult:
        """Parse a receipt image, running OCR strategies on a thread pool.

        Args:
            raw: Uploaded receipt image.
            user: Owner of the receipt, used as the payer fallback.

        Returns:
            ``done`` result with the parsed receipt, or a ``failed`` result.
        """
        try:
            content, suffix = self._prepare(raw)
            report = self.runner.run(content, suffix)
            text = self._select_text(report)
        except (ImageUnavailableError, EngineUnavailableError, NoUsableTextError) as exc:
            return self._failed(exc)
        return self._finish(text, user)

    async def aprocess(
        self, raw: RawImage | None, user: UserContext | None = None
    ) -> PipelineResult:
        """Async variant of ``process`` using cancellable OCR subprocesses."""
        try:
            content, suffix = await asyncio.to_thread(self._prepare, raw)
            report = await self.runner.arun(content, suffix)
            text = self._select_text(report)
        except (ImageUnavailableError, EngineUnavailableError, NoUsableTextError) as exc:
            return self._failed(exc)
        return self._finish(text, user)

    def parse_text(self, text: str, user: UserContext | None = None) -> PipelineResult:
        """Parse receipt text that was recognized elsewhere.

        Args:
            text: Receipt text; kept verbatim as ``raw_text``.
            user: Owner of the receipt, used as the payer fallback.

        Returns:
            ``done`` result, or ``failed`` with ``no_usable_text`` for blank text.
        """
        if not text or not text.strip():
            return self._failed(NoUsableTextError("Receipt text is blank"))
        return self._finish(text, user)

    def _prepare(self, raw: RawImage | None) -> tuple[bytes, str]:
        if raw is None or not raw.content:
            raise ImageUnavailableError("Receipt image is missing or empty")
        logger.info(
            "Pipeline %s: %s image, %d bytes",
            PipelineState.RECEIVED,
            raw.content_type,
            raw.size,
        )

        prepared = self.preprocessor.process(raw.content)
        if prepared.applied:
            suffix = ".png"
        else:
            suffix = mimetypes.guess_extension(raw.content_type) or ""
        logger.info(
            "Pipeline %s (applied=%s)", PipelineState.PREPROCESSED, prepared.applied
        )
        return prepared.content, suffix

    def _select_text(self, report: StrategyRunReport) -> str:
        logger.info(
            "Pipeline %s: %d of %d strategies produced text",
            PipelineState.OCR_ATTEMPTED,
            len(report.texts),
            len(report.outcomes),
        )
        if report.engine_missing:
            raise EngineUnavailableError(
                f"Tesseract could not be executed: {self.engine.command}"
            )

        best = self.scorer.select(report.texts)
        if best is None:
            raise NoUsableTextError("No OCR strategy produced usable text")

        logger.info("Pipeline %s: using %s", PipelineState.SCORED, best.strategy_id)
        return best.text

    def _finish(self, text: str, user: UserContext | None) -> PipelineResult:
        fields = self.extractor.extract(text, user)
        logger.info("Pipeline %s", PipelineState.EXTRACTED)

        category = classify(text)
        logger.info("Pipeline %s: %s", PipelineState.CLASSIFIED, category)

        receipt = ParsedReceipt(**asdict(fields), category_name=category, raw_text=text)
        logger.info("Pipeline %s", PipelineState.DONE)
        return PipelineResult.done(receipt)

    def _failed(self, exc: Exception) -> PipelineResult:
        kind = _FAILURE_KINDS[type(exc)]
        logger.warning("Pipeline %s (%s): %s", PipelineState.FAILED, kind, exc)
        return PipelineResult.failed(kind)
