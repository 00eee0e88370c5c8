"""Concurrent execution of several OCR strategies over one receipt image.

Receipt layouts vary too much for a single page segmentation mode, so the
same image is recognized once per configured strategy and the candidate
texts are handed to the scorer.
"""

import asyncio
import tempfile
from collections.abc import Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from receipt_ocr.utils.config import StrategyConfig
from receipt_ocr.utils.logger import get_logger

from .tesseract_engine import StrategyOutcome, StrategyStatus, TesseractEngine

logger = get_logger(__name__)


@dataclass
class StrategyRunReport:
    """All strategy outcomes for one image, in configured order."""

    outcomes: list[StrategyOutcome]

    @property
    def texts(self) -> list[tuple[str, str]]:
        """``(strategy_id, text)`` pairs for the passes that produced text."""
        return [
            (o.strategy_id, o.text)
            for o in self.outcomes
            if o.status == StrategyStatus.OK and o.text
        ]

    @property
    def engine_missing(self) -> bool:
        """True when every pass failed because the engine could not run."""
        return bool(self.outcomes) and all(
            o.status == StrategyStatus.ENGINE_MISSING for o in self.outcomes
        )


@contextmanager
def staged_image(content: bytes, suffix: str = ".png") -> Iterator[Path]:
    """Write image bytes to a temporary file removed on every exit path."""
    with tempfile.TemporaryDirectory(prefix="receipt_ocr_") as tmp:
        path = Path(tmp) / f"receipt{suffix}"
        path.write_bytes(content)
        yield path


class OcrStrategyRunner:
    """Fans one image out to every configured strategy and joins the results.

    Args:
        engine: Engine used for each recognition pass.
        strategies: Strategies to run, in priority order.
        max_workers: Thread pool size for the blocking runner.
    """

    def __init__(
        self,
        engine: TesseractEngine,
        strategies: Sequence[StrategyConfig],
        max_workers: int = 3,
    ) -> None:
        self.engine = engine
        self.strategies = list(strategies)
        self.max_workers = max(1, max_workers)

    def run(self, content: bytes, suffix: str = ".png") -> StrategyRunReport:
        """Run every strategy concurrently on a thread pool.

        Args:
            content: Encoded image bytes.
            suffix: File extension matching the encoding.

        Returns:
            Report with one outcome per strategy.
        """
        with staged_image(content, suffix) as path:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                outcomes = list(
                    executor.map(
                        lambda s: self.engine.recognize(path, s.strategy_id, s.psm),
                        self.strategies,
                    )
                )
        return self._report(outcomes)

    async def arun(self, content: bytes, suffix: str = ".png") -> StrategyRunReport:
        """Run every strategy as a concurrent subprocess.

        Cancelling the awaiting task cancels every pass, which kills the
        in-flight Tesseract processes before the staged image is removed.
        """
        with staged_image(content, suffix) as path:
            async with asyncio.TaskGroup() as group:
                tasks = [
                    group.create_task(
                        self.engine.arecognize(path, s.strategy_id, s.psm)
                    )
                    for s in self.strategies
                ]
        return self._report([t.result() for t in tasks])

    def _report(self, outcomes: list[StrategyOutcome]) -> StrategyRunReport:
        report = StrategyRunReport(outcomes=outcomes)
        logger.info(
            "OCR strategies finished: %s",
            ", ".join(f"{o.strategy_id}={o.status}" for o in outcomes) or "none",
        )
        return report
