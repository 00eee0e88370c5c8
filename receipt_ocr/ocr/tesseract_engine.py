"""Tesseract OCR engine wrapper for receipt images.

Runs one recognition pass per call with a given page segmentation mode.
Failures are reported as a ``StrategyOutcome`` status rather than raised,
so one bad pass never takes down the others.
"""

import asyncio
import subprocess
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

import pytesseract

from receipt_ocr.utils.logger import get_logger

logger = get_logger(__name__)


class StrategyStatus(StrEnum):
    """How a single recognition pass ended."""

    OK = "ok"
    EMPTY = "empty"
    ERROR = "error"
    TIMEOUT = "timeout"
    ENGINE_MISSING = "engine_missing"


@dataclass
class StrategyOutcome:
    """Result of one Tesseract invocation."""

    strategy_id: str
    status: StrategyStatus
    text: str | None = None


class TesseractEngine:
    """Wrapper around the Tesseract executable.

    The executable path belongs to the instance; pytesseract's module-level
    ``tesseract_cmd`` is only read as the default and never written.

    Args:
        tesseract_cmd: Path to the Tesseract executable.
            If ``None``, uses pytesseract's default.
        default_lang: OCR language code.
        oem: OCR engine mode; 3 combines the LSTM and legacy engines.
        timeout_s: Upper bound for a single recognition pass.
    """

    def __init__(
        self,
        tesseract_cmd: str | None = None,
        default_lang: str = "eng",
        oem: int = 3,
        timeout_s: float = 30.0,
    ) -> None:
        self.tesseract_cmd = tesseract_cmd or pytesseract.pytesseract.tesseract_cmd
        self.default_lang = default_lang
        self.oem = oem
        self.timeout_s = timeout_s

    @property
    def command(self) -> str:
        return self.tesseract_cmd

    def build_args(self, image_path: Path, psm: int) -> list[str]:
        """Command line for one pass that prints the text to stdout."""
        return [
            self.tesseract_cmd,
            str(image_path),
            "stdout",
            "-l",
            self.default_lang,
            "--oem",
            str(self.oem),
            "--psm",
            str(psm),
        ]

    def recognize(self, image_path: Path, strategy_id: str, psm: int) -> StrategyOutcome:
        """Run one blocking recognition pass.

        Args:
            image_path: Image file to read.
            strategy_id: Name of the strategy, carried into the outcome.
            psm: Tesseract page segmentation mode.

        Returns:
            Outcome with the recognized text when the pass succeeded.
        """
        try:
            proc = subprocess.run(
                self.build_args(image_path, psm),
                check=False,
                capture_output=True,
                timeout=self.timeout_s,
            )
        except OSError as exc:
            logger.error("OCR failed: cannot execute %s - %s", self.tesseract_cmd, exc)
            return StrategyOutcome(strategy_id, StrategyStatus.ENGINE_MISSING)
        except subprocess.TimeoutExpired:
            # subprocess.run kills the child before raising
            logger.error("OCR timed out after %.1fs (PSM %d)", self.timeout_s, psm)
            return StrategyOutcome(strategy_id, StrategyStatus.TIMEOUT)

        return self._finish(strategy_id, psm, proc.returncode, proc.stdout, proc.stderr)

    async def arecognize(
        self, image_path: Path, strategy_id: str, psm: int
    ) -> StrategyOutcome:
        """Run one recognition pass as a cancellable subprocess.

        The subprocess is killed when the pass times out or the awaiting
        task is cancelled.

        Args:
            image_path: Image file to read.
            strategy_id: Name of the strategy, carried into the outcome.
            psm: Tesseract page segmentation mode.

        Returns:
            Outcome with the recognized text when the pass succeeded.
        """
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.build_args(image_path, psm),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.error("OCR failed: cannot execute %s - %s", self.tesseract_cmd, exc)
            return StrategyOutcome(strategy_id, StrategyStatus.ENGINE_MISSING)

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self.timeout_s
            )
        except asyncio.TimeoutError:
            await _terminate(proc)
            logger.error("OCR timed out after %.1fs (PSM %d)", self.timeout_s, psm)
            return StrategyOutcome(strategy_id, StrategyStatus.TIMEOUT)
        except asyncio.CancelledError:
            await _terminate(proc)
            logger.info("OCR pass %s cancelled, subprocess terminated", strategy_id)
            raise

        return self._finish(strategy_id, psm, proc.returncode, stdout, stderr)

    def _finish(
        self,
        strategy_id: str,
        psm: int,
        returncode: int | None,
        stdout: bytes,
        stderr: bytes,
    ) -> StrategyOutcome:
        if returncode != 0:
            logger.error(
                "OCR failed: Tesseract exited with %s (PSM %d) - %s",
                returncode,
                psm,
                " ".join(stderr.decode("utf-8", errors="replace").split())[-500:],
            )
            return StrategyOutcome(strategy_id, StrategyStatus.ERROR)

        text = stdout.decode("utf-8", errors="replace")
        if not text.strip():
            logger.debug("Strategy %s returned no text", strategy_id)
            return StrategyOutcome(strategy_id, StrategyStatus.EMPTY)
        logger.debug("Strategy %s returned %d characters", strategy_id, len(text))
        return StrategyOutcome(strategy_id, StrategyStatus.OK, text)


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()
