"""Tests for the Tesseract engine wrapper and the strategy runner."""

import asyncio
import subprocess
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytesseract
import pytest

from receipt_ocr.ocr.strategies import OcrStrategyRunner, StrategyRunReport, staged_image
from receipt_ocr.ocr.tesseract_engine import (
    StrategyOutcome,
    StrategyStatus,
    TesseractEngine,
)
from receipt_ocr.pipeline import ReceiptPipeline
from receipt_ocr.utils.config import AppConfig, OCRConfig


class _FakeProcess:
    """Stand-in for an asyncio subprocess."""

    def __init__(
        self,
        stdout: bytes = b"",
        stderr: bytes = b"",
        returncode: int = 0,
        hang: bool = False,
    ) -> None:
        self._stdout = stdout
        self._stderr = stderr
        self._final_returncode = returncode
        self.returncode: int | None = None
        self.hang = hang
        self.killed = False

    async def communicate(self) -> tuple[bytes, bytes]:
        if self.hang:
            await asyncio.sleep(3600)
        self.returncode = self._final_returncode
        return self._stdout, self._stderr

    def kill(self) -> None:
        self.killed = True
        self.returncode = -9

    async def wait(self) -> int:
        return self.returncode


@pytest.fixture
def image_file(tmp_path: Path, sample_png_bytes: bytes) -> Path:
    path = tmp_path / "receipt.png"
    path.write_bytes(sample_png_bytes)
    return path


def _completed(
    stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0
) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(["tesseract"], returncode, stdout, stderr)


class TestTesseractEngine:
    """Tests for the blocking recognition pass (subprocess mocked)."""

    @patch("receipt_ocr.ocr.tesseract_engine.subprocess.run")
    def test_recognize_ok(self, mock_run: MagicMock, image_file: Path) -> None:
        mock_run.return_value = _completed(stdout=b"TOTAL 45.67\n")
        engine = TesseractEngine(default_lang="eng", timeout_s=5)

        outcome = engine.recognize(image_file, "uniform_block", 6)

        assert outcome.status == StrategyStatus.OK
        assert outcome.text == "TOTAL 45.67\n"
        assert outcome.strategy_id == "uniform_block"
        args, kwargs = mock_run.call_args
        assert args[0] == [
            engine.command, str(image_file), "stdout",
            "-l", "eng", "--oem", "3", "--psm", "6",
        ]
        assert kwargs["timeout"] == 5

    @patch("receipt_ocr.ocr.tesseract_engine.subprocess.run")
    def test_recognize_whitespace_is_empty(
        self, mock_run: MagicMock, image_file: Path
    ) -> None:
        mock_run.return_value = _completed(stdout=b"  \n\x0c")
        outcome = TesseractEngine().recognize(image_file, "single_column", 4)
        assert outcome.status == StrategyStatus.EMPTY
        assert outcome.text is None

    @patch("receipt_ocr.ocr.tesseract_engine.subprocess.run")
    def test_recognize_engine_error(self, mock_run: MagicMock, image_file: Path) -> None:
        mock_run.return_value = _completed(stderr=b"bad image", returncode=1)
        outcome = TesseractEngine().recognize(image_file, "uniform_block", 6)
        assert outcome.status == StrategyStatus.ERROR

    @patch("receipt_ocr.ocr.tesseract_engine.subprocess.run")
    def test_recognize_timeout(self, mock_run: MagicMock, image_file: Path) -> None:
        mock_run.side_effect = subprocess.TimeoutExpired(["tesseract"], 5)
        outcome = TesseractEngine().recognize(image_file, "uniform_block", 6)
        assert outcome.status == StrategyStatus.TIMEOUT

    def test_recognize_missing_executable(self, image_file: Path) -> None:
        engine = TesseractEngine(tesseract_cmd="/nonexistent/bin/tesseract")
        outcome = engine.recognize(image_file, "uniform_block", 6)
        assert outcome.status == StrategyStatus.ENGINE_MISSING

    def test_executable_path_is_per_engine(self) -> None:
        default_cmd = pytesseract.pytesseract.tesseract_cmd
        custom = TesseractEngine(tesseract_cmd="/nonexistent/bin/tesseract")
        other = TesseractEngine(tesseract_cmd="/opt/ocr/tesseract")
        default = TesseractEngine()

        assert custom.command == "/nonexistent/bin/tesseract"
        assert other.command == "/opt/ocr/tesseract"
        assert default.command == default_cmd
        assert pytesseract.pytesseract.tesseract_cmd == default_cmd

    def test_pipelines_do_not_share_executable(self) -> None:
        broken = ReceiptPipeline(
            AppConfig(ocr=OCRConfig(tesseract_cmd="/nonexistent/bin/tesseract"))
        )
        fresh = ReceiptPipeline(AppConfig())
        assert broken.engine.command == "/nonexistent/bin/tesseract"
        assert fresh.engine.command == pytesseract.pytesseract.tesseract_cmd


class TestTesseractEngineAsync:
    """Tests for the cancellable subprocess pass."""

    def test_arecognize_ok(self, image_file: Path) -> None:
        proc = _FakeProcess(stdout=b"Amount: 4581.00 ETB\n")
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)) as spawn:
            outcome = asyncio.run(
                TesseractEngine(oem=3).arecognize(image_file, "fully_automatic", 3)
            )

        assert outcome.status == StrategyStatus.OK
        assert outcome.text == "Amount: 4581.00 ETB\n"
        args = spawn.call_args[0]
        assert args[1] == str(image_file)
        assert args[2] == "stdout"
        assert list(args[-4:]) == ["--oem", "3", "--psm", "3"]

    def test_arecognize_nonzero_exit(self, image_file: Path) -> None:
        proc = _FakeProcess(stderr=b"Error opening data file", returncode=1)
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            outcome = asyncio.run(TesseractEngine().arecognize(image_file, "s", 6))
        assert outcome.status == StrategyStatus.ERROR

    def test_arecognize_missing_executable(self, image_file: Path) -> None:
        engine = TesseractEngine(tesseract_cmd="/nonexistent/bin/tesseract")
        outcome = asyncio.run(engine.arecognize(image_file, "uniform_block", 6))
        assert outcome.status == StrategyStatus.ENGINE_MISSING

    def test_arecognize_timeout_kills_process(self, image_file: Path) -> None:
        proc = _FakeProcess(hang=True)
        engine = TesseractEngine(timeout_s=0.05)
        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            outcome = asyncio.run(engine.arecognize(image_file, "uniform_block", 6))

        assert outcome.status == StrategyStatus.TIMEOUT
        assert proc.killed is True

    def test_arecognize_cancel_kills_process(self, image_file: Path) -> None:
        proc = _FakeProcess(hang=True)
        engine = TesseractEngine(timeout_s=60)

        async def scenario() -> None:
            task = asyncio.create_task(engine.arecognize(image_file, "s", 6))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            asyncio.run(scenario())

        assert proc.killed is True


class TestStagedImage:
    """Tests for temporary image staging."""

    def test_file_removed_after_use(self) -> None:
        with staged_image(b"abc", ".png") as path:
            assert path.read_bytes() == b"abc"
            assert path.suffix == ".png"
        assert not path.exists()
        assert not path.parent.exists()

    def test_file_removed_on_error(self) -> None:
        with pytest.raises(ValueError):
            with staged_image(b"abc") as path:
                raise ValueError("boom")
        assert not path.parent.exists()


class TestStrategyRunReport:
    """Tests for the run report helpers."""

    def test_texts_keep_only_ok(self) -> None:
        report = StrategyRunReport(
            outcomes=[
                StrategyOutcome("a", StrategyStatus.OK, "one"),
                StrategyOutcome("b", StrategyStatus.EMPTY),
                StrategyOutcome("c", StrategyStatus.TIMEOUT),
                StrategyOutcome("d", StrategyStatus.OK, "two"),
            ]
        )
        assert report.texts == [("a", "one"), ("d", "two")]
        assert report.engine_missing is False

    def test_engine_missing_only_when_all_missing(self) -> None:
        missing = StrategyOutcome("a", StrategyStatus.ENGINE_MISSING)
        assert StrategyRunReport([missing, missing]).engine_missing is True
        mixed = [missing, StrategyOutcome("b", StrategyStatus.ERROR)]
        assert StrategyRunReport(mixed).engine_missing is False
        assert StrategyRunReport([]).engine_missing is False


class TestOcrStrategyRunner:
    """Tests for strategy fan-out with a mocked engine."""

    def setup_method(self) -> None:
        self.strategies = OCRConfig().strategies
        self.seen_paths: list[Path] = []

    def _fake_recognize(self, path: Path, strategy_id: str, psm: int) -> StrategyOutcome:
        assert path.exists()
        self.seen_paths.append(path)
        return StrategyOutcome(strategy_id, StrategyStatus.OK, f"psm {psm}")

    def test_run_preserves_strategy_order(self) -> None:
        engine = MagicMock(spec=TesseractEngine)
        engine.recognize.side_effect = self._fake_recognize

        report = OcrStrategyRunner(engine, self.strategies).run(b"image", ".png")

        assert [o.strategy_id for o in report.outcomes] == [
            "uniform_block",
            "single_column",
            "fully_automatic",
        ]
        assert report.texts[0] == ("uniform_block", "psm 6")
        assert engine.recognize.call_count == 3

    def test_run_shares_one_staged_file_and_removes_it(self) -> None:
        engine = MagicMock(spec=TesseractEngine)
        engine.recognize.side_effect = self._fake_recognize

        OcrStrategyRunner(engine, self.strategies).run(b"image", ".jpg")

        assert len(set(self.seen_paths)) == 1
        assert self.seen_paths[0].suffix == ".jpg"
        assert not self.seen_paths[0].parent.exists()

    def test_arun_collects_outcomes(self) -> None:
        engine = MagicMock(spec=TesseractEngine)
        engine.arecognize = AsyncMock(side_effect=self._fake_recognize)
        report = asyncio.run(OcrStrategyRunner(engine, self.strategies).arun(b"image"))

        assert [sid for sid, _ in report.texts] == [
            "uniform_block",
            "single_column",
            "fully_automatic",
        ]
        assert not self.seen_paths[0].parent.exists()

    def test_arun_cancel_kills_every_pass_and_cleans_up(self) -> None:
        procs = [_FakeProcess(hang=True) for _ in self.strategies]
        spawn = AsyncMock(side_effect=procs)
        runner = OcrStrategyRunner(TesseractEngine(timeout_s=60), self.strategies)

        async def scenario() -> None:
            task = asyncio.create_task(runner.arun(b"image"))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        with patch("asyncio.create_subprocess_exec", spawn):
            asyncio.run(scenario())

        assert all(p.killed for p in procs)
        staged = Path(spawn.call_args_list[0][0][1])
        assert not staged.parent.exists()
