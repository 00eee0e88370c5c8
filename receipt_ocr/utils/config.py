"""Configuration management for the receipt OCR pipeline.

Loads and validates YAML configuration with sensible defaults
for preprocessing, OCR strategies, field extraction, and upload intake.
"""

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class PreprocessingConfig(BaseModel):
    """Configuration for receipt image preprocessing."""

    enabled: bool = True
    upscale_enabled: bool = True
    target_width: int = 1500
    contrast_enabled: bool = True
    contrast_passes: int = 2
    contrast_factor: float = 1.25
    sharpen_enabled: bool = True
    sharpen_sigma: float = 2.0
    normalize_enabled: bool = True
    dpi: int = 300


class StrategyConfig(BaseModel):
    """A single Tesseract invocation profile."""

    strategy_id: str
    psm: int


def _default_strategies() -> list[StrategyConfig]:
    return [
        StrategyConfig(strategy_id="uniform_block", psm=6),
        StrategyConfig(strategy_id="single_column", psm=4),
        StrategyConfig(strategy_id="fully_automatic", psm=3),
    ]


class OCRConfig(BaseModel):
    """Configuration for the Tesseract OCR engine and its strategies."""

    tesseract_cmd: str | None = None
    default_lang: str = "eng"
    oem: int = 3
    strategies: list[StrategyConfig] = Field(default_factory=_default_strategies)
    timeout_s: float = 30.0
    max_workers: int = 3


class ExtractionConfig(BaseModel):
    """Configuration for receipt field extraction."""

    default_currency: str = "ETB"
    timezone: str | None = None


class IntakeConfig(BaseModel):
    """Limits applied to uploaded images before they enter the pipeline."""

    allowed_content_types: list[str] = Field(
        default_factory=lambda: ["image/jpeg", "image/png", "image/gif", "image/webp"]
    )
    max_image_bytes: int = 10 * 1024 * 1024


class AppConfig(BaseModel):
    """Top-level application configuration."""

    preprocessing: PreprocessingConfig = Field(default_factory=PreprocessingConfig)
    ocr: OCRConfig = Field(default_factory=OCRConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    intake: IntakeConfig = Field(default_factory=IntakeConfig)
    log_level: str = "INFO"


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to the YAML configuration file.
            Defaults to configs/config.yaml.

    Returns:
        Validated application configuration.
    """
    if path is None:
        path = Path("configs/config.yaml")

    if path.exists():
        logger.info("Loading configuration from %s", path)
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        return AppConfig(**raw)

    logger.info("No config file found at %s, using defaults", path)
    return AppConfig()
