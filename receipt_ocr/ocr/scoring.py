"""Heuristic quality scoring of competing OCR texts."""

import re
from collections.abc import Iterable
from dataclasses import dataclass

from receipt_ocr.utils.logger import get_logger

logger = get_logger(__name__)

MAX_LENGTH_CREDIT = 2000
KEYWORD_BONUS = 50
NUMBER_BONUS = 10
KEY_VALUE_BONUS = 30
GARBAGE_PENALTY = 500

RECEIPT_KEYWORDS: tuple[str, ...] = (
    "total",
    "amount",
    "date",
    "payment",
    "transfer",
    "account",
    "bank",
    "received",
    "payer",
    "invoice",
    "receipt",
    "reference",
    "commission",
    "etb",
    "usd",
    "eur",
    "gbp",
    "service",
    "charge",
    "merchant",
)

_NUMBER_RE = re.compile(r"\d+")
_KEY_VALUE_RE = re.compile(r"\w+\s*:\s*\S+")
_GARBAGE_RE = re.compile(r"[^A-Za-z0-9\s.,/:;\-]")


@dataclass(frozen=True)
class OcrCandidate:
    """One strategy's text together with its quality score."""

    strategy_id: str
    text: str
    quality_score: int


def score_text(text: str) -> int:
    """Score OCR text; higher means more receipt-like and less noisy.

    Rewards length (capped), receipt vocabulary, numbers and ``key: value``
    lines, and penalizes the share of characters outside letters, digits,
    whitespace and common punctuation.
    """
    if not text:
        return 0

    lowered = text.lower()
    score = min(len(text), MAX_LENGTH_CREDIT)
    score += KEYWORD_BONUS * sum(1 for kw in RECEIPT_KEYWORDS if kw in lowered)
    score += NUMBER_BONUS * len(_NUMBER_RE.findall(text))
    score += KEY_VALUE_BONUS * len(_KEY_VALUE_RE.findall(text))

    garbage_ratio = len(_GARBAGE_RE.findall(text)) / len(text)
    score -= int(garbage_ratio * GARBAGE_PENALTY)
    return score


class CandidateScorer:
    """Scores candidate texts and picks the best one."""

    def score(self, strategy_id: str, text: str) -> OcrCandidate:
        return OcrCandidate(strategy_id, text, score_text(text))

    def select(self, texts: Iterable[tuple[str, str]]) -> OcrCandidate | None:
        """Return the highest-scoring candidate.

        Ties go to the candidate seen first, so strategy order decides.

        Args:
            texts: ``(strategy_id, text)`` pairs in strategy order.

        Returns:
            The winning candidate, or ``None`` when there is no usable text.
        """
        candidates = [self.score(sid, text) for sid, text in texts]
        if not candidates:
            return None

        best = max(candidates, key=lambda c: c.quality_score)
        logger.info(
            "Selected OCR strategy %s (score %d, %d chars) out of %d candidates",
            best.strategy_id,
            best.quality_score,
            len(best.text),
            len(candidates),
        )
        return best
