"""Extraction rules and the cascade that applies them.

A cascade is an ordered tuple of rules for one field. Rules are tried in
priority order and the first non-empty value wins; later rules are never
consulted. Rule tables are built once at import time and never mutated.
"""

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from receipt_ocr.utils.logger import get_logger

logger = get_logger(__name__)

_TABULAR_SPLIT_RE = re.compile(r"\s{2,}|\t+")
_PRINTABLE_RE = re.compile(r"[^\x20-\x7E\u1200-\u137F]+")


class ReceiptText:
    """OCR text plus its non-empty, stripped lines.

    Args:
        raw: Full receipt text.
    """

    def __init__(self, raw: str | None) -> None:
        self.raw = raw or ""
        self.lines = [line.strip() for line in self.raw.splitlines() if line.strip()]

    def search(self, pattern: re.Pattern[str]) -> re.Match[str] | None:
        return pattern.search(self.raw)

    def find_field_value(
        self, aliases: Sequence[str], partial: bool = False
    ) -> str | None:
        """Find the value of a labeled field.

        Handles ``Label: value`` lines as well as tabular layouts where the
        value follows the label after a run of spaces or tabs. Aliases are
        tried in order; for each alias lines are scanned top to bottom.

        Args:
            aliases: Label spellings, most specific first.
            partial: Match the label anywhere, not only as whole words.

        Returns:
            The first value longer than one character, or ``None``.
        """
        for alias in aliases:
            escaped = re.escape(alias)
            label_re = re.compile(escaped if partial else rf"\b{escaped}\b", re.IGNORECASE)
            value_re = re.compile(rf"{escaped}[\s:.#]+(.+)", re.IGNORECASE)

            for line in self.lines:
                if not label_re.search(line):
                    continue

                match = value_re.search(line)
                if match:
                    value = match.group(1).strip()
                    if len(value) > 1:
                        return value

                parts = _TABULAR_SPLIT_RE.split(line)
                if len(parts) >= 2:
                    value = parts[-1].strip()
                    if len(value) > 1:
                        return value
        return None


def clean_text(value: str | None) -> str | None:
    """Collapse whitespace and drop OCR artifacts, keeping ASCII and Ethiopic."""
    if not value:
        return None
    cleaned = re.sub(r"\s+", " ", value.strip())
    cleaned = _PRINTABLE_RE.sub("", cleaned).strip()
    return cleaned or None


@dataclass(frozen=True)
class ExtractionRule:
    """One step of a field cascade."""

    field: str
    name: str
    priority: int
    extract: Callable[[ReceiptText], Any]


def cascade(
    field: str, *steps: tuple[str, Callable[[ReceiptText], Any]]
) -> tuple[ExtractionRule, ...]:
    """Build a cascade whose priorities follow the order of ``steps``."""
    return tuple(
        ExtractionRule(field=field, name=name, priority=(i + 1) * 10, extract=fn)
        for i, (name, fn) in enumerate(steps)
    )


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def run_cascade(
    rules: Sequence[ExtractionRule], text: ReceiptText
) -> tuple[Any, ExtractionRule | None]:
    """Apply rules in priority order and return the first non-empty value.

    Args:
        rules: Cascade for a single field.
        text: Receipt text to extract from.

    Returns:
        Tuple of (value, winning rule), or ``(None, None)`` if nothing matched.
    """
    for rule in sorted(rules, key=lambda r: r.priority):
        value = rule.extract(text)
        if not _is_empty(value):
            logger.debug("Field %s matched by rule %s", rule.field, rule.name)
            return value, rule
    return None, None
