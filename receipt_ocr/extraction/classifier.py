"""Keyword-based spending category classification.

Groups are checked in order against the full receipt text and the first
group with a matching keyword decides the category.
"""

import re

from receipt_ocr.schemas import Category
from receipt_ocr.utils.logger import get_logger

logger = get_logger(__name__)


def _keywords(*words: str) -> re.Pattern[str]:
    return re.compile("|".join(words), re.IGNORECASE)


CATEGORY_RULES: tuple[tuple[Category, re.Pattern[str]], ...] = (
    (
        Category.FOOD,
        _keywords(
            "food", "restaurant", "grocery", "dining", "meal", "snack", "cafe",
            "coffee", "lunch", "dinner", "breakfast", "burger", "pizza",
            "kitchen", "bakery", "supermarket", "market",
        ),
    ),
    (
        Category.HOSPITAL,
        _keywords(
            "hospital", "medical", "clinic", "pharmacy", "doctor", "health",
            "medicine", "drug", "patient", "treatment",
        ),
    ),
    (
        Category.TRANSFER,
        _keywords(
            "transfer", "send", "receive", "remittance", "wire", "deposit",
            "withdrawal", "payer", "receiver", r"commercial\s+bank", r"\bcbe\b",
            r"payment\s+done\s+via",
        ),
    ),
    (
        Category.UTILITIES,
        _keywords(
            "electric", "water", "utility", "bill", "power", "energy", "telecom",
            "internet", "wifi", "phone", "airtime", "bundle", "package",
        ),
    ),
    (
        Category.FUEL,
        _keywords(
            "fuel", r"\bgas(?:oline)?\b", "petrol", "diesel", "benzene", "station",
            "shell", "exxon", r"\bbp\b", "total", r"\boil\b",
        ),
    ),
)


def classify(text: str | None) -> Category:
    """Assign a spending category to receipt text.

    Args:
        text: Full receipt text, or a short description.

    Returns:
        The first matching category, ``Category.OTHER`` when nothing matches
        or the text is blank.
    """
    if not text or not text.strip():
        return Category.OTHER

    for category, pattern in CATEGORY_RULES:
        if pattern.search(text):
            return category

    logger.info("No category matched for text: %r", text[:50])
    return Category.OTHER
