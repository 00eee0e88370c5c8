"""Cascading field extraction from receipt OCR text.

Covers bank transfer slips (Commercial Bank of Ethiopia and peers),
mobile-money confirmations (Telebirr, M-Pesa) and generic retail receipts.
Each field has its own ordered cascade in ``FIELD_CASCADES``; a miss yields
``None`` or the documented default, never an exception.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType
from zoneinfo import ZoneInfo

from receipt_ocr.schemas import Currency, ReceiptStatus, UserContext
from receipt_ocr.utils.config import ExtractionConfig
from receipt_ocr.utils.logger import get_logger

from .normalizers import is_valid_amount, parse_amount, parse_date
from .rules import ExtractionRule, ReceiptText, cascade, clean_text, run_cascade

logger = get_logger(__name__)

INVOICE_MIN_LENGTH = 5
UNKNOWN_CHANNEL = "Unknown"

_FLAGS = re.IGNORECASE


def _labeled(labels: str) -> re.Pattern[str]:
    """``Label: value`` / ``Label value`` on a single line."""
    return re.compile(rf"\b(?:{labels})\b(?:[ \t]*[:#][ \t]*|[ \t]+)([^\n]*\S)", _FLAGS)


def _first_group(pattern: re.Pattern[str]) -> Callable[[ReceiptText], str | None]:
    def extract(text: ReceiptText) -> str | None:
        match = text.search(pattern)
        return clean_text(match.group(1)) if match else None

    return extract


def _keyword_table(
    table: tuple[tuple[re.Pattern[str], str], ...],
) -> Callable[[ReceiptText], str | None]:
    def extract(text: ReceiptText) -> str | None:
        for pattern, value in table:
            if text.search(pattern):
                return value
        return None

    return extract


# Merchant

_MERCHANT_LABEL_RE = _labeled(r"merchant|vendor|store|shop|payee|paid\s+to")
_NOT_MERCHANT_RES = (
    re.compile(r"^\d+[/-]\d+"),
    re.compile(r"^\$?\d+\.?\d*$"),
    re.compile(r"^total", _FLAGS),
    re.compile(
        r"^(?:payment|account|payer|date|reference|reason|commission|amount)", _FLAGS
    ),
)


def _merchant_from_receiver(text: ReceiptText) -> str | None:
    return clean_text(text.find_field_value(("receiver", "payee", "beneficiary")))


def _merchant_from_first_line(text: ReceiptText) -> str | None:
    for line in text.lines:
        if len(line) <= 3:
            continue
        if any(p.search(line) for p in _NOT_MERCHANT_RES):
            continue
        return clean_text(line)
    return None


MERCHANT_RULES = cascade(
    "merchant_name",
    ("receiver_label", _merchant_from_receiver),
    ("merchant_label", _first_group(_MERCHANT_LABEL_RE)),
    ("first_plausible_line", _merchant_from_first_line),
)


# Payment reason

_REASON_SERVICE_RE = re.compile(
    r"reason\s*/?\s*type\s+of\s+service[ \t]*[:\-]?[ \t]*([^\n]*\S)", _FLAGS
)
_REASON_LABEL_RE = _labeled(r"description|memo|note|purpose|payment\s+for|paid\s+for|for")
_PAYMENT_PHRASE_RE = re.compile(r"^[A-Za-z][A-Za-z &'-]*\bpayment\b[A-Za-z &'-]*$", _FLAGS)
_REASON_KEYWORDS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"fuel|\bgas(?:oline)?\b|petrol", _FLAGS), "Fuel Payment"),
    (re.compile(r"food|restaurant|dining|meal", _FLAGS), "Food & Dining"),
    (re.compile(r"transport|taxi|uber|lyft|\bride\b", _FLAGS), "Transportation"),
    (re.compile(r"grocery|supermarket|\bstore\b", _FLAGS), "Groceries"),
    (re.compile(r"hotel|accommodation|lodging", _FLAGS), "Accommodation"),
    (re.compile(r"office|supplies|equipment", _FLAGS), "Office Supplies"),
    (re.compile(r"payment\s+done\s+via\s+mobile", _FLAGS), "Mobile Payment"),
    (re.compile(r"mobile\s+banking", _FLAGS), "Mobile Banking Transfer"),
)


def _reason_from_label(text: ReceiptText) -> str | None:
    return clean_text(text.find_field_value(("reason", "purpose"), partial=True))


def _reason_from_payment_line(text: ReceiptText) -> str | None:
    for line in text.lines:
        if _PAYMENT_PHRASE_RE.match(line):
            return clean_text(line)
    return None


PAYMENT_REASON_RULES = cascade(
    "payment_reason",
    ("type_of_service", _first_group(_REASON_SERVICE_RE)),
    ("reason_label", _reason_from_label),
    ("description_label", _first_group(_REASON_LABEL_RE)),
    ("payment_phrase_line", _reason_from_payment_line),
    ("payment_type_keyword", _keyword_table(_REASON_KEYWORDS)),
)


# Amount

# A number never starts right after a sign or inside another number.
_NUMBER = r"(?<![\-\d.,])(\d[\d,]*(?:\.\d{1,2})?)"
_CURRENCY_WORD = r"(?:ETB|USD|EUR|GBP|Birr)"
_AMOUNT_LABEL_RE = re.compile(
    r"\b(?:total|amount|price|paid|sum|balance|charge)\b"
    r"[ \t]*(?::|-(?=[ \t]))?[ \t]*"
    rf"(?:{_CURRENCY_WORD}|\$)?[ \t]*{_NUMBER}",
    _FLAGS,
)
_CURRENCY_ADJACENT_RES = (
    re.compile(rf"(?<!-)\b{_CURRENCY_WORD}[ \t]*{_NUMBER}", _FLAGS),
    re.compile(rf"(?<!-)\$[ \t]*{_NUMBER}"),
    re.compile(rf"{_NUMBER}[ \t]*{_CURRENCY_WORD}\b", _FLAGS),
)
_MONETARY_TOKEN_RE = re.compile(r"(?<![\d.,\-])(?<!-\$)(\d[\d,]*\.\d{2})(?![\d.])")


def _amount_from_labels(*aliases: str) -> Callable[[ReceiptText], Decimal | None]:
    def extract(text: ReceiptText) -> Decimal | None:
        return parse_amount(text.find_field_value(aliases))

    return extract


def _first_valid_amount(
    patterns: tuple[re.Pattern[str], ...],
) -> Callable[[ReceiptText], Decimal | None]:
    def extract(text: ReceiptText) -> Decimal | None:
        for pattern in patterns:
            for match in pattern.finditer(text.raw):
                amount = parse_amount(match.group(1))
                if amount is not None:
                    return amount
        return None

    return extract


def _largest_monetary_token(text: ReceiptText) -> Decimal | None:
    amounts = [parse_amount(m) for m in _MONETARY_TOKEN_RE.findall(text.raw)]
    valid = [a for a in amounts if is_valid_amount(a)]
    return max(valid) if valid else None


AMOUNT_RULES = cascade(
    "amount",
    (
        "transferred_amount_label",
        _amount_from_labels("transferred amount", "transfer amount", "amount transferred"),
    ),
    ("total_debited_label", _amount_from_labels("total amount debited", "total amount")),
    ("amount_label", _first_valid_amount((_AMOUNT_LABEL_RE,))),
    ("currency_adjacent", _first_valid_amount(_CURRENCY_ADJACENT_RES)),
    ("largest_monetary_token", _largest_monetary_token),
)


# Currency

_CURRENCY_CODE_RE = re.compile(r"\b(ETB|USD|EUR|GBP|Birr)\b", _FLAGS)
_ETHIOPIAN_BANK_RE = re.compile(
    r"commercial\s+bank\s+of\s+ethiopia|\bcbe\b|\bawash\b|\bdashen\b|\babyssinia\b",
    _FLAGS,
)


def _currency_from_code(text: ReceiptText) -> Currency | None:
    match = text.search(_CURRENCY_CODE_RE)
    if not match:
        return None
    code = match.group(1).upper()
    return Currency.ETB if code == "BIRR" else Currency(code)


def _currency_from_bank(text: ReceiptText) -> Currency | None:
    return Currency.ETB if text.search(_ETHIOPIAN_BANK_RE) else None


CURRENCY_RULES = cascade(
    "currency",
    ("currency_code", _currency_from_code),
    ("bank_home_currency", _currency_from_bank),
)


# Payment date

_MONTHS = (
    r"Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|June?|July?|Aug(?:ust)?"
    r"|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?"
)
_DATE_LABELS = (
    "date & time",
    "date and time",
    "payment date",
    "transaction date",
    "transaction time",
    "date",
)
_COMPOSITE_DATE_RE = re.compile(
    r"(\d{1,2}/\d{1,2}/\d{4}),?\s*(\d{1,2}:\d{2}:\d{2}\s*(?:AM|PM)?)", _FLAGS
)
_PAREN_DATE_RE = re.compile(r"\(\s*(\d{2}-\d{2}-\d{4}\s+\d{2}:\d{2}:\d{2})")
_ISO_DATE_RE = re.compile(
    r"(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:?\d{2})?)"
)
_DAY_MONTH_NAME_RE = re.compile(
    rf"\b(\d{{1,2}})\s+({_MONTHS})\.?\s+(\d{{4}}|\d{{2}})\b", _FLAGS
)
_LABELED_BARE_DATE_RE = re.compile(
    r"\b(?:date|on|dated)[:\s]+(\d{1,2}[/-]\d{1,2}[/-]\d{2,4}|\d{4}[/-]\d{1,2}[/-]\d{1,2})",
    _FLAGS,
)
_BARE_DATE_TIME_RE = re.compile(r"\b(\d{2}-\d{2}-\d{4}\s+\d{2}:\d{2}:\d{2})\b")
_BARE_DATE_RE = re.compile(
    r"\b(\d{1,2}[/-]\d{1,2}[/-]\d{2,4}|\d{4}[/-]\d{1,2}[/-]\d{1,2})\b"
)


def _date_from_labels(text: ReceiptText) -> datetime | None:
    for alias in _DATE_LABELS:
        parsed = parse_date(text.find_field_value((alias,)))
        if parsed is not None:
            return parsed
    return None


def _date_from_pattern(pattern: re.Pattern[str]) -> Callable[[ReceiptText], datetime | None]:
    def extract(text: ReceiptText) -> datetime | None:
        for match in pattern.finditer(text.raw):
            candidate = " ".join(g for g in match.groups() if g)
            parsed = parse_date(candidate)
            if parsed is not None:
                return parsed
        return None

    return extract


def _date_from_month_name(text: ReceiptText) -> datetime | None:
    # "Sept." and "September" both parse as the "%b" abbreviation
    for match in _DAY_MONTH_NAME_RE.finditer(text.raw):
        day, month, year = match.groups()
        parsed = parse_date(f"{day} {month[:3]} {year}")
        if parsed is not None:
            return parsed
    return None


DATE_RULES = cascade(
    "payment_date",
    ("date_label", _date_from_labels),
    ("bank_composite", _date_from_pattern(_COMPOSITE_DATE_RE)),
    ("parenthesized_date_time", _date_from_pattern(_PAREN_DATE_RE)),
    ("iso8601", _date_from_pattern(_ISO_DATE_RE)),
    ("day_month_name", _date_from_month_name),
    ("labeled_bare_date", _date_from_pattern(_LABELED_BARE_DATE_RE)),
    ("bare_date_time", _date_from_pattern(_BARE_DATE_TIME_RE)),
    ("bare_date", _date_from_pattern(_BARE_DATE_RE)),
)


# Payer

_PAYER_LABEL_RE = _labeled(r"payer|from|sender|paid\s+by")
_CUSTOMER_LABEL_RE = _labeled(r"customer\s+name|customer|client")


def _payer_from_labels(text: ReceiptText) -> str | None:
    return clean_text(
        text.find_field_value(("payer name", "sender name", "payer", "sender"))
    )


def _payer_from_customer(text: ReceiptText) -> str | None:
    return clean_text(text.find_field_value(("customer name",)))


PAYER_RULES = cascade(
    "payer_name",
    ("payer_label", _payer_from_labels),
    ("customer_name_label", _payer_from_customer),
    ("payer_pattern", _first_group(_PAYER_LABEL_RE)),
    ("customer_pattern", _first_group(_CUSTOMER_LABEL_RE)),
)


# Invoice number

_INVOICE_LABELS = (
    "reference no",
    "ref no",
    "vat invoice no",
    "vat invoice",
    "invoice no",
    "receipt no",
    "transaction id",
    "invoice",
)
_FT_CODE_RE = re.compile(r"\b(FT[A-Z0-9]{8,})\b", _FLAGS)
_INVOICE_KEYWORD_RE = re.compile(
    r"\b(?:invoice|receipt|transaction|ref(?:erence)?|order|confirmation)"
    r"(?:\s+(?:no|number|#))?[:\s#.]*([A-Z0-9]{6,})",
    _FLAGS,
)
_CODE_SHAPE_RE = re.compile(r"\b([A-Z]{2}\d{2}[A-Z0-9]{6,})\b")
_HASH_CODE_RE = re.compile(r"#\s*([A-Z0-9]{6,})", _FLAGS)


def _normalize_code(value: str | None) -> str | None:
    if not value:
        return None
    token = re.sub(r"[^A-Za-z0-9\-]", "", value.split()[0]).upper()
    if len(token) < INVOICE_MIN_LENGTH or not any(ch.isdigit() for ch in token):
        return None
    return token


def _invoice_from_labels(text: ReceiptText) -> str | None:
    for alias in _INVOICE_LABELS:
        code = _normalize_code(text.find_field_value((alias,)))
        if code:
            return code
    return None


def _invoice_from_pattern(pattern: re.Pattern[str]) -> Callable[[ReceiptText], str | None]:
    def extract(text: ReceiptText) -> str | None:
        for match in pattern.finditer(text.raw):
            code = _normalize_code(match.group(1))
            if code:
                return code
        return None

    return extract


INVOICE_RULES = cascade(
    "invoice_no",
    ("reference_label", _invoice_from_labels),
    ("ft_transaction_code", _invoice_from_pattern(_FT_CODE_RE)),
    ("invoice_keyword_code", _invoice_from_pattern(_INVOICE_KEYWORD_RE)),
    ("code_shape", _invoice_from_pattern(_CODE_SHAPE_RE)),
    ("hash_code", _invoice_from_pattern(_HASH_CODE_RE)),
)


# Status

_STATUS_WORDS = r"completed|pending|failed|success|approved|declined"
_STATUS_LABEL_RE = re.compile(rf"status[ \t]*[:\-]?[ \t]*({_STATUS_WORDS})\b", _FLAGS)
_STATUS_WORD_RE = re.compile(rf"\b({_STATUS_WORDS})\b", _FLAGS)
_BANK_RECEIPT_RE = re.compile(r"commercial\s+bank|\bcbe\b|vat\s+invoice", _FLAGS)


def _status_from_pattern(pattern: re.Pattern[str]) -> Callable[[ReceiptText], ReceiptStatus | None]:
    def extract(text: ReceiptText) -> ReceiptStatus | None:
        match = text.search(pattern)
        return ReceiptStatus(match.group(1).capitalize()) if match else None

    return extract


def _status_from_invoice(text: ReceiptText) -> ReceiptStatus | None:
    invoice, _ = run_cascade(INVOICE_RULES, text)
    return ReceiptStatus.COMPLETED if invoice else None


def _status_from_bank(text: ReceiptText) -> ReceiptStatus | None:
    return ReceiptStatus.COMPLETED if text.search(_BANK_RECEIPT_RE) else None


STATUS_RULES = cascade(
    "status",
    ("status_label", _status_from_pattern(_STATUS_LABEL_RE)),
    ("status_keyword", _status_from_pattern(_STATUS_WORD_RE)),
    ("has_invoice_number", _status_from_invoice),
    ("bank_receipt", _status_from_bank),
)


# Payment channel

_MOBILE_BANKING_RE = re.compile(r"via\s+mobile|mobile\s+banking", _FLAGS)
_CHANNEL_PHRASE_RE = _labeled(
    r"payment\s+(?:method|channel|via|through)|paid\s+(?:via|through|by)"
)
_CHANNEL_NAMES = {
    "api": "API",
    "mobile banking": "Mobile Banking",
    "app": "App",
    "mobile": "Mobile",
    "web": "Web",
    "pos": "POS",
    "terminal": "Terminal",
    "card": "Card",
    "cash": "Cash",
    "bank transfer": "Bank Transfer",
}
_CHANNEL_WORD_RE = re.compile(
    r"\b(API|Mobile\s+Banking|App|Mobile|Web|POS|Terminal|Card|Cash|Bank\s+Transfer)\b",
    _FLAGS,
)
_CHANNEL_PLATFORMS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"telebirr|m-pesa|mpesa", _FLAGS), "Mobile/App"),
    (re.compile(r"visa|mastercard|amex", _FLAGS), "Card"),
    (re.compile(r"\bcash\b", _FLAGS), "Cash"),
    (re.compile(r"bank|commercial|\bcbe\b", _FLAGS), "Bank Transfer"),
)


def _channel_mobile_banking(text: ReceiptText) -> str | None:
    return "Mobile Banking" if text.search(_MOBILE_BANKING_RE) else None


def _channel_from_label(text: ReceiptText) -> str | None:
    return clean_text(
        text.find_field_value(("payment method", "payment channel", "channel"))
    )


def _channel_from_word(text: ReceiptText) -> str | None:
    match = text.search(_CHANNEL_WORD_RE)
    if not match:
        return None
    key = re.sub(r"\s+", " ", match.group(1).lower())
    return _CHANNEL_NAMES[key]


CHANNEL_RULES = cascade(
    "payment_channel",
    ("via_mobile_phrase", _channel_mobile_banking),
    ("channel_label", _channel_from_label),
    ("paid_via_phrase", _first_group(_CHANNEL_PHRASE_RE)),
    ("channel_keyword", _channel_from_word),
    ("platform_keyword", _keyword_table(_CHANNEL_PLATFORMS)),
)


# Source

_INSTITUTIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        re.compile(r"commercial\s+bank\s+of\s+ethiopia", _FLAGS),
        "Commercial Bank of Ethiopia (CBE)",
    ),
)
_SOURCE_LABEL_RE = _labeled(r"source|platform|via|through")
_PLATFORM_NAMES = {
    "telebirr": "Telebirr",
    "m-pesa": "M-Pesa",
    "paypal": "PayPal",
    "stripe": "Stripe",
    "square": "Square",
    "bank transfer": "Bank Transfer",
}
_PLATFORM_WORD_RE = re.compile(
    r"\b(Telebirr|M-Pesa|PayPal|Stripe|Square|Bank\s+Transfer)\b", _FLAGS
)
_SOURCE_PLATFORMS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"telebirr", _FLAGS), "Telebirr"),
    (re.compile(r"m-pesa|mpesa", _FLAGS), "M-Pesa"),
    (re.compile(r"paypal", _FLAGS), "PayPal"),
    (re.compile(r"awash", _FLAGS), "Awash Bank"),
    (re.compile(r"dashen", _FLAGS), "Dashen Bank"),
    (re.compile(r"abyssinia", _FLAGS), "Abyssinia Bank"),
)


def _source_from_platform_word(text: ReceiptText) -> str | None:
    match = text.search(_PLATFORM_WORD_RE)
    if not match:
        return None
    return _PLATFORM_NAMES[re.sub(r"\s+", " ", match.group(1).lower())]


SOURCE_RULES = cascade(
    "source",
    ("known_institution", _keyword_table(_INSTITUTIONS)),
    ("source_label", _first_group(_SOURCE_LABEL_RE)),
    ("platform_name", _source_from_platform_word),
    ("platform_keyword", _keyword_table(_SOURCE_PLATFORMS)),
)


FIELD_CASCADES: MappingProxyType[str, tuple[ExtractionRule, ...]] = MappingProxyType(
    {
        "merchant_name": MERCHANT_RULES,
        "payment_reason": PAYMENT_REASON_RULES,
        "amount": AMOUNT_RULES,
        "currency": CURRENCY_RULES,
        "payment_date": DATE_RULES,
        "payer_name": PAYER_RULES,
        "status": STATUS_RULES,
        "payment_channel": CHANNEL_RULES,
        "invoice_no": INVOICE_RULES,
        "source": SOURCE_RULES,
    }
)


@dataclass(frozen=True)
class ExtractedFields:
    """Every extracted field, with defaults already applied."""

    merchant_name: str | None
    payment_reason: str | None
    amount: Decimal | None
    currency: Currency
    payment_date: datetime
    payer_name: str | None
    status: ReceiptStatus
    payment_channel: str | None
    invoice_no: str | None
    source: str | None


class FieldExtractor:
    """Runs the per-field cascades over receipt text.

    Args:
        config: Extraction configuration (default currency, timezone).
        clock: Returns "now"; used when no date can be found.
    """

    def __init__(
        self,
        config: ExtractionConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config or ExtractionConfig()
        self.tz = ZoneInfo(self.config.timezone) if self.config.timezone else None
        self.default_currency = Currency(self.config.default_currency.upper())
        self.clock = clock or self._now

    def _now(self) -> datetime:
        return datetime.now(self.tz).replace(microsecond=0)

    def extract(self, raw_text: str, user: UserContext | None = None) -> ExtractedFields:
        """Extract all fields from receipt text.

        Args:
            raw_text: Receipt text selected from OCR, or supplied directly.
            user: Owner of the receipt; their name is the payer fallback.

        Returns:
            Extracted fields with documented fallbacks for misses.
        """
        text = ReceiptText(raw_text)
        values = {
            name: run_cascade(rules, text)[0] for name, rules in FIELD_CASCADES.items()
        }

        payment_date = values["payment_date"]
        if payment_date is None:
            payment_date = self.clock()
            logger.warning("No date found in receipt text, defaulting to %s", payment_date)
        elif self.tz is not None and payment_date.tzinfo is None:
            payment_date = payment_date.replace(tzinfo=self.tz)

        payer = values["payer_name"] or (user.display_name if user else None)

        fields = ExtractedFields(
            merchant_name=values["merchant_name"],
            payment_reason=values["payment_reason"],
            amount=values["amount"],
            currency=values["currency"] or self.default_currency,
            payment_date=payment_date,
            payer_name=payer,
            status=values["status"] or ReceiptStatus.PENDING,
            payment_channel=values["payment_channel"] or UNKNOWN_CHANNEL,
            invoice_no=values["invoice_no"],
            source=values["source"],
        )
        logger.info(
            "Extracted fields: merchant=%r amount=%s %s invoice=%r",
            fields.merchant_name,
            fields.amount,
            fields.currency,
            fields.invoice_no,
        )
        return fields


def extract_amount(text: str) -> Decimal | None:
    """Return the receipt amount, or ``None``; never a non-positive value."""
    return run_cascade(AMOUNT_RULES, ReceiptText(text))[0]


def extract_merchant(text: str) -> str | None:
    """Return the merchant or receiver name, or ``None``."""
    return run_cascade(MERCHANT_RULES, ReceiptText(text))[0]


def extract_date(text: str) -> datetime | None:
    """Return the receipt date without the "now" fallback."""
    return run_cascade(DATE_RULES, ReceiptText(text))[0]
