"""Data model for receipt parsing: inputs, the parsed record, and results."""

import mimetypes
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, field_serializer


class Currency(StrEnum):
    """Currencies a receipt amount can be reported in."""

    ETB = "ETB"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"


class ReceiptStatus(StrEnum):
    """Transaction status as printed on, or inferred from, a receipt."""

    COMPLETED = "Completed"
    PENDING = "Pending"
    FAILED = "Failed"
    SUCCESS = "Success"
    APPROVED = "Approved"
    DECLINED = "Declined"


class Category(StrEnum):
    """Closed set of spending categories."""

    FOOD = "Food"
    HOSPITAL = "Hospital"
    TRANSFER = "Transfer"
    UTILITIES = "Utilities"
    FUEL = "Fuel"
    OTHER = "Other"


class PipelineState(StrEnum):
    """Stages a single pipeline invocation moves through."""

    RECEIVED = "received"
    PREPROCESSED = "preprocessed"
    OCR_ATTEMPTED = "ocr_attempted"
    SCORED = "scored"
    EXTRACTED = "extracted"
    CLASSIFIED = "classified"
    DONE = "done"
    FAILED = "failed"


class FailureKind(StrEnum):
    """Why a pipeline invocation could not produce a receipt."""

    IMAGE_UNAVAILABLE = "image_unavailable"
    ENGINE_UNAVAILABLE = "engine_unavailable"
    NO_USABLE_TEXT = "no_usable_text"


SUCCESS_MESSAGE = "Receipt parsed successfully"

FAILURE_MESSAGES: dict[FailureKind, str] = {
    FailureKind.IMAGE_UNAVAILABLE: (
        "Could not read the receipt image. Please upload the photo again."
    ),
    FailureKind.ENGINE_UNAVAILABLE: (
        "Text recognition is currently unavailable. "
        "Please enter the transaction manually."
    ),
    FailureKind.NO_USABLE_TEXT: (
        "No text could be extracted from the image. Please try a clearer image."
    ),
}

OUTPUT_FIELDS: tuple[str, ...] = (
    "merchant_name",
    "payment_reason",
    "amount",
    "currency",
    "payment_date",
    "payer_name",
    "status",
    "payment_channel",
    "invoice_no",
    "source",
    "category_name",
    "raw_text",
)


@dataclass(frozen=True)
class RawImage:
    """An uploaded receipt image as received from the caller."""

    content: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path: Path) -> "RawImage":
        """Read an image file, guessing its content type from the extension."""
        content_type, _ = mimetypes.guess_type(path.name)
        return cls(
            content=path.read_bytes(),
            content_type=content_type or "application/octet-stream",
        )


@dataclass(frozen=True)
class UserContext:
    """The user who owns the receipt being parsed."""

    first_name: str | None = None
    last_name: str | None = None

    @property
    def display_name(self) -> str | None:
        name = " ".join(p for p in (self.first_name, self.last_name) if p).strip()
        return name or None


class ParsedReceipt(BaseModel):
    """Structured transaction record extracted from a receipt."""

    model_config = ConfigDict(frozen=True)

    merchant_name: str | None = None
    payment_reason: str | None = None
    amount: Decimal | None = None
    currency: Currency = Currency.ETB
    payment_date: datetime
    payer_name: str | None = None
    status: ReceiptStatus = ReceiptStatus.PENDING
    payment_channel: str | None = None
    invoice_no: str | None = None
    source: str | None = None
    category_name: Category = Category.OTHER
    raw_text: str

    @field_serializer("amount", when_used="json")
    def _serialize_amount(self, amount: Decimal | None) -> float | None:
        return float(amount) if amount is not None else None

    def to_dict(self) -> dict[str, Any]:
        """Return the output contract as JSON-compatible values."""
        return self.model_dump(mode="json")


@dataclass(frozen=True)
class PipelineResult:
    """Terminal outcome of one pipeline invocation."""

    state: PipelineState
    receipt: ParsedReceipt | None = None
    failure: FailureKind | None = None
    message: str = SUCCESS_MESSAGE

    @property
    def succeeded(self) -> bool:
        return self.state == PipelineState.DONE and self.receipt is not None

    @classmethod
    def done(cls, receipt: ParsedReceipt) -> "PipelineResult":
        return cls(state=PipelineState.DONE, receipt=receipt)

    @classmethod
    def failed(cls, failure: FailureKind) -> "PipelineResult":
        return cls(
            state=PipelineState.FAILED,
            failure=failure,
            message=FAILURE_MESSAGES[failure],
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the output contract plus ``message`` (and ``error`` on failure).

        Failed results keep every contract key, set to ``None``, so consumers
        can rely on a stable shape.
        """
        if self.receipt is not None:
            payload = self.receipt.to_dict()
        else:
            payload = dict.fromkeys(OUTPUT_FIELDS)
        payload["message"] = self.message
        if self.failure is not None:
            payload["error"] = self.failure.value
        return payload
