from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Union
from urllib.parse import unquote_plus


class Category(str, enum.Enum):
    TRANSPORTATION = "Transportation"
    FOOD_AND_DINING = "Food & Dining"
    TRAVEL_AND_LODGING = "Travel & Lodging"
    OFFICE_SUPPLIES = "Office Supplies"
    FUEL = "Fuel"
    MAJOR_PURCHASE = "Major Purchase"
    GENERAL = "General"


class ErrorKind(str, enum.Enum):
    INVALID_EVENT = "InvalidEvent"
    UNSUPPORTED_FORMAT = "UnsupportedFormat"
    ENGINE_ERROR = "EngineError"
    NO_EXPENSE_DATA_FOUND = "NoExpenseDataFound"
    NORMALIZATION_ERROR = "NormalizationError"


@dataclass(frozen=True)
class DetectedField:
    field_type: str
    text: str
    confidence: float = 0.0


LineItemFields = tuple[DetectedField, ...]


@dataclass(frozen=True)
class RawExtractionDocument:
    summary_fields: tuple[DetectedField, ...] = ()
    line_item_groups: tuple[tuple[LineItemFields, ...], ...] = ()


@dataclass(frozen=True)
class LineItem:
    name: str
    price: Decimal


@dataclass(frozen=True)
class ExpenseRecord:
    merchant: str
    total: Decimal
    date: str
    category: Category
    items: tuple[LineItem, ...]
    confidence: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "merchant": self.merchant,
            "total": float(self.total),
            "date": self.date,
            "category": self.category.value,
            "items": [{"name": i.name, "price": float(i.price)} for i in self.items],
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class DocumentReference:
    bucket: str
    key: str
    size: int | None = None

    @property
    def extension(self) -> str:
        # Everything from the last "." of the key, so "receipts/scan" has no extension.
        name = self.key.rsplit("/", 1)[-1]
        idx = name.rfind(".")
        return name[idx:].lower() if idx >= 0 else ""


def decode_object_key(raw_key: str) -> str:
    """S3 event keys are form-encoded: ``+`` is a space and ``%XX`` an escaped byte."""
    return unquote_plus(raw_key)


@dataclass(frozen=True)
class Success:
    record: ExpenseRecord
    raw_response: dict[str, Any] | None = field(default=None, compare=False, repr=False)

    ok = True


@dataclass(frozen=True)
class Failure:
    kind: ErrorKind
    message: str
    details: str | None = None

    ok = False


ExtractionOutcome = Union[Success, Failure]
