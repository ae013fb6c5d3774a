from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from receipt_lens.modules.extraction.models import (
    Category,
    ExpenseRecord,
    LineItem,
    LineItemFields,
    RawExtractionDocument,
)

FIELD_TOTAL = "TOTAL"
FIELD_VENDOR_NAME = "VENDOR_NAME"
FIELD_RECEIPT_DATE = "INVOICE_RECEIPT_DATE"
FIELD_ITEM = "ITEM"
FIELD_PRICE = "PRICE"

MAJOR_PURCHASE_THRESHOLD = Decimal("500")

# Evaluated top to bottom; the first rule whose keyword appears in the merchant wins.
CATEGORY_RULES: tuple[tuple[tuple[str, ...], Category], ...] = (
    (("uber", "lyft", "taxi"), Category.TRANSPORTATION),
    (
        ("restaurant", "cafe", "food", "pizza", "burger", "starbucks"),
        Category.FOOD_AND_DINING,
    ),
    (("hotel", "airbnb", "booking"), Category.TRAVEL_AND_LODGING),
    (("office", "supplies", "staples"), Category.OFFICE_SUPPLIES),
    (("gas", "fuel", "shell", "exxon", "bp"), Category.FUEL),
)

_CENTS = Decimal("0.01")
_NON_AMOUNT_CHARS = re.compile(r"[^0-9.]")
_LEADING_NUMBER = re.compile(r"\d+(?:\.\d*)?|\.\d+")


def parse_amount(text: str | None) -> Decimal:
    """
    Parse receipt money text into a two-decimal amount.

    Anything that is not a digit or a dot is dropped first, so currency symbols,
    codes and thousands separators disappear. The longest leading number of what
    is left is used ("12.45.6" -> 12.45). Unparseable text yields 0.
    """
    cleaned = _NON_AMOUNT_CHARS.sub("", text or "")
    m = _LEADING_NUMBER.match(cleaned)
    if not m:
        return Decimal("0.00")
    try:
        return Decimal(m.group(0)).quantize(_CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return Decimal("0.00")


def categorize(merchant: str, total: Decimal) -> Category:
    name = (merchant or "").lower()
    for keywords, category in CATEGORY_RULES:
        if any(k in name for k in keywords):
            return category
    if total > MAJOR_PURCHASE_THRESHOLD:
        return Category.MAJOR_PURCHASE
    return Category.GENERAL


def aggregate_confidence(doc: RawExtractionDocument) -> int:
    if not doc.summary_fields:
        return 0
    mean = sum(Decimal(str(f.confidence or 0)) for f in doc.summary_fields) / len(
        doc.summary_fields
    )
    return int(mean.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _line_item(fields: LineItemFields) -> LineItem | None:
    name = ""
    price = Decimal("0.00")
    for f in fields:
        if f.field_type == FIELD_ITEM:
            name = f.text
        elif f.field_type == FIELD_PRICE:
            price = parse_amount(f.text)
    if not name:
        return None
    return LineItem(name=name, price=price)


def extract_line_items(doc: RawExtractionDocument) -> tuple[LineItem, ...]:
    items: list[LineItem] = []
    for group in doc.line_item_groups:
        for fields in group:
            item = _line_item(fields)
            if item is not None:
                items.append(item)
    return tuple(items)


def normalize(doc: RawExtractionDocument) -> ExpenseRecord:
    total = Decimal("0.00")
    merchant = ""
    date = ""
    # Duplicate field types: the last one seen wins.
    for f in doc.summary_fields:
        if f.field_type == FIELD_TOTAL:
            total = parse_amount(f.text)
        elif f.field_type == FIELD_VENDOR_NAME:
            merchant = f.text
        elif f.field_type == FIELD_RECEIPT_DATE:
            date = f.text

    return ExpenseRecord(
        merchant=merchant,
        total=total,
        date=date,
        category=categorize(merchant, total),
        items=extract_line_items(doc),
        confidence=aggregate_confidence(doc),
    )
