from __future__ import annotations

import os
import shutil
from pathlib import Path

import pytest

# Set env before any receipt_lens imports (settings are created at import time).
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("LOCAL_STORAGE_PATH", ".tmp_storage_test")
os.environ.setdefault("AWS_REGION", "us-east-1")
os.environ.setdefault("UPLOAD_BUCKET", "receipt-uploads")


@pytest.fixture(autouse=True)
def _reset_storage_and_handler() -> None:
    import receipt_lens.core.storage as storage_mod
    from receipt_lens.modules.receipts.handler import default_handler

    storage_mod._storage = None
    default_handler.cache_clear()

    storage_path = Path(os.environ["LOCAL_STORAGE_PATH"])
    if storage_path.exists():
        shutil.rmtree(storage_path)

    yield

    default_handler.cache_clear()


def expense_field(field_type: str, text: str, confidence: float = 99.0) -> dict:
    return {
        "Type": {"Text": field_type, "Confidence": 99.0},
        "ValueDetection": {"Text": text, "Confidence": confidence},
    }


class FakeTextractClient:
    def __init__(self, response: dict | None = None, error: BaseException | None = None):
        self.response = response if response is not None else {"ExpenseDocuments": []}
        self.error = error
        self.calls: list[dict] = []

    def analyze_expense(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def fake_textract():
    return FakeTextractClient


@pytest.fixture
def starbucks_response() -> dict:
    return {
        "DocumentMetadata": {"Pages": 1},
        "ExpenseDocuments": [
            {
                "ExpenseIndex": 1,
                "SummaryFields": [
                    expense_field("TOTAL", "$12.45", 95.0),
                    expense_field("VENDOR_NAME", "STARBUCKS COFFEE", 90.0),
                    expense_field("INVOICE_RECEIPT_DATE", "2024-06-24", 90.0),
                ],
                "LineItemGroups": [
                    {
                        "LineItemGroupIndex": 1,
                        "LineItems": [
                            {
                                "LineItemExpenseFields": [
                                    expense_field("ITEM", "GRANDE LATTE"),
                                    expense_field("PRICE", "5.95"),
                                ]
                            },
                            {
                                "LineItemExpenseFields": [
                                    expense_field("ITEM", "BLUEBERRY MUFFIN"),
                                    expense_field("PRICE", "3.25"),
                                ]
                            },
                            {
                                "LineItemExpenseFields": [
                                    expense_field("ITEM", "TAX"),
                                    expense_field("PRICE", "0.75"),
                                ]
                            },
                        ],
                    }
                ],
            }
        ],
        "ResponseMetadata": {"HTTPStatusCode": 200},
    }


@pytest.fixture
def make_field():
    return expense_field
