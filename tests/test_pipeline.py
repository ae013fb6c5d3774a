from __future__ import annotations

from decimal import Decimal

import pytest

from receipt_lens.core.config import Settings
from receipt_lens.modules.extraction import service as extraction_service
from receipt_lens.modules.extraction.adapter import ExtractionAdapter
from receipt_lens.modules.extraction.models import (
    Category,
    DocumentReference,
    ErrorKind,
    Failure,
    Success,
)
from receipt_lens.modules.extraction.service import ReceiptPipeline, build_pipeline


def test_starbucks_receipt_end_to_end(fake_textract, starbucks_response):
    client = fake_textract(response=starbucks_response)
    pipeline = build_pipeline(Settings(), client=client)

    outcome = pipeline.process(DocumentReference(bucket="b", key="receipts/latte.jpg", size=2048))

    assert isinstance(outcome, Success)
    record = outcome.record
    assert record.merchant == "STARBUCKS COFFEE"
    assert record.total == Decimal("12.45")
    assert record.date == "2024-06-24"
    assert record.category == Category.FOOD_AND_DINING
    assert [(i.name, i.price) for i in record.items] == [
        ("GRANDE LATTE", Decimal("5.95")),
        ("BLUEBERRY MUFFIN", Decimal("3.25")),
        ("TAX", Decimal("0.75")),
    ]
    assert record.confidence == 92
    assert outcome.raw_response is None


def test_raw_response_is_attached_when_enabled(fake_textract, starbucks_response):
    client = fake_textract(response=starbucks_response)
    pipeline = build_pipeline(Settings(include_raw_response=True), client=client)

    outcome = pipeline.process(DocumentReference(bucket="b", key="r.pdf"))

    assert isinstance(outcome, Success)
    assert outcome.raw_response["ExpenseDocuments"] == starbucks_response["ExpenseDocuments"]


def test_configured_formats_reach_the_adapter(fake_textract):
    pipeline = build_pipeline(Settings(supported_formats="pdf, .PNG"), client=fake_textract())
    assert pipeline.adapter.supported_formats == (".pdf", ".png")


def test_empty_document_yields_no_expense_data(fake_textract):
    pipeline = build_pipeline(Settings(), client=fake_textract(response={"ExpenseDocuments": []}))

    outcome = pipeline.process(DocumentReference(bucket="b", key="blank.pdf"))

    assert outcome == Failure(
        kind=ErrorKind.NO_EXPENSE_DATA_FOUND, message="No expense data found in document"
    )


def test_unexpected_normalizer_error_becomes_failure(monkeypatch, fake_textract, starbucks_response):
    def _boom(_doc):
        raise ValueError("bad field")

    monkeypatch.setattr(extraction_service, "normalize", _boom)
    pipeline = build_pipeline(Settings(), client=fake_textract(response=starbucks_response))

    outcome = pipeline.process(DocumentReference(bucket="b", key="r.pdf"))

    assert isinstance(outcome, Failure)
    assert outcome.kind == ErrorKind.NORMALIZATION_ERROR
    assert outcome.message == "bad field"


def test_cancellation_propagates_and_skips_normalizer(monkeypatch, fake_textract):
    calls: list[str] = []
    monkeypatch.setattr(extraction_service, "normalize", lambda _doc: calls.append("normalize"))
    pipeline = build_pipeline(Settings(), client=fake_textract(error=KeyboardInterrupt()))

    with pytest.raises(KeyboardInterrupt):
        pipeline.process(DocumentReference(bucket="b", key="r.pdf"))
    assert calls == []


def test_bytes_source_requires_storage(fake_textract):
    from receipt_lens.modules.extraction.engine import TextractExpenseEngine

    with pytest.raises(ValueError):
        TextractExpenseEngine(fake_textract(), document_source="bytes")


class _UnavailableEngine:
    def analyze(self, reference):
        raise RuntimeError("engine down")


def test_engine_exception_becomes_engine_error_failure():
    pipeline = ReceiptPipeline(ExtractionAdapter(_UnavailableEngine()))

    outcome = pipeline.process(DocumentReference(bucket="b", key="r.pdf"))

    assert isinstance(outcome, Failure)
    assert outcome.kind == ErrorKind.ENGINE_ERROR
    assert outcome.message == "engine down"
    assert "RuntimeError" in outcome.details


def test_engine_interrupt_still_propagates():
    class _Interrupted:
        def analyze(self, reference):
            raise KeyboardInterrupt

    pipeline = ReceiptPipeline(ExtractionAdapter(_Interrupted()))

    with pytest.raises(KeyboardInterrupt):
        pipeline.process(DocumentReference(bucket="b", key="r.pdf"))
