from __future__ import annotations

import time
import traceback

from receipt_lens.core.aws import build_textract_client
from receipt_lens.core.config import Settings, settings
from receipt_lens.core.logging import get_logger, log_event, log_exception, monotonic_ms
from receipt_lens.core.storage import ObjectStorage, get_storage
from receipt_lens.modules.extraction.adapter import ExtractionAdapter
from receipt_lens.modules.extraction.engine import TextractExpenseEngine
from receipt_lens.modules.extraction.models import (
    DocumentReference,
    ErrorKind,
    ExtractionOutcome,
    Failure,
    Success,
)
from receipt_lens.modules.extraction.normalizer import normalize

logger = get_logger(__name__)


class ReceiptPipeline:
    """Adapter then normalizer, once per document. Holds no per-invocation state."""

    def __init__(self, adapter: ExtractionAdapter, *, include_raw_response: bool = False) -> None:
        self._adapter = adapter
        self._include_raw_response = include_raw_response

    @property
    def adapter(self) -> ExtractionAdapter:
        return self._adapter

    def process(self, reference: DocumentReference) -> ExtractionOutcome:
        start = time.monotonic()
        log_event(
            logger,
            "extraction.start",
            bucket=reference.bucket,
            storage_key=reference.key,
            byte_size=reference.size,
        )

        try:
            fetched = self._adapter.fetch(reference)
        except Exception as e:  # noqa: BLE001
            log_exception(
                logger,
                "extraction.fetch.error",
                bucket=reference.bucket,
                storage_key=reference.key,
            )
            fetched = Failure(
                kind=ErrorKind.ENGINE_ERROR,
                message=str(e) or type(e).__name__,
                details="".join(traceback.format_exception(e)),
            )
        if isinstance(fetched, Failure):
            log_event(
                logger,
                "extraction.finish",
                bucket=reference.bucket,
                storage_key=reference.key,
                status="failed",
                error_kind=fetched.kind.value,
                duration_ms=monotonic_ms(start),
            )
            return fetched

        try:
            record = normalize(fetched.document)
        except Exception as e:  # noqa: BLE001
            log_exception(
                logger,
                "extraction.normalize.error",
                bucket=reference.bucket,
                storage_key=reference.key,
            )
            return Failure(
                kind=ErrorKind.NORMALIZATION_ERROR,
                message=str(e) or type(e).__name__,
                details="".join(traceback.format_exception(e)),
            )

        log_event(
            logger,
            "extraction.finish",
            bucket=reference.bucket,
            storage_key=reference.key,
            status="processed",
            merchant=record.merchant or None,
            category=record.category.value,
            item_count=len(record.items),
            confidence=record.confidence,
            duration_ms=monotonic_ms(start),
        )
        return Success(
            record=record,
            raw_response=fetched.raw_response if self._include_raw_response else None,
        )


def build_pipeline(
    cfg: Settings | None = None,
    *,
    client=None,
    storage: ObjectStorage | None = None,
) -> ReceiptPipeline:
    cfg = cfg or settings
    if cfg.engine_document_source == "bytes" and storage is None:
        storage = get_storage()
    engine = TextractExpenseEngine(
        client or build_textract_client(cfg),
        document_source=cfg.engine_document_source,
        storage=storage,
    )
    adapter = ExtractionAdapter(engine, supported_formats=cfg.supported_format_list())
    return ReceiptPipeline(adapter, include_raw_response=cfg.include_raw_response)
