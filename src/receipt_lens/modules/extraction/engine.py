from __future__ import annotations

import time
import traceback
from dataclasses import dataclass, field
from typing import Any, Protocol, Union

from botocore.exceptions import ClientError

from receipt_lens.core.logging import get_logger, log_event, monotonic_ms
from receipt_lens.core.storage import ObjectStorage
from receipt_lens.modules.extraction.models import (
    DetectedField,
    DocumentReference,
    RawExtractionDocument,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class EngineSuccess:
    documents: tuple[RawExtractionDocument, ...]
    raw_response: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    ok = True


@dataclass(frozen=True)
class EngineFailure:
    message: str
    details: str | None = None
    error_code: str | None = None

    ok = False


EngineResult = Union[EngineSuccess, EngineFailure]


class ExpenseAnalysisEngine(Protocol):
    def analyze(self, reference: DocumentReference) -> EngineResult: ...


def _detected_field(raw: dict[str, Any]) -> DetectedField:
    # Fields without a type or value still count towards the confidence average.
    field_type = (raw.get("Type") or {}).get("Text")
    value = raw.get("ValueDetection") or {}
    confidence = value.get("Confidence") or 0
    if not field_type or not value:
        return DetectedField(field_type="", text="", confidence=float(confidence))
    return DetectedField(
        field_type=str(field_type),
        text=str(value.get("Text") or ""),
        confidence=float(confidence),
    )


def parse_expense_document(raw: dict[str, Any]) -> RawExtractionDocument:
    summary = tuple(_detected_field(f) for f in raw.get("SummaryFields") or [])
    groups = []
    for group in raw.get("LineItemGroups") or []:
        items = []
        for item in group.get("LineItems") or []:
            items.append(
                tuple(_detected_field(f) for f in item.get("LineItemExpenseFields") or [])
            )
        groups.append(tuple(items))
    return RawExtractionDocument(summary_fields=summary, line_item_groups=tuple(groups))


def parse_analyze_expense_response(response: dict[str, Any]) -> EngineSuccess:
    documents = tuple(parse_expense_document(d) for d in response.get("ExpenseDocuments") or [])
    raw = {k: v for k, v in response.items() if k != "ResponseMetadata"}
    return EngineSuccess(documents=documents, raw_response=raw)


def _client_error_code(error: Exception) -> str | None:
    if isinstance(error, ClientError):
        return (error.response.get("Error") or {}).get("Code")
    return None


class TextractExpenseEngine:
    """
    Runs Textract ``AnalyzeExpense`` on one stored document.

    With ``document_source="s3_object"`` Textract reads the object straight from S3.
    With ``"bytes"`` the document is fetched through ``storage`` and sent inline,
    which is what the local storage backend needs.
    """

    def __init__(
        self,
        client,
        *,
        document_source: str = "s3_object",
        storage: ObjectStorage | None = None,
    ) -> None:
        if document_source == "bytes" and storage is None:
            raise ValueError("document_source='bytes' requires a storage backend")
        self._client = client
        self._document_source = document_source
        self._storage = storage

    def _document_param(self, reference: DocumentReference) -> dict[str, Any]:
        if self._document_source == "bytes":
            body = self._storage.get(bucket=reference.bucket, key=reference.key)
            return {"Bytes": body}
        return {"S3Object": {"Bucket": reference.bucket, "Name": reference.key}}

    def analyze(self, reference: DocumentReference) -> EngineResult:
        start = time.monotonic()
        try:
            response = self._client.analyze_expense(Document=self._document_param(reference))
            # A response we cannot read is as much an engine failure as a refused call.
            result = parse_analyze_expense_response(response)
        except Exception as e:  # noqa: BLE001
            failure = EngineFailure(
                message=str(e) or type(e).__name__,
                details="".join(traceback.format_exception(e)),
                error_code=_client_error_code(e),
            )
            log_event(
                logger,
                "textract.analyze.failure",
                bucket=reference.bucket,
                storage_key=reference.key,
                document_source=self._document_source,
                error_type=type(e).__name__,
                error_code=failure.error_code,
                error=failure.message,
                duration_ms=monotonic_ms(start),
            )
            return failure

        log_event(
            logger,
            "textract.analyze.success",
            bucket=reference.bucket,
            storage_key=reference.key,
            document_source=self._document_source,
            expense_documents=len(result.documents),
            pages=(response.get("DocumentMetadata") or {}).get("Pages"),
            duration_ms=monotonic_ms(start),
        )
        return result
