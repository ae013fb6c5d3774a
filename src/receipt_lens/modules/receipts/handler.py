from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any, Callable

from receipt_lens.core.config import settings
from receipt_lens.core.logging import (
    document_context,
    get_logger,
    log_event,
    log_exception,
    request_context,
)
from receipt_lens.modules.extraction.models import (
    DocumentReference,
    ErrorKind,
    Failure,
    decode_object_key,
)
from receipt_lens.modules.extraction.service import ReceiptPipeline, build_pipeline
from receipt_lens.modules.receipts.schemas import (
    ExpenseRecordOut,
    FileOut,
    ReceiptResponseBody,
)

logger = get_logger(__name__)

MESSAGE_PROCESSED = "Receipt processed successfully"
MESSAGE_NOT_PROCESSED = "Receipt could not be processed"
MESSAGE_ERROR = "Error processing receipt"


class InvalidEventError(ValueError):
    pass


def cors_headers() -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "Access-Control-Allow-Origin": settings.cors_allow_origin,
        "Access-Control-Allow-Headers": "Content-Type",
        "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    }


def utc_timestamp() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class InvocationResponse:
    status_code: int
    body: dict[str, Any]
    headers: dict[str, str] = field(default_factory=cors_headers)

    def to_lambda(self) -> dict[str, Any]:
        return {
            "statusCode": self.status_code,
            "headers": dict(self.headers),
            "body": json.dumps(self.body),
        }


def parse_s3_event(event: Any) -> DocumentReference:
    """Read the first S3 record of a notification event. Further records are ignored."""
    records = event.get("Records") if isinstance(event, dict) else None
    if not isinstance(records, list) or not records:
        raise InvalidEventError("Invalid S3 event structure")
    first = records[0]
    s3 = first.get("s3") if isinstance(first, dict) else None
    if not isinstance(s3, dict):
        raise InvalidEventError("Invalid S3 event structure")

    bucket = (s3.get("bucket") or {}).get("name")
    obj = s3.get("object") or {}
    raw_key = obj.get("key")
    if not isinstance(bucket, str) or not bucket:
        raise InvalidEventError("Invalid S3 event structure: missing bucket name")
    if not isinstance(raw_key, str) or not raw_key:
        raise InvalidEventError("Invalid S3 event structure: missing object key")

    size = obj.get("size")
    if isinstance(size, bool) or not isinstance(size, int):
        size = None
    return DocumentReference(bucket=bucket, key=decode_object_key(raw_key), size=size)


def error_response(
    message: str, *, timestamp: str, kind: ErrorKind | None = ErrorKind.INVALID_EVENT
) -> InvocationResponse:
    body = ReceiptResponseBody(
        message=MESSAGE_ERROR,
        timestamp=timestamp,
        success=False,
        error=message,
        error_kind=kind.value if kind else None,
    )
    return InvocationResponse(status_code=500, body=body.to_json_dict())


class ReceiptEventHandler:
    def __init__(
        self, pipeline: ReceiptPipeline, *, clock: Callable[[], str] = utc_timestamp
    ) -> None:
        self._pipeline = pipeline
        self._clock = clock

    @property
    def pipeline(self) -> ReceiptPipeline:
        return self._pipeline

    def handle(self, event: Any) -> InvocationResponse:
        try:
            reference = parse_s3_event(event)
        except InvalidEventError as e:
            log_event(logger, "receipt.event.invalid", error=str(e))
            return error_response(str(e), timestamp=self._clock())

        with document_context(reference.key):
            return self._respond(event, reference)

    def _respond(self, event: dict, reference: DocumentReference) -> InvocationResponse:
        log_event(
            logger,
            "receipt.event.received",
            bucket=reference.bucket,
            storage_key=reference.key,
            byte_size=reference.size,
            record_count=len(event.get("Records") or []),
        )

        try:
            outcome = self._pipeline.process(reference)
        except Exception as e:  # noqa: BLE001
            log_exception(logger, "receipt.event.error", storage_key=reference.key)
            return error_response(
                str(e) or type(e).__name__, timestamp=self._clock(), kind=None
            )

        file_out = FileOut(bucket=reference.bucket, key=reference.key, size=reference.size)
        if isinstance(outcome, Failure):
            body = ReceiptResponseBody(
                message=MESSAGE_NOT_PROCESSED,
                file=file_out,
                timestamp=self._clock(),
                success=False,
                error=outcome.message,
                error_kind=outcome.kind.value,
                details=outcome.details,
            )
        else:
            body = ReceiptResponseBody(
                message=MESSAGE_PROCESSED,
                file=file_out,
                timestamp=self._clock(),
                success=True,
                data=ExpenseRecordOut.from_record(
                    outcome.record, raw_response=outcome.raw_response
                ),
            )
        return InvocationResponse(status_code=200, body=body.to_json_dict())


@lru_cache(maxsize=1)
def default_handler() -> ReceiptEventHandler:
    return ReceiptEventHandler(build_pipeline())


def lambda_handler(event: Any, context: Any = None) -> dict[str, Any]:
    with request_context(getattr(context, "aws_request_id", None)):
        try:
            handler = default_handler()
        except Exception as e:  # noqa: BLE001
            log_exception(logger, "receipt.lambda.init_error")
            return error_response(str(e), timestamp=utc_timestamp(), kind=None).to_lambda()
        response = handler.handle(event).to_lambda()
        log_event(logger, "receipt.lambda.response", status_code=response["statusCode"])
        return response
