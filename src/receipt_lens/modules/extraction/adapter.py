from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from receipt_lens.core.logging import get_logger, log_event
from receipt_lens.modules.extraction.engine import EngineFailure, ExpenseAnalysisEngine
from receipt_lens.modules.extraction.models import (
    DocumentReference,
    ErrorKind,
    Failure,
    RawExtractionDocument,
)

logger = get_logger(__name__)

DEFAULT_SUPPORTED_FORMATS: tuple[str, ...] = (".jpg", ".jpeg", ".png", ".pdf")

NO_EXPENSE_DATA_MESSAGE = "No expense data found in document"


@dataclass(frozen=True)
class FetchedDocument:
    document: RawExtractionDocument
    raw_response: dict[str, Any]

    ok = True


AdapterResult = Union[FetchedDocument, Failure]


def unsupported_format_message(extension: str, supported: tuple[str, ...]) -> str:
    return f"Unsupported file format: {extension}. Supported formats: {', '.join(supported)}"


class ExtractionAdapter:
    def __init__(
        self,
        engine: ExpenseAnalysisEngine,
        *,
        supported_formats: tuple[str, ...] = DEFAULT_SUPPORTED_FORMATS,
    ) -> None:
        self._engine = engine
        self._supported_formats = tuple(ext.lower() for ext in supported_formats)

    @property
    def supported_formats(self) -> tuple[str, ...]:
        return self._supported_formats

    def fetch(self, reference: DocumentReference) -> AdapterResult:
        ext = reference.extension
        if ext not in self._supported_formats:
            log_event(
                logger,
                "extraction.unsupported_format",
                bucket=reference.bucket,
                storage_key=reference.key,
                extension=ext,
            )
            return Failure(
                kind=ErrorKind.UNSUPPORTED_FORMAT,
                message=unsupported_format_message(ext, self._supported_formats),
            )

        result = self._engine.analyze(reference)
        if isinstance(result, EngineFailure):
            return Failure(
                kind=ErrorKind.ENGINE_ERROR,
                message=result.message,
                details=result.details,
            )

        if not result.documents:
            log_event(
                logger,
                "extraction.no_expense_data",
                bucket=reference.bucket,
                storage_key=reference.key,
            )
            return Failure(kind=ErrorKind.NO_EXPENSE_DATA_FOUND, message=NO_EXPENSE_DATA_MESSAGE)

        # Multi-document responses: only the first expense document is used.
        return FetchedDocument(document=result.documents[0], raw_response=result.raw_response)
