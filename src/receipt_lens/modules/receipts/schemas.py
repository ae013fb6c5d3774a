from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from receipt_lens.modules.extraction.models import ExpenseRecord


class FileOut(BaseModel):
    bucket: str
    key: str
    size: int | None = None


class LineItemOut(BaseModel):
    name: str
    price: float


class ExpenseRecordOut(BaseModel):
    merchant: str
    total: float
    date: str
    category: str
    items: list[LineItemOut]
    confidence: int
    raw_response: dict[str, Any] | None = Field(default=None, serialization_alias="rawResponse")

    @classmethod
    def from_record(
        cls, record: ExpenseRecord, *, raw_response: dict[str, Any] | None = None
    ) -> ExpenseRecordOut:
        return cls(**record.to_dict(), raw_response=raw_response)


class ReceiptResponseBody(BaseModel):
    message: str
    file: FileOut | None = None
    timestamp: str
    success: bool
    data: ExpenseRecordOut | None = None
    error: str | None = None
    error_kind: str | None = Field(default=None, serialization_alias="errorKind")
    details: str | None = None

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class UploadUrlOut(BaseModel):
    bucket: str
    key: str
    url: str
    expires_in: int
    content_type: str | None = None
