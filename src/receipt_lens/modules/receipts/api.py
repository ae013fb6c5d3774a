from __future__ import annotations

import re
import time
from typing import Any
from urllib.parse import quote_plus

from fastapi import APIRouter, Body, Depends, File, HTTPException, UploadFile, status
from fastapi.responses import JSONResponse

from receipt_lens.core.config import settings
from receipt_lens.core.logging import get_logger, log_event
from receipt_lens.core.storage import ObjectStorage, get_storage
from receipt_lens.modules.receipts.handler import (
    InvocationResponse,
    ReceiptEventHandler,
    default_handler,
    utc_timestamp,
)
from receipt_lens.modules.receipts.schemas import UploadUrlOut

router = APIRouter(tags=["receipts"])
logger = get_logger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._ -]+")


def get_event_handler() -> ReceiptEventHandler:
    return default_handler()


def get_object_storage() -> ObjectStorage:
    return get_storage()


def build_upload_key(filename: str, *, now_ms: int | None = None) -> str:
    name = _UNSAFE_FILENAME_CHARS.sub("_", filename.rsplit("/", 1)[-1]).strip() or "upload.bin"
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    prefix = settings.upload_prefix.strip("/")
    return f"{prefix}/{stamp}-{name}" if prefix else f"{stamp}-{name}"


def s3_event_for(*, bucket: str, key: str, size: int | None) -> dict[str, Any]:
    """Build the notification S3 would emit for ``key``, with the key form-encoded the same way."""
    obj: dict[str, Any] = {"key": quote_plus(key, safe="/")}
    if size is not None:
        obj["size"] = size
    return {"Records": [{"s3": {"bucket": {"name": bucket}, "object": obj}}]}


def _json_response(response: InvocationResponse) -> JSONResponse:
    return JSONResponse(
        status_code=response.status_code, content=response.body, headers=response.headers
    )


@router.post("/receipts/events")
def process_event(
    event: dict[str, Any] = Body(...),
    handler: ReceiptEventHandler = Depends(get_event_handler),
) -> JSONResponse:
    return _json_response(handler.handle(event))


@router.post("/receipts")
async def upload_receipt(
    upload: UploadFile = File(...),
    handler: ReceiptEventHandler = Depends(get_event_handler),
    storage: ObjectStorage = Depends(get_object_storage),
) -> JSONResponse:
    body = await upload.read()
    filename = upload.filename or "upload.bin"
    key = build_upload_key(filename)
    log_event(
        logger,
        "upload.received",
        filename=filename,
        content_type=upload.content_type,
        byte_size=len(body),
        storage_key=key,
    )
    storage.put(
        bucket=settings.upload_bucket,
        key=key,
        body=body,
        content_type=upload.content_type,
        metadata={"uploaded-at": utc_timestamp(), "original-name": filename},
    )
    event = s3_event_for(bucket=settings.upload_bucket, key=key, size=len(body))
    return _json_response(handler.handle(event))


@router.get("/receipts/upload-url", response_model=UploadUrlOut)
def create_upload_url(
    filename: str,
    content_type: str | None = None,
    storage: ObjectStorage = Depends(get_object_storage),
) -> UploadUrlOut:
    if storage.backend != "s3":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Presigned uploads require the s3 storage backend",
        )
    key = build_upload_key(filename)
    url = storage.presign(
        bucket=settings.upload_bucket,
        key=key,
        method="put_object",
        expires_in=settings.presign_expires_s,
        content_type=content_type,
    )
    log_event(logger, "upload.presigned", storage_key=key, content_type=content_type)
    return UploadUrlOut(
        bucket=settings.upload_bucket,
        key=key,
        url=url,
        expires_in=settings.presign_expires_s,
        content_type=content_type,
    )
