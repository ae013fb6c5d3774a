from __future__ import annotations

import json
import os
import time
from dataclasses import dataclass, field
from pathlib import Path

from botocore.exceptions import BotoCoreError, ClientError

from receipt_lens.core.aws import build_s3_client
from receipt_lens.core.config import settings
from receipt_lens.core.logging import get_logger, log_event, log_exception, monotonic_ms

logger = get_logger(__name__)


class StorageError(RuntimeError):
    pass


@dataclass(frozen=True)
class StoredObject:
    bucket: str
    key: str
    byte_size: int
    metadata: dict[str, str] = field(default_factory=dict)


class ObjectStorage:
    backend = "abstract"

    def put(
        self,
        *,
        bucket: str,
        key: str,
        body: bytes,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> StoredObject:  # pragma: no cover
        raise NotImplementedError

    def get(self, *, bucket: str, key: str) -> bytes:  # pragma: no cover
        raise NotImplementedError

    def delete(self, *, bucket: str, key: str) -> None:  # pragma: no cover
        raise NotImplementedError

    def presign(
        self,
        *,
        bucket: str,
        key: str,
        method: str = "put_object",
        expires_in: int = 900,
        content_type: str | None = None,
    ) -> str:  # pragma: no cover
        raise NotImplementedError


class LocalObjectStorage(ObjectStorage):
    """Buckets are directories under ``root``; metadata lives in a ``.meta.json`` sidecar."""

    backend = "local"

    def __init__(self, root: Path):
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)

    def _path(self, bucket: str, key: str) -> Path:
        path = (self._root / bucket / key).resolve()
        if not path.is_relative_to(self._root.resolve()):
            raise StorageError(f"Invalid object key: {key}")
        return path

    def put(
        self,
        *,
        bucket: str,
        key: str,
        body: bytes,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> StoredObject:
        start = time.monotonic()
        path = self._path(bucket, key)
        meta = dict(metadata or {})
        if content_type:
            meta["content-type"] = content_type
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(body)
            if meta:
                path.with_name(path.name + ".meta.json").write_text(json.dumps(meta))
        except Exception:
            log_exception(
                logger,
                "storage.put.failure",
                backend=self.backend,
                bucket=bucket,
                storage_key=key,
                byte_size=len(body),
            )
            raise
        log_event(
            logger,
            "storage.put.success",
            backend=self.backend,
            bucket=bucket,
            storage_key=key,
            byte_size=len(body),
            duration_ms=monotonic_ms(start),
        )
        return StoredObject(bucket=bucket, key=key, byte_size=len(body), metadata=meta)

    def get(self, *, bucket: str, key: str) -> bytes:
        start = time.monotonic()
        path = self._path(bucket, key)
        if not path.is_file():
            log_event(
                logger,
                "storage.get.failure",
                backend=self.backend,
                bucket=bucket,
                storage_key=key,
                duration_ms=monotonic_ms(start),
            )
            raise StorageError(f"Object not found: {bucket}/{key}")
        return path.read_bytes()

    def delete(self, *, bucket: str, key: str) -> None:
        path = self._path(bucket, key)
        for candidate in (path, path.with_name(path.name + ".meta.json")):
            if candidate.exists():
                candidate.unlink()

    def presign(
        self,
        *,
        bucket: str,
        key: str,
        method: str = "put_object",
        expires_in: int = 900,
        content_type: str | None = None,
    ) -> str:
        raise StorageError("Presigned URLs require the s3 storage backend")


class S3ObjectStorage(ObjectStorage):
    backend = "s3"

    def __init__(self, client=None) -> None:
        self._client = client or build_s3_client()

    def _retry_delay_s(self, attempt: int) -> float:
        # attempt=1 => 0.25s, attempt=2 => 0.5s, attempt=3 => 1.0s, ...
        return min(3.0, 0.25 * (2 ** (attempt - 1)))

    def _should_retry_error(self, error: Exception) -> bool:
        if isinstance(error, ClientError):
            code = (error.response.get("Error") or {}).get("Code")
            return code in {
                "RequestTimeout",
                "Throttling",
                "SlowDown",
                "InternalError",
                "ServiceUnavailable",
            }
        return isinstance(error, BotoCoreError)

    def put(
        self,
        *,
        bucket: str,
        key: str,
        body: bytes,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> StoredObject:
        start = time.monotonic()
        params: dict = {"Bucket": bucket, "Key": key, "Body": body}
        if content_type:
            params["ContentType"] = content_type
        if metadata:
            params["Metadata"] = metadata
        max_attempts = 3
        for attempt in range(1, max_attempts + 1):
            try:
                self._client.put_object(**params)
                break
            except Exception as e:  # noqa: BLE001
                if attempt < max_attempts and self._should_retry_error(e):
                    delay_s = self._retry_delay_s(attempt)
                    log_event(
                        logger,
                        "storage.put.retry",
                        backend=self.backend,
                        bucket=bucket,
                        storage_key=key,
                        attempt=attempt,
                        delay_s=delay_s,
                        error_type=type(e).__name__,
                    )
                    time.sleep(delay_s)
                    continue
                log_exception(
                    logger,
                    "storage.put.failure",
                    backend=self.backend,
                    bucket=bucket,
                    storage_key=key,
                    byte_size=len(body),
                    attempt=attempt,
                )
                raise StorageError(f"Failed to store object: {bucket}/{key}") from e
        log_event(
            logger,
            "storage.put.success",
            backend=self.backend,
            bucket=bucket,
            storage_key=key,
            byte_size=len(body),
            duration_ms=monotonic_ms(start),
        )
        return StoredObject(bucket=bucket, key=key, byte_size=len(body), metadata=metadata or {})

    def get(self, *, bucket: str, key: str) -> bytes:
        start = time.monotonic()
        try:
            resp = self._client.get_object(Bucket=bucket, Key=key)
            return resp["Body"].read()
        except Exception as e:  # noqa: BLE001
            log_exception(
                logger,
                "storage.get.failure",
                backend=self.backend,
                bucket=bucket,
                storage_key=key,
                duration_ms=monotonic_ms(start),
            )
            raise StorageError(f"Object not found: {bucket}/{key}") from e

    def delete(self, *, bucket: str, key: str) -> None:
        try:
            self._client.delete_object(Bucket=bucket, Key=key)
        except Exception as e:  # noqa: BLE001
            log_exception(
                logger,
                "storage.delete.failure",
                backend=self.backend,
                bucket=bucket,
                storage_key=key,
            )
            raise StorageError(f"Failed to delete object: {bucket}/{key}") from e

    def presign(
        self,
        *,
        bucket: str,
        key: str,
        method: str = "put_object",
        expires_in: int = 900,
        content_type: str | None = None,
    ) -> str:
        params: dict = {"Bucket": bucket, "Key": key}
        if content_type and method == "put_object":
            params["ContentType"] = content_type
        return self._client.generate_presigned_url(
            ClientMethod=method, Params=params, ExpiresIn=expires_in
        )


_storage: ObjectStorage | None = None


def get_storage() -> ObjectStorage:
    global _storage  # noqa: PLW0603
    if _storage is not None:
        return _storage

    if settings.storage_backend == "s3":
        _storage = S3ObjectStorage()
    else:
        root = settings.local_storage_path
        if not root.is_absolute():
            root = Path(os.getcwd()) / root
        _storage = LocalObjectStorage(root)
    return _storage
