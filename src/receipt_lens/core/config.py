from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "dev"
    log_level: str = "INFO"

    aws_region: str | None = "us-east-1"
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None

    textract_endpoint_url: str | None = None
    # "s3_object": Textract reads the object itself; "bytes": we fetch and send inline.
    engine_document_source: Literal["s3_object", "bytes"] = "s3_object"
    engine_connect_timeout_s: int = 10
    engine_read_timeout_s: int = 120

    supported_formats: str = ".jpg,.jpeg,.png,.pdf"
    include_raw_response: bool = False

    storage_backend: Literal["local", "s3"] = "local"
    local_storage_path: Path = Path(".local_storage")
    s3_endpoint_url: str | None = None
    upload_bucket: str = "receipt-uploads"
    upload_prefix: str = "receipts"
    presign_expires_s: int = 15 * 60

    cors_allow_origin: str = "*"

    def supported_format_list(self) -> tuple[str, ...]:
        out: list[str] = []
        for raw in self.supported_formats.split(","):
            ext = raw.strip().lower()
            if not ext:
                continue
            if not ext.startswith("."):
                ext = f".{ext}"
            out.append(ext)
        return tuple(out)


settings = Settings()
