from __future__ import annotations

import boto3
from botocore.config import Config

from receipt_lens.core.config import Settings, settings


def aws_session(cfg: Settings | None = None) -> boto3.session.Session:
    cfg = cfg or settings
    region = cfg.aws_region
    if not region or region.lower() == "auto":
        region = "us-east-1"
    # Missing keys fall through to the default credential chain (env, role, profile).
    return boto3.session.Session(
        aws_access_key_id=cfg.aws_access_key_id or None,
        aws_secret_access_key=cfg.aws_secret_access_key or None,
        region_name=region,
    )


def build_textract_client(cfg: Settings | None = None):
    cfg = cfg or settings
    config = Config(
        # Single attempt: retry policy belongs to whoever triggers the pipeline.
        retries={"max_attempts": 1, "mode": "standard"},
        connect_timeout=cfg.engine_connect_timeout_s,
        read_timeout=cfg.engine_read_timeout_s,
    )
    return aws_session(cfg).client(
        "textract", endpoint_url=cfg.textract_endpoint_url or None, config=config
    )


def build_s3_client(cfg: Settings | None = None):
    cfg = cfg or settings
    config = Config(
        retries={"max_attempts": 3, "mode": "adaptive"},
        connect_timeout=30,
        read_timeout=60,
    )
    return aws_session(cfg).client("s3", endpoint_url=cfg.s3_endpoint_url or None, config=config)
