"""
Blob storage: S3 when S3_BUCKET is set, else a local directory served at /uploads.
Only the returned public URL is persisted by callers.
"""
import asyncio
import logging
import re
import time
from pathlib import Path
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from poolorders.config import settings
from poolorders.errors import Internal
from poolorders.metrics import uploads_stored_total

logger = logging.getLogger(__name__)

LOCAL_URL_PREFIX = "/uploads/"

_s3_client: Any = None


def _get_client():
    global _s3_client
    if _s3_client is None:
        _s3_client = boto3.client("s3", region_name=settings.aws_region)
    return _s3_client


def safe_filename(name: str | None) -> str:
    return re.sub(r"[^a-zA-Z0-9_.-]", "_", name or "upload") or "upload"


def build_key(prefix: str, filename: str | None) -> str:
    return f"{prefix.strip('/')}/{int(time.time() * 1000)}-{safe_filename(filename)}"


def _public_url(key: str) -> str:
    base = settings.s3_public_base_url or f"https://{settings.s3_bucket}.s3.{settings.aws_region}.amazonaws.com"
    return f"{base.rstrip('/')}/{key}"


def _write_local(key: str, data: bytes) -> None:
    dest = Path(settings.upload_dir) / key
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(data)


async def put_file(prefix: str, filename: str | None, data: bytes, content_type: str | None = None) -> str:
    """Store bytes under prefix and return the public URL. Raises Internal when the backend rejects the write."""
    key = build_key(prefix, filename)
    if settings.s3_bucket:
        try:
            await asyncio.to_thread(
                _get_client().put_object,
                Bucket=settings.s3_bucket,
                Key=key,
                Body=data,
                ContentType=content_type or "application/octet-stream",
            )
        except (BotoCoreError, ClientError) as exc:
            logger.error("S3 put %s failed: %s", key, exc)
            raise Internal("File storage unavailable") from exc
        uploads_stored_total.labels(backend="s3").inc()
        return _public_url(key)
    try:
        await asyncio.to_thread(_write_local, key, data)
    except OSError as exc:
        logger.error("Local write %s failed: %s", key, exc)
        raise Internal("File storage unavailable") from exc
    uploads_stored_total.labels(backend="local").inc()
    return LOCAL_URL_PREFIX + key


def resolve_local(path: str) -> Path | None:
    """Map a /uploads/<path> request to a file inside upload_dir; None when outside or missing."""
    root = Path(settings.upload_dir).resolve()
    candidate = (root / path).resolve()
    if root not in candidate.parents or not candidate.is_file():
        return None
    return candidate
