# storage.py
# Where generated images go: ./local_outputs (served by /files/local/...) or Cloudflare R2.
import os
import uuid
from datetime import datetime, timezone
from typing import Optional

import boto3
from botocore.config import Config

from settings import settings

_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
}

_s3 = None


def _client():
    # NOTE: endpoint_url MUST be the S3 API endpoint (the cloudflarestorage.com host),
    # not the public domain. Region must be "auto" and path-style is required.
    global _s3
    if _s3 is None:
        endpoint = (settings.r2_endpoint_url or "").rstrip("/") or None
        bucket = settings.r2_bucket
        if endpoint and bucket and endpoint.endswith(f"/{bucket}"):
            endpoint = endpoint[: -(len(bucket) + 1)]
        _s3 = boto3.client(
            "s3",
            endpoint_url=endpoint,
            aws_access_key_id=settings.r2_access_key_id or None,
            aws_secret_access_key=settings.r2_secret_access_key or None,
            region_name="auto",
            config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
        )
    return _s3


def _today_folder() -> str:
    # UTC folders keep things stable across regions/timezones
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def output_key(mime_type: str) -> str:
    """e.g. outputs/2025-10-15/<uuid>.png"""
    return f"outputs/{_today_folder()}/{uuid.uuid4().hex}{_EXTENSIONS.get(mime_type, '.png')}"


def _public_or_signed_url(key: str, expires: int = 3600) -> str:
    public_base = settings.r2_public_base.rstrip("/")
    if public_base:
        return f"{public_base}/{key.lstrip('/')}"
    return _client().generate_presigned_url(
        "get_object",
        Params={"Bucket": settings.r2_bucket, "Key": key},
        ExpiresIn=expires,
    )


def save_output(data: bytes, mime_type: str = "image/png", *, expires: int = 3600) -> str:
    """Store one generated image and return the URL clients should load it from."""
    if settings.use_r2:
        key = output_key(mime_type)
        _client().put_object(Bucket=settings.r2_bucket, Key=key, Body=data, ContentType=mime_type)
        return _public_or_signed_url(key, expires=expires)

    os.makedirs(settings.local_dir, exist_ok=True)
    fname = f"{uuid.uuid4().hex}{_EXTENSIONS.get(mime_type, '.png')}"
    with open(os.path.join(settings.local_dir, fname), "wb") as f:
        f.write(data)
    return f"{settings.public_base_url.rstrip('/')}/files/local/{fname}"


def local_path(name: str) -> Optional[str]:
    """Resolve a /files/local/<name> request; None if it is missing or escapes local_dir."""
    root = os.path.realpath(settings.local_dir)
    path = os.path.realpath(os.path.join(root, name))
    if os.path.dirname(path) != root or not os.path.isfile(path):
        return None
    return path


def get_object_stream(key: str):
    """Returns (streaming_body, content_type) for an R2 key."""
    obj = _client().get_object(Bucket=settings.r2_bucket, Key=key)
    return obj["Body"], obj.get("ContentType", "application/octet-stream")
