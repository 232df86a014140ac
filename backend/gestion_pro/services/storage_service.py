# Overview: Object storage for avatars and product images (filesystem-backed).

from __future__ import annotations

import re
import time
from pathlib import Path

from flask import current_app


BUCKETS = ("avatars", "product-images")
MAX_UPLOAD_BYTES = 5 * 1024 * 1024

_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9._-]+$")


class StorageError(Exception):
    """Raised for invalid buckets, paths or payloads."""
    pass


def _target(bucket: str, path: str) -> Path:
    if bucket not in BUCKETS:
        raise StorageError(f"Unknown bucket: {bucket}")
    segments = [s for s in (path or "").split("/") if s]
    if not segments or any(s in (".", "..") or not _SAFE_SEGMENT.match(s) for s in segments):
        raise StorageError(f"Invalid object path: {path!r}")
    return Path(current_app.config["STORAGE_ROOT"]).joinpath(bucket, *segments)


def upload(data: bytes, bucket: str, path: str) -> str:
    """
    Store ``data`` at ``bucket/path``, replacing any existing object.

    Returns the public URL with a ``?t=<ms>`` suffix so clients drop cached
    copies of a replaced object.
    """
    if not data:
        raise StorageError("Empty upload")
    if len(data) > MAX_UPLOAD_BYTES:
        raise StorageError(f"Upload exceeds {MAX_UPLOAD_BYTES} bytes")

    target = _target(bucket, path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)

    return f"{public_url(bucket, path)}?t={int(time.time() * 1000)}"


def public_url(bucket: str, path: str) -> str:
    base = current_app.config["STORAGE_PUBLIC_URL"].rstrip("/")
    return f"{base}/{bucket}/{path.lstrip('/')}"


def open_object(bucket: str, path: str) -> Path:
    target = _target(bucket, path)
    if not target.is_file():
        raise StorageError("Object not found")
    return target
