"""Shared helpers: hashing, timestamps, run ids."""

from __future__ import annotations

import hashlib
import uuid
from datetime import datetime, timezone
from pathlib import Path


def sha256_file(path: Path) -> str:
    """Return the hex SHA-256 digest of *path*."""
    h = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()


def utcnow_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def new_run_id(created_at: str) -> str:
    """Build a sortable run id from an ISO timestamp, e.g. ``20241019T073000Z-1a2b3c``."""
    stamp = datetime.fromisoformat(created_at).astimezone(timezone.utc)
    return f"{stamp:%Y%m%dT%H%M%SZ}-{uuid.uuid4().hex[:6]}"
