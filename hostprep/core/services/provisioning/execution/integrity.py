"""
L4 Execution — SHA-256 integrity verification.

All-or-nothing gate between a download and any install action.
"""

from __future__ import annotations

import hashlib
import hmac
import re
from pathlib import Path

_CHUNK_SIZE = 64 * 1024
_SHA256_HEX = re.compile(r"[0-9a-f]{64}")


def compute_digest(path: Path | str, chunk_size: int = _CHUNK_SIZE) -> str:
    """SHA-256 of a file as lowercase hex, streamed in chunks."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            h.update(chunk)
    return h.hexdigest()


def normalize_digest(value: str | None) -> str:
    """Strip an optional ``sha256:`` prefix and all whitespace; lowercase."""
    if not value:
        return ""
    text = re.sub(r"\s+", "", value).lower()
    if text.startswith("sha256:"):
        text = text[len("sha256:"):]
    return text


def is_sha256(value: str | None) -> bool:
    """Whether ``value`` normalizes to 64 lowercase hex characters."""
    return bool(_SHA256_HEX.fullmatch(normalize_digest(value)))


def verify_digest(actual: str | None, expected: str | None) -> bool:
    """Exact match after normalization. An empty side never matches."""
    a = normalize_digest(actual)
    e = normalize_digest(expected)
    if not a or not e:
        return False
    return hmac.compare_digest(a, e)
