"""
L1 Domain — Version normalization and update decisions (pure).

Dotted versions of up to four numeric components. Pre-release
suffixes are discarded, missing components compare as zero.
No I/O, no subprocess.
"""

from __future__ import annotations

import logging
import re
from enum import Enum

logger = logging.getLogger(__name__)

MAX_COMPONENTS = 4

_NON_VERSION_CHARS = re.compile(r"[^0-9.]")


class VersionParseError(ValueError):
    """Raised when text cannot be read as a dotted version."""


class UnknownVersionPolicy(str, Enum):
    """What ``update_required`` answers when either side is unparseable.

    FAIL_OPEN assumes an update is needed (security-relevant
    components). FAIL_CLOSED assumes none is (transient lookup
    failures should not force a reinstall).
    """

    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"


def normalize(raw: str | None) -> tuple[int, ...]:
    """Parse ``raw`` into ``(major, minor[, build[, revision]])``.

    Rules, in order: drop a leading ``v``/``V``; cut at the first
    ``-``; drop every character that is neither a digit nor a dot;
    keep at most four components; pad a lone major to ``major.0``.

    Raises:
        VersionParseError: For empty or malformed input.
    """
    if raw is None:
        raise VersionParseError("no version")

    text = raw.strip()
    if text[:1] in ("v", "V"):
        text = text[1:]
    text = text.split("-", 1)[0]
    text = _NON_VERSION_CHARS.sub("", text).strip(".")

    if not text:
        raise VersionParseError(f"unparseable version: {raw!r}")

    parts = text.split(".")
    if any(p == "" for p in parts):
        raise VersionParseError(f"unparseable version: {raw!r}")

    components = tuple(int(p) for p in parts[:MAX_COMPONENTS])
    if len(components) == 1:
        components = (components[0], 0)
    return components


def normalize_text(raw: str | None) -> str:
    """Normalized version as a dotted string."""
    return ".".join(str(n) for n in normalize(raw))


def try_normalize(raw: str | None) -> str | None:
    """Like ``normalize_text`` but returns None instead of raising."""
    try:
        return normalize_text(raw)
    except VersionParseError:
        return None


def _padded(version: tuple[int, ...]) -> tuple[int, ...]:
    return version + (0,) * (MAX_COMPONENTS - len(version))


def is_newer(candidate: str, baseline: str) -> bool:
    """True iff ``candidate`` is strictly newer than ``baseline``.

    Raises:
        VersionParseError: If either side is unparseable.
    """
    cand = _padded(normalize(candidate))
    base = _padded(normalize(baseline))
    for c, b in zip(cand, base):
        if c > b:
            return True
        if c < b:
            return False
    return False


def update_required(
    current: str | None,
    latest: str | None,
    policy: UnknownVersionPolicy,
) -> bool:
    """Whether ``latest`` supersedes ``current``.

    ``policy`` decides the answer when either version is missing or
    unparseable. It has no default.
    """
    try:
        return is_newer(latest, current)  # type: ignore[arg-type]
    except VersionParseError as e:
        decision = policy == UnknownVersionPolicy.FAIL_OPEN
        logger.info(
            "Version comparison undecidable (%s); %s → update_required=%s",
            e, policy.value, decision,
        )
        return decision


def extract_version(content: str | None) -> str | None:
    """Read a version out of a marker file's text.

    Accepts ``1.2.3``, ``v1.2.3``, ``version 1.2.3`` and
    ``key: 1.2.3`` forms, using the first non-empty line.
    Returns the normalized version, or None.
    """
    if not content:
        return None

    line = next((ln.strip() for ln in content.splitlines() if ln.strip()), "")
    if ":" in line:
        line = line.split(":", 1)[1].strip()
    if line.lower().startswith("version"):
        line = line[len("version"):].strip()
    return try_normalize(line)
