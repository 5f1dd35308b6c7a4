"""
L4 Execution — Release lookup and verified artifact download.

``fetch_release_metadata`` degrades to an error dict instead of
raising. ``ArtifactFetcher.fetch`` returns a LocalArtifact only for a
file whose SHA-256 matched a published digest; anything else is
deleted and reported as a failure.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel

from hostprep.core.models.artifact import LocalArtifact, ReleaseAsset
from hostprep.core.models.step import ReasonCode
from hostprep.core.services.provisioning.data.constants import USER_AGENT
from hostprep.core.services.provisioning.domain.artifact_resolver import parse_release
from hostprep.core.services.provisioning.execution.integrity import (
    compute_digest,
    is_sha256,
    normalize_digest,
    verify_digest,
)
from hostprep.core.services.provisioning.execution.staging import ArtifactStore

logger = logging.getLogger(__name__)

ProgressSink = Callable[[int, int | None], None]
ReleaseSource = Callable[..., dict[str, Any]]

_CHUNK_SIZE = 64 * 1024
_SOCKET_TIMEOUT = 60


# ── Release metadata ───────────────────────────────────────────


def fetch_release_metadata(
    url: str,
    *,
    timeout: float = 30,
    user_agent: str = USER_AGENT,
) -> dict[str, Any]:
    """Fetch and parse a release document.

    Returns::

        {"ok": True, "release": ReleaseMetadata}
        or
        {"ok": False, "error": "..."}
    """
    try:
        req = urllib.request.Request(
            url,
            headers={
                "Accept": "application/vnd.github.v3+json",
                "User-Agent": user_agent,
            },
        )
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode("utf-8", errors="replace")
    except urllib.error.HTTPError as e:
        logger.warning("Release lookup failed for %s: HTTP %s", url, e.code)
        return {"ok": False, "error": f"Release lookup failed: HTTP {e.code}"}
    except (urllib.error.URLError, OSError) as e:
        logger.warning("Release lookup failed for %s: %s", url, e)
        return {"ok": False, "error": f"Network error during release lookup: {e}"}

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        return {"ok": False, "error": f"Malformed release document: {e}"}

    if not isinstance(payload, dict):
        return {"ok": False, "error": "Malformed release document: expected a JSON object"}

    release = parse_release(payload, raw)
    logger.info("Latest release at %s: %s (%d assets)", url, release.tag_version or "?", len(release.assets))
    return {"ok": True, "release": release}


# ── Fetcher ────────────────────────────────────────────────────


class FetchResult(BaseModel):
    """Outcome of ``ArtifactFetcher.fetch``."""

    ok: bool
    artifact: LocalArtifact | None = None
    reason: ReasonCode = ReasonCode.NONE
    error: str | None = None

    @classmethod
    def success(cls, artifact: LocalArtifact) -> FetchResult:
        return cls(ok=True, artifact=artifact)

    @classmethod
    def failure(cls, reason: ReasonCode, error: str) -> FetchResult:
        return cls(ok=False, reason=reason, error=error)


class _DownloadTimeout(Exception):
    """The overall download deadline passed."""


class ArtifactFetcher:
    """Download, verify and stage release assets."""

    def __init__(self, store: ArtifactStore, user_agent: str = USER_AGENT):
        self.store = store
        self._user_agent = user_agent

    def fetch(
        self,
        asset: ReleaseAsset,
        expected_digest: str | None,
        *,
        timeout: float = 600,
        progress: ProgressSink | None = None,
    ) -> FetchResult:
        """Download ``asset`` and verify it against ``expected_digest``.

        Fails closed without downloading when no digest is published.
        On mismatch the downloaded file is deleted and the failure is
        reported as VERIFICATION_FAILED, distinct from DOWNLOAD_FAILED.
        """
        expected = normalize_digest(expected_digest)
        if not expected:
            logger.error("No published SHA-256 for %s; refusing to download", asset.file_name)
            return FetchResult.failure(
                ReasonCode.DIGEST_UNAVAILABLE,
                f"Verification data unavailable for {asset.file_name}; aborting for safety",
            )
        if not is_sha256(expected):
            logger.error("Published digest for %s is not a SHA-256: %r", asset.file_name, expected_digest)
            return FetchResult.failure(
                ReasonCode.DIGEST_UNAVAILABLE,
                f"Verification data for {asset.file_name} is malformed; aborting for safety",
            )

        staged = self.store.lookup(expected, asset.file_name)
        if staged is not None:
            logger.info("Using verified copy of %s from %s", asset.file_name, staged.file_path)
            return FetchResult.success(staged)

        fd, tmp_name = tempfile.mkstemp(
            prefix="dl-", suffix=f"-{Path(asset.file_name).name}", dir=self.store.incoming_dir,
        )
        os.close(fd)
        tmp_path = Path(tmp_name)

        logger.info("Downloading %s", asset.download_url)
        try:
            size = self._download(asset.download_url, tmp_path, timeout, progress)
        except _DownloadTimeout:
            _remove(tmp_path)
            return FetchResult.failure(
                ReasonCode.TIMEOUT,
                f"Download of {asset.file_name} timed out after {timeout:g}s",
            )
        except urllib.error.HTTPError as e:
            _remove(tmp_path)
            return FetchResult.failure(
                ReasonCode.DOWNLOAD_FAILED,
                f"Download failed: HTTP {e.code} for {asset.file_name}",
            )
        except (urllib.error.URLError, OSError) as e:
            _remove(tmp_path)
            return FetchResult.failure(
                ReasonCode.DOWNLOAD_FAILED,
                f"Download failed for {asset.file_name}: {e}",
            )

        try:
            actual = compute_digest(tmp_path)
        except OSError as e:
            _remove(tmp_path)
            return FetchResult.failure(
                ReasonCode.DOWNLOAD_FAILED,
                f"Could not read downloaded {asset.file_name}: {e}",
            )

        if not verify_digest(actual, expected):
            _remove(tmp_path)
            logger.error(
                "SHA-256 mismatch for %s: expected %s, got %s",
                asset.file_name, expected, actual,
            )
            return FetchResult.failure(
                ReasonCode.VERIFICATION_FAILED,
                f"Verification failed for {asset.file_name}: expected {expected}, "
                f"got {actual}. The file may have been tampered with.",
            )

        logger.info("Verified %s (%d bytes, sha256 %s)", asset.file_name, size, actual)
        return FetchResult.success(self.store.admit(tmp_path, actual, asset.file_name))

    def _download(
        self,
        url: str,
        dest: Path,
        timeout: float,
        progress: ProgressSink | None,
    ) -> int:
        """Stream ``url`` into ``dest``; returns bytes written."""
        deadline = time.monotonic() + timeout
        req = urllib.request.Request(url, headers={"User-Agent": self._user_agent})
        written = 0

        with urllib.request.urlopen(req, timeout=min(timeout, _SOCKET_TIMEOUT)) as resp:
            length = resp.headers.get("Content-Length")
            total = int(length) if length and length.isdigit() else None
            with open(dest, "wb") as out:
                for chunk in iter(lambda: resp.read(_CHUNK_SIZE), b""):
                    out.write(chunk)
                    written += len(chunk)
                    if progress is not None:
                        progress(written, total)
                    if time.monotonic() > deadline:
                        raise _DownloadTimeout()

        return written


def _remove(path: Path) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove %s: %s", path, e)


def logging_progress(label: str, step_percent: int = 10) -> ProgressSink:
    """Progress sink that logs every ``step_percent`` percent."""
    state = {"next": step_percent}

    def _sink(done: int, total: int | None) -> None:
        if not total:
            return
        percent = done * 100 // total
        if percent >= state["next"]:
            logger.info("%s: %d%% (%d/%d MB)", label, percent, done >> 20, total >> 20)
            state["next"] = (percent // step_percent + 1) * step_percent

    return _sink
