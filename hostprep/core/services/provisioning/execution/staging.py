"""
L4 Execution — Content-addressed store for verified artifacts.

Layout: ``<root>/<sha256>/<file name>``. A path is only ever created
from a digest that was just verified, so the same bytes always land at
the same path and a different file can never sit under a digest that
does not describe it.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from hostprep.core.models.artifact import LocalArtifact
from hostprep.core.services.provisioning.execution.integrity import (
    compute_digest,
    is_sha256,
    normalize_digest,
)

logger = logging.getLogger(__name__)

_INCOMING = ".incoming"


class ArtifactStore:
    """Digest-keyed storage of verified artifacts."""

    def __init__(self, root: Path):
        self.root = Path(root)

    @property
    def incoming_dir(self) -> Path:
        """Where downloads are written before verification."""
        path = self.root / _INCOMING
        path.mkdir(parents=True, exist_ok=True)
        return path

    def path_for(self, digest: str, file_name: str) -> Path:
        """Content address of ``file_name``; ``digest`` must be lowercase SHA-256 hex."""
        if not is_sha256(digest) or digest != normalize_digest(digest):
            raise ValueError(f"Not a SHA-256 digest: {digest!r}")
        return self.root / digest / Path(file_name).name

    def lookup(self, digest: str, file_name: str) -> LocalArtifact | None:
        """An already-staged artifact, re-verified; None if absent or altered."""
        path = self.path_for(digest, file_name)
        if not path.is_file():
            return None
        if compute_digest(path) != digest:
            logger.warning("Staged file %s no longer matches its digest; removing", path)
            _unlink(path)
            return None
        return LocalArtifact(
            file_path=str(path),
            computed_digest=digest,
            file_name=path.name,
            size=path.stat().st_size,
        )

    def admit(self, verified_path: Path, digest: str, file_name: str) -> LocalArtifact:
        """Move a just-verified file to its content address.

        If identical bytes are already staged the incoming copy is
        dropped and the existing path is returned.
        """
        existing = self.lookup(digest, file_name)
        if existing is not None:
            _unlink(verified_path)
            logger.debug("Artifact %s already staged", digest[:12])
            return existing

        target = self.path_for(digest, file_name)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(verified_path), str(target))
        logger.info("Staged %s → %s", file_name, target)
        return LocalArtifact(
            file_path=str(target),
            computed_digest=digest,
            file_name=target.name,
            size=target.stat().st_size,
        )

    def discard(self, artifact: LocalArtifact) -> None:
        """Remove a staged artifact and its digest directory if empty."""
        path = Path(artifact.file_path)
        _unlink(path)
        try:
            path.parent.rmdir()
        except OSError:
            pass  # not empty, or already gone


def _unlink(path: Path) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("Could not remove %s: %s", path, e)
