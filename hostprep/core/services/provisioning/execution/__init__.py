"""
L4 Execution — ``__init__.py`` re-exports download, staging and integrity.

These functions WRITE to the system: network downloads and files
under the staging directory.
"""

from hostprep.core.services.provisioning.execution.download import (  # noqa: F401
    ArtifactFetcher,
    FetchResult,
    fetch_release_metadata,
    logging_progress,
)
from hostprep.core.services.provisioning.execution.integrity import (  # noqa: F401
    compute_digest,
    is_sha256,
    normalize_digest,
    verify_digest,
)
from hostprep.core.services.provisioning.execution.staging import ArtifactStore  # noqa: F401
