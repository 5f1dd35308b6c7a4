"""
Host provisioning service — package re-exports.

Layers, innermost first (data → domain → detection → execution →
capabilities → orchestration). Import from the layer module when
only one symbol is needed; this package surface is for callers that
wire the whole pipeline.
"""

# ── L0: Data ──
from hostprep.core.services.provisioning.data.advisories import ADVISORIES  # noqa: F401
from hostprep.core.services.provisioning.data.constants import ExitCode  # noqa: F401

# ── L1: Domain ──
from hostprep.core.services.provisioning.domain.error_classification import (  # noqa: F401
    advice_for,
    build_issue_url,
    classify,
    exit_code_for,
    format_advice,
)
from hostprep.core.services.provisioning.domain.version_compare import (  # noqa: F401
    UnknownVersionPolicy,
    update_required,
)

# ── L3: Detection ──
from hostprep.core.services.provisioning.detection.host import (  # noqa: F401
    detect_architecture,
    detect_host,
)

# ── L4: Execution ──
from hostprep.core.services.provisioning.execution.download import (  # noqa: F401
    ArtifactFetcher,
    fetch_release_metadata,
)
from hostprep.core.services.provisioning.execution.staging import ArtifactStore  # noqa: F401

# ── L5: Orchestration ──
from hostprep.core.services.provisioning.orchestration.orchestrator import (  # noqa: F401
    Reporter,
    StepOrchestrator,
)
