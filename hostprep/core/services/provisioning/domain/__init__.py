"""
L1 Domain — ``__init__.py`` re-exports all pure domain functions.

These functions have NO subprocess calls, NO filesystem access,
NO network calls. Pure input→output.
"""

from hostprep.core.services.provisioning.domain.artifact_resolver import (  # noqa: F401
    architecture_hint,
    extract_expected_digest,
    parse_release,
    resolve_asset,
    select_asset,
)
from hostprep.core.services.provisioning.domain.error_classification import (  # noqa: F401
    advice_for,
    build_issue_url,
    classify,
    classify_message,
    exit_code_for,
    format_advice,
)
from hostprep.core.services.provisioning.domain.version_compare import (  # noqa: F401
    UnknownVersionPolicy,
    VersionParseError,
    extract_version,
    is_newer,
    normalize,
    update_required,
)
