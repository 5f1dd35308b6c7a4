"""
L1 Domain — Failure classification and advisory lookup (pure).

Failures carry a typed ReasonCode; classification is a total mapping
from (step, reason) to Category. Free-text keyword matching remains as
the fallback for failures that arrive without a reason code.
No I/O, no subprocess.
"""

from __future__ import annotations

import urllib.parse

from hostprep.core.models.advisory import Advisory, Category
from hostprep.core.models.pipeline import PipelineResult, PipelineStatus
from hostprep.core.models.step import ReasonCode, StepId
from hostprep.core.services.provisioning.data.advisories import ADVISORIES, ERROR_CODE_STEPS
from hostprep.core.services.provisioning.data.constants import ExitCode

# ── Reason code → category ─────────────────────────────────────

_REASON_CATEGORIES: dict[ReasonCode, Category] = {
    ReasonCode.OS_TOO_OLD: Category.OS_VERSION,
    ReasonCode.OS_BUILD_TOO_LOW: Category.OS_VERSION,
    ReasonCode.ARCH_UNSUPPORTED: Category.OS_VERSION,
    ReasonCode.FEATURE_DISABLED: Category.OS_FEATURES,
    ReasonCode.FEATURE_NOT_FOUND: Category.OS_FEATURES,
    ReasonCode.FEATURE_ENABLE_FAILED: Category.OS_FEATURES,
    ReasonCode.SUBSYSTEM_NOT_INSTALLED: Category.SUBSYSTEM_NOT_INSTALLED,
    ReasonCode.SUBSYSTEM_OUTDATED: Category.SUBSYSTEM_VERSION_MISMATCH,
    ReasonCode.SUBSYSTEM_WRONG_DEFAULT: Category.SUBSYSTEM_VERSION_MISMATCH,
    ReasonCode.SUBSYSTEM_INSTALL_FAILED: Category.SUBSYSTEM_INSTALL_FAILED,
    ReasonCode.SUBSYSTEM_CONFIG_FAILED: Category.SUBSYSTEM_INSTALL_FAILED,
    ReasonCode.COMPANION_RUNNING: Category.COMPANION_RUNNING,
    ReasonCode.IMAGE_NOT_INSTALLED: Category.IMAGE_INSTALL_FAILED,
    ReasonCode.IMAGE_VERSION_UNREADABLE: Category.IMAGE_VERSION_UNKNOWN,
    ReasonCode.IMAGE_OUTDATED: Category.IMAGE_INSTALL_FAILED,
    ReasonCode.IMAGE_INSTALL_FAILED: Category.IMAGE_INSTALL_FAILED,
    ReasonCode.IMAGE_SETUP_FAILED: Category.IMAGE_INSTALL_FAILED,
    ReasonCode.RELEASE_UNAVAILABLE: Category.NETWORK,
    ReasonCode.DOWNLOAD_FAILED: Category.NETWORK,
    ReasonCode.DIGEST_UNAVAILABLE: Category.VERIFICATION_FAILED,
    ReasonCode.VERIFICATION_FAILED: Category.VERIFICATION_FAILED,
    ReasonCode.PERMISSION_DENIED: Category.PERMISSION,
}

# Reasons whose category depends on the step they happened in
_STEP_CATEGORIES: dict[tuple[StepId, ReasonCode], Category] = {
    (StepId.OS_VERSION, ReasonCode.PROBE_FAILED): Category.OS_VERSION,
    (StepId.OS_FEATURES, ReasonCode.PROBE_FAILED): Category.OS_FEATURES,
    (StepId.OS_FEATURES, ReasonCode.TIMEOUT): Category.OS_FEATURES,
    (StepId.SUBSYSTEM, ReasonCode.PROBE_FAILED): Category.SUBSYSTEM_STATUS_UNKNOWN,
    (StepId.SUBSYSTEM, ReasonCode.TIMEOUT): Category.SUBSYSTEM_INSTALL_FAILED,
    (StepId.SUBSYSTEM, ReasonCode.ASSET_NOT_FOUND): Category.SUBSYSTEM_INSTALL_FAILED,
    (StepId.SUBSYSTEM, ReasonCode.UNEXPECTED): Category.SUBSYSTEM_INSTALL_FAILED,
    (StepId.RUNTIME_IMAGE, ReasonCode.PROBE_FAILED): Category.IMAGE_VERSION_UNKNOWN,
    (StepId.RUNTIME_IMAGE, ReasonCode.TIMEOUT): Category.IMAGE_INSTALL_FAILED,
    (StepId.RUNTIME_IMAGE, ReasonCode.ASSET_NOT_FOUND): Category.IMAGE_INSTALL_FAILED,
    (StepId.RUNTIME_IMAGE, ReasonCode.UNEXPECTED): Category.IMAGE_INSTALL_FAILED,
    (StepId.COMPANION_PROCESS, ReasonCode.PROBE_FAILED): Category.UNKNOWN,
}

# Halted step → process exit code
_STEP_EXIT_CODES: dict[StepId, ExitCode] = {
    StepId.OS_VERSION: ExitCode.UNSUPPORTED_OS,
    StepId.OS_FEATURES: ExitCode.FEATURES_FAILED,
    StepId.SUBSYSTEM: ExitCode.SUBSYSTEM_FAILED,
    StepId.COMPANION_PROCESS: ExitCode.COMPANION_RUNNING,
    StepId.RUNTIME_IMAGE: ExitCode.IMAGE_FAILED,
}


def classify(
    step_id: StepId | str | None,
    raw_message: str = "",
    reason: ReasonCode | None = None,
) -> Category:
    """Map a failure to its Category.

    Resolution order: (step, reason) pair, reason alone, then keyword
    matching over the step identity and message. Always returns a
    Category; UNKNOWN is the catch-all.
    """
    step = _as_step_id(step_id)
    if reason is not None and reason != ReasonCode.NONE:
        if step is not None and (step, reason) in _STEP_CATEGORIES:
            return _STEP_CATEGORIES[(step, reason)]
        if reason in _REASON_CATEGORIES:
            return _REASON_CATEGORIES[reason]
    return classify_message(step_id, raw_message)


def classify_message(component: StepId | str | None, message: str) -> Category:
    """Keyword classification, first match wins.

    Priority: OS version, OS features, subsystem (not installed,
    version mismatch, install failed, else status unknown), companion
    running, runtime image, network, permission, unknown.
    """
    if not message:
        return Category.UNKNOWN

    text = message.lower()
    name = (component.value if isinstance(component, StepId) else component or "").lower()

    if name == StepId.OS_VERSION.value or "windows version" in text:
        return Category.OS_VERSION

    if name == StepId.OS_FEATURES.value or "windows feature" in text:
        return Category.OS_FEATURES

    if name == StepId.SUBSYSTEM.value or "wsl" in name:
        if "not installed" in text:
            return Category.SUBSYSTEM_NOT_INSTALLED
        if "version" in text and any(k in text for k in ("mismatch", "outdated", "default")):
            return Category.SUBSYSTEM_VERSION_MISMATCH
        if "failed to install" in text or "installation failed" in text:
            return Category.SUBSYSTEM_INSTALL_FAILED
        return Category.SUBSYSTEM_STATUS_UNKNOWN

    if (name == StepId.COMPANION_PROCESS.value or "boinc" in name) and "running" in text:
        return Category.COMPANION_RUNNING

    if name == StepId.RUNTIME_IMAGE.value or "buda" in name:
        if "version" in text and ("cannot" in text or "unable" in text):
            return Category.IMAGE_VERSION_UNKNOWN
        if "failed" in text or "error" in text:
            return Category.IMAGE_INSTALL_FAILED

    if "verification failed" in text or "digest" in text:
        return Category.VERIFICATION_FAILED

    if any(k in text for k in ("network", "connection", "timeout", "download")):
        return Category.NETWORK

    if any(k in text for k in ("permission", "access denied", "administrator", "0x80070005")):
        return Category.PERMISSION

    return Category.UNKNOWN


def _as_step_id(step_id: StepId | str | None) -> StepId | None:
    if isinstance(step_id, StepId):
        return step_id
    try:
        return StepId(step_id) if step_id else None
    except ValueError:
        return None


# ── Exit codes ─────────────────────────────────────────────────


def exit_code_for(result: PipelineResult) -> ExitCode:
    """Process exit code for a run's terminal classification."""
    if result.status == PipelineStatus.COMPLETED:
        return ExitCode.SUCCESS
    if result.status == PipelineStatus.RESTART_REQUIRED:
        return ExitCode.RESTART_REQUIRED
    if result.status == PipelineStatus.USER_DECLINED:
        return ExitCode.USER_DECLINED
    if result.halted_at is not None:
        return _STEP_EXIT_CODES.get(result.halted_at, ExitCode.UNEXPECTED)
    return ExitCode.UNEXPECTED


# ── Advisories ─────────────────────────────────────────────────


def advice_for(category: Category, error_details: str = "") -> Advisory:
    """The advisory for ``category``, with error-code specific steps first."""
    advisory = ADVISORIES.get(category, ADVISORIES[Category.UNKNOWN])
    if not error_details:
        return advisory

    text = error_details.lower()
    for needles, categories, extra in ERROR_CODE_STEPS:
        if category in categories and any(n in text for n in needles):
            return advisory.model_copy(update={"steps": [*extra, *advisory.steps]})
    return advisory


def format_advice(advisory: Advisory) -> str:
    """Render an advisory as plain text for logs and dialogs."""
    lines = [advisory.title, "=" * len(advisory.title), "", advisory.description, ""]

    if advisory.steps:
        for i, step in enumerate(advisory.steps, 1):
            lines.append(f"{i}. {step}")
        lines.append("")

    if advisory.resources:
        lines.append("Additional Resources:")
        lines.extend(f"  • {resource}" for resource in advisory.resources)

    return "\n".join(lines).rstrip() + "\n"


def build_issue_url(
    base_url: str,
    advisory: Advisory,
    error_details: str = "",
    log_path: str | None = None,
    version: str = "",
) -> str:
    """Pre-filled issue URL for ``advisory``."""
    body = [
        f"**Category:** {advisory.category.value}",
        f"**hostprep version:** {version or 'unknown'}",
        "",
        "**Error details:**",
        "```",
        error_details.strip() or "(none)",
        "```",
    ]
    if log_path:
        body += ["", f"Log file: `{log_path}` (please attach it)"]

    query = urllib.parse.urlencode({
        "title": f"[hostprep] {advisory.title}",
        "body": "\n".join(body),
    })
    return f"{base_url}?{query}"
