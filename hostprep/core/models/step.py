"""
Step, StepState and Outcome models — the capability contract.

A Step pairs a probe with a remediation. The probe reports what it
found as a StepState; the remediation reports what it did as an
Outcome. Neither crosses the orchestrator boundary as an exception:
unexpected errors are folded into Unknown states or failed outcomes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, Field


class StepId(str, Enum):
    """Stable identity of each provisioning step."""

    COMPANION_PROCESS = "companion_process"
    OS_VERSION = "os_version"
    OS_FEATURES = "os_features"
    SUBSYSTEM = "subsystem"
    RUNTIME_IMAGE = "runtime_image"


class StateKind(str, Enum):
    SATISFIED = "satisfied"
    UNSATISFIED = "unsatisfied"
    UNKNOWN = "unknown"


class ReasonCode(str, Enum):
    """Structured reason carried by every non-satisfied state or failed outcome.

    The error classifier maps these to advisory categories, so new
    capability failures should get a code here rather than relying on
    message text.
    """

    NONE = "none"

    # OS version
    OS_TOO_OLD = "os_too_old"
    OS_BUILD_TOO_LOW = "os_build_too_low"
    ARCH_UNSUPPORTED = "arch_unsupported"

    # OS features
    FEATURE_DISABLED = "feature_disabled"
    FEATURE_NOT_FOUND = "feature_not_found"
    FEATURE_ENABLE_FAILED = "feature_enable_failed"

    # Virtualization subsystem
    SUBSYSTEM_NOT_INSTALLED = "subsystem_not_installed"
    SUBSYSTEM_OUTDATED = "subsystem_outdated"
    SUBSYSTEM_WRONG_DEFAULT = "subsystem_wrong_default"
    SUBSYSTEM_INSTALL_FAILED = "subsystem_install_failed"
    SUBSYSTEM_CONFIG_FAILED = "subsystem_config_failed"

    # Companion process
    COMPANION_RUNNING = "companion_running"

    # Runtime image
    IMAGE_NOT_INSTALLED = "image_not_installed"
    IMAGE_VERSION_UNREADABLE = "image_version_unreadable"
    IMAGE_OUTDATED = "image_outdated"
    IMAGE_INSTALL_FAILED = "image_install_failed"
    IMAGE_SETUP_FAILED = "image_setup_failed"

    # Artifact acquisition
    RELEASE_UNAVAILABLE = "release_unavailable"
    ASSET_NOT_FOUND = "asset_not_found"
    DOWNLOAD_FAILED = "download_failed"
    DIGEST_UNAVAILABLE = "digest_unavailable"
    VERIFICATION_FAILED = "verification_failed"

    # Generic
    PROBE_FAILED = "probe_failed"
    TIMEOUT = "timeout"
    PERMISSION_DENIED = "permission_denied"
    UNEXPECTED = "unexpected"


class StepState(BaseModel):
    """What a probe found.

    ``data`` carries probe findings forward to the remediation
    (missing features, the fetched release, the image sub-state).
    """

    kind: StateKind
    reason: ReasonCode = ReasonCode.NONE
    detail: str = ""
    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def satisfied(self) -> bool:
        return self.kind == StateKind.SATISFIED

    @property
    def unsatisfied(self) -> bool:
        return self.kind == StateKind.UNSATISFIED

    @property
    def unknown(self) -> bool:
        return self.kind == StateKind.UNKNOWN

    @classmethod
    def ok(cls, detail: str = "", **data: Any) -> StepState:
        """Create a Satisfied state."""
        return cls(kind=StateKind.SATISFIED, detail=detail, data=data)

    @classmethod
    def needs(cls, reason: ReasonCode, detail: str = "", **data: Any) -> StepState:
        """Create an Unsatisfied state."""
        return cls(kind=StateKind.UNSATISFIED, reason=reason, detail=detail, data=data)

    @classmethod
    def undetermined(
        cls,
        detail: str,
        reason: ReasonCode = ReasonCode.PROBE_FAILED,
        **data: Any,
    ) -> StepState:
        """Create an Unknown state (the probe itself failed)."""
        return cls(kind=StateKind.UNKNOWN, reason=reason, detail=detail, data=data)


class Outcome(BaseModel):
    """Result of handling one step.

    ``skipped`` marks a step that was already satisfied and needed no
    remediation. ``warning`` marks a tolerated soft failure.
    """

    success: bool
    requires_restart: bool = False
    message: str = ""
    error_detail: str | None = None
    reason: ReasonCode = ReasonCode.NONE
    skipped: bool = False
    warning: bool = False

    @classmethod
    def done(cls, message: str = "", requires_restart: bool = False) -> Outcome:
        """Create a successful remediation outcome."""
        return cls(success=True, message=message, requires_restart=requires_restart)

    @classmethod
    def already(cls, message: str = "") -> Outcome:
        """Create an outcome for a step that was already satisfied."""
        return cls(success=True, message=message, skipped=True)

    @classmethod
    def tolerated(cls, message: str, reason: ReasonCode = ReasonCode.PROBE_FAILED) -> Outcome:
        """Create a soft-failure outcome that lets the pipeline continue."""
        return cls(success=True, message=message, reason=reason, warning=True)

    @classmethod
    def failure(
        cls,
        reason: ReasonCode,
        message: str,
        error_detail: str | None = None,
    ) -> Outcome:
        """Create a failed outcome."""
        return cls(
            success=False,
            message=message,
            reason=reason,
            error_detail=error_detail,
        )


@dataclass(frozen=True)
class Step:
    """One entry of the static pipeline definition."""

    id: StepId
    ordinal: int
    probe: Callable[[], StepState]
    remediate: Callable[[StepState], Outcome]
    title: str = ""
    unknown_blocks: bool = True     # False: an Unknown probe is only a warning
    remediable: bool = True         # False: Unsatisfied halts without remediation
    verify: bool = True             # re-probe after a successful remediation

    @property
    def label(self) -> str:
        return self.title or self.id.value
