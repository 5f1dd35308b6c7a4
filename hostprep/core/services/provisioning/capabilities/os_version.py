"""
OS version compatibility — probe only, no remediation.
"""

from __future__ import annotations

import logging
from typing import Callable

from hostprep.core.models.host import HostInfo
from hostprep.core.models.step import ReasonCode, StepId, StepState
from hostprep.core.services.provisioning.capabilities.base import Capability
from hostprep.core.services.provisioning.data import constants as c
from hostprep.core.services.provisioning.detection.host import HostDetectionError, detect_host

logger = logging.getLogger(__name__)


def evaluate_host(info: HostInfo) -> StepState:
    """Decide compatibility from a HostInfo (pure)."""
    version = info.version_text
    arch = info.architecture

    if info.major < c.MIN_MAJOR_VERSION:
        return StepState.needs(
            ReasonCode.OS_TOO_OLD,
            f"Windows {version} is too old; Windows 10 or later is required.",
        )

    if arch in c.UNSUPPORTED_ARCHITECTURES:
        return StepState.needs(ReasonCode.ARCH_UNSUPPORTED, "x86 architecture not supported.")

    if arch not in ("x64", "arm64"):
        return StepState.needs(
            ReasonCode.ARCH_UNSUPPORTED,
            f"Unrecognized processor architecture: {arch}.",
        )

    if info.build >= c.WIN11_MIN_BUILD:
        return StepState.ok(f"Windows 11 (build {info.build}, {arch})")

    if arch == "arm64" and info.build < c.WIN10_MIN_BUILD_ARM64:
        return StepState.needs(
            ReasonCode.OS_BUILD_TOO_LOW,
            f"Requires Windows 10 2004+ (Build {c.WIN10_MIN_BUILD_ARM64}+) for ARM64; "
            f"found build {info.build}.",
        )

    if arch == "x64" and info.build < c.WIN10_MIN_BUILD_X64:
        return StepState.needs(
            ReasonCode.OS_BUILD_TOO_LOW,
            f"Requires Windows 10 1903+ (Build {c.WIN10_MIN_BUILD_X64}+) for x64; "
            f"found build {info.build}.",
        )

    return StepState.ok(f"Windows 10 (build {info.build}, {arch})")


class OsVersionCapability(Capability):
    step_id = StepId.OS_VERSION
    title = "Windows version"
    remediable = False

    def __init__(self, host_probe: Callable[[], HostInfo] = detect_host):
        self._host_probe = host_probe

    def probe(self) -> StepState:
        try:
            info = self._host_probe()
        except HostDetectionError as e:
            return StepState.undetermined(str(e))
        logger.info("Host: Windows %s %s %s", info.version_text, info.architecture, info.product_name)
        return evaluate_host(info)
