"""
OS optional features — Virtual Machine Platform and the Linux subsystem.

Feature state and enablement both go through DISM. Only features
found disabled are enabled; an enabled feature never triggers another
enable call. Enablement usually asks for a restart, which halts the
pipeline until the next run.
"""

from __future__ import annotations

import logging
import re

from hostprep.adapters.base import CommandRunner
from hostprep.core.models.invocation import CommandResult, Invocation
from hostprep.core.models.step import Outcome, ReasonCode, StepId, StepState
from hostprep.core.services.provisioning.capabilities.base import Capability
from hostprep.core.services.provisioning.data import constants as c

logger = logging.getLogger(__name__)

_STATE_RE = re.compile(r"^\s*State\s*:\s*(.+?)\s*$", re.MULTILINE | re.IGNORECASE)
_NOT_FOUND_EXIT = 0x800F080C     # CBS_E_UNKNOWN_UPDATE

# Per-feature states
ENABLED = "enabled"
DISABLED = "disabled"
ENABLE_PENDING = "enable_pending"
NOT_FOUND = "not_found"


def parse_feature_state(result: CommandResult) -> str | None:
    """Feature state from ``dism /get-featureinfo`` output, or None."""
    text = result.output
    lowered = text.lower()
    if (result.exit_code is not None and result.exit_code & 0xFFFFFFFF == _NOT_FOUND_EXIT) or (
        "feature name" in lowered and "not found" in lowered
    ):
        return NOT_FOUND

    match = _STATE_RE.search(text)
    if not match:
        return None
    value = match.group(1).lower()
    if value.startswith("enable pending"):
        return ENABLE_PENDING
    if value.startswith("enabled"):
        return ENABLED
    if value.startswith("disable"):
        return DISABLED
    return None


def _needs_elevation(result: CommandResult) -> bool:
    code = (result.exit_code or 0) & 0xFFFFFFFF
    return code in (c.EXIT_ELEVATION_REQUIRED, c.EXIT_ACCESS_DENIED) or (
        "elevated permissions are required" in result.output.lower()
    )


class OsFeaturesCapability(Capability):
    step_id = StepId.OS_FEATURES
    title = "Windows features"

    def __init__(
        self,
        runner: CommandRunner,
        features: list[str] | tuple[str, ...] = c.REQUIRED_FEATURES,
        query_timeout: float = 30,
        enable_timeout: float = 120,
    ):
        self._runner = runner
        self._features = list(features)
        self._query_timeout = query_timeout
        self._enable_timeout = enable_timeout

    # ── Probe ───────────────────────────────────────────────────

    def query_feature(self, feature: str) -> CommandResult:
        return self._runner.run(Invocation(
            executable=c.DISM_EXE,
            args=["/English", "/online", "/get-featureinfo", f"/featurename:{feature}"],
            timeout=self._query_timeout,
        ))

    def probe(self) -> StepState:
        states: dict[str, str] = {}
        for feature in self._features:
            result = self.query_feature(feature)
            if result.timed_out:
                return StepState.undetermined(
                    f"Timed out querying Windows feature {feature}", ReasonCode.TIMEOUT,
                )
            if _needs_elevation(result):
                return StepState.undetermined(
                    "Administrator rights are required to query Windows features",
                    ReasonCode.PERMISSION_DENIED,
                )
            state = parse_feature_state(result)
            if state is None:
                return StepState.undetermined(
                    f"Could not read state of Windows feature {feature}: {result.describe()}",
                )
            states[feature] = state
            logger.debug("Feature %s: %s", feature, state)

        missing = [f for f, s in states.items() if s == NOT_FOUND]
        if missing:
            return StepState.needs(
                ReasonCode.FEATURE_NOT_FOUND,
                f"Windows feature not available on this edition: {', '.join(missing)}",
                features=states,
            )

        if all(s == ENABLED for s in states.values()):
            return StepState.ok("All required Windows features are enabled", features=states)

        pending = [f for f, s in states.items() if s != ENABLED]
        return StepState.needs(
            ReasonCode.FEATURE_DISABLED,
            f"Windows features not enabled: {', '.join(pending)}",
            features=states,
        )

    # ── Remediate ───────────────────────────────────────────────

    def enable_feature(self, feature: str) -> CommandResult:
        return self._runner.run(Invocation(
            executable=c.DISM_EXE,
            args=[
                "/English", "/online", "/enable-feature",
                f"/featurename:{feature}", "/all", "/norestart",
            ],
            timeout=self._enable_timeout,
        ))

    def remediate(self, state: StepState) -> Outcome:
        if state.reason == ReasonCode.FEATURE_NOT_FOUND:
            return Outcome.failure(state.reason, state.detail)

        states: dict[str, str] = state.data.get("features", {})
        restart = False
        enabled: list[str] = []

        for feature in self._features:
            current = states.get(feature)
            if current == ENABLED:
                continue
            if current == ENABLE_PENDING:
                logger.info("Feature %s is enabled pending a restart", feature)
                restart = True
                continue

            logger.info("Enabling Windows feature %s", feature)
            result = self.enable_feature(feature)
            code = (result.exit_code or 0) & 0xFFFFFFFF

            if result.timed_out:
                return Outcome.failure(
                    ReasonCode.TIMEOUT,
                    f"Timed out enabling Windows feature {feature}",
                    result.describe(),
                )
            if _needs_elevation(result):
                return Outcome.failure(
                    ReasonCode.PERMISSION_DENIED,
                    f"Administrator rights are required to enable {feature}",
                    result.describe(),
                )
            if result.exit_code is not None and code == c.DISM_ALREADY_ENABLED:
                logger.info("Feature %s was already enabled", feature)
                continue
            if result.exit_code is not None and code in (c.EXIT_RESTART_REQUIRED, c.EXIT_RESTART_INITIATED):
                restart = True
                enabled.append(feature)
                continue
            if not result.ok:
                return Outcome.failure(
                    ReasonCode.FEATURE_ENABLE_FAILED,
                    f"Failed to enable Windows feature {feature}",
                    result.describe(),
                )

            enabled.append(feature)
            if any(word in result.output.lower() for word in ("restart", "reboot")):
                restart = True

        message = f"Enabled {', '.join(enabled)}" if enabled else "Windows features already enabled"
        if restart:
            message += "; restart Windows to finish"
        return Outcome.done(message, requires_restart=restart)
