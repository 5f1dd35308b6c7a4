"""
Virtualization subsystem — WSL presence, version and default mode.

Three independent checks: is WSL installed, is it at least the latest
published release, is the default version 2. Remediation installs or
updates from a verified release package and then sets the default
mode; a wrong default alone only needs the set-default call.

An undecidable version comparison fails open here: WSL runs with
elevated privileges, so an unknown version is treated as outdated.
An unreachable release index is different: the latest version is
unknown and the probe reports Unknown.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from hostprep.adapters.base import CommandRunner
from hostprep.core.models.artifact import ReleaseMetadata
from hostprep.core.models.invocation import CommandResult, Invocation
from hostprep.core.models.step import Outcome, ReasonCode, StepId, StepState
from hostprep.core.services.provisioning.capabilities.base import Capability
from hostprep.core.services.provisioning.data import constants as c
from hostprep.core.services.provisioning.detection.host import detect_architecture
from hostprep.core.services.provisioning.domain.artifact_resolver import resolve_asset
from hostprep.core.services.provisioning.domain.version_compare import (
    UnknownVersionPolicy,
    try_normalize,
    update_required,
)
from hostprep.core.services.provisioning.execution.download import (
    ArtifactFetcher,
    ReleaseSource,
    fetch_release_metadata,
    logging_progress,
)

if TYPE_CHECKING:
    from hostprep.core.config.settings import InstallerSettings

logger = logging.getLogger(__name__)

VERSION_POLICY = UnknownVersionPolicy.FAIL_OPEN


def parse_subsystem_version(output: str) -> str | None:
    """Version from ``wsl --version``: the ``WSL ...: x.y.z`` line."""
    for line in output.splitlines():
        if "WSL" in line and "WSLg" not in line and ":" in line:
            return try_normalize(line.split(":", 1)[1])
    return None


def parse_default_mode(output: str) -> int | None:
    """Default version from ``wsl --status`` (any ``...: 1|2`` line)."""
    for line in output.splitlines():
        if ":" not in line:
            continue
        value = line.split(":", 1)[1].strip()
        if value in ("1", "2"):
            return int(value)
    return None


def installer_invocation(path: str, timeout: float) -> Invocation:
    """How to run a subsystem package, by file type."""
    suffix = Path(path).suffix.lower()
    if suffix == ".msi":
        return Invocation(
            executable=c.MSIEXEC_EXE,
            args=["/i", path, "/quiet", "/norestart"],
            timeout=timeout,
        )
    if suffix in (".msix", ".msixbundle", ".appx", ".appxbundle"):
        quoted = path.replace("'", "''")
        return Invocation(
            executable=c.POWERSHELL_EXE,
            args=["-NoProfile", "-NonInteractive", "-Command", f"Add-AppxPackage -Path '{quoted}'"],
            timeout=timeout,
        )
    return Invocation(executable=path, args=["/quiet"], timeout=timeout)


class SubsystemCapability(Capability):
    step_id = StepId.SUBSYSTEM
    title = "WSL"

    def __init__(
        self,
        runner: CommandRunner,
        fetcher: ArtifactFetcher,
        settings: InstallerSettings,
        release_source: ReleaseSource = fetch_release_metadata,
        architecture: Callable[[], str] = detect_architecture,
    ):
        self._runner = runner
        self._fetcher = fetcher
        self._settings = settings
        self._release_source = release_source
        self._architecture = architecture

    def _wsl(self, *args: str, timeout: float) -> CommandResult:
        return self._runner.run(Invocation(
            executable=c.WSL_EXE,
            args=list(args),
            timeout=timeout,
            encoding="utf-16-le",
        ))

    def _latest(self) -> tuple[ReleaseMetadata | None, str]:
        lookup = self._release_source(
            self._settings.subsystem_release_url,
            timeout=self._settings.timeouts.metadata,
            user_agent=self._settings.user_agent,
        )
        if lookup.get("ok"):
            return lookup["release"], ""
        return None, lookup.get("error", "release lookup failed")

    # ── Probe ───────────────────────────────────────────────────

    def probe(self) -> StepState:
        t = self._settings.timeouts
        required = self._settings.required_default_mode

        version = self._wsl("--version", timeout=t.probe)
        if version.timed_out:
            return StepState.undetermined("Timed out running wsl --version", ReasonCode.TIMEOUT)
        if not version.ok:
            logger.info("WSL not installed (%s)", version.describe())
            return StepState.needs(
                ReasonCode.SUBSYSTEM_NOT_INSTALLED,
                "WSL is not installed",
                install=True, update=False, set_default=True,
            )

        current = parse_subsystem_version(version.stdout)
        status = self._wsl("--status", timeout=t.probe)
        default_mode = parse_default_mode(status.output) if status.ok else None

        release, error = self._latest()
        wrong_default = default_mode != required
        if release is None:
            if not wrong_default:
                return StepState.undetermined(
                    f"WSL {current or 'unknown'} installed; latest version unknown: {error}",
                    ReasonCode.RELEASE_UNAVAILABLE,
                    current=current,
                )
            # The default version can still be fixed offline
            return StepState.needs(
                ReasonCode.SUBSYSTEM_WRONG_DEFAULT,
                f"default version is {default_mode or 'unknown'}, not {required}; "
                f"latest WSL version unknown: {error}",
                install=False, update=False, set_default=True, current=current,
            )

        latest = release.tag_version
        outdated = update_required(current, latest, VERSION_POLICY)

        logger.info(
            "WSL %s (latest %s), default version %s",
            current or "unknown", latest or "unknown", default_mode or "unknown",
        )

        if not outdated and not wrong_default:
            return StepState.ok(f"WSL {current} installed, default version {default_mode}")

        problems = []
        if outdated:
            problems.append(
                f"WSL version {current or 'unknown'} is outdated (latest {latest})"
            )
        if wrong_default:
            problems.append(f"default version is {default_mode or 'unknown'}, not {required}")
        return StepState.needs(
            ReasonCode.SUBSYSTEM_OUTDATED if outdated else ReasonCode.SUBSYSTEM_WRONG_DEFAULT,
            "; ".join(problems),
            install=False,
            update=outdated,
            set_default=wrong_default,
            current=current,
            latest=latest,
            release=release,
        )

    # ── Remediate ───────────────────────────────────────────────

    def remediate(self, state: StepState) -> Outcome:
        needs_package = state.data.get("install") or state.data.get("update")
        restart = False
        done: list[str] = []

        if needs_package:
            outcome = self._install_package(state.data.get("release"))
            if not outcome.success:
                return outcome
            restart = outcome.requires_restart
            done.append(outcome.message)

        if state.data.get("set_default") or state.data.get("install"):
            outcome = self._set_default_mode()
            if not outcome.success:
                if restart:
                    # Finished on the next run, once Windows has restarted
                    logger.warning("Setting default version deferred until restart: %s", outcome.error_detail)
                else:
                    return outcome
            else:
                done.append(outcome.message)

        message = "; ".join(done) or "WSL configured"
        return Outcome.done(message, requires_restart=restart)

    def _install_package(self, release: ReleaseMetadata | None) -> Outcome:
        t = self._settings.timeouts

        if release is None:
            release, error = self._latest()
            if release is None:
                return Outcome.failure(
                    ReasonCode.RELEASE_UNAVAILABLE,
                    "Could not retrieve the latest WSL release (network error)",
                    error,
                )

        arch = self._architecture()
        asset = resolve_asset(release, arch, self._settings.subsystem_asset_extensions)
        if asset is None:
            return Outcome.failure(
                ReasonCode.ASSET_NOT_FOUND,
                f"No WSL installer for {arch} in release {release.tag_version}; "
                f"install WSL from the Microsoft Store: {c.SUBSYSTEM_STORE_URL}",
            )

        fetched = self._fetcher.fetch(
            asset,
            asset.expected_digest,
            timeout=t.subsystem_download,
            progress=logging_progress(f"Downloading {asset.file_name}"),
        )
        if not fetched.ok or fetched.artifact is None:
            return Outcome.failure(fetched.reason, f"WSL download failed: {fetched.error}", fetched.error)

        logger.info("Installing %s", fetched.artifact.file_path)
        result = self._runner.run(installer_invocation(fetched.artifact.file_path, t.install))
        code = (result.exit_code or 0) & 0xFFFFFFFF

        if result.timed_out:
            return Outcome.failure(ReasonCode.TIMEOUT, "WSL installation timed out", result.describe())
        if result.exit_code is not None and code in (c.EXIT_RESTART_REQUIRED, c.EXIT_RESTART_INITIATED):
            return Outcome.done(f"Installed WSL {release.tag_version}", requires_restart=True)
        if result.exit_code is not None and code in (c.EXIT_ACCESS_DENIED, c.EXIT_ELEVATION_REQUIRED, 0x80070005):
            return Outcome.failure(
                ReasonCode.PERMISSION_DENIED,
                "WSL installation failed: administrator rights are required",
                result.describe(),
            )
        if not result.ok:
            return Outcome.failure(
                ReasonCode.SUBSYSTEM_INSTALL_FAILED,
                "WSL installation failed",
                result.describe(),
            )
        return Outcome.done(f"Installed WSL {release.tag_version}")

    def _set_default_mode(self) -> Outcome:
        mode = str(self._settings.required_default_mode)
        result = self._wsl("--set-default-version", mode, timeout=self._settings.timeouts.set_default)
        if not result.ok:
            return Outcome.failure(
                ReasonCode.SUBSYSTEM_CONFIG_FAILED,
                f"Failed to set WSL default version to {mode}",
                result.describe(),
            )
        return Outcome.done(f"Default version set to {mode}")
