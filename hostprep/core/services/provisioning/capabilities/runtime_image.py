"""
Runtime image — the boinc-buda-runner WSL distribution.

The probe walks three checks: is the image registered, does it carry
a version marker file, and is that version current. Each unsatisfied
sub-state (not installed, version unreadable, outdated) is fixed the
same way: unregister if present, fetch and verify the new image,
install it, and wait for first-boot setup to report completion.

An undecidable comparison against the latest release fails closed: a
readable installed version is kept when the published tag cannot be
parsed. An unreachable release index leaves the latest version unknown
and the probe reports Unknown.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from hostprep.adapters.base import CommandRunner, CompletionDetector, MarkerDetector
from hostprep.core.models.artifact import ReleaseMetadata
from hostprep.core.models.invocation import CommandResult, Invocation
from hostprep.core.models.step import Outcome, ReasonCode, StepId, StepState
from hostprep.core.services.provisioning.capabilities.base import Capability
from hostprep.core.services.provisioning.data import constants as c
from hostprep.core.services.provisioning.detection.host import detect_architecture
from hostprep.core.services.provisioning.domain.artifact_resolver import resolve_asset
from hostprep.core.services.provisioning.domain.version_compare import (
    UnknownVersionPolicy,
    extract_version,
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

VERSION_POLICY = UnknownVersionPolicy.FAIL_CLOSED

# Image sub-states
NOT_INSTALLED = "not_installed"
NO_VERSION = "installed_no_version"
OUTDATED = "installed_outdated"
UP_TO_DATE = "installed_up_to_date"


def parse_distribution_list(output: str) -> list[str]:
    """Names from ``wsl --list --quiet``."""
    return [line.strip() for line in output.splitlines() if line.strip()]


class RuntimeImageCapability(Capability):
    step_id = StepId.RUNTIME_IMAGE
    title = "BUDA runner image"

    def __init__(
        self,
        runner: CommandRunner,
        fetcher: ArtifactFetcher,
        settings: InstallerSettings,
        release_source: ReleaseSource = fetch_release_metadata,
        architecture: Callable[[], str] = detect_architecture,
        completion: Callable[[], CompletionDetector] | None = None,
    ):
        self._runner = runner
        self._fetcher = fetcher
        self._settings = settings
        self._release_source = release_source
        self._architecture = architecture
        self._completion = completion or (lambda: MarkerDetector(settings.setup_marker))

    @property
    def image(self) -> str:
        return self._settings.image_name

    def _wsl(self, *args: str, timeout: float) -> CommandResult:
        return self._runner.run(Invocation(
            executable=c.WSL_EXE,
            args=list(args),
            timeout=timeout,
            encoding="utf-16-le",
        ))

    def _in_image(self, *args: str, timeout: float) -> CommandResult:
        """Run a command inside the image (output is the command's, UTF-8)."""
        return self._runner.run(Invocation(
            executable=c.WSL_EXE,
            args=["-d", self.image, *args],
            timeout=timeout,
        ))

    def _latest(self) -> tuple[ReleaseMetadata | None, str]:
        lookup = self._release_source(
            self._settings.image_release_url,
            timeout=self._settings.timeouts.metadata,
            user_agent=self._settings.user_agent,
        )
        if lookup.get("ok"):
            return lookup["release"], ""
        return None, lookup.get("error", "release lookup failed")

    # ── Probe ───────────────────────────────────────────────────

    def is_registered(self) -> bool | None:
        """True/False, or None when the list cannot be read."""
        listing = self._wsl("--list", "--quiet", timeout=self._settings.timeouts.probe)
        if not listing.ok:
            # No distributions at all exits non-zero on some builds
            if listing.exit_code is not None and not listing.timed_out and not listing.stdout.strip():
                return False
            return None
        names = [n.lower() for n in parse_distribution_list(listing.stdout)]
        return self.image.lower() in names

    def installed_version(self) -> str | None:
        """Version from the marker file, or None if missing or unreadable."""
        t = self._settings.timeouts.image_probe
        marker = self._settings.image_version_file

        check = self._in_image(
            "test", "-f", marker, "&&", "echo", "exists", "||", "echo", "missing",
            timeout=t,
        )
        if not check.ok or "exists" not in check.stdout:
            logger.info("Version file %s not found in %s", marker, self.image)
            return None

        content = self._in_image("cat", marker, timeout=t)
        if not content.ok:
            return None
        return extract_version(content.stdout)

    def probe(self) -> StepState:
        registered = self.is_registered()
        if registered is None:
            return StepState.undetermined(f"Cannot list WSL distributions to find {self.image}")

        if not registered:
            return StepState.needs(
                ReasonCode.IMAGE_NOT_INSTALLED,
                f"{self.image} is not installed",
                substate=NOT_INSTALLED,
            )

        current = self.installed_version()
        if current is None:
            return StepState.needs(
                ReasonCode.IMAGE_VERSION_UNREADABLE,
                f"{self.image} is installed but its version cannot be read; reinstalling",
                substate=NO_VERSION,
            )

        release, error = self._latest()
        if release is None:
            return StepState.undetermined(
                f"{self.image} {current} installed; latest version unknown: {error}",
                ReasonCode.RELEASE_UNAVAILABLE,
                current=current,
            )

        latest = release.tag_version
        if not update_required(current, latest, VERSION_POLICY):
            return StepState.ok(
                f"{self.image} {current} is up to date",
                substate=UP_TO_DATE,
                current=current,
            )

        return StepState.needs(
            ReasonCode.IMAGE_OUTDATED,
            f"{self.image} {current} is outdated (latest {latest})",
            substate=OUTDATED,
            current=current,
            latest=latest,
            release=release,
        )

    # ── Remediate ───────────────────────────────────────────────

    def remediate(self, state: StepState) -> Outcome:
        t = self._settings.timeouts

        release = state.data.get("release")
        if release is None:
            release, error = self._latest()
            if release is None:
                return Outcome.failure(
                    ReasonCode.RELEASE_UNAVAILABLE,
                    f"Could not retrieve the latest {self.image} release (network error)",
                    error,
                )

        if state.data.get("substate") != NOT_INSTALLED:
            self._unregister()

        arch = self._architecture()
        asset = resolve_asset(release, arch, self._settings.image_asset_extensions)
        if asset is None:
            return Outcome.failure(
                ReasonCode.ASSET_NOT_FOUND,
                f"No {self.image} image found in release {release.tag_version}",
            )

        fetched = self._fetcher.fetch(
            asset,
            asset.expected_digest,
            timeout=t.image_download,
            progress=logging_progress(f"Downloading {asset.file_name}"),
        )
        if not fetched.ok or fetched.artifact is None:
            return Outcome.failure(
                fetched.reason,
                f"{self.image} download failed: {fetched.error}",
                fetched.error,
            )

        try:
            installed = self._install(fetched.artifact.file_path)
            if not installed.success:
                return installed
            return self._first_boot(release.tag_version)
        finally:
            self._fetcher.store.discard(fetched.artifact)

    def _unregister(self) -> None:
        logger.info("Unregistering existing %s", self.image)
        result = self._wsl("--unregister", self.image, timeout=self._settings.timeouts.unregister)
        if not result.ok:
            logger.warning("Unregister of %s failed (continuing): %s", self.image, result.describe())

    def _install(self, path: str) -> Outcome:
        """Install from file and wait for the setup completion signal."""
        logger.info("Installing %s from %s", self.image, path)
        result = self._runner.run_until(
            Invocation(
                executable=c.WSL_EXE,
                args=["--install", "--from-file", path],
                timeout=self._settings.timeouts.setup_marker,
                encoding="utf-16-le",
            ),
            self._completion(),
        )
        if result.timed_out:
            return Outcome.failure(
                ReasonCode.TIMEOUT,
                f"{self.image} setup did not complete within "
                f"{self._settings.timeouts.setup_marker:g}s; installation timed out",
                result.describe(),
            )
        if not result.ok:
            return Outcome.failure(
                ReasonCode.IMAGE_INSTALL_FAILED,
                f"{self.image} installation failed",
                result.describe(),
            )
        return Outcome.done(f"{self.image} installed")

    def _first_boot(self, version: str) -> Outcome:
        result = self._in_image(
            "/bin/bash", "-c", f"echo '{c.IMAGE_SETUP_GREETING}' && exit 0",
            timeout=self._settings.timeouts.first_boot,
        )
        if not result.ok:
            return Outcome.failure(
                ReasonCode.IMAGE_SETUP_FAILED,
                f"{self.image} initial setup failed",
                result.describe(),
            )
        return Outcome.done(f"Installed {self.image} {version}")
