"""
Shared test fixtures and configuration.

``SimulatedHost`` models a Windows machine entirely in memory: every
external command the capabilities issue is answered from (and may
change) its state, and release downloads are served from ``file://``
URLs under the test's tmp directory.
"""

import hashlib
from pathlib import Path

import pytest

from hostprep.adapters.mock import MockCommandRunner
from hostprep.core.config.settings import InstallerSettings
from hostprep.core.models.host import HostInfo
from hostprep.core.models.invocation import CommandResult, Invocation
from hostprep.core.services.provisioning.data import constants as c
from hostprep.core.services.provisioning.domain.artifact_resolver import parse_release
from hostprep.core.services.provisioning.execution.download import ArtifactFetcher
from hostprep.core.services.provisioning.execution.staging import ArtifactStore

WSL_LATEST = "2.4.13"
IMAGE_LATEST = "1.2.0"


def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class SimulatedHost:
    """In-memory Windows host driven through a MockCommandRunner."""

    def __init__(
        self,
        root: Path,
        *,
        build: int = 22631,
        arch: str = "x64",
        boinc_running: bool = False,
        features: dict[str, str] | None = None,
        feature_restart: bool = False,
        wsl_version: str | None = WSL_LATEST,
        default_mode: int = 2,
        image_version: str | None = IMAGE_LATEST,
        online: bool = True,
        publish_digests: bool = True,
    ):
        self.root = root
        self.build = build
        self.arch = arch
        self.boinc_running = boinc_running
        self.features = features or {f: "Enabled" for f in c.REQUIRED_FEATURES}
        self.feature_restart = feature_restart
        self.wsl_version = wsl_version
        self.default_mode = default_mode
        self.image_registered = image_version is not None
        self.image_version = image_version
        self.online = online
        self.publish_digests = publish_digests
        self.wsl_latest = WSL_LATEST
        self.image_latest = IMAGE_LATEST

        self.runner = MockCommandRunner()
        # Every command line contains "", so this answers all of them
        self.runner.set_response("", self._dispatch)

    def restart(self) -> None:
        """Simulate a Windows restart: pending features become enabled."""
        for name, state in self.features.items():
            if state == "Enable Pending":
                self.features[name] = "Enabled"

    # ── Collaborators handed to build_orchestrator ─────────────

    def host_info(self) -> HostInfo:
        return HostInfo(major=10, minor=0, build=self.build, architecture=self.arch)

    def architecture(self) -> str:
        return self.arch

    def settings(self) -> InstallerSettings:
        return InstallerSettings(staging_dir=str(self.root / "staging"))

    def release_source(self, url: str, **kwargs) -> dict:
        if not self.online:
            return {"ok": False, "error": "Network error during release lookup: offline"}
        if "WSL" in url:
            return {"ok": True, "release": self._release(
                self.wsl_latest, [f"wsl.{self.wsl_latest}.0.x64.msi", f"wsl.{self.wsl_latest}.0.arm64.msi"],
            )}
        return {"ok": True, "release": self._release(
            self.image_latest, ["boinc-buda-runner.wsl"],
        )}

    def _release(self, tag: str, names: list[str]) -> object:
        assets_dir = self.root / "assets"
        assets_dir.mkdir(parents=True, exist_ok=True)
        assets = []
        for name in names:
            path = assets_dir / name
            data = f"{name} payload {tag}".encode()
            path.write_bytes(data)
            asset = {"name": name, "browser_download_url": path.as_uri(), "size": len(data)}
            if self.publish_digests:
                asset["digest"] = f"sha256:{sha256(data)}"
            assets.append(asset)
        return parse_release({"tag_name": f"v{tag}", "assets": assets, "body": ""})

    # ── Command handlers ───────────────────────────────────────

    def _dispatch(self, inv: Invocation) -> CommandResult:
        tool = inv.executable.replace("\\", "/").rsplit("/", 1)[-1].lower()
        handlers = {
            "tasklist.exe": self._tasklist,
            c.DISM_EXE: self._dism,
            c.WSL_EXE: self._wsl,
            "msiexec.exe": self._msiexec,
        }
        if tool not in handlers:
            return CommandResult.not_started(inv.command_line, f"Executable not found: {inv.executable}")
        return handlers[tool](inv)

    def _tasklist(self, inv: Invocation) -> CommandResult:
        if self.boinc_running:
            return CommandResult.success(stdout='"boinc.exe","4242","Services","0","12,345 K"')
        return CommandResult.success(stdout="INFO: No tasks are running which match the specified criteria.")

    def _dism(self, inv: Invocation) -> CommandResult:
        feature = next(a.split(":", 1)[1] for a in inv.args if a.startswith("/featurename:"))
        if "/get-featureinfo" in inv.args:
            state = self.features.get(feature)
            if state is None:
                return CommandResult.exited(0x800F080C, stdout=f"Feature name {feature} is unknown.\nError: 0x800f080c")
            return CommandResult.success(stdout=f"Feature Name : {feature}\nState : {state}\n")
        if self.feature_restart:
            self.features[feature] = "Enable Pending"
            return CommandResult.exited(3010, stdout="The operation completed successfully.\nRestart Windows to complete this operation.")
        self.features[feature] = "Enabled"
        return CommandResult.success(stdout="The operation completed successfully.")

    def _msiexec(self, inv: Invocation) -> CommandResult:
        self.wsl_version = self.wsl_latest
        return CommandResult.success()

    def _wsl(self, inv: Invocation) -> CommandResult:
        args = inv.args
        if args[:1] == ["--version"]:
            if self.wsl_version is None:
                return CommandResult.exited(1, stderr="wsl.exe is not recognized")
            return CommandResult.success(stdout=f"WSL version: {self.wsl_version}.0\nKernel version: 5.15.167.4-1\nWSLg version: 1.0.65")
        if args[:1] == ["--status"]:
            return CommandResult.success(stdout=f"Default Distribution: {c.IMAGE_NAME}\nDefault Version: {self.default_mode}")
        if args[:1] == ["--set-default-version"]:
            self.default_mode = int(args[1])
            return CommandResult.success(stdout="For information on key differences with WSL 2 please visit https://aka.ms/wsl2")
        if args[:2] == ["--list", "--quiet"]:
            names = [c.IMAGE_NAME] if self.image_registered else []
            return CommandResult.success(stdout="\n".join(["Ubuntu", *names]))
        if args[:1] == ["--unregister"]:
            self.image_registered = False
            self.image_version = None
            return CommandResult.success(stdout="Unregistering.\nThe operation completed successfully.")
        if args[:2] == ["--install", "--from-file"]:
            self.image_registered = True
            self.image_version = self.image_latest
            return CommandResult.success(stdout=f"Installing...\n{c.IMAGE_SETUP_MARKER}\nboinc@host:~$")
        if args[:2] == ["-d", c.IMAGE_NAME]:
            inner = args[2:]
            if not self.image_registered:
                return CommandResult.exited(1, stdout="There is no distribution with the supplied name.")
            if inner[:1] == ["test"]:
                return CommandResult.success(stdout="exists" if self.image_version else "missing")
            if inner[:1] == ["cat"]:
                return CommandResult.success(stdout=f"version: {self.image_version}")
            return CommandResult.success(stdout=c.IMAGE_SETUP_GREETING)
        return CommandResult.exited(1, stderr=f"unexpected wsl call: {args}")


# ── Fixtures ────────────────────────────────────────────────────


@pytest.fixture
def settings(tmp_path: Path) -> InstallerSettings:
    return InstallerSettings(staging_dir=str(tmp_path / "staging"))


@pytest.fixture
def store(tmp_path: Path) -> ArtifactStore:
    return ArtifactStore(tmp_path / "staging")


@pytest.fixture
def fetcher(store: ArtifactStore) -> ArtifactFetcher:
    return ArtifactFetcher(store)


@pytest.fixture
def runner() -> MockCommandRunner:
    return MockCommandRunner()


@pytest.fixture
def make_host(tmp_path: Path):
    """Factory for SimulatedHost bound to this test's tmp directory."""

    def _make(**kwargs) -> SimulatedHost:
        return SimulatedHost(tmp_path, **kwargs)

    return _make
