"""
Tests for the five capabilities, driven through a simulated host.

Each capability is probed and remediated against ``SimulatedHost``
(see conftest.py) or a bare MockCommandRunner when a single scripted
answer is enough.
"""

import sys

import pytest

from hostprep.core.models.host import HostInfo
from hostprep.core.models.invocation import CommandResult
from hostprep.core.models.step import ReasonCode, StateKind, StepId, StepState
from hostprep.core.services.provisioning.capabilities.companion_process import (
    CompanionProcessCapability,
)
from hostprep.core.services.provisioning.capabilities.os_features import (
    DISABLED,
    ENABLE_PENDING,
    ENABLED,
    NOT_FOUND,
    OsFeaturesCapability,
    parse_feature_state,
)
from hostprep.core.services.provisioning.capabilities.os_version import (
    OsVersionCapability,
    evaluate_host,
)
from hostprep.core.services.provisioning.capabilities.runtime_image import (
    NO_VERSION,
    NOT_INSTALLED,
    OUTDATED,
    UP_TO_DATE,
    RuntimeImageCapability,
    parse_distribution_list,
)
from hostprep.core.services.provisioning.capabilities.subsystem import (
    SubsystemCapability,
    installer_invocation,
    parse_default_mode,
    parse_subsystem_version,
)
from hostprep.core.services.provisioning.data import constants as c
from hostprep.core.services.provisioning.detection import host as detection
from hostprep.core.services.provisioning.execution.download import ArtifactFetcher
from hostprep.core.services.provisioning.execution.staging import ArtifactStore

VMP, WSL_FEATURE = c.REQUIRED_FEATURES


def _host(build=22631, arch="x64", major=10):
    return HostInfo(major=major, minor=0, build=build, architecture=arch)


def _fetcher(host) -> ArtifactFetcher:
    return ArtifactFetcher(ArtifactStore(host.settings().resolved_staging_dir()))


def _subsystem(host) -> SubsystemCapability:
    return SubsystemCapability(
        host.runner,
        _fetcher(host),
        host.settings(),
        release_source=host.release_source,
        architecture=host.architecture,
    )


def _image(host) -> RuntimeImageCapability:
    return RuntimeImageCapability(
        host.runner,
        _fetcher(host),
        host.settings(),
        release_source=host.release_source,
        architecture=host.architecture,
    )


def _staged_files(host) -> list:
    root = host.settings().resolved_staging_dir()
    if not root.exists():
        return []
    return [p for p in root.rglob("*") if p.is_file()]


# ── OS version ───────────────────────────────────────────────────────


class TestEvaluateHost:
    def test_windows_11_any_architecture(self):
        assert evaluate_host(_host(22000, "arm64")).satisfied
        assert evaluate_host(_host(22631, "x64")).satisfied

    def test_windows_10_x64_threshold(self):
        assert evaluate_host(_host(18362, "x64")).satisfied
        state = evaluate_host(_host(18361, "x64"))
        assert state.reason == ReasonCode.OS_BUILD_TOO_LOW
        assert "18362" in state.detail

    def test_windows_10_arm64_threshold(self):
        assert evaluate_host(_host(19041, "arm64")).satisfied
        state = evaluate_host(_host(18362, "arm64"))
        assert state.reason == ReasonCode.OS_BUILD_TOO_LOW
        assert "19041" in state.detail

    def test_too_old(self):
        state = evaluate_host(_host(9600, "x64", major=6))
        assert state.unsatisfied
        assert state.reason == ReasonCode.OS_TOO_OLD

    def test_x86_rejected_even_on_windows_11(self):
        state = evaluate_host(_host(22631, "x86"))
        assert state.reason == ReasonCode.ARCH_UNSUPPORTED
        assert state.detail == "x86 architecture not supported."

    def test_unrecognized_architecture(self):
        assert evaluate_host(_host(22631, "unknown")).reason == ReasonCode.ARCH_UNSUPPORTED


class TestOsVersionCapability:
    def test_probe_uses_host_probe(self):
        cap = OsVersionCapability(host_probe=lambda: _host(19045, "x64"))
        assert cap.probe().satisfied

    def test_detection_error_is_unknown(self):
        def broken():
            raise detection.HostDetectionError("registry unavailable")

        state = OsVersionCapability(host_probe=broken).probe()
        assert state.unknown
        assert "registry unavailable" in state.detail

    def test_step_is_not_remediable(self):
        step = OsVersionCapability(host_probe=_host).as_step(2)
        assert step.id == StepId.OS_VERSION
        assert step.ordinal == 2
        assert step.remediable is False
        assert step.unknown_blocks is True

    def test_default_remediation_fails(self):
        cap = OsVersionCapability(host_probe=_host)
        state = StepState.needs(ReasonCode.OS_TOO_OLD, "too old")
        outcome = cap.remediate(state)
        assert outcome.success is False
        assert outcome.reason == ReasonCode.OS_TOO_OLD


# ── Detection ────────────────────────────────────────────────────────


class TestDetection:
    def test_normalize_architecture(self):
        assert detection.normalize_architecture("AMD64") == "x64"
        assert detection.normalize_architecture("aarch64") == "arm64"
        assert detection.normalize_architecture("i686") == "x86"
        assert detection.normalize_architecture("sparc") == "unknown"
        assert detection.normalize_architecture(None) == "unknown"

    def test_native_architecture_preferred(self, monkeypatch):
        monkeypatch.setenv("PROCESSOR_ARCHITEW6432", "ARM64")
        monkeypatch.setenv("PROCESSOR_ARCHITECTURE", "x86")
        assert detection.detect_architecture() == "arm64"

    def test_process_architecture(self, monkeypatch):
        monkeypatch.delenv("PROCESSOR_ARCHITEW6432", raising=False)
        monkeypatch.setenv("PROCESSOR_ARCHITECTURE", "AMD64")
        assert detection.detect_architecture() == "x64"

    def test_detect_host_requires_windows(self, monkeypatch):
        monkeypatch.setattr(sys, "platform", "linux")
        with pytest.raises(detection.HostDetectionError):
            detection.detect_host()

    def test_parse_tasklist(self):
        output = (
            '"boinc.exe","4242","Services","0","12,345 K"\n'
            '"boincmgr.exe","77","Console","1","9,000 K"\n'
            '"BOINC.EXE","5151","Console","1","1,000 K"\n'
            '"boinc.exe","n/a","Console","1","1 K"\n'
        )
        assert detection.parse_tasklist(output, "boinc.exe") == [4242, 5151]

    def test_parse_tasklist_no_match(self):
        info = "INFO: No tasks are running which match the specified criteria."
        assert detection.parse_tasklist(info, "boinc.exe") == []


# ── Companion process ────────────────────────────────────────────────


class TestCompanionProcess:
    def test_running(self, make_host):
        host = make_host(boinc_running=True)
        state = CompanionProcessCapability(host.runner).probe()
        assert state.reason == ReasonCode.COMPANION_RUNNING
        assert state.data["pids"] == [4242]

    def test_not_running(self, make_host):
        host = make_host()
        cap = CompanionProcessCapability(host.runner)
        assert cap.probe().satisfied
        assert host.runner.calls_matching("IMAGENAME eq boinc.exe")

    def test_query_failure_is_unknown(self, runner):
        runner.set_failure("tasklist", exit_code=1, stderr="ERROR: Access denied")
        state = CompanionProcessCapability(runner).probe()
        assert state.kind == StateKind.UNKNOWN
        assert "Access denied" in state.detail

    def test_unknown_does_not_block(self, runner):
        step = CompanionProcessCapability(runner).as_step(1)
        assert step.unknown_blocks is False
        assert step.remediable is False


# ── OS features ──────────────────────────────────────────────────────


class TestParseFeatureState:
    @pytest.mark.parametrize("text, expected", [
        ("Feature Name : VirtualMachinePlatform\nState : Enabled", ENABLED),
        ("State : Enable Pending", ENABLE_PENDING),
        ("State : Disabled", DISABLED),
        ("State : Disable Pending", DISABLED),
        ("Deployment Image Servicing and Management tool", None),
    ])
    def test_states(self, text, expected):
        assert parse_feature_state(CommandResult.success(stdout=text)) == expected

    def test_unknown_feature_exit_code(self):
        assert parse_feature_state(CommandResult.exited(0x800F080C)) == NOT_FOUND

    def test_unknown_feature_signed_exit_code(self):
        assert parse_feature_state(CommandResult.exited(0x800F080C - 2**32)) == NOT_FOUND


class TestOsFeatures:
    def test_all_enabled(self, make_host):
        host = make_host()
        cap = OsFeaturesCapability(host.runner)
        assert cap.probe().satisfied
        assert host.runner.calls_matching("/enable-feature") == []

    def test_only_disabled_features_are_enabled(self, make_host):
        host = make_host(features={VMP: "Disabled", WSL_FEATURE: "Enabled"})
        cap = OsFeaturesCapability(host.runner)

        state = cap.probe()
        assert state.reason == ReasonCode.FEATURE_DISABLED
        assert VMP in state.detail

        outcome = cap.remediate(state)
        assert outcome.success
        assert outcome.requires_restart is False
        enables = host.runner.calls_matching("/enable-feature")
        assert len(enables) == 1
        assert f"/featurename:{VMP}" in enables[0].args
        assert cap.probe().satisfied

    def test_restart_requested(self, make_host):
        host = make_host(
            features={VMP: "Disabled", WSL_FEATURE: "Disabled"}, feature_restart=True,
        )
        cap = OsFeaturesCapability(host.runner)
        outcome = cap.remediate(cap.probe())
        assert outcome.success
        assert outcome.requires_restart is True
        assert len(host.runner.calls_matching("/enable-feature")) == 2

    def test_enable_pending_skips_enable_and_requires_restart(self, make_host):
        host = make_host(features={VMP: "Enable Pending", WSL_FEATURE: "Enabled"})
        cap = OsFeaturesCapability(host.runner)
        outcome = cap.remediate(cap.probe())
        assert outcome.requires_restart is True
        assert host.runner.calls_matching("/enable-feature") == []

    def test_feature_missing_on_edition(self, make_host):
        host = make_host(features={VMP: "Enabled"})
        cap = OsFeaturesCapability(host.runner)
        state = cap.probe()
        assert state.reason == ReasonCode.FEATURE_NOT_FOUND
        assert WSL_FEATURE in state.detail

        outcome = cap.remediate(state)
        assert outcome.success is False
        assert host.runner.calls_matching("/enable-feature") == []

    def test_already_enabled_exit_code(self, runner):
        runner.set_output("/get-featureinfo", "State : Disabled")
        runner.set_response("/enable-feature", CommandResult.exited(0x800F0874))
        cap = OsFeaturesCapability(runner)
        outcome = cap.remediate(cap.probe())
        assert outcome.success
        assert outcome.requires_restart is False
        assert outcome.message == "Windows features already enabled"

    def test_enable_failure(self, runner):
        runner.set_output("/get-featureinfo", "State : Disabled")
        runner.set_failure("/enable-feature", exit_code=87, stderr="Error: 87")
        cap = OsFeaturesCapability(runner)
        outcome = cap.remediate(cap.probe())
        assert outcome.success is False
        assert outcome.reason == ReasonCode.FEATURE_ENABLE_FAILED
        assert "87" in outcome.error_detail

    def test_query_needs_elevation(self, runner):
        runner.set_output(
            "/get-featureinfo",
            "Error: 740\n\nElevated permissions are required to run DISM.",
            exit_code=740,
        )
        state = OsFeaturesCapability(runner).probe()
        assert state.unknown
        assert state.reason == ReasonCode.PERMISSION_DENIED

    def test_query_timeout(self, runner):
        runner.set_timeout("/get-featureinfo")
        state = OsFeaturesCapability(runner).probe()
        assert state.unknown
        assert state.reason == ReasonCode.TIMEOUT

    def test_unreadable_output_is_unknown(self, runner):
        runner.set_output("/get-featureinfo", "garbled")
        assert OsFeaturesCapability(runner).probe().unknown


# ── Virtualization subsystem ─────────────────────────────────────────


class TestSubsystemParsing:
    def test_version(self):
        output = "WSL version: 2.4.13.0\nKernel version: 5.15.167.4-1\nWSLg version: 1.0.65"
        assert parse_subsystem_version(output) == "2.4.13.0"

    def test_version_absent(self):
        assert parse_subsystem_version("Kernel version: 5.15") is None

    def test_default_mode(self):
        output = "Default Distribution: Ubuntu\nDefault Version: 1"
        assert parse_default_mode(output) == 1

    def test_default_mode_absent(self):
        assert parse_default_mode("") is None

    def test_installer_for_msi(self):
        inv = installer_invocation(r"C:\staging\wsl.2.4.13.0.x64.msi", 300)
        assert inv.executable == c.MSIEXEC_EXE
        assert inv.args[:2] == ["/i", r"C:\staging\wsl.2.4.13.0.x64.msi"]
        assert "/quiet" in inv.args
        assert inv.timeout == 300

    def test_installer_for_bundle_quotes_path(self):
        inv = installer_invocation(r"C:\it's\wsl.msixbundle", 300)
        assert inv.executable == c.POWERSHELL_EXE
        assert r"Add-AppxPackage -Path 'C:\it''s\wsl.msixbundle'" in inv.args[-1]

    def test_installer_for_executable(self):
        inv = installer_invocation(r"C:\staging\setup.exe", 60)
        assert inv.executable == r"C:\staging\setup.exe"


class TestSubsystem:
    def test_current_and_default_two(self, make_host):
        host = make_host()
        assert _subsystem(host).probe().satisfied

    def test_not_installed(self, make_host):
        host = make_host(wsl_version=None)
        cap = _subsystem(host)
        state = cap.probe()
        assert state.reason == ReasonCode.SUBSYSTEM_NOT_INSTALLED

        outcome = cap.remediate(state)
        assert outcome.success, outcome.message
        installs = host.runner.calls_matching("msiexec")
        assert len(installs) == 1
        assert installs[0].args[1].endswith("wsl.2.4.13.0.x64.msi")
        assert host.runner.calls_matching("--set-default-version 2")
        assert cap.probe().satisfied

    def test_arm64_host_gets_arm64_package(self, make_host):
        host = make_host(wsl_version=None, arch="arm64")
        cap = _subsystem(host)
        cap.remediate(cap.probe())
        assert host.runner.calls_matching("msiexec")[0].args[1].endswith("arm64.msi")

    def test_wrong_default_only_sets_default(self, make_host):
        host = make_host(default_mode=1)
        cap = _subsystem(host)
        state = cap.probe()
        assert state.reason == ReasonCode.SUBSYSTEM_WRONG_DEFAULT

        outcome = cap.remediate(state)
        assert outcome.success
        assert host.runner.calls_matching("msiexec") == []
        assert host.default_mode == 2

    def test_outdated(self, make_host):
        host = make_host(wsl_version="2.3.24")
        cap = _subsystem(host)
        state = cap.probe()
        assert state.reason == ReasonCode.SUBSYSTEM_OUTDATED
        assert "2.3.24" in state.detail

        assert cap.remediate(state).success
        assert host.wsl_version == host.wsl_latest
        assert host.runner.calls_matching("--set-default-version") == []

    def test_offline_reports_unknown(self, make_host):
        host = make_host(online=False)
        cap = _subsystem(host)
        state = cap.probe()
        assert state.kind == StateKind.UNKNOWN
        assert state.reason == ReasonCode.RELEASE_UNAVAILABLE
        assert "latest version unknown" in state.detail
        assert "Network error" in state.detail

    def test_offline_still_sets_default_mode(self, make_host):
        host = make_host(online=False, default_mode=1)
        cap = _subsystem(host)
        state = cap.probe()
        assert state.reason == ReasonCode.SUBSYSTEM_WRONG_DEFAULT
        assert state.data["update"] is False

        assert cap.remediate(state).success
        assert host.default_mode == 2
        assert host.runner.calls_matching("msiexec") == []

    def test_offline_and_missing(self, make_host):
        host = make_host(wsl_version=None, online=False)
        cap = _subsystem(host)
        outcome = cap.remediate(cap.probe())
        assert outcome.success is False
        assert outcome.reason == ReasonCode.RELEASE_UNAVAILABLE

    def test_unparseable_latest_tag_counts_as_outdated(self, make_host):
        host = make_host()
        host.wsl_latest = "nightly"
        state = _subsystem(host).probe()
        assert state.reason == ReasonCode.SUBSYSTEM_OUTDATED
        assert state.data["update"] is True

    def test_no_published_digest_installs_nothing(self, make_host):
        host = make_host(wsl_version=None, publish_digests=False)
        cap = _subsystem(host)
        outcome = cap.remediate(cap.probe())
        assert outcome.reason == ReasonCode.DIGEST_UNAVAILABLE
        assert host.runner.calls_matching("msiexec") == []

    def test_installer_failure(self, make_host):
        host = make_host(wsl_version=None)
        host.runner.set_response(
            "msiexec", CommandResult.exited(1603, stderr="Fatal error during installation."),
        )
        cap = _subsystem(host)
        outcome = cap.remediate(cap.probe())
        assert outcome.reason == ReasonCode.SUBSYSTEM_INSTALL_FAILED
        assert "1603" in outcome.error_detail

    def test_installer_requests_restart(self, make_host):
        host = make_host(wsl_version=None)
        host.runner.set_response("msiexec", CommandResult.exited(3010))
        cap = _subsystem(host)
        outcome = cap.remediate(cap.probe())
        assert outcome.success
        assert outcome.requires_restart is True

    def test_version_query_timeout(self, make_host):
        host = make_host()
        host.runner.set_timeout("wsl.exe --version")
        state = _subsystem(host).probe()
        assert state.unknown
        assert state.reason == ReasonCode.TIMEOUT


# ── Runtime image ────────────────────────────────────────────────────


class TestRuntimeImage:
    def test_parse_distribution_list(self):
        assert parse_distribution_list("Ubuntu\r\n\r\n boinc-buda-runner \n") == [
            "Ubuntu", "boinc-buda-runner",
        ]

    def test_up_to_date(self, make_host):
        host = make_host()
        state = _image(host).probe()
        assert state.satisfied
        assert state.data["substate"] == UP_TO_DATE

    def test_not_installed(self, make_host):
        host = make_host(image_version=None)
        cap = _image(host)
        state = cap.probe()
        assert state.reason == ReasonCode.IMAGE_NOT_INSTALLED
        assert state.data["substate"] == NOT_INSTALLED

        outcome = cap.remediate(state)
        assert outcome.success, outcome.message
        assert host.runner.calls_matching("--unregister") == []
        assert len(host.runner.calls_matching("--install --from-file")) == 1
        assert host.runner.calls_matching("/bin/bash")
        assert host.image_version == host.image_latest
        assert cap.probe().satisfied

    def test_version_unreadable_reinstalls(self, make_host):
        host = make_host()
        host.image_version = None
        cap = _image(host)
        state = cap.probe()
        assert state.reason == ReasonCode.IMAGE_VERSION_UNREADABLE
        assert state.data["substate"] == NO_VERSION

        assert cap.remediate(state).success
        assert len(host.runner.calls_matching("--unregister")) == 1

    def test_outdated_reinstalls(self, make_host):
        host = make_host(image_version="1.0.0")
        cap = _image(host)
        state = cap.probe()
        assert state.reason == ReasonCode.IMAGE_OUTDATED
        assert state.data["substate"] == OUTDATED
        assert state.data["latest"] == "1.2.0"

        assert cap.remediate(state).success
        assert len(host.runner.calls_matching("--unregister")) == 1
        assert host.image_version == "1.2.0"

    def test_offline_reports_unknown(self, make_host):
        host = make_host(image_version="1.0.0", online=False)
        state = _image(host).probe()
        assert state.kind == StateKind.UNKNOWN
        assert state.reason == ReasonCode.RELEASE_UNAVAILABLE
        assert "latest version unknown" in state.detail

    def test_unparseable_latest_tag_keeps_image(self, make_host):
        host = make_host(image_version="1.0.0")
        host.image_latest = "nightly"
        state = _image(host).probe()
        assert state.satisfied
        assert state.data["substate"] == UP_TO_DATE

    def test_offline_and_missing(self, make_host):
        host = make_host(image_version=None, online=False)
        cap = _image(host)
        outcome = cap.remediate(cap.probe())
        assert outcome.reason == ReasonCode.RELEASE_UNAVAILABLE

    def test_no_published_digest(self, make_host):
        host = make_host(image_version=None, publish_digests=False)
        cap = _image(host)
        outcome = cap.remediate(cap.probe())
        assert outcome.reason == ReasonCode.DIGEST_UNAVAILABLE
        assert host.runner.calls_matching("--install") == []

    def test_setup_timeout(self, make_host):
        host = make_host(image_version=None)
        host.runner.set_timeout("--install --from-file")
        cap = _image(host)
        outcome = cap.remediate(cap.probe())
        assert outcome.reason == ReasonCode.TIMEOUT
        assert "timed out" in outcome.message

    def test_install_failure(self, make_host):
        host = make_host(image_version=None)
        host.runner.set_response(
            "--install --from-file", CommandResult.exited(1, stdout="Error: 0x80070070"),
        )
        cap = _image(host)
        outcome = cap.remediate(cap.probe())
        assert outcome.reason == ReasonCode.IMAGE_INSTALL_FAILED
        assert "0x80070070" in outcome.error_detail

    def test_first_boot_failure(self, make_host):
        host = make_host(image_version=None)
        host.runner.set_failure("/bin/bash", exit_code=1, stderr="setup script failed")
        cap = _image(host)
        outcome = cap.remediate(cap.probe())
        assert outcome.reason == ReasonCode.IMAGE_SETUP_FAILED

    def test_staged_image_discarded_after_install(self, make_host):
        host = make_host(image_version=None)
        cap = _image(host)
        cap.remediate(cap.probe())
        assert _staged_files(host) == []

    def test_staged_image_discarded_after_failed_install(self, make_host):
        host = make_host(image_version=None)
        host.runner.set_timeout("--install --from-file")
        cap = _image(host)
        cap.remediate(cap.probe())
        assert _staged_files(host) == []

    def test_list_failure_is_unknown(self, make_host):
        host = make_host()
        host.runner.set_timeout("--list --quiet")
        assert _image(host).probe().unknown

    def test_empty_list_exit_code_means_not_installed(self, make_host):
        host = make_host()
        host.runner.set_response("--list --quiet", CommandResult.exited(-1))
        state = _image(host).probe()
        assert state.reason == ReasonCode.IMAGE_NOT_INSTALLED
