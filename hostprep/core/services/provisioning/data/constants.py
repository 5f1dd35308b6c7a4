"""
L0 Data — Fixed target constants.

Pure data. No logic. No imports beyond stdlib.
"""

from __future__ import annotations

from enum import IntEnum

# ── OS compatibility thresholds ────────────────────────────────

MIN_MAJOR_VERSION = 10
WIN11_MIN_BUILD = 22000          # any architecture on Windows 11
WIN10_MIN_BUILD_X64 = 18362      # Windows 10 1903
WIN10_MIN_BUILD_ARM64 = 19041    # Windows 10 2004
UNSUPPORTED_ARCHITECTURES = frozenset({"x86"})

# ── OS optional features ───────────────────────────────────────

REQUIRED_FEATURES: tuple[str, ...] = (
    "VirtualMachinePlatform",
    "Microsoft-Windows-Subsystem-Linux",
)

DISM_EXE = "dism.exe"

# DISM exit codes, unsigned
DISM_ALREADY_ENABLED = 0x800F0874
EXIT_RESTART_REQUIRED = 3010         # ERROR_SUCCESS_REBOOT_REQUIRED
EXIT_RESTART_INITIATED = 1641        # ERROR_SUCCESS_REBOOT_INITIATED
EXIT_ELEVATION_REQUIRED = 740        # ERROR_ELEVATION_REQUIRED
EXIT_ACCESS_DENIED = 5

# ── Virtualization subsystem ───────────────────────────────────

WSL_EXE = "wsl.exe"
MSIEXEC_EXE = r"C:\Windows\System32\msiexec.exe"
POWERSHELL_EXE = "powershell.exe"
REQUIRED_DEFAULT_MODE = 2
SUBSYSTEM_RELEASES_URL = "https://api.github.com/repos/microsoft/WSL/releases/latest"
SUBSYSTEM_ASSET_EXTENSIONS: tuple[str, ...] = (".msi", ".msixbundle", ".msix")
SUBSYSTEM_STORE_URL = "ms-windows-store://pdp/?ProductId=9P9TQF7MRM4R"

# ── Runtime image ──────────────────────────────────────────────

IMAGE_NAME = "boinc-buda-runner"
IMAGE_RELEASES_URL = "https://api.github.com/repos/BOINC/boinc-buda-runner-wsl/releases/latest"
IMAGE_ASSET_EXTENSIONS: tuple[str, ...] = (".wsl",)
IMAGE_VERSION_FILE = "/home/boinc/version.txt"
IMAGE_SETUP_MARKER = "Podman setup complete"
IMAGE_SETUP_GREETING = "BUDA Runner initial setup completed"

# ── Companion process ──────────────────────────────────────────

COMPANION_PROCESS_NAME = "boinc"

# ── Reporting ──────────────────────────────────────────────────

ISSUE_URL = "https://github.com/BOINC/boinc-buda-runner-wsl-installer/issues/new"
USER_AGENT = "hostprep/0.1"

# ── Timeouts (seconds) ─────────────────────────────────────────

TIMEOUTS: dict[str, int] = {
    "probe": 10,
    "image_probe": 15,
    "feature_query": 30,
    "feature_enable": 120,
    "metadata": 30,
    "subsystem_download": 600,
    "image_download": 900,
    "install": 300,
    "set_default": 30,
    "unregister": 60,
    "first_boot": 120,
    "setup_marker": 300,
    "kill_grace": 10,
}


# ── Process exit codes ─────────────────────────────────────────


class ExitCode(IntEnum):
    """Process exit codes for unattended runs."""

    SUCCESS = 0
    UNEXPECTED = 1
    UNSUPPORTED_OS = 2
    RESTART_REQUIRED = 3
    FEATURES_FAILED = 4
    SUBSYSTEM_FAILED = 5
    COMPANION_RUNNING = 6
    IMAGE_FAILED = 7
    USER_DECLINED = 8
