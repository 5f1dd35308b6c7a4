"""
L3 Detection — Host OS version, architecture and running processes.

Read-only probes. Registry access is used only on Windows; elsewhere
``detect_host`` raises HostDetectionError and the OS-version step
reports Unknown.
"""

from __future__ import annotations

import csv
import io
import logging
import os
import platform
import sys

from hostprep.adapters.base import CommandRunner
from hostprep.core.models.host import Architecture, HostInfo
from hostprep.core.models.invocation import Invocation

logger = logging.getLogger(__name__)

_CURRENT_VERSION_KEY = r"SOFTWARE\Microsoft\Windows NT\CurrentVersion"

_ARCH_ALIASES: dict[str, Architecture] = {
    "amd64": "x64",
    "x86_64": "x64",
    "x64": "x64",
    "arm64": "arm64",
    "aarch64": "arm64",
    "x86": "x86",
    "i386": "x86",
    "i686": "x86",
}


class HostDetectionError(RuntimeError):
    """The OS version could not be determined."""


class ProcessQueryError(RuntimeError):
    """The process list could not be read."""


def normalize_architecture(raw: str | None) -> Architecture:
    """Map OS/CPU architecture names to ``x64``/``arm64``/``x86``."""
    if not raw:
        return "unknown"
    return _ARCH_ALIASES.get(raw.strip().lower(), "unknown")


def detect_architecture() -> Architecture:
    """Native architecture, even from a 32-bit or emulated interpreter."""
    # Set only for WOW64 processes; names the native architecture
    native = os.environ.get("PROCESSOR_ARCHITEW6432")
    if native:
        return normalize_architecture(native)
    return normalize_architecture(os.environ.get("PROCESSOR_ARCHITECTURE") or platform.machine())


def detect_host() -> HostInfo:
    """Read the OS version and architecture.

    The registry is preferred because ``sys.getwindowsversion`` can be
    capped by application compatibility shims.

    Raises:
        HostDetectionError: Not Windows, or neither source answered.
    """
    if sys.platform != "win32":
        raise HostDetectionError(f"Unsupported host platform: {sys.platform}")

    architecture = detect_architecture()

    try:
        values = _read_current_version()
        return HostInfo(
            major=int(values["CurrentMajorVersionNumber"]),
            minor=int(values["CurrentMinorVersionNumber"]),
            build=int(values["CurrentBuildNumber"]),
            architecture=architecture,
            product_name=str(values.get("ProductName", "")),
        )
    except (OSError, KeyError, ValueError) as e:
        logger.debug("Registry version lookup failed (%s); using getwindowsversion", e)

    try:
        ver = sys.getwindowsversion()  # type: ignore[attr-defined]
    except (AttributeError, OSError) as e:
        raise HostDetectionError(f"Cannot read Windows version: {e}") from e

    return HostInfo(
        major=ver.major,
        minor=ver.minor,
        build=ver.build,
        architecture=architecture,
        product_name=platform.platform(),
    )


def _read_current_version() -> dict[str, object]:
    import winreg  # Windows-only

    values: dict[str, object] = {}
    with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, _CURRENT_VERSION_KEY) as key:
        for name in (
            "CurrentMajorVersionNumber",
            "CurrentMinorVersionNumber",
            "CurrentBuildNumber",
            "ProductName",
        ):
            try:
                values[name], _ = winreg.QueryValueEx(key, name)
            except FileNotFoundError:
                continue
    return values


# ── Processes ──────────────────────────────────────────────────


def list_processes(runner: CommandRunner, name: str, timeout: float = 10) -> list[int]:
    """PIDs of running processes whose image name is ``name``(.exe).

    Raises:
        ProcessQueryError: If tasklist fails or times out.
    """
    image = name if name.lower().endswith(".exe") else f"{name}.exe"
    result = runner.run(Invocation(
        executable="tasklist.exe",
        args=["/FI", f"IMAGENAME eq {image}", "/FO", "CSV", "/NH"],
        timeout=timeout,
    ))
    if not result.ok:
        raise ProcessQueryError(f"Process list unavailable: {result.describe()}")
    return parse_tasklist(result.stdout, image)


def parse_tasklist(output: str, image: str) -> list[int]:
    """PIDs from ``tasklist /FO CSV /NH`` output for ``image``."""
    pids: list[int] = []
    for row in csv.reader(io.StringIO(output)):
        if len(row) < 2 or row[0].strip().lower() != image.lower():
            continue
        try:
            pids.append(int(row[1]))
        except ValueError:
            continue
    return pids
