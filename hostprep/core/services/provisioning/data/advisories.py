"""
L0 Data — Remediation guidance per error category.

Pure data. Every Category has exactly one entry in ADVISORIES;
``tests/test_classifier.py`` enforces that the table is total.
"""

from __future__ import annotations

from hostprep.core.models.advisory import Advisory, Category

_WSL_DOCS = "WSL installation guide: https://learn.microsoft.com/windows/wsl/install"
_WSL_TROUBLESHOOTING = "WSL troubleshooting: https://learn.microsoft.com/windows/wsl/troubleshooting"
_IMAGE_RELEASES = "Runner image releases: https://github.com/BOINC/boinc-buda-runner-wsl/releases"
_ISSUES = "Installer issues: https://github.com/BOINC/boinc-buda-runner-wsl-installer/issues"


ADVISORIES: dict[Category, Advisory] = {
    Category.OS_VERSION: Advisory(
        category=Category.OS_VERSION,
        title="Windows Version Not Supported",
        description=(
            "This Windows version cannot run WSL 2. Windows 10 1903 "
            "(build 18362) or later is required on x64, Windows 10 2004 "
            "(build 19041) or later on ARM64, or any Windows 11. 32-bit "
            "(x86) Windows is not supported."
        ),
        steps=[
            "Press Win+R, type 'winver' and press Enter to see your version and build",
            "Open Settings > Windows Update and install all available updates",
            "Restart, then run hostprep again",
        ],
        resources=[
            "Windows 10 download: https://www.microsoft.com/software-download/windows10",
            "Windows 11 download: https://www.microsoft.com/software-download/windows11",
            _WSL_DOCS,
        ],
        offer_issue_report=False,
    ),
    Category.OS_FEATURES: Advisory(
        category=Category.OS_FEATURES,
        title="Windows Features Could Not Be Enabled",
        description=(
            "The Virtual Machine Platform and Windows Subsystem for Linux "
            "features are required. Enabling them usually needs a restart."
        ),
        steps=[
            "Open 'Turn Windows features on or off' from the Start menu",
            "Tick 'Virtual Machine Platform'",
            "Tick 'Windows Subsystem for Linux'",
            "Click OK and restart when prompted",
            "Run hostprep again after the restart",
        ],
        resources=[
            "Manual WSL installation: https://learn.microsoft.com/windows/wsl/install-manual",
        ],
    ),
    Category.SUBSYSTEM_NOT_INSTALLED: Advisory(
        category=Category.SUBSYSTEM_NOT_INSTALLED,
        title="WSL Not Installed",
        description="Windows Subsystem for Linux is not installed and could not be installed automatically.",
        steps=[
            "Open PowerShell as Administrator",
            "Run: wsl --install --no-distribution",
            "Restart when prompted",
            "Alternatively install 'Windows Subsystem for Linux' from the Microsoft Store",
            "Run hostprep again",
        ],
        resources=[
            _WSL_DOCS,
            "WSL in the Microsoft Store: ms-windows-store://pdp/?ProductId=9P9TQF7MRM4R",
        ],
    ),
    Category.SUBSYSTEM_VERSION_MISMATCH: Advisory(
        category=Category.SUBSYSTEM_VERSION_MISMATCH,
        title="WSL Needs an Update",
        description="WSL is outdated or its default version is not 2.",
        steps=[
            "Open PowerShell as Administrator",
            "Run: wsl --update",
            "Run: wsl --set-default-version 2",
            "Run hostprep again",
        ],
        resources=[
            _WSL_DOCS,
            "WSL releases: https://github.com/microsoft/WSL/releases",
        ],
    ),
    Category.SUBSYSTEM_INSTALL_FAILED: Advisory(
        category=Category.SUBSYSTEM_INSTALL_FAILED,
        title="WSL Installation Failed",
        description=(
            "Installing or configuring WSL failed. Common causes are missing "
            "administrator rights, network problems and disabled virtualization."
        ),
        steps=[
            "Make sure hostprep runs from an elevated (Administrator) prompt",
            "Open PowerShell as Administrator and run: wsl --install --no-distribution",
            "If that fails, try: wsl --install --web-download --no-distribution",
            "Check that VPN, proxy or firewall software is not blocking downloads",
            "Restart and run hostprep again",
        ],
        resources=[_WSL_TROUBLESHOOTING, "Manual WSL installation: https://learn.microsoft.com/windows/wsl/install-manual"],
    ),
    Category.SUBSYSTEM_STATUS_UNKNOWN: Advisory(
        category=Category.SUBSYSTEM_STATUS_UNKNOWN,
        title="WSL Status Check Failed",
        description="The state of the WSL installation could not be determined.",
        steps=[
            "Open PowerShell and run: wsl --version",
            "If it errors, open PowerShell as Administrator and run: wsl --update",
            "Run: wsl --shutdown",
            "Confirm 'Virtual Machine Platform' and 'Windows Subsystem for Linux' are enabled",
            "Run hostprep again",
        ],
        resources=[_WSL_TROUBLESHOOTING, "WSL issues: https://github.com/microsoft/WSL/issues"],
    ),
    Category.COMPANION_RUNNING: Advisory(
        category=Category.COMPANION_RUNNING,
        title="BOINC Client Is Running",
        description="The BOINC client must be stopped before the runner image can be installed or replaced.",
        steps=[
            "In BOINC Manager choose File > Exit BOINC, or",
            "End 'boinc.exe' in Task Manager, or",
            "Stop the 'BOINC' service in services.msc if it runs as a service",
            "Run hostprep again",
        ],
        resources=["BOINC user manual: https://boinc.berkeley.edu/wiki/User_manual"],
        offer_issue_report=False,
    ),
    Category.IMAGE_INSTALL_FAILED: Advisory(
        category=Category.IMAGE_INSTALL_FAILED,
        title="Runner Image Installation Failed",
        description=(
            "Installing the boinc-buda-runner WSL image failed. Common causes "
            "are low disk space, network problems and WSL configuration."
        ),
        steps=[
            "Check that WSL works: wsl --version",
            "Make sure at least 10 GB of disk space is free",
            "Remove a half-installed image: wsl --unregister boinc-buda-runner",
            "Check the default version: wsl --status (run wsl --set-default-version 2 if needed)",
            "Run hostprep again",
        ],
        resources=[
            _IMAGE_RELEASES,
            "Custom WSL distributions: https://learn.microsoft.com/windows/wsl/use-custom-distro",
        ],
    ),
    Category.IMAGE_VERSION_UNKNOWN: Advisory(
        category=Category.IMAGE_VERSION_UNKNOWN,
        title="Runner Image Version Unknown",
        description="The installed runner image's version could not be determined.",
        steps=[
            "Run: wsl -d boinc-buda-runner cat /home/boinc/version.txt",
            "Run: wsl --list --verbose and check the image is not stuck 'Installing'",
            "If either looks wrong run: wsl --unregister boinc-buda-runner",
            "Run hostprep again",
        ],
        resources=["Runner image: https://github.com/BOINC/boinc-buda-runner-wsl"],
    ),
    Category.VERIFICATION_FAILED: Advisory(
        category=Category.VERIFICATION_FAILED,
        title="Download Verification Failed",
        description=(
            "A downloaded package did not match its published SHA-256 digest, "
            "or no digest was published. It was discarded and nothing was installed."
        ),
        steps=[
            "Run hostprep again; a corrupted download is usually transient",
            "If it repeats, check for a proxy or antivirus that rewrites downloads",
            "Report the issue if the published release has no digest",
        ],
        resources=[_IMAGE_RELEASES, _ISSUES],
    ),
    Category.NETWORK: Advisory(
        category=Category.NETWORK,
        title="Network Connection Error",
        description="Release information or a package could not be downloaded.",
        steps=[
            "Check that https://github.com opens in a browser",
            "Disconnect VPNs or configure the proxy, then retry",
            "Check that a firewall is not blocking hostprep",
            "Run hostprep again",
        ],
        resources=[
            "WSL releases: https://github.com/microsoft/WSL/releases/latest",
            "Runner image releases: https://github.com/BOINC/boinc-buda-runner-wsl/releases/latest",
        ],
    ),
    Category.PERMISSION: Advisory(
        category=Category.PERMISSION,
        title="Insufficient Permissions",
        description="Enabling Windows features and installing WSL require administrator rights.",
        steps=[
            "Close this window",
            "Open Command Prompt or PowerShell with 'Run as administrator'",
            "Accept the User Account Control prompt",
            "Run hostprep again from the elevated prompt",
        ],
        resources=[
            "Administrator accounts: https://support.microsoft.com/windows/how-to-use-the-administrator-account",
        ],
        offer_issue_report=False,
    ),
    Category.UNKNOWN: Advisory(
        category=Category.UNKNOWN,
        title="Unexpected Error",
        description="An unexpected error occurred. This may be a new problem worth reporting.",
        steps=[
            "Restart the computer and run hostprep again as Administrator",
            "Check the system requirements: Windows 10 1903+ or Windows 11, 10 GB free disk",
            "Review the log file for the first error",
            "Report the issue with the log file attached",
        ],
        resources=[
            "Report an issue: https://github.com/BOINC/boinc-buda-runner-wsl-installer/issues/new",
            _ISSUES,
            "BOINC forums: https://boinc.berkeley.edu/dev/",
        ],
    ),
}


# ── Error-code specific first steps ────────────────────────────
#
# (needles, categories it applies to, steps inserted first)

ERROR_CODE_STEPS: list[tuple[tuple[str, ...], frozenset[Category], list[str]]] = [
    (
        ("0x80070057", "parameter is incorrect"),
        frozenset({Category.SUBSYSTEM_INSTALL_FAILED}),
        ["Invalid parameter: the download or system configuration may be corrupted; "
         "try: wsl --install --web-download --no-distribution"],
    ),
    (
        ("0x80070002", "cannot find"),
        frozenset({Category.SUBSYSTEM_INSTALL_FAILED}),
        ["Missing files: run 'sfc /scannow' from an elevated prompt and restart"],
    ),
    (
        ("0x80070005", "access is denied", "denied"),
        frozenset({Category.SUBSYSTEM_INSTALL_FAILED, Category.OS_FEATURES}),
        ["Access denied: run hostprep from an Administrator prompt"],
    ),
    (
        ("0x800701bc",),
        frozenset({Category.SUBSYSTEM_INSTALL_FAILED, Category.SUBSYSTEM_STATUS_UNKNOWN}),
        ["The WSL 2 kernel needs an update: run 'wsl --update' as Administrator"],
    ),
    (
        ("0x80370102", "virtualization"),
        frozenset({Category.SUBSYSTEM_INSTALL_FAILED, Category.SUBSYSTEM_STATUS_UNKNOWN}),
        ["Virtualization is disabled: enable Intel VT-x or AMD-V in the BIOS/UEFI settings"],
    ),
    (
        ("0x80370114",),
        frozenset({Category.SUBSYSTEM_STATUS_UNKNOWN, Category.SUBSYSTEM_INSTALL_FAILED}),
        ["Running inside a VM: enable nested virtualization on the host"],
    ),
    (
        ("0x80070070", "disk space"),
        frozenset({Category.IMAGE_INSTALL_FAILED}),
        ["Not enough disk space: free at least 10 GB and retry"],
    ),
    (
        ("timed out", "timeout"),
        frozenset({Category.IMAGE_INSTALL_FAILED}),
        ["The installation timed out: check network speed and system load, then retry"],
    ),
    (
        ("0x80070032",),
        frozenset({Category.IMAGE_INSTALL_FAILED}),
        ["The image is in use: close WSL windows, run 'wsl --shutdown' and retry"],
    ),
]
