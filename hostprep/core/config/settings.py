"""
Installer settings — tunables for endpoints, timeouts and staging.

Defaults describe the fixed target and need no file. An optional YAML
file can override tunables (for example to point at a release mirror
while testing). Nothing here decides pipeline state: every decision
comes from live probes.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from hostprep.core.services.provisioning.data import constants as c

logger = logging.getLogger(__name__)

# Env var naming an optional settings file
CONFIG_ENV_VAR = "HOSTPREP_CONFIG"


class ConfigError(Exception):
    """Raised when the settings file is invalid or unreadable."""


class Timeouts(BaseModel):
    """Per-invocation bounds, in seconds."""

    probe: float = c.TIMEOUTS["probe"]
    image_probe: float = c.TIMEOUTS["image_probe"]
    feature_query: float = c.TIMEOUTS["feature_query"]
    feature_enable: float = c.TIMEOUTS["feature_enable"]
    metadata: float = c.TIMEOUTS["metadata"]
    subsystem_download: float = c.TIMEOUTS["subsystem_download"]
    image_download: float = c.TIMEOUTS["image_download"]
    install: float = c.TIMEOUTS["install"]
    set_default: float = c.TIMEOUTS["set_default"]
    unregister: float = c.TIMEOUTS["unregister"]
    first_boot: float = c.TIMEOUTS["first_boot"]
    setup_marker: float = c.TIMEOUTS["setup_marker"]
    kill_grace: float = c.TIMEOUTS["kill_grace"]


class InstallerSettings(BaseModel):
    """All tunables of a provisioning run."""

    # Release indexes
    subsystem_release_url: str = c.SUBSYSTEM_RELEASES_URL
    image_release_url: str = c.IMAGE_RELEASES_URL
    subsystem_asset_extensions: list[str] = Field(
        default_factory=lambda: list(c.SUBSYSTEM_ASSET_EXTENSIONS)
    )
    image_asset_extensions: list[str] = Field(
        default_factory=lambda: list(c.IMAGE_ASSET_EXTENSIONS)
    )

    # Targets
    required_features: list[str] = Field(default_factory=lambda: list(c.REQUIRED_FEATURES))
    required_default_mode: int = c.REQUIRED_DEFAULT_MODE
    image_name: str = c.IMAGE_NAME
    image_version_file: str = c.IMAGE_VERSION_FILE
    setup_marker: str = c.IMAGE_SETUP_MARKER
    companion_process_name: str = c.COMPANION_PROCESS_NAME

    # Storage
    staging_dir: str | None = None

    # Reporting
    issue_url: str = c.ISSUE_URL
    user_agent: str = c.USER_AGENT

    timeouts: Timeouts = Field(default_factory=Timeouts)

    def resolved_staging_dir(self) -> Path:
        """Where verified artifacts are kept, keyed by digest.

        ``%SystemRoot%\\Downloaded Installations`` on Windows, a temp
        directory elsewhere.
        """
        if self.staging_dir:
            return Path(self.staging_dir)
        system_root = os.environ.get("SystemRoot")
        if system_root:
            return Path(system_root) / "Downloaded Installations"
        return Path(tempfile.gettempdir()) / "hostprep-staging"


def load_settings(path: Path | None = None) -> InstallerSettings:
    """Load settings from YAML, or return the defaults.

    Args:
        path: Explicit settings file. If None, ``HOSTPREP_CONFIG`` is
            consulted; with neither, defaults are returned.

    Raises:
        ConfigError: If the file is missing, unreadable or invalid.
    """
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if not env_path:
            return InstallerSettings()
        path = Path(env_path)

    if not path.is_file():
        raise ConfigError(f"Settings file not found: {path}")

    logger.debug("Loading settings from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return InstallerSettings()

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        settings = InstallerSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e

    logger.info("Loaded settings from %s", path)
    return settings
