"""
Advisory models — error categories and the guidance shown for each.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class Category(str, Enum):
    """Fixed taxonomy of failure categories."""

    OS_VERSION = "os_version"
    OS_FEATURES = "os_features"
    SUBSYSTEM_NOT_INSTALLED = "subsystem_not_installed"
    SUBSYSTEM_VERSION_MISMATCH = "subsystem_version_mismatch"
    SUBSYSTEM_INSTALL_FAILED = "subsystem_install_failed"
    SUBSYSTEM_STATUS_UNKNOWN = "subsystem_status_unknown"
    COMPANION_RUNNING = "companion_running"
    IMAGE_INSTALL_FAILED = "image_install_failed"
    IMAGE_VERSION_UNKNOWN = "image_version_unknown"
    VERIFICATION_FAILED = "verification_failed"
    NETWORK = "network"
    PERMISSION = "permission"
    UNKNOWN = "unknown"


class Advisory(BaseModel):
    """Static remediation guidance for one category."""

    category: Category
    title: str
    description: str
    steps: list[str] = Field(default_factory=list)
    resources: list[str] = Field(default_factory=list)
    offer_issue_report: bool = True
