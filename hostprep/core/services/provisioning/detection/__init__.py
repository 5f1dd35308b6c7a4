"""
L3 Detection — ``__init__.py`` re-exports host detection.

These functions READ system state but never WRITE.
"""

from hostprep.core.services.provisioning.detection.host import (  # noqa: F401
    HostDetectionError,
    ProcessQueryError,
    detect_architecture,
    detect_host,
    list_processes,
)
