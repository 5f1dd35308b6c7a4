"""Adapters — command runners for the external tools.

Public re-exports for convenient access.
"""

from hostprep.adapters.base import CommandRunner, CompletionDetector, MarkerDetector
from hostprep.adapters.mock import MockCommandRunner

__all__ = [
    "CommandRunner",
    "CompletionDetector",
    "MarkerDetector",
    "MockCommandRunner",
]
