"""
Command runner base — the contract between capabilities and the OS.

Capabilities never spawn processes themselves. They describe what to
run as an Invocation and hand it to a CommandRunner, which returns a
CommandResult. Swapping the runner (see ``MockCommandRunner``) is how
the whole pipeline is exercised off-target.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from hostprep.core.models.invocation import CommandResult, Invocation


class CompletionDetector(ABC):
    """Decides, line by line, when a long-running command is done.

    Used by ``CommandRunner.run_until`` for commands that keep running
    after their useful work has finished.
    """

    @abstractmethod
    def feed(self, line: str) -> bool:
        """Inspect one output line. Return True once complete."""

    def reset(self) -> None:
        """Forget anything seen so far."""


class MarkerDetector(CompletionDetector):
    """Complete once a literal marker string appears in the output."""

    def __init__(self, marker: str, case_sensitive: bool = False):
        self.marker = marker
        self._case_sensitive = case_sensitive
        self.seen = False

    def feed(self, line: str) -> bool:
        if self._case_sensitive:
            hit = self.marker in line
        else:
            hit = self.marker.lower() in line.lower()
        if hit:
            self.seen = True
        return self.seen

    def reset(self) -> None:
        self.seen = False

    def __repr__(self) -> str:
        return f"<MarkerDetector marker={self.marker!r}>"


class CommandRunner(ABC):
    """Abstract base class for external command runners.

    Runners NEVER raise for command failures. Launch errors, non-zero
    exits and timeouts are all captured in the CommandResult.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The runner identifier (e.g., 'subprocess', 'mock')."""

    @abstractmethod
    def run(self, invocation: Invocation) -> CommandResult:
        """Run to completion, or kill the process at the timeout."""

    @abstractmethod
    def run_until(
        self,
        invocation: Invocation,
        detector: CompletionDetector,
    ) -> CommandResult:
        """Run while streaming stdout into ``detector``.

        The process is terminated as soon as the detector reports
        completion (``signalled=True``) or the timeout elapses
        (``timed_out=True``). A process that exits on its own first is
        reported with its exit code.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
