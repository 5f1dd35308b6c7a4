"""
Invocation and CommandResult models — the external-command contract.

An Invocation names an executable, its arguments and a timeout.
A CommandResult captures what happened. Runners NEVER raise for a
failed, missing or hung command. That is captured here, and a
timeout is reported separately from a non-zero exit code.
"""

from __future__ import annotations

import subprocess
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Invocation(BaseModel):
    """Run ``executable`` with ``args``, bounded by ``timeout`` seconds."""

    executable: str
    args: list[str] = Field(default_factory=list)
    timeout: float = 10
    encoding: str = "utf-8"     # "utf-16-le" for tools that write UTF-16

    @property
    def argv(self) -> list[str]:
        return [self.executable, *self.args]

    @property
    def command_line(self) -> str:
        """Display form, also used by the mock runner for matching."""
        return subprocess.list2cmdline(self.argv)


class CommandResult(BaseModel):
    """Outcome of one external command."""

    command: str = ""
    exit_code: int | None = None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    signalled: bool = False     # a completion detector fired before exit
    error: str | None = None    # could not start, or similar

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = Field(default_factory=_now_iso)
    duration_ms: int = 0

    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        """Whether the command completed successfully."""
        if self.timed_out or self.error:
            return False
        return self.signalled or self.exit_code == 0

    @property
    def failed(self) -> bool:
        return not self.ok

    @property
    def output(self) -> str:
        """stdout and stderr together."""
        if self.stderr:
            return f"{self.stdout}\n{self.stderr}" if self.stdout else self.stderr
        return self.stdout

    @property
    def exit_code_hex(self) -> str:
        """Exit code as an unsigned 32-bit HRESULT-style string."""
        if self.exit_code is None:
            return ""
        return f"0x{self.exit_code & 0xFFFFFFFF:08X}"

    def describe(self) -> str:
        """One-line failure summary."""
        if self.timed_out:
            return f"timed out: {self.command}"
        if self.error:
            return self.error
        text = (self.stderr or self.stdout).strip().splitlines()
        tail = f": {text[-1]}" if text else ""
        return f"exit {self.exit_code} ({self.exit_code_hex}){tail}"

    @classmethod
    def success(cls, command: str = "", stdout: str = "", **kwargs: Any) -> CommandResult:
        """Create a zero-exit result."""
        return cls(command=command, exit_code=0, stdout=stdout, **kwargs)

    @classmethod
    def exited(
        cls,
        exit_code: int,
        command: str = "",
        stdout: str = "",
        stderr: str = "",
        **kwargs: Any,
    ) -> CommandResult:
        """Create a result with an explicit exit code."""
        return cls(
            command=command,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            **kwargs,
        )

    @classmethod
    def timeout(cls, command: str = "", timeout: float = 0, **kwargs: Any) -> CommandResult:
        """Create a timed-out result."""
        return cls(
            command=command,
            timed_out=True,
            stderr=f"Command timed out after {timeout:g}s",
            **kwargs,
        )

    @classmethod
    def not_started(cls, command: str, error: str, **kwargs: Any) -> CommandResult:
        """Create a result for a command that could not be launched."""
        return cls(command=command, error=error, **kwargs)
