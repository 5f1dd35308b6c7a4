"""
Mock command runner — scripted test double for every external command.

Responses are registered against a pattern that is matched as a
substring of the invocation's command line; the longest matching
pattern wins. A response may be a single CommandResult, a list
(consumed in order, the last one repeating), or a callable that
builds the result from the invocation.
"""

from __future__ import annotations

from typing import Callable, Union

from hostprep.adapters.base import CommandRunner, CompletionDetector
from hostprep.core.models.invocation import CommandResult, Invocation

Response = Union[CommandResult, list[CommandResult], Callable[[Invocation], CommandResult]]


class MockCommandRunner(CommandRunner):
    """Universal mock runner for testing.

    By default every command succeeds with empty output. Can be
    configured with responses per command pattern.
    """

    def __init__(self, default: CommandResult | None = None):
        self._default = default or CommandResult.success()
        self._responses: dict[str, Response] = {}
        self._call_log: list[Invocation] = []

    @property
    def name(self) -> str:
        return "mock"

    @property
    def call_log(self) -> list[Invocation]:
        """All invocations this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls_matching(self, pattern: str) -> list[Invocation]:
        """Invocations whose command line contains ``pattern``."""
        return [inv for inv in self._call_log if pattern in inv.command_line]

    def set_response(self, pattern: str, response: Response) -> None:
        """Set the response for commands containing ``pattern``."""
        if isinstance(response, list):
            response = list(response)
        self._responses[pattern] = response

    def set_output(self, pattern: str, stdout: str, exit_code: int = 0) -> None:
        """Shorthand for a result with the given stdout and exit code."""
        self.set_response(pattern, CommandResult.exited(exit_code, stdout=stdout))

    def set_failure(self, pattern: str, exit_code: int = 1, stderr: str = "Mock failure") -> None:
        """Configure commands containing ``pattern`` to fail."""
        self.set_response(pattern, CommandResult.exited(exit_code, stderr=stderr))

    def set_timeout(self, pattern: str) -> None:
        """Configure commands containing ``pattern`` to time out."""
        self.set_response(pattern, CommandResult.timeout(timeout=0))

    def reset(self) -> None:
        """Clear the call log, keeping configured responses."""
        self._call_log.clear()

    def run(self, invocation: Invocation) -> CommandResult:
        self._call_log.append(invocation)
        return self._respond(invocation)

    def run_until(
        self,
        invocation: Invocation,
        detector: CompletionDetector,
    ) -> CommandResult:
        self._call_log.append(invocation)
        result = self._respond(invocation)
        if result.timed_out or result.error:
            return result

        for line in result.stdout.splitlines():
            if detector.feed(line):
                return result.model_copy(update={"signalled": True, "exit_code": None})
        return result

    def _respond(self, invocation: Invocation) -> CommandResult:
        command = invocation.command_line
        matches = [p for p in self._responses if p in command]
        if not matches:
            return self._default.model_copy(update={"command": command})

        response = self._responses[max(matches, key=len)]
        if callable(response):
            result = response(invocation)
        elif isinstance(response, list):
            result = response.pop(0) if len(response) > 1 else response[0]
        else:
            result = response
        return result.model_copy(update={"command": command})
