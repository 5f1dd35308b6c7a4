"""
Subprocess runner — execute Windows tools and capture their output.

Some tools (``wsl.exe`` in particular) write UTF-16 to a pipe; the
decoding here copes with both UTF-16 and UTF-8 output and drops the
stray NUL characters that mixed encodings leave behind.
"""

from __future__ import annotations

import logging
import queue
import subprocess
import sys
import threading
import time

from hostprep.adapters.base import CommandRunner, CompletionDetector
from hostprep.core.models.invocation import CommandResult, Invocation

logger = logging.getLogger(__name__)

# No console window flashes when launched from a windowed parent
_CREATIONFLAGS = getattr(subprocess, "CREATE_NO_WINDOW", 0) if sys.platform == "win32" else 0

_POLL_INTERVAL = 0.25


def decode_output(data: bytes | None, encoding: str = "utf-8") -> str:
    """Decode tool output, tolerating UTF-16 and UTF-8 alike."""
    if not data:
        return ""
    if encoding.lower().startswith("utf-16") and b"\x00" not in data:
        # Tool honoured WSL_UTF8 or similar and wrote plain UTF-8
        encoding = "utf-8"
    text = data.decode(encoding, errors="replace")
    return text.replace("\ufeff", "").replace("\x00", "")


class SubprocessRunner(CommandRunner):
    """Run invocations with ``subprocess``."""

    def __init__(self, grace_seconds: float = 10):
        self._grace = grace_seconds

    @property
    def name(self) -> str:
        return "subprocess"

    def run(self, invocation: Invocation) -> CommandResult:
        command = invocation.command_line
        logger.debug("Executing: %s (timeout=%ss)", command, invocation.timeout)
        start = time.monotonic()

        try:
            proc = subprocess.run(
                invocation.argv,
                capture_output=True,
                timeout=invocation.timeout,
                creationflags=_CREATIONFLAGS,
            )
        except subprocess.TimeoutExpired:
            logger.warning("Command timed out after %ss: %s", invocation.timeout, command)
            return CommandResult.timeout(
                command=command,
                timeout=invocation.timeout,
                duration_ms=_elapsed_ms(start),
            )
        except FileNotFoundError:
            return CommandResult.not_started(command, f"Executable not found: {invocation.executable}")
        except OSError as e:
            return CommandResult.not_started(command, f"Command execution error: {e}")

        result = CommandResult.exited(
            proc.returncode,
            command=command,
            stdout=decode_output(proc.stdout, invocation.encoding).strip(),
            stderr=decode_output(proc.stderr, invocation.encoding).strip(),
            duration_ms=_elapsed_ms(start),
        )
        logger.debug("%s → exit %s (%dms)", command, proc.returncode, result.duration_ms)
        return result

    def run_until(
        self,
        invocation: Invocation,
        detector: CompletionDetector,
    ) -> CommandResult:
        command = invocation.command_line
        logger.debug("Streaming: %s (timeout=%ss)", command, invocation.timeout)
        start = time.monotonic()

        try:
            proc = subprocess.Popen(
                invocation.argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                creationflags=_CREATIONFLAGS,
            )
        except FileNotFoundError:
            return CommandResult.not_started(command, f"Executable not found: {invocation.executable}")
        except OSError as e:
            return CommandResult.not_started(command, f"Command execution error: {e}")

        lines: queue.Queue[bytes | None] = queue.Queue()
        reader = threading.Thread(target=_pump, args=(proc, lines), daemon=True)
        reader.start()

        output: list[str] = []
        deadline = start + invocation.timeout
        signalled = False
        timed_out = False
        eof = False

        while True:
            try:
                raw = lines.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                raw = b""

            if raw is None:
                eof = True
            elif raw:
                line = _decode_line(raw, invocation.encoding).rstrip()
                if line:
                    output.append(line)
                    logger.debug("  %s", line)
                    if detector.feed(line):
                        signalled = True
                        logger.info("Completion detected: %s", line)
                        break

            if eof and proc.poll() is not None:
                break
            if time.monotonic() > deadline:
                timed_out = True
                logger.warning("Command timed out after %ss: %s", invocation.timeout, command)
                break

        if proc.poll() is None:
            self._terminate(proc)

        stdout = "\n".join(output)
        elapsed = _elapsed_ms(start)

        if timed_out:
            return CommandResult.timeout(
                command=command,
                timeout=invocation.timeout,
                stdout=stdout,
                duration_ms=elapsed,
            )
        return CommandResult(
            command=command,
            exit_code=proc.returncode,
            stdout=stdout,
            signalled=signalled,
            duration_ms=elapsed,
        )

    def _terminate(self, proc: subprocess.Popen) -> None:
        """Kill the process and give it a bounded grace period to exit."""
        proc.kill()
        try:
            proc.wait(timeout=self._grace)
        except subprocess.TimeoutExpired:
            logger.warning("Process %s did not exit within %ss of kill", proc.pid, self._grace)


def _pump(proc: subprocess.Popen, sink: queue.Queue) -> None:
    """Forward stdout lines to ``sink``; None marks end of stream."""
    assert proc.stdout is not None
    try:
        for raw in iter(proc.stdout.readline, b""):
            sink.put(raw)
    except (OSError, ValueError):
        logger.debug("Output pipe closed early")
    finally:
        sink.put(None)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _decode_line(raw: bytes, encoding: str) -> str:
    """Decode one streamed line.

    Splitting UTF-16 on ``\\n`` leaves lines misaligned by a byte, so
    UTF-16 streams are read as ASCII-compatible text with NULs dropped.
    """
    if encoding.lower().startswith("utf-16"):
        raw = raw.replace(b"\xff\xfe", b"").replace(b"\x00", b"")
        return raw.decode("utf-8", errors="replace")
    return raw.decode(encoding, errors="replace")
