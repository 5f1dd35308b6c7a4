"""
Console progress for ``run`` and ``check``.

A Reporter that echoes step updates with status markers, plus the
Ctrl+C guard that turns a double interrupt into an abort request.
"""

from __future__ import annotations

import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager

import click

from hostprep.core.models.step import StepId
from hostprep.core.services.provisioning.orchestration.orchestrator import (
    Reporter,
    StepOrchestrator,
    StepPhase,
)

_STYLES: dict[StepPhase, tuple[str, str]] = {
    StepPhase.SATISFIED: ("✓", "green"),
    StepPhase.REMEDIATED: ("✓", "green"),
    StepPhase.REMEDIATING: ("⚙", "cyan"),
    StepPhase.NEEDS_ACTION: ("•", "yellow"),
    StepPhase.WARNING: ("⚠", "yellow"),
    StepPhase.FAILED: ("✗", "red"),
    StepPhase.RESTART_REQUIRED: ("↻", "yellow"),
}


class ConsoleReporter(Reporter):
    """Echo step progress to the terminal.

    PROBING updates are only shown with ``verbose``; everything else
    is one line per update.
    """

    def __init__(self, verbose: bool = False):
        self._verbose = verbose

    def on_step_update(self, step_id: StepId, state: StepPhase, message: str) -> None:
        if state == StepPhase.PROBING:
            if self._verbose:
                click.echo(f"   … {message}")
            return
        marker, color = _STYLES.get(state, ("•", "white"))
        click.secho(f"   {marker} {step_id.value} ", fg=color, nl=False)
        click.echo(message)


@contextmanager
def interrupt_guard(orchestrator: StepOrchestrator) -> Iterator[None]:
    """First Ctrl+C warns, the second requests an abort.

    The running step is never interrupted; the orchestrator stops
    before the next one. Only installable from the main thread.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    presses = 0

    def _handler(signum, frame) -> None:
        nonlocal presses
        presses += 1
        if presses == 1:
            click.secho(
                "\n⚠️  Provisioning is in progress. Press Ctrl+C again to stop "
                "after the current step.",
                fg="yellow",
                err=True,
            )
            return
        click.secho("\n⏹  Stopping after the current step…", fg="yellow", err=True)
        orchestrator.request_abort()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)
