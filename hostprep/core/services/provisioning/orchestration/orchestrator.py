"""
L5 Orchestration — Sequential probe → (skip | remediate) → verify.

State machine over the ordered step list::

    IDLE → RUNNING(i) → RUNNING(i+1) | HALTED | RESTART_PENDING | COMPLETED | ABORTED

Steps run strictly in ordinal order, one at a time. Nothing is
retried within a run; a halted run is safe to repeat because every
step re-probes live state and skips what is already satisfied.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable

from hostprep.core.models.advisory import Category
from hostprep.core.models.pipeline import PipelineResult
from hostprep.core.models.step import Outcome, ReasonCode, Step, StepId, StepState
from hostprep.core.services.provisioning.domain.error_classification import classify

logger = logging.getLogger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    HALTED = "halted"
    RESTART_PENDING = "restart_pending"
    COMPLETED = "completed"
    ABORTED = "aborted"


class StepPhase(str, Enum):
    """What a Reporter is being told about a step."""

    PROBING = "probing"
    SATISFIED = "satisfied"
    REMEDIATING = "remediating"
    REMEDIATED = "remediated"
    NEEDS_ACTION = "needs_action"     # probe-only runs
    WARNING = "warning"
    FAILED = "failed"
    RESTART_REQUIRED = "restart_required"


# ── Reporters ───────────────────────────────────────────────────


class Reporter(ABC):
    """Sink for step progress. Must not raise."""

    @abstractmethod
    def on_step_update(self, step_id: StepId, state: StepPhase, message: str) -> None:
        ...


class LoggingReporter(Reporter):
    """Writes every update to the log (the unattended-mode sink)."""

    _MARKERS = {
        StepPhase.SATISFIED: "✓",
        StepPhase.REMEDIATED: "✓",
        StepPhase.FAILED: "✗",
        StepPhase.WARNING: "⚠",
        StepPhase.RESTART_REQUIRED: "↻",
        StepPhase.NEEDS_ACTION: "•",
    }

    def __init__(self, log: logging.Logger | None = None):
        self._log = log or logger

    def on_step_update(self, step_id: StepId, state: StepPhase, message: str) -> None:
        marker = self._MARKERS.get(state, "…")
        level = logging.WARNING if state in (StepPhase.FAILED, StepPhase.WARNING) else logging.INFO
        self._log.log(level, "%s %s: %s → %s", marker, step_id.value, state.value, message)


class CollectingReporter(Reporter):
    """Keeps every update in memory."""

    def __init__(self) -> None:
        self.updates: list[tuple[StepId, StepPhase, str]] = []

    def on_step_update(self, step_id: StepId, state: StepPhase, message: str) -> None:
        self.updates.append((step_id, state, message))

    def phases_for(self, step_id: StepId) -> list[StepPhase]:
        return [phase for sid, phase, _ in self.updates if sid == step_id]


class _FanOut(Reporter):
    def __init__(self, reporters: list[Reporter]):
        self._reporters = reporters

    def on_step_update(self, step_id: StepId, state: StepPhase, message: str) -> None:
        for reporter in self._reporters:
            try:
                reporter.on_step_update(step_id, state, message)
            except Exception:
                logger.exception("Reporter %r failed", reporter)


# ── Orchestrator ────────────────────────────────────────────────


class StepOrchestrator:
    """Runs a static list of steps and builds a PipelineResult."""

    def __init__(
        self,
        steps: list[Step],
        reporter: Reporter | list[Reporter] | None = None,
        classifier: Callable[..., Category] = classify,
    ):
        ids = [s.id for s in steps]
        if len(set(ids)) != len(ids):
            raise ValueError(f"Duplicate step ids: {ids}")
        self.steps = sorted(steps, key=lambda s: s.ordinal)
        reporters = reporter if isinstance(reporter, list) else [reporter] if reporter else []
        self._reporter = _FanOut([LoggingReporter(), *reporters])
        self._classify = classifier
        self._abort_requested = False
        self.state = RunState.IDLE
        self.current: StepId | None = None

    def request_abort(self) -> None:
        """Stop before the next step. The running step is never interrupted."""
        if not self._abort_requested:
            logger.warning("Abort requested; stopping after the current step")
        self._abort_requested = True

    @property
    def abort_requested(self) -> bool:
        return self._abort_requested

    def run(self, probe_only: bool = False) -> PipelineResult:
        """Execute the pipeline once.

        With ``probe_only`` no remediation runs: every step is probed,
        and the result halts at the first step that needs action.
        """
        result = PipelineResult(probe_only=probe_only)
        self.state = RunState.RUNNING
        self._abort_requested = False
        logger.info("Run %s started (%d steps%s)", result.run_id, len(self.steps),
                    ", probe only" if probe_only else "")

        for step in self.steps:
            if self._abort_requested:
                logger.warning("Run %s aborted before %s", result.run_id, step.id.value)
                result.declined()
                self.state = RunState.ABORTED
                break

            self.current = step.id
            if probe_only:
                self._probe_step(step, result)
                continue

            if not self._run_step(step, result):
                break
        else:
            if result.halted_at is None:
                self.state = RunState.COMPLETED
            else:
                self.state = RunState.HALTED

        self.current = None
        result.finish()
        logger.info("Run %s finished: %s", result.run_id, result.status.value)
        return result

    # ── Per-step policy ─────────────────────────────────────────

    def _run_step(self, step: Step, result: PipelineResult) -> bool:
        """Handle one step; return False when the pipeline must stop."""
        state = self._probe(step)

        if state.satisfied:
            result.record(step.id, Outcome.already(state.detail), state)
            self._report(step.id, StepPhase.SATISFIED, state.detail or "already satisfied")
            return True

        if state.unknown:
            if not step.unknown_blocks:
                message = f"{state.detail} (continuing)"
                result.record(step.id, Outcome.tolerated(message, state.reason), state)
                self._report(step.id, StepPhase.WARNING, message)
                return True
            outcome = Outcome.failure(state.reason, state.detail or "State could not be determined")
            result.record(step.id, outcome, state)
            return self._halt(step, outcome, result)

        if not step.remediable:
            outcome = Outcome.failure(state.reason, state.detail or f"{step.label} requirement not met")
            result.record(step.id, outcome, state)
            return self._halt(step, outcome, result)

        self._report(step.id, StepPhase.REMEDIATING, state.detail)
        outcome = self._remediate(step, state)

        if outcome.success and not outcome.requires_restart and step.verify:
            outcome = self._verify(step, outcome)

        result.record(step.id, outcome, state, remediated=True)

        if not outcome.success:
            return self._halt(step, outcome, result)

        if outcome.requires_restart:
            result.restart_pending(step.id)
            self.state = RunState.RESTART_PENDING
            self._report(step.id, StepPhase.RESTART_REQUIRED, outcome.message)
            return False

        self._report(step.id, StepPhase.REMEDIATED, outcome.message)
        return True

    def _probe_step(self, step: Step, result: PipelineResult) -> None:
        state = self._probe(step)
        if state.satisfied:
            result.record(step.id, Outcome.already(state.detail), state)
            self._report(step.id, StepPhase.SATISFIED, state.detail or "already satisfied")
            return

        if state.unknown and not step.unknown_blocks:
            result.record(step.id, Outcome.tolerated(state.detail, state.reason), state)
            self._report(step.id, StepPhase.WARNING, state.detail)
            return

        outcome = Outcome.failure(state.reason, state.detail)
        result.record(step.id, outcome, state)
        self._report(step.id, StepPhase.NEEDS_ACTION, state.detail)
        if result.halted_at is None:
            result.halt(step.id, self._classify(step.id, state.detail, state.reason))

    def _verify(self, step: Step, outcome: Outcome) -> Outcome:
        """Re-probe after remediation; a still-unsatisfied step fails."""
        after = self._probe(step)
        if after.satisfied:
            return outcome
        if after.unknown:
            logger.warning("%s: could not confirm remediation: %s", step.id.value, after.detail)
            return outcome
        return Outcome.failure(
            after.reason,
            f"{step.label} still not satisfied after remediation: {after.detail}",
            outcome.message,
        )

    def _halt(self, step: Step, outcome: Outcome, result: PipelineResult) -> bool:
        text = " ".join(filter(None, [outcome.message, outcome.error_detail]))
        category = self._classify(step.id, text, outcome.reason)
        result.halt(step.id, category)
        self.state = RunState.HALTED
        self._report(step.id, StepPhase.FAILED, outcome.message)
        logger.error("Halted at %s (%s): %s", step.id.value, category.value, text)
        return False

    # ── Guarded calls ───────────────────────────────────────────

    def _probe(self, step: Step) -> StepState:
        self._report(step.id, StepPhase.PROBING, f"Checking {step.label}")
        try:
            return step.probe()
        except Exception as e:
            logger.exception("Probe for %s raised", step.id.value)
            return StepState.undetermined(f"{step.label} check failed: {e}")

    def _remediate(self, step: Step, state: StepState) -> Outcome:
        try:
            return step.remediate(state)
        except Exception as e:
            logger.exception("Remediation for %s raised", step.id.value)
            return Outcome.failure(ReasonCode.UNEXPECTED, f"{step.label} failed unexpectedly", str(e))

    def _report(self, step_id: StepId, phase: StepPhase, message: str) -> None:
        self._reporter.on_step_update(step_id, phase, message)
