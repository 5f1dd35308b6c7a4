"""
PipelineResult — the record of one provisioning run.

Created fresh for every run and discarded once reported. Nothing in
here is persisted: the next run re-derives everything from live probes.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from hostprep.core.models.advisory import Category
from hostprep.core.models.step import Outcome, StepId, StepState


class PipelineStatus(str, Enum):
    """Terminal classification of a run."""

    COMPLETED = "completed"
    HALTED = "halted"
    RESTART_REQUIRED = "restart_required"
    USER_DECLINED = "user_declined"


def generate_run_id() -> str:
    """Generate a unique run identifier."""
    ts = int(time.time())
    short = uuid.uuid4().hex[:6]
    return f"run-{ts}-{short}"


@dataclass
class StepRecord:
    """One ``(step id, outcome)`` entry, with the state the probe saw."""

    step_id: StepId
    outcome: Outcome
    state: StepState | None = None
    remediated: bool = False

    def to_dict(self) -> dict:
        return {
            "step": self.step_id.value,
            "success": self.outcome.success,
            "skipped": self.outcome.skipped,
            "warning": self.outcome.warning,
            "remediated": self.remediated,
            "requires_restart": self.outcome.requires_restart,
            "reason": self.outcome.reason.value,
            "message": self.outcome.message,
            "error_detail": self.outcome.error_detail,
            "probe": self.state.kind.value if self.state else None,
        }


@dataclass
class PipelineResult:
    """Ordered step outcomes plus the terminal classification."""

    run_id: str = field(default_factory=generate_run_id)
    entries: list[StepRecord] = field(default_factory=list)
    status: PipelineStatus = PipelineStatus.COMPLETED
    halted_at: StepId | None = None
    category: Category | None = None
    probe_only: bool = False
    started_at: str = ""
    ended_at: str = ""

    def __post_init__(self) -> None:
        if not self.started_at:
            self.started_at = datetime.now(UTC).isoformat()

    # ── Recording ───────────────────────────────────────────────

    def record(
        self,
        step_id: StepId,
        outcome: Outcome,
        state: StepState | None = None,
        remediated: bool = False,
    ) -> StepRecord:
        entry = StepRecord(step_id=step_id, outcome=outcome, state=state, remediated=remediated)
        self.entries.append(entry)
        return entry

    def halt(self, step_id: StepId, category: Category) -> None:
        self.status = PipelineStatus.HALTED
        self.halted_at = step_id
        self.category = category

    def restart_pending(self, step_id: StepId) -> None:
        self.status = PipelineStatus.RESTART_REQUIRED
        self.halted_at = step_id

    def declined(self) -> None:
        self.status = PipelineStatus.USER_DECLINED

    def finish(self) -> None:
        self.ended_at = datetime.now(UTC).isoformat()

    # ── Queries ─────────────────────────────────────────────────

    @property
    def completed(self) -> bool:
        return self.status == PipelineStatus.COMPLETED

    @property
    def restart_required(self) -> bool:
        return self.status == PipelineStatus.RESTART_REQUIRED

    @property
    def total(self) -> int:
        return len(self.entries)

    @property
    def remediated(self) -> list[StepId]:
        return [e.step_id for e in self.entries if e.remediated]

    @property
    def warnings(self) -> list[str]:
        return [e.outcome.message for e in self.entries if e.outcome.warning]

    @property
    def failed_entry(self) -> StepRecord | None:
        """The entry that halted the run, if any."""
        for entry in reversed(self.entries):
            if not entry.outcome.success:
                return entry
        return None

    def outcome_for(self, step_id: StepId) -> Outcome | None:
        for entry in self.entries:
            if entry.step_id == step_id:
                return entry.outcome
        return None

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "halted_at": self.halted_at.value if self.halted_at else None,
            "category": self.category.value if self.category else None,
            "probe_only": self.probe_only,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "steps": [e.to_dict() for e in self.entries],
            "warnings": self.warnings,
        }
