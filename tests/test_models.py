"""
Tests for the step and pipeline models.
"""

from hostprep.core.models.advisory import Category
from hostprep.core.models.pipeline import PipelineResult, PipelineStatus
from hostprep.core.models.step import Outcome, ReasonCode, StateKind, StepId, StepState


class TestStepState:
    def test_factories(self):
        assert StepState.ok("fine").kind == StateKind.SATISFIED
        needs = StepState.needs(ReasonCode.FEATURE_DISABLED, "off", features={"a": "disabled"})
        assert needs.unsatisfied
        assert needs.data == {"features": {"a": "disabled"}}
        unknown = StepState.undetermined("hung")
        assert unknown.unknown
        assert unknown.reason == ReasonCode.PROBE_FAILED


class TestOutcome:
    def test_factories(self):
        assert Outcome.already().skipped
        assert Outcome.done("x", requires_restart=True).requires_restart
        tolerated = Outcome.tolerated("warned")
        assert tolerated.success and tolerated.warning
        failure = Outcome.failure(ReasonCode.TIMEOUT, "slow", "detail")
        assert not failure.success
        assert failure.error_detail == "detail"


class TestPipelineResult:
    def test_run_ids_unique(self):
        assert PipelineResult().run_id != PipelineResult().run_id

    def test_failed_entry_and_lookup(self):
        result = PipelineResult()
        result.record(StepId.OS_VERSION, Outcome.already("ok"))
        result.record(StepId.OS_FEATURES, Outcome.failure(ReasonCode.FEATURE_ENABLE_FAILED, "no"))
        result.halt(StepId.OS_FEATURES, Category.OS_FEATURES)
        assert result.failed_entry.step_id == StepId.OS_FEATURES
        assert result.outcome_for(StepId.OS_VERSION).skipped
        assert result.outcome_for(StepId.SUBSYSTEM) is None
        assert result.total == 2

    def test_to_dict(self):
        result = PipelineResult()
        state = StepState.needs(ReasonCode.SUBSYSTEM_NOT_INSTALLED, "missing")
        result.record(StepId.SUBSYSTEM, Outcome.done("installed", requires_restart=True), state, remediated=True)
        result.restart_pending(StepId.SUBSYSTEM)
        result.finish()

        data = result.to_dict()
        assert data["status"] == PipelineStatus.RESTART_REQUIRED.value
        assert data["halted_at"] == "subsystem"
        assert data["category"] is None
        assert data["ended_at"]
        step = data["steps"][0]
        assert step["remediated"] is True
        assert step["requires_restart"] is True
        assert step["probe"] == "unsatisfied"
