"""
Domain models — Pydantic types and dataclasses for provisioning.

All models are re-exported here for convenient access:

    from hostprep.core.models import Step, StepState, Outcome, PipelineResult
"""

from hostprep.core.models.advisory import Advisory, Category
from hostprep.core.models.artifact import LocalArtifact, ReleaseAsset, ReleaseMetadata
from hostprep.core.models.host import HostInfo
from hostprep.core.models.invocation import CommandResult, Invocation
from hostprep.core.models.pipeline import (
    PipelineResult,
    PipelineStatus,
    StepRecord,
)
from hostprep.core.models.step import (
    Outcome,
    ReasonCode,
    StateKind,
    Step,
    StepId,
    StepState,
)

__all__ = [
    "Advisory",
    "Category",
    "CommandResult",
    "HostInfo",
    "Invocation",
    "LocalArtifact",
    "Outcome",
    "PipelineResult",
    "PipelineStatus",
    "ReasonCode",
    "ReleaseAsset",
    "ReleaseMetadata",
    "StateKind",
    "Step",
    "StepId",
    "StepRecord",
    "StepState",
]
