"""
L5 Orchestration — ``__init__.py`` re-exports top-level coordinators.

These are the entry points that external code calls.
"""

from hostprep.core.services.provisioning.orchestration.orchestrator import (  # noqa: F401
    CollectingReporter,
    LoggingReporter,
    Reporter,
    RunState,
    StepOrchestrator,
    StepPhase,
)
