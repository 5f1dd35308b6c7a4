"""
Capability base — one probe/remediate pair per provisioned capability.

To add a capability:
    1. Subclass Capability
    2. Set step_id and title; override unknown_blocks if a failed
       probe should only warn
    3. Implement probe(), and remediate() if the state can be fixed
    4. Add it to ``build_steps`` in the provisioning use case
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from hostprep.core.models.step import Outcome, Step, StepId, StepState

logger = logging.getLogger(__name__)


class Capability(ABC):
    """Abstract probe/remediate pair.

    ``probe`` must be read-only. ``remediate`` receives the state the
    probe returned and may assume it is Unsatisfied.
    """

    step_id: StepId
    title: str = ""
    unknown_blocks: bool = True
    remediable: bool = True

    @abstractmethod
    def probe(self) -> StepState:
        """Determine the live state of this capability."""

    def remediate(self, state: StepState) -> Outcome:
        """Default: nothing can be done automatically."""
        return Outcome.failure(
            state.reason,
            state.detail or f"{self.title} requirement not met",
        )

    def as_step(self, ordinal: int) -> Step:
        return Step(
            id=self.step_id,
            ordinal=ordinal,
            probe=self.probe,
            remediate=self.remediate,
            title=self.title,
            unknown_blocks=self.unknown_blocks,
            remediable=self.remediable,
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} step={self.step_id.value!r}>"
