"""
Companion process check — the BOINC client must not be running.

No remediation: the operator stops the client. A failed process
query is tolerated with a warning.
"""

from __future__ import annotations

import logging

from hostprep.adapters.base import CommandRunner
from hostprep.core.models.step import ReasonCode, StepId, StepState
from hostprep.core.services.provisioning.capabilities.base import Capability
from hostprep.core.services.provisioning.detection.host import ProcessQueryError, list_processes

logger = logging.getLogger(__name__)


class CompanionProcessCapability(Capability):
    step_id = StepId.COMPANION_PROCESS
    title = "BOINC client stopped"
    unknown_blocks = False
    remediable = False

    def __init__(self, runner: CommandRunner, process_name: str = "boinc", timeout: float = 10):
        self._runner = runner
        self._name = process_name
        self._timeout = timeout

    def probe(self) -> StepState:
        try:
            pids = list_processes(self._runner, self._name, timeout=self._timeout)
        except ProcessQueryError as e:
            return StepState.undetermined(f"Could not check for running {self._name}: {e}")

        if pids:
            logger.info("%s is running (pid %s)", self._name, ", ".join(map(str, pids)))
            return StepState.needs(
                ReasonCode.COMPANION_RUNNING,
                f"The BOINC client is running ({len(pids)} process(es)). "
                "Exit BOINC Manager or stop the BOINC service, then run again.",
                pids=pids,
            )
        return StepState.ok(f"{self._name} is not running")
