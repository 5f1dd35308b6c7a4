"""
Provision use case — wire the pipeline and run it once.

This is the vertical slice from the CLI to the host: build the
capabilities from settings, order them into steps, run the
orchestrator, and turn its PipelineResult into an exit code and an
advisory.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from hostprep.adapters.base import CommandRunner
from hostprep.core.config.settings import InstallerSettings
from hostprep.core.models.advisory import Advisory, Category
from hostprep.core.models.host import HostInfo
from hostprep.core.models.pipeline import PipelineResult
from hostprep.core.models.step import Step
from hostprep.core.services.provisioning.capabilities.companion_process import (
    CompanionProcessCapability,
)
from hostprep.core.services.provisioning.capabilities.os_features import OsFeaturesCapability
from hostprep.core.services.provisioning.capabilities.os_version import OsVersionCapability
from hostprep.core.services.provisioning.capabilities.runtime_image import RuntimeImageCapability
from hostprep.core.services.provisioning.capabilities.subsystem import SubsystemCapability
from hostprep.core.services.provisioning.data.constants import ExitCode
from hostprep.core.services.provisioning.detection.host import detect_architecture, detect_host
from hostprep.core.services.provisioning.domain.error_classification import (
    advice_for,
    exit_code_for,
)
from hostprep.core.services.provisioning.execution.download import (
    ArtifactFetcher,
    ReleaseSource,
    fetch_release_metadata,
)
from hostprep.core.services.provisioning.execution.staging import ArtifactStore
from hostprep.core.services.provisioning.orchestration.orchestrator import (
    Reporter,
    StepOrchestrator,
)

logger = logging.getLogger(__name__)


@dataclass
class ProvisionRun:
    """Result of one provisioning (or probe-only) run."""

    pipeline: PipelineResult | None = None
    exit_code: ExitCode = ExitCode.UNEXPECTED
    advisory: Advisory | None = None
    error_details: str = ""
    log_file: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.exit_code == ExitCode.SUCCESS

    def to_dict(self) -> dict:
        result: dict = {"exit_code": int(self.exit_code)}
        if self.error:
            result["error"] = self.error
        if self.pipeline:
            result["pipeline"] = self.pipeline.to_dict()
        if self.advisory:
            result["advisory"] = {
                "category": self.advisory.category.value,
                "title": self.advisory.title,
                "steps": list(self.advisory.steps),
            }
        if self.error_details:
            result["error_details"] = self.error_details
        if self.log_file:
            result["log_file"] = self.log_file
        return result


def build_steps(
    settings: InstallerSettings,
    runner: CommandRunner,
    fetcher: ArtifactFetcher,
    release_source: ReleaseSource = fetch_release_metadata,
    host_probe: Callable[[], HostInfo] = detect_host,
    architecture: Callable[[], str] = detect_architecture,
) -> list[Step]:
    """The fixed step list, in execution order.

    The companion check runs first so a running client halts the run
    before anything on the host is touched.
    """
    t = settings.timeouts
    capabilities = [
        CompanionProcessCapability(
            runner,
            process_name=settings.companion_process_name,
            timeout=t.probe,
        ),
        OsVersionCapability(host_probe=host_probe),
        OsFeaturesCapability(
            runner,
            features=settings.required_features,
            query_timeout=t.feature_query,
            enable_timeout=t.feature_enable,
        ),
        SubsystemCapability(
            runner,
            fetcher,
            settings,
            release_source=release_source,
            architecture=architecture,
        ),
        RuntimeImageCapability(
            runner,
            fetcher,
            settings,
            release_source=release_source,
            architecture=architecture,
        ),
    ]
    return [cap.as_step(ordinal) for ordinal, cap in enumerate(capabilities, 1)]


def build_orchestrator(
    settings: InstallerSettings | None = None,
    reporter: Reporter | list[Reporter] | None = None,
    runner: CommandRunner | None = None,
    release_source: ReleaseSource = fetch_release_metadata,
    host_probe: Callable[[], HostInfo] = detect_host,
    architecture: Callable[[], str] = detect_architecture,
) -> StepOrchestrator:
    """Assemble a ready-to-run orchestrator.

    Args:
        settings: Tunables; defaults when None.
        reporter: Extra progress sink(s) besides the log.
        runner: Command runner; the real subprocess runner when None.
        release_source: Release-index fetcher (replaced in tests).
        host_probe: Host version detection (replaced in tests).
        architecture: Architecture detection (replaced in tests).
    """
    settings = settings or InstallerSettings()
    if runner is None:
        from hostprep.adapters.shell.command import SubprocessRunner

        runner = SubprocessRunner(grace_seconds=settings.timeouts.kill_grace)

    store = ArtifactStore(settings.resolved_staging_dir())
    fetcher = ArtifactFetcher(store, user_agent=settings.user_agent)
    logger.debug("Staging directory: %s", store.root)

    steps = build_steps(
        settings,
        runner,
        fetcher,
        release_source=release_source,
        host_probe=host_probe,
        architecture=architecture,
    )
    return StepOrchestrator(steps, reporter=reporter)


def run_provisioning(
    orchestrator: StepOrchestrator,
    probe_only: bool = False,
    log_file: str | None = None,
) -> ProvisionRun:
    """Run the pipeline once and classify how it ended.

    Returns:
        ProvisionRun with the pipeline record, exit code and, for a
        halted run, the advisory to show.
    """
    run = ProvisionRun(log_file=log_file)

    try:
        pipeline = orchestrator.run(probe_only=probe_only)
    except Exception as e:
        logger.exception("Provisioning run crashed")
        run.error = f"Unexpected error: {e}"
        run.error_details = str(e)
        run.advisory = advice_for(Category.UNKNOWN, run.error_details)
        return run

    run.pipeline = pipeline
    run.exit_code = exit_code_for(pipeline)

    if pipeline.category is not None:
        failed = pipeline.failed_entry
        if failed is not None:
            run.error_details = " ".join(
                filter(None, [failed.outcome.message, failed.outcome.error_detail])
            )
        run.advisory = advice_for(pipeline.category, run.error_details)
        logger.info("Advisory: %s", run.advisory.title)

    logger.info(
        "Run %s: %s (exit %d)",
        pipeline.run_id, pipeline.status.value, int(run.exit_code),
    )
    return run
