"""
hostprep — CLI entrypoint.

Usage:
    python -m hostprep.main --help
    python -m hostprep.main run
    python -m hostprep.main run --quiet
    python -m hostprep.main check --json
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from hostprep import __version__
from hostprep.core.observability.logging_config import (
    FILE_ENV_VAR,
    FILE_LEVEL_ENV_VAR,
    resolve_level,
    setup_logging,
    start_run_log,
)


@click.group()
@click.version_option(version=__version__, prog_name="hostprep")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Optional settings YAML (default: $HOSTPREP_CONFIG, else built-in).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """hostprep — prepare a Windows host for the BOINC BUDA runner."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    level = resolve_level(verbose=verbose, debug=debug)
    ctx.obj["log_level"] = level

    setup_logging(
        level=level,
        log_file=os.environ.get(FILE_ENV_VAR),
        log_file_level=os.environ.get(FILE_LEVEL_ENV_VAR),
        quiet_third_party=not debug,
    )


def _load_settings_or_exit(ctx: click.Context):
    from hostprep.core.config.settings import ConfigError, load_settings

    try:
        return load_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)


@cli.command()
@click.option("--quiet", "-q", is_flag=True, help="Unattended: no prompts, result via exit code.")
@click.option("--very-quiet", is_flag=True, help="Like --quiet, and print only the final line.")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation before starting.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def run(ctx: click.Context, quiet: bool, very_quiet: bool, yes: bool, as_json: bool) -> None:
    """Provision this host: check each requirement and fix what is missing.

    Safe to repeat. After a restart, run again to continue.

    Examples:

        hostprep run

        hostprep run --quiet
    """
    from hostprep.core.services.provisioning.data.constants import ExitCode
    from hostprep.core.services.provisioning.domain.error_classification import (
        build_issue_url,
        format_advice,
    )
    from hostprep.core.use_cases.provision import build_orchestrator, run_provisioning
    from hostprep.ui.cli.progress import ConsoleReporter, interrupt_guard

    unattended = quiet or very_quiet
    interactive = not unattended and not as_json
    settings = _load_settings_or_exit(ctx)

    if very_quiet or as_json:
        console_level = "CRITICAL"
    elif quiet:
        console_level = "ERROR"
    else:
        console_level = ctx.obj["log_level"]
    log_path = start_run_log(console_level, debug=ctx.obj["debug"])

    if interactive and not yes:
        click.secho("\n🛠  hostprep will prepare this computer for the BOINC BUDA runner:", fg="cyan", bold=True)
        click.echo("   • check the Windows version")
        click.echo("   • enable the required Windows features")
        click.echo("   • install or update WSL")
        click.echo("   • install or update the BUDA runner image")
        click.echo()
        if not click.confirm("Continue?", default=True):
            click.secho("Cancelled.", fg="yellow")
            sys.exit(int(ExitCode.USER_DECLINED))

    reporters = [] if (very_quiet or as_json) else [ConsoleReporter(verbose=ctx.obj.get("verbose", False))]
    orchestrator = build_orchestrator(settings=settings, reporter=reporters)

    with interrupt_guard(orchestrator):
        result = run_provisioning(orchestrator, log_file=str(log_path))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(int(result.exit_code))

    pipeline = result.pipeline
    code = result.exit_code

    if very_quiet:
        status = pipeline.status.value if pipeline else "error"
        click.echo(f"hostprep: {status} (exit {int(code)})")
        sys.exit(int(code))

    click.echo()
    if code == ExitCode.SUCCESS:
        click.secho("✅ This computer is ready for the BUDA runner.", fg="green", bold=True)
        for warning in pipeline.warnings if pipeline else []:
            click.secho(f"   ⚠️  {warning}", fg="yellow")
    elif code == ExitCode.RESTART_REQUIRED:
        click.secho("🔄 A restart is required to finish provisioning.", fg="yellow", bold=True)
        click.echo("   Restart Windows, then run hostprep again to continue.")
    elif code == ExitCode.USER_DECLINED:
        click.secho("⏹  Provisioning stopped at your request.", fg="yellow", bold=True)
        click.echo("   Run hostprep again to continue where it left off.")
    else:
        if result.error:
            click.secho(f"❌ {result.error}", fg="red", bold=True)
        else:
            halted = pipeline.halted_at.value if pipeline and pipeline.halted_at else "?"
            click.secho(f"❌ Provisioning stopped at: {halted}", fg="red", bold=True)
        if result.advisory and not quiet:
            click.echo()
            click.echo(format_advice(result.advisory))
        click.echo(f"   Log file: {log_path}")

        if interactive and result.advisory and result.advisory.offer_issue_report:
            if click.confirm("Open a pre-filled issue report in your browser?", default=False):
                click.launch(build_issue_url(
                    settings.issue_url,
                    result.advisory,
                    error_details=result.error_details,
                    log_path=str(log_path),
                    version=__version__,
                ))

    click.echo()
    sys.exit(int(code))


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def check(ctx: click.Context, as_json: bool) -> None:
    """Report what provisioning would change, without changing anything."""
    from hostprep.core.use_cases.provision import build_orchestrator, run_provisioning
    from hostprep.ui.cli.progress import ConsoleReporter

    settings = _load_settings_or_exit(ctx)
    console_level = "CRITICAL" if as_json else ctx.obj["log_level"]
    log_path = start_run_log(console_level, debug=ctx.obj["debug"])

    reporters = [] if as_json else [ConsoleReporter(verbose=ctx.obj.get("verbose", False))]
    orchestrator = build_orchestrator(settings=settings, reporter=reporters)
    result = run_provisioning(orchestrator, probe_only=True, log_file=str(log_path))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(int(result.exit_code))

    click.echo()
    if result.ok:
        click.secho("✅ All requirements are satisfied.", fg="green", bold=True)
    elif result.error:
        click.secho(f"❌ {result.error}", fg="red", bold=True)
    else:
        pending = [
            e.step_id.value for e in result.pipeline.entries if not e.outcome.success
        ] if result.pipeline else []
        click.secho(f"⚠️  Needs action: {', '.join(pending)}", fg="yellow", bold=True)
        if result.advisory:
            click.echo(f"   {result.advisory.title}")
        click.echo("   Run `hostprep run` to fix.")
    click.echo()
    sys.exit(int(result.exit_code))


# ── Register support commands from hostprep/ui/cli/ ───────────────

from hostprep.ui.cli.support import advice, verify  # noqa: E402

cli.add_command(advice)
cli.add_command(verify)


if __name__ == "__main__":
    cli()
