"""
CLI commands for troubleshooting support.

Thin wrappers over the advisory catalog and the integrity verifier.
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from hostprep.core.models.advisory import Category


@click.command("advice")
@click.argument("category", type=click.Choice([c.value for c in Category]))
@click.option("--error", "error_details", default="", help="Error text to tailor the steps to.")
def advice(category: str, error_details: str) -> None:
    """Show the troubleshooting advisory for CATEGORY."""
    from hostprep.core.services.provisioning.domain.error_classification import (
        advice_for,
        format_advice,
    )

    click.echo(format_advice(advice_for(Category(category), error_details)))


@click.command("verify")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("digest")
def verify(file: Path, digest: str) -> None:
    """Check FILE against an expected SHA-256 DIGEST."""
    from hostprep.core.services.provisioning.execution.integrity import (
        compute_digest,
        normalize_digest,
        verify_digest,
    )

    try:
        actual = compute_digest(file)
    except OSError as e:
        click.secho(f"❌ Cannot read {file}: {e}", fg="red")
        sys.exit(1)

    if verify_digest(actual, digest):
        click.secho(f"✓ {file.name}: SHA-256 matches", fg="green")
        click.echo(f"   {actual}")
        return

    click.secho(f"✗ {file.name}: SHA-256 mismatch", fg="red", bold=True)
    click.echo(f"   expected: {normalize_digest(digest) or '(empty)'}")
    click.echo(f"   actual:   {actual}")
    sys.exit(1)
