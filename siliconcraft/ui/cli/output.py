"""
Shared CLI rendering for pipeline runs.
"""

from __future__ import annotations

import click

from siliconcraft.core.models.pipeline import StageDescriptor, StageOutcome, StageStatus
from siliconcraft.core.use_cases.provision import ProvisionResult

_STATUS_STYLE = {
    StageStatus.SUCCESS: ("✅", "green"),
    StageStatus.DEGRADED: ("⚠️ ", "yellow"),
    StageStatus.FAILED: ("❌", "red"),
}


def progress_printer(quiet: bool = False):
    """Stage observer that prints one line per finished stage."""

    def observe(stage: StageDescriptor, outcome: StageOutcome | None) -> None:
        if quiet:
            return
        if outcome is None:
            label = stage.description or stage.name
            click.secho(f"   ▸ {label}…", fg="cyan")
            return
        icon, color = _STATUS_STYLE[outcome.status]
        note = " (already done)" if outcome.skipped else ""
        click.echo(f"     {icon} ", nl=False)
        click.secho(f"{stage.name}{note}", fg=color, nl=False)
        if outcome.detail and not outcome.skipped:
            click.echo(f"  {outcome.detail}")
        else:
            click.echo()

    return observe


def render_result(result: ProvisionResult, title: str) -> None:
    """Print the final summary, or the categorized failure."""
    click.echo()
    report = result.report

    if result.ok:
        click.secho(f"✅ {title} complete", fg="green", bold=True)
        if report and report.degraded:
            click.secho(f"   {len(report.degraded)} stage(s) degraded:", fg="yellow")
            for outcome in report.degraded:
                click.echo(f"     • {outcome.stage}: {outcome.detail}")
    else:
        message = result.error
        if message is None and report and report.failed_outcome:
            failed = report.failed_outcome
            message = f"{failed.stage}: {failed.detail}"
        category = result.error_category or "internal"
        click.secho(f"❌ {title} failed [{category}]", fg="red", bold=True)
        click.echo(f"   {message}")
        if result.remediation:
            click.echo()
            click.secho("   What to do:", fg="yellow")
            for line in result.remediation.splitlines():
                click.echo(f"     {line}")

    if result.log_path:
        click.echo(f"   Log: {result.log_path}")
    click.echo()
