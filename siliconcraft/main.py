"""
Silicon Craft provisioner — CLI entrypoint.

Usage:
    siliconcraft                 # same as 'siliconcraft setup'
    siliconcraft setup
    siliconcraft flow inverter
    siliconcraft status
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from siliconcraft import __version__
from siliconcraft.core.observability.logging_config import setup_logging


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="siliconcraft")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to siliconcraft.yml (default: <workspace-root>/siliconcraft.yml).",
)
@click.option(
    "--workspace-root",
    envvar="WORKSPACE_ROOT",
    type=click.Path(file_okay=False),
    default=None,
    help="Workspace directory (default: ~/Silicon_Craft_PD_Workspace).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
    workspace_root: str | None,
) -> None:
    """Silicon Craft — set up OpenLane + sky130 and run designs."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None
    ctx.obj["workspace_root"] = Path(workspace_root).expanduser() if workspace_root else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("SC_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("SC_LOG_FILE"),
        log_file_level=os.environ.get("SC_LOG_FILE_LEVEL"),
        quiet_dispatch=not debug,
    )

    if ctx.invoked_subcommand is None:
        ctx.invoke(setup)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def setup(ctx: click.Context, as_json: bool = False) -> None:
    """Provision the host and workspace, then build the sample design."""
    from siliconcraft.core.use_cases.provision import RunOptions, run_setup
    from siliconcraft.ui.cli.output import progress_printer, render_result

    quiet = ctx.obj.get("quiet", False) or as_json
    if not quiet:
        click.secho("\n🔧 Silicon Craft setup", fg="cyan", bold=True)

    result = run_setup(
        config_path=ctx.obj.get("config_path"),
        workspace_root=ctx.obj.get("workspace_root"),
        options=RunOptions(observer=progress_printer(quiet)),
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        render_result(result, "Setup")
    sys.exit(result.exit_code)


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show what the workspace holds: checkout, PDK, designs, logs."""
    from siliconcraft.core.use_cases.status import get_status

    result = get_status(
        config_path=ctx.obj.get("config_path"),
        workspace_root=ctx.obj.get("workspace_root"),
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(7 if result.error else 0)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(7)

    config = result.config
    assert config is not None  # guaranteed after error check above

    click.secho(f"\n📋 {config.workspace_root}", fg="cyan", bold=True)
    if not result.root_exists:
        click.secho("   Workspace not created yet. Run 'siliconcraft setup'.", fg="yellow")
        click.echo()
        return

    repo = "✅ valid" if result.repo_valid else "❌ missing or incomplete"
    click.echo(f"   Checkout: {repo}")
    if result.fetch_marker:
        kind = "shallow" if result.fetch_marker.get("shallow") else "full"
        click.echo(f"             {kind} clone, {result.fetch_marker.get('fetched_at', '?')}")
    pdk = "✅ present" if result.pdk_present else "❌ missing"
    click.echo(f"   PDK:      {config.pdk} {pdk}")
    click.echo(f"   Image:    {config.container_image}")
    if result.tools:
        tools = "  ".join(
            f"{name} {'✅' if available else '❌'}" for name, available in result.tools.items()
        )
        click.echo(f"   Tools:    {tools}")

    built = [d for d in result.designs if d.gds]
    if built:
        click.echo()
        click.secho(f"   Designs with GDS: {len(built)}", fg="white", bold=True)
        for d in built:
            click.echo(f"     • {d.name}  → {d.gds[-1]}")

    if result.logs:
        click.echo()
        click.secho("   Logs:", fg="white", bold=True)
        for log in result.logs:
            click.echo(f"     • {log.path.name}")
            if log.last_run:
                click.echo(f"       {log.last_run}")

    click.echo()


# ── Sub-commands ────────────────────────────────────────────────

from siliconcraft.ui.cli.flow import flow

cli.add_command(flow)


if __name__ == "__main__":
    cli()
