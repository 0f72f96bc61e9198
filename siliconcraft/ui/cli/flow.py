"""
CLI command for running a design through the flow.

Thin wrapper over ``siliconcraft.core.use_cases.run_design``.
"""

from __future__ import annotations

import json
import sys

import click

MODES = {
    "1": "Non-interactive (full RTL → GDS)",
    "2": "Interactive (step-by-step Tcl shell)",
}


@click.command()
@click.argument("design")
@click.option(
    "--mode",
    type=click.Choice(sorted(MODES)),
    default=None,
    help="1 = full flow, 2 = interactive shell (prompted when omitted).",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def flow(ctx: click.Context, design: str, mode: str | None, as_json: bool) -> None:
    """Run DESIGN through the flow inside the container."""
    from siliconcraft.core.use_cases.provision import RunOptions
    from siliconcraft.core.use_cases.run_design import run_design
    from siliconcraft.ui.cli.output import progress_printer, render_result

    if mode is None:
        click.echo("Select run mode:")
        for key, label in MODES.items():
            click.echo(f"  {key}) {label}")
        mode = click.prompt("Enter choice", type=click.Choice(sorted(MODES)))

    interactive = mode == "2"
    if interactive and as_json:
        click.secho("❌ --json cannot be combined with interactive mode", fg="red")
        sys.exit(2)

    quiet = ctx.obj.get("quiet", False) or as_json
    result = run_design(
        design,
        interactive=interactive,
        config_path=ctx.obj.get("config_path"),
        workspace_root=ctx.obj.get("workspace_root"),
        options=RunOptions(observer=progress_printer(quiet)),
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        render_result(result, f"Flow for {design}")
    sys.exit(result.exit_code)
