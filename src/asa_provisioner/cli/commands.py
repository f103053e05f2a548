"""CLI command implementations."""

from __future__ import annotations

import contextlib
import os
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Literal

import typer

from asa_provisioner.cli import app
from asa_provisioner.cli.errors import handle_error
from asa_provisioner.resources.reference_input import SqlReferenceInputResource

if TYPE_CHECKING:
    from collections.abc import Iterator

    from asa_provisioner.config.schema import Config
    from asa_provisioner.engine.types import ApplyResult, Plan

DEFAULT_CONFIG = Path("asa-provisioner.yaml")

ConfigPath = Annotated[
    Path,
    typer.Option("--config", "-c", help="Path to the configuration file."),
]
NoColor = Annotated[bool, typer.Option("--no-color", help="Disable colored output.")]
AutoApprove = Annotated[bool, typer.Option("--auto-approve", help="Skip interactive approval.")]
NoRefresh = Annotated[
    bool,
    typer.Option("--no-refresh", help="Skip reading current inputs from Azure."),
]


def _use_color(no_color: bool) -> bool:
    return not (no_color or os.environ.get("NO_COLOR"))


@contextlib.contextmanager
def _reported(color: bool) -> Iterator[None]:
    """Print any error raised in the block and exit with its code."""
    try:
        yield
    except typer.Exit:
        raise
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc


def _confirm(question: str, canceled: str) -> None:
    try:
        typer.confirm(question, abort=True)
    except typer.Abort as e:
        typer.echo(canceled, err=True)
        raise typer.Exit(1) from e


def _apply_with_progress(plan_obj: Plan, cfg: Config, *, color: bool) -> ApplyResult:
    """Apply a plan with a Rich progress bar and one status line per input."""
    from rich.console import Console
    from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

    from asa_provisioner.cli.formatting import _ACTION_STYLES
    from asa_provisioner.config import apply
    from asa_provisioner.engine.types import ResourceChange

    total = len(plan_obj.actionable)
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=Console(no_color=not color),
    ) as progress:
        task = progress.add_task("Applying", total=total)

        def on_progress(change: ResourceChange, event: Literal["start", "done"]) -> None:
            style = _ACTION_STYLES[change.action.value]
            if event == "start":
                progress.update(task, description=f"{change.address}: {style.progress_verb}...")
            else:
                progress.console.print(f"  {change.address}: {style.done_verb}")
                progress.advance(task)

        return apply(plan_obj, cfg, progress=on_progress)


def _show_plan(plan_obj: Plan, *, color: bool) -> None:
    from asa_provisioner.cli.formatting import format_plan, format_plan_summary

    typer.echo(format_plan(plan_obj, color=color))
    typer.echo()
    typer.echo(format_plan_summary(plan_obj.summary(), color=color))


def _confirm_and_apply(
    plan_obj: Plan,
    cfg: Config,
    *,
    color: bool,
    auto_approve: bool,
    question: str,
    nothing_to_do: str,
) -> None:
    """Show the plan, ask for approval, apply it and print the summary."""
    from asa_provisioner.cli.formatting import format_apply_summary, has_actionable_changes

    if not has_actionable_changes(plan_obj):
        typer.echo(nothing_to_do)
        raise typer.Exit(0)

    _show_plan(plan_obj, color=color)
    typer.echo()
    if not auto_approve:
        _confirm(question, "Apply canceled.")

    with _reported(color):
        result = _apply_with_progress(plan_obj, cfg, color=color)
    typer.echo()
    typer.echo(format_apply_summary(result.summary(), color=color))


@app.command()
def plan(
    config: ConfigPath = DEFAULT_CONFIG,
    out: Annotated[Path | None, typer.Option("--out", "-o", help="Save plan to file.")] = None,
    no_color: NoColor = False,
    no_refresh: NoRefresh = False,
) -> None:
    """Show the changes needed to match the configuration. Exits 2 when there are any."""
    from asa_provisioner import config as api
    from asa_provisioner.cli.formatting import has_actionable_changes

    color = _use_color(no_color)
    with _reported(color):
        plan_obj = api.plan(api.load(config), refresh=not no_refresh)

    _show_plan(plan_obj, color=color)
    if out is not None:
        plan_obj.save(out)
        typer.echo(f"\nPlan saved to {out}")
    if has_actionable_changes(plan_obj):
        raise typer.Exit(2)


@app.command(name="apply")
def apply_cmd(
    plan_file: Annotated[Path | None, typer.Argument(help="Saved plan file to apply.")] = None,
    config: ConfigPath = DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
    no_refresh: NoRefresh = False,
) -> None:
    """Create, update and delete inputs to match the configuration."""
    from asa_provisioner import config as api
    from asa_provisioner.engine.types import Plan

    color = _use_color(no_color)
    with _reported(color):
        cfg = api.load(config)
        if plan_file is not None:
            plan_obj = Plan.load(plan_file)
        else:
            plan_obj = api.plan(cfg, refresh=not no_refresh)

    _confirm_and_apply(
        plan_obj,
        cfg,
        color=color,
        auto_approve=auto_approve,
        question="Do you want to apply these changes?",
        nothing_to_do="No changes. Resources are up-to-date.",
    )


@app.command()
def destroy(
    config: ConfigPath = DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
) -> None:
    """Delete every input tracked in state."""
    from asa_provisioner import config as api

    color = _use_color(no_color)
    with _reported(color):
        cfg = api.load(config)
        plan_obj = api.plan(cfg, destroy=True)

    _confirm_and_apply(
        plan_obj,
        cfg,
        color=color,
        auto_approve=auto_approve,
        question="Do you really want to destroy all resources?",
        nothing_to_do="No resources to destroy.",
    )


@app.command(name="refresh")
def refresh_cmd(
    config: ConfigPath = DEFAULT_CONFIG,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
) -> None:
    """Update the state file from the inputs as they exist in Azure."""
    from asa_provisioner import config as api
    from asa_provisioner.cli.formatting import changes_summary, format_changes, format_plan_summary

    color = _use_color(no_color)
    with _reported(color):
        cfg = api.load(config)
        changes, state = api.refresh(cfg)

    if not changes:
        typer.echo("No changes. State is up-to-date with Azure.")
        raise typer.Exit(0)

    typer.echo(format_changes(changes, color=color))
    typer.echo()
    typer.echo(format_plan_summary(changes_summary(changes), color=color, header="Refresh"))
    typer.echo()
    if not auto_approve:
        _confirm("Do you want to update the state file?", "Refresh canceled.")

    with _reported(color):
        api.save_state(cfg, state)
    count = len(state.resources)
    typer.echo(f"State refreshed. {count} resource{'s' if count != 1 else ''} tracked.")


@app.command()
def drift(
    config: ConfigPath = DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Compare state with Azure without writing anything. Exits 2 on drift."""
    from asa_provisioner import config as api
    from asa_provisioner.cli.formatting import format_changes

    color = _use_color(no_color)
    with _reported(color):
        changes = api.drift(api.load(config))

    if not changes:
        typer.echo("No drift detected. State is up-to-date with Azure.")
        raise typer.Exit(0)

    typer.echo("Drift detected:\n")
    typer.echo(format_changes(changes, color=color))
    raise typer.Exit(2)


@app.command(name="import")
def import_cmd(
    resource_id: Annotated[str, typer.Argument(help="Azure resource ID of the existing input.")],
    config: ConfigPath = DEFAULT_CONFIG,
    resource_type: Annotated[
        str,
        typer.Option("--type", "-t", help="Resource type to import as."),
    ] = SqlReferenceInputResource.resource_type,
    no_color: NoColor = False,
) -> None:
    """Start tracking an input that already exists in Azure."""
    from asa_provisioner import config as api
    from asa_provisioner.cli.formatting import styler

    color = _use_color(no_color)
    with _reported(color):
        inst = api.import_resource(api.load(config), resource_id, resource_type=resource_type)

    typer.echo(styler(color)(f"{inst.address}: Import complete.", fg="green"))
    typer.echo(f"  Imported {inst.id}")


@app.command()
def validate(
    config: ConfigPath = DEFAULT_CONFIG,
    no_color: NoColor = False,
) -> None:
    """Check the configuration and state file without calling Azure."""
    from asa_provisioner import config as api
    from asa_provisioner.cli.formatting import styler

    color = _use_color(no_color)
    with _reported(color):
        api.plan(api.load(config), refresh=False)

    typer.echo(styler(color)("Configuration is valid.", fg="green"))
