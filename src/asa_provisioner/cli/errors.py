"""Map exceptions to one-line stderr messages and exit codes."""

from __future__ import annotations

import typer

from asa_provisioner.config.loader import ConfigError
from asa_provisioner.core.resource_id import InvalidResourceIdError
from asa_provisioner.engine.errors import (
    ApplyError,
    ReconcileError,
    ResourceImportError,
    StalePlanError,
    StateLockError,
    StateSubscriptionMismatchError,
)

# First match wins, so subclasses go before their bases.
_PREFIXES: tuple[tuple[type[Exception], str], ...] = (
    (ConfigError, "Configuration error"),
    (InvalidResourceIdError, "Invalid resource ID"),
    (ResourceImportError, "Import failed"),
    (StalePlanError, "Plan is stale"),
    (StateSubscriptionMismatchError, "State mismatch"),
    (StateLockError, "State lock error"),
    (ApplyError, "Apply failed"),
    (ReconcileError, "Azure error"),
)

_DONE_VERBS = (
    ("create", "added"),
    ("update", "changed"),
    ("replace", "replaced"),
    ("delete", "destroyed"),
)


def _partial_result(exc: ApplyError) -> str | None:
    counts = exc.result.summary()
    parts = [f"{counts[action]} {verb}" for action, verb in _DONE_VERBS if counts[action]]
    return f"Partial result: {', '.join(parts)}." if parts else None


def handle_error(exc: Exception, *, color: bool = True) -> int:
    """Print a clean error message to stderr and return the exit code (always 1)."""
    fg = typer.colors.RED if color else None
    prefix = next((p for cls, p in _PREFIXES if isinstance(exc, cls)), "Error")
    typer.echo(typer.style(f"{prefix}: {exc}", fg=fg), err=True)

    if isinstance(exc, ApplyError):
        detail = _partial_result(exc)
        if detail:
            typer.echo(typer.style(f"  {detail}", fg=fg), err=True)
        if isinstance(exc.__cause__, ReconcileError) and exc.__cause__.created_id:
            typer.echo(
                typer.style(f"  Created but not read back: {exc.__cause__.created_id}", fg=fg),
                err=True,
            )
    return 1
