"""CLI application for asa-provisioner."""

from __future__ import annotations

import logging
import os
import sys

import typer

from asa_provisioner import __version__

app = typer.Typer(
    name="asa-provisioner",
    help="Plan and apply Azure Stream Analytics SQL reference inputs.",
    no_args_is_help=True,
    add_completion=False,
)

_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"
_LOG_ENV = "ASA_LOG"
_VERBOSITY = {1: logging.INFO, 2: logging.DEBUG}
_VALID_LEVELS = ("CRITICAL", "DEBUG", "ERROR", "INFO", "WARNING")


def _log_level(verbose: int) -> int | None:
    """Level for the package logger; ``ASA_LOG`` beats ``-v``. None leaves logging alone."""
    name = os.environ.get(_LOG_ENV, "").upper()
    if not name:
        return _VERBOSITY[min(verbose, 2)] if verbose > 0 else None
    if name not in _VALID_LEVELS:
        print(
            f"WARNING: invalid {_LOG_ENV} level '{name}', "
            f"expected one of {', '.join(_VALID_LEVELS)}; defaulting to INFO",
            file=sys.stderr,
        )
        return logging.INFO
    return logging.getLevelName(name)


def _configure_logging(verbose: int) -> None:
    """Send ``asa_provisioner`` logs to stderr when asked to; other loggers stay at WARNING."""
    level = _log_level(verbose)
    if level is None:
        return
    logging.basicConfig(
        level=logging.WARNING,
        format=_LOG_FORMAT,
        stream=sys.stderr,
        force=True,
    )
    logging.getLogger("asa_provisioner").setLevel(level)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"asa-provisioner {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase log verbosity (-v info, -vv debug).",
    ),
) -> None:
    """Terraform-style provisioning for Azure Stream Analytics reference inputs."""
    _ = version
    _configure_logging(verbose)


# Commands register themselves on ``app`` when imported.
from asa_provisioner.cli import commands as _commands  # noqa: E402, F401
