"""Command line entry point for running plan files."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from loguru import logger

from wiretalk.config import get_settings
from wiretalk.errors import PlanError
from wiretalk.logging_utils import configure_logging
from wiretalk.script import build_conversation, load_plan

EXIT_FAILURE = 1
EXIT_INVALID_PLAN = 2

app = typer.Typer(
    name="wiretalk",
    help="Drive scripted conversations against TCP services.",
    add_completion=False,
)


@app.command("run")
def run_command(
    plan: Path = typer.Argument(..., help="YAML plan file"),
    host: Optional[str] = typer.Option(None, "--host", help="Override the plan's default host"),
    port: Optional[int] = typer.Option(None, "--port", help="Override the plan's default port"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Log level, e.g. DEBUG"),
) -> None:
    """Run a plan and exit non-zero if the conversation fails."""

    settings = get_settings(log_level=log_level) if log_level else get_settings()
    configure_logging(profile="cli", level=settings.log_level)
    try:
        conversation = build_conversation(load_plan(plan), settings=settings, host=host, port=port)
    except PlanError as exc:
        typer.echo(f"invalid plan: {exc}", err=True)
        raise typer.Exit(EXIT_INVALID_PLAN) from exc

    error = conversation.run_sync()
    if error is not None:
        logger.debug("cli.run_failed plan={}", plan)
        typer.echo(f"FAIL {plan}: {error}", err=True)
        raise typer.Exit(EXIT_FAILURE)
    typer.echo(f"OK {plan}")


@app.command("check")
def check_command(plan: Path = typer.Argument(..., help="YAML plan file")) -> None:
    """Validate a plan without connecting to anything."""

    try:
        conversation = build_conversation(load_plan(plan))
    except PlanError as exc:
        typer.echo(f"invalid plan: {exc}", err=True)
        raise typer.Exit(EXIT_INVALID_PLAN) from exc
    typer.echo(f"{plan}: {len(conversation.connections)} connections, {len(conversation.plan)} steps")
