# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Command-line host for the service callback dispatcher.

The dispatcher owns no loop of its own: a scheduler (cron, a Kubernetes
CronJob, an Azure timer) invokes ``run`` once per tick.

Usage:
    service-callback run --config /etc/service-callback/config.ini
    service-callback run --metrics-file /tmp/scb.prom
    service-callback config
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from .config_loader import ENV_PREFIX, ServiceSettings, load_settings
from .core import CallbackService
from .exceptions import ConfigurationError
from .logger import configure_logging

console = Console()
err_console = Console(stderr=True)


def run_async(coro):
    """Run an async coroutine synchronously."""
    return asyncio.run(coro)


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    err_console.print(f"[red]Error:[/red] {message}")


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    console.print_json(json.dumps(data, indent=2, default=str))


def _load(config_path: str | None) -> ServiceSettings:
    try:
        return load_settings(config_path)
    except ConfigurationError as exc:
        print_error(str(exc))
        sys.exit(1)


@click.group()
@click.version_option(package_name="service-callback")
@click.option(
    "--config",
    "-c",
    "config_path",
    default=None,
    help=f"Path to config.ini (default: ${ENV_PREFIX}CONFIG or ./config.ini).",
)
@click.option(
    "--log-level",
    default=lambda: os.getenv(f"{ENV_PREFIX}LOG_LEVEL", "INFO"),
    show_default="INFO",
    help="Logging level.",
)
@click.pass_context
def main(ctx: click.Context, config_path: str | None, log_level: str) -> None:
    """Dispatch queued service callbacks."""
    configure_logging(log_level)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


@main.command("run")
@click.option("--json", "as_json", is_flag=True, help="Print the batch summary as JSON.")
@click.option(
    "--metrics-file",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    help="Write Prometheus metrics for the pass to this file.",
)
@click.pass_context
def run_command(ctx: click.Context, as_json: bool, metrics_file: str | None) -> None:
    """Process one batch of messages and exit."""
    settings = _load(ctx.obj["config_path"])
    service = CallbackService(settings)
    summary = run_async(service.run_once())

    if metrics_file:
        Path(metrics_file).write_bytes(service.metrics.generate_latest())

    if as_json:
        print_json(summary.as_dict())
        return

    table = Table(title="Batch summary")
    table.add_column("Outcome", style="cyan")
    table.add_column("Messages", justify="right")
    for key, value in summary.as_dict().items():
        table.add_row(key.replace("_", " "), str(value))
    console.print(table)


@main.command("config")
@click.pass_context
def config_command(ctx: click.Context) -> None:
    """Show the effective configuration with secrets masked."""
    settings = _load(ctx.obj["config_path"])
    table = Table(title="Service callback configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for key, value in settings.masked().items():
        table.add_row(key, "[dim]-[/dim]" if value is None else str(value))
    console.print(table)


if __name__ == "__main__":
    main()
