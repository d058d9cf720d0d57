"""CLI command for running owner campaigns.

Usage:
    steward run
    steward run --identity node-1 --backend redis
    steward run --log-level debug --json
"""

from __future__ import annotations

import asyncio
import signal

import typer

from steward.config import settings
from steward.coordination.runtime import create_coordinator
from steward.errors import SessionError
from steward.observability.logging import configure_logging
from steward.owner.manager import OwnerManager

app = typer.Typer(help="Campaign for the primary and background duties")


async def _run(identity: str | None, backend: str | None) -> None:
    client = create_coordinator(backend)
    manager = OwnerManager(client, identity=identity)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    try:
        await manager.start_campaigns()
        typer.echo(f"Campaigning as {manager.id}")
        await stop.wait()
    finally:
        await manager.stop()
        await client.close()


@app.callback(invoke_without_command=True)
def run(
    identity: str | None = typer.Option(
        None,
        "--identity",
        "-i",
        help="Campaign identity (defaults to STEWARD_INSTANCE_ID)",
    ),
    backend: str | None = typer.Option(
        None,
        "--backend",
        "-b",
        help="Coordination backend: memory, redis",
    ),
    log_level: str = typer.Option(
        settings.log_level,
        "--log-level",
        "-l",
        help="Log level: debug, info, warning, error",
    ),
    json_logs: bool = typer.Option(
        settings.log_json,
        "--json/--no-json",
        help="Emit JSON logs",
    ),
) -> None:
    """Run owner campaigns until SIGINT or SIGTERM."""
    configure_logging(json_format=json_logs, level=log_level)

    try:
        asyncio.run(_run(identity, backend))
    except SessionError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e
