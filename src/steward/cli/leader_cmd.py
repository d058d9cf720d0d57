"""CLI command for inspecting the current owner of a duty.

Usage:
    steward leader
    steward leader --duty background
"""

from __future__ import annotations

import asyncio

import typer

from steward.config import settings
from steward.coordination.runtime import create_coordinator
from steward.errors import ElectionError, NoLeaderError
from steward.owner.state import DutyName

app = typer.Typer(help="Print the current owner of a duty")


async def _query(key: str, backend: str | None) -> str:
    client = create_coordinator(backend)
    try:
        record = await client.leader(key)
    finally:
        await client.close()
    return record.value


@app.callback(invoke_without_command=True)
def leader(
    duty: DutyName = typer.Option(
        DutyName.PRIMARY,
        "--duty",
        "-d",
        help="Duty to inspect",
    ),
    backend: str | None = typer.Option(
        None,
        "--backend",
        "-b",
        help="Coordination backend: memory, redis",
    ),
) -> None:
    """Print the identity of the current owner."""
    key = settings.owner_key if duty is DutyName.PRIMARY else settings.background_owner_key

    try:
        owner = asyncio.run(_query(key, backend))
    except NoLeaderError:
        typer.echo(f"No {duty.value} owner")
        raise typer.Exit(code=1) from None
    except ElectionError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=2) from e

    typer.echo(owner)
