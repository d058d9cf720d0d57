"""CLI commands for Steward.

Provides command-line interface using Typer:
- steward run: Campaign for both duties until interrupted
- steward leader: Print the current owner of a duty

Usage:
    steward --help
    steward run --identity p1
    steward leader --duty background
"""

import typer

from steward.cli.leader_cmd import app as leader_app
from steward.cli.run_cmd import app as run_app

# Main CLI application
app = typer.Typer(
    name="steward",
    help="Steward: owner election for a fleet of peer processes",
    no_args_is_help=True,
)

# Add subcommands
app.add_typer(run_app, name="run")
app.add_typer(leader_app, name="leader")


@app.callback()
def callback() -> None:
    """Steward: owner election for a fleet of peer processes."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
