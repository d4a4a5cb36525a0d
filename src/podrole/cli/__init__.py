"""CLI commands for podrole.

Provides command-line interface using Typer:
- podrole run: Join the election and serve metrics

Usage:
    podrole --help
    podrole run
    podrole run --port 8088 --log-level debug
"""

import typer

from podrole.cli.run import app as run_app

# Main CLI application
app = typer.Typer(
    name="podrole",
    help="podrole: lease-based leader election that labels the active pod",
    no_args_is_help=True,
)

app.add_typer(run_app, name="run")


@app.callback()
def callback() -> None:
    """podrole: lease-based leader election that labels the active pod."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
