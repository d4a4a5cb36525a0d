"""CLI command for running the elector.

Identity and lease timing come from the environment (MEMBER_ID,
ELECTION_GROUP, POD_NAME, NAMESPACE, LEASE_DURATION, RENEWAL_DEADLINE,
RETRY_PERIOD). The options below only override the HTTP and logging setup.

Usage:
    podrole run
    podrole run --port 8088 --host 0.0.0.0
    podrole run --log-level debug --console-logs
"""

from __future__ import annotations

import logging

import typer
import uvloop

from podrole.config import Settings, load_settings
from podrole.errors import FatalStartupError
from podrole.observability.logging import configure_logging

logger = logging.getLogger(__name__)

app = typer.Typer(help="Join the election and serve metrics")


@app.callback(invoke_without_command=True)
def run(
    host: str | None = typer.Option(
        None,
        "--host",
        "-h",
        help="Host to bind the metrics endpoint to (default: METRICS_HOST)",
    ),
    port: int | None = typer.Option(
        None,
        "--port",
        "-p",
        help="Port for the metrics endpoint (default: METRICS_PORT)",
    ),
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Log level: debug, info, warning, error (default: LOG_LEVEL)",
    ),
    console_logs: bool = typer.Option(
        False,
        "--console-logs",
        help="Human-readable logs instead of JSON",
    ),
) -> None:
    """Run leader election until terminated.

    Exits with status 1 if configuration or the Kubernetes client cannot be
    set up.
    """
    overrides: dict[str, object] = {}
    if host is not None:
        overrides["metrics_host"] = host
    if port is not None:
        overrides["metrics_port"] = port
    if log_level is not None:
        overrides["log_level"] = log_level.upper()
    if console_logs:
        overrides["log_json"] = False

    try:
        settings = load_settings(**overrides)
    except FatalStartupError as e:
        configure_logging(json_format=True)
        logger.error(f"Exiting: {e}")
        raise typer.Exit(code=1) from e

    configure_logging(json_format=settings.log_json, level=settings.log_level)

    try:
        uvloop.run(serve(settings))
    except FatalStartupError as e:
        logger.error(f"Exiting: {e}")
        raise typer.Exit(code=1) from e


async def serve(settings: Settings) -> None:
    """Build the runtime and serve HTTP until a shutdown signal arrives."""
    import uvicorn

    from podrole.api import create_app
    from podrole.runtime import Runtime

    runtime = await Runtime.create(settings)
    app = create_app(runtime)

    logger.info(f"Listening on http://{settings.metrics_host}:{settings.metrics_port}/metrics")
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=settings.metrics_host,
            port=settings.metrics_port,
            log_config=None,
            access_log=False,
        )
    )
    await server.serve()
