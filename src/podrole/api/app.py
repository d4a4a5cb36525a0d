"""FastAPI application factory for podrole.

Creates the application with:
- Prometheus metrics endpoint (/metrics)
- Kubernetes liveness and readiness probes (/health/live, /health/ready)
- Lifecycle management for the background leader election task
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.responses import ORJSONResponse

from podrole import __version__
from podrole.api.routers import health, metrics
from podrole.runtime import Runtime

logger = logging.getLogger(__name__)


def create_app(runtime: Runtime) -> FastAPI:
    """Create the HTTP application around a runtime.

    The election task is started on application startup and cancelled on
    shutdown, so a SIGTERM handled by the server demotes the pod label
    before the process exits.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Starting podrole")
        await runtime.start()

        yield

        logger.info("Shutting down podrole")
        await runtime.stop()
        logger.info("podrole shutdown complete")

    app = FastAPI(
        title="podrole",
        description="Lease-based leader election with pod role labels",
        version=__version__,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.runtime = runtime

    app.include_router(health.router)
    app.include_router(metrics.router)

    return app
