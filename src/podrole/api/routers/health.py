"""Health check endpoints for podrole.

Provides Kubernetes-compatible liveness and readiness probes:
- /health/live  - Liveness probe (always returns OK if process is running)
- /health/ready - Readiness probe (checks the leader election task is alive)
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

router = APIRouter(tags=["health"])


@router.get("/health/live")
async def live() -> dict[str, str]:
    """Liveness probe.

    Returns OK if the process is running. Used by Kubernetes
    to determine if the container should be restarted.
    """
    return {"status": "ok"}


@router.get("/health/ready")
async def ready(request: Request) -> JSONResponse:
    """Readiness probe.

    Returns 200 while the election task is running, 503 otherwise. Followers
    are ready too; leadership is reported by the role label and the gauge.
    """
    runtime = request.app.state.runtime
    coordinator = runtime.coordinator
    is_ready = runtime.ready

    return JSONResponse(
        content={
            "status": "ready" if is_ready else "not_ready",
            "member_id": coordinator.identity.member_id,
            "election_state": coordinator.state.value,
        },
        status_code=200 if is_ready else 503,
    )
