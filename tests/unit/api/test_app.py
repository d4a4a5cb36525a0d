"""Tests for the HTTP surface and runtime wiring."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from podrole.api import create_app
from podrole.config import Settings
from podrole.coordinator import LeaderElectionCoordinator
from podrole.errors import FatalStartupError
from podrole.lease import LeaseElector
from podrole.observability.metrics import LeadershipMetrics
from podrole.runtime import Runtime


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        member_id="m1",
        election_group="test-group",
        pod_name="pod-m1",
        namespace="default",
    )


@pytest.fixture
def runtime(settings, identity, lease_client, reconciler, metrics) -> Runtime:
    coordinator = LeaderElectionCoordinator(
        identity,
        lease_client=lease_client,
        reconciler=reconciler,
        metrics=metrics,
    )
    return Runtime(settings, coordinator, metrics)


class TestHealthEndpoints:
    """Tests for liveness and readiness probes."""

    def test_live(self, runtime) -> None:
        """Liveness always reports ok."""
        client = TestClient(create_app(runtime))

        response = client.get("/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_ready_while_election_runs(self, runtime) -> None:
        """Readiness is 200 once the lifespan started the election."""
        with TestClient(create_app(runtime)) as client:
            response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json() == {
            "status": "ready",
            "member_id": "m1",
            "election_state": "unknown",
        }

    def test_not_ready_without_election(self, runtime) -> None:
        """Readiness is 503 when the election task is not running."""
        client = TestClient(create_app(runtime))

        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"

    def test_lifespan_stops_election(self, runtime) -> None:
        """Shutting the app down cancels the election task."""
        with TestClient(create_app(runtime)):
            assert runtime.ready is True

        assert runtime.ready is False
        assert runtime.coordinator.is_running is False


class TestMetricsEndpoint:
    """Tests for the Prometheus scrape endpoint."""

    def test_exposes_gauge(self, runtime, metrics) -> None:
        """The gauge and its identity labels are scraped."""
        metrics.set_leading(True)
        client = TestClient(create_app(runtime))

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert (
            'is_leader{pod_name="pod-m1",member_id="m1",'
            'election_group="test-group",namespace="default"} 1.0'
        ) in response.text

    def test_reflects_latest_state(self, runtime, metrics) -> None:
        """Each scrape reads the live value."""
        client = TestClient(create_app(runtime))

        metrics.set_leading(True)
        first = client.get("/metrics").text
        metrics.set_leading(False)
        second = client.get("/metrics").text

        assert 'namespace="default"} 1.0' in first
        assert 'namespace="default"} 0.0' in second


class TestRuntimeCreate:
    """Tests for Runtime.create."""

    @pytest.mark.asyncio
    async def test_wires_kubernetes_components(
        self, settings, registry, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Builds a lease elector for the election group and member."""
        api_client = MagicMock()
        api_client.close = AsyncMock()
        monkeypatch.setattr(
            "podrole.runtime.create_api_client", AsyncMock(return_value=api_client)
        )
        monkeypatch.setattr(
            "podrole.runtime.LeadershipMetrics",
            lambda identity: LeadershipMetrics(identity, registry=registry),
        )

        runtime = await Runtime.create(settings)

        elector = runtime.coordinator.lease_client
        assert isinstance(elector, LeaseElector)
        assert elector.identity == "m1"
        assert elector.lock.describe() == "default/test-group"
        assert elector.timing.renew_deadline == 10
        assert runtime.coordinator.resource.name == "pod-m1"

        await runtime.stop()
        api_client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fatal_without_cluster(self, settings, monkeypatch: pytest.MonkeyPatch) -> None:
        """A missing cluster configuration is fatal."""
        monkeypatch.setattr(
            "podrole.runtime.create_api_client",
            AsyncMock(side_effect=FatalStartupError("no cluster")),
        )

        with pytest.raises(FatalStartupError):
            await Runtime.create(settings)
