"""Process wiring for podrole.

Builds every component from settings once at startup and owns the
background election task.
"""

from __future__ import annotations

import asyncio
import logging

from kubernetes_asyncio import client

from podrole.config import Settings
from podrole.coordinator import LeaderElectionCoordinator
from podrole.kube import create_api_client
from podrole.lease import KubernetesLeaseLock, LeaseElector, LeaseTiming
from podrole.observability.metrics import LeadershipMetrics
from podrole.reconciler import PodResourceClient, RoleReconciler

logger = logging.getLogger(__name__)


class Runtime:
    """Owns the coordinator task and the clients it depends on."""

    def __init__(
        self,
        settings: Settings,
        coordinator: LeaderElectionCoordinator,
        metrics: LeadershipMetrics,
        api_client: client.ApiClient | None = None,
    ):
        self.settings = settings
        self.coordinator = coordinator
        self.metrics = metrics
        self._api_client = api_client
        self._task: asyncio.Task[None] | None = None

    @classmethod
    async def create(cls, settings: Settings) -> Runtime:
        """Build the Kubernetes-backed runtime.

        Raises:
            FatalStartupError: If the Kubernetes client cannot be constructed
        """
        identity = settings.identity
        api_client = await create_api_client(settings)

        lock = KubernetesLeaseLock(
            api_client,
            name=identity.election_group,
            namespace=identity.namespace,
        )
        elector = LeaseElector(
            lock,
            identity=identity.member_id,
            timing=LeaseTiming.from_settings(settings),
        )
        metrics = LeadershipMetrics(identity)
        coordinator = LeaderElectionCoordinator(
            identity,
            lease_client=elector,
            reconciler=RoleReconciler(PodResourceClient(api_client)),
            metrics=metrics,
            reconcile_interval=settings.reconcile_interval,
            shutdown_grace=settings.shutdown_grace,
        )
        return cls(settings, coordinator, metrics, api_client=api_client)

    @property
    def ready(self) -> bool:
        """Whether the election task is alive."""
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the election loop in the background."""
        if self._task is not None:
            return
        self._task = asyncio.create_task(self.coordinator.run(), name="leader-election")
        self._task.add_done_callback(self._on_task_done)

    async def stop(self) -> None:
        """Cancel the election loop and wait for its demotion to finish."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._api_client is not None:
            await self._api_client.close()
            self._api_client = None

    @staticmethod
    def _on_task_done(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Leader election stopped unexpectedly", exc_info=exc)
