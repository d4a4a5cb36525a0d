"""Leader election coordinator.

Turns lease transitions into externally visible state:

- acquired: label the pod ``role-active=true``, set ``is_leader`` to 1 and
  start the leader loop, which re-applies the label every second so an
  external revert is healed
- lost: set ``is_leader`` to 0, stop the leader loop, label the pod
  ``role-active=false``
- another member became leader: label the pod ``role-active=false``

Lease callbacks are the only source of state changes. Label failures are
logged and never change the election state; only the lease can demote us.

Example:
    coordinator = LeaderElectionCoordinator(identity, elector, reconciler, metrics)
    task = asyncio.create_task(coordinator.run())
    ...
    task.cancel()  # demotes the pod label before returning
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from podrole.config import MemberIdentity
from podrole.errors import (
    ReconciliationConflict,
    ReconciliationError,
    ReconciliationNotFound,
    ShutdownDemotionError,
)
from podrole.lease import LeaderCallbacks, LeaseClient
from podrole.observability.logging import LogContext
from podrole.observability.metrics import LeadershipMetrics
from podrole.reconciler import FOLLOWER, LEADER, ResourceRef, RoleReconciler

logger = logging.getLogger(__name__)

RECONCILE_INTERVAL = 1.0  # Seconds between leader loop ticks
SHUTDOWN_GRACE = 5.0  # Upper bound for the demotion on shutdown


class ElectionState(str, Enum):
    """Election state of the local member."""

    UNKNOWN = "unknown"
    LEADER = "leader"
    FOLLOWER = "follower"


class LeaderElectionCoordinator:
    """Owns the election state machine for one member.

    Args:
        identity: The local member
        lease_client: Lease election driver
        reconciler: Role label reconciler
        metrics: Leadership gauge
        reconcile_interval: Seconds between leader loop ticks
        shutdown_grace: Upper bound for the demotion on shutdown
    """

    def __init__(
        self,
        identity: MemberIdentity,
        lease_client: LeaseClient,
        reconciler: RoleReconciler,
        metrics: LeadershipMetrics,
        reconcile_interval: float = RECONCILE_INTERVAL,
        shutdown_grace: float = SHUTDOWN_GRACE,
    ):
        self.identity = identity
        self.lease_client = lease_client
        self.reconciler = reconciler
        self.metrics = metrics
        self.reconcile_interval = reconcile_interval
        self.shutdown_grace = shutdown_grace
        self.resource = ResourceRef(name=identity.pod_name, namespace=identity.namespace)

        self._state = ElectionState.UNKNOWN
        self._running = False
        self._leader_task: asyncio.Task[None] | None = None
        # Cleared only by a confirmed "false" write
        self._label_may_lead = False
        # Serializes label writes for our pod
        self._reconcile_lock = asyncio.Lock()

    @property
    def state(self) -> ElectionState:
        return self._state

    @property
    def is_leader(self) -> bool:
        return self._state is ElectionState.LEADER

    @property
    def is_running(self) -> bool:
        """Whether the election loop is active."""
        return self._running

    async def run(self) -> None:
        """Participate in the election until cancelled.

        On the way out, if the pod label may still read "true", one bounded
        attempt labels it as follower. Failures there are logged and never
        raised.
        """
        with LogContext(**self.identity.log_fields()):
            self._running = True
            logger.info("Starting leader election coordinator")
            try:
                await self.lease_client.elect(
                    LeaderCallbacks(
                        on_acquired=self.on_acquired,
                        on_lost=self.on_lost,
                        on_new_leader=self.on_new_leader,
                    )
                )
            finally:
                self._running = False
                await self._shutdown()
                logger.info("Stopped leader election coordinator")

    async def on_acquired(self) -> None:
        """Handle this member acquiring the lease."""
        with LogContext(leader_id=self.identity.member_id):
            logger.info("Became leader")
            self._state = ElectionState.LEADER
            self._label_may_lead = True
            await self._reconcile(LEADER)
            self.metrics.set_leading(True)
            self._start_leader_loop()

    async def on_lost(self) -> None:
        """Handle this member losing the lease."""
        logger.info("Stopped being leader")
        await self._demote()

    async def on_new_leader(self, identity: str) -> None:
        """Handle another member becoming leader.

        Only our own pod is relabeled; the new leader's pod is its own
        business.
        """
        with LogContext(leader_id=identity):
            logger.info("Another leader elected")
            if self._state is ElectionState.LEADER:
                await self._demote()
                return
            # Written even if we never led; harmless and keeps a stale
            # label from a previous process instance from lingering
            self._state = ElectionState.FOLLOWER
            await self._reconcile(FOLLOWER)
            self.metrics.set_leading(False)

    async def _demote(self) -> None:
        self._state = ElectionState.FOLLOWER
        self.metrics.set_leading(False)
        await self._stop_leader_loop()
        await self._reconcile(FOLLOWER)

    def _start_leader_loop(self) -> None:
        if self._leader_task is not None and not self._leader_task.done():
            return
        self._leader_task = asyncio.create_task(self._leader_loop())

    async def _stop_leader_loop(self) -> None:
        task, self._leader_task = self._leader_task, None
        if task is None:
            return
        task.cancel()
        # A cancellation of our own task still propagates from here
        await asyncio.wait({task})
        logger.info("Stopped leader loop")

    async def _leader_loop(self) -> None:
        """Re-apply the leader label until cancelled.

        This heals label reverts; lease renewal is the elector's job.
        """
        while True:
            await asyncio.sleep(self.reconcile_interval)
            try:
                await self._reconcile(LEADER)
            except Exception:
                logger.exception("Unexpected error in leader loop")

    async def _reconcile(self, value: str) -> None:
        """Apply the role label, logging failures instead of raising them."""
        try:
            async with self._reconcile_lock:
                await self._apply_role(value)
        except ReconciliationConflict as e:
            logger.warning(f"Conflict while setting pod label, retrying on next reconcile: {e}")
        except ReconciliationNotFound as e:
            logger.error(f"Pod {self.resource} not found, check POD_NAME and NAMESPACE: {e}")
        except ReconciliationError as e:
            logger.error(f"Failed to set pod label: {e}")

    async def _apply_role(self, value: str) -> None:
        if value == LEADER:
            await self.reconciler.set_leader(self.resource)
        else:
            await self.reconciler.set_follower(self.resource)
            self._label_may_lead = False

    async def _shutdown(self) -> None:
        """Stop the leader loop and demote once, bounded by the grace period.

        The demotion is attempted whenever the label may still read "true",
        which includes a "false" write abandoned by the cancellation itself.
        """
        await self._stop_leader_loop()
        if self._state is ElectionState.LEADER:
            self._state = ElectionState.FOLLOWER
            self.metrics.set_leading(False)
        if not self._label_may_lead:
            return

        try:
            await asyncio.wait_for(self._demote_on_exit(), timeout=self.shutdown_grace)
        except (ReconciliationError, asyncio.TimeoutError) as e:
            error = ShutdownDemotionError(f"Failed to demote pod {self.resource}: {e!r}")
            logger.error(str(error))
        else:
            logger.info("Demoted pod label before exit")

    async def _demote_on_exit(self) -> None:
        async with self._reconcile_lock:
            await self._apply_role(FOLLOWER)
