"""Lease-based leader election on the Kubernetes coordination API.

The elector contends for a single ``coordination.k8s.io/v1`` Lease:

1. Read the Lease. If it does not exist, create it with our identity.
2. If another identity holds it, wait until ``lease_duration`` has elapsed
   since we last saw the record change, then take it over.
3. While leading, renew every ``retry_period``. If no renewal succeeds
   within ``renew_deadline``, leadership is lost and acquisition restarts.
4. On cancellation while leading, release the Lease so another member can
   take over without waiting for it to expire.

Mutual exclusion comes from the API server rejecting writes made against a
stale resourceVersion. Expiry is judged with the local monotonic clock, so
members never compare wall clocks with each other.

Example:
    lock = KubernetesLeaseLock(api_client, name="db", namespace="default")
    elector = LeaseElector(lock, identity="m1", timing=LeaseTiming(15, 10, 5))
    await elector.elect(LeaderCallbacks(on_acquired, on_lost, on_new_leader))
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Awaitable, Callable, Protocol

import aiohttp
from kubernetes_asyncio import client
from kubernetes_asyncio.client.exceptions import ApiException

from podrole.config import Settings
from podrole.errors import CoordinationError

logger = logging.getLogger(__name__)

# Retry sleeps are stretched by up to this factor to spread out members
JITTER_FACTOR = 1.2


@dataclass(frozen=True)
class LeaseTiming:
    """Lease timing parameters in seconds.

    Args:
        lease_duration: How long a non-renewed lease stays valid
        renew_deadline: How long the leader keeps retrying a renewal
        retry_period: Pause between acquire/renew attempts
    """

    lease_duration: float
    renew_deadline: float
    retry_period: float

    def __post_init__(self) -> None:
        if self.lease_duration <= 0 or self.renew_deadline <= 0 or self.retry_period <= 0:
            raise ValueError("lease timings must be positive")
        if self.renew_deadline >= self.lease_duration:
            raise ValueError("renew_deadline must be smaller than lease_duration")
        if self.retry_period >= self.renew_deadline:
            raise ValueError("retry_period must be smaller than renew_deadline")

    @classmethod
    def from_settings(cls, settings: Settings) -> LeaseTiming:
        return cls(
            lease_duration=settings.lease_duration,
            renew_deadline=settings.renewal_deadline,
            retry_period=settings.retry_period,
        )


@dataclass(frozen=True)
class LeaseRecord:
    """The election-relevant part of a Lease spec."""

    holder_identity: str = ""
    lease_duration_seconds: int = 0
    acquire_time: datetime | None = None
    renew_time: datetime | None = None
    lease_transitions: int = 0


@dataclass(frozen=True)
class LeaderCallbacks:
    """Transition hooks, awaited in order on the elector's task."""

    on_acquired: Callable[[], Awaitable[None]]
    on_lost: Callable[[], Awaitable[None]]
    on_new_leader: Callable[[str], Awaitable[None]]


class LeaseLock(Protocol):
    """Storage for a single lease record with optimistic concurrency.

    ``update`` must be rejected when the record changed since the last
    ``get`` or ``create``.
    """

    async def get(self) -> LeaseRecord | None: ...

    async def create(self, record: LeaseRecord) -> None: ...

    async def update(self, record: LeaseRecord) -> None: ...

    def describe(self) -> str: ...


class LeaseClient(Protocol):
    """Runs an election until cancelled, reporting transitions."""

    async def elect(self, callbacks: LeaderCallbacks) -> None: ...


class KubernetesLeaseLock:
    """LeaseLock backed by the ``coordination.k8s.io/v1`` Lease API."""

    def __init__(self, api_client: client.ApiClient, name: str, namespace: str):
        self.name = name
        self.namespace = namespace
        self._api = client.CoordinationV1Api(api_client)
        self._lease: client.V1Lease | None = None

    def describe(self) -> str:
        return f"{self.namespace}/{self.name}"

    async def get(self) -> LeaseRecord | None:
        """Read the lease, returning None if it does not exist."""
        try:
            lease = await self._api.read_namespaced_lease(self.name, self.namespace)
        except ApiException as e:
            if e.status == 404:
                self._lease = None
                return None
            raise CoordinationError(f"Failed to read lease: {e.reason}", e.status) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CoordinationError(f"Failed to read lease: {e}") from e

        self._lease = lease
        return _record_from_spec(lease.spec)

    async def create(self, record: LeaseRecord) -> None:
        body = client.V1Lease(
            metadata=client.V1ObjectMeta(name=self.name, namespace=self.namespace),
            spec=_spec_from_record(record),
        )
        try:
            self._lease = await self._api.create_namespaced_lease(self.namespace, body)
        except ApiException as e:
            raise CoordinationError(f"Failed to create lease: {e.reason}", e.status) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CoordinationError(f"Failed to create lease: {e}") from e

    async def update(self, record: LeaseRecord) -> None:
        if self._lease is None:
            raise CoordinationError("Lease not initialized, call get or create first")

        # Carries the resourceVersion of the last read, so a concurrent
        # write by another member is rejected with 409
        self._lease.spec = _spec_from_record(record)
        try:
            self._lease = await self._api.replace_namespaced_lease(
                self.name, self.namespace, self._lease
            )
        except ApiException as e:
            raise CoordinationError(f"Failed to update lease: {e.reason}", e.status) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise CoordinationError(f"Failed to update lease: {e}") from e


def _record_from_spec(spec: client.V1LeaseSpec | None) -> LeaseRecord:
    if spec is None:
        return LeaseRecord()
    return LeaseRecord(
        holder_identity=spec.holder_identity or "",
        lease_duration_seconds=spec.lease_duration_seconds or 0,
        acquire_time=spec.acquire_time,
        renew_time=spec.renew_time,
        lease_transitions=spec.lease_transitions or 0,
    )


def _spec_from_record(record: LeaseRecord) -> client.V1LeaseSpec:
    return client.V1LeaseSpec(
        holder_identity=record.holder_identity,
        lease_duration_seconds=record.lease_duration_seconds,
        acquire_time=record.acquire_time,
        renew_time=record.renew_time,
        lease_transitions=record.lease_transitions,
    )


class LeaseElector:
    """Drives acquisition, renewal and release of a lease.

    Callbacks are awaited on the task running ``elect``, one at a time and
    in the order the transitions happen. ``on_new_leader`` is reported once
    per observed holder change and never for our own identity. After a loss
    the elector goes back to acquiring, so a member can lead many times
    during its lifetime.

    Args:
        lock: Lease storage
        identity: Holder identity of this member
        timing: Lease timing parameters
        release_on_cancel: Give up the lease when cancelled while leading
        clock: Monotonic clock used for expiry decisions
    """

    def __init__(
        self,
        lock: LeaseLock,
        identity: str,
        timing: LeaseTiming,
        release_on_cancel: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.lock = lock
        self.identity = identity
        self.timing = timing
        self.release_on_cancel = release_on_cancel
        self._clock = clock

        self._is_leader = False
        self._observed_record: LeaseRecord | None = None
        self._observed_time = 0.0
        self._reported_leader = ""

    @property
    def is_leader(self) -> bool:
        return self._is_leader

    @property
    def observed_leader(self) -> str:
        """Holder identity of the last lease record seen."""
        if self._observed_record is None:
            return ""
        return self._observed_record.holder_identity

    async def elect(self, callbacks: LeaderCallbacks) -> None:
        """Participate in the election until cancelled."""
        logger.info(f"Starting leader election for lease {self.lock.describe()} as {self.identity}")
        try:
            while True:
                await self._acquire(callbacks)
                self._is_leader = True
                await callbacks.on_acquired()

                await self._renew()
                self._is_leader = False
                logger.warning(f"Lost lease {self.lock.describe()}")
                await callbacks.on_lost()
                await self._maybe_report_transition(callbacks)
        except asyncio.CancelledError:
            if self._is_leader and self.release_on_cancel:
                await self._release()
            self._is_leader = False
            logger.info(f"Stopped leader election for lease {self.lock.describe()}")
            raise

    async def _acquire(self, callbacks: LeaderCallbacks) -> None:
        """Retry until the lease is ours."""
        while True:
            acquired = await self._try_acquire_or_renew()
            await self._maybe_report_transition(callbacks)
            if acquired:
                logger.info(f"Successfully acquired lease {self.lock.describe()}")
                return
            await asyncio.sleep(self._jittered(self.timing.retry_period))

    async def _renew(self) -> None:
        """Keep renewing; return once a renewal misses the renew deadline."""
        while True:
            try:
                await asyncio.wait_for(self._renew_once(), timeout=self.timing.renew_deadline)
            except asyncio.TimeoutError:
                logger.error(
                    f"Failed to renew lease {self.lock.describe()} "
                    f"within {self.timing.renew_deadline}s"
                )
                return
            await asyncio.sleep(self.timing.retry_period)

    async def _renew_once(self) -> None:
        while not await self._try_acquire_or_renew():
            await asyncio.sleep(self.timing.retry_period)
        logger.debug(f"Renewed lease {self.lock.describe()}")

    async def _try_acquire_or_renew(self) -> bool:
        """Make a single attempt to acquire or renew the lease."""
        now = datetime.now(timezone.utc)
        desired = LeaseRecord(
            holder_identity=self.identity,
            lease_duration_seconds=math.ceil(self.timing.lease_duration),
            acquire_time=now,
            renew_time=now,
        )

        try:
            current = await self.lock.get()
        except CoordinationError as e:
            logger.error(f"Error retrieving lease {self.lock.describe()}: {e}")
            return False

        if current is None:
            try:
                await self.lock.create(desired)
            except CoordinationError as e:
                logger.error(f"Error creating lease {self.lock.describe()}: {e}")
                return False
            self._observe(desired)
            return True

        if current != self._observed_record:
            self._observe(current)

        held_by_other = bool(current.holder_identity) and current.holder_identity != self.identity
        if held_by_other and self._observed_time + self.timing.lease_duration > self._clock():
            logger.debug(
                f"Lease {self.lock.describe()} is held by {current.holder_identity} "
                "and has not yet expired"
            )
            return False

        if current.holder_identity == self.identity:
            desired = replace(
                desired,
                acquire_time=current.acquire_time,
                lease_transitions=current.lease_transitions,
            )
        else:
            desired = replace(desired, lease_transitions=current.lease_transitions + 1)

        try:
            await self.lock.update(desired)
        except CoordinationError as e:
            logger.error(f"Failed to update lease {self.lock.describe()}: {e}")
            return False

        self._observe(desired)
        return True

    async def _release(self) -> None:
        """Hand the lease back with a one second duration."""
        now = datetime.now(timezone.utc)
        transitions = self._observed_record.lease_transitions if self._observed_record else 0
        released = LeaseRecord(
            holder_identity="",
            lease_duration_seconds=1,
            acquire_time=now,
            renew_time=now,
            lease_transitions=transitions,
        )
        try:
            await asyncio.wait_for(self.lock.update(released), timeout=self.timing.renew_deadline)
        except (CoordinationError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to release lease {self.lock.describe()}: {e!r}")
            return

        self._observe(released)
        logger.info(f"Released lease {self.lock.describe()}")

    async def _maybe_report_transition(self, callbacks: LeaderCallbacks) -> None:
        observed = self.observed_leader
        if not observed or observed == self._reported_leader:
            return
        self._reported_leader = observed
        if observed != self.identity:
            await callbacks.on_new_leader(observed)

    def _observe(self, record: LeaseRecord) -> None:
        self._observed_record = record
        self._observed_time = self._clock()

    @staticmethod
    def _jittered(period: float) -> float:
        return period + random.random() * JITTER_FACTOR * period  # nosec B311
