"""Global pytest configuration and fixtures.

Provides in-memory stand-ins for the Kubernetes Lease and Pod APIs and a
lease client whose transitions are driven by the test.
"""

from __future__ import annotations

import asyncio
from typing import Callable

import pytest
from prometheus_client import CollectorRegistry

from podrole.config import MemberIdentity
from podrole.errors import CoordinationError, ReconciliationConflict, ReconciliationNotFound
from podrole.lease import LeaderCallbacks, LeaseRecord
from podrole.observability.metrics import LeadershipMetrics
from podrole.reconciler import LabeledResource, ResourceRef, RoleReconciler


class FakePodAPI:
    """In-memory ResourceClient with resourceVersion checks."""

    def __init__(self) -> None:
        self.pods: dict[ResourceRef, tuple[dict[str, str] | None, int]] = {}
        self.reads: list[ResourceRef] = []
        self.writes: list[tuple[ResourceRef, dict[str, str]]] = []
        self.conflicts = 0  # Number of upcoming updates to reject
        self.update_delay = 0.0

    def add_pod(self, ref: ResourceRef, labels: dict[str, str] | None = None) -> None:
        self.pods[ref] = (labels, 1)

    def labels(self, ref: ResourceRef) -> dict[str, str] | None:
        return self.pods[ref][0]

    def edit(self, ref: ResourceRef, labels: dict[str, str]) -> None:
        """Simulate another actor editing the pod."""
        _, version = self.pods[ref]
        self.pods[ref] = (labels, version + 1)

    async def get(self, ref: ResourceRef) -> LabeledResource:
        self.reads.append(ref)
        if ref not in self.pods:
            raise ReconciliationNotFound(f"pod {ref} not found", str(ref), 404)
        labels, version = self.pods[ref]
        return LabeledResource(
            ref=ref,
            labels=dict(labels) if labels is not None else None,
            resource_version=str(version),
        )

    async def update(self, resource: LabeledResource) -> None:
        if self.update_delay:
            await asyncio.sleep(self.update_delay)
        ref = resource.ref
        if ref not in self.pods:
            raise ReconciliationNotFound(f"pod {ref} not found", str(ref), 404)
        _, version = self.pods[ref]
        if self.conflicts > 0:
            self.conflicts -= 1
            raise ReconciliationConflict(f"pod {ref} was modified", str(ref), 409)
        if resource.resource_version != str(version):
            raise ReconciliationConflict(f"pod {ref} was modified", str(ref), 409)
        labels = dict(resource.labels or {})
        self.pods[ref] = (labels, version + 1)
        self.writes.append((ref, labels))


class InMemoryLeaseStore:
    """A single lease record shared by several locks."""

    def __init__(self) -> None:
        self.record: LeaseRecord | None = None
        self.version = 0
        self.fail = False

    def put(self, record: LeaseRecord) -> None:
        self.record = record
        self.version += 1


class FakeLeaseLock:
    """LeaseLock over an InMemoryLeaseStore with optimistic concurrency."""

    def __init__(self, store: InMemoryLeaseStore) -> None:
        self.store = store
        self._version: int | None = None

    def describe(self) -> str:
        return "default/test-group"

    def _check_available(self) -> None:
        if self.store.fail:
            raise CoordinationError("coordination API unavailable", 503)

    async def get(self) -> LeaseRecord | None:
        self._check_available()
        if self.store.record is None:
            return None
        self._version = self.store.version
        return self.store.record

    async def create(self, record: LeaseRecord) -> None:
        self._check_available()
        if self.store.record is not None:
            raise CoordinationError("lease already exists", 409)
        self.store.put(record)
        self._version = self.store.version

    async def update(self, record: LeaseRecord) -> None:
        self._check_available()
        if self._version != self.store.version:
            raise CoordinationError("lease was modified", 409)
        self.store.put(record)
        self._version = self.store.version


class ScriptedLeaseClient:
    """Lease client whose transitions are pushed by the test."""

    def __init__(self) -> None:
        self._events: asyncio.Queue[tuple[str, str | None]] = asyncio.Queue()

    async def elect(self, callbacks: LeaderCallbacks) -> None:
        while True:
            kind, identity = await self._events.get()
            try:
                if kind == "acquired":
                    await callbacks.on_acquired()
                elif kind == "lost":
                    await callbacks.on_lost()
                elif kind == "new_leader":
                    assert identity is not None
                    await callbacks.on_new_leader(identity)
            finally:
                self._events.task_done()

    async def send(self, kind: str, identity: str | None = None) -> None:
        """Deliver a transition and wait until its callback has finished."""
        await self._events.put((kind, identity))
        await self._events.join()

    def push(self, kind: str, identity: str | None = None) -> None:
        """Queue a transition without waiting for its callback."""
        self._events.put_nowait((kind, identity))


@pytest.fixture
def identity() -> MemberIdentity:
    return MemberIdentity(
        member_id="m1",
        election_group="test-group",
        namespace="default",
        pod_name="pod-m1",
    )


@pytest.fixture
def pod_ref(identity: MemberIdentity) -> ResourceRef:
    return ResourceRef(name=identity.pod_name, namespace=identity.namespace)


@pytest.fixture
def pod_api(pod_ref: ResourceRef) -> FakePodAPI:
    api = FakePodAPI()
    api.add_pod(pod_ref, {"app": "db"})
    return api


@pytest.fixture
def reconciler(pod_api: FakePodAPI) -> RoleReconciler:
    return RoleReconciler(pod_api)


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def metrics(identity: MemberIdentity, registry: CollectorRegistry) -> LeadershipMetrics:
    return LeadershipMetrics(identity, registry=registry)


@pytest.fixture
def lease_client() -> ScriptedLeaseClient:
    return ScriptedLeaseClient()


@pytest.fixture
def lease_store() -> InMemoryLeaseStore:
    return InMemoryLeaseStore()


@pytest.fixture
def make_lease_lock(lease_store: InMemoryLeaseStore) -> Callable[[], FakeLeaseLock]:
    """Create locks sharing the same lease store, one per member."""
    return lambda: FakeLeaseLock(lease_store)
