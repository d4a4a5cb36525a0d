"""Prometheus metrics for podrole.

Exposes whether this member currently holds leadership:
- is_leader: 1 while leading, 0 otherwise (unset until the first transition)
- leader_transitions_total: count of transitions by direction

Usage:
    from podrole.observability.metrics import LeadershipMetrics

    metrics = LeadershipMetrics(settings.identity)
    metrics.set_leading(True)
"""

from __future__ import annotations

import logging

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, generate_latest

from podrole.config import MemberIdentity

logger = logging.getLogger(__name__)

IDENTITY_LABELS = ("pod_name", "member_id", "election_group", "namespace")


class LeadershipMetrics:
    """Leadership gauge bound to a single member identity.

    The identity labels are bound once at construction. prometheus_client
    guards every value with a lock, so scrapes may run concurrently with
    transitions.
    """

    def __init__(
        self,
        identity: MemberIdentity,
        registry: CollectorRegistry = REGISTRY,
    ):
        self.identity = identity
        self._registry = registry

        labels = {
            "pod_name": identity.pod_name,
            "member_id": identity.member_id,
            "election_group": identity.election_group,
            "namespace": identity.namespace,
        }

        self._is_leader = Gauge(
            "is_leader",
            "Set to 1 if current instance is leader and 0 if otherwise",
            IDENTITY_LABELS,
            registry=registry,
        )
        self._transitions = Counter(
            "leader_transitions_total",
            "Total leadership state transitions",
            [*IDENTITY_LABELS, "transition"],
            registry=registry,
        )

        self._labels = labels
        self._leading: bool | None = None

    @property
    def leading(self) -> bool | None:
        """Last value written, or None before the first transition."""
        return self._leading

    def set_leading(self, leading: bool) -> None:
        """Publish the current leadership state."""
        # The labelled series only exists once the first transition is published
        self._is_leader.labels(**self._labels).set(1 if leading else 0)
        if leading and self._leading is not True:
            self._transitions.labels(**self._labels, transition="acquired").inc()
        elif not leading and self._leading is True:
            self._transitions.labels(**self._labels, transition="lost").inc()
        self._leading = leading

    def generate_latest(self) -> bytes:
        """Generate metrics in Prometheus exposition format."""
        return generate_latest(self._registry)
