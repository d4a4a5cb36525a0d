"""Tests for the leadership gauge."""

from __future__ import annotations

from podrole.observability.metrics import LeadershipMetrics

LABELS = {
    "pod_name": "pod-m1",
    "member_id": "m1",
    "election_group": "test-group",
    "namespace": "default",
}


class TestLeadershipMetrics:
    """Tests for LeadershipMetrics."""

    def test_unset_before_first_transition(self, metrics, registry) -> None:
        """No is_leader sample exists until a state is published."""
        assert registry.get_sample_value("is_leader", LABELS) is None
        assert metrics.leading is None

    def test_set_leading(self, metrics, registry) -> None:
        """Gauge follows the last published state."""
        metrics.set_leading(True)
        assert registry.get_sample_value("is_leader", LABELS) == 1.0

        metrics.set_leading(False)
        assert registry.get_sample_value("is_leader", LABELS) == 0.0
        assert metrics.leading is False

    def test_counts_transitions(self, metrics, registry) -> None:
        """Only real changes of leadership are counted."""
        metrics.set_leading(False)
        metrics.set_leading(True)
        metrics.set_leading(True)
        metrics.set_leading(False)

        acquired = registry.get_sample_value(
            "leader_transitions_total", {**LABELS, "transition": "acquired"}
        )
        lost = registry.get_sample_value(
            "leader_transitions_total", {**LABELS, "transition": "lost"}
        )
        assert acquired == 1.0
        assert lost == 1.0

    def test_exposition_contains_identity_labels(self, metrics) -> None:
        """Scrape output carries the static identity labels."""
        metrics.set_leading(True)

        output = metrics.generate_latest().decode()

        assert "# HELP is_leader" in output
        assert 'member_id="m1"' in output
        assert 'election_group="test-group"' in output
        assert 'pod_name="pod-m1"' in output

    def test_separate_registries_do_not_clash(self, identity) -> None:
        """Each registry can hold its own gauge."""
        from prometheus_client import CollectorRegistry

        first = LeadershipMetrics(identity, registry=CollectorRegistry())
        second = LeadershipMetrics(identity, registry=CollectorRegistry())

        first.set_leading(True)
        second.set_leading(False)

        assert first.leading is True
        assert second.leading is False
