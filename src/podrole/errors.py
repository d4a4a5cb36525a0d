"""Error taxonomy for podrole.

Only FatalStartupError terminates the process. Every other error is
contained by the component that observes it and surfaced through logs.
"""

from __future__ import annotations


class PodRoleError(Exception):
    """Base exception for podrole errors."""


class FatalStartupError(PodRoleError):
    """Settings or Kubernetes clients could not be constructed."""


class CoordinationError(PodRoleError):
    """A lease read, create or update attempt failed.

    Transient: the elector retries on its own retry period.
    """

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ReconciliationError(PodRoleError):
    """The role label could not be reconciled."""

    def __init__(self, message: str, resource: str, status: int | None = None):
        super().__init__(message)
        self.resource = resource
        self.status = status


class ReconciliationConflict(ReconciliationError):
    """The resource changed between read and write."""


class ReconciliationNotFound(ReconciliationError):
    """The target resource does not exist."""


class ShutdownDemotionError(PodRoleError):
    """Best-effort demotion during shutdown failed or timed out."""
