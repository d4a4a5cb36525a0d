"""Role label reconciliation.

Makes the ``alpha.k8s.io/role-active`` label of a pod match the role this
member believes it has. Other actors may edit the same pod, so every call
re-reads the pod and only writes when the label differs. Writes carry the
resourceVersion of the read, so a concurrent edit surfaces as
ReconciliationConflict instead of being overwritten. There is no retry
here; callers heal on their next reconcile.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import aiohttp
from kubernetes_asyncio import client
from kubernetes_asyncio.client.exceptions import ApiException

from podrole.errors import ReconciliationConflict, ReconciliationError, ReconciliationNotFound

logger = logging.getLogger(__name__)

ROLE_LABEL = "alpha.k8s.io/role-active"
LEADER = "true"
FOLLOWER = "false"


@dataclass(frozen=True)
class ResourceRef:
    """Namespaced name of the resource carrying the role label."""

    name: str
    namespace: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class LabeledResource:
    """A resource as read from the API, ready to be written back.

    Args:
        ref: Where the resource lives
        labels: Label map, None when the resource has none
        resource_version: Version the write is conditioned on
        body: The full API object
    """

    ref: ResourceRef
    labels: dict[str, str] | None
    resource_version: str | None = None
    body: Any = None


class ResourceClient(Protocol):
    """Get/update access to labeled resources.

    ``get`` raises ReconciliationNotFound for a missing resource. ``update``
    raises ReconciliationConflict when the resource changed since ``get``.
    """

    async def get(self, ref: ResourceRef) -> LabeledResource: ...

    async def update(self, resource: LabeledResource) -> None: ...


class PodResourceClient:
    """ResourceClient for core/v1 pods."""

    def __init__(self, api_client: client.ApiClient):
        self._api = client.CoreV1Api(api_client)

    async def get(self, ref: ResourceRef) -> LabeledResource:
        try:
            pod = await self._api.read_namespaced_pod(ref.name, ref.namespace)
        except ApiException as e:
            raise _translate(e, "read", ref) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ReconciliationError(f"Failed to read pod {ref}: {e}", str(ref)) from e

        return LabeledResource(
            ref=ref,
            labels=pod.metadata.labels,
            resource_version=pod.metadata.resource_version,
            body=pod,
        )

    async def update(self, resource: LabeledResource) -> None:
        ref = resource.ref
        pod = resource.body
        pod.metadata.labels = resource.labels
        pod.metadata.resource_version = resource.resource_version
        try:
            await self._api.replace_namespaced_pod(ref.name, ref.namespace, pod)
        except ApiException as e:
            raise _translate(e, "update", ref) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ReconciliationError(f"Failed to update pod {ref}: {e}", str(ref)) from e


def _translate(e: ApiException, action: str, ref: ResourceRef) -> ReconciliationError:
    """Map an API error onto the reconciliation error taxonomy."""
    message = f"Failed to {action} pod {ref}: {e.status} {e.reason}"
    if e.status == 404:
        return ReconciliationNotFound(message, str(ref), e.status)
    if e.status == 409:
        return ReconciliationConflict(message, str(ref), e.status)
    return ReconciliationError(message, str(ref), e.status)


class RoleReconciler:
    """Idempotently sets the role label on a resource.

    Args:
        resources: Resource API used for reads and writes
        label: Label key carrying the role
    """

    def __init__(self, resources: ResourceClient, label: str = ROLE_LABEL):
        self.resources = resources
        self.label = label

    async def set_role(self, ref: ResourceRef, value: str) -> bool:
        """Ensure the role label of ``ref`` equals ``value``.

        Returns:
            True if the resource was written, False if it already matched

        Raises:
            ReconciliationNotFound: The resource does not exist
            ReconciliationConflict: The resource changed concurrently
            ReconciliationError: Any other API failure
        """
        resource = await self.resources.get(ref)

        labels = resource.labels
        if labels is not None and labels.get(self.label) == value:
            return False

        resource.labels = {**(labels or {}), self.label: value}
        await self.resources.update(resource)
        logger.info(f"Successfully set label {self.label}={value} on {ref}")
        return True

    async def set_leader(self, ref: ResourceRef) -> bool:
        return await self.set_role(ref, LEADER)

    async def set_follower(self, ref: ResourceRef) -> bool:
        return await self.set_role(ref, FOLLOWER)
