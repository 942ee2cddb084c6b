"""
Resource store protocol definition.

The ResourceStoreProtocol stands in for the Kubernetes API. The reconciler
reads and writes pods, secrets, config maps, claims, ensemble descriptors
and the cluster custom resource exclusively through it.
"""

from typing import Protocol, runtime_checkable

from reconciler_protocols.types import Resource


@runtime_checkable
class ResourceStoreProtocol(Protocol):
    """
    Protocol for resource stores.

    Every resource is keyed by (kind, namespace, name). Writes use
    optimistic concurrency: ``update`` and ``update_status`` must be given
    the resource_version last read, and fail with a conflict if the stored
    object moved on in the meantime.

    Implementations:
    - InMemoryResourceStore: dictionary-backed, used by tests and demos
    - KubernetesResourceStore: httpx client for the Kubernetes REST API
    """

    async def get(self, kind: str, namespace: str, name: str) -> Resource | None:
        """
        Fetch a single resource.

        Returns:
            The stored resource, or None if it does not exist.
        """
        ...

    async def list(
        self,
        kind: str,
        namespace: str,
        labels: dict[str, str] | None = None,
    ) -> list[Resource]:
        """
        List resources of a kind, optionally filtered by labels.

        Returns:
            Matching resources ordered by name.
        """
        ...

    async def create(self, resource: Resource) -> Resource:
        """
        Create a resource.

        Returns:
            The stored resource with its new resource_version.

        Raises:
            ConflictError: If a resource with the same key already exists.
        """
        ...

    async def update(self, resource: Resource) -> Resource:
        """
        Replace a resource's metadata, spec and data.

        Returns:
            The stored resource with its new resource_version.

        Raises:
            ConflictError: If resource_version is stale.
            ResourceNotFoundError: If the resource does not exist.
        """
        ...

    async def update_status(self, resource: Resource) -> Resource:
        """
        Replace only the status of a resource.

        Returns:
            The stored resource with its new resource_version.
        """
        ...

    async def delete(self, kind: str, namespace: str, name: str) -> bool:
        """
        Delete a resource.

        Returns:
            True if a resource was deleted, False if it did not exist.
        """
        ...
