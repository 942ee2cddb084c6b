"""
In-memory resource store.

Behaves like the Kubernetes API as far as the reconciler can tell:
- every write bumps resource_version, and writes carrying a stale version
  raise ConflictError
- spec changes bump generation
- update() leaves status alone and update_status() leaves everything else
- returned resources are copies, so callers cannot mutate stored state

With auto_ready_pods set, created pods report Ready immediately, which
stands in for the kubelet in tests and demos.
"""

import asyncio
import copy
import itertools

from reconciler_protocols import Resource, ResourceKey

from reconciler_core.exceptions import ConflictError, ResourceNotFoundError
from reconciler_core.readiness import POD_KIND

READY_CONDITION = {"type": "Ready", "status": "True"}


class InMemoryResourceStore:
    """
    ResourceStoreProtocol implementation backed by a dict.

    Attributes:
        auto_ready_pods: Mark pods Ready as soon as they are created
        operations: Log of (verb, kind, name) for every write, in order

    Example:
        store = InMemoryResourceStore()
        store.put(Resource(kind="Kafka", namespace="kafka", name="my-cluster", spec={...}))
        pod = await store.get("Pod", "kafka", "my-cluster-kafka-0")
    """

    def __init__(self, auto_ready_pods: bool = True) -> None:
        self.auto_ready_pods = auto_ready_pods
        self.operations: list[tuple[str, str, str]] = []
        self._objects: dict[ResourceKey, Resource] = {}
        self._versions = itertools.count(1)

    def _next_version(self) -> str:
        return str(next(self._versions))

    def _stored(self, resource: Resource) -> Resource:
        existing = self._objects.get(resource.key)
        if existing is None:
            raise ResourceNotFoundError(resource.key)
        if resource.resource_version is not None and resource.resource_version != existing.resource_version:
            raise ConflictError(resource.key, resource.resource_version)
        return existing

    async def get(self, kind: str, namespace: str, name: str) -> Resource | None:
        await asyncio.sleep(0)
        resource = self._objects.get((kind, namespace, name))
        return copy.deepcopy(resource) if resource is not None else None

    async def list(
        self,
        kind: str,
        namespace: str,
        labels: dict[str, str] | None = None,
    ) -> list[Resource]:
        await asyncio.sleep(0)
        selector = labels or {}
        matches = [
            r
            for (k, ns, _), r in self._objects.items()
            if k == kind
            and ns == namespace
            and all(r.labels.get(key) == value for key, value in selector.items())
        ]
        return [copy.deepcopy(r) for r in sorted(matches, key=lambda r: r.name)]

    async def create(self, resource: Resource) -> Resource:
        await asyncio.sleep(0)
        if resource.key in self._objects:
            raise ConflictError(resource.key, None)
        stored = copy.deepcopy(resource)
        stored.generation = 1
        stored.resource_version = self._next_version()
        if stored.kind == POD_KIND and self.auto_ready_pods:
            stored.status = {"conditions": [dict(READY_CONDITION)]}
        self._objects[stored.key] = stored
        self.operations.append(("create", stored.kind, stored.name))
        return copy.deepcopy(stored)

    async def update(self, resource: Resource) -> Resource:
        await asyncio.sleep(0)
        existing = self._stored(resource)
        stored = copy.deepcopy(resource)
        stored.status = existing.status
        stored.generation = existing.generation + (1 if stored.spec != existing.spec else 0)
        stored.resource_version = self._next_version()
        self._objects[stored.key] = stored
        self.operations.append(("update", stored.kind, stored.name))
        return copy.deepcopy(stored)

    async def update_status(self, resource: Resource) -> Resource:
        await asyncio.sleep(0)
        existing = self._stored(resource)
        existing.status = copy.deepcopy(resource.status)
        existing.resource_version = self._next_version()
        self.operations.append(("update_status", existing.kind, existing.name))
        return copy.deepcopy(existing)

    async def delete(self, kind: str, namespace: str, name: str) -> bool:
        await asyncio.sleep(0)
        removed = self._objects.pop((kind, namespace, name), None)
        if removed is None:
            return False
        self.operations.append(("delete", kind, name))
        return True

    # Synchronous helpers for seeding and inspecting state in tests

    def put(self, resource: Resource) -> Resource:
        """Store ``resource`` as-is (no version check), keeping its generation."""
        stored = copy.deepcopy(resource)
        stored.resource_version = self._next_version()
        self._objects[stored.key] = stored
        return copy.deepcopy(stored)

    def peek(self, kind: str, namespace: str, name: str) -> Resource | None:
        return self._objects.get((kind, namespace, name))

    def set_ready(self, namespace: str, name: str, ready: bool) -> None:
        pod = self._objects[(POD_KIND, namespace, name)]
        pod.status = {"conditions": [{"type": "Ready", "status": "True" if ready else "False"}]}

    def count(self, verb: str, kind: str | None = None) -> int:
        return sum(1 for v, k, _ in self.operations if v == verb and (kind is None or k == kind))
