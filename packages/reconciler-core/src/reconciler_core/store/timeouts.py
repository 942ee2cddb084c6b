"""Per-call timeouts for any resource store."""

import asyncio
from typing import Awaitable, TypeVar

from reconciler_protocols import Resource, ResourceStoreProtocol

from reconciler_core.exceptions import OperationTimeoutError

T = TypeVar("T")


class TimeoutResourceStore:
    """
    Wraps a store so that every call is bounded by ``timeout_seconds``.

    A call that times out raises OperationTimeoutError, which the operator
    loop retries.
    """

    def __init__(self, inner: ResourceStoreProtocol, timeout_seconds: float) -> None:
        self.inner = inner
        self.timeout_seconds = timeout_seconds

    async def _call(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            raise OperationTimeoutError(operation, self.timeout_seconds) from None

    async def get(self, kind: str, namespace: str, name: str) -> Resource | None:
        return await self._call(f"get {kind} {namespace}/{name}", self.inner.get(kind, namespace, name))

    async def list(
        self,
        kind: str,
        namespace: str,
        labels: dict[str, str] | None = None,
    ) -> list[Resource]:
        return await self._call(f"list {kind} in {namespace}", self.inner.list(kind, namespace, labels))

    async def create(self, resource: Resource) -> Resource:
        return await self._call(
            f"create {resource.kind} {resource.namespace}/{resource.name}",
            self.inner.create(resource),
        )

    async def update(self, resource: Resource) -> Resource:
        return await self._call(
            f"update {resource.kind} {resource.namespace}/{resource.name}",
            self.inner.update(resource),
        )

    async def update_status(self, resource: Resource) -> Resource:
        return await self._call(
            f"update status of {resource.kind} {resource.namespace}/{resource.name}",
            self.inner.update_status(resource),
        )

    async def delete(self, kind: str, namespace: str, name: str) -> bool:
        return await self._call(f"delete {kind} {namespace}/{name}", self.inner.delete(kind, namespace, name))
