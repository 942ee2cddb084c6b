"""
Readiness checks and waits.

Readiness waits poll the store until every named pod reports the Ready
condition. Deletion waits poll until a deleted resource is really gone,
since the API server keeps a terminating pod or claim visible for its
grace period. Both suspend only the calling reconciliation; other
clusters keep reconciling on the same event loop.
"""

import asyncio
import logging

from reconciler_protocols import Resource, ResourceStoreProtocol

from reconciler_core.exceptions import OperationTimeoutError

logger = logging.getLogger(__name__)

POD_KIND = "Pod"


def is_ready(pod: Resource | None) -> bool:
    """True if the pod exists and its Ready condition is "True"."""
    if pod is None or not pod.status:
        return False
    for condition in pod.status.get("conditions", []):
        if condition.get("type") == "Ready":
            return condition.get("status") == "True"
    return False


async def wait_for_ready(
    store: ResourceStoreProtocol,
    namespace: str,
    names: list[str],
    timeout_seconds: float,
    poll_seconds: float = 1.0,
) -> None:
    """
    Wait until every pod in ``names`` is ready.

    Raises:
        OperationTimeoutError: If some pod is still not ready after
            ``timeout_seconds``. The error is retryable.
    """
    pending = list(names)

    async def _poll() -> None:
        while pending:
            for name in list(pending):
                if is_ready(await store.get(POD_KIND, namespace, name)):
                    pending.remove(name)
            if pending:
                await asyncio.sleep(poll_seconds)

    try:
        await asyncio.wait_for(_poll(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        raise OperationTimeoutError(
            f"Readiness of {namespace}/{', '.join(pending)}", timeout_seconds
        ) from None
    logger.debug(f"Pods {', '.join(names)} in {namespace} are ready")


async def wait_for_deletion(
    store: ResourceStoreProtocol,
    kind: str,
    namespace: str,
    name: str,
    timeout_seconds: float,
    poll_seconds: float = 1.0,
) -> None:
    """
    Wait until ``name`` can no longer be read from the store.

    Raises:
        OperationTimeoutError: If the resource is still there after
            ``timeout_seconds``. The error is retryable.
    """

    async def _poll() -> None:
        while await store.get(kind, namespace, name) is not None:
            await asyncio.sleep(poll_seconds)

    try:
        await asyncio.wait_for(_poll(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        raise OperationTimeoutError(f"Deletion of {kind} {namespace}/{name}", timeout_seconds) from None
