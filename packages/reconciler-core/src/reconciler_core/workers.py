"""
Bounded worker pool with per-resource coalescing.

ReconcilerPool runs reconciliations as asyncio tasks:
- at most ``max_workers`` run at once (asyncio.Semaphore)
- at most one runs per (kind, namespace, name)
- triggers for a resource that is already running are coalesced: however
  many arrive, exactly one follow-up run happens after the current one,
  using the most recent trigger
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from reconciler_protocols import ResourceKey

from reconciler_core.reconcile.state import Reconciliation

logger = logging.getLogger(__name__)

Handler = Callable[[Reconciliation], Awaitable[Any]]


class ReconcilerPool:
    """
    Runs a handler per reconciliation with bounded concurrency.

    Example:
        pool = ReconcilerPool(reconciler.reconcile, max_workers=4)
        pool.submit(Reconciliation("timer", "Kafka", "kafka", "my-cluster"))
        await pool.join()
    """

    def __init__(self, handler: Handler, max_workers: int = 4) -> None:
        if max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")
        self.handler = handler
        self.max_workers = max_workers
        self._semaphore = asyncio.Semaphore(max_workers)
        self._running: dict[ResourceKey, asyncio.Task] = {}
        self._pending: dict[ResourceKey, Reconciliation] = {}

    def submit(self, reconciliation: Reconciliation) -> None:
        """
        Schedule ``reconciliation``.

        Must be called from within the running event loop.
        """
        key = reconciliation.key
        if key in self._running:
            if key in self._pending:
                logger.debug(f"{reconciliation}: coalesced with an already queued run")
            self._pending[key] = reconciliation
            return
        self._running[key] = asyncio.get_running_loop().create_task(
            self._run(key, reconciliation), name=str(reconciliation)
        )

    def in_flight(self, key: ResourceKey) -> bool:
        return key in self._running

    def queued(self, key: ResourceKey) -> bool:
        return key in self._pending

    async def _run(self, key: ResourceKey, reconciliation: Reconciliation) -> None:
        try:
            while True:
                async with self._semaphore:
                    try:
                        await self.handler(reconciliation)
                    except Exception:
                        logger.exception(f"{reconciliation}: handler raised")
                next_run = self._pending.pop(key, None)
                if next_run is None:
                    return
                reconciliation = next_run
        finally:
            self._running.pop(key, None)

    async def join(self) -> None:
        """Wait until nothing is running or queued."""
        while self._running:
            await asyncio.gather(*list(self._running.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel everything and wait for the tasks to unwind."""
        self._pending.clear()
        tasks = list(self._running.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
