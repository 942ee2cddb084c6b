"""
ClusterOperator daemon.

This module implements the operator loop that:
- Lists every custom resource of its kind at a configurable interval
- Submits one reconciliation per resource to the worker pool
- Retries transient failures with exponential backoff and jitter
- Handles graceful shutdown on SIGINT/SIGTERM

Shutdown coordination uses an asyncio.Event; the interval sleep is a
wait_for on that event so a signal interrupts it immediately.
"""

import asyncio
import functools
import logging
import signal

from reconciler_protocols import ResourceKey, ResourceStoreProtocol

from reconciler_core.reconcile.reconciler import Reconciler, ReconciliationResult
from reconciler_core.reconcile.state import Reconciliation
from reconciler_core.retry import RetryConfig
from reconciler_core.workers import ReconcilerPool

logger = logging.getLogger(__name__)


class ClusterOperator:
    """
    Long-running daemon reconciling every resource of one kind.

    Example:
        operator = ClusterOperator(store, reconciler, namespace="kafka")
        await operator.run()  # Runs until SIGINT/SIGTERM
    """

    def __init__(
        self,
        store: ResourceStoreProtocol,
        reconciler: Reconciler,
        namespace: str,
        interval_seconds: float = 120.0,
        max_workers: int = 4,
        retry: RetryConfig | None = None,
    ) -> None:
        """
        Initialize the operator.

        Args:
            store: Store the custom resources are listed from
            reconciler: Reconciler for the custom resource kind
            namespace: Watched namespace
            interval_seconds: Seconds between periodic resyncs
            max_workers: Concurrent reconciliations
            retry: Backoff for transient failures
        """
        self.store = store
        self.reconciler = reconciler
        self.kind = reconciler.cluster.kind
        self.namespace = namespace
        self.interval = interval_seconds
        self.retry = retry or RetryConfig()
        self.pool = ReconcilerPool(self._handle, max_workers=max_workers)
        self._shutdown = asyncio.Event()
        self._attempts: dict[ResourceKey, int] = {}
        self._retries: dict[ResourceKey, asyncio.TimerHandle] = {}

    async def run(self) -> None:
        """Resync at the configured interval until a shutdown signal."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, functools.partial(self._handle_signal, sig))

        logger.info(
            f"Operator starting for {self.kind} in namespace {self.namespace} "
            f"(interval: {self.interval}s)"
        )
        try:
            while not self._shutdown.is_set():
                await self.resync()
                try:
                    await asyncio.wait_for(self._shutdown.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            for handle in self._retries.values():
                handle.cancel()
            self._retries.clear()
            await self.pool.shutdown()
        logger.info("Operator stopped")

    def stop(self) -> None:
        self._shutdown.set()

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info(f"Received {sig.name}, shutting down...")
        self.stop()

    async def resync(self) -> int:
        """
        Submit a reconciliation for every resource.

        Returns:
            Number of resources submitted.
        """
        try:
            resources = await self.store.list(self.kind, self.namespace)
        except Exception as e:
            logger.error(f"Listing {self.kind} in {self.namespace} failed: {type(e).__name__}: {e}")
            return 0
        for resource in resources:
            self.submit(Reconciliation("timer", self.kind, self.namespace, resource.name))
        return len(resources)

    def submit(self, reconciliation: Reconciliation) -> None:
        handle = self._retries.pop(reconciliation.key, None)
        if handle is not None:
            handle.cancel()
        self.pool.submit(reconciliation)

    async def _handle(self, reconciliation: Reconciliation) -> ReconciliationResult | None:
        key = reconciliation.key
        try:
            result = await self.reconciler.reconcile(reconciliation)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._schedule_retry(reconciliation, e)
            return None
        if result.succeeded:
            self._attempts.pop(key, None)
        else:
            self._schedule_retry(reconciliation, result.error)
        return result

    def _schedule_retry(self, reconciliation: Reconciliation, error: Exception | None) -> None:
        key = reconciliation.key
        attempts = self._attempts.get(key, 0)
        if error is None or not self.retry.should_retry(error, attempts):
            self._attempts.pop(key, None)
            logger.info(f"{reconciliation}: not retrying, waiting for the next resync")
            return
        self._attempts[key] = attempts + 1
        delay = self.retry.delay_seconds(attempts)
        logger.info(f"{reconciliation}: retrying in {delay:.1f}s (attempt {attempts + 1})")
        _, namespace, name = key
        self._retries[key] = asyncio.get_running_loop().call_later(
            delay,
            self._retry,
            Reconciliation("retry", self.kind, namespace, name),
        )

    def _retry(self, reconciliation: Reconciliation) -> None:
        self._retries.pop(reconciliation.key, None)
        if not self._shutdown.is_set():
            self.pool.submit(reconciliation)
