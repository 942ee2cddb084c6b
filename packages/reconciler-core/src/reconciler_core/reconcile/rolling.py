"""
Rolling update driver.

Restarts every instance whose restart reasons are non-empty, in batches
chosen by a pluggable batching policy, waiting for each batch to become
ready before starting the next. Instances that are not ready are rolled
first, then the rest in index order.

The default policy restarts one instance at a time.
"""

import asyncio
import logging
from typing import Callable

from reconciler_protocols import InstanceRecord

from reconciler_core.reconcile.instances import InstanceOperations
from reconciler_core.reconcile.state import EnsembleState, ReconciliationState
from reconciler_core.restart import instance_record

logger = logging.getLogger(__name__)

RollCandidate = tuple[InstanceRecord, list[str]]
BatchPolicy = Callable[[list[RollCandidate]], list[list[RollCandidate]]]
RestartEvaluator = Callable[[InstanceRecord], list[str]]


def one_at_a_time(candidates: list[RollCandidate]) -> list[list[RollCandidate]]:
    return [[candidate] for candidate in candidates]


def in_batches_of(size: int) -> BatchPolicy:
    """Policy restarting up to ``size`` instances together."""
    if size < 1:
        raise ValueError(f"Batch size must be at least 1, got {size}")

    def policy(candidates: list[RollCandidate]) -> list[list[RollCandidate]]:
        return [candidates[i : i + size] for i in range(0, len(candidates), size)]

    return policy


class RollingUpdateDriver:
    """
    Rolls stale instances of an ensemble.

    Args:
        instances: Instance operations used for restarts and readiness waits
        batch_policy: Groups candidates into batches restarted together
    """

    def __init__(self, instances: InstanceOperations, batch_policy: BatchPolicy = one_at_a_time) -> None:
        self.instances = instances
        self.batch_policy = batch_policy

    async def roll(
        self,
        state: ReconciliationState,
        ensemble: EnsembleState,
        evaluate: RestartEvaluator,
        keep_template: bool = False,
    ) -> list[str]:
        """
        Restart every current instance ``evaluate`` returns reasons for.

        Only instances inside the current replica range are considered.
        With ``keep_template`` pods are rebuilt from the stored descriptor
        rather than the desired one (see InstanceOperations.template).

        Returns:
            Names of the restarted pods, in restart order.
        """
        pods = await self.instances.list_pods(state.namespace, ensemble.desired)
        candidates: list[RollCandidate] = []
        for index, pod in pods.items():
            if index >= ensemble.current_replicas:
                continue
            record = instance_record(pod, index)
            reasons = evaluate(record)
            if reasons:
                candidates.append((record, reasons))

        if not candidates:
            logger.debug(f"{state.reconciliation}: {ensemble.desired.name} is up to date")
            return []

        candidates.sort(key=lambda c: (c[0].ready, c[0].index))
        rolled = []
        for batch in self.batch_policy(candidates):
            await asyncio.gather(
                *(
                    self.instances.restart_instance(
                        state, ensemble, record.index, reasons, keep=record if keep_template else None
                    )
                    for record, reasons in batch
                )
            )
            names = [record.name for record, _ in batch]
            await self.instances.wait_ready(state, names)
            rolled.extend(names)
        logger.info(f"{state.reconciliation}: rolled {len(rolled)} pod(s) of {ensemble.desired.name}")
        return rolled
