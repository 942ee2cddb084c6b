"""
Sequential ensemble scaler.

Coordination ensembles need one membership change at a time: each new
instance must join and be ready before the next is added, and the quorum
is shrunk before each removal. Broker ensembles scale in one batch.

The descriptor always covers every pod that exists: scaling up writes it
before creating pods, and scaling down lowers it only after the pods are
gone. An interrupted scale is continued by the next attempt, which takes
current_replicas from the descriptor or from the highest pod still
running, whichever is larger.
"""

import asyncio
import logging

from reconciler_core.reconcile.instances import InstanceOperations
from reconciler_core.reconcile.state import EnsembleState, ReconciliationState

logger = logging.getLogger(__name__)


class SequentialEnsembleScaler:
    """
    Moves an ensemble from current_replicas to target_replicas.

    Example:
        scaler = SequentialEnsembleScaler(InstanceOperations(store))
        await scaler.scale_up(state, state.ensembles[COORDINATION])
    """

    def __init__(self, instances: InstanceOperations) -> None:
        self.instances = instances

    async def scale_up(self, state: ReconciliationState, ensemble: EnsembleState) -> None:
        current, target = ensemble.current_replicas, ensemble.target_replicas
        if current >= target:
            return
        logger.info(
            f"{state.reconciliation}: scaling {ensemble.desired.name} up from {current} to {target}"
        )
        if ensemble.capability.sequential_scaling:
            for replicas in range(current + 1, target + 1):
                await self._add_one(state, ensemble, replicas)
        else:
            await self._add_batch(state, ensemble, current, target)

    async def scale_down(self, state: ReconciliationState, ensemble: EnsembleState) -> None:
        current, target = ensemble.current_replicas, ensemble.target_replicas
        if current <= target:
            return
        logger.info(
            f"{state.reconciliation}: scaling {ensemble.desired.name} down from {current} to {target}"
        )
        if ensemble.capability.sequential_scaling:
            for replicas in range(current - 1, target - 1, -1):
                await self._remove_one(state, ensemble, replicas)
        else:
            await self._remove_batch(state, ensemble, current, target)

    async def _add_one(self, state: ReconciliationState, ensemble: EnsembleState, replicas: int) -> None:
        index = replicas - 1
        await self.instances.write_descriptor(state, ensemble, replicas)
        await self.instances.create_instance(state, ensemble, index)
        await self.instances.wait_ready(state, [ensemble.desired.instance_name(index)])
        await ensemble.capability.on_membership_change(
            self.instances.store, state.namespace, ensemble.desired, replicas
        )
        ensemble.current_replicas = replicas

    async def _add_batch(
        self,
        state: ReconciliationState,
        ensemble: EnsembleState,
        current: int,
        target: int,
    ) -> None:
        indices = list(range(current, target))
        await self.instances.write_descriptor(state, ensemble, target)
        await asyncio.gather(*(self.instances.create_instance(state, ensemble, i) for i in indices))
        await self.instances.wait_ready(state, [ensemble.desired.instance_name(i) for i in indices])
        ensemble.current_replicas = target

    async def _remove_one(self, state: ReconciliationState, ensemble: EnsembleState, replicas: int) -> None:
        # Shrink the quorum first so the removed member is never counted on
        await ensemble.capability.on_membership_change(
            self.instances.store, state.namespace, ensemble.desired, replicas
        )
        await self.instances.remove_instance(state, ensemble, replicas)
        await self.instances.write_descriptor(state, ensemble, replicas)
        await self.instances.wait_ready(state, ensemble.desired.instance_names(replicas))
        ensemble.current_replicas = replicas

    async def _remove_batch(
        self,
        state: ReconciliationState,
        ensemble: EnsembleState,
        current: int,
        target: int,
    ) -> None:
        indices = list(range(target, current))
        await ensemble.capability.check_scale_down(
            self.instances.store, state.namespace, ensemble.desired, indices
        )
        for index in reversed(indices):
            await self.instances.remove_instance(state, ensemble, index)
        await self.instances.write_descriptor(state, ensemble, target)
        ensemble.current_replicas = target
