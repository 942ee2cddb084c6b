"""
Pipeline driver.

A pipeline is an explicit ordered list of named phases. Each phase is an
async function taking the shared ReconciliationState and returning it.
PipelineDriver runs them in order, records which completed, and aborts on
the first failure.

Nothing is checkpointed between attempts: every phase re-derives what it
has to do from observed state, so the next attempt simply runs the whole
list again and finished work turns into no-ops.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from reconciler_core.exceptions import PhaseFailedError
from reconciler_core.reconcile.state import ReconciliationState

logger = logging.getLogger(__name__)

PhaseFn = Callable[[ReconciliationState], Awaitable[ReconciliationState]]


@dataclass(frozen=True)
class Phase:
    """A named step of the pipeline."""

    name: str
    fn: PhaseFn


class PipelineDriver:
    """
    Runs phases in order over a shared state.

    Example:
        driver = PipelineDriver([Phase("CAs", reconcile_cas), Phase("Status", status)])
        state = await driver.run(state)
        assert state.completed_phases == ["CAs", "Status"]
    """

    def __init__(self, phases: list[Phase]) -> None:
        names = [p.name for p in phases]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate phase names in pipeline: {names}")
        self.phases = list(phases)

    @property
    def phase_names(self) -> list[str]:
        return [p.name for p in self.phases]

    async def run(self, state: ReconciliationState) -> ReconciliationState:
        """
        Run every phase.

        Raises:
            PhaseFailedError: Wrapping the first exception a phase raised.
                ``state`` keeps whatever the earlier phases gathered.
            asyncio.CancelledError: Propagated unchanged.
        """
        for phase in self.phases:
            started = time.monotonic()
            logger.debug(f"{state.reconciliation}: phase {phase.name} starting")
            try:
                result = await phase.fn(state)
            except asyncio.CancelledError:
                logger.info(f"{state.reconciliation}: cancelled during phase {phase.name}")
                raise
            except Exception as e:
                logger.warning(
                    f"{state.reconciliation}: phase {phase.name} failed: "
                    f"{type(e).__name__}: {e}"
                )
                raise PhaseFailedError(phase.name, e) from e
            if result is not None:
                state = result
            state.completed_phases.append(phase.name)
            logger.debug(
                f"{state.reconciliation}: phase {phase.name} done "
                f"in {time.monotonic() - started:.2f}s"
            )
        return state
