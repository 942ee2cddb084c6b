"""
Reconciler: one attempt at bringing a cluster to its desired state.

Reconciler.reconcile() reads the custom resource, handles the paused and
never-reconciled cases, runs the phase pipeline and writes the resulting
status. It never raises for failures inside the pipeline: those are
reported in the returned ReconciliationResult (and the status), and the
caller decides whether to retry.
"""

import functools
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from reconciler_protocols import ResourceStoreProtocol

from reconciler_core import annotations
from reconciler_core.ca.issuer import IdentityIssuer
from reconciler_core.ca.manager import CertificateAuthorityManager
from reconciler_core.ca.signer import X509IdentitySigner
from reconciler_core.config import OperatorSettings
from reconciler_core.exceptions import PhaseFailedError
from reconciler_core.reconcile import phases
from reconciler_core.reconcile.driver import Phase, PipelineDriver
from reconciler_core.reconcile.ensemble import ClusterCapability
from reconciler_core.reconcile.instances import InstanceOperations
from reconciler_core.reconcile.rolling import BatchPolicy, RollingUpdateDriver, one_at_a_time
from reconciler_core.reconcile.state import Reconciliation, ReconciliationState
from reconciler_core.reconcile.status import (
    ClusterStatus,
    StatusAssembler,
    persist_status,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    """
    Outcome of one attempt.

    Attributes:
        reconciliation: Which attempt this was.
        succeeded: True if every phase completed (or there was nothing to do).
        status: Status assembled for the resource, None if it no longer exists.
        error: The exception that aborted the pipeline.
        completed_phases: Names of the phases that finished.
        paused: The resource is paused and was not reconciled.
    """

    reconciliation: Reconciliation
    succeeded: bool
    status: ClusterStatus | None = None
    error: Exception | None = None
    completed_phases: list[str] = field(default_factory=list)
    paused: bool = False


class Reconciler:
    """
    Reconciles custom resources of one kind.

    Args:
        store: Resource store (wrap it in TimeoutResourceStore for real clusters)
        cluster: Kind-specific capabilities
        settings: Operator settings (timeouts)
        ca_manager: CA lifecycle manager
        issuer: Per-instance certificate issuer
        clock: Source of "now" for CA and certificate decisions
        batch_policy: How the rolling update groups restarts

    Example:
        reconciler = Reconciler(store, KafkaCluster())
        result = await reconciler.reconcile(
            Reconciliation("cli", "Kafka", "kafka", "my-cluster")
        )
        print(result.status.readiness.type)
    """

    def __init__(
        self,
        store: ResourceStoreProtocol,
        cluster: ClusterCapability,
        settings: OperatorSettings | None = None,
        ca_manager: CertificateAuthorityManager | None = None,
        issuer: IdentityIssuer | None = None,
        clock: Callable[[], datetime] = utc_now,
        batch_policy: BatchPolicy = one_at_a_time,
    ) -> None:
        settings = settings or OperatorSettings()
        self.store = store
        self.cluster = cluster
        self.clock = clock
        instances = InstanceOperations(
            store,
            readiness_timeout_seconds=settings.readiness_timeout_seconds,
            readiness_poll_seconds=settings.readiness_poll_seconds,
        )
        self.deps = phases.Collaborators(
            store=store,
            cluster=cluster,
            instances=instances,
            ca_manager=ca_manager or CertificateAuthorityManager(),
            issuer=issuer or IdentityIssuer(X509IdentitySigner()),
            assembler=StatusAssembler(clock),
            roller=RollingUpdateDriver(instances, batch_policy),
        )
        self.driver = PipelineDriver(self.build_phases())

    def build_phases(self) -> list[Phase]:
        deps = self.deps
        pipeline = [
            Phase("CAs", functools.partial(phases.reconcile_cas, deps)),
            Phase("Describe", functools.partial(phases.describe, deps)),
        ]
        for capability in self.cluster.ensembles:
            role = capability.role
            for name, fn in phases.ensemble_phases(role):
                pipeline.append(Phase(f"{role}:{name}", functools.partial(fn, deps, role)))
        pipeline.append(Phase("Status", functools.partial(phases.status, deps)))
        return pipeline

    async def reconcile(self, reconciliation: Reconciliation) -> ReconciliationResult:
        """
        Run one attempt.

        Raises:
            TransientError: If reading the resource, or writing the paused or
                Creating status, fails transiently. Failures inside the
                pipeline are returned instead.
            asyncio.CancelledError: On shutdown. The cluster stays resumable.
        """
        kind, namespace, name = reconciliation.key
        cluster = await self.store.get(kind, namespace, name)
        if cluster is None:
            logger.info(f"{reconciliation}: resource no longer exists, nothing to do")
            return ReconciliationResult(reconciliation, succeeded=True)

        previous = ClusterStatus.from_dict(cluster.status)
        assembler = self.deps.assembler

        if annotations.is_true(cluster.annotations, annotations.PAUSE_RECONCILIATION):
            logger.info(f"{reconciliation}: reconciliation is paused")
            status = assembler.paused(previous)
            await persist_status(self.store, cluster, status)
            return ReconciliationResult(reconciliation, succeeded=True, status=status, paused=True)

        if previous is None:
            await persist_status(
                self.store, cluster, assembler.creating(cluster, self.cluster.creating_message)
            )

        logger.info(f"{reconciliation}: reconciliation is in progress")
        state = ReconciliationState(
            reconciliation=reconciliation,
            cluster=cluster,
            now=self.clock(),
            previous_status=previous,
        )
        try:
            state = await self.driver.run(state)
        except PhaseFailedError as e:
            return await self._failed(state, e.error)

        logger.info(f"{reconciliation}: reconciled successfully")
        return ReconciliationResult(
            reconciliation,
            succeeded=True,
            status=state.status,
            completed_phases=list(state.completed_phases),
        )

    async def _failed(self, state: ReconciliationState, error: Exception) -> ReconciliationResult:
        reconciliation = state.reconciliation
        logger.warning(f"{reconciliation}: failed reconciliation: {type(error).__name__}: {error}")
        status = self.deps.assembler.assemble(state, error)
        try:
            await persist_status(self.store, state.cluster, status)
        except Exception as status_error:
            logger.error(
                f"{reconciliation}: could not write failure status: "
                f"{type(status_error).__name__}: {status_error}"
            )
        return ReconciliationResult(
            reconciliation,
            succeeded=False,
            status=status,
            error=error,
            completed_phases=list(state.completed_phases),
        )
