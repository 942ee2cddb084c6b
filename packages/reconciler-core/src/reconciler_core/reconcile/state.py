"""
Per-reconciliation state.

This module defines:
- Reconciliation: Identity of one reconciliation attempt, used as log prefix
- EnsembleState: What one ensemble looks like now and should look like
- ReconciliationState: The shared context every pipeline phase reads and
  extends

A fresh ReconciliationState is built for every attempt and nothing in it
outlives the attempt. Everything the next attempt needs is persisted in
the store (annotations, descriptors, status).
"""

import itertools
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from reconciler_protocols import EnsembleDescriptor, IssuedIdentity, Resource, ResourceKey

from reconciler_core.ca.types import CertificateAuthority
from reconciler_core.restart import DesiredInstanceState
from reconciler_core.storage.diff import StorageDiffResult

if TYPE_CHECKING:
    from reconciler_core.reconcile.ensemble import EnsembleCapability
    from reconciler_core.reconcile.status import ClusterStatus, Condition, ListenerStatus

_counter = itertools.count(1)


@dataclass
class Reconciliation:
    """
    Identity of one reconciliation attempt.

    Attributes:
        trigger: What caused it ("timer", "watch", "retry", "cli", ...).
        kind: Custom resource kind.
        namespace: Custom resource namespace.
        name: Custom resource name.
        id: Process-wide sequence number.
    """

    trigger: str
    kind: str
    namespace: str
    name: str
    id: int = field(default_factory=lambda: next(_counter))

    @property
    def key(self) -> ResourceKey:
        return (self.kind, self.namespace, self.name)

    def __str__(self) -> str:
        return f"Reconciliation #{self.id}({self.trigger}) {self.kind}({self.namespace}/{self.name})"


@dataclass
class EnsembleState:
    """
    One ensemble as seen by the current attempt.

    Attributes:
        capability: Kind-specific behaviour for this ensemble.
        desired: Descriptor built from the custom resource.
        current: Descriptor read back from the store, None on first deploy.
        descriptor_resource: Stored pod-set resource, None on first deploy.
        current_replicas: Replica count the scaling phases start from. On
            first deploy this equals the desired count, so the ensemble is
            created in one go.
        storage_diff: Current versus desired storage classification.
        identities: Certificates issued to instances, by pod name.
    """

    capability: "EnsembleCapability"
    desired: EnsembleDescriptor
    current: EnsembleDescriptor | None = None
    descriptor_resource: Resource | None = None
    current_replicas: int = 0
    storage_diff: StorageDiffResult = field(default_factory=StorageDiffResult)
    identities: dict[str, IssuedIdentity] = field(default_factory=dict)

    @property
    def role(self) -> str:
        return self.capability.role

    @property
    def target_replicas(self) -> int:
        return self.desired.replicas


@dataclass
class ReconciliationState:
    """
    Mutable context shared by every phase of one attempt.

    Phases only ever add to it or replace fields wholesale, so the state
    after a failure still reports what was gathered before it (listener
    addresses, warnings).
    """

    reconciliation: Reconciliation
    cluster: Resource
    now: datetime
    cluster_ca: CertificateAuthority | None = None
    clients_ca: CertificateAuthority | None = None
    ensembles: dict[str, EnsembleState] = field(default_factory=dict)
    listeners: list["ListenerStatus"] = field(default_factory=list)
    warnings: list["Condition"] = field(default_factory=list)
    previous_status: "ClusterStatus | None" = None
    status: "ClusterStatus | None" = None
    completed_phases: list[str] = field(default_factory=list)

    @property
    def namespace(self) -> str:
        return self.cluster.namespace

    @property
    def cluster_name(self) -> str:
        return self.cluster.name

    def desired_instance_state(self, role: str) -> DesiredInstanceState:
        """What every current instance of ``role`` must match right now."""
        ensemble = self.ensembles[role]
        trusts_clients_ca = ensemble.capability.trusts_clients_ca
        return DesiredInstanceState(
            revision=ensemble.desired.revision,
            cluster_ca_cert_generation=self.cluster_ca.cert_generation,
            clients_ca_cert_generation=(
                self.clients_ca.cert_generation if trusts_clients_ca else None
            ),
            cluster_ca_key_generation=self.cluster_ca.key_generation,
        )
