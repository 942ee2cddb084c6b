"""
Capability interfaces implemented per ensemble kind.

The pipeline is written once against these protocols. A cluster kind
plugs in by providing one EnsembleCapability per ensemble (in the order
they are reconciled) and one ClusterCapability for cluster-wide concerns.

The core capability set is {describe, needs_restart, diff}. The remaining
members are hooks the scaling, apply and status phases call; an ensemble
that has nothing to do for a hook returns an empty value or does nothing.
"""

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from reconciler_protocols import (
    EnsembleDescriptor,
    InstanceIdentity,
    InstanceRecord,
    Resource,
    ResourceStoreProtocol,
)

from reconciler_core.ca.types import CaSettings
from reconciler_core.restart import DesiredInstanceState
from reconciler_core.storage.diff import StorageDiffResult

if TYPE_CHECKING:
    from reconciler_core.reconcile.status import Condition, ListenerStatus

COORDINATION = "coordination"
BROKER = "broker"


@runtime_checkable
class EnsembleCapability(Protocol):
    """
    Kind-specific behaviour of one ensemble.

    Attributes:
        role: COORDINATION or BROKER.
        trusts_clients_ca: Instances must roll when the clients CA changes.
        sequential_scaling: Scale one instance at a time with a readiness
            wait in between, instead of in one batch.
    """

    role: str
    trusts_clients_ca: bool
    sequential_scaling: bool

    def describe(self, cluster: Resource) -> EnsembleDescriptor:
        """
        Build the desired descriptor from the custom resource.

        Raises:
            InvalidResourceError: If the custom resource is malformed.
        """
        ...

    def needs_restart(self, instance: InstanceRecord, desired: DesiredInstanceState) -> list[str]:
        """Reasons ``instance`` must restart; empty when current."""
        ...

    def diff(
        self,
        current: EnsembleDescriptor,
        desired: EnsembleDescriptor,
        current_replicas: int,
    ) -> StorageDiffResult:
        """Classify the storage change between two descriptors."""
        ...

    def identities(self, descriptor: EnsembleDescriptor, namespace: str, replicas: int) -> list[InstanceIdentity]:
        """Identities (with DNS names) of the first ``replicas`` instances."""
        ...

    def certificate_secret_name(self, cluster_name: str) -> str:
        """Secret holding the per-instance certificates."""
        ...

    def instance_config(self, descriptor: EnsembleDescriptor, index: int) -> dict[str, str] | None:
        """Per-instance config resource data, or None if the kind has none."""
        ...

    def listener_statuses(self, cluster: Resource, descriptor: EnsembleDescriptor) -> list["ListenerStatus"]:
        """Addresses clients connect to; empty for non-client-facing ensembles."""
        ...

    async def on_membership_change(
        self,
        store: ResourceStoreProtocol,
        namespace: str,
        descriptor: EnsembleDescriptor,
        replicas: int,
    ) -> None:
        """Reconfigure membership for an ensemble of ``replicas`` instances."""
        ...

    async def check_scale_down(
        self,
        store: ResourceStoreProtocol,
        namespace: str,
        descriptor: EnsembleDescriptor,
        indices: list[int],
    ) -> None:
        """
        Refuse removal of instances that are still in use.

        Raises:
            InvalidResourceError: If any instance in ``indices`` cannot be removed.
        """
        ...


@runtime_checkable
class ClusterCapability(Protocol):
    """
    Cluster-wide behaviour of a custom resource kind.

    Attributes:
        kind: Custom resource kind (e.g., "Kafka").
        ensembles: Ensemble capabilities in reconciliation order.
        creating_message: Message of the intermediate Creating condition.
    """

    kind: str
    ensembles: list[EnsembleCapability]
    creating_message: str

    def ca_settings(self, cluster: Resource, ca_name: str) -> CaSettings:
        """CA configuration taken from the custom resource."""
        ...

    def warnings(self, cluster: Resource) -> list["Condition"]:
        """Warning conditions for configurations that work but are risky."""
        ...
