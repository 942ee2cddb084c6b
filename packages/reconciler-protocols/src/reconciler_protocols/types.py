"""
Generic types shared between the reconciler and its collaborators.

This module defines the data structures that cross the boundary between
the reconciliation engine and the systems it drives: stored resources,
ensemble descriptors produced by a model builder, and identities issued
by a signer.

All types use @dataclass so they can be constructed freely in tests.
"""

from dataclasses import dataclass, field
from typing import Any


# Type aliases for common patterns
ResourceKey = tuple[str, str, str]
"""(kind, namespace, name) triple identifying a stored resource."""

InstanceIndex = int
"""Zero-based position of an instance inside its ensemble."""


@dataclass
class Resource:
    """
    A stored object, keyed by kind, namespace and name.

    Resource is deliberately loose: pods, secrets, config maps, claims,
    ensemble descriptors and the cluster custom resource all share this
    shape. Only the fields a given kind needs are populated.

    Attributes:
        kind: Resource kind (e.g., "Pod", "Secret", "Kafka").
        namespace: Namespace the resource lives in.
        name: Name, unique per kind and namespace.
        annotations: Free-form string annotations.
        labels: Selector labels.
        spec: Desired-state body.
        data: Opaque key material (secrets) or config content.
        status: Observed-state body as reported by the store.
        generation: Spec generation, bumped by the store on spec changes.
        resource_version: Opaque version used for optimistic concurrency.
            None for resources that have not been stored yet.
    """

    kind: str
    namespace: str
    name: str
    annotations: dict[str, str] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    spec: dict[str, Any] = field(default_factory=dict)
    data: dict[str, bytes] = field(default_factory=dict)
    status: dict[str, Any] | None = None
    generation: int = 1
    resource_version: str | None = None

    @property
    def key(self) -> ResourceKey:
        return (self.kind, self.namespace, self.name)


@dataclass
class EnsembleDescriptor:
    """
    Concrete desired (or observed) shape of one ensemble.

    Produced by a ModelBuilder from the cluster custom resource, and
    persisted as the ensemble's pod-set resource so the next
    reconciliation can diff against it.

    Attributes:
        name: Ensemble name, also the pod name prefix (e.g., "my-cluster-kafka").
        role: Ensemble role ("coordination" or "broker").
        replicas: Number of instances.
        revision: Hash of everything that requires a restart when changed.
        storage: Raw storage topology (as found in the custom resource).
        template_annotations: Annotations stamped on every pod.
        config: Rendered ensemble configuration (key/value).
        env: Environment variables of the instance containers.
        listeners: Listener definitions (broker ensemble only).
    """

    name: str
    role: str
    replicas: int
    revision: str
    storage: dict[str, Any] = field(default_factory=dict)
    template_annotations: dict[str, str] = field(default_factory=dict)
    config: dict[str, str] = field(default_factory=dict)
    env: dict[str, str] = field(default_factory=dict)
    listeners: list[dict[str, Any]] = field(default_factory=list)

    def instance_name(self, index: InstanceIndex) -> str:
        """Pod name of the instance at ``index``."""
        return f"{self.name}-{index}"

    def instance_names(self, replicas: int | None = None) -> list[str]:
        count = self.replicas if replicas is None else replicas
        return [self.instance_name(i) for i in range(count)]


@dataclass
class InstanceIdentity:
    """
    Identity a signer issues a certificate for.

    Attributes:
        name: Instance (pod) name, used as the certificate common name.
        dns_names: Subject alternative names the certificate must cover.
    """

    name: str
    dns_names: list[str] = field(default_factory=list)


@dataclass
class IssuedIdentity:
    """
    Certificate/key pair issued to one instance.

    Attributes:
        name: Instance the pair belongs to.
        certificate: PEM-encoded certificate.
        private_key: PEM-encoded private key.
        ca_cert_generation: Generation of the CA certificate that signed it.
    """

    name: str
    certificate: bytes
    private_key: bytes
    ca_cert_generation: int


@dataclass(frozen=True)
class InstanceRecord:
    """
    Read-only snapshot of one running instance.

    Built once per pipeline phase from the pod's annotations. The restart
    evaluator compares it against the desired revision and CA generations.

    Attributes:
        name: Pod name.
        index: Position in the ensemble.
        revision: Revision annotation observed on the pod.
        cluster_ca_cert_generation: Cluster CA cert generation the pod trusts.
        clients_ca_cert_generation: Clients CA cert generation the pod trusts.
        cluster_ca_key_generation: Cluster CA key generation the pod trusts.
        manual_restart_requested: Pod carries the manual rolling update marker.
        ready: Pod reported ready when the snapshot was taken.
    """

    name: str
    index: InstanceIndex
    revision: str | None
    cluster_ca_cert_generation: int | None
    clients_ca_cert_generation: int | None
    cluster_ca_key_generation: int | None
    manual_restart_requested: bool = False
    ready: bool = False
