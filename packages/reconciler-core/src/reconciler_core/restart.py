"""
Restart reason evaluation.

needs_restart() maps one instance's observed state to the list of reasons
it must be restarted. Every check runs; none short-circuits, so a single
pass surfaces every cause and the list doubles as the audit trail logged
for the restart. An empty list means the instance is current.

A partially completed rolling update is resumed for free: instances that
already rolled carry the new annotations and produce no reasons.
"""

from dataclasses import dataclass

from reconciler_protocols import InstanceRecord, Resource

from reconciler_core import annotations
from reconciler_core.readiness import is_ready

POD_HAS_OLD_REVISION = "Pod has old revision"
CLUSTER_CA_CERT_HAS_OLD_GENERATION = "Pod has old cluster CA certificate generation"
CLIENTS_CA_CERT_HAS_OLD_GENERATION = "Pod has old clients CA certificate generation"
CLUSTER_CA_KEY_REPLACED = "Trust new cluster CA certificate signed by new key"
MANUAL_ROLLING_UPDATE = "Pod was manually annotated to be rolled"
JBOD_VOLUMES_CHANGED = "JBOD volumes were added or removed"


@dataclass(frozen=True)
class DesiredInstanceState:
    """
    What a current instance must match.

    Attributes:
        revision: Revision hash of the desired pod template.
        cluster_ca_cert_generation: Current cluster CA cert generation, or
            None when a pod is rebuilt that never recorded one.
        clients_ca_cert_generation: Current clients CA cert generation, or
            None for ensembles that do not trust the clients CA.
        cluster_ca_key_generation: Current cluster CA key generation, or
            None to skip the key check.
        volumes_changed: JBOD volumes were added or removed for this instance.
    """

    revision: str
    cluster_ca_cert_generation: int | None
    clients_ca_cert_generation: int | None = None
    cluster_ca_key_generation: int | None = None
    volumes_changed: bool = False


def needs_restart(instance: InstanceRecord, desired: DesiredInstanceState) -> list[str]:
    """
    List every reason ``instance`` must be restarted.

    Pure and side-effect free.
    """
    reasons = []
    if instance.revision != desired.revision:
        reasons.append(POD_HAS_OLD_REVISION)
    if instance.cluster_ca_cert_generation != desired.cluster_ca_cert_generation:
        reasons.append(CLUSTER_CA_CERT_HAS_OLD_GENERATION)
    if (
        desired.clients_ca_cert_generation is not None
        and instance.clients_ca_cert_generation != desired.clients_ca_cert_generation
    ):
        reasons.append(CLIENTS_CA_CERT_HAS_OLD_GENERATION)
    if (
        desired.cluster_ca_key_generation is not None
        and instance.cluster_ca_key_generation != desired.cluster_ca_key_generation
    ):
        reasons.append(CLUSTER_CA_KEY_REPLACED)
    if instance.manual_restart_requested:
        reasons.append(MANUAL_ROLLING_UPDATE)
    if desired.volumes_changed:
        reasons.append(JBOD_VOLUMES_CHANGED)
    return reasons


def instance_record(pod: Resource, index: int) -> InstanceRecord:
    """Snapshot the restart-relevant state of a pod."""
    anno = pod.annotations
    return InstanceRecord(
        name=pod.name,
        index=index,
        revision=anno.get(annotations.REVISION),
        cluster_ca_cert_generation=annotations.int_or_none(
            anno, annotations.CLUSTER_CA_CERT_GENERATION
        ),
        clients_ca_cert_generation=annotations.int_or_none(
            anno, annotations.CLIENTS_CA_CERT_GENERATION
        ),
        cluster_ca_key_generation=annotations.int_or_none(
            anno, annotations.CLUSTER_CA_KEY_GENERATION
        ),
        manual_restart_requested=annotations.is_true(anno, annotations.MANUAL_ROLLING_UPDATE),
        ready=is_ready(pod),
    )
