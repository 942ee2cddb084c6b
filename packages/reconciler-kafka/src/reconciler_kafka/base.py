"""Behaviour shared by the ZooKeeper and broker ensembles."""

from dataclasses import dataclass, field

from reconciler_protocols import EnsembleDescriptor, InstanceIdentity, InstanceRecord, Resource

from reconciler_core import restart
from reconciler_core.restart import DesiredInstanceState
from reconciler_core.storage.diff import StorageDiffResult, diff_storage
from reconciler_core.storage.types import parse_storage

from reconciler_kafka.builder import KafkaModelBuilder


def service_dns_names(service: str, namespace: str) -> list[str]:
    return [
        service,
        f"{service}.{namespace}",
        f"{service}.{namespace}.svc",
        f"{service}.{namespace}.svc.cluster.local",
    ]


@dataclass
class KafkaEnsembleBase:
    """
    describe/needs_restart/diff plus identities for one Kafka ensemble.

    Subclasses set ``role`` and the suffixes of their services: the
    headless service giving each instance a stable address, and the
    shared services every instance also answers on.
    """

    builder: KafkaModelBuilder = field(default_factory=KafkaModelBuilder)

    role = ""
    trusts_clients_ca = False
    sequential_scaling = False
    headless_suffix = ""
    shared_suffixes = ()

    def describe(self, cluster: Resource) -> EnsembleDescriptor:
        return self.builder.build(cluster, self.role)

    def needs_restart(self, instance: InstanceRecord, desired: DesiredInstanceState) -> list[str]:
        return restart.needs_restart(instance, desired)

    def diff(
        self,
        current: EnsembleDescriptor,
        desired: EnsembleDescriptor,
        current_replicas: int,
    ) -> StorageDiffResult:
        return diff_storage(
            parse_storage(current.storage),
            parse_storage(desired.storage),
            current_replicas,
            desired.replicas,
        )

    def headless_service(self, descriptor: EnsembleDescriptor) -> str:
        return f"{descriptor.name}-{self.headless_suffix}"

    def shared_services(self, descriptor: EnsembleDescriptor) -> list[str]:
        return [f"{descriptor.name}-{suffix}" for suffix in self.shared_suffixes]

    def instance_address(self, descriptor: EnsembleDescriptor, namespace: str, index: int) -> str:
        """Stable DNS name of one instance."""
        return f"{descriptor.instance_name(index)}.{self.headless_service(descriptor)}.{namespace}.svc"

    def identities(self, descriptor: EnsembleDescriptor, namespace: str, replicas: int) -> list[InstanceIdentity]:
        shared = []
        for service in self.shared_services(descriptor):
            shared.extend(service_dns_names(service, namespace))
        result = []
        for index in range(replicas):
            address = self.instance_address(descriptor, namespace, index)
            result.append(
                InstanceIdentity(
                    name=descriptor.instance_name(index),
                    dns_names=[address, f"{address}.cluster.local", *shared],
                )
            )
        return result
