"""
Kafka broker ensemble.

Brokers scale in one batch, trust the clients CA and get one config
resource per broker. Removing brokers that still host partition replicas
would lose data, so a scale-down first asks a PartitionInspector which of
the brokers about to go are empty. Without an inspector, or when the
Kafka resource carries the skip annotation, the check is not done.
"""

import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from reconciler_protocols import EnsembleDescriptor, Resource, ResourceStoreProtocol

from reconciler_core import annotations
from reconciler_core.exceptions import InvalidResourceError
from reconciler_core.reconcile.ensemble import BROKER
from reconciler_core.reconcile.status import ListenerAddress, ListenerStatus

from reconciler_kafka.base import KafkaEnsembleBase

logger = logging.getLogger(__name__)

KAFKA_KIND = "Kafka"
SKIP_SCALE_DOWN_CHECK = "strimzi.io/skip-broker-scaledown-check"

SERVER_CONFIG_KEY = "server.config"

INTERNAL_LISTENER_TYPES = ("internal", "cluster-ip")


@runtime_checkable
class PartitionInspector(Protocol):
    """Reports which brokers still host partition replicas."""

    async def brokers_with_partitions(
        self, namespace: str, descriptor: EnsembleDescriptor, broker_ids: list[int]
    ) -> list[int]:
        """Subset of ``broker_ids`` that host at least one replica."""
        ...


def bootstrap_host(cluster_name: str, namespace: str, listener: dict) -> str:
    if listener.get("type", "internal") == "internal":
        return f"{cluster_name}-kafka-bootstrap.{namespace}.svc"
    return f"{cluster_name}-kafka-{listener['name']}-bootstrap.{namespace}.svc"


@dataclass
class BrokerEnsemble(KafkaEnsembleBase):
    """
    EnsembleCapability of the Kafka broker ensemble.

    Attributes:
        partition_inspector: Guards scale-down; None disables the check.
    """

    partition_inspector: PartitionInspector | None = None

    role = BROKER
    trusts_clients_ca = True
    sequential_scaling = False
    headless_suffix = "brokers"
    shared_suffixes = ("bootstrap",)

    def certificate_secret_name(self, cluster_name: str) -> str:
        return f"{cluster_name}-kafka-brokers"

    def instance_config(self, descriptor: EnsembleDescriptor, index: int) -> dict[str, str] | None:
        lines = [f"broker.id={index}"]
        lines.extend(f"{key}={descriptor.config[key]}" for key in sorted(descriptor.config))
        return {SERVER_CONFIG_KEY: "\n".join(lines)}

    def listener_statuses(self, cluster: Resource, descriptor: EnsembleDescriptor) -> list[ListenerStatus]:
        statuses = []
        for listener in descriptor.listeners:
            listener_type = listener.get("type", "internal")
            status = ListenerStatus(name=listener["name"], type=listener_type)
            if listener_type in INTERNAL_LISTENER_TYPES:
                host = bootstrap_host(cluster.name, cluster.namespace, listener)
                port = int(listener["port"])
                status.addresses = [ListenerAddress(host=host, port=port)]
                status.bootstrap_servers = f"{host}:{port}"
            statuses.append(status)
        return statuses

    async def on_membership_change(
        self,
        store: ResourceStoreProtocol,
        namespace: str,
        descriptor: EnsembleDescriptor,
        replicas: int,
    ) -> None:
        return None

    async def check_scale_down(
        self,
        store: ResourceStoreProtocol,
        namespace: str,
        descriptor: EnsembleDescriptor,
        indices: list[int],
    ) -> None:
        if self.partition_inspector is None or not indices:
            return
        cluster_name = descriptor.name.removesuffix("-kafka")
        cluster = await store.get(KAFKA_KIND, namespace, cluster_name)
        if cluster is not None and annotations.is_true(cluster.annotations, SKIP_SCALE_DOWN_CHECK):
            logger.warning(f"Broker scale-down check skipped for {cluster_name}")
            return

        busy = await self.partition_inspector.brokers_with_partitions(namespace, descriptor, indices)
        if busy:
            raise InvalidResourceError(
                f"Cannot scale down brokers {sorted(indices)} because brokers "
                f"{sorted(busy)} are not empty"
            )
