"""
ZooKeeper (coordination) ensemble.

ZooKeeper scales one member at a time. After every membership change the
quorum configuration, one ``server.N`` line per member, is rewritten so
that members pick up the new ensemble through dynamic reconfiguration.
The lines are kept in the ``<ensemble>-quorum`` ConfigMap, which is only
written when the membership it describes actually changed.
"""

import logging
from dataclasses import dataclass
from typing import Callable

from reconciler_protocols import EnsembleDescriptor, Resource, ResourceStoreProtocol

from reconciler_core import annotations
from reconciler_core.reconcile.ensemble import COORDINATION
from reconciler_core.reconcile.status import ListenerStatus

from reconciler_kafka.base import KafkaEnsembleBase

logger = logging.getLogger(__name__)

CONFIG_MAP_KIND = "ConfigMap"
QUORUM_KEY = "quorum.servers"

QUORUM_PORT = 2888
LEADER_ELECTION_PORT = 3888
CLIENT_ADDRESS = "127.0.0.1:12181"


def generate_quorum_config(replicas: int, address_fn: Callable[[int], str]) -> dict[str, str]:
    """
    Quorum membership for an ensemble of ``replicas`` members.

    Args:
        replicas: Number of members.
        address_fn: Maps a zero-based member index to its DNS name.

    Returns:
        ``{"server.1": "<addr>:2888:3888:participant;127.0.0.1:12181", ...}``
    """
    return {
        f"server.{i + 1}": (
            f"{address_fn(i)}:{QUORUM_PORT}:{LEADER_ELECTION_PORT}:participant;{CLIENT_ADDRESS}"
        )
        for i in range(replicas)
    }


def parse_quorum_config(text: str) -> dict[str, str]:
    """Parse ``key=value`` lines, keeping only the ``server.N`` entries."""
    servers = {}
    for line in text.splitlines():
        key, sep, value = line.strip().partition("=")
        if sep and key.startswith("server."):
            servers[key] = value
    return servers


def quorum_config_differs(current: dict[str, str], desired: dict[str, str]) -> bool:
    return current != desired


def quorum_config_lines(servers: dict[str, str]) -> list[str]:
    return [f"{key}={value}" for key, value in servers.items()]


def quorum_config_map_name(descriptor: EnsembleDescriptor) -> str:
    return f"{descriptor.name}-quorum"


@dataclass
class CoordinationEnsemble(KafkaEnsembleBase):
    """
    EnsembleCapability of the ZooKeeper ensemble.

    Example:
        zookeeper = CoordinationEnsemble()
        descriptor = zookeeper.describe(kafka_resource)
        assert descriptor.name == "my-cluster-zookeeper"
    """

    role = COORDINATION
    trusts_clients_ca = False
    sequential_scaling = True
    headless_suffix = "nodes"
    shared_suffixes = ("client",)

    def certificate_secret_name(self, cluster_name: str) -> str:
        return f"{cluster_name}-zookeeper-nodes"

    def instance_config(self, descriptor: EnsembleDescriptor, index: int) -> dict[str, str] | None:
        return None

    def listener_statuses(self, cluster: Resource, descriptor: EnsembleDescriptor) -> list[ListenerStatus]:
        return []

    async def on_membership_change(
        self,
        store: ResourceStoreProtocol,
        namespace: str,
        descriptor: EnsembleDescriptor,
        replicas: int,
    ) -> None:
        desired = generate_quorum_config(
            replicas, lambda i: self.instance_address(descriptor, namespace, i)
        )
        name = quorum_config_map_name(descriptor)
        existing = await store.get(CONFIG_MAP_KIND, namespace, name)
        current = {}
        if existing is not None and QUORUM_KEY in existing.data:
            current = parse_quorum_config(existing.data[QUORUM_KEY].decode("utf-8"))

        if existing is not None and not quorum_config_differs(current, desired):
            logger.debug(f"Quorum of {descriptor.name} already has {replicas} member(s)")
            return

        logger.info(f"Reconfiguring quorum of {descriptor.name} to {replicas} member(s)")
        data = {QUORUM_KEY: "\n".join(quorum_config_lines(desired)).encode("utf-8")}
        if existing is None:
            cluster_name = descriptor.name.removesuffix("-zookeeper")
            await store.create(
                Resource(
                    kind=CONFIG_MAP_KIND,
                    namespace=namespace,
                    name=name,
                    labels={
                        annotations.CLUSTER_LABEL: cluster_name,
                        annotations.NAME_LABEL: descriptor.name,
                    },
                    data=data,
                )
            )
        else:
            existing.data = {**existing.data, **data}
            await store.update(existing)

    async def check_scale_down(
        self,
        store: ResourceStoreProtocol,
        namespace: str,
        descriptor: EnsembleDescriptor,
        indices: list[int],
    ) -> None:
        return None
