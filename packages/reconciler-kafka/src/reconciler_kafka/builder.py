"""
Kafka model builder.

KafkaModelBuilder turns a Kafka custom resource into the EnsembleDescriptor
of its ZooKeeper ensemble ("coordination") or its broker ensemble
("broker"). It never touches the store.

The descriptor revision is a hash of everything that requires a restart
when it changes: rendered config, environment, pod annotations, listeners,
the Kafka version and, for JBOD, the set of volume ids. Storage sizes and
classes are left out because resizing a claim does not need a restart.
"""

import hashlib
import json
from dataclasses import dataclass
from typing import Any

from reconciler_protocols import EnsembleDescriptor, Resource

from reconciler_core.reconcile.ensemble import BROKER, COORDINATION
from reconciler_core.storage.types import JbodStorage, dump_storage, parse_storage

from reconciler_kafka.jvm import heap_options
from reconciler_kafka.types import KafkaSpec, parse_kafka_spec, protocol_version

KAFKA_DYNAMIC_HEAP_PERCENTAGE = 50
KAFKA_DYNAMIC_HEAP_MAX = 5_000_000_000
ZOOKEEPER_DYNAMIC_HEAP_PERCENTAGE = 75
ZOOKEEPER_DYNAMIC_HEAP_MAX = 2_000_000_000

ZOOKEEPER_DEFAULT_CONFIG = {
    "tickTime": "2000",
    "initLimit": "5",
    "syncLimit": "2",
    "autopurge.purgeInterval": "1",
    "admin.enableServer": "false",
}

REPLICATION_PORT = 9091


def kafka_name(cluster: str) -> str:
    return f"{cluster}-kafka"


def zookeeper_name(cluster: str) -> str:
    return f"{cluster}-zookeeper"


def _config_value(value: Any) -> str:
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def revision_hash(material: dict[str, Any]) -> str:
    canonical = json.dumps(material, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


@dataclass
class KafkaModelBuilder:
    """
    ModelBuilderProtocol implementation for Kafka custom resources.

    Example:
        builder = KafkaModelBuilder()
        brokers = builder.build(kafka_resource, BROKER)
        assert brokers.name == "my-cluster-kafka"
    """

    def spec(self, cluster: Resource) -> KafkaSpec:
        return parse_kafka_spec(cluster.spec)

    def build(self, cluster: Resource, role: str) -> EnsembleDescriptor:
        spec = self.spec(cluster)
        if role == BROKER:
            return self._brokers(cluster, spec)
        if role == COORDINATION:
            return self._zookeeper(cluster, spec)
        raise ValueError(f"Unknown ensemble role: {role}")

    def _brokers(self, cluster: Resource, spec: KafkaSpec) -> EnsembleDescriptor:
        kafka = spec.kafka
        version = protocol_version(kafka.version)
        storage = parse_storage(kafka.storage)

        config = {
            "zookeeper.connect": f"{zookeeper_name(cluster.name)}-client:2181",
            "listeners": ",".join(
                [f"REPLICATION-{REPLICATION_PORT}://0.0.0.0:{REPLICATION_PORT}"]
                + [f"{l.name.upper()}-{l.port}://0.0.0.0:{l.port}" for l in kafka.listeners]
            ),
            "log.dirs": ",".join(_log_dirs(storage)),
        }
        config.update({k: _config_value(v) for k, v in kafka.config.items()})

        env = heap_options(
            {"KAFKA_VERSION": kafka.version},
            KAFKA_DYNAMIC_HEAP_PERCENTAGE,
            KAFKA_DYNAMIC_HEAP_MAX,
            kafka.jvm_options,
            kafka.resources,
        )
        listeners = [l.model_dump(by_alias=True) for l in kafka.listeners]
        annotations = kafka.pod_annotations

        return EnsembleDescriptor(
            name=kafka_name(cluster.name),
            role=BROKER,
            replicas=kafka.replicas,
            revision=revision_hash(
                {
                    "config": config,
                    "env": env,
                    "annotations": annotations,
                    "listeners": listeners,
                    "protocol": version,
                    "volumes": _volume_ids(storage),
                }
            ),
            storage=dump_storage(storage),
            template_annotations=annotations,
            config=config,
            env=env,
            listeners=listeners,
        )

    def _zookeeper(self, cluster: Resource, spec: KafkaSpec) -> EnsembleDescriptor:
        zookeeper = spec.zookeeper
        storage = parse_storage(zookeeper.storage)
        config = dict(ZOOKEEPER_DEFAULT_CONFIG)
        config.update({k: _config_value(v) for k, v in zookeeper.config.items()})
        env = heap_options(
            {},
            ZOOKEEPER_DYNAMIC_HEAP_PERCENTAGE,
            ZOOKEEPER_DYNAMIC_HEAP_MAX,
            zookeeper.jvm_options,
            zookeeper.resources,
        )
        annotations = zookeeper.pod_annotations
        return EnsembleDescriptor(
            name=zookeeper_name(cluster.name),
            role=COORDINATION,
            replicas=zookeeper.replicas,
            revision=revision_hash({"config": config, "env": env, "annotations": annotations}),
            storage=dump_storage(storage),
            template_annotations=annotations,
            config=config,
            env=env,
        )


def _volume_ids(storage) -> list[int]:
    if isinstance(storage, JbodStorage):
        return sorted(v.id for v in storage.volumes if v.id is not None)
    return []


def _log_dirs(storage) -> list[str]:
    if isinstance(storage, JbodStorage):
        return [f"/var/lib/kafka/data-{v.id}/kafka-log${{HOSTNAME##*-}}" for v in storage.volumes]
    return ["/var/lib/kafka/data/kafka-log${HOSTNAME##*-}"]
