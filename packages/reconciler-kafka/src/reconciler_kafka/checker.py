"""
Kafka spec checker.

KafkaSpecChecker looks for configurations that are accepted but risky and
reports each one as a Warning condition. The checks never fail a
reconciliation.
"""

from reconciler_core.reconcile.status import Condition, warning
from reconciler_core.storage.types import EphemeralStorage, JbodStorage, parse_storage

from reconciler_kafka.types import DEFAULT_KAFKA_VERSION, KAFKA_VERSIONS, KafkaSpec

LOG_MESSAGE_FORMAT_VERSION = "log.message.format.version"
INTER_BROKER_PROTOCOL_VERSION = "inter.broker.protocol.version"
DEFAULT_REPLICATION_FACTOR = "default.replication.factor"
MIN_INSYNC_REPLICAS = "min.insync.replicas"


def _is_ephemeral(storage_data: dict) -> bool:
    storage = parse_storage(storage_data)
    if isinstance(storage, JbodStorage):
        return all(isinstance(v, EphemeralStorage) for v in storage.volumes)
    return isinstance(storage, EphemeralStorage)


class KafkaSpecChecker:
    """
    Produces the warning conditions of a Kafka spec.

    Example:
        conditions = KafkaSpecChecker(spec).run()
    """

    def __init__(self, spec: KafkaSpec) -> None:
        self.spec = spec

    def run(self) -> list[Condition]:
        warnings: list[Condition] = []
        self.check_kafka_storage(warnings)
        self.check_zookeeper_storage(warnings)
        self.check_zookeeper_replicas(warnings)
        self.check_log_message_format_version(warnings)
        self.check_inter_broker_protocol_version(warnings)
        self.check_replication(warnings)
        return warnings

    def check_kafka_storage(self, warnings: list[Condition]) -> None:
        kafka = self.spec.kafka
        if kafka.replicas == 1 and _is_ephemeral(kafka.storage):
            warnings.append(
                warning(
                    "KafkaStorage",
                    "A Kafka cluster with a single replica and ephemeral storage will lose "
                    "topic messages after any restart or rolling update.",
                )
            )

    def check_zookeeper_storage(self, warnings: list[Condition]) -> None:
        zookeeper = self.spec.zookeeper
        if zookeeper.replicas == 1 and _is_ephemeral(zookeeper.storage):
            warnings.append(
                warning(
                    "ZooKeeperStorage",
                    "A ZooKeeper cluster with a single replica and ephemeral storage will be in "
                    "a defective state after any restart or rolling update. It is recommended "
                    "that a minimum of three replicas are used.",
                )
            )

    def check_zookeeper_replicas(self, warnings: list[Condition]) -> None:
        replicas = self.spec.zookeeper.replicas
        if replicas == 2:
            warnings.append(
                warning(
                    "ZooKeeperReplicas",
                    "Running ZooKeeper with two nodes is not advisable as both replicas will be "
                    "needed to avoid downtime. It is recommended that a minimum of three "
                    "replicas are used.",
                )
            )
        elif replicas % 2 == 0:
            warnings.append(
                warning(
                    "ZooKeeperReplicas",
                    "Running ZooKeeper with an odd number of replicas is recommended.",
                )
            )

    def check_log_message_format_version(self, warnings: list[Condition]) -> None:
        self._check_version(warnings, LOG_MESSAGE_FORMAT_VERSION, "KafkaLogMessageFormatVersion")

    def check_inter_broker_protocol_version(self, warnings: list[Condition]) -> None:
        self._check_version(warnings, INTER_BROKER_PROTOCOL_VERSION, "KafkaInterBrokerProtocolVersion")

    def _check_version(self, warnings: list[Condition], key: str, reason: str) -> None:
        configured = self.spec.kafka.config.get(key)
        if configured is None:
            return
        expected = KAFKA_VERSIONS.get(self.spec.kafka.version or DEFAULT_KAFKA_VERSION)
        configured = str(configured)
        if configured in (expected, f"{expected}-IV0"):
            return
        warnings.append(
            warning(
                reason,
                f"{key} does not match the Kafka cluster version, which suggests that an "
                "upgrade is incomplete.",
            )
        )

    def check_replication(self, warnings: list[Condition]) -> None:
        kafka = self.spec.kafka
        if kafka.replicas <= 1:
            return
        for key, reason in (
            (DEFAULT_REPLICATION_FACTOR, "KafkaDefaultReplicationFactor"),
            (MIN_INSYNC_REPLICAS, "KafkaMinInsyncReplicas"),
        ):
            if key not in kafka.config:
                warnings.append(
                    warning(
                        reason,
                        f"{key} option is not configured. It defaults to 1 which does not "
                        "guarantee reliability and availability. You should configure this "
                        "option in .spec.kafka.config.",
                    )
                )
