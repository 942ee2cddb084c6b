"""ClusterCapability of the Kafka custom resource kind."""

from reconciler_protocols import Resource

from reconciler_core.ca.types import CLUSTER_CA, CaSettings
from reconciler_core.reconcile.ensemble import EnsembleCapability
from reconciler_core.reconcile.status import Condition

from reconciler_kafka.brokers import KAFKA_KIND, BrokerEnsemble, PartitionInspector
from reconciler_kafka.builder import KafkaModelBuilder
from reconciler_kafka.checker import KafkaSpecChecker
from reconciler_kafka.types import parse_kafka_spec
from reconciler_kafka.zookeeper import CoordinationEnsemble


class KafkaCluster:
    """
    A Kafka cluster: a ZooKeeper ensemble followed by a broker ensemble.

    Example:
        reconciler = Reconciler(store, KafkaCluster())
    """

    kind = KAFKA_KIND
    creating_message = "Kafka cluster is being deployed"

    def __init__(
        self,
        builder: KafkaModelBuilder | None = None,
        partition_inspector: PartitionInspector | None = None,
    ) -> None:
        builder = builder or KafkaModelBuilder()
        self.zookeeper = CoordinationEnsemble(builder=builder)
        self.brokers = BrokerEnsemble(builder=builder, partition_inspector=partition_inspector)
        self.ensembles: list[EnsembleCapability] = [self.zookeeper, self.brokers]

    def ca_settings(self, cluster: Resource, ca_name: str) -> CaSettings:
        spec = parse_kafka_spec(cluster.spec)
        ca = spec.cluster_ca if ca_name == CLUSTER_CA else spec.clients_ca
        return ca.settings(ca_name)

    def warnings(self, cluster: Resource) -> list[Condition]:
        return KafkaSpecChecker(parse_kafka_spec(cluster.spec)).run()
