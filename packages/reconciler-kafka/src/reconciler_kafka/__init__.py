"""
Kafka implementation of the cluster reconciler.

This package provides the Kafka-specific capabilities plugged into the
reconciler-core pipeline. It includes:

- KafkaCluster: ClusterCapability for the Kafka custom resource
- CoordinationEnsemble / BrokerEnsemble: per-ensemble capabilities
- KafkaModelBuilder: Kafka resource to EnsembleDescriptor
- KafkaSpecChecker: Warning conditions for risky configurations
- Heap options and ZooKeeper quorum configuration helpers
"""

from reconciler_kafka.brokers import BrokerEnsemble, PartitionInspector
from reconciler_kafka.builder import KafkaModelBuilder, kafka_name, zookeeper_name
from reconciler_kafka.checker import KafkaSpecChecker
from reconciler_kafka.cluster import KafkaCluster
from reconciler_kafka.factory import create_kafka_reconciler
from reconciler_kafka.jvm import heap_options
from reconciler_kafka.types import KafkaSpec, parse_kafka_spec
from reconciler_kafka.zookeeper import (
    CoordinationEnsemble,
    generate_quorum_config,
    parse_quorum_config,
    quorum_config_differs,
    quorum_config_lines,
)

__all__ = [
    # Capabilities
    "KafkaCluster",
    "CoordinationEnsemble",
    "BrokerEnsemble",
    "PartitionInspector",
    "create_kafka_reconciler",
    # Model
    "KafkaModelBuilder",
    "KafkaSpec",
    "KafkaSpecChecker",
    "kafka_name",
    "zookeeper_name",
    "parse_kafka_spec",
    "heap_options",
    # Quorum
    "generate_quorum_config",
    "parse_quorum_config",
    "quorum_config_differs",
    "quorum_config_lines",
]
