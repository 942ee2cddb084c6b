"""
Factory function for creating a Kafka reconciler.

This module provides a factory function for CLI integration, allowing the
reconciler-core CLI to create Kafka-specific instances without direct
imports from reconciler-kafka.
"""

from reconciler_protocols import ResourceStoreProtocol

from reconciler_core.config import OperatorSettings
from reconciler_core.reconcile.reconciler import Reconciler

from reconciler_kafka.brokers import PartitionInspector
from reconciler_kafka.cluster import KafkaCluster


def create_kafka_reconciler(
    store: ResourceStoreProtocol,
    settings: OperatorSettings | None = None,
    partition_inspector: PartitionInspector | None = None,
) -> Reconciler:
    """
    Create a Reconciler for Kafka custom resources.

    Args:
        store: Resource store (already wrapped with timeouts for real clusters)
        settings: Operator settings. Defaults are read from the environment.
        partition_inspector: Guards broker scale-down. None skips the check.

    Returns:
        Reconciler ready for reconcile() calls or a ClusterOperator.

    Example:
        reconciler = create_kafka_reconciler(InMemoryResourceStore())
        result = await reconciler.reconcile(
            Reconciliation("cli", "Kafka", "kafka", "my-cluster")
        )
    """
    return Reconciler(
        store,
        KafkaCluster(partition_inspector=partition_inspector),
        settings=settings or OperatorSettings(),
    )
