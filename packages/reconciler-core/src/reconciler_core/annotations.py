"""
Annotation keys the reconciler reads and writes.

Pods and ensemble descriptors carry these so that the next reconciliation
can tell, from observed state alone, what each instance is running.
"""

REVISION = "strimzi.io/revision"
"""Hash of the pod template the instance was created from."""

CLUSTER_CA_CERT_GENERATION = "strimzi.io/cluster-ca-cert-generation"
"""Cluster CA cert generation the instance trusts."""

CLIENTS_CA_CERT_GENERATION = "strimzi.io/clients-ca-cert-generation"
"""Clients CA cert generation the instance trusts."""

CLUSTER_CA_KEY_GENERATION = "strimzi.io/cluster-ca-key-generation"
"""Cluster CA key generation the instance trusts."""

MANUAL_ROLLING_UPDATE = "strimzi.io/manual-rolling-update"
"""Marker requesting a restart (on a pod) or a full roll (on a descriptor)."""

DELETE_POD_AND_PVC = "strimzi.io/delete-pod-and-pvc"
"""Marker requesting the pod and its claims be deleted and recreated."""

PAUSE_RECONCILIATION = "strimzi.io/pause-reconciliation"
"""Marker on the cluster resource that suspends reconciliation."""

CLUSTER_LABEL = "strimzi.io/cluster"
NAME_LABEL = "strimzi.io/name"
KIND_LABEL = "strimzi.io/kind"


def is_true(annotations: dict[str, str], key: str) -> bool:
    return annotations.get(key, "false").strip().lower() == "true"


def int_or_none(annotations: dict[str, str], key: str) -> int | None:
    value = annotations.get(key)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None
