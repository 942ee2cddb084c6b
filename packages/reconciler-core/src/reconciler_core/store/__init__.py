"""
Resource store implementations.

Exports:
    InMemoryResourceStore: Dict-backed store for tests and demos
    KubernetesResourceStore: Store over the Kubernetes REST API (httpx)
    TimeoutResourceStore: Wrapper bounding every call with a timeout
    create_store: Build the operator's store from settings
"""

from reconciler_core.store.factory import create_store
from reconciler_core.store.kube import KubernetesResourceStore
from reconciler_core.store.memory import InMemoryResourceStore
from reconciler_core.store.timeouts import TimeoutResourceStore

__all__ = [
    "InMemoryResourceStore",
    "KubernetesResourceStore",
    "TimeoutResourceStore",
    "create_store",
]
