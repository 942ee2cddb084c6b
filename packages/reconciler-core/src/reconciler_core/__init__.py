"""
Reconciler Core Library

Generic reconciliation engine for clustered workloads on Kubernetes.
This package provides:

- Reconciler: Phase pipeline bringing one cluster to its desired state
- ClusterOperator / ReconcilerPool: Periodic resync with bounded concurrency
- CertificateAuthorityManager: CA lifecycle (create, renew, replace)
- diff_storage: Storage change classification
- Resource stores: in-memory, Kubernetes (httpx) and timeout wrapper
- CLI infrastructure: Typer-based command structure
"""

__version__ = "0.1.0"

# Re-export public types for convenient imports
from reconciler_core.ca import CertificateAuthorityManager, IdentityIssuer, X509IdentitySigner
from reconciler_core.config import OperatorSettings
from reconciler_core.exceptions import (
    ConflictError,
    InvalidResourceError,
    OperationTimeoutError,
    PhaseFailedError,
    ResourceNotFoundError,
    TransientError,
)
from reconciler_core.loop import ClusterOperator
from reconciler_core.reconcile import Reconciler, Reconciliation, ReconciliationResult
from reconciler_core.retry import RetryConfig
from reconciler_core.storage import diff_storage
from reconciler_core.store import InMemoryResourceStore, create_store
from reconciler_core.workers import ReconcilerPool

__all__ = [
    "__version__",
    # Engine
    "Reconciler",
    "Reconciliation",
    "ReconciliationResult",
    "ClusterOperator",
    "ReconcilerPool",
    "RetryConfig",
    "OperatorSettings",
    # CA
    "CertificateAuthorityManager",
    "IdentityIssuer",
    "X509IdentitySigner",
    # Storage
    "diff_storage",
    # Stores
    "InMemoryResourceStore",
    "create_store",
    # Errors
    "InvalidResourceError",
    "TransientError",
    "ConflictError",
    "OperationTimeoutError",
    "ResourceNotFoundError",
    "PhaseFailedError",
]
