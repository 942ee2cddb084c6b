"""
Reconciliation engine.

Exports:
    Reconciler: Runs one reconciliation attempt of a custom resource
    ReconciliationResult: Outcome of an attempt
    Reconciliation: Identity of an attempt
    Phase, PipelineDriver: Ordered phase runner
    EnsembleCapability, ClusterCapability: Per-kind plug-in interfaces
    COORDINATION, BROKER: Ensemble roles
"""

from reconciler_core.reconcile.driver import Phase, PipelineDriver
from reconciler_core.reconcile.ensemble import (
    BROKER,
    COORDINATION,
    ClusterCapability,
    EnsembleCapability,
)
from reconciler_core.reconcile.reconciler import Reconciler, ReconciliationResult
from reconciler_core.reconcile.state import Reconciliation, ReconciliationState

__all__ = [
    "BROKER",
    "COORDINATION",
    "ClusterCapability",
    "EnsembleCapability",
    "Phase",
    "PipelineDriver",
    "Reconciler",
    "Reconciliation",
    "ReconciliationResult",
    "ReconciliationState",
]
