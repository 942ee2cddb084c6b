"""
Factory for creating reconcilers per custom resource kind.

Uses lazy imports to avoid loading unused kind packages.
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from reconciler_protocols import ResourceStoreProtocol

    from reconciler_core.reconcile.reconciler import Reconciler

# Hardcoded list of available kinds
AVAILABLE_KINDS = ["kafka"]


def create_reconciler(kind: str, store: "ResourceStoreProtocol", **kwargs: Any) -> "Reconciler":
    """
    Create the reconciler of a custom resource kind.

    Args:
        kind: Kind identifier (e.g., "kafka")
        store: Resource store the reconciler acts through
        **kwargs: Kind-specific configuration

    Raises:
        ValueError: If kind is not recognized
    """
    if kind == "kafka":
        # Lazy import to avoid loading the kafka package unless needed
        from reconciler_kafka.factory import create_kafka_reconciler

        return create_kafka_reconciler(store, **kwargs)
    raise ValueError(f"Unknown kind '{kind}'. Available kinds: {', '.join(AVAILABLE_KINDS)}")


def get_available_kinds() -> list[str]:
    """Return list of available kind names."""
    return AVAILABLE_KINDS.copy()
