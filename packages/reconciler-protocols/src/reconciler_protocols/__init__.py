"""
Protocol definitions for the Kafka cluster reconciler.

This package provides the narrow collaborator contracts the reconciliation
engine consumes. It has zero dependencies on other reconciler-* packages.

Key protocols:
- ResourceStoreProtocol: Interface standing in for the Kubernetes API
- ModelBuilderProtocol: Interface producing desired ensemble descriptors
- IdentitySignerProtocol: Interface issuing per-instance certificates

Key types:
- Resource: Generic stored object keyed by kind/namespace/name
- EnsembleDescriptor: Concrete shape of one ensemble
- InstanceRecord: Restart-relevant snapshot of one pod
- InstanceIdentity / IssuedIdentity: Signer input and output
"""

from reconciler_protocols.builder import IdentitySignerProtocol, ModelBuilderProtocol
from reconciler_protocols.store import ResourceStoreProtocol
from reconciler_protocols.types import (
    EnsembleDescriptor,
    InstanceIdentity,
    InstanceIndex,
    InstanceRecord,
    IssuedIdentity,
    Resource,
    ResourceKey,
)

__all__ = [
    # Protocols
    "ResourceStoreProtocol",
    "ModelBuilderProtocol",
    "IdentitySignerProtocol",
    # Data types
    "Resource",
    "ResourceKey",
    "EnsembleDescriptor",
    "InstanceIndex",
    "InstanceRecord",
    "InstanceIdentity",
    "IssuedIdentity",
]
