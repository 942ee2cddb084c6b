"""
Model builder and identity signer protocol definitions.

Both collaborators are consumed, not owned, by the reconciler: the model
builder turns a desired custom resource into concrete ensemble descriptors,
and the identity signer turns a CA plus an instance identity into a signed
certificate/key pair. The reconciler only decides when to call them.
"""

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from reconciler_protocols.types import (
    EnsembleDescriptor,
    InstanceIdentity,
    IssuedIdentity,
    Resource,
)


@runtime_checkable
class ModelBuilderProtocol(Protocol):
    """
    Protocol for model builders.

    A model builder never touches the store. It is called once per phase
    that needs a fresh desired-state snapshot.
    """

    def build(self, cluster: Resource, role: str) -> EnsembleDescriptor:
        """
        Build the desired descriptor for one ensemble of a cluster.

        Args:
            cluster: The cluster custom resource.
            role: Ensemble role ("coordination" or "broker").

        Returns:
            EnsembleDescriptor for the desired replica count.

        Raises:
            InvalidResourceError: If the custom resource is malformed.
        """
        ...


@runtime_checkable
class IdentitySignerProtocol(Protocol):
    """Protocol for identity signers."""

    def sign(
        self,
        ca: Any,
        identity: InstanceIdentity,
        validity_days: int,
        now: datetime,
    ) -> IssuedIdentity:
        """
        Issue a certificate for ``identity`` signed by ``ca``.

        Args:
            ca: CertificateAuthority whose key signs the certificate.
            identity: Instance name and DNS names to certify.
            validity_days: Lifetime of the issued certificate.
            now: Issue time.

        Returns:
            IssuedIdentity tagged with the CA's current cert generation.
        """
        ...
