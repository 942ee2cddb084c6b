"""Certificate authority lifecycle: CA values, manager, secrets and issuance."""

from reconciler_core.ca.issuer import IdentityIssuer
from reconciler_core.ca.manager import CertificateAuthorityManager
from reconciler_core.ca.signer import X509IdentitySigner
from reconciler_core.ca.types import (
    CLIENTS_CA,
    CLUSTER_CA,
    CaSettings,
    CertificateAuthority,
    ExpirationPolicy,
    RenewalType,
)

__all__ = [
    "CLIENTS_CA",
    "CLUSTER_CA",
    "CaSettings",
    "CertificateAuthority",
    "CertificateAuthorityManager",
    "ExpirationPolicy",
    "IdentityIssuer",
    "RenewalType",
    "X509IdentitySigner",
]
