"""
Per-instance identity issuance.

IdentityIssuer decides which instances need a fresh certificate and asks
the IdentitySigner for it; everything else is copied over unchanged. A
certificate is (re)issued when:
- the instance has none yet (new instance, scale-up)
- the CA certificate generation it was signed under is not the current one
- its DNS names no longer match what the instance needs
- it is inside the CA renewal window
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from reconciler_protocols import (
    IdentitySignerProtocol,
    InstanceIdentity,
    IssuedIdentity,
    Resource,
)

from reconciler_core.ca import certs
from reconciler_core.ca.secrets import ANNO_CA_CERT_GENERATION, SECRET_KIND, int_annotation
from reconciler_core.ca.types import CertificateAuthority

logger = logging.getLogger(__name__)


@dataclass
class IdentityIssuer:
    """
    Copies or regenerates instance certificates for an ensemble.

    Attributes:
        signer: Collaborator that actually signs certificates.
    """

    signer: IdentitySignerProtocol

    def issue(
        self,
        ca: CertificateAuthority,
        identities: list[InstanceIdentity],
        existing: dict[str, IssuedIdentity],
        now: datetime,
    ) -> dict[str, IssuedIdentity]:
        """
        Produce one IssuedIdentity per requested identity.

        Identities of instances no longer requested are dropped.

        Args:
            ca: Current CA (after this reconciliation's CA phase).
            identities: Instances that must hold a certificate.
            existing: Identities loaded from the ensemble's secret.
            now: Current time.

        Returns:
            Mapping of instance name to issued identity.
        """
        issued: dict[str, IssuedIdentity] = {}
        for identity in identities:
            current = existing.get(identity.name)
            reason = self._regeneration_reason(ca, identity, current, now)
            if reason is None:
                issued[identity.name] = current
                continue
            logger.debug(f"Certificate for {identity.name} needs to be regenerated: {reason}")
            issued[identity.name] = self.signer.sign(ca, identity, ca.validity_days, now)
        return issued

    @staticmethod
    def _regeneration_reason(
        ca: CertificateAuthority,
        identity: InstanceIdentity,
        current: IssuedIdentity | None,
        now: datetime,
    ) -> str | None:
        if current is None:
            return "certificate does not exist"
        if current.ca_cert_generation != ca.cert_generation or ca.renewed:
            return "CA certificate was renewed"
        if sorted(certs.dns_names(current.certificate)) != sorted(identity.dns_names):
            return "DNS names changed"
        if now > certs.not_after(current.certificate) - timedelta(days=ca.renewal_days):
            return "certificate is expiring"
        return None


def identities_from_secret(secret: Resource | None) -> dict[str, IssuedIdentity]:
    """Load issued identities from an ensemble certificate secret."""
    if secret is None:
        return {}
    generation = int_annotation(secret, ANNO_CA_CERT_GENERATION)
    identities = {}
    for key, value in secret.data.items():
        if not key.endswith(".crt"):
            continue
        name = key[: -len(".crt")]
        private_key = secret.data.get(f"{name}.key")
        if private_key is None:
            continue
        identities[name] = IssuedIdentity(
            name=name,
            certificate=value,
            private_key=private_key,
            ca_cert_generation=generation,
        )
    return identities


def identities_to_secret(
    identities: dict[str, IssuedIdentity],
    ca: CertificateAuthority,
    name: str,
    namespace: str,
    labels: dict[str, str] | None = None,
    secret: Resource | None = None,
) -> Resource:
    """Render issued identities into the ensemble certificate secret."""
    secret = secret or Resource(kind=SECRET_KIND, namespace=namespace, name=name)
    secret.labels = {**secret.labels, **(labels or {})}
    secret.annotations = {**secret.annotations, ANNO_CA_CERT_GENERATION: str(ca.cert_generation)}
    data: dict[str, bytes] = {}
    for identity_name in sorted(identities):
        identity = identities[identity_name]
        data[f"{identity_name}.crt"] = identity.certificate
        data[f"{identity_name}.key"] = identity.private_key
    secret.data = data
    return secret
