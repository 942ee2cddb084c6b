"""X.509 identity signer backed by the cryptography package."""

from dataclasses import dataclass
from datetime import datetime

from reconciler_protocols import InstanceIdentity, IssuedIdentity

from reconciler_core.ca import certs
from reconciler_core.ca.types import CertificateAuthority


@dataclass
class X509IdentitySigner:
    """
    Issues RSA leaf certificates signed by a CertificateAuthority.

    Implements IdentitySignerProtocol.
    """

    key_size: int = certs.DEFAULT_KEY_SIZE

    def sign(
        self,
        ca: CertificateAuthority,
        identity: InstanceIdentity,
        validity_days: int,
        now: datetime,
    ) -> IssuedIdentity:
        private_key = certs.generate_private_key(self.key_size)
        certificate = certs.signed_certificate(
            ca.certificate,
            ca.private_key,
            private_key,
            identity.name,
            identity.dns_names,
            validity_days,
            now,
        )
        return IssuedIdentity(
            name=identity.name,
            certificate=certificate,
            private_key=private_key,
            ca_cert_generation=ca.cert_generation,
        )
