"""
X.509 helpers built on the cryptography package.

Everything crossing this module boundary is PEM bytes, so CA values and
issued identities stay plain data that can be stored in secrets.
"""

from datetime import datetime, timedelta

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

ORGANIZATION = "io.strimzi"
DEFAULT_KEY_SIZE = 2048


def generate_private_key(key_size: int = DEFAULT_KEY_SIZE) -> bytes:
    """Generate an RSA private key, PEM-encoded (PKCS8, unencrypted)."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def load_private_key(pem: bytes) -> rsa.RSAPrivateKey:
    key = serialization.load_pem_private_key(pem, password=None)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ValueError("Only RSA private keys are supported")
    return key


def load_certificate(pem: bytes) -> x509.Certificate:
    return x509.load_pem_x509_certificate(pem)


def _name(common_name: str) -> x509.Name:
    return x509.Name(
        [
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, ORGANIZATION),
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
        ]
    )


def self_signed_ca_certificate(
    private_key_pem: bytes,
    common_name: str,
    validity_days: int,
    now: datetime,
) -> bytes:
    """
    Build a self-signed CA certificate for an existing key.

    Args:
        private_key_pem: Key that both signs and is certified.
        common_name: Subject CN (carries the key generation, e.g. "cluster-ca v1").
        validity_days: Lifetime from ``now``.
        now: Start of validity (timezone-aware).

    Returns:
        PEM-encoded certificate.
    """
    key = load_private_key(private_key_pem)
    subject = _name(common_name)
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=validity_days))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=False,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM)


def signed_certificate(
    ca_certificate_pem: bytes,
    ca_private_key_pem: bytes,
    private_key_pem: bytes,
    common_name: str,
    dns_names: list[str],
    validity_days: int,
    now: datetime,
) -> bytes:
    """Build a leaf certificate for ``private_key_pem`` signed by the CA."""
    ca_cert = load_certificate(ca_certificate_pem)
    ca_key = load_private_key(ca_private_key_pem)
    key = load_private_key(private_key_pem)
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(common_name))
        .issuer_name(ca_cert.subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=validity_days))
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
    )
    if dns_names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(name) for name in dns_names]),
            critical=False,
        )
    cert = builder.sign(ca_key, hashes.SHA256())
    return cert.public_bytes(serialization.Encoding.PEM)


def not_after(certificate_pem: bytes) -> datetime:
    """Expiry of a PEM certificate as an aware UTC datetime."""
    return load_certificate(certificate_pem).not_valid_after_utc


def common_name(certificate_pem: bytes) -> str:
    attributes = load_certificate(certificate_pem).subject.get_attributes_for_oid(
        NameOID.COMMON_NAME
    )
    return str(attributes[0].value) if attributes else ""


def dns_names(certificate_pem: bytes) -> list[str]:
    """Subject alternative DNS names of a PEM certificate."""
    cert = load_certificate(certificate_pem)
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return []
    return san.value.get_values_for_type(x509.DNSName)


def is_signed_by(certificate_pem: bytes, ca_certificate_pem: bytes) -> bool:
    """True if ``certificate_pem`` was issued by the given CA certificate."""
    cert = load_certificate(certificate_pem)
    ca_cert = load_certificate(ca_certificate_pem)
    try:
        cert.verify_directly_issued_by(ca_cert)
    except (ValueError, TypeError, InvalidSignature):
        return False
    return True
