"""PEM text handling for certificates and keys.

Stored files are treated as untrusted text: certificates are cut out of
whatever surrounds them, keys are trimmed, and validity is read back from the
encoded certificate rather than from the values that went into it.
"""

import hashlib
import re

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import CertificateIssuerPrivateKeyTypes

from vpnca.ca.errors import CertificateExtractionError

_CERTIFICATE_PATTERN = re.compile(
    r"-----BEGIN CERTIFICATE-----.*?-----END CERTIFICATE-----",
    re.DOTALL,
)


def extract_certificate(text: str) -> str:
    """Return the first certificate block in text, without surrounding noise.

    Raises:
        CertificateExtractionError: If text holds no complete certificate block.
    """
    match = _CERTIFICATE_PATTERN.search(text)
    if match is None:
        raise CertificateExtractionError("unable to extract certificate")
    return match.group(0)


def extract_private_key(text: str) -> str:
    """Return the key PEM with surrounding whitespace stripped."""
    key_pem = text.strip()
    if not key_pem.startswith("-----BEGIN") or "PRIVATE KEY-----" not in key_pem:
        raise CertificateExtractionError("unable to extract private key")
    return key_pem


def load_certificate(cert_pem: str) -> x509.Certificate:
    """Parse a PEM certificate.

    Raises:
        CertificateExtractionError: If the block is not a valid certificate.
    """
    try:
        return x509.load_pem_x509_certificate(cert_pem.encode("utf-8"))
    except ValueError as e:
        raise CertificateExtractionError(f"unable to parse certificate: {e}") from e


def certificate_to_pem(certificate: x509.Certificate) -> str:
    return certificate.public_bytes(serialization.Encoding.PEM).decode("utf-8")


def private_key_to_pem(private_key: CertificateIssuerPrivateKeyTypes) -> str:
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


def parse_validity(cert_pem: str) -> tuple[int, int]:
    """Return (not_before, not_after) of a certificate as epoch seconds."""
    cert = load_certificate(cert_pem)
    return (
        int(cert.not_valid_before_utc.timestamp()),
        int(cert.not_valid_after_utc.timestamp()),
    )


def format_serial(certificate: x509.Certificate) -> str:
    """Lowercase hex serial number."""
    return format(certificate.serial_number, "x")


def compute_thumbprint(cert_pem: str) -> str:
    """Compute SHA-256 thumbprint of a certificate.

    Args:
        cert_pem: Certificate in PEM format.

    Returns:
        Lowercase hexadecimal SHA-256 thumbprint.
    """
    der_bytes = load_certificate(cert_pem).public_bytes(serialization.Encoding.DER)
    return hashlib.sha256(der_bytes).hexdigest().lower()
