"""CA root management: generate on first start, load from the PKI store after.

The CA root is created at most once per store. Re-running initialization
against an existing store loads the stored root and never regenerates it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.asymmetric.types import CertificateIssuerPrivateKeyTypes
from cryptography.x509.oid import NameOID
from opentelemetry import trace

from shared.config import Settings
from shared.config import settings as default_settings
from vpnca.ca.errors import (
    CANotInitializedError,
    CertificateExtractionError,
    CertificateGenerationError,
)
from vpnca.ca.pem import certificate_to_pem, load_certificate, private_key_to_pem
from vpnca.ca.pki_store import PKIStore
from vpnca.metrics import ca_metrics

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

ECDSA_CURVE = ec.SECP384R1()
RSA_PUBLIC_EXPONENT = 65537


def generate_private_key(algorithm: str, key_size: int) -> CertificateIssuerPrivateKeyTypes:
    """Generate an RSA key of key_size bits, or an ECDSA P-384 key."""
    if algorithm.upper() == "ECDSA":
        return ec.generate_private_key(ECDSA_CURVE)
    if algorithm.upper() != "RSA":
        raise CertificateGenerationError(f"Unsupported key algorithm: {algorithm}")
    return rsa.generate_private_key(public_exponent=RSA_PUBLIC_EXPONENT, key_size=key_size)


def algorithm_name(key: CertificateIssuerPrivateKeyTypes) -> str:
    if isinstance(key, rsa.RSAPrivateKey):
        return f"RSA-{key.key_size}"
    elif isinstance(key, ec.EllipticCurvePrivateKey):
        return f"ECDSA-{key.curve.name}"
    return "UNKNOWN"


@dataclass
class CAKeyPair:
    """Holds CA private key and certificate."""

    private_key: CertificateIssuerPrivateKeyTypes
    certificate: x509.Certificate
    storage_type: str  # "generated" or "file"


class KeyManager:
    """Creates the CA root in a PKIStore if absent and keeps it loaded."""

    def __init__(self, store: PKIStore, settings: Settings | None = None) -> None:
        self._store = store
        self._settings = settings or default_settings
        self._key_pair: CAKeyPair | None = None

    @property
    def key_pair(self) -> CAKeyPair:
        """Get loaded CA key pair. Raises if not loaded."""
        if self._key_pair is None:
            raise CANotInitializedError("CA key not loaded. Call load_or_generate() first.")
        return self._key_pair

    def load_or_generate(self) -> CAKeyPair:
        """Initialize the store, generating a CA root only if none exists.

        Returns:
            The CA key pair as read back from the store.

        Raises:
            CertificateGenerationError: If a new root cannot be generated.
            CertificateExtractionError: If the stored root cannot be parsed.
            StoreIOError: If the store cannot be read or written.
        """
        with tracer.start_as_current_span("KeyManager.load_or_generate") as span:
            created = self._store.initialize(self._generate_new)
            key_pair = self._load(storage_type="generated" if created else "file")

            span.set_attribute("storage_type", key_pair.storage_type)
            span.set_attribute("algorithm", algorithm_name(key_pair.private_key))
            span.set_attribute(
                "ca_cert_expires", key_pair.certificate.not_valid_after_utc.isoformat()
            )

            self._key_pair = key_pair
            self._log_loaded(key_pair)
            ca_metrics.record_ca_initialized(created)
            return key_pair

    def _load(self, storage_type: str) -> CAKeyPair:
        certificate = load_certificate(self._store.read_ca_certificate())
        try:
            private_key = serialization.load_pem_private_key(
                self._store.read_ca_key().encode("utf-8"), password=None
            )
        except (ValueError, TypeError) as e:
            logger.error("ca_key_load_failed", extra={"error": str(e)})
            raise CertificateExtractionError(f"Failed to load CA key: {e}") from e

        return CAKeyPair(
            private_key=private_key,  # type: ignore[arg-type]
            certificate=certificate,
            storage_type=storage_type,
        )

    def _generate_new(self) -> tuple[str, str]:
        """Generate a self-signed CA root and return (cert_pem, key_pem)."""
        algorithm = self._settings.CA_KEY_ALGORITHM.upper()
        logger.info(
            "Generating new CA key pair",
            extra={"algorithm": algorithm, "common_name": self._settings.CA_COMMON_NAME},
        )

        try:
            private_key = generate_private_key(algorithm, self._settings.CA_KEY_SIZE)

            now = datetime.now(timezone.utc).replace(microsecond=0)
            subject = issuer = x509.Name(
                [x509.NameAttribute(NameOID.COMMON_NAME, self._settings.CA_COMMON_NAME)]
            )

            certificate = (
                x509.CertificateBuilder()
                .subject_name(subject)
                .issuer_name(issuer)
                .public_key(private_key.public_key())
                .serial_number(x509.random_serial_number())
                .not_valid_before(now)
                .not_valid_after(now + timedelta(days=self._settings.CA_VALIDITY_DAYS))
                .add_extension(
                    x509.BasicConstraints(ca=True, path_length=0),
                    critical=True,
                )
                .add_extension(
                    x509.KeyUsage(
                        digital_signature=False,
                        key_cert_sign=True,
                        crl_sign=True,
                        key_encipherment=False,
                        content_commitment=False,
                        data_encipherment=False,
                        key_agreement=False,
                        encipher_only=False,
                        decipher_only=False,
                    ),
                    critical=True,
                )
                .add_extension(
                    x509.SubjectKeyIdentifier.from_public_key(private_key.public_key()),
                    critical=False,
                )
                .sign(private_key, hashes.SHA256())
            )
        except CertificateGenerationError:
            raise
        except Exception as e:
            logger.error("ca_generation_failed", extra={"error": str(e)})
            raise CertificateGenerationError(f"Failed to generate CA root: {e}") from e

        return certificate_to_pem(certificate), private_key_to_pem(private_key)

    def _log_loaded(self, key_pair: CAKeyPair) -> None:
        logger.info(
            "ca_key_loaded",
            extra={
                "storage_type": key_pair.storage_type,
                "algorithm": algorithm_name(key_pair.private_key),
                "ca_cert_expires": key_pair.certificate.not_valid_after_utc.isoformat(),
            },
        )
