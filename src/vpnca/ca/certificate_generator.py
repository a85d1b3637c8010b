"""X.509 certificate generation for VPN servers and clients.

Generates leaf certificates signed by the CA root.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID
from opentelemetry import trace

from shared.config import Settings
from shared.config import settings as default_settings
from vpnca.ca.errors import CertificateGenerationError
from vpnca.ca.key_manager import CAKeyPair, generate_private_key
from vpnca.ca.pem import (
    certificate_to_pem,
    compute_thumbprint,
    format_serial,
    private_key_to_pem,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class CertificateProfile(str, Enum):
    """Role an issued certificate is valid for."""

    SERVER = "server"
    CLIENT = "client"


@dataclass
class GeneratedCertificate:
    """Result of certificate generation."""

    common_name: str
    profile: CertificateProfile
    certificate_pem: str
    private_key_pem: str
    serial_number: str
    thumbprint: str
    not_before: datetime
    not_after: datetime


class CertificateGenerator:
    """Generates X.509 certificates signed by the CA.

    Certificate attributes:
    - Subject: CN=<common_name>
    - Validity: as given by the caller, truncated to whole seconds
    - Key: same algorithm and size as the CA root
    - server: Digital Signature + Key Encipherment, serverAuth, SAN DNS:<common_name>
    - client: Digital Signature, clientAuth
    """

    def __init__(self, ca_key_pair: CAKeyPair, settings: Settings | None = None) -> None:
        """Initialize generator with CA key pair.

        Args:
            ca_key_pair: The CA's private key and certificate for signing.
            settings: Key algorithm and size for issued keys.
        """
        self._ca = ca_key_pair
        self._settings = settings or default_settings

    def generate(
        self,
        common_name: str,
        profile: CertificateProfile,
        not_before: datetime,
        not_after: datetime,
    ) -> GeneratedCertificate:
        """Generate a key pair and a certificate for it.

        Args:
            common_name: Subject CN, already validated by the caller.
            profile: Server or client extensions.
            not_before: Start of validity (timezone-aware).
            not_after: End of validity (timezone-aware).

        Returns:
            GeneratedCertificate with validity read back from the signed certificate.

        Raises:
            CertificateGenerationError: If key generation or signing fails.
        """
        with tracer.start_as_current_span("CertificateGenerator.generate") as span:
            span.set_attribute("common_name", common_name)
            span.set_attribute("profile", profile.value)

            try:
                key = generate_private_key(
                    self._settings.CA_KEY_ALGORITHM, self._settings.CA_KEY_SIZE
                )

                builder = (
                    x509.CertificateBuilder()
                    .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)]))
                    .issuer_name(self._ca.certificate.subject)
                    .public_key(key.public_key())
                    .serial_number(x509.random_serial_number())
                    .not_valid_before(not_before.replace(microsecond=0))
                    .not_valid_after(not_after.replace(microsecond=0))
                    .add_extension(
                        x509.BasicConstraints(ca=False, path_length=None),
                        critical=True,
                    )
                    .add_extension(
                        x509.SubjectKeyIdentifier.from_public_key(key.public_key()),
                        critical=False,
                    )
                    .add_extension(
                        x509.AuthorityKeyIdentifier.from_issuer_public_key(
                            self._ca.private_key.public_key()  # type: ignore[arg-type]
                        ),
                        critical=False,
                    )
                )
                builder = self._add_profile_extensions(builder, profile, common_name)

                certificate = builder.sign(self._ca.private_key, hashes.SHA256())
            except CertificateGenerationError:
                raise
            except Exception as e:
                logger.error(
                    "certificate_generation_failed",
                    extra={"common_name": common_name, "profile": profile.value, "error": str(e)},
                )
                raise CertificateGenerationError(f"Failed to generate certificate: {e}") from e

            cert_pem = certificate_to_pem(certificate)
            serial = format_serial(certificate)
            span.set_attribute("serial", serial)

            logger.debug(
                "certificate_signed",
                extra={
                    "common_name": common_name,
                    "profile": profile.value,
                    "serial": serial,
                    "not_after": certificate.not_valid_after_utc.isoformat(),
                },
            )

            return GeneratedCertificate(
                common_name=common_name,
                profile=profile,
                certificate_pem=cert_pem,
                private_key_pem=private_key_to_pem(key),
                serial_number=serial,
                thumbprint=compute_thumbprint(cert_pem),
                not_before=certificate.not_valid_before_utc,
                not_after=certificate.not_valid_after_utc,
            )

    @staticmethod
    def _add_profile_extensions(
        builder: x509.CertificateBuilder,
        profile: CertificateProfile,
        common_name: str,
    ) -> x509.CertificateBuilder:
        server = profile is CertificateProfile.SERVER

        builder = builder.add_extension(
            x509.KeyUsage(
                digital_signature=True,
                key_encipherment=server,
                key_cert_sign=False,
                crl_sign=False,
                content_commitment=False,
                data_encipherment=False,
                key_agreement=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        if not server:
            return builder.add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CLIENT_AUTH]),
                critical=False,
            )

        return builder.add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]),
            critical=False,
        ).add_extension(
            x509.SubjectAlternativeName([x509.DNSName(common_name)]),
            critical=False,
        )
