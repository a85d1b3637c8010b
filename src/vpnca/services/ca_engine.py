"""CA engine: issues server and client certificates against a PKI store."""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from opentelemetry import trace

from shared.config import Settings
from shared.config import settings as default_settings
from vpnca.ca.certificate_generator import CertificateGenerator, CertificateProfile
from vpnca.ca.errors import (
    CAError,
    DuplicateSubjectError,
    InvalidCommonNameError,
    InvalidExpiryError,
)
from vpnca.ca.key_manager import KeyManager
from vpnca.ca.pem import (
    compute_thumbprint,
    extract_certificate,
    extract_private_key,
    format_serial,
    load_certificate,
    parse_validity,
)
from vpnca.ca.pki_store import PKIStore, validate_common_name
from vpnca.metrics import ca_metrics

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass(frozen=True)
class CertificateBundle:
    """An issued certificate with its key and validity in epoch seconds."""

    common_name: str
    certificate: str
    private_key: str
    valid_from: int
    valid_to: int
    serial_number: str
    thumbprint: str

    @classmethod
    def from_pem(cls, common_name: str, cert_pem: str, key_pem: str) -> "CertificateBundle":
        """Build a bundle, reading validity from the certificate itself."""
        valid_from, valid_to = parse_validity(cert_pem)
        return cls(
            common_name=common_name,
            certificate=cert_pem,
            private_key=key_pem,
            valid_from=valid_from,
            valid_to=valid_to,
            serial_number=format_serial(load_certificate(cert_pem)),
            thumbprint=compute_thumbprint(cert_pem),
        )

    def to_dict(self) -> dict[str, str | int]:
        return {
            "certificate": self.certificate,
            "private_key": self.private_key,
            "valid_from": self.valid_from,
            "valid_to": self.valid_to,
        }


class CAEngine:
    """Issues certificates for unique common names.

    Invariants:
    - a common name is issued at most once; the check happens before any key
      is generated, and the store's commit rejects a concurrent duplicate
    - client certificates must expire strictly after the time of the call
    - reported validity comes from the signed certificate, not the request
    """

    def __init__(self, store: PKIStore, settings: Settings | None = None) -> None:
        self._store = store
        self._settings = settings or default_settings
        self.key_manager = KeyManager(store, self._settings)
        self._generator: CertificateGenerator | None = None

    @classmethod
    def initialize(
        cls,
        ca_dir: str | Path,
        data_dir: str | Path,
        settings: Settings | None = None,
    ) -> "CAEngine":
        """Open the store at ca_dir/data_dir, creating the CA root if needed.

        Safe to call repeatedly: an existing CA root is loaded, not replaced.
        """
        with tracer.start_as_current_span("CAEngine.initialize"):
            engine = cls(PKIStore(ca_dir, data_dir), settings)
            engine.key_manager.load_or_generate()
            return engine

    @property
    def store(self) -> PKIStore:
        return self._store

    @property
    def generator(self) -> CertificateGenerator:
        """Get certificate generator (lazy initialization)."""
        if self._generator is None:
            self._generator = CertificateGenerator(self.key_manager.key_pair, self._settings)
        return self._generator

    def ca_cert(self) -> str:
        """Return the CA root certificate PEM."""
        return self._store.read_ca_certificate()

    def issue_server_certificate(self, common_name: str) -> CertificateBundle:
        """Issue a server certificate valid for SERVER_CERT_VALIDITY_DAYS.

        Raises:
            InvalidCommonNameError: If common_name is not filesystem-safe.
            DuplicateSubjectError: If common_name was already issued.
            CertificateGenerationError: If key generation or signing fails.
            StoreIOError: If the certificate cannot be persisted.
        """
        profile = CertificateProfile.SERVER
        with tracer.start_as_current_span("CAEngine.issue_server_certificate") as span:
            span.set_attribute("common_name", common_name)

            self._check_subject(common_name, profile)

            not_before = datetime.now(timezone.utc)
            not_after = not_before + timedelta(days=self._settings.SERVER_CERT_VALIDITY_DAYS)
            return self._issue(common_name, profile, not_before, not_after)

    def issue_client_certificate(self, common_name: str, expires_at: datetime) -> CertificateBundle:
        """Issue a client certificate valid until expires_at.

        Naive datetimes are taken to be UTC.

        Raises:
            InvalidCommonNameError: If common_name is not filesystem-safe.
            DuplicateSubjectError: If common_name was already issued.
            InvalidExpiryError: If expires_at is not after the current time.
            CertificateGenerationError: If key generation or signing fails.
            StoreIOError: If the certificate cannot be persisted.
        """
        profile = CertificateProfile.CLIENT
        with tracer.start_as_current_span("CAEngine.issue_client_certificate") as span:
            span.set_attribute("common_name", common_name)

            self._check_subject(common_name, profile)

            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            # Certificates carry whole seconds, so compare at that precision
            expires_at = expires_at.replace(microsecond=0)
            span.set_attribute("expires_at", expires_at.isoformat())

            now = datetime.now(timezone.utc).replace(microsecond=0)
            if expires_at <= now:
                ca_metrics.record_issuance_rejected(profile.value, "invalid_expiry")
                logger.warning(
                    "issuance_rejected",
                    extra={
                        "common_name": common_name,
                        "reason": "invalid_expiry",
                        "expires_at": expires_at.isoformat(),
                    },
                )
                raise InvalidExpiryError("can not issue certificates that expire in the past")

            return self._issue(common_name, profile, now, expires_at)

    def get_issued_certificate(self, common_name: str) -> CertificateBundle:
        """Read back a previously issued certificate and key."""
        cert_pem, key_pem = self._store.read_issued(common_name)
        return CertificateBundle.from_pem(common_name, cert_pem, key_pem)

    def list_issued(self) -> list[str]:
        return self._store.list_issued()

    def _check_subject(self, common_name: str, profile: CertificateProfile) -> None:
        try:
            validate_common_name(common_name)
        except InvalidCommonNameError:
            ca_metrics.record_issuance_rejected(profile.value, "invalid_common_name")
            raise

        if self._store.has_issued(common_name):
            ca_metrics.record_issuance_rejected(profile.value, "duplicate_subject")
            logger.warning(
                "issuance_rejected",
                extra={"common_name": common_name, "reason": "duplicate_subject"},
            )
            raise DuplicateSubjectError(common_name)

    def _issue(
        self,
        common_name: str,
        profile: CertificateProfile,
        not_before: datetime,
        not_after: datetime,
    ) -> CertificateBundle:
        start_time = time.time()

        try:
            generated = self.generator.generate(common_name, profile, not_before, not_after)
            self._store.store_issued(
                common_name, generated.certificate_pem, generated.private_key_pem
            )
        except DuplicateSubjectError:
            # Lost a race with a concurrent issuance for the same name
            ca_metrics.record_issuance_rejected(profile.value, "duplicate_subject")
            logger.warning(
                "issuance_rejected",
                extra={"common_name": common_name, "reason": "duplicate_subject"},
            )
            raise
        except CAError:
            ca_metrics.record_issuance_failed(profile.value)
            raise

        bundle = CertificateBundle.from_pem(
            common_name,
            extract_certificate(generated.certificate_pem),
            extract_private_key(generated.private_key_pem),
        )

        duration = time.time() - start_time
        ca_metrics.record_certificate_issued(profile.value, duration)

        logger.info(
            "certificate_issued",
            extra={
                "common_name": common_name,
                "profile": profile.value,
                "serial": bundle.serial_number,
                "valid_to": bundle.valid_to,
                "duration_seconds": duration,
            },
        )
        return bundle
