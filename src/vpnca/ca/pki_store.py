"""File-backed storage for the CA root and issued certificates.

Layout::

    <ca_dir>/root/cert.pem
    <ca_dir>/root/key.pem
    <data_dir>/issued/<common name>/cert.pem
    <data_dir>/issued/<common name>/key.pem

Every record (the CA root or an issued certificate) is a directory holding a
certificate and its key. Records are staged in a temporary sibling directory
and committed with a single rename, so a record is either complete or absent.
Renaming onto an existing record fails, which makes the commit an atomic
create-if-absent across threads and processes.
"""

import errno
import logging
import os
import re
import shutil
import tempfile
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path

from opentelemetry import trace

from vpnca.ca.errors import (
    CANotInitializedError,
    DuplicateSubjectError,
    InvalidCommonNameError,
    IssuedCertificateNotFoundError,
    StoreIOError,
)
from vpnca.ca.pem import extract_certificate, extract_private_key

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

# X.509 upper bound for the CN attribute
MAX_COMMON_NAME_LENGTH = 64

# Staging directories start with "." so they can never collide with a record
_COMMON_NAME_PATTERN = re.compile(r"[A-Za-z0-9_@-][A-Za-z0-9._@-]*")

# Returns (cert_pem, key_pem) for a new CA root
RootFactory = Callable[[], tuple[str, str]]


def validate_common_name(common_name: str) -> None:
    """Reject common names that are not safe to use as a directory name.

    Raises:
        InvalidCommonNameError: If the name is empty, too long, or has
            characters outside ``[A-Za-z0-9._@-]`` or a leading dot.
    """
    if (
        not isinstance(common_name, str)
        or not 0 < len(common_name) <= MAX_COMMON_NAME_LENGTH
        or _COMMON_NAME_PATTERN.fullmatch(common_name) is None
    ):
        raise InvalidCommonNameError(f'invalid common name "{common_name}"')


@contextmanager
def _store_io(action: str, path: Path) -> Iterator[None]:
    """Translate filesystem failures into StoreIOError."""
    try:
        yield
    except OSError as e:
        logger.error(
            "pki_store_io_failed",
            extra={"action": action, "path": str(path), "error": str(e)},
        )
        raise StoreIOError(f"failed to {action} {path}: {e.strerror or e}") from e


class PKIStore:
    """Durable storage of the CA root and issued certificates by common name."""

    ROOT_RECORD = "root"
    ISSUED_DIR = "issued"
    CERT_FILE = "cert.pem"
    KEY_FILE = "key.pem"

    DIR_MODE = 0o700
    FILE_MODE = 0o600

    def __init__(self, ca_dir: str | Path, data_dir: str | Path) -> None:
        self.ca_dir = Path(ca_dir)
        self.data_dir = Path(data_dir)
        self._root_record = self.ca_dir / self.ROOT_RECORD
        self._issued_dir = self.data_dir / self.ISSUED_DIR
        self._init_lock = threading.Lock()

    def initialize(self, root_factory: RootFactory) -> bool:
        """Create the store directories and, if missing, the CA root.

        An existing CA root is never replaced. If another process commits a
        root between the existence check and our commit, ours is discarded.

        Args:
            root_factory: Called only when no CA root exists yet.

        Returns:
            True if a CA root was created, False if one already existed.
        """
        with tracer.start_as_current_span("PKIStore.initialize") as span:
            span.set_attribute("ca_dir", str(self.ca_dir))

            with self._init_lock:
                for directory in (self.ca_dir, self.data_dir, self._issued_dir):
                    with _store_io("create directory", directory):
                        directory.mkdir(mode=self.DIR_MODE, parents=True, exist_ok=True)

                if self.has_ca():
                    logger.debug("ca_root_exists", extra={"ca_dir": str(self.ca_dir)})
                    span.set_attribute("created", False)
                    return False

                cert_pem, key_pem = root_factory()
                created = self._commit_record(self._root_record, cert_pem, key_pem)
                span.set_attribute("created", created)

                if created:
                    logger.info("ca_root_stored", extra={"ca_dir": str(self.ca_dir)})
                else:
                    logger.warning(
                        "ca_root_created_concurrently",
                        extra={"ca_dir": str(self.ca_dir)},
                    )
                return created

    def has_ca(self) -> bool:
        return self._root_record.is_dir()

    def has_issued(self, common_name: str) -> bool:
        validate_common_name(common_name)
        return (self._issued_dir / common_name).is_dir()

    def read_ca_certificate(self) -> str:
        """Return the CA root certificate as a single PEM block."""
        if not self.has_ca():
            raise CANotInitializedError("CA root not initialized")
        return extract_certificate(self._read_text(self._root_record / self.CERT_FILE))

    def read_ca_key(self) -> str:
        if not self.has_ca():
            raise CANotInitializedError("CA root not initialized")
        return extract_private_key(self._read_text(self._root_record / self.KEY_FILE))

    def store_issued(self, common_name: str, cert_pem: str, key_pem: str) -> None:
        """Persist a new certificate and key for common_name.

        Raises:
            DuplicateSubjectError: If a record for common_name already exists.
            StoreIOError: If the record cannot be written.
        """
        with tracer.start_as_current_span("PKIStore.store_issued") as span:
            span.set_attribute("common_name", common_name)
            validate_common_name(common_name)

            if not self._commit_record(self._issued_dir / common_name, cert_pem, key_pem):
                raise DuplicateSubjectError(common_name)

            logger.debug("issued_certificate_stored", extra={"common_name": common_name})

    def read_issued(self, common_name: str) -> tuple[str, str]:
        """Return (cert_pem, key_pem) for common_name.

        Raises:
            IssuedCertificateNotFoundError: If nothing was issued for common_name.
        """
        if not self.has_issued(common_name):
            raise IssuedCertificateNotFoundError(common_name)

        record = self._issued_dir / common_name
        cert_pem = extract_certificate(self._read_text(record / self.CERT_FILE))
        key_pem = extract_private_key(self._read_text(record / self.KEY_FILE))
        return cert_pem, key_pem

    def list_issued(self) -> list[str]:
        """Sorted common names of all committed records."""
        if not self._issued_dir.is_dir():
            return []
        with _store_io("list", self._issued_dir):
            return sorted(
                entry.name
                for entry in self._issued_dir.iterdir()
                if entry.is_dir() and not entry.name.startswith(".")
            )

    def _commit_record(self, target: Path, cert_pem: str, key_pem: str) -> bool:
        """Write a record next to target and rename it into place.

        Returns:
            False if target already exists, True otherwise.
        """
        with _store_io("write", target):
            staging = Path(tempfile.mkdtemp(prefix=f".{target.name}.", dir=target.parent))
            try:
                self._write_file(staging / self.KEY_FILE, key_pem)
                self._write_file(staging / self.CERT_FILE, cert_pem)
                try:
                    os.rename(staging, target)
                except OSError as e:
                    if e.errno in (errno.EEXIST, errno.ENOTEMPTY):
                        return False
                    raise
                return True
            finally:
                if staging.exists():
                    shutil.rmtree(staging, ignore_errors=True)

    def _write_file(self, path: Path, content: str) -> None:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, self.FILE_MODE)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

    def _read_text(self, path: Path) -> str:
        with _store_io("read", path):
            return path.read_text(encoding="utf-8")
