"""Exceptions raised by the certificate authority."""


class CAError(Exception):
    """Base class for certificate authority failures."""

    pass


class CANotInitializedError(CAError):
    """Raised when the CA root is used before initialization."""

    pass


class InvalidCommonNameError(CAError):
    """Raised when a common name cannot be used as a store key."""

    pass


class DuplicateSubjectError(CAError):
    """Raised when a certificate was already issued for a common name."""

    def __init__(self, common_name: str) -> None:
        super().__init__(f'certificate with common name "{common_name}" already exists')
        self.common_name = common_name


class InvalidExpiryError(CAError):
    """Raised when a client certificate would not expire in the future."""

    pass


class IssuedCertificateNotFoundError(CAError):
    """Raised when no certificate was issued for a common name."""

    def __init__(self, common_name: str) -> None:
        super().__init__(f'no certificate issued for common name "{common_name}"')
        self.common_name = common_name


class CertificateExtractionError(CAError):
    """Raised when stored material does not contain a well-formed PEM block."""

    pass


class CertificateGenerationError(CAError):
    """Raised when key generation or signing fails."""

    pass


class StoreIOError(CAError):
    """Raised when the PKI directory cannot be read or written."""

    pass
