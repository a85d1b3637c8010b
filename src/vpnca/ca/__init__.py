"""Certificate Authority for the VPN service.

This module provides:
- PKI storage of the CA root and issued certificates
- CA root generation and loading
- X.509 server and client certificate generation and signing
"""

from vpnca.ca.certificate_generator import CertificateGenerator, CertificateProfile
from vpnca.ca.key_manager import KeyManager
from vpnca.ca.pki_store import PKIStore

__all__ = ["CertificateGenerator", "CertificateProfile", "KeyManager", "PKIStore"]
