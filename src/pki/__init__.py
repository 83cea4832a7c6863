"""
Modulo PKI per la gestione dell'infrastruttura a chiave pubblica.
Trust store su filesystem, Certificate Authority e registro delle revoche.
"""

from .certificate_authority import CertificateAuthority
from .certificate_manager import CertificateManager
from .errors import (
    CertificateIssuerRevoked,
    CertificateRevoked,
    CertificateTimeInvalid,
    CertificateUntrusted,
    ConfigurationError,
    CryptoToolchainError,
    DuplicateOutput,
    FileSystemError,
    InvalidParameters,
    MissingCertificate,
    PKIError,
    UriMismatch,
)
from .layout import CALayout, PKILayout
from .models import (
    Certificate,
    CertificateParameters,
    CertificateRequestParameters,
    SelfSignedCertificateParameters,
    SigningParameters,
    Subject,
    TrustStatus,
)
from .revocation import RevocationEntry, RevocationReason, RevocationRecord
from .trust_store import TrustIndex, TrustStore

__version__ = "1.0.0"

__all__ = [
    "CALayout",
    "Certificate",
    "CertificateAuthority",
    "CertificateIssuerRevoked",
    "CertificateManager",
    "CertificateParameters",
    "CertificateRequestParameters",
    "CertificateRevoked",
    "CertificateTimeInvalid",
    "CertificateUntrusted",
    "ConfigurationError",
    "CryptoToolchainError",
    "DuplicateOutput",
    "FileSystemError",
    "InvalidParameters",
    "MissingCertificate",
    "PKIError",
    "PKILayout",
    "RevocationEntry",
    "RevocationReason",
    "RevocationRecord",
    "SelfSignedCertificateParameters",
    "SigningParameters",
    "Subject",
    "TrustIndex",
    "TrustStatus",
    "TrustStore",
    "UriMismatch",
]
