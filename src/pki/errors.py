"""
Tassonomia degli errori della PKI.

Ogni errore espone un codice stabile (``code``) e un messaggio leggibile.
I codici di verifica seguono i nomi di stato OPC-UA usati dagli endpoint
che consumano il trust store.
"""

from typing import Optional, Sequence


class PKIError(Exception):
    """Errore base della PKI."""
    code = "BadUnexpectedError"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ConfigurationError(PKIError):
    """Directory o opzione richiesta mancante prima dell'uso."""
    code = "BadConfigurationError"


class CryptoToolchainError(PKIError):
    """Un'operazione del toolchain crittografico esterno è fallita."""
    code = "BadCryptoToolchainError"

    def __init__(self, message: str, command: Optional[Sequence[str]] = None,
                 returncode: Optional[int] = None, diagnostic: str = ""):
        super().__init__(message)
        self.command = list(command) if command else []
        self.returncode = returncode
        self.diagnostic = diagnostic

    def __str__(self) -> str:
        text = super().__str__()
        if self.diagnostic:
            text += f"\n{self.diagnostic.strip()}"
        return text


class MissingCertificate(PKIError):
    code = "BadSecurityChecksFailed"


class CertificateTimeInvalid(PKIError):
    code = "BadCertificateTimeInvalid"


class CertificateUntrusted(PKIError):
    code = "BadCertificateUntrusted"


class CertificateRevoked(PKIError):
    code = "BadCertificateRevoked"


class CertificateIssuerRevoked(CertificateRevoked):
    code = "BadCertificateIssuerRevoked"


class UriMismatch(PKIError):
    code = "BadCertificateUriInvalid"


class DuplicateOutput(PKIError):
    """Rifiuto di sovrascrivere un artefatto già emesso."""
    code = "BadDuplicateOutput"


class InvalidParameters(PKIError):
    """Il chiamante ha violato una precondizione dell'API."""
    code = "BadInvalidArgument"


class FileSystemError(PKIError):
    """Errore di creazione directory, rename o lettura."""
    code = "BadFileSystemError"
