"""Contratto del toolchain crittografico esterno."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from pki.models import CertificateParameters


class CryptoToolchain(ABC):
    """
    Servizio opaco che esegue le primitive crittografiche.

    Ogni operazione lavora su percorsi di file e termina con successo
    oppure solleva ``CryptoToolchainError`` con la diagnostica dello
    strumento. Il chiamante non interpreta altro che l'esito e
    l'esistenza dei file prodotti.
    """

    @abstractmethod
    def ensure_installed(self) -> str:
        """Verifica che il toolchain sia disponibile e ne restituisce la versione."""

    @abstractmethod
    def generate_private_key(self, private_key: Path, key_size: int,
                             random_file: Optional[Path] = None) -> None:
        """Genera una chiave privata RSA."""

    @abstractmethod
    def extract_public_key(self, private_key: Path, public_key: Path) -> None:
        """Estrae la chiave pubblica da una chiave privata."""

    @abstractmethod
    def create_certificate_request(self, csr: Path, private_key: Path, config_file: Path,
                                   params: CertificateParameters) -> None:
        """Crea una richiesta di firma (CSR)."""

    @abstractmethod
    def create_self_signed_certificate(self, certificate: Path, private_key: Path,
                                       config_file: Path, params: CertificateParameters) -> None:
        """Crea un certificato auto-firmato con la chiave indicata."""

    @abstractmethod
    def self_sign_request(self, certificate: Path, csr: Path, private_key: Path,
                          config_file: Path, params: CertificateParameters,
                          ca: bool = False) -> None:
        """Auto-firma una CSR registrandola nel database della CA."""

    @abstractmethod
    def sign_certificate_request(self, certificate: Path, csr: Path, config_file: Path,
                                 ca_certificate: Path, ca_private_key: Path,
                                 params: CertificateParameters) -> None:
        """Firma una CSR con la chiave della CA."""

    @abstractmethod
    def revoke_certificate(self, certificate: Path, config_file: Path,
                           ca_certificate: Path, ca_private_key: Path, reason: str) -> None:
        """Marca un certificato come revocato nel database della CA."""

    @abstractmethod
    def generate_crl(self, crl: Path, config_file: Path,
                     ca_certificate: Path, ca_private_key: Path) -> None:
        """Genera la Certificate Revocation List in formato PEM."""

    @abstractmethod
    def crl_to_der(self, crl: Path, output: Path) -> None:
        """Converte una CRL PEM in DER."""

    @abstractmethod
    def to_der(self, certificate: Path, output: Optional[Path] = None) -> Path:
        """Converte un certificato PEM in DER e restituisce il percorso prodotto."""

    @abstractmethod
    def fingerprint(self, certificate: Path) -> str:
        """Restituisce l'impronta SHA-1 esadecimale (minuscola) del certificato."""

    @abstractmethod
    def dump_certificate(self, certificate: Path) -> str:
        """Restituisce la rappresentazione testuale del certificato."""
