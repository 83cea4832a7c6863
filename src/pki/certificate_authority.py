"""Gestione della Certificate Authority: bootstrap, emissione e revoca."""

import logging
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

from monitoring.security_monitoring import SecurityEvent, SecurityMonitor
from toolchain.templates import render_ca_configuration

from .errors import ConfigurationError, CryptoToolchainError, DuplicateOutput, FileSystemError
from .layout import CALayout, write_file
from .models import (
    DEFAULT_KEY_SIZE,
    Certificate,
    CertificateParameters,
    SelfSignedCertificateParameters,
    SigningParameters,
    Subject,
    validate_key_size,
)
from .pipeline import SingleFlight, Step, run_steps
from .revocation import RevocationEntry, RevocationReason, RevocationRecord

if TYPE_CHECKING:
    from toolchain.base import CryptoToolchain

logger = logging.getLogger(__name__)

DEFAULT_CA_SUBJECT = Subject(common_name="Certificate Authority", organization="Local PKI")
DEFAULT_CA_VALIDITY_DAYS = 3650
INITIAL_SERIAL = "1000"


class CertificateAuthority:
    """
    Gestisce la radice di una Certificate Authority.

    La CA firma le CSR in certificati, assegna i numeri di serie tramite il
    database di openssl e mantiene il registro permanente delle revoche
    consultato dal motore di verifica.
    """

    def __init__(self, location: Union[str, Path], toolchain: "CryptoToolchain",
                 key_size: int = DEFAULT_KEY_SIZE,
                 subject: Optional[Subject] = None,
                 validity_days: int = DEFAULT_CA_VALIDITY_DAYS):
        """
        Inizializza la Certificate Authority.

        Args:
            location: Directory radice della CA
            toolchain: Toolchain crittografico esterno
            key_size: Dimensione della chiave RSA della CA
            subject: Soggetto del certificato della CA
            validity_days: Validità del certificato della CA in giorni
        """
        self.layout = CALayout(location)
        self.toolchain = toolchain
        self.key_size = validate_key_size(key_size)
        self.subject = subject or DEFAULT_CA_SUBJECT
        self.validity_days = validity_days
        self.revocation_record = RevocationRecord(self.layout.revocation_record)
        self._bootstrap = SingleFlight()

    @property
    def root_dir(self) -> Path:
        return self.layout.root_dir

    @property
    def config_file(self) -> Path:
        return self.layout.config_file

    @property
    def ca_certificate(self) -> Path:
        return self.layout.certificate

    @property
    def ca_private_key(self) -> Path:
        return self.layout.private_key

    @property
    def initialized(self) -> bool:
        return self._bootstrap.done

    # -------------------------------------------------------------------------
    # Bootstrap
    # -------------------------------------------------------------------------

    def initialize(self) -> None:
        """
        Crea la struttura della CA, la chiave, il certificato e la CRL iniziale.

        Ogni artefatto viene creato solo se mancante.
        """
        self._bootstrap.run(self._initialize)

    def _initialize(self) -> None:
        logger.debug("Inizializzazione CA in %s", self.root_dir)
        run_steps([
            Step("creazione directory", self.layout.ensure_directories),
            Step("verifica toolchain", self.toolchain.ensure_installed),
            Step("database della CA", self._ensure_database),
            Step("configurazione openssl", self._write_configuration),
            Step("chiave privata della CA", self._ensure_private_key),
            Step("chiave pubblica della CA", self._ensure_public_key),
            Step("certificato della CA", self._ensure_ca_certificate),
            Step("lista di revoca", self._ensure_crl),
        ])
        logger.info("CA pronta: %s", self.ca_certificate)

    def _ensure_database(self) -> None:
        defaults = [
            (self.layout.index_file, ""),
            (self.layout.index_attr_file, "unique_subject = no\n"),
            (self.layout.serial_file, f"{INITIAL_SERIAL}\n"),
            (self.layout.crlnumber_file, f"{INITIAL_SERIAL}\n"),
        ]
        for path, content in defaults:
            if not path.exists():
                write_file(path, content)

    def _write_configuration(self) -> None:
        if not self.config_file.exists():
            write_file(self.config_file, render_ca_configuration(str(self.root_dir)))

    def _ensure_private_key(self) -> None:
        if self.ca_private_key.exists():
            return
        self.toolchain.generate_private_key(self.ca_private_key, self.key_size, self.layout.random_file)
        logger.info("Chiave privata della CA generata (%d bit)", self.key_size)
        SecurityMonitor.log_event(SecurityEvent.PRIVATE_KEY_GENERATED, {
            "path": str(self.ca_private_key),
            "key_size": self.key_size,
        })

    def _ensure_public_key(self) -> None:
        if not self.layout.public_key.exists():
            self.toolchain.extract_public_key(self.ca_private_key, self.layout.public_key)

    def _ensure_ca_certificate(self) -> None:
        if self.ca_certificate.exists():
            return
        params = CertificateParameters(subject=self.subject, validity=self.validity_days)
        csr = self.layout.certificate_request
        self.toolchain.create_certificate_request(csr, self.ca_private_key, self.config_file, params)
        self.toolchain.self_sign_request(
            self.ca_certificate, csr, self.ca_private_key, self.config_file, params, ca=True
        )
        logger.info("Certificato della CA creato: %s", self.subject.to_openssl())

    def _ensure_crl(self) -> None:
        if not self.layout.crl_file.exists():
            self._update_crl()

    def _update_crl(self) -> None:
        run_steps([
            Step("generazione CRL", lambda: self.toolchain.generate_crl(
                self.layout.crl_file, self.config_file, self.ca_certificate, self.ca_private_key)),
            Step("conversione CRL in DER", lambda: self.toolchain.crl_to_der(
                self.layout.crl_file, self.layout.crl_der_file)),
        ])

    def _require_initialized(self) -> None:
        self.initialize()
        if not self.ca_certificate.exists() or not self.ca_private_key.exists():
            raise ConfigurationError(f"CA non inizializzata in {self.root_dir}")

    @property
    def next_serial(self) -> int:
        """Numero di serie che verrà assegnato al prossimo certificato."""
        try:
            return int(self.layout.serial_file.read_text().strip(), 16)
        except OSError as e:
            raise FileSystemError(f"Impossibile leggere {self.layout.serial_file}: {e}") from e
        except ValueError as e:
            raise ConfigurationError(f"File serial non valido: {e}") from e

    # -------------------------------------------------------------------------
    # Emissione
    # -------------------------------------------------------------------------

    def create_self_signed_certificate(self, certificate: Path, private_key: Path,
                                       params: SelfSignedCertificateParameters) -> Path:
        """
        Crea un certificato auto-firmato registrato nel database della CA.

        La data di inizio può essere nel passato o nel futuro, il che
        permette di produrre certificati scaduti o non ancora attivi.

        Args:
            certificate: File del certificato da produrre
            private_key: Chiave privata (già esistente) del soggetto
            params: Parametri di identità e validità

        Returns:
            Percorso del certificato creato
        """
        self._require_initialized()
        if not Path(private_key).exists():
            raise ConfigurationError(f"Chiave privata mancante: {private_key}")

        with tempfile.TemporaryDirectory() as workdir:
            csr = Path(workdir) / "self_signed.csr"
            run_steps([
                Step("richiesta di firma", lambda: self.toolchain.create_certificate_request(
                    csr, Path(private_key), self.config_file, params)),
                Step("auto-firma", lambda: self.toolchain.self_sign_request(
                    Path(certificate), csr, Path(private_key), self.config_file, params)),
            ])
        logger.info("Certificato auto-firmato creato: %s", certificate)
        return Path(certificate)

    def sign_certificate_request(self, certificate: Path, csr: Path,
                                 params: SigningParameters) -> Path:
        """
        Firma una CSR con la chiave della CA.

        L'emissione non sovrascrive mai un certificato esistente.

        Args:
            certificate: File del certificato da produrre
            csr: Richiesta di firma
            params: Parametri di identità e validità

        Returns:
            Percorso del certificato firmato

        Raises:
            DuplicateOutput: se ``certificate`` esiste già
        """
        certificate = Path(certificate)
        if certificate.exists():
            raise DuplicateOutput(f"Il certificato {certificate} esiste già")
        if not Path(csr).exists():
            raise ConfigurationError(f"Richiesta di firma mancante: {csr}")
        self._require_initialized()

        serial = self.next_serial
        self.toolchain.sign_certificate_request(
            certificate, Path(csr), self.config_file, self.ca_certificate, self.ca_private_key, params
        )
        if not certificate.exists():
            raise CryptoToolchainError(f"Il toolchain non ha prodotto il certificato {certificate}")

        logger.info("Certificato firmato dalla CA: %s (seriale %X)", certificate, serial)
        SecurityMonitor.log_event(SecurityEvent.CERTIFICATE_ISSUED, {
            "certificate": str(certificate),
            "application_uri": params.application_uri,
            "serial_number": format(serial, "X"),
        })
        return certificate

    # -------------------------------------------------------------------------
    # Revoca
    # -------------------------------------------------------------------------

    def revoke_certificate(self, certificate: Union[Certificate, Path, str],
                           reason: RevocationReason = RevocationReason.KEY_COMPROMISE) -> RevocationEntry:
        """
        Revoca un certificato in modo permanente.

        La voce viene scritta nel registro delle revoche prima di aggiornare
        il database di openssl e la CRL: da quel momento ogni verifica
        dell'identità fallisce, indipendentemente dal trust store.

        Args:
            certificate: Certificato o file del certificato da revocare
            reason: Motivo della revoca

        Returns:
            Voce del registro delle revoche
        """
        self._require_initialized()
        certificate_file: Optional[Path] = None
        if not isinstance(certificate, Certificate):
            certificate_file = Path(certificate)
            certificate = Certificate.load(certificate_file)

        existing = self.revocation_record.is_revoked(certificate)
        if existing is not None:
            logger.info("Certificato già revocato: %s", certificate.subject)
            return existing

        entry = self.revocation_record.revoke(certificate, reason)
        SecurityMonitor.log_event(SecurityEvent.CERTIFICATE_REVOKED, {
            "thumbprint": entry.thumbprint,
            "subject": entry.subject,
            "serial_number": entry.serial_number,
            "reason": entry.reason.value,
        })

        with tempfile.TemporaryDirectory() as workdir:
            if certificate_file is None:
                certificate_file = Path(workdir) / f"{certificate.thumbprint}.pem"
                write_file(certificate_file, certificate.to_pem())
            run_steps([
                Step("revoca nel database della CA", lambda: self.toolchain.revoke_certificate(
                    certificate_file, self.config_file, self.ca_certificate,
                    self.ca_private_key, reason.value)),
                Step("aggiornamento CRL", self._update_crl),
            ])
        return entry

    def is_revoked(self, certificate: Certificate) -> Optional[RevocationEntry]:
        return self.revocation_record.is_revoked(certificate)

    def is_issuer_revoked(self, certificate: Certificate) -> Optional[RevocationEntry]:
        return self.revocation_record.is_issuer_revoked(certificate)
