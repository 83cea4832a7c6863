"""Gestione della radice PKI di un endpoint: chiave propria, certificati e trust store."""

import datetime
import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

from monitoring.security_monitoring import SecurityEvent, SecurityMonitor
from toolchain.templates import PKI_CONFIGURATION_TEMPLATE

from .errors import ConfigurationError, InvalidParameters
from .layout import PKILayout, write_file
from .models import (
    DEFAULT_KEY_SIZE,
    Certificate,
    CertificateRequestParameters,
    SelfSignedCertificateParameters,
    TrustStatus,
    validate_key_size,
)
from .pipeline import SingleFlight, Step, run_steps
from .trust_store import TrustStore

if TYPE_CHECKING:
    from toolchain.base import CryptoToolchain

logger = logging.getLogger(__name__)

SELF_SIGNED_CERTIFICATE_NAME = "self_signed_certificate.pem"


class CertificateManager:
    """
    Radice PKI di un endpoint.

    Gestisce la struttura su disco, la chiave privata dell'endpoint, la
    creazione di certificati auto-firmati e CSR, e la classificazione dei
    certificati dei peer tramite il trust store.
    """

    def __init__(self, location: Union[str, Path], toolchain: "CryptoToolchain",
                 key_size: int = DEFAULT_KEY_SIZE):
        """
        Inizializza il Certificate Manager.

        Args:
            location: Directory radice della PKI
            toolchain: Toolchain crittografico esterno
            key_size: Dimensione della chiave RSA dell'endpoint
        """
        self.layout = PKILayout(location)
        self.toolchain = toolchain
        self.key_size = validate_key_size(key_size)
        self.trust_store = TrustStore(self.layout)
        self._bootstrap = SingleFlight()
        self._request_lock = threading.Lock()
        self._last_request_ms = 0

    @property
    def root_dir(self) -> Path:
        return self.layout.root_dir

    @property
    def private_key(self) -> Path:
        return self.layout.private_key

    @property
    def config_file(self) -> Path:
        return self.layout.config_file

    @property
    def initialized(self) -> bool:
        return self._bootstrap.done

    # -------------------------------------------------------------------------
    # Bootstrap
    # -------------------------------------------------------------------------

    def initialize(self) -> None:
        """
        Crea la struttura della PKI e la chiave privata se assente.

        Idempotente: una seconda chiamata non rigenera la chiave.
        """
        self._bootstrap.run(self._initialize)

    def _initialize(self) -> None:
        logger.debug("Inizializzazione PKI in %s", self.root_dir)
        run_steps([
            Step("creazione directory", self.layout.ensure_directories),
            Step("verifica toolchain", self.toolchain.ensure_installed),
            Step("configurazione openssl", self._write_configuration),
            Step("chiave privata", self._ensure_private_key),
        ])

    def _write_configuration(self) -> None:
        if not self.config_file.exists():
            write_file(self.config_file, PKI_CONFIGURATION_TEMPLATE)

    def _ensure_private_key(self) -> None:
        if self.private_key.exists():
            return
        self.toolchain.generate_private_key(self.private_key, self.key_size, self.layout.random_file)
        logger.info("Chiave privata generata (%d bit): %s", self.key_size, self.private_key)
        SecurityMonitor.log_event(SecurityEvent.PRIVATE_KEY_GENERATED, {
            "path": str(self.private_key),
            "key_size": self.key_size,
        })

    # -------------------------------------------------------------------------
    # Trust store
    # -------------------------------------------------------------------------

    def get_certificate_status(self, certificate: Certificate) -> TrustStatus:
        """
        Stato di fiducia di un certificato.

        Un certificato mai visto viene archiviato in ``rejected/``.
        """
        self.initialize()
        return self.trust_store.classify(certificate)

    def trust_certificate(self, certificate: Certificate) -> None:
        self.initialize()
        self.trust_store.trust(certificate)

    def reject_certificate(self, certificate: Certificate) -> None:
        self.initialize()
        self.trust_store.reject(certificate)

    # -------------------------------------------------------------------------
    # Certificati propri
    # -------------------------------------------------------------------------

    def create_self_signed_certificate(self, params: SelfSignedCertificateParameters) -> Path:
        """
        Crea un certificato auto-firmato con la chiave privata dell'endpoint.

        Args:
            params: Parametri di identità e validità

        Returns:
            Percorso del certificato creato
        """
        if not self.private_key.exists():
            raise ConfigurationError(
                f"Chiave privata mancante: {self.private_key} (eseguire initialize)"
            )
        output = Path(params.output_file) if params.output_file \
            else self.layout.certs_dir / SELF_SIGNED_CERTIFICATE_NAME

        self.toolchain.create_self_signed_certificate(output, self.private_key, self.config_file, params)
        logger.info("Certificato auto-firmato creato: %s", output)
        return output

    def create_certificate_request(self, params: CertificateRequestParameters) -> Path:
        """
        Crea una richiesta di firma (CSR) con la chiave privata dell'endpoint.

        Il nome del file contiene data e millisecondi correnti, quindi
        chiamate ripetute non si sovrascrivono.
        """
        managed = params.managed_fields()
        if managed:
            raise InvalidParameters(
                f"Campi gestiti internamente non ammessi: {', '.join(managed)}"
            )
        if not self.private_key.exists():
            raise ConfigurationError(
                f"Chiave privata mancante: {self.private_key} (eseguire initialize)"
            )

        csr = self._next_request_path()
        self.toolchain.create_certificate_request(csr, self.private_key, self.config_file, params)
        logger.info("Richiesta di firma creata: %s", csr)
        return csr

    def _next_request_path(self, now: Optional[datetime.datetime] = None) -> Path:
        now = now or datetime.datetime.now(datetime.timezone.utc)
        with self._request_lock:
            timestamp = max(int(now.timestamp() * 1000), self._last_request_ms + 1)
            while True:
                csr = self.layout.certs_dir / f"certificate_{now:%Y-%m-%d}_{timestamp}.csr"
                if not csr.exists():
                    self._last_request_ms = timestamp
                    return csr
                timestamp += 1
