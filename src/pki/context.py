"""Contesto di sessione: collega impostazioni, toolchain, PKI, CA e verifica."""

import logging
from typing import Optional

from toolchain import CryptoToolchain, OpenSSLToolchain
from verification.verification_engine import CertificateVerificationEngine

from .certificate_authority import CertificateAuthority
from .certificate_manager import CertificateManager
from .config import PKISettings

logger = logging.getLogger(__name__)


class PKIContext:
    """
    Oggetto di sessione costruito una volta per invocazione.

    I componenti vengono creati alla prima richiesta e condivisi per tutta
    la sessione; non esiste stato globale di processo.
    """

    def __init__(self, settings: PKISettings, toolchain: Optional[CryptoToolchain] = None):
        self.settings = settings
        self.toolchain = toolchain or OpenSSLToolchain(settings.openssl)
        self._certificate_manager: Optional[CertificateManager] = None
        self._certificate_authority: Optional[CertificateAuthority] = None
        self._verification_engine: Optional[CertificateVerificationEngine] = None

    @property
    def certificate_manager(self) -> CertificateManager:
        if self._certificate_manager is None:
            self._certificate_manager = CertificateManager(
                self.settings.pki_folder, self.toolchain, key_size=self.settings.key_size
            )
        return self._certificate_manager

    @property
    def certificate_authority(self) -> CertificateAuthority:
        if self._certificate_authority is None:
            self._certificate_authority = CertificateAuthority(
                self.settings.ca_folder,
                self.toolchain,
                key_size=self.settings.key_size,
                subject=self.settings.subject,
            )
        return self._certificate_authority

    @property
    def verification_engine(self) -> CertificateVerificationEngine:
        if self._verification_engine is None:
            self._verification_engine = CertificateVerificationEngine(
                self.certificate_manager.trust_store,
                revocation_sources=[self.certificate_authority.revocation_record],
            )
        return self._verification_engine
