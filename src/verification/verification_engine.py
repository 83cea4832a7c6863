# =============================================================================
# VERIFICATION ENGINE
# File: verification/verification_engine.py
# Verifica dei certificati dei peer prima dell'accettazione
# =============================================================================

import datetime
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from monitoring.security_monitoring import SecurityEvent, SecurityMonitor
from pki.errors import (
    CertificateIssuerRevoked,
    CertificateRevoked,
    CertificateTimeInvalid,
    CertificateUntrusted,
    InvalidParameters,
    MissingCertificate,
    PKIError,
    UriMismatch,
)
from pki.models import Certificate, TrustStatus
from pki.trust_store import TrustStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


# =============================================================================
# 1. ENUMS E STRUTTURE DATI VERIFICA
# =============================================================================

class FailureReason(Enum):
    """Motivi stabili di fallimento della verifica"""
    MISSING_CERTIFICATE = MissingCertificate.code
    TIME_INVALID = CertificateTimeInvalid.code
    UNTRUSTED = CertificateUntrusted.code
    REVOKED = CertificateRevoked.code
    ISSUER_REVOKED = CertificateIssuerRevoked.code
    URI_INVALID = UriMismatch.code
    INVALID_DATA = InvalidParameters.code


# errori che rappresentano un esito di verifica, non un guasto operativo
VERIFICATION_FAILURES = (
    MissingCertificate,
    CertificateTimeInvalid,
    CertificateUntrusted,
    CertificateRevoked,
    UriMismatch,
    InvalidParameters,
)


@dataclass
class VerificationResult:
    """Esito della verifica di un certificato"""
    thumbprint: Optional[str]
    reason: Optional[FailureReason] = None
    message: str = ""
    error: Optional[PKIError] = None

    @property
    def ok(self) -> bool:
        return self.reason is None

    def raise_for_failure(self) -> None:
        if self.error is not None:
            raise self.error

    def to_dict(self) -> Dict[str, Any]:
        """Converte in dizionario per serializzazione"""
        return {
            'thumbprint': self.thumbprint,
            'ok': self.ok,
            'reason': self.reason.value if self.reason else None,
            'message': self.message,
        }


# =============================================================================
# 2. MOTORE DI VERIFICA
# =============================================================================

class CertificateVerificationEngine:
    """
    Catena ordinata di controlli eseguita su un certificato prima di accettarlo.

    I controlli, nell'ordine:
      1. presenza del certificato
      2. validità temporale (non ancora attivo, scaduto)
      3. stato di fiducia (solo ``trusted`` è accettato)
      4. revoca del certificato
      5. revoca dell'emittente
      6. corrispondenza dell'URI applicativo dichiarato

    Il primo controllo fallito interrompe la catena.

    Le sorgenti di revoca sono oggetti con i metodi ``is_revoked(cert)`` e
    ``is_issuer_revoked(cert)`` che restituiscono la voce di revoca o None
    (es. ``RevocationRecord`` o ``CertificateAuthority``).
    """

    def __init__(self, trust_store: TrustStore, revocation_sources: Iterable[Any] = (),
                 clock: Optional[Clock] = None):
        """
        Inizializza il motore di verifica.

        Args:
            trust_store: Trust store consultato per lo stato di fiducia
            revocation_sources: Registri di revoca da consultare
            clock: Sorgente dell'istante corrente (default: UTC di sistema)
        """
        self.trust_store = trust_store
        self.revocation_sources: List[Any] = list(revocation_sources)
        self.clock = clock or utc_now

    def add_revocation_source(self, source: Any) -> None:
        self.revocation_sources.append(source)

    def verify(self, certificate: Union[Certificate, bytes, None],
               application_uri: Optional[str] = None) -> VerificationResult:
        """
        Verifica un certificato.

        Solo i fallimenti di verifica diventano un risultato negativo; gli
        errori operativi (filesystem, registro illeggibile) vengono propagati.

        Args:
            certificate: Certificato, byte PEM/DER o None
            application_uri: URI applicativo dichiarato dal peer, se noto

        Returns:
            Esito della verifica
        """
        thumbprint = None
        try:
            certificate = self._check_present(certificate)
            thumbprint = certificate.thumbprint
            self._check_certificate(certificate, application_uri)
        except VERIFICATION_FAILURES as e:
            result = VerificationResult(
                thumbprint=thumbprint,
                reason=FailureReason(e.code),
                message=e.message,
                error=e,
            )
            logger.info("Verifica fallita (%s): %s", e.code, e.message)
            SecurityMonitor.log_event(SecurityEvent.VERIFICATION_FAILURE, {
                "thumbprint": thumbprint,
                "reason": e.code,
                "message": e.message,
            })
            return result

        SecurityMonitor.log_event(SecurityEvent.VERIFICATION_SUCCESS, {
            "thumbprint": certificate.thumbprint,
            "subject": certificate.subject,
        })
        return VerificationResult(thumbprint=certificate.thumbprint)

    def check(self, certificate: Union[Certificate, bytes, None],
              application_uri: Optional[str] = None) -> Certificate:
        """Come ``verify`` ma solleva l'errore del primo controllo fallito."""
        certificate = self._check_present(certificate)
        self._check_certificate(certificate, application_uri)
        return certificate

    def _check_certificate(self, certificate: Certificate, application_uri: Optional[str]) -> None:
        self._check_validity_period(certificate)
        self._check_trust(certificate)
        self._check_revocation(certificate)
        self._check_issuer_revocation(certificate)
        self._check_application_uri(certificate, application_uri)

    # -------------------------------------------------------------------------
    # Controlli
    # -------------------------------------------------------------------------

    @staticmethod
    def _check_present(certificate: Union[Certificate, bytes, None]) -> Certificate:
        if certificate is None:
            raise MissingCertificate("Nessun certificato fornito")
        if isinstance(certificate, Certificate):
            return certificate
        return Certificate.from_bytes(certificate)

    def _check_validity_period(self, certificate: Certificate) -> None:
        now = self.clock()
        if now < certificate.not_before:
            raise CertificateTimeInvalid(
                f"Certificato non ancora attivo (valido dal {certificate.not_before.isoformat()})"
            )
        if now >= certificate.not_after:
            raise CertificateTimeInvalid(
                f"Certificato scaduto il {certificate.not_after.isoformat()}"
            )

    def _check_trust(self, certificate: Certificate) -> None:
        status = self.trust_store.status(certificate)
        if status != TrustStatus.TRUSTED:
            raise CertificateUntrusted(
                f"Certificato non attendibile (stato: {status.value}): {certificate.thumbprint}"
            )

    def _check_revocation(self, certificate: Certificate) -> None:
        for source in self.revocation_sources:
            entry = source.is_revoked(certificate)
            if entry is not None:
                raise CertificateRevoked(
                    f"Certificato revocato il {entry.revocation_date.isoformat()} "
                    f"({entry.reason.value})"
                )

    def _check_issuer_revocation(self, certificate: Certificate) -> None:
        for source in self.revocation_sources:
            entry = source.is_issuer_revoked(certificate)
            if entry is not None:
                raise CertificateIssuerRevoked(
                    f"Emittente revocato: {entry.subject} ({entry.reason.value})"
                )

    @staticmethod
    def _check_application_uri(certificate: Certificate, application_uri: Optional[str]) -> None:
        if application_uri is None:
            return
        if certificate.subject_uri != application_uri:
            raise UriMismatch(
                f"URI applicativo {application_uri!r} diverso da quello del certificato "
                f"{certificate.subject_uri!r}"
            )
