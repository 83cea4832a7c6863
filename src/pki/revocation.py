"""
Registro permanente delle revoche della Certificate Authority.

Le voci (identità, data, motivo) vengono solo aggiunte: un'identità
revocata resta revocata per sempre.
"""

import datetime
import json
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import FileSystemError, InvalidParameters
from .layout import write_file
from .models import Certificate

logger = logging.getLogger(__name__)

RECORD_VERSION = 1


class RevocationReason(Enum):
    """Motivi di revoca CRL (RFC 5280) che non prevedono annullamento."""
    UNSPECIFIED = "unspecified"
    KEY_COMPROMISE = "keyCompromise"
    CA_COMPROMISE = "CACompromise"
    AFFILIATION_CHANGED = "affiliationChanged"
    SUPERSEDED = "superseded"
    CESSATION_OF_OPERATION = "cessationOfOperation"

    @classmethod
    def parse(cls, value: str) -> "RevocationReason":
        for reason in cls:
            if reason.value.lower() == value.lower():
                return reason
        raise InvalidParameters(
            f"Motivo di revoca non valido: {value} "
            f"(ammessi: {', '.join(reason.value for reason in cls)})"
        )


@dataclass(frozen=True)
class RevocationEntry:
    """Voce del registro delle revoche."""
    thumbprint: str
    serial_number: str
    subject: str
    issuer: str
    revocation_date: datetime.datetime
    reason: RevocationReason

    def to_dict(self) -> Dict[str, Any]:
        return {
            'thumbprint': self.thumbprint,
            'serial_number': self.serial_number,
            'subject': self.subject,
            'issuer': self.issuer,
            'revocation_date': self.revocation_date.isoformat(),
            'reason': self.reason.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RevocationEntry":
        return cls(
            thumbprint=data['thumbprint'],
            serial_number=data['serial_number'],
            subject=data['subject'],
            issuer=data['issuer'],
            revocation_date=datetime.datetime.fromisoformat(data['revocation_date']),
            reason=RevocationReason(data['reason']),
        )

    @classmethod
    def for_certificate(cls, certificate: Certificate, reason: RevocationReason,
                        revocation_date: Optional[datetime.datetime] = None) -> "RevocationEntry":
        return cls(
            thumbprint=certificate.thumbprint,
            serial_number=format(certificate.serial_number, "X"),
            subject=certificate.subject,
            issuer=certificate.issuer,
            revocation_date=revocation_date or datetime.datetime.now(datetime.timezone.utc),
            reason=reason,
        )


class RevocationRecord:
    """
    Registro delle revoche persistito in JSON.

    Il file viene riletto quando cambia su disco, così le revoche
    effettuate da un'altra istanza della CA sono visibili alle verifiche.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._entries: Dict[str, RevocationEntry] = {}
        self._mtime_ns: Optional[int] = None
        self._refresh()

    def _refresh(self) -> None:
        try:
            mtime_ns = self.path.stat().st_mtime_ns
        except FileNotFoundError:
            return
        except OSError as e:
            raise FileSystemError(f"Registro revoche non accessibile {self.path}: {e}") from e
        if mtime_ns == self._mtime_ns:
            return

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            entries = [RevocationEntry.from_dict(item) for item in data.get("entries", [])]
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise FileSystemError(f"Registro revoche non leggibile {self.path}: {e}") from e

        self._entries = {entry.thumbprint: entry for entry in entries}
        self._mtime_ns = mtime_ns
        logger.debug("Registro revoche caricato: %d voci", len(self._entries))

    def _save(self) -> None:
        data = {
            "version": RECORD_VERSION,
            "entries": [entry.to_dict() for entry in self._entries.values()],
        }
        write_file(self.path, json.dumps(data, indent=2))
        self._mtime_ns = self.path.stat().st_mtime_ns

    def revoke(self, certificate: Certificate, reason: RevocationReason,
               revocation_date: Optional[datetime.datetime] = None) -> RevocationEntry:
        """
        Aggiunge una voce permanente al registro.

        Se l'identità è già revocata restituisce la voce esistente.
        """
        with self._lock:
            self._refresh()
            existing = self._find(certificate)
            if existing is not None:
                return existing

            entry = RevocationEntry.for_certificate(certificate, reason, revocation_date)
            self._entries[entry.thumbprint] = entry
            try:
                self._save()
            except (FileSystemError, OSError):
                del self._entries[entry.thumbprint]
                raise
            logger.info("Certificato revocato: %s (%s)", entry.subject, entry.reason.value)
            return entry

    def _find(self, certificate: Certificate) -> Optional[RevocationEntry]:
        entry = self._entries.get(certificate.thumbprint)
        if entry is not None:
            return entry
        serial = format(certificate.serial_number, "X")
        for entry in self._entries.values():
            if entry.serial_number == serial and entry.issuer == certificate.issuer:
                return entry
        return None

    def is_revoked(self, certificate: Certificate) -> Optional[RevocationEntry]:
        """Voce di revoca del certificato (per thumbprint o emittente + seriale)."""
        with self._lock:
            self._refresh()
            return self._find(certificate)

    def is_issuer_revoked(self, certificate: Certificate) -> Optional[RevocationEntry]:
        """Voce di revoca dell'emittente del certificato, se revocato."""
        if certificate.is_self_issued:
            return None
        with self._lock:
            self._refresh()
            for entry in self._entries.values():
                if entry.subject == certificate.issuer:
                    return entry
        return None

    def entries(self) -> List[RevocationEntry]:
        with self._lock:
            self._refresh()
            return list(self._entries.values())

    def __len__(self) -> int:
        return len(self.entries())

    def __contains__(self, certificate: Certificate) -> bool:
        return self.is_revoked(certificate) is not None
