"""
Trust store su filesystem.

Lo stato di un certificato è determinato dalla directory (``trusted/`` o
``rejected/``) che contiene il file ``<thumbprint>.pem``. Il filesystem è
autoritativo; l'indice in memoria è una cache costruita una sola volta
per istanza e aggiornata solo dopo mutazioni riuscite su disco.
"""

import logging
import os
import threading
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional

from monitoring.security_monitoring import SecurityEvent, SecurityMonitor

from .errors import FileSystemError, InvalidParameters, MissingCertificate
from .layout import PKILayout, write_file
from .models import Certificate, TrustStatus

logger = logging.getLogger(__name__)

LOCK_POOL_SIZE = 64


class TrustIndex:
    """Cache thumbprint → stato, costruita scansionando trusted/ e rejected/."""

    def __init__(self, layout: PKILayout):
        self.layout = layout
        self._entries: Dict[TrustStatus, Dict[str, Path]] = {
            TrustStatus.TRUSTED: {},
            TrustStatus.REJECTED: {},
        }
        self._built = False
        self._lock = threading.Lock()

    @property
    def built(self) -> bool:
        return self._built

    def ensure_built(self) -> None:
        if self._built:
            return
        with self._lock:
            if self._built:
                return
            self._build()
            self._built = True

    def _build(self) -> None:
        trusted = self._scan(self.layout.trusted_dir)
        rejected = self._scan(self.layout.rejected_dir)

        # se un thumbprint compare in entrambe le directory prevale rejected
        for thumbprint in trusted.keys() & rejected.keys():
            logger.warning("Certificato %s presente sia in trusted che in rejected: considerato rifiutato",
                           thumbprint)
            del trusted[thumbprint]

        self._entries[TrustStatus.TRUSTED] = trusted
        self._entries[TrustStatus.REJECTED] = rejected
        logger.debug("Indice di fiducia costruito: %d trusted, %d rejected", len(trusted), len(rejected))

    def _scan(self, folder: Path) -> Dict[str, Path]:
        index: Dict[str, Path] = {}
        try:
            entries = sorted(folder.iterdir())
        except FileNotFoundError:
            return index
        except OSError as e:
            raise FileSystemError(f"Impossibile leggere la directory {folder}: {e}") from e

        for path in entries:
            if not path.is_file():
                continue
            try:
                certificate = Certificate.load(path)
            except (FileSystemError, InvalidParameters, MissingCertificate) as e:
                logger.warning("File ignorato durante la scansione %s: %s", path, e)
                continue
            index[certificate.thumbprint] = path
        return index

    def lookup(self, thumbprint: str) -> TrustStatus:
        if thumbprint in self._entries[TrustStatus.REJECTED]:
            return TrustStatus.REJECTED
        if thumbprint in self._entries[TrustStatus.TRUSTED]:
            return TrustStatus.TRUSTED
        return TrustStatus.UNKNOWN

    def path_of(self, thumbprint: str, status: TrustStatus) -> Optional[Path]:
        return self._entries.get(status, {}).get(thumbprint)

    def record(self, thumbprint: str, status: TrustStatus, path: Path) -> None:
        """Registra il thumbprint nello stato indicato, rimuovendolo dall'altro."""
        for current, entries in self._entries.items():
            if current != status:
                entries.pop(thumbprint, None)
        self._entries[status][thumbprint] = path

    def thumbprints(self, status: TrustStatus) -> FrozenSet[str]:
        return frozenset(self._entries.get(status, {}))


class TrustStore:
    """Stato di fiducia dei certificati dei peer con transizioni atomiche su disco."""

    def __init__(self, layout: PKILayout):
        self.layout = layout
        self.index = TrustIndex(layout)
        # pool fisso: thumbprint diversi possono condividere un lock, mai il contrario
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(LOCK_POOL_SIZE)]

    def _lock_for(self, thumbprint: str) -> threading.Lock:
        return self._locks[hash(thumbprint) % LOCK_POOL_SIZE]

    def status(self, certificate: Certificate) -> TrustStatus:
        """Stato corrente del certificato, senza effetti su disco."""
        self.index.ensure_built()
        return self.index.lookup(certificate.thumbprint)

    def classify(self, certificate: Certificate) -> TrustStatus:
        """
        Stato del certificato con politica default-deny.

        Un certificato mai visto viene archiviato in ``rejected/`` e
        riportato come rifiutato.
        """
        with self._lock_for(certificate.thumbprint):
            return self._classify(certificate)

    def _classify(self, certificate: Certificate) -> TrustStatus:
        status = self.status(certificate)
        if status != TrustStatus.UNKNOWN:
            return status

        thumbprint = certificate.thumbprint
        path = self.layout.certificate_path(TrustStatus.REJECTED, thumbprint)
        write_file(path, certificate.to_pem())
        self.index.record(thumbprint, TrustStatus.REJECTED, path)

        logger.info("Nuovo certificato archiviato come rifiutato: %s", thumbprint)
        SecurityMonitor.log_event(SecurityEvent.CERTIFICATE_FIRST_SEEN, {
            "thumbprint": thumbprint,
            "subject": certificate.subject,
        })
        return TrustStatus.REJECTED

    def trust(self, certificate: Certificate) -> None:
        self._move(certificate, TrustStatus.TRUSTED)

    def reject(self, certificate: Certificate) -> None:
        self._move(certificate, TrustStatus.REJECTED)

    def _move(self, certificate: Certificate, target: TrustStatus) -> None:
        thumbprint = certificate.thumbprint
        with self._lock_for(thumbprint):
            current = self._classify(certificate)
            if current == target:
                return

            source = self.index.path_of(thumbprint, current) or self.layout.certificate_path(current, thumbprint)
            destination = self.layout.certificate_path(target, thumbprint)
            try:
                os.replace(source, destination)
            except OSError as e:
                raise FileSystemError(
                    f"Impossibile spostare {source} in {destination}: {e}"
                ) from e
            self.index.record(thumbprint, target, destination)

        event = SecurityEvent.CERTIFICATE_TRUSTED if target == TrustStatus.TRUSTED \
            else SecurityEvent.CERTIFICATE_REJECTED
        logger.info("Certificato %s: %s → %s", thumbprint, current.value, target.value)
        SecurityMonitor.log_event(event, {
            "thumbprint": thumbprint,
            "subject": certificate.subject,
            "previous_status": current.value,
        })

    def thumbprints(self, status: TrustStatus) -> FrozenSet[str]:
        self.index.ensure_built()
        return self.index.thumbprints(status)
