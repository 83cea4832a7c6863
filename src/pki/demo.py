"""Creazione dei certificati dimostrativi per client, server e discovery server."""

import datetime
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .context import PKIContext
from .errors import FileSystemError
from .layout import make_directory
from .models import KEY_SIZES, SelfSignedCertificateParameters, SigningParameters, validate_key_size
from .pipeline import Step, run_steps
from .utils import get_fully_qualified_domain_name, make_application_urn

logger = logging.getLogger(__name__)

DEMO_APPLICATIONS: Tuple[Tuple[str, str], ...] = (
    ("client_", "PKI-Client"),
    ("server_", "PKI-Server"),
    ("discoveryServer_", "PKI-DiscoveryServer"),
)
DEMO_VALIDITY_DAYS = 365


class DemoCertificateFactory:
    """Produce chiavi e certificati di un'applicazione per una dimensione di chiave."""

    def __init__(self, context: PKIContext, output_dir: Path, hostname: str,
                 now: Optional[datetime.datetime] = None):
        self.context = context
        self.output_dir = Path(output_dir)
        self.hostname = hostname
        self.now = now or datetime.datetime.now(datetime.timezone.utc)
        self.created: List[Path] = []

    @property
    def dns(self) -> Tuple[str, ...]:
        return ("localhost", self.hostname)

    def create(self, prefix: str, key_size: int, application_uri: str, dev: bool = False) -> None:
        key_size = validate_key_size(key_size)
        private_key = self.output_dir / f"{prefix}key_{key_size}.pem"
        public_key = self.output_dir / f"{prefix}public_key_{key_size}.pub"

        def path(name: str) -> Path:
            return self.output_dir / f"{prefix}{name}.pem"

        yesterday = self.now - datetime.timedelta(days=1)
        steps = [
            Step(f"chiave privata {private_key.name}", lambda: self._private_key(private_key, key_size)),
            Step(f"chiave pubblica {public_key.name}", lambda: self._public_key(private_key, public_key)),
            Step("certificato firmato dalla CA", lambda: self._signed(
                path(f"cert_{key_size}"), private_key, application_uri, yesterday)),
            Step("certificato auto-firmato", lambda: self._self_signed(
                path(f"selfsigned_cert_{key_size}"), private_key, application_uri, yesterday)),
        ]
        if dev:
            two_years_ago = self.now - datetime.timedelta(days=2 * 365)
            next_year = self.now + datetime.timedelta(days=365)
            revoked = path(f"cert_{key_size}_revoked")
            steps += [
                Step("certificato scaduto", lambda: self._signed(
                    path(f"cert_{key_size}_outofdate"), private_key, application_uri, two_years_ago)),
                Step("certificato non ancora attivo", lambda: self._signed(
                    path(f"cert_{key_size}_not_active_yet"), private_key, application_uri, next_year)),
                Step("certificato da revocare", lambda: self._signed(
                    revoked, private_key, application_uri, yesterday)),
                Step("revoca", lambda: self.context.certificate_authority.revoke_certificate(revoked)),
            ]
        run_steps(steps)

    def _private_key(self, private_key: Path, key_size: int) -> None:
        if private_key.exists():
            logger.info("Chiave privata %s già esistente: saltata", private_key)
            return
        self.context.toolchain.generate_private_key(private_key, key_size)
        self.created.append(private_key)

    def _public_key(self, private_key: Path, public_key: Path) -> None:
        if not public_key.exists():
            self.context.toolchain.extract_public_key(private_key, public_key)
            self.created.append(public_key)

    def _signed(self, certificate: Path, private_key: Path, application_uri: str,
                start_date: datetime.datetime) -> None:
        if certificate.exists():
            logger.info("Certificato %s già esistente: saltato", certificate)
            return
        params = SigningParameters(
            application_uri=application_uri,
            dns=self.dns,
            start_date=start_date,
            validity=DEMO_VALIDITY_DAYS,
        )
        csr = certificate.with_name(certificate.name + ".csr")
        self.context.toolchain.create_certificate_request(
            csr, private_key, self.context.certificate_manager.config_file, params
        )
        self.context.certificate_authority.sign_certificate_request(certificate, csr, params)
        self.created.append(certificate)

    def _self_signed(self, certificate: Path, private_key: Path, application_uri: str,
                     start_date: datetime.datetime) -> None:
        if certificate.exists():
            logger.info("Certificato %s già esistente: saltato", certificate)
            return
        params = SelfSignedCertificateParameters(
            application_uri=application_uri,
            dns=self.dns,
            start_date=start_date,
            validity=DEMO_VALIDITY_DAYS,
        )
        self.context.certificate_authority.create_self_signed_certificate(certificate, private_key, params)
        self.created.append(certificate)


def clean_demo_certificates(output_dir: Path) -> List[Path]:
    """Rimuove i certificati e le chiavi prodotti da una precedente esecuzione."""
    removed = []
    for pattern in ("*.pem*", "*.pub"):
        for path in Path(output_dir).glob(pattern):
            if not path.is_file():
                continue
            try:
                path.unlink()
            except OSError as e:
                raise FileSystemError(f"Impossibile rimuovere {path}: {e}") from e
            removed.append(path)
    logger.info("Rimossi %d file da %s", len(removed), output_dir)
    return removed


def create_default_certificates(context: PKIContext, dev: bool = False,
                                key_sizes: Iterable[int] = KEY_SIZES,
                                output_dir: Optional[Path] = None,
                                hostname: Optional[str] = None) -> List[Path]:
    """
    Crea i certificati dimostrativi per ogni applicazione e dimensione di chiave.

    Args:
        context: Contesto della sessione
        dev: Crea anche le varianti scadute, non ancora attive e revocate
        key_sizes: Dimensioni delle chiavi RSA
        output_dir: Directory di destinazione (default: radice dei certificati)
        hostname: Nome host per URN e DNS (default: FQDN locale)

    Returns:
        File creati
    """
    output_dir = Path(output_dir or context.settings.root)
    hostname = hostname or get_fully_qualified_domain_name()
    logger.info("Creazione certificati dimostrativi in %s (hostname %s)", output_dir, hostname)

    context.certificate_authority.initialize()
    context.certificate_manager.initialize()
    make_directory(output_dir)

    factory = DemoCertificateFactory(context, output_dir, hostname)
    for prefix, suffix in DEMO_APPLICATIONS:
        application_uri = make_application_urn(hostname, suffix)
        for key_size in key_sizes:
            logger.info("%s%d: %s", prefix, key_size, application_uri)
            factory.create(prefix, key_size, application_uri, dev=dev)
    return factory.created
