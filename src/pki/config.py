"""Configurazione della PKI da variabili d'ambiente (con supporto file .env)."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv
from pydantic import ValidationError

from .errors import ConfigurationError, InvalidParameters
from .models import DEFAULT_KEY_SIZE, DEFAULT_VALIDITY_DAYS, Subject, validate_key_size
from .utils import get_fully_qualified_domain_name

DEFAULT_ROOT = "{CWD}/certificates"
DEFAULT_CA_FOLDER = "{root}/CA"
DEFAULT_PKI_FOLDER = "{root}/PKI"
DEFAULT_SUBJECT = "/C=IT/ST=Campania/L=Salerno/O=Local PKI Certificate Authority/OU=R&D/CN=PKI-CA"


def substitute(text: str, root: Optional[Path] = None, pki_folder: Optional[Path] = None) -> str:
    """Sostituisce i segnaposto {CWD}, {root}, {PKIFolder} e {hostname}."""
    text = text.replace("{CWD}", os.getcwd())
    if root is not None:
        text = text.replace("{root}", str(root))
    if pki_folder is not None:
        text = text.replace("{PKIFolder}", str(pki_folder))
    if "{hostname}" in text:
        text = text.replace("{hostname}", get_fully_qualified_domain_name())
    return text


def _resolve(text: str, **kwargs) -> Path:
    return Path(substitute(text, **kwargs)).expanduser().absolute()


@dataclass
class PKISettings:
    """Impostazioni di una sessione PKI."""
    root: Path
    ca_folder: Path
    pki_folder: Path
    key_size: int = DEFAULT_KEY_SIZE
    openssl: str = "openssl"
    subject: Subject = field(default_factory=lambda: Subject.parse(DEFAULT_SUBJECT))
    validity_days: int = DEFAULT_VALIDITY_DAYS
    log_level: str = "INFO"
    security_log: Optional[Path] = None

    @classmethod
    def from_env(cls,
                 env_file: Optional[Union[str, Path]] = None,
                 root: Optional[str] = None,
                 ca_folder: Optional[str] = None,
                 pki_folder: Optional[str] = None,
                 key_size: Optional[int] = None) -> "PKISettings":
        """
        Costruisce le impostazioni dall'ambiente.

        I parametri espliciti (es. opzioni della riga di comando) hanno
        precedenza sulle variabili d'ambiente.

        Args:
            env_file: File .env da caricare (default: ricerca automatica)
            root: Directory radice dei certificati
            ca_folder: Directory della Certificate Authority
            pki_folder: Directory della PKI
            key_size: Dimensione delle chiavi RSA

        Returns:
            Impostazioni risolte
        """
        load_dotenv(env_file)

        root_path = _resolve(root or os.getenv("PKI_ROOT", DEFAULT_ROOT))
        ca_path = _resolve(ca_folder or os.getenv("PKI_CA_FOLDER", DEFAULT_CA_FOLDER), root=root_path)
        pki_path = _resolve(pki_folder or os.getenv("PKI_FOLDER", DEFAULT_PKI_FOLDER), root=root_path)

        try:
            size = validate_key_size(int(key_size or os.getenv("PKI_KEY_SIZE", DEFAULT_KEY_SIZE)))
            validity = int(os.getenv("PKI_VALIDITY_DAYS", DEFAULT_VALIDITY_DAYS))
        except (ValueError, InvalidParameters) as e:
            raise ConfigurationError(f"Configurazione non valida: {e}") from e
        if validity < 1:
            raise ConfigurationError(f"PKI_VALIDITY_DAYS deve essere positivo: {validity}")

        try:
            subject = Subject.parse(os.getenv("PKI_SUBJECT", DEFAULT_SUBJECT))
        except (ValueError, ValidationError) as e:
            raise ConfigurationError(f"PKI_SUBJECT non valido: {e}") from e

        log_level = os.getenv("PKI_LOG_LEVEL", "INFO").upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ConfigurationError(f"PKI_LOG_LEVEL non valido: {log_level}")

        security_log = os.getenv("PKI_SECURITY_LOG")

        return cls(
            root=root_path,
            ca_folder=ca_path,
            pki_folder=pki_path,
            key_size=size,
            openssl=os.getenv("PKI_OPENSSL", "openssl"),
            subject=subject,
            validity_days=validity,
            log_level=log_level,
            security_log=_resolve(security_log, root=root_path) if security_log else None,
        )
