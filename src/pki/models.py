"""
Modelli dati della PKI.

Questo modulo definisce:
- il certificato (byte codificati DER più i campi derivati)
- lo stato di fiducia di un certificato
- i parametri immutabili delle operazioni di emissione (Pydantic V2)
"""

import datetime
import hashlib
import ipaddress
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple, Union

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import FileSystemError, InvalidParameters, MissingCertificate

KEY_SIZES = (1024, 2048, 3072, 4096)
DEFAULT_KEY_SIZE = 2048
DEFAULT_VALIDITY_DAYS = 365


def validate_key_size(key_size: int) -> int:
    """Verifica che la dimensione della chiave RSA sia supportata."""
    if key_size not in KEY_SIZES:
        raise InvalidParameters(
            f"Dimensione chiave non valida: {key_size} (ammesse: 1024, 2048, 3072 o 4096)"
        )
    return key_size


class TrustStatus(Enum):
    """Classificazione di un certificato nel trust store."""
    UNKNOWN = "unknown"
    TRUSTED = "trusted"
    REJECTED = "rejected"


# =============================================================================
# CERTIFICATO
# =============================================================================

@dataclass(frozen=True)
class Certificate:
    """
    Certificato X.509 identificato dai suoi byte DER.

    Il thumbprint (SHA-1 esadecimale minuscolo dei byte DER) è l'unica
    chiave che collega i file su disco allo stato in memoria.
    """
    der: bytes
    parsed: x509.Certificate = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        if not self.der:
            raise MissingCertificate("Certificato mancante o vuoto")
        try:
            parsed = x509.load_der_x509_certificate(bytes(self.der))
        except ValueError as e:
            raise InvalidParameters(f"Dati certificato non validi: {e}") from e
        object.__setattr__(self, "der", bytes(self.der))
        object.__setattr__(self, "parsed", parsed)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Certificate":
        """Carica un certificato da dati PEM o DER."""
        if not data:
            raise MissingCertificate("Certificato mancante o vuoto")
        if data.lstrip().startswith(b"-----BEGIN"):
            try:
                parsed = x509.load_pem_x509_certificate(data)
            except ValueError as e:
                raise InvalidParameters(f"Dati PEM non validi: {e}") from e
            return cls(parsed.public_bytes(serialization.Encoding.DER))
        return cls(data)

    @classmethod
    def load(cls, file_path: Union[str, Path]) -> "Certificate":
        """Carica un certificato da file PEM o DER."""
        file_path = Path(file_path)
        try:
            data = file_path.read_bytes()
        except OSError as e:
            raise FileSystemError(f"Impossibile leggere il certificato {file_path}: {e}") from e
        return cls.from_bytes(data)

    @property
    def thumbprint(self) -> str:
        return hashlib.sha1(self.der).hexdigest()

    @property
    def not_before(self) -> datetime.datetime:
        return self.parsed.not_valid_before_utc

    @property
    def not_after(self) -> datetime.datetime:
        return self.parsed.not_valid_after_utc

    @property
    def serial_number(self) -> int:
        return self.parsed.serial_number

    @property
    def subject(self) -> str:
        return self.parsed.subject.rfc4514_string()

    @property
    def issuer(self) -> str:
        return self.parsed.issuer.rfc4514_string()

    @property
    def is_self_issued(self) -> bool:
        return self.parsed.subject == self.parsed.issuer

    @property
    def subject_uri(self) -> Optional[str]:
        """URI applicativo contenuto nel Subject Alternative Name."""
        try:
            san = self.parsed.extensions.get_extension_for_oid(
                x509.oid.ExtensionOID.SUBJECT_ALTERNATIVE_NAME
            ).value
        except x509.ExtensionNotFound:
            return None
        uris = san.get_values_for_type(x509.UniformResourceIdentifier)
        return uris[0] if uris else None

    def to_pem(self) -> bytes:
        return self.parsed.public_bytes(serialization.Encoding.PEM)


# =============================================================================
# PARAMETRI DELLE OPERAZIONI
# =============================================================================

_SUBJECT_KEYS = {
    "CN": "common_name",
    "O": "organization",
    "OU": "organizational_unit",
    "L": "locality",
    "ST": "state",
    "C": "country",
    "DC": "domain_component",
}


class Subject(BaseModel):
    """Distinguished Name del soggetto di un certificato."""
    model_config = ConfigDict(frozen=True)

    common_name: Optional[str] = Field(None, description="Common Name (CN)")
    organization: Optional[str] = Field(None, description="Organization (O)")
    organizational_unit: Optional[str] = Field(None, description="Organizational Unit (OU)")
    locality: Optional[str] = Field(None, description="Locality (L)")
    state: Optional[str] = Field(None, description="State or Province (ST)")
    country: Optional[str] = Field(None, description="Country (C), due lettere")
    domain_component: Optional[str] = Field(None, description="Domain Component (DC)")

    @field_validator('country')
    @classmethod
    def validate_country(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and (len(v) != 2 or not v.isalpha()):
            raise ValueError('Il codice paese deve essere di 2 lettere')
        return v.upper() if v else v

    @classmethod
    def parse(cls, text: str) -> "Subject":
        """
        Interpreta una stringa in formato openssl (es. ``/CN=server/O=Acme``).

        Args:
            text: Stringa del soggetto

        Returns:
            Soggetto corrispondente
        """
        values = {}
        for part in text.replace("\\/", "\x00").split("/"):
            if not part:
                continue
            if "=" not in part:
                raise ValueError(f"Componente del soggetto non valido: {part!r}")
            key, value = part.split("=", 1)
            attribute = _SUBJECT_KEYS.get(key.strip())
            if attribute is None:
                raise ValueError(f"Attributo del soggetto non supportato: {key!r}")
            values[attribute] = value.replace("\x00", "/")
        return cls(**values)

    def to_openssl(self) -> str:
        """Formato accettato da ``openssl req -subj``."""
        parts = []
        for key, attribute in _SUBJECT_KEYS.items():
            value = getattr(self, attribute)
            if value:
                escaped = value.replace("/", "\\/")
                parts.append(f"/{key}={escaped}")
        return "".join(parts)

    def is_empty(self) -> bool:
        return not self.to_openssl()


class CertificateParameters(BaseModel):
    """Parametri di identità comuni a richiesta, auto-firma e firma CA."""
    model_config = ConfigDict(frozen=True)

    application_uri: Optional[str] = Field(None, description="URI dell'applicazione")
    dns: Tuple[str, ...] = Field(default=(), description="Nomi DNS alternativi")
    ip: Tuple[str, ...] = Field(default=(), description="Indirizzi IP alternativi")
    subject: Subject = Field(default_factory=Subject, description="Soggetto del certificato")
    validity: int = Field(DEFAULT_VALIDITY_DAYS, ge=1, description="Validità in giorni")
    start_date: Optional[datetime.datetime] = Field(None, description="Inizio validità")
    output_file: Optional[Path] = Field(None, description="File di destinazione")

    @field_validator('application_uri')
    @classmethod
    def validate_application_uri(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and (not v.strip() or any(c.isspace() for c in v)):
            raise ValueError("L'URI dell'applicazione non può essere vuoto o contenere spazi")
        return v

    @field_validator('dns')
    @classmethod
    def validate_dns(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        for name in v:
            if not name or any(c.isspace() or c == "," for c in name):
                raise ValueError(f"Nome DNS non valido: {name!r}")
        return v

    @field_validator('ip')
    @classmethod
    def validate_ip(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        return tuple(str(ipaddress.ip_address(address)) for address in v)

    @field_validator('start_date')
    @classmethod
    def validate_start_date(cls, v: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=datetime.timezone.utc)
        return v

    def alt_names(self) -> str:
        """Subject Alternative Names nel formato di configurazione openssl."""
        names = []
        if self.application_uri:
            names.append(f"URI:{self.application_uri}")
        names.extend(f"DNS:{name}" for name in self.dns)
        names.extend(f"IP:{address}" for address in self.ip)
        return ",".join(names)

    def validity_window(self) -> Tuple[datetime.datetime, datetime.datetime]:
        """Restituisce (inizio, fine) della validità in UTC."""
        start = self.start_date or datetime.datetime.now(datetime.timezone.utc)
        return start, start + datetime.timedelta(days=self.validity)


class CertificateRequestParameters(CertificateParameters):
    """
    Parametri di una richiesta di firma (CSR).

    ``root_dir``, ``config_file`` e ``private_key`` sono gestiti internamente
    dal CertificateManager: il chiamante non deve valorizzarli.
    """
    root_dir: Optional[Path] = None
    config_file: Optional[Path] = None
    private_key: Optional[Path] = None

    def managed_fields(self) -> Tuple[str, ...]:
        return tuple(name for name in ("root_dir", "config_file", "private_key")
                     if getattr(self, name) is not None)


class SelfSignedCertificateParameters(CertificateParameters):
    """Parametri di un certificato auto-firmato."""
    application_uri: str = Field(..., description="URI dell'applicazione")


class SigningParameters(CertificateParameters):
    """Parametri della firma di una CSR da parte della CA."""
    application_uri: str = Field(..., description="URI dell'applicazione")
