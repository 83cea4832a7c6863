"""
Struttura su disco di una radice PKI e di una Certificate Authority.

    PKI
      +---> trusted
      +---> rejected
      +---> own
             +---> certs
             +---> private

La struttura è compatibile con le radici di fiducia già esistenti.
"""

import os
from pathlib import Path
from typing import List, Union

from .errors import FileSystemError, InvalidParameters
from .models import TrustStatus


def make_directory(path: Path) -> None:
    """Crea una directory se mancante, tollerando quella già esistente."""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FileSystemError(f"Impossibile creare la directory {path}: {e}") from e


def write_file(path: Path, data: Union[str, bytes]) -> None:
    """Scrive un file in modo atomico (file temporaneo + rename)."""
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        if isinstance(data, str):
            tmp_path.write_text(data, encoding="utf-8")
        else:
            tmp_path.write_bytes(data)
        os.replace(tmp_path, path)
    except OSError as e:
        raise FileSystemError(f"Impossibile scrivere {path}: {e}") from e


class PKILayout:
    """Percorsi fissi di una radice PKI."""

    def __init__(self, location: Union[str, Path]):
        self.root_dir = Path(location).expanduser().absolute()

    @property
    def own_dir(self) -> Path:
        return self.root_dir / "own"

    @property
    def config_file(self) -> Path:
        return self.own_dir / "openssl.cnf"

    @property
    def private_dir(self) -> Path:
        return self.own_dir / "private"

    @property
    def private_key(self) -> Path:
        return self.private_dir / "private_key.pem"

    @property
    def random_file(self) -> Path:
        return self.private_dir / "random.rnd"

    @property
    def certs_dir(self) -> Path:
        return self.own_dir / "certs"

    @property
    def trusted_dir(self) -> Path:
        return self.root_dir / "trusted"

    @property
    def rejected_dir(self) -> Path:
        return self.root_dir / "rejected"

    def directories(self) -> List[Path]:
        return [
            self.root_dir,
            self.own_dir,
            self.certs_dir,
            self.private_dir,
            self.trusted_dir,
            self.rejected_dir,
        ]

    def ensure_directories(self) -> None:
        for directory in self.directories():
            make_directory(directory)

    def folder_for(self, status: TrustStatus) -> Path:
        if status == TrustStatus.TRUSTED:
            return self.trusted_dir
        if status == TrustStatus.REJECTED:
            return self.rejected_dir
        raise InvalidParameters(f"Nessuna directory per lo stato {status.value}")

    def certificate_path(self, status: TrustStatus, thumbprint: str) -> Path:
        return self.folder_for(status) / f"{thumbprint}.pem"


class CALayout:
    """Percorsi fissi della radice di una Certificate Authority."""

    def __init__(self, location: Union[str, Path]):
        self.root_dir = Path(location).expanduser().absolute()

    @property
    def private_dir(self) -> Path:
        return self.root_dir / "private"

    @property
    def public_dir(self) -> Path:
        return self.root_dir / "public"

    @property
    def certs_dir(self) -> Path:
        return self.root_dir / "certs"

    @property
    def crl_dir(self) -> Path:
        return self.root_dir / "crl"

    @property
    def conf_dir(self) -> Path:
        return self.root_dir / "conf"

    @property
    def config_file(self) -> Path:
        return self.conf_dir / "caconfig.cnf"

    @property
    def private_key(self) -> Path:
        return self.private_dir / "cakey.pem"

    @property
    def random_file(self) -> Path:
        return self.private_dir / "random.rnd"

    @property
    def certificate_request(self) -> Path:
        return self.private_dir / "cakey.csr"

    @property
    def public_key(self) -> Path:
        return self.public_dir / "cakey.pub"

    @property
    def certificate(self) -> Path:
        return self.public_dir / "cacert.pem"

    @property
    def index_file(self) -> Path:
        return self.root_dir / "index.txt"

    @property
    def index_attr_file(self) -> Path:
        return self.root_dir / "index.txt.attr"

    @property
    def serial_file(self) -> Path:
        return self.root_dir / "serial"

    @property
    def crlnumber_file(self) -> Path:
        return self.root_dir / "crlnumber"

    @property
    def crl_file(self) -> Path:
        return self.crl_dir / "revocation_list.crl"

    @property
    def crl_der_file(self) -> Path:
        return self.crl_dir / "revocation_list.der"

    @property
    def revocation_record(self) -> Path:
        return self.crl_dir / "revocation_record.json"

    def directories(self) -> List[Path]:
        return [
            self.root_dir,
            self.private_dir,
            self.public_dir,
            self.certs_dir,
            self.crl_dir,
            self.conf_dir,
        ]

    def ensure_directories(self) -> None:
        for directory in self.directories():
            make_directory(directory)
