"""Toolchain crittografico basato sull'eseguibile openssl."""

import datetime
import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

from pki.errors import CryptoToolchainError
from pki.models import CertificateParameters

from .base import CryptoToolchain

logger = logging.getLogger(__name__)

OPENSSL_DATE_FORMAT = "%y%m%d%H%M%SZ"


def format_openssl_date(value: datetime.datetime) -> str:
    """Formatta una data UTC per ``openssl ca -startdate/-enddate``."""
    if value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc)
    return value.strftime(OPENSSL_DATE_FORMAT)


class OpenSSLToolchain(CryptoToolchain):
    """Esegue le operazioni crittografiche invocando openssl come sottoprocesso."""

    def __init__(self, executable: str = "openssl", environment: Optional[Dict[str, str]] = None):
        """
        Inizializza il toolchain.

        Args:
            executable: Percorso o nome dell'eseguibile openssl
            environment: Variabili d'ambiente aggiuntive per ogni invocazione
        """
        self.executable = executable
        self.environment = dict(environment or {})

    # -------------------------------------------------------------------------
    # Esecuzione
    # -------------------------------------------------------------------------

    def _run(self, args: List[str], alt_names: str = "",
             random_file: Optional[Path] = None, cwd: Optional[Path] = None) -> str:
        command = [self.executable, *args]
        env = os.environ.copy()
        env.update(self.environment)
        env["ALTNAME"] = alt_names
        if random_file is not None:
            env["RANDFILE"] = str(random_file)

        logger.debug("openssl %s", " ".join(args))
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                env=env,
                cwd=str(cwd) if cwd else None,
                check=False,
            )
        except OSError as e:
            raise CryptoToolchainError(
                f"Impossibile eseguire {self.executable}: {e}", command=command
            ) from e

        if completed.returncode != 0:
            raise CryptoToolchainError(
                f"Comando openssl fallito: {args[0]}",
                command=command,
                returncode=completed.returncode,
                diagnostic=completed.stderr or completed.stdout,
            )
        return completed.stdout

    @staticmethod
    def _subject(params: CertificateParameters) -> str:
        return params.subject.to_openssl() or f"/CN={params.application_uri or 'localhost'}"

    # -------------------------------------------------------------------------
    # Operazioni
    # -------------------------------------------------------------------------

    def ensure_installed(self) -> str:
        version = self._run(["version"]).strip()
        logger.debug("Toolchain disponibile: %s", version)
        return version

    def generate_private_key(self, private_key: Path, key_size: int,
                             random_file: Optional[Path] = None) -> None:
        self._run(["genrsa", "-out", str(private_key), str(key_size)], random_file=random_file)
        os.chmod(private_key, 0o600)

    def extract_public_key(self, private_key: Path, public_key: Path) -> None:
        self._run(["rsa", "-pubout", "-in", str(private_key), "-out", str(public_key)])

    def create_certificate_request(self, csr: Path, private_key: Path, config_file: Path,
                                   params: CertificateParameters) -> None:
        alt_names = params.alt_names()
        args = [
            "req", "-new", "-sha256", "-batch",
            "-config", str(config_file),
            "-key", str(private_key),
            "-subj", self._subject(params),
            "-out", str(csr),
        ]
        if alt_names:
            args += ["-reqexts", "v3_req"]
        self._run(args, alt_names=alt_names)

    def create_self_signed_certificate(self, certificate: Path, private_key: Path,
                                       config_file: Path, params: CertificateParameters) -> None:
        with tempfile.TemporaryDirectory() as workdir:
            csr = Path(workdir) / "self_signed.csr"
            self.create_certificate_request(csr, private_key, config_file, params)
            self._run([
                "x509", "-req",
                "-days", str(params.validity),
                "-extensions", "v3_selfsigned",
                "-extfile", str(config_file),
                "-in", str(csr),
                "-signkey", str(private_key),
                "-out", str(certificate),
            ], alt_names=params.alt_names())

    def self_sign_request(self, certificate: Path, csr: Path, private_key: Path,
                          config_file: Path, params: CertificateParameters,
                          ca: bool = False) -> None:
        start, end = params.validity_window()
        self._run([
            "ca", "-batch", "-notext", "-selfsign",
            "-config", str(config_file),
            "-keyfile", str(private_key),
            "-startdate", format_openssl_date(start),
            "-enddate", format_openssl_date(end),
            "-extensions", "v3_ca" if ca else "v3_selfsigned",
            "-in", str(csr),
            "-out", str(certificate),
        ], alt_names=params.alt_names(), cwd=config_file.parent)

    def sign_certificate_request(self, certificate: Path, csr: Path, config_file: Path,
                                 ca_certificate: Path, ca_private_key: Path,
                                 params: CertificateParameters) -> None:
        start, end = params.validity_window()
        self._run([
            "ca", "-batch", "-notext",
            "-config", str(config_file),
            "-cert", str(ca_certificate),
            "-keyfile", str(ca_private_key),
            "-startdate", format_openssl_date(start),
            "-enddate", format_openssl_date(end),
            "-extensions", "v3_issued",
            "-in", str(csr),
            "-out", str(certificate),
        ], alt_names=params.alt_names(), cwd=config_file.parent)

    def revoke_certificate(self, certificate: Path, config_file: Path,
                           ca_certificate: Path, ca_private_key: Path, reason: str) -> None:
        self._run([
            "ca",
            "-config", str(config_file),
            "-cert", str(ca_certificate),
            "-keyfile", str(ca_private_key),
            "-revoke", str(certificate),
            "-crl_reason", reason,
        ], cwd=config_file.parent)

    def generate_crl(self, crl: Path, config_file: Path,
                     ca_certificate: Path, ca_private_key: Path) -> None:
        self._run([
            "ca", "-gencrl",
            "-config", str(config_file),
            "-cert", str(ca_certificate),
            "-keyfile", str(ca_private_key),
            "-out", str(crl),
        ], cwd=config_file.parent)

    def crl_to_der(self, crl: Path, output: Path) -> None:
        self._run(["crl", "-in", str(crl), "-outform", "der", "-out", str(output)])

    def to_der(self, certificate: Path, output: Optional[Path] = None) -> Path:
        output = output or certificate.with_suffix(".der")
        self._run(["x509", "-in", str(certificate), "-outform", "der", "-out", str(output)])
        return output

    def fingerprint(self, certificate: Path) -> str:
        # es. "SHA1 Fingerprint=AB:CD:..."
        output = self._run(["x509", "-fingerprint", "-sha1", "-noout", "-in", str(certificate)])
        if "=" not in output:
            raise CryptoToolchainError("Output di fingerprint inatteso", diagnostic=output)
        return output.split("=", 1)[1].replace(":", "").strip().lower()

    def dump_certificate(self, certificate: Path) -> str:
        return self._run(["x509", "-in", str(certificate), "-text", "-noout"])
