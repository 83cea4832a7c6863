import datetime
import hashlib
import ipaddress
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from pki.config import PKISettings
from pki.errors import CryptoToolchainError
from pki.layout import PKILayout
from pki.models import Certificate, CertificateParameters, Subject
from pki.trust_store import TrustStore
from toolchain.base import CryptoToolchain

TEST_KEY_SIZE = 1024

_NAME_OIDS = {
    "common_name": NameOID.COMMON_NAME,
    "organization": NameOID.ORGANIZATION_NAME,
    "organizational_unit": NameOID.ORGANIZATIONAL_UNIT_NAME,
    "locality": NameOID.LOCALITY_NAME,
    "state": NameOID.STATE_OR_PROVINCE_NAME,
    "country": NameOID.COUNTRY_NAME,
    "domain_component": NameOID.DOMAIN_COMPONENT,
}


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def to_name(subject: Subject, fallback: str) -> x509.Name:
    attributes = [
        x509.NameAttribute(oid, getattr(subject, field))
        for field, oid in _NAME_OIDS.items()
        if getattr(subject, field)
    ]
    return x509.Name(attributes or [x509.NameAttribute(NameOID.COMMON_NAME, fallback)])


def alt_names(params: CertificateParameters) -> List[x509.GeneralName]:
    names: List[x509.GeneralName] = []
    if params.application_uri:
        names.append(x509.UniformResourceIdentifier(params.application_uri))
    names.extend(x509.DNSName(name) for name in params.dns)
    names.extend(x509.IPAddress(ipaddress.ip_address(address)) for address in params.ip)
    return names


def load_key(path: Path) -> rsa.RSAPrivateKey:
    return serialization.load_pem_private_key(Path(path).read_bytes(), password=None)


class FakeToolchain(CryptoToolchain):
    """Toolchain in-process basato su cryptography, con registro delle chiamate."""

    def __init__(self):
        self.calls: List[Tuple[str, tuple]] = []
        self.fail_on: Dict[str, str] = {}
        self.revoked: List[Tuple[int, str]] = []

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, args))
        if name in self.fail_on:
            raise CryptoToolchainError(f"{name} fallito", command=[name], returncode=1,
                                       diagnostic=self.fail_on[name])

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    @staticmethod
    def _write_certificate(path: Path, certificate: x509.Certificate) -> None:
        Path(path).write_bytes(certificate.public_bytes(serialization.Encoding.PEM))

    @staticmethod
    def _next_serial(config_file: Path) -> int:
        serial_file = Path(config_file).parent.parent / "serial"
        if not serial_file.exists():
            return x509.random_serial_number()
        serial = int(serial_file.read_text().strip(), 16)
        serial_file.write_text(f"{serial + 1:X}\n")
        return serial

    def _build(self, subject: x509.Name, issuer: x509.Name, public_key, signing_key,
               params: CertificateParameters, serial: int, ca: bool = False) -> x509.Certificate:
        start, end = params.validity_window()
        builder = (x509.CertificateBuilder()
                   .subject_name(subject)
                   .issuer_name(issuer)
                   .public_key(public_key)
                   .serial_number(serial)
                   .not_valid_before(start)
                   .not_valid_after(end)
                   .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True))
        names = alt_names(params)
        if names:
            builder = builder.add_extension(x509.SubjectAlternativeName(names), critical=False)
        return builder.sign(signing_key, hashes.SHA256())

    def ensure_installed(self) -> str:
        self._record("ensure_installed")
        return "FakeSSL 1.0"

    def generate_private_key(self, private_key: Path, key_size: int,
                             random_file: Optional[Path] = None) -> None:
        self._record("generate_private_key", private_key, key_size)
        key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
        Path(private_key).write_bytes(key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.TraditionalOpenSSL,
            serialization.NoEncryption(),
        ))

    def extract_public_key(self, private_key: Path, public_key: Path) -> None:
        self._record("extract_public_key", private_key, public_key)
        Path(public_key).write_bytes(load_key(private_key).public_key().public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        ))

    def create_certificate_request(self, csr: Path, private_key: Path, config_file: Path,
                                   params: CertificateParameters) -> None:
        self._record("create_certificate_request", csr, params)
        builder = x509.CertificateSigningRequestBuilder().subject_name(
            to_name(params.subject, params.application_uri or "localhost")
        )
        names = alt_names(params)
        if names:
            builder = builder.add_extension(x509.SubjectAlternativeName(names), critical=False)
        request = builder.sign(load_key(private_key), hashes.SHA256())
        Path(csr).write_bytes(request.public_bytes(serialization.Encoding.PEM))

    def create_self_signed_certificate(self, certificate: Path, private_key: Path,
                                       config_file: Path, params: CertificateParameters) -> None:
        self._record("create_self_signed_certificate", certificate, params)
        key = load_key(private_key)
        name = to_name(params.subject, params.application_uri or "localhost")
        self._write_certificate(certificate, self._build(
            name, name, key.public_key(), key, params, x509.random_serial_number()))

    def self_sign_request(self, certificate: Path, csr: Path, private_key: Path,
                          config_file: Path, params: CertificateParameters,
                          ca: bool = False) -> None:
        self._record("self_sign_request", certificate, params, ca)
        request = x509.load_pem_x509_csr(Path(csr).read_bytes())
        key = load_key(private_key)
        self._write_certificate(certificate, self._build(
            request.subject, request.subject, request.public_key(), key, params,
            self._next_serial(config_file), ca=ca))

    def sign_certificate_request(self, certificate: Path, csr: Path, config_file: Path,
                                 ca_certificate: Path, ca_private_key: Path,
                                 params: CertificateParameters) -> None:
        self._record("sign_certificate_request", certificate, params)
        request = x509.load_pem_x509_csr(Path(csr).read_bytes())
        issuer = x509.load_pem_x509_certificate(Path(ca_certificate).read_bytes())
        self._write_certificate(certificate, self._build(
            request.subject, issuer.subject, request.public_key(), load_key(ca_private_key),
            params, self._next_serial(config_file)))

    def revoke_certificate(self, certificate: Path, config_file: Path,
                           ca_certificate: Path, ca_private_key: Path, reason: str) -> None:
        self._record("revoke_certificate", certificate, reason)
        cert = x509.load_pem_x509_certificate(Path(certificate).read_bytes())
        self.revoked.append((cert.serial_number, reason))

    def generate_crl(self, crl: Path, config_file: Path,
                     ca_certificate: Path, ca_private_key: Path) -> None:
        self._record("generate_crl", crl)
        issuer = x509.load_pem_x509_certificate(Path(ca_certificate).read_bytes())
        now = utc_now()
        builder = (x509.CertificateRevocationListBuilder()
                   .issuer_name(issuer.subject)
                   .last_update(now)
                   .next_update(now + datetime.timedelta(days=30)))
        for serial, _ in self.revoked:
            builder = builder.add_revoked_certificate(
                x509.RevokedCertificateBuilder().serial_number(serial).revocation_date(now).build()
            )
        crl_object = builder.sign(load_key(ca_private_key), hashes.SHA256())
        Path(crl).write_bytes(crl_object.public_bytes(serialization.Encoding.PEM))

    def crl_to_der(self, crl: Path, output: Path) -> None:
        self._record("crl_to_der", crl, output)
        crl_object = x509.load_pem_x509_crl(Path(crl).read_bytes())
        Path(output).write_bytes(crl_object.public_bytes(serialization.Encoding.DER))

    def to_der(self, certificate: Path, output: Optional[Path] = None) -> Path:
        self._record("to_der", certificate)
        output = output or Path(certificate).with_suffix(".der")
        Path(output).write_bytes(Certificate.load(certificate).der)
        return output

    def fingerprint(self, certificate: Path) -> str:
        self._record("fingerprint", certificate)
        return hashlib.sha1(Certificate.load(certificate).der).hexdigest()

    def dump_certificate(self, certificate: Path) -> str:
        self._record("dump_certificate", certificate)
        cert = Certificate.load(certificate)
        return f"Subject: {cert.subject}\nIssuer: {cert.issuer}\nSerial: {cert.serial_number:X}"


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(scope="session")
def signing_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=TEST_KEY_SIZE)


@pytest.fixture
def make_certificate(signing_key):
    """Crea certificati di prova con finestra di validità, URI ed emittente a scelta."""

    def factory(common_name: str = "peer",
                not_before: Optional[datetime.datetime] = None,
                not_after: Optional[datetime.datetime] = None,
                application_uri: Optional[str] = "urn:test:peer",
                issuer: Optional[str] = None,
                serial_number: Optional[int] = None) -> Certificate:
        now = utc_now()
        subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
        issuer_name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, issuer)]) if issuer else subject
        builder = (x509.CertificateBuilder()
                   .subject_name(subject)
                   .issuer_name(issuer_name)
                   .public_key(signing_key.public_key())
                   .serial_number(serial_number or x509.random_serial_number())
                   .not_valid_before(not_before or now - datetime.timedelta(days=1))
                   .not_valid_after(not_after or now + datetime.timedelta(days=365)))
        if application_uri:
            builder = builder.add_extension(
                x509.SubjectAlternativeName([x509.UniformResourceIdentifier(application_uri)]),
                critical=False,
            )
        certificate = builder.sign(signing_key, hashes.SHA256())
        return Certificate(certificate.public_bytes(serialization.Encoding.DER))

    return factory


@pytest.fixture
def toolchain() -> FakeToolchain:
    return FakeToolchain()


@pytest.fixture
def pki_layout(tmp_path) -> PKILayout:
    layout = PKILayout(tmp_path / "PKI")
    layout.ensure_directories()
    return layout


@pytest.fixture
def trust_store(pki_layout) -> TrustStore:
    return TrustStore(pki_layout)


@pytest.fixture
def settings(tmp_path) -> PKISettings:
    root = tmp_path / "certificates"
    return PKISettings(
        root=root,
        ca_folder=root / "CA",
        pki_folder=root / "PKI",
        key_size=TEST_KEY_SIZE,
        security_log=tmp_path / "security.log",
    )
