import datetime
import shutil
import subprocess
from pathlib import Path

import pytest

from pki.errors import CryptoToolchainError
from pki.models import Certificate, CertificateParameters, SigningParameters, Subject
from toolchain.openssl import OpenSSLToolchain, format_openssl_date
from toolchain.templates import PKI_CONFIGURATION_TEMPLATE, render_ca_configuration


class Recorder:
    """Sostituisce subprocess.run registrando comandi e ambiente."""

    def __init__(self, stdout="", returncode=0, stderr=""):
        self.commands = []
        self.envs = []
        self.stdout = stdout
        self.returncode = returncode
        self.stderr = stderr

    def __call__(self, command, **kwargs):
        self.commands.append(command)
        self.envs.append(kwargs.get("env", {}))
        return subprocess.CompletedProcess(command, self.returncode, self.stdout, self.stderr)


@pytest.fixture
def recorder(monkeypatch):
    recorder = Recorder()
    monkeypatch.setattr(subprocess, "run", recorder)
    return recorder


def test_format_openssl_date():
    value = datetime.datetime(2024, 3, 5, 7, 8, 9, tzinfo=datetime.timezone.utc)
    assert format_openssl_date(value) == "240305070809Z"


def test_format_openssl_date_converts_to_utc():
    tz = datetime.timezone(datetime.timedelta(hours=2))
    value = datetime.datetime(2024, 3, 5, 9, 0, 0, tzinfo=tz)
    assert format_openssl_date(value) == "240305070000Z"


def test_render_ca_configuration():
    text = render_ca_configuration("C:\\pki\\CA")
    assert "dir                     = C:/pki/CA" in text
    assert "%%ROOT_FOLDER%%" not in text


def test_certificate_request_command(recorder, tmp_path):
    toolchain = OpenSSLToolchain("/usr/bin/openssl")
    params = CertificateParameters(
        application_uri="urn:host:app", dns=("host",), subject=Subject(common_name="app"),
    )

    toolchain.create_certificate_request(tmp_path / "a.csr", tmp_path / "key.pem",
                                         tmp_path / "openssl.cnf", params)

    command = recorder.commands[0]
    assert command[:3] == ["/usr/bin/openssl", "req", "-new"]
    assert command[command.index("-subj") + 1] == "/CN=app"
    assert command[-2:] == ["-reqexts", "v3_req"]
    assert recorder.envs[0]["ALTNAME"] == "URI:urn:host:app,DNS:host"


def test_certificate_request_without_alt_names(recorder, tmp_path):
    OpenSSLToolchain().create_certificate_request(
        tmp_path / "a.csr", tmp_path / "key.pem", tmp_path / "openssl.cnf", CertificateParameters(),
    )

    command = recorder.commands[0]
    assert "-reqexts" not in command
    assert command[command.index("-subj") + 1] == "/CN=localhost"
    assert recorder.envs[0]["ALTNAME"] == ""


def test_sign_request_passes_validity_window(recorder, tmp_path):
    start = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)
    params = SigningParameters(application_uri="urn:host:app", start_date=start, validity=30)
    config = tmp_path / "conf" / "caconfig.cnf"

    OpenSSLToolchain().sign_certificate_request(
        tmp_path / "out.pem", tmp_path / "in.csr", config,
        tmp_path / "cacert.pem", tmp_path / "cakey.pem", params,
    )

    command = recorder.commands[0]
    assert command[1] == "ca"
    assert command[command.index("-startdate") + 1] == "240101000000Z"
    assert command[command.index("-enddate") + 1] == "240131000000Z"
    assert command[command.index("-extensions") + 1] == "v3_issued"


def test_self_sign_request_uses_ca_extensions(recorder, tmp_path):
    OpenSSLToolchain().self_sign_request(
        tmp_path / "cacert.pem", tmp_path / "ca.csr", tmp_path / "cakey.pem",
        tmp_path / "caconfig.cnf", CertificateParameters(), ca=True,
    )

    command = recorder.commands[0]
    assert "-selfsign" in command
    assert command[command.index("-extensions") + 1] == "v3_ca"


def test_revoke_command(recorder, tmp_path):
    OpenSSLToolchain().revoke_certificate(
        tmp_path / "cert.pem", tmp_path / "caconfig.cnf",
        tmp_path / "cacert.pem", tmp_path / "cakey.pem", "keyCompromise",
    )

    command = recorder.commands[0]
    assert command[command.index("-revoke") + 1] == str(tmp_path / "cert.pem")
    assert command[-2:] == ["-crl_reason", "keyCompromise"]


def test_fingerprint_is_normalized(recorder, tmp_path):
    recorder.stdout = "SHA1 Fingerprint=AB:CD:EF:01\n"

    assert OpenSSLToolchain().fingerprint(tmp_path / "cert.pem") == "abcdef01"


def test_unexpected_fingerprint_output(recorder, tmp_path):
    recorder.stdout = "garbage"

    with pytest.raises(CryptoToolchainError):
        OpenSSLToolchain().fingerprint(tmp_path / "cert.pem")


def test_to_der_default_output(recorder, tmp_path):
    output = OpenSSLToolchain().to_der(tmp_path / "cert.pem")
    assert output == tmp_path / "cert.der"
    assert recorder.commands[0][-2:] == ["-out", str(tmp_path / "cert.der")]


def test_failure_carries_diagnostic(recorder, tmp_path):
    recorder.returncode = 1
    recorder.stderr = "unable to load Private Key"

    with pytest.raises(CryptoToolchainError) as exc_info:
        OpenSSLToolchain().extract_public_key(tmp_path / "key.pem", tmp_path / "key.pub")

    error = exc_info.value
    assert error.returncode == 1
    assert error.diagnostic == "unable to load Private Key"
    assert error.command[1] == "rsa"
    assert "unable to load Private Key" in str(error)


def test_missing_executable(tmp_path):
    toolchain = OpenSSLToolchain(str(tmp_path / "no-such-openssl"))

    with pytest.raises(CryptoToolchainError):
        toolchain.ensure_installed()


def test_extra_environment(recorder):
    OpenSSLToolchain(environment={"OPENSSL_CONF": "/dev/null"}).ensure_installed()
    assert recorder.envs[0]["OPENSSL_CONF"] == "/dev/null"


# =============================================================================
# INTEGRAZIONE CON OPENSSL REALE
# =============================================================================

requires_openssl = pytest.mark.skipif(shutil.which("openssl") is None, reason="openssl non installato")


@requires_openssl
def test_self_signed_certificate_with_real_openssl(tmp_path):
    toolchain = OpenSSLToolchain()
    config = tmp_path / "openssl.cnf"
    config.write_text(PKI_CONFIGURATION_TEMPLATE)
    key = tmp_path / "key.pem"
    certificate = tmp_path / "cert.pem"
    params = CertificateParameters(application_uri="urn:localhost:test", dns=("localhost",), validity=10)

    toolchain.generate_private_key(key, 2048)
    toolchain.create_self_signed_certificate(certificate, key, config, params)

    loaded = Certificate.load(certificate)
    assert loaded.subject_uri == "urn:localhost:test"
    assert toolchain.fingerprint(certificate) == loaded.thumbprint
    assert Path(toolchain.to_der(certificate)).read_bytes() == loaded.der
    assert "urn:localhost:test" in toolchain.dump_certificate(certificate)
