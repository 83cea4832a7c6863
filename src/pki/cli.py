"""
Interfaccia a riga di comando della PKI.

Esempi:
    pki-tool createCA
    pki-tool createPKI
    pki-tool certificate --selfSigned -a urn:host:app -o my_certificate.pem
    pki-tool revoke my_certificate.pem
    pki-tool verify peer.pem --applicationUri urn:host:peer
"""

import functools
import logging
import shutil
import sys
from pathlib import Path
from typing import Optional, Tuple

import click
from pydantic import ValidationError

from monitoring.security_monitoring import SecurityMonitor, setup_security_logging

from .config import PKISettings
from .context import PKIContext
from .demo import clean_demo_certificates, create_default_certificates
from .errors import ConfigurationError, FileSystemError, InvalidParameters, PKIError
from .models import (
    KEY_SIZES,
    Certificate,
    CertificateRequestParameters,
    SelfSignedCertificateParameters,
    SigningParameters,
    Subject,
)
from .revocation import RevocationReason
from .utils import get_fully_qualified_domain_name, make_application_urn

logger = logging.getLogger(__name__)

SECURITY_LOG_NAME = "security_events.log"
KEY_SIZE_CHOICES = [str(size) for size in KEY_SIZES]


def handle_errors(func):
    """Riporta gli errori della PKI come messaggio e codice di uscita non nullo."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except PKIError as e:
            click.echo(f"❌ {e}", err=True)
            sys.exit(1)
        except ValidationError as e:
            click.echo(f"❌ {InvalidParameters(str(e))}", err=True)
            sys.exit(1)
    return wrapper


def _security_log_path(settings: PKISettings) -> Path:
    return settings.security_log or settings.root / SECURITY_LOG_NAME


@click.group()
@click.option("--root", "-r", default=None, help="Directory radice dei certificati ({CWD}/certificates)")
@click.option("--CAFolder", "-c", "ca_folder", default=None, help="Directory della CA ({root}/CA)")
@click.option("--PKIFolder", "-p", "pki_folder", default=None, help="Directory della PKI ({root}/PKI)")
@click.option("--keySize", "-k", "key_size", type=click.Choice(KEY_SIZE_CHOICES), default=None,
              help="Dimensione delle chiavi RSA")
@click.option("--silent", "-s", is_flag=True, help="Mostra solo avvisi ed errori")
@click.pass_context
@handle_errors
def cli(ctx: click.Context, root: Optional[str], ca_folder: Optional[str], pki_folder: Optional[str],
        key_size: Optional[str], silent: bool) -> None:
    """Gestione di Certificate Authority, PKI e trust store."""
    if isinstance(ctx.obj, PKIContext):
        return

    settings = PKISettings.from_env(
        root=root,
        ca_folder=ca_folder,
        pki_folder=pki_folder,
        key_size=int(key_size) if key_size else None,
    )
    logging.basicConfig(
        level=logging.WARNING if silent else settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    setup_security_logging(_security_log_path(settings))
    ctx.obj = PKIContext(settings)


@cli.command("demo")
@click.option("--dev", is_flag=True, help="Crea anche certificati scaduti, non attivi e revocati")
@click.option("--clean", is_flag=True, help="Rimuove i certificati della precedente esecuzione")
@click.option("--keySizes", "key_sizes", type=click.Choice(KEY_SIZE_CHOICES), multiple=True,
              help="Dimensioni delle chiavi (default: tutte)")
@click.pass_obj
@handle_errors
def demo_command(context: PKIContext, dev: bool, clean: bool, key_sizes: Tuple[str, ...]) -> None:
    """Crea i certificati dimostrativi per client, server e discovery server."""
    output_dir = context.settings.root
    if clean and output_dir.exists():
        removed = clean_demo_certificates(output_dir)
        click.echo(f"🧹 Rimossi {len(removed)} file")

    sizes = [int(size) for size in key_sizes] or list(KEY_SIZES)
    created = create_default_certificates(context, dev=dev, key_sizes=sizes, output_dir=output_dir)
    click.echo(f"✅ Certificati dimostrativi pronti in {output_dir} ({len(created)} nuovi file)")


@cli.command("createCA")
@click.pass_obj
@handle_errors
def create_ca_command(context: PKIContext) -> None:
    """Crea la Certificate Authority."""
    ca = context.certificate_authority
    ca.initialize()
    click.echo(f"✅ CA pronta: {ca.ca_certificate}")


@cli.command("createPKI")
@click.pass_obj
@handle_errors
def create_pki_command(context: PKIContext) -> None:
    """Crea la radice PKI con la chiave privata dell'endpoint."""
    manager = context.certificate_manager
    manager.initialize()
    click.echo(f"✅ PKI pronta: {manager.root_dir}")


@cli.command("certificate")
@click.option("--applicationUri", "-a", "application_uri", default=None,
              help="URI dell'applicazione (default: urn:<hostname>:PKI-Server)")
@click.option("--output", "-o", default="my_certificate.pem", type=click.Path(dir_okay=False),
              help="File del certificato da produrre")
@click.option("--selfSigned", "-s", "self_signed", is_flag=True, help="Certificato auto-firmato")
@click.option("--validity", "-v", default=365, type=int, help="Validità in giorni")
@click.option("--dns", multiple=True, help="Nome DNS alternativo (ripetibile)")
@click.option("--ip", multiple=True, help="Indirizzo IP alternativo (ripetibile)")
@click.option("--subject", default=None, help="Soggetto, es. /CN=server/O=Acme")
@click.pass_obj
@handle_errors
def certificate_command(context: PKIContext, application_uri: Optional[str], output: str,
                        self_signed: bool, validity: int, dns: Tuple[str, ...], ip: Tuple[str, ...],
                        subject: Optional[str]) -> None:
    """Crea un certificato per la PKI (firmato dalla CA o auto-firmato)."""
    hostname = get_fully_qualified_domain_name()
    application_uri = application_uri or make_application_urn(hostname, "PKI-Server")
    try:
        parsed_subject = Subject.parse(subject) if subject else Subject()
    except ValueError as e:
        raise InvalidParameters(f"Soggetto non valido: {e}") from e
    common = dict(
        application_uri=application_uri,
        dns=dns or (hostname,),
        ip=ip,
        subject=parsed_subject,
        validity=validity,
    )
    output_path = Path(output).absolute()

    manager = context.certificate_manager
    manager.initialize()

    if self_signed:
        certificate = manager.create_self_signed_certificate(
            SelfSignedCertificateParameters(output_file=output_path, **common)
        )
        click.echo(f"✅ Certificato auto-firmato: {certificate}")
        return

    ca = context.certificate_authority
    ca.initialize()
    csr = manager.create_certificate_request(CertificateRequestParameters(**common))
    signed = ca.sign_certificate_request(csr.with_suffix(".pem"), csr, SigningParameters(**common))
    try:
        shutil.copyfile(signed, output_path)
    except OSError as e:
        raise FileSystemError(f"Impossibile copiare {signed} in {output_path}: {e}") from e
    click.echo(f"✅ Certificato firmato dalla CA: {output_path}")


@cli.command("revoke")
@click.argument("certificate_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--reason", "-r", default=RevocationReason.KEY_COMPROMISE.value,
              type=click.Choice([reason.value for reason in RevocationReason], case_sensitive=False),
              help="Motivo della revoca")
@click.pass_obj
@handle_errors
def revoke_command(context: PKIContext, certificate_file: str, reason: str) -> None:
    """Revoca un certificato emesso dalla CA e aggiorna la CRL."""
    entry = context.certificate_authority.revoke_certificate(
        Path(certificate_file), RevocationReason.parse(reason)
    )
    click.echo(f"✅ Certificato revocato: {entry.subject} ({entry.reason.value})")


@cli.command("dump")
@click.argument("certificate_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
@handle_errors
def dump_command(context: PKIContext, certificate_file: str) -> None:
    """Mostra il contenuto di un certificato."""
    click.echo(context.toolchain.dump_certificate(Path(certificate_file)))


@cli.command("toder")
@click.argument("certificate_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
@handle_errors
def toder_command(context: PKIContext, certificate_file: str) -> None:
    """Converte un certificato PEM in DER."""
    output = context.toolchain.to_der(Path(certificate_file))
    click.echo(f"✅ Certificato DER: {output}")


@cli.command("fingerprint")
@click.argument("certificate_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
@handle_errors
def fingerprint_command(context: PKIContext, certificate_file: str) -> None:
    """Mostra l'impronta SHA-1 di un certificato."""
    click.echo(context.toolchain.fingerprint(Path(certificate_file)))


@cli.command("trust")
@click.argument("certificate_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
@handle_errors
def trust_command(context: PKIContext, certificate_file: str) -> None:
    """Sposta un certificato tra quelli attendibili."""
    certificate = Certificate.load(certificate_file)
    context.certificate_manager.trust_certificate(certificate)
    click.echo(f"✅ Certificato attendibile: {certificate.thumbprint}")


@cli.command("reject")
@click.argument("certificate_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
@handle_errors
def reject_command(context: PKIContext, certificate_file: str) -> None:
    """Sposta un certificato tra quelli rifiutati."""
    certificate = Certificate.load(certificate_file)
    context.certificate_manager.reject_certificate(certificate)
    click.echo(f"🚫 Certificato rifiutato: {certificate.thumbprint}")


@cli.command("status")
@click.argument("certificate_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
@handle_errors
def status_command(context: PKIContext, certificate_file: str) -> None:
    """Mostra lo stato di fiducia di un certificato (i nuovi vengono rifiutati)."""
    certificate = Certificate.load(certificate_file)
    status = context.certificate_manager.get_certificate_status(certificate)
    click.echo(f"{certificate.thumbprint} {status.value}")


@cli.command("verify")
@click.argument("certificate_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--applicationUri", "-a", "application_uri", default=None,
              help="URI applicativo atteso nel certificato")
@click.pass_obj
@handle_errors
def verify_command(context: PKIContext, certificate_file: str, application_uri: Optional[str]) -> None:
    """Verifica un certificato: validità, fiducia, revoca e URI."""
    certificate = Certificate.load(certificate_file)
    context.certificate_manager.initialize()
    result = context.verification_engine.verify(certificate, application_uri=application_uri)
    result.raise_for_failure()
    click.echo(f"✅ Certificato valido: {certificate.thumbprint}")


@cli.command("alerts")
@click.option("--threshold", default=3, type=int, help="Fallimenti che generano un avviso")
@click.option("--window", "window_minutes", default=5, type=int, help="Finestra in minuti")
@click.pass_obj
@handle_errors
def alerts_command(context: PKIContext, threshold: int, window_minutes: int) -> None:
    """Segnala i certificati con verifiche fallite ripetute."""
    log_file = _security_log_path(context.settings)
    if not log_file.exists():
        raise ConfigurationError(f"Log di sicurezza non trovato: {log_file}")
    alerts = SecurityMonitor.check_for_alerts(log_file, threshold=threshold, window_minutes=window_minutes)
    if not alerts:
        click.echo("✅ Nessun avviso")
        return
    for thumbprint, count in alerts.items():
        click.echo(f"⚠️  {thumbprint}: {count} verifiche fallite")


def main() -> None:
    cli(prog_name="pki-tool")


if __name__ == "__main__":
    main()
