"""Utility per nomi host e URI applicativi."""

import functools
import hashlib
import os
import socket
import sys

# openssl non accetta URI più lunghi di 64 caratteri nel certificato
MAX_APPLICATION_URN_LENGTH = 64


@functools.lru_cache(maxsize=1)
def _fully_qualified_domain_name() -> str:
    if sys.platform == "win32":
        domain = os.environ.get("USERDNSDOMAIN", "")
        name = os.environ.get("COMPUTERNAME", socket.gethostname())
        return f"{name}.{domain}" if domain else name
    fqdn = socket.getfqdn()
    return fqdn or socket.gethostname()


def get_fully_qualified_domain_name(max_length: int = 0) -> str:
    """
    Nome di dominio completo dell'host, eventualmente troncato.

    Args:
        max_length: Lunghezza massima (0 = nessun limite)

    Returns:
        Nome host completo
    """
    fqdn = _fully_qualified_domain_name()
    return fqdn[:max_length] if max_length else fqdn


def make_application_urn(hostname: str, suffix: str) -> str:
    """
    Compone l'URN applicativo ``urn:<hostname>:<suffix>``.

    Se l'URN raggiungerebbe il limite di openssl, il nome host viene
    sostituito dai primi 16 caratteri del suo hash MD5.
    """
    host_part = hostname
    if len(hostname) + 7 + len(suffix) >= MAX_APPLICATION_URN_LENGTH:
        host_part = hashlib.md5(hostname.encode("utf-8")).hexdigest()[:16]
    urn = f"urn:{host_part}:{suffix}"
    if len(urn) > MAX_APPLICATION_URN_LENGTH:
        raise ValueError(f"URN applicativo troppo lungo: {urn}")
    return urn
