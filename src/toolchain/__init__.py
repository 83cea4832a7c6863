"""
Toolchain crittografico esterno.
Generazione chiavi, CSR, firme, revoche e conversioni tramite openssl.
"""

from .base import CryptoToolchain
from .openssl import OpenSSLToolchain
from .templates import PKI_CONFIGURATION_TEMPLATE, render_ca_configuration

__version__ = "1.0.0"

__all__ = [
    "CryptoToolchain",
    "OpenSSLToolchain",
    "PKI_CONFIGURATION_TEMPLATE",
    "render_ca_configuration",
]
