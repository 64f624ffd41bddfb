"""Trust store loading and one-way TLS context construction."""

import ssl
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding, pkcs12

from ..errors import TlsSetupError
from ..logging_config import get_logger
from ..models import TlsConfig

logger = get_logger(__name__)

PEM_MARKER = b"-----BEGIN CERTIFICATE-----"


def load_trust_store(path: str, password: str) -> list[x509.Certificate]:
    """
    Read the trusted certificates from a trust store.

    PEM bundles are read as-is (the password is not needed); anything else is
    treated as a password protected PKCS#12 store.

    Raises:
        TlsSetupError: The file cannot be read, parsed, or holds no certificates.
    """
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise TlsSetupError(f"Cannot read trust store {path}: {e}") from e

    try:
        if PEM_MARKER in data:
            certificates = x509.load_pem_x509_certificates(data)
        else:
            store = pkcs12.load_pkcs12(data, password.encode("utf-8") if password else None)
            certificates = [entry.certificate for entry in store.additional_certs]
            if store.cert is not None:
                certificates.insert(0, store.cert.certificate)
    except (ValueError, TypeError) as e:
        raise TlsSetupError(f"Cannot parse trust store {path}: {e}") from e

    if not certificates:
        raise TlsSetupError(f"Trust store {path} contains no certificates")
    return certificates


def build_tls_context(tls: TlsConfig) -> ssl.SSLContext:
    """Build a client context that verifies the broker against the trust store only."""
    certificates = load_trust_store(tls.trust_store_path, tls.trust_store_password)
    cadata = "".join(cert.public_bytes(Encoding.PEM).decode("ascii") for cert in certificates)

    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    try:
        context.load_verify_locations(cadata=cadata)
    except ssl.SSLError as e:
        raise TlsSetupError(f"Cannot use trust store {tls.trust_store_path}: {e}") from e

    logger.info(
        "Loaded %d trusted certificate(s) from %s", len(certificates), tls.trust_store_path
    )
    return context
