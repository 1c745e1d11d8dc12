"""
TLS bootstrap for the validating webhook.

Runs once at startup: reuses the certificate stored in the secret store
or generates a self-signed one, writes it where the HTTPS server reads
it, and publishes the certificate as the webhook's CA bundle.
"""

import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

logger = logging.getLogger(__name__)

CERT_FILE = "tls.crt"
KEY_FILE = "tls.key"
SECRET_TYPE_TLS = "kubernetes.io/tls"
CERT_VALIDITY = timedelta(days=365)


class CertificateError(Exception):
    """Raised when the TLS material cannot be loaded, generated or published."""


def generate_self_signed_cert(common_name: str) -> Tuple[bytes, bytes]:
    """
    Generate a self-signed server certificate.

    RSA-2048, subject CN and DNS SAN set to ``common_name``, valid for
    one year.

    Returns:
        (certificate PEM, private key PEM)
    """
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)

    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + CERT_VALIDITY)
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(common_name)]), critical=False)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False
        )
        .sign(key, hashes.SHA256())
    )

    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return cert_pem, key_pem


def write_cert_files(cert_dir: str, cert_pem: bytes, key_pem: bytes) -> Tuple[Path, Path]:
    """Write tls.crt (0644) and tls.key (0600) into ``cert_dir``."""
    directory = Path(cert_dir)
    directory.mkdir(parents=True, exist_ok=True)

    cert_path = directory / CERT_FILE
    key_path = directory / KEY_FILE
    cert_path.write_bytes(cert_pem)
    os.chmod(cert_path, 0o644)
    key_path.write_bytes(key_pem)
    os.chmod(key_path, 0o600)
    return cert_path, key_path


async def load_or_generate_cert(
    store: Any,
    namespace: str,
    secret_name: str,
    cert_dir: str,
    common_name: str,
) -> Tuple[Path, Path]:
    """
    Materialize the webhook TLS pair in ``cert_dir``.

    An existing secret is reused as-is; otherwise a new pair is generated
    and stored as a TLS secret.

    Raises:
        CertificateError: If the secret exists without both keys.
    """
    secret = await store.get_secret(namespace, secret_name)
    if secret is not None:
        data = secret.get("data") or {}
        if CERT_FILE not in data or KEY_FILE not in data:
            raise CertificateError(
                f"secret {namespace}/{secret_name} exists but does not contain "
                f"{CERT_FILE} and {KEY_FILE}"
            )
        logger.info(f"Loaded webhook certificate from secret {namespace}/{secret_name}")
        return write_cert_files(
            cert_dir, data[CERT_FILE].encode(), data[KEY_FILE].encode()
        )

    cert_pem, key_pem = generate_self_signed_cert(common_name)
    paths = write_cert_files(cert_dir, cert_pem, key_pem)
    await store.create_secret(
        namespace,
        secret_name,
        {CERT_FILE: cert_pem.decode(), KEY_FILE: key_pem.decode()},
        secret_type=SECRET_TYPE_TLS,
    )
    logger.info(f"Generated self-signed webhook certificate for {common_name}")
    return paths


async def publish_ca_bundle(
    store: Any,
    configuration_name: str,
    webhook_name: str,
    namespace: str,
    secret_name: str,
    url: str,
) -> None:
    """
    Publish the webhook certificate as the trust bundle for its callers.

    Raises:
        CertificateError: If the secret is missing or holds no certificate.
    """
    secret = await store.get_secret(namespace, secret_name)
    if secret is None:
        raise CertificateError(f"secret {namespace}/{secret_name} not found")

    ca_bundle = (secret.get("data") or {}).get(CERT_FILE)
    if not ca_bundle:
        raise CertificateError(
            f"secret {namespace}/{secret_name} does not contain a valid {CERT_FILE}"
        )

    await store.upsert_webhook_ca_bundle(configuration_name, webhook_name, url, ca_bundle)
