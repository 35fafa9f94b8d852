"""Ephemeral self-signed certificate authority for the secure gRPC pair.

The bundle lives in process memory only. The certificate doubles as the
server's chain and as the client's only root of trust, so its SAN set must
cover every address the client dials (``localhost``, ``127.0.0.1``) and the
wildcard bind address (``0.0.0.0``).
"""
from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from core.config import CertificateSettings
from core.exceptions import CertificateGenerationError
from core.logging_config import get_logger


logger = get_logger(__name__, component="certificate")

SubjectField = Tuple[str, str]
ExtensionSpec = Tuple[x509.ExtensionType, bool]

_NAME_OIDS = {
    "commonName": NameOID.COMMON_NAME,
    "countryName": NameOID.COUNTRY_NAME,
    "stateOrProvinceName": NameOID.STATE_OR_PROVINCE_NAME,
    "localityName": NameOID.LOCALITY_NAME,
    "organizationName": NameOID.ORGANIZATION_NAME,
    "organizationalUnitName": NameOID.ORGANIZATIONAL_UNIT_NAME,
    "emailAddress": NameOID.EMAIL_ADDRESS,
}

DEFAULT_SUBJECT: Sequence[SubjectField] = CertificateSettings().subject_fields()


@dataclass(frozen=True)
class CertificateBundle:
    certificate_pem: str
    private_key_pem: str

    @property
    def certificate(self) -> bytes:
        return self.certificate_pem.encode("ascii")

    @property
    def private_key(self) -> bytes:
        return self.private_key_pem.encode("ascii")


def default_extensions() -> list[ExtensionSpec]:
    return [
        (x509.BasicConstraints(ca=True, path_length=None), True),
        (
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=True,  # nonRepudiation
                key_encipherment=True,
                data_encipherment=True,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            True,
        ),
        (
            x509.SubjectAlternativeName([
                x509.DNSName("localhost"),
                x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
                x509.IPAddress(ipaddress.ip_address("0.0.0.0")),
            ]),
            False,
        ),
    ]


def _build_name(subject_fields: Sequence[SubjectField]) -> x509.Name:
    attributes = []
    for name, value in subject_fields:
        oid = _NAME_OIDS.get(name)
        if oid is None:
            raise CertificateGenerationError(f"unknown subject field {name!r}")
        attributes.append(x509.NameAttribute(oid, value))
    return x509.Name(attributes)


def generate(
    subject_fields: Sequence[SubjectField] = DEFAULT_SUBJECT,
    extensions: Optional[Sequence[ExtensionSpec]] = None,
    *,
    key_size: int = 2048,
    valid_days: int = 365,
) -> CertificateBundle:
    """Generate a self-signed certificate and its RSA private key as PEM text.

    Args:
        subject_fields: ordered ``(attribute name, value)`` pairs, e.g.
            ``("commonName", "localhost")``. Used as both subject and issuer.
        extensions: ``(extension, critical)`` pairs; defaults to
            :func:`default_extensions`.
        key_size: RSA modulus size in bits.
        valid_days: validity window starting now.

    Raises:
        CertificateGenerationError: on any failure, including an unknown
            subject attribute name. Startup cannot continue without it.
    """
    if extensions is None:
        extensions = default_extensions()

    try:
        name = _build_name(subject_fields)
        key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)

        not_before = datetime.now(timezone.utc)
        builder = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_before + timedelta(days=valid_days))
        )
        for extension, critical in extensions:
            builder = builder.add_extension(extension, critical=critical)
        cert = builder.sign(key, hashes.SHA256())

        bundle = CertificateBundle(
            certificate_pem=cert.public_bytes(serialization.Encoding.PEM).decode("ascii"),
            private_key_pem=key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            ).decode("ascii"),
        )
    except CertificateGenerationError:
        raise
    except Exception as exc:
        logger.error("certificate_generation_failed", error=str(exc), exc_info=True)
        raise CertificateGenerationError(str(exc)) from exc

    logger.info("certificate_generated", subject=name.rfc4514_string(), serial=hex(cert.serial_number))
    return bundle


def generate_from_settings(cfg: CertificateSettings) -> CertificateBundle:
    return generate(
        cfg.subject_fields(),
        key_size=cfg.key_size,
        valid_days=cfg.valid_days,
    )
