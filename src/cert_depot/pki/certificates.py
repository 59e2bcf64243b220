"""
Certificate model builder.

    cert = build_certificate_details(der, crypto)
    cert.subject.common_name, cert.public_key.size_bits, cert.extensions

Two fingerprint pairs are computed: over the full certificate DER and over
the SubjectPublicKeyInfo DER.
"""

from __future__ import annotations

from typing import Any

import structlog
from asn1crypto import keys
from asn1crypto import x509 as asn1_x509

from cert_depot.domain.errors import UnsupportedObjectType
from cert_depot.domain.models import (
    AlgorithmIdentifier,
    Certificate,
    Fingerprints,
    PublicKeyInfo,
    SerialNumber,
)
from cert_depot.domain.ports import CryptoProvider
from cert_depot.pki.extensions import CERTIFICATE_DECODERS, ExtensionOwner, decode_extensions
from cert_depot.pki.names import describe_name
from cert_depot.pki.oids import (
    CURVES,
    EC_PUBLIC_KEY,
    RSA_ENCRYPTION,
    key_algorithm_name,
    signature_algorithm_name,
)
from cert_depot.pki.primitives import (
    UniversalTag,
    child_nodes,
    decimal_from_hex,
    ensure_der,
    normalize_time,
    read_node,
    strip_unused_bits,
    to_hex,
)

log = structlog.get_logger()

_WIRE_VERSIONS = {"v1": 0, "v2": 1, "v3": 2}


def fingerprints(data: bytes, crypto: CryptoProvider) -> Fingerprints:
    return Fingerprints(sha1=crypto.sha1(data), sha256=crypto.sha256(data))


def serial_number(integer: Any) -> SerialNumber:
    """Serial from an asn1crypto Integer: content-byte hex plus its decimal value."""
    hex_value = to_hex(integer.contents)
    return SerialNumber(hex=hex_value, decimal=decimal_from_hex(hex_value))


def signature_algorithm(algorithm: Any) -> AlgorithmIdentifier:
    oid = algorithm["algorithm"].dotted
    return AlgorithmIdentifier(oid=oid, name=signature_algorithm_name(oid))


def _wire_version(version: Any) -> int:
    native = version.native
    if isinstance(native, str):
        return _WIRE_VERSIONS[native]
    return int(native)


def _public_key_info(spki: keys.PublicKeyInfo, crypto: CryptoProvider) -> PublicKeyInfo:
    oid = spki["algorithm"]["algorithm"].dotted
    spki_der = spki.dump()
    # read raw: indexing public_key makes asn1crypto parse it as an RSA/EC key
    key_bits = child_nodes(read_node(spki_der).contents)[1].expect(UniversalTag.BIT_STRING)
    key_bytes = strip_unused_bits(key_bits.contents)

    size_bits: int | None = None
    exponent: int | None = None
    modulus_hex: str | None = None
    curve_oid: str | None = None
    curve_name: str | None = None

    if oid == RSA_ENCRYPTION:
        try:
            rsa_key = keys.RSAPublicKey.load(key_bytes, strict=True)
            modulus = rsa_key["modulus"].contents
            exponent = rsa_key["public_exponent"].native
        except ValueError as e:
            log.warning("certificate.rsa_key_unreadable", error=str(e))
        else:
            if modulus[:1] == b"\x00":
                modulus = modulus[1:]
            modulus_hex = to_hex(modulus)
            size_bits = len(modulus) * 8
    elif oid == EC_PUBLIC_KEY:
        parameters = spki["algorithm"]["parameters"]
        if isinstance(parameters, keys.ECDomainParameters) and parameters.name == "named":
            curve_oid = parameters.chosen.dotted
            curve_name = CURVES.get(curve_oid, curve_oid)
        if key_bytes:
            size_bits = (len(key_bytes) - 1) // 2 * 8
    elif oid in CURVES:
        curve_oid = oid
        curve_name = CURVES[oid]
        size_bits = len(key_bytes) * 8

    return PublicKeyInfo(
        algorithm=AlgorithmIdentifier(oid=oid, name=key_algorithm_name(oid)),
        key_bytes=key_bytes,
        fingerprints=fingerprints(spki_der, crypto),
        spki_der=spki_der,
        size_bits=size_bits,
        exponent=exponent,
        modulus_hex=modulus_hex,
        curve_oid=curve_oid,
        curve_name=curve_name,
    )


def _assemble(certificate: asn1_x509.Certificate, der: bytes, crypto: CryptoProvider) -> Certificate:
    tbs = certificate["tbs_certificate"]
    validity = tbs["validity"]
    return Certificate(
        version=_wire_version(tbs["version"]) + 1,
        serial=serial_number(tbs["serial_number"]),
        issuer=describe_name(tbs["issuer"]),
        subject=describe_name(tbs["subject"]),
        not_before=normalize_time(validity["not_before"]),
        not_after=normalize_time(validity["not_after"]),
        signature_algorithm=signature_algorithm(certificate["signature_algorithm"]),
        signature_value=strip_unused_bits(certificate["signature_value"].contents),
        public_key=_public_key_info(tbs["subject_public_key_info"], crypto),
        fingerprints=fingerprints(der, crypto),
        extensions=decode_extensions(
            tbs["extensions"], CERTIFICATE_DECODERS, ExtensionOwner.CERTIFICATE
        ),
        der=der,
    )


def build_certificate_details(der: bytes, crypto: CryptoProvider) -> Certificate:
    """
    Decode a DER certificate.

    Raises MalformedDER when the bytes are not DER at all and
    UnsupportedObjectType when they are DER but not a certificate. A broken
    extension never raises; it is reported on its own entry.
    """
    ensure_der(der)
    try:
        certificate = _assemble(asn1_x509.Certificate.load(der, strict=True), der, crypto)
    except (ValueError, TypeError, KeyError) as e:
        raise UnsupportedObjectType(
            "DER does not decode as an X.509 certificate", expected="certificate", reason=str(e)
        ) from e

    log.debug(
        "certificate.decoded",
        subject=certificate.subject.display,
        serial=certificate.serial.hex,
        extensions=len(certificate.extensions),
    )
    return certificate
