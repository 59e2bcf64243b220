"""
CRL model builder.

Only the first REVOKED_SAMPLE_SIZE entries are decoded; revoked_count always
reports the full list length. A CRL without nextUpdate is valid and simply
leaves next_update as None.
"""

from __future__ import annotations

from itertools import islice

import structlog
from asn1crypto import core
from asn1crypto import crl as asn1_crl

from cert_depot.domain.errors import UnsupportedObjectType
from cert_depot.domain.extension_values import CrlReasonValue
from cert_depot.domain.models import Crl, ExtensionStatus, RevokedEntry
from cert_depot.domain.ports import CryptoProvider
from cert_depot.pki.certificates import fingerprints, serial_number, signature_algorithm
from cert_depot.pki.extensions import (
    CRL_DECODERS,
    CRL_ENTRY_DECODERS,
    ExtensionOwner,
    decode_extensions,
)
from cert_depot.pki.names import describe_name
from cert_depot.pki.primitives import ensure_der, normalize_time, strip_unused_bits

log = structlog.get_logger()

REVOKED_SAMPLE_SIZE = 5


def _revoked_entry(entry: asn1_crl.RevokedCertificate) -> RevokedEntry:
    reason: str | None = None
    for extension in decode_extensions(
        entry["crl_entry_extensions"], CRL_ENTRY_DECODERS, ExtensionOwner.CRL_ENTRY
    ):
        if extension.status is ExtensionStatus.PARSED and isinstance(
            extension.value, CrlReasonValue
        ):
            reason = extension.value.reason
    return RevokedEntry(
        serial=serial_number(entry["user_certificate"]),
        revocation_date=normalize_time(entry["revocation_date"]),
        reason=reason,
    )


def _assemble(certificate_list: asn1_crl.CertificateList, der: bytes, crypto: CryptoProvider) -> Crl:
    tbs = certificate_list["tbs_cert_list"]
    revoked = tbs["revoked_certificates"]
    if isinstance(revoked, core.Void):
        revoked_count, sample = 0, ()
    else:
        revoked_count = len(revoked)
        sample = tuple(_revoked_entry(entry) for entry in islice(revoked, REVOKED_SAMPLE_SIZE))

    return Crl(
        issuer=describe_name(tbs["issuer"]),
        this_update=normalize_time(tbs["this_update"]),
        next_update=normalize_time(tbs["next_update"]),
        signature_algorithm=signature_algorithm(certificate_list["signature_algorithm"]),
        signature_value=strip_unused_bits(certificate_list["signature"].contents),
        fingerprints=fingerprints(der, crypto),
        revoked_count=revoked_count,
        revoked_sample=sample,
        extensions=decode_extensions(tbs["crl_extensions"], CRL_DECODERS, ExtensionOwner.CRL),
        der=der,
    )


def signed_portion(crl: Crl) -> tuple[bytes, bytes]:
    """The TBSCertList DER and the outer signatureAlgorithm DER, as on the wire."""
    certificate_list = asn1_crl.CertificateList.load(crl.der)
    return (
        certificate_list["tbs_cert_list"].dump(),
        certificate_list["signature_algorithm"].dump(),
    )


def build_crl_details(der: bytes, crypto: CryptoProvider) -> Crl:
    """
    Decode a DER CRL.

    Raises MalformedDER when the bytes are not DER at all and
    UnsupportedObjectType when they are DER but not a CRL.
    """
    ensure_der(der)
    try:
        crl = _assemble(asn1_crl.CertificateList.load(der, strict=True), der, crypto)
    except (ValueError, TypeError, KeyError) as e:
        raise UnsupportedObjectType(
            "DER does not decode as an X.509 CRL", expected="crl", reason=str(e)
        ) from e

    log.debug(
        "crl.decoded",
        issuer=crl.issuer.display,
        crl_number=crl.crl_number,
        is_delta=crl.is_delta,
        revoked=crl.revoked_count,
    )
    return crl
