"""
Extension decoder registry.

Every decoder is registered against an ExtensionOid in one or more of the
three registries (certificate, CRL, CRL entry). A registered decoder has the
shape ``decoder(extension | None, owner) -> value | None``:

  - a missing extension gives None (absent, not an error);
  - any failure while decoding is raised as ExtensionDecodeError;
  - decode_extension() records that failure on the entry (status=error)
    and never lets it reach the surrounding certificate or CRL build.

OIDs with no registered decoder are kept as ``unparsed`` with their raw hex.
"""

from __future__ import annotations

import functools
from collections.abc import Callable, Iterable
from enum import StrEnum
from typing import Any, TypeAlias

import structlog
from asn1crypto import core
from asn1crypto import x509 as asn1_x509

from cert_depot.domain.errors import ExtensionDecodeError
from cert_depot.domain.extension_values import (
    AccessMethodLocations,
    AuthorityInfoAccessValue,
    AuthorityKeyIdentifierValue,
    BasicConstraintsValue,
    CertificatePoliciesValue,
    CrlDistributionPointsValue,
    CrlNumberValue,
    CrlReasonValue,
    DistributionPointValue,
    ExtendedKeyUsageValue,
    GeneralNamesValue,
    KeyIdentifierValue,
    KeyUsageValue,
    OtherNameValue,
    PolicyQualifierValue,
    PolicyValue,
)
from cert_depot.domain.models import DistinguishedName, Extension, ExtensionStatus
from cert_depot.pki.names import describe_name, describe_rdn, render_general_name
from cert_depot.pki.oids import (
    ACCESS_METHOD_CA_ISSUERS,
    ACCESS_METHOD_OCSP,
    CRL_REASONS,
    EXTENDED_KEY_USAGES,
    KEY_USAGE_FLAGS,
    POLICY_QUALIFIER_CPS,
    POLICY_QUALIFIER_USER_NOTICE,
    ExtensionOid,
    extension_name,
)
from cert_depot.pki.primitives import (
    UniversalTag,
    accumulate_unsigned,
    child_nodes,
    format_ip_address,
    read_node,
    to_hex,
)

log = structlog.get_logger()


class ExtensionOwner(StrEnum):
    CERTIFICATE = "certificate"
    CRL = "crl"
    CRL_ENTRY = "crl_entry"


PayloadDecoder: TypeAlias = Callable[[bytes], Any]
ExtensionDecoder: TypeAlias = Callable[[Any | None, ExtensionOwner], Any | None]
DecoderRegistry: TypeAlias = dict[ExtensionOid, ExtensionDecoder]

CERTIFICATE_DECODERS: DecoderRegistry = {}
CRL_DECODERS: DecoderRegistry = {}
CRL_ENTRY_DECODERS: DecoderRegistry = {}

_REGISTRABLE = frozenset(member.value for member in ExtensionOid)


def registers(
    oid: ExtensionOid, *registries: DecoderRegistry
) -> Callable[[PayloadDecoder], PayloadDecoder]:
    """
    Register a payload decoder under ``oid`` in each of ``registries``.

    The decorated function receives the raw extnValue bytes and returns the
    decoded value; the registered wrapper handles absence and converts any
    failure into ExtensionDecodeError. The function itself is returned
    unchanged, so registrations stack.
    """

    def wrap(decode_payload: PayloadDecoder) -> PayloadDecoder:
        @functools.wraps(decode_payload)
        def decoder(extension: Any | None, owner: ExtensionOwner) -> Any | None:
            if extension is None:
                return None
            try:
                return decode_payload(extension_payload(extension))
            except ExtensionDecodeError:
                raise
            except Exception as e:
                raise ExtensionDecodeError(oid, f"{type(e).__name__}: {e}") from e

        for registry in registries:
            registry[oid] = decoder
        return decode_payload

    return wrap


def extension_payload(extension: Any) -> bytes:
    """
    The extnValue octets, read from the extension's own encoding.

    Indexing ``extn_value`` would make asn1crypto parse the payload against
    its built-in schema for the OID, so a broken payload would fail there
    instead of in the registered decoder.
    """
    return child_nodes(read_node(extension.dump()).contents)[-1].expect(
        UniversalTag.OCTET_STRING
    ).contents


def decode_extension(
    extension: Any, registry: DecoderRegistry, owner: ExtensionOwner
) -> Extension:
    """Decode one asn1crypto Extension into the domain entry, never raising for its value."""
    oid = extension["extn_id"].dotted
    critical = bool(extension["critical"].native)
    raw = extension_payload(extension)
    decoder = registry.get(ExtensionOid(oid)) if oid in _REGISTRABLE else None

    if decoder is None:
        return Extension(
            oid=oid,
            name=extension_name(oid),
            critical=critical,
            status=ExtensionStatus.UNPARSED,
            raw_hex=to_hex(raw),
        )
    try:
        value = decoder(extension, owner)
    except ExtensionDecodeError as e:
        log.warning("extensions.decode_failed", oid=oid, owner=owner.value, error=e.message)
        return Extension(
            oid=oid,
            name=extension_name(oid),
            critical=critical,
            status=ExtensionStatus.ERROR,
            raw_hex=to_hex(raw),
            error=e.message,
        )
    return Extension(
        oid=oid,
        name=extension_name(oid),
        critical=critical,
        status=ExtensionStatus.PARSED,
        value=value,
        raw_hex=to_hex(raw),
    )


def decode_extensions(
    extensions: Iterable[Any] | core.Void | None,
    registry: DecoderRegistry,
    owner: ExtensionOwner,
) -> tuple[Extension, ...]:
    if extensions is None or isinstance(extensions, core.Void):
        return ()
    return tuple(decode_extension(ext, registry, owner) for ext in extensions)


# ─────────────────────── Shared helpers ───────────────────────


def _is_absent(value: Any) -> bool:
    return value is None or isinstance(value, core.Void)


def _group_general_names(names: asn1_x509.GeneralNames) -> GeneralNamesValue:
    emails: list[str] = []
    dns_names: list[str] = []
    uris: list[str] = []
    ip_addresses: list[str] = []
    directory_names: list[DistinguishedName] = []
    other_names: list[OtherNameValue] = []
    registered_ids: list[str] = []

    for general_name in names:
        chosen = general_name.chosen
        match general_name.name:
            case "rfc822_name":
                emails.append(chosen.native)
            case "dns_name":
                dns_names.append(chosen.native)
            case "uniform_resource_identifier":
                uris.append(chosen.native)
            case "ip_address":
                ip_addresses.append(format_ip_address(chosen.contents))
            case "directory_name":
                directory_names.append(describe_name(chosen))
            case "other_name":
                other_names.append(
                    OtherNameValue(
                        oid=chosen["type_id"].dotted,
                        raw_hex=to_hex(read_node(chosen["value"].dump()).contents),
                    )
                )
            case "registered_id":
                registered_ids.append(chosen.dotted)
            case _:
                pass

    return GeneralNamesValue(
        emails=tuple(emails),
        dns_names=tuple(dns_names),
        uris=tuple(uris),
        ip_addresses=tuple(ip_addresses),
        directory_names=tuple(directory_names),
        other_names=tuple(other_names),
        registered_ids=tuple(registered_ids),
    )


def _key_identifier_hex(payload: bytes) -> str:
    return to_hex(core.OctetString.load(payload, strict=True).native)


# ─────────────────────── Certificate extensions ───────────────────────


@registers(ExtensionOid.BASIC_CONSTRAINTS, CERTIFICATE_DECODERS)
def basic_constraints(payload: bytes) -> BasicConstraintsValue:
    parsed = asn1_x509.BasicConstraints.load(payload, strict=True)
    path_len = parsed["path_len_constraint"]
    return BasicConstraintsValue(
        is_ca=bool(parsed["ca"].native),
        path_len_constraint=None if _is_absent(path_len) else path_len.native,
    )


@registers(ExtensionOid.KEY_USAGE, CERTIFICATE_DECODERS)
def key_usage(payload: bytes) -> KeyUsageValue:
    """
    Bits are read MSB-first after the unused-bits byte. A table name whose
    bit lies past the declared length is left out of ``flags`` entirely.
    """
    contents = read_node(payload).expect(UniversalTag.BIT_STRING).contents
    if not contents:
        raise ValueError("empty BIT STRING")
    unused_bits, bits = contents[0], contents[1:]
    if unused_bits > 7 or (unused_bits and not bits):
        raise ValueError(f"invalid unused-bits count {unused_bits}")
    total_bits = len(bits) * 8 - unused_bits

    flags: dict[str, bool] = {}
    enabled: list[str] = []
    for index, flag in enumerate(KEY_USAGE_FLAGS[:total_bits]):
        is_set = bool(bits[index // 8] & (0x80 >> (index % 8)))
        flags[flag] = is_set
        if is_set:
            enabled.append(flag)

    return KeyUsageValue(
        flags=flags,
        enabled=tuple(enabled),
        unused_bits=unused_bits,
        total_bits=total_bits,
        raw_hex=to_hex(contents),
    )


@registers(ExtensionOid.EXTENDED_KEY_USAGE, CERTIFICATE_DECODERS)
def extended_key_usage(payload: bytes) -> ExtendedKeyUsageValue:
    oids = tuple(
        purpose.dotted for purpose in asn1_x509.ExtKeyUsageSyntax.load(payload, strict=True)
    )
    return ExtendedKeyUsageValue(
        oids=oids,
        usages=tuple(EXTENDED_KEY_USAGES.get(oid, oid) for oid in oids),
    )


@registers(ExtensionOid.SUBJECT_ALT_NAME, CERTIFICATE_DECODERS)
@registers(ExtensionOid.ISSUER_ALT_NAME, CERTIFICATE_DECODERS, CRL_DECODERS)
def alternative_names(payload: bytes) -> GeneralNamesValue:
    return _group_general_names(asn1_x509.GeneralNames.load(payload, strict=True))


@registers(ExtensionOid.AUTHORITY_INFO_ACCESS, CERTIFICATE_DECODERS, CRL_DECODERS)
def authority_info_access(payload: bytes) -> AuthorityInfoAccessValue:
    ocsp: list[str] = []
    ca_issuers: list[str] = []
    other: list[AccessMethodLocations] = []

    for description in asn1_x509.AuthorityInfoAccessSyntax.load(payload, strict=True):
        method = description["access_method"].dotted
        location = render_general_name(description["access_location"])
        locations = (location,) if location else ()
        if method == ACCESS_METHOD_OCSP:
            ocsp.extend(locations)
        elif method == ACCESS_METHOD_CA_ISSUERS:
            ca_issuers.extend(locations)
        elif locations:
            other.append(AccessMethodLocations(method=method, locations=locations))

    return AuthorityInfoAccessValue(
        ocsp=tuple(ocsp), ca_issuers=tuple(ca_issuers), other=tuple(other)
    )


@registers(ExtensionOid.CRL_DISTRIBUTION_POINTS, CERTIFICATE_DECODERS)
@registers(ExtensionOid.FRESHEST_CRL, CERTIFICATE_DECODERS, CRL_DECODERS)
def distribution_points(payload: bytes) -> CrlDistributionPointsValue:
    """
    URLs and directory names across every point (de-duplicated, first seen
    first), plus the per-point breakdown for points that carry any.
    Names from cRLIssuer count toward the point they appear in.
    """
    urls: dict[str, None] = {}
    directory_names: dict[str, None] = {}
    points: list[DistributionPointValue] = []

    for point in asn1_x509.CRLDistributionPoints.load(payload, strict=True):
        point_urls: list[str] = []
        point_names: list[str] = []

        def collect(general_name: asn1_x509.GeneralName) -> None:
            match general_name.name:
                case "uniform_resource_identifier":
                    point_urls.append(general_name.chosen.native)
                case "directory_name":
                    point_names.append(describe_name(general_name.chosen).display)

        point_name = point["distribution_point"]
        if not _is_absent(point_name):
            if point_name.name == "full_name":
                for general_name in point_name.chosen:
                    collect(general_name)
            else:
                point_names.append(describe_rdn(point_name.chosen).display)

        if not _is_absent(point["crl_issuer"]):
            for general_name in point["crl_issuer"]:
                collect(general_name)

        urls.update(dict.fromkeys(point_urls))
        directory_names.update(dict.fromkeys(point_names))
        if point_urls or point_names:
            points.append(
                DistributionPointValue(urls=tuple(point_urls), directory_names=tuple(point_names))
            )

    return CrlDistributionPointsValue(
        urls=tuple(urls),
        directory_names=tuple(directory_names),
        distribution_points=tuple(points),
    )


@registers(ExtensionOid.CERTIFICATE_POLICIES, CERTIFICATE_DECODERS)
def certificate_policies(payload: bytes) -> CertificatePoliciesValue:
    policies: list[PolicyValue] = []
    for information in asn1_x509.CertificatePolicies.load(payload, strict=True):
        qualifiers: list[PolicyQualifierValue] = []
        if not _is_absent(information["policy_qualifiers"]):
            for qualifier in information["policy_qualifiers"]:
                qualifier_oid = qualifier["policy_qualifier_id"].dotted
                value: str | None = None
                if qualifier_oid == POLICY_QUALIFIER_CPS:
                    value = str(qualifier["qualifier"].native)
                elif qualifier_oid == POLICY_QUALIFIER_USER_NOTICE:
                    value = "userNotice"
                qualifiers.append(PolicyQualifierValue(oid=qualifier_oid, value=value))
        policies.append(
            PolicyValue(
                oid=information["policy_identifier"].dotted,
                qualifiers=tuple(qualifiers),
            )
        )
    return CertificatePoliciesValue(policies=tuple(policies))


@registers(ExtensionOid.AUTHORITY_KEY_IDENTIFIER, CERTIFICATE_DECODERS, CRL_DECODERS)
def authority_key_identifier(payload: bytes) -> AuthorityKeyIdentifierValue:
    parsed = asn1_x509.AuthorityKeyIdentifier.load(payload, strict=True)
    key_id = parsed["key_identifier"]
    issuer = parsed["authority_cert_issuer"]
    serial = parsed["authority_cert_serial_number"]

    rendered_issuer: tuple[str, ...] | None = None
    if not _is_absent(issuer):
        rendered_issuer = tuple(
            text for text in (render_general_name(name) for name in issuer) if text
        )

    return AuthorityKeyIdentifierValue(
        key_identifier=None if _is_absent(key_id) else to_hex(key_id.native),
        authority_cert_issuer=rendered_issuer,
        authority_cert_serial_number=None if _is_absent(serial) else to_hex(serial.contents),
    )


@registers(ExtensionOid.SUBJECT_KEY_IDENTIFIER, CERTIFICATE_DECODERS)
def subject_key_identifier(payload: bytes) -> KeyIdentifierValue:
    return KeyIdentifierValue(hex=_key_identifier_hex(payload))


# ─────────────────────── CRL extensions ───────────────────────


@registers(ExtensionOid.CRL_NUMBER, CRL_DECODERS)
@registers(ExtensionOid.DELTA_CRL_INDICATOR, CRL_DECODERS)
def crl_number(payload: bytes) -> CrlNumberValue:
    contents = read_node(payload).expect(UniversalTag.INTEGER).contents
    if not contents:
        raise ValueError("empty INTEGER")
    return CrlNumberValue(number=accumulate_unsigned(contents))


@registers(ExtensionOid.CRL_REASON, CRL_ENTRY_DECODERS)
def crl_reason(payload: bytes) -> CrlReasonValue:
    contents = read_node(payload).expect(UniversalTag.ENUMERATED).contents
    if not contents:
        raise ValueError("empty ENUMERATED")
    code = int.from_bytes(contents, "big", signed=True)
    return CrlReasonValue(code=code, reason=CRL_REASONS.get(code, f"reason_{code}"))
