"""Distinguished names and GeneralName rendering over asn1crypto schemas."""

from __future__ import annotations

from typing import Any

from asn1crypto import core
from asn1crypto import x509 as asn1_x509

from cert_depot.domain.models import DistinguishedName, NameAttribute
from cert_depot.pki.oids import NAME_ATTRIBUTES
from cert_depot.pki.primitives import format_ip_address


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return value.hex()
    return str(value)


def _attribute(type_and_value: asn1_x509.AttributeTypeAndValue) -> NameAttribute:
    oid = type_and_value["type"].dotted
    short_name, long_name = NAME_ATTRIBUTES.get(oid, (None, oid))
    return NameAttribute(
        oid=oid,
        name=long_name,
        short_name=short_name,
        value=_text(type_and_value["value"].native),
    )


def describe_rdn(rdn: asn1_x509.RelativeDistinguishedName) -> DistinguishedName:
    return DistinguishedName(attributes=tuple(_attribute(atv) for atv in rdn))


def describe_name(name: asn1_x509.Name) -> DistinguishedName:
    """Flatten a Name into its attributes, in wire order (multi-valued RDNs inline)."""
    if isinstance(name, core.Void):
        return DistinguishedName()
    return DistinguishedName(
        attributes=tuple(_attribute(atv) for rdn in name.chosen for atv in rdn)
    )


def render_general_name(general_name: asn1_x509.GeneralName) -> str | None:
    """
    One-line text for a GeneralName: URIs as-is, other kinds prefixed
    (``mailto:``, ``dns:``, ``ip:``), directory names as their display DN.
    Kinds with no text form give None.
    """
    chosen = general_name.chosen
    match general_name.name:
        case "uniform_resource_identifier":
            return chosen.native
        case "rfc822_name":
            return f"mailto:{chosen.native}"
        case "dns_name":
            return f"dns:{chosen.native}"
        case "ip_address":
            return f"ip:{format_ip_address(chosen.contents)}"
        case "directory_name":
            return describe_name(chosen).display
        case "registered_id":
            return chosen.dotted
        case _:
            return None
