"""
Decoded extension values.

One frozen dataclass per extension family; these are what the decoders in
cert_depot.pki.extensions return and what Extension.value holds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cert_depot.domain.models import DistinguishedName


@dataclass(frozen=True, slots=True)
class BasicConstraintsValue:
    is_ca: bool = False
    path_len_constraint: int | None = None


@dataclass(frozen=True, slots=True)
class KeyUsageValue:
    """
    Key usage bits.

    flags only holds the names whose bit lies inside the declared bit count;
    a name past total_bits is absent rather than False.
    """

    flags: dict[str, bool]
    enabled: tuple[str, ...]
    unused_bits: int
    total_bits: int
    raw_hex: str


@dataclass(frozen=True, slots=True)
class ExtendedKeyUsageValue:
    oids: tuple[str, ...]
    usages: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class OtherNameValue:
    oid: str
    raw_hex: str


@dataclass(frozen=True, slots=True)
class GeneralNamesValue:
    """GeneralNames grouped by choice (subject/issuer alternative names)."""

    emails: tuple[str, ...] = ()
    dns_names: tuple[str, ...] = ()
    uris: tuple[str, ...] = ()
    ip_addresses: tuple[str, ...] = ()
    directory_names: tuple[DistinguishedName, ...] = ()
    other_names: tuple[OtherNameValue, ...] = ()
    registered_ids: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class AccessMethodLocations:
    method: str
    locations: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class AuthorityInfoAccessValue:
    ocsp: tuple[str, ...] = ()
    ca_issuers: tuple[str, ...] = ()
    other: tuple[AccessMethodLocations, ...] = ()


@dataclass(frozen=True, slots=True)
class DistributionPointValue:
    urls: tuple[str, ...] = ()
    directory_names: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CrlDistributionPointsValue:
    urls: tuple[str, ...] = ()
    directory_names: tuple[str, ...] = ()
    distribution_points: tuple[DistributionPointValue, ...] = ()


@dataclass(frozen=True, slots=True)
class PolicyQualifierValue:
    oid: str
    value: str | None = None


@dataclass(frozen=True, slots=True)
class PolicyValue:
    oid: str
    qualifiers: tuple[PolicyQualifierValue, ...] = ()


@dataclass(frozen=True, slots=True)
class CertificatePoliciesValue:
    policies: tuple[PolicyValue, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class AuthorityKeyIdentifierValue:
    key_identifier: str | None = None
    authority_cert_issuer: tuple[str, ...] | None = None
    authority_cert_serial_number: str | None = None


@dataclass(frozen=True, slots=True)
class KeyIdentifierValue:
    hex: str


@dataclass(frozen=True, slots=True)
class CrlNumberValue:
    number: int

    @property
    def hex(self) -> str:
        return format(self.number, "x")


@dataclass(frozen=True, slots=True)
class CrlReasonValue:
    code: int
    reason: str
