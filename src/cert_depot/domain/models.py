"""
Domain models: immutable views of certificates, CRLs and storage objects.

Certificates and CRLs are built once from DER by the model builders in
cert_depot.pki and never mutated. Classification, archive and receipt
values are derived on every upload and never persisted as their own entity.

All models are frozen dataclasses; raw DER travels alongside the decoded
view (repr=False) because signature verification and archival need it.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from cert_depot.domain.extension_values import (
    AuthorityKeyIdentifierValue,
    CrlNumberValue,
    KeyIdentifierValue,
)


class ExtensionStatus(StrEnum):
    PARSED = "parsed"
    UNPARSED = "unparsed"
    ERROR = "error"


class ObjectType(StrEnum):
    CERTIFICATE = "certificate"
    CRL = "crl"
    BINARY = "binary"
    UNKNOWN = "unknown"


class CrlState(StrEnum):
    CURRENT = "current"
    STALE = "stale"
    EXPIRED = "expired"


# ─────────────────────── Names & algorithms ───────────────────────


@dataclass(frozen=True, slots=True)
class NameAttribute:
    """One ``type=value`` component of a distinguished name."""

    oid: str
    name: str
    value: str
    short_name: str | None = None


@dataclass(frozen=True, slots=True)
class DistinguishedName:
    """Ordered sequence of name attributes, as they appear on the wire."""

    attributes: tuple[NameAttribute, ...] = ()

    @property
    def display(self) -> str:
        return ", ".join(
            f"{attr.short_name or attr.oid}={attr.value}" for attr in self.attributes
        )

    @property
    def common_name(self) -> str | None:
        for attr in self.attributes:
            if attr.short_name == "CN" or attr.name == "commonName":
                return attr.value
        return None

    @property
    def matching_key(self) -> str:
        """Ordered ``oid=value`` join used to compare issuer and subject names."""
        return ",".join(f"{attr.oid}={attr.value}" for attr in self.attributes)

    def __str__(self) -> str:
        return self.display


@dataclass(frozen=True, slots=True)
class AlgorithmIdentifier:
    oid: str
    name: str


@dataclass(frozen=True, slots=True)
class SerialNumber:
    hex: str
    decimal: str | None


@dataclass(frozen=True, slots=True)
class Fingerprints:
    sha1: str
    sha256: str


# ─────────────────────── Extensions ───────────────────────


@dataclass(frozen=True, slots=True)
class Extension:
    """
    One extension present on a certificate, CRL or CRL entry.

    status is ERROR only when the registered decoder failed, UNPARSED when no
    decoder is registered for the OID, PARSED otherwise (value may be None).
    """

    oid: str
    critical: bool
    status: ExtensionStatus
    name: str | None = None
    value: Any = None
    raw_hex: str | None = None
    error: str | None = None


def _find_parsed(extensions: tuple[Extension, ...], oid: str) -> Any:
    for extension in extensions:
        if extension.oid == oid and extension.status is ExtensionStatus.PARSED:
            return extension.value
    return None


# ─────────────────────── Certificate ───────────────────────


@dataclass(frozen=True, slots=True)
class PublicKeyInfo:
    algorithm: AlgorithmIdentifier
    key_bytes: bytes = field(repr=False)
    fingerprints: Fingerprints
    spki_der: bytes = field(repr=False)
    size_bits: int | None = None
    exponent: int | None = None
    modulus_hex: str | None = None
    curve_oid: str | None = None
    curve_name: str | None = None


@dataclass(frozen=True, slots=True)
class Certificate:
    """Decoded X.509 certificate."""

    version: int
    serial: SerialNumber
    issuer: DistinguishedName
    subject: DistinguishedName
    not_before: datetime | None
    not_after: datetime | None
    signature_algorithm: AlgorithmIdentifier
    signature_value: bytes = field(repr=False)
    public_key: PublicKeyInfo
    fingerprints: Fingerprints
    extensions: tuple[Extension, ...] = ()
    der: bytes = field(default=b"", repr=False)

    def extension(self, oid: str) -> Extension | None:
        for extension in self.extensions:
            if extension.oid == oid:
                return extension
        return None

    @property
    def subject_key_identifier(self) -> str | None:
        value = _find_parsed(self.extensions, "2.5.29.14")
        return value.hex if isinstance(value, KeyIdentifierValue) else None

    @property
    def authority_key_identifier(self) -> str | None:
        value = _find_parsed(self.extensions, "2.5.29.35")
        if isinstance(value, AuthorityKeyIdentifierValue):
            return value.key_identifier
        return None


# ─────────────────────── CRL ───────────────────────


@dataclass(frozen=True, slots=True)
class RevokedEntry:
    serial: SerialNumber
    revocation_date: datetime | None
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class Crl:
    """
    Decoded certificate revocation list.

    revoked_count is the true number of entries; revoked_sample holds only
    the first few, decoded.
    """

    issuer: DistinguishedName
    this_update: datetime | None
    next_update: datetime | None
    signature_algorithm: AlgorithmIdentifier
    signature_value: bytes = field(repr=False)
    fingerprints: Fingerprints
    revoked_count: int = 0
    revoked_sample: tuple[RevokedEntry, ...] = ()
    extensions: tuple[Extension, ...] = ()
    der: bytes = field(default=b"", repr=False)

    def extension(self, oid: str) -> Extension | None:
        for extension in self.extensions:
            if extension.oid == oid:
                return extension
        return None

    @property
    def crl_number(self) -> int | None:
        value = _find_parsed(self.extensions, "2.5.29.20")
        return value.number if isinstance(value, CrlNumberValue) else None

    @property
    def delta_base_crl_number(self) -> int | None:
        value = _find_parsed(self.extensions, "2.5.29.27")
        return value.number if isinstance(value, CrlNumberValue) else None

    @property
    def is_delta(self) -> bool:
        return self.delta_base_crl_number is not None

    @property
    def authority_key_identifier(self) -> str | None:
        value = _find_parsed(self.extensions, "2.5.29.35")
        if isinstance(value, AuthorityKeyIdentifierValue):
            return value.key_identifier
        return None

    def seconds_until_next_update(self, now: datetime | None = None) -> int | None:
        if self.next_update is None:
            return None
        now = now or datetime.now(UTC)
        return math.floor((self.next_update - now).total_seconds())

    def is_expired(self, now: datetime | None = None) -> bool | None:
        if self.next_update is None:
            return None
        now = now or datetime.now(UTC)
        return now > self.next_update


# ─────────────────────── Issuer resolution & lifecycle ───────────────────────


@dataclass(frozen=True, slots=True)
class CACandidate:
    """In-memory view of one stored CA certificate, used during issuer resolution."""

    storage_key: str
    der: bytes = field(repr=False)
    certificate: Certificate


@dataclass(frozen=True, slots=True)
class ClassificationResult:
    friendly_issuer_name: str
    is_delta: bool
    storage_folder: str
    canonical_der_key: str
    canonical_pem_key: str
    delta_base_number: int | None = None
    aki_alias_key: str | None = None


@dataclass(frozen=True, slots=True)
class ArchiveRecord:
    """A superseded CRL and the key/metadata it is preserved under."""

    key: str
    data: bytes = field(repr=False)
    metadata: dict[str, str] = field(default_factory=dict)


# ─────────────────────── Storage views ───────────────────────


@dataclass(frozen=True, slots=True)
class StoredObject:
    key: str
    data: bytes = field(repr=False)
    metadata: dict[str, str] = field(default_factory=dict)
    uploaded_at: datetime | None = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True, slots=True)
class ObjectSummary:
    """A stored object without its bytes."""

    key: str
    size: int
    uploaded_at: datetime | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class PublicationReceipt:
    """What a successful CRL upload stored, returned to the uploader."""

    kind: str
    der_key: str
    pem_key: str
    aki_alias_key: str | None = None
    archived_key: str | None = None
    crl_number: str | None = None
    base_crl_number: str | None = None
    this_update: datetime | None = None
    next_update: datetime | None = None


@dataclass(frozen=True, slots=True)
class ObjectDescription:
    """Decoded view of one stored object, as served by the inspect endpoint."""

    key: str
    object_type: ObjectType
    size: int
    uploaded_at: datetime | None = None
    certificate: Certificate | None = None
    crl: Crl | None = None
    parse_error: str | None = None


# ─────────────────────── Listings & statistics ───────────────────────


@dataclass(frozen=True, slots=True)
class CrlStatus:
    """
    Freshness of a published CRL at listing time.

    expires_in is set while nextUpdate is ahead, expired_ago once it has
    passed; both are whole seconds. STALE means more than 80% of the
    thisUpdate..nextUpdate window has elapsed.
    """

    state: CrlState
    expires_in: int | None = None
    expired_ago: int | None = None


@dataclass(frozen=True, slots=True)
class CrlListing:
    """One published CRL, summarised from the metadata stored with it."""

    key: str
    kind: str
    size: int
    status: CrlStatus
    uploaded_at: datetime | None = None
    issuer_common_name: str | None = None
    crl_number: str | None = None
    base_crl_number: str | None = None
    this_update: datetime | None = None
    next_update: datetime | None = None
    revoked_count: int = 0
    fingerprints: Fingerprints | None = None


@dataclass(frozen=True, slots=True)
class StorageUsage:
    total_bytes: int
    by_prefix: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class DepotStats:
    certificates: int
    full_crls: int
    delta_crls: int
    total_revocations: int
    storage: StorageUsage
