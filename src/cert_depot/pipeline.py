"""
Pipeline — the ROP workflows behind the HTTP surface.

CRL publication is a railway of stages; the first failing stage decides the
outcome and the rest are skipped:

  extract PEM block            MALFORMED_PEM      (PEM uploads only)
    → build CRL                MALFORMED_DER / UNSUPPORTED_OBJECT_TYPE
      → list CA candidates     STORAGE_ERROR
        → resolve issuer       ISSUER_NOT_FOUND
          → verify signature   SIGNATURE_INVALID
            → classify + load stored version
              → freshness      STALE_VERSION
                → archive old, write DER, PEM, alias

The PKI engine raises typed exceptions for malformed input; Result.attempt()
turns them into failures carrying their own error codes. Storage ports return
Results directly.

Listings and statistics are read from object summaries (key, size,
metadata) and never decode stored bytes.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

import structlog

from cert_depot.config import StorageSettings
from cert_depot.domain.errors import PkiError
from cert_depot.domain.models import (
    CACandidate,
    ClassificationResult,
    Crl,
    CrlListing,
    CrlState,
    DepotStats,
    Fingerprints,
    ObjectDescription,
    ObjectSummary,
    ObjectType,
    PublicationReceipt,
    StorageUsage,
    StoredObject,
)
from cert_depot.domain.ports import CryptoProvider, ObjectStore
from cert_depot.pki.certificates import build_certificate_details
from cert_depot.pki.crls import build_crl_details
from cert_depot.pki.issuers import resolve_issuer, verify
from cert_depot.pki.lifecycle import archive, classify, crl_status, is_newer
from cert_depot.pki.pem import CERTIFICATE_LABEL, CRL_LABEL, encode_pem, extract_pem_block
from cert_depot.pki.primitives import normalize_time
from cert_depot.railway import ErrorCode, FailureDescription, Result

log = structlog.get_logger()

_CERTIFICATE_SUFFIXES = (".crt", ".crt.pem")
_CRL_SUFFIXES = (".crl", ".crl.pem")
_CRL_KINDS = ("full", "delta")


@dataclass(frozen=True, slots=True)
class _Upload:
    """A decoded CRL and the CA it was resolved to."""

    crl: Crl
    issuer: CACandidate


@dataclass(frozen=True, slots=True)
class _Classified:
    """State carried through the stages after classification."""

    crl: Crl
    issuer: CACandidate
    classification: ClassificationResult
    existing: Crl | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    archived_key: str | None = None


# ─────────────────────── CA candidates ───────────────────────


def list_ca_candidates(
    store: ObjectStore, crypto: CryptoProvider, ca_prefix: str = "ca/"
) -> Result[list[CACandidate]]:
    """Stored ``.crt`` objects under the CA prefix that decode as certificates."""

    def decode(objects: list[StoredObject]) -> list[CACandidate]:
        candidates: list[CACandidate] = []
        for obj in objects:
            if not obj.key.endswith(".crt"):
                continue
            try:
                certificate = build_certificate_details(obj.data, crypto)
            except PkiError as e:
                log.warning("issuers.candidate_skipped", key=obj.key, error=e.message)
                continue
            candidates.append(CACandidate(storage_key=obj.key, der=obj.data, certificate=certificate))
        return candidates

    return store.list(ca_prefix).map(decode)


# ─────────────────────── Publication stages ───────────────────────


def _signature_invalid(upload: _Upload) -> FailureDescription:
    return FailureDescription.create(
        ErrorCode.SIGNATURE_INVALID,
        f"CRL signature does not verify against issuer '{upload.issuer.storage_key}'",
        context={
            "issuer_key": upload.issuer.storage_key,
            "issuer_subject": upload.issuer.certificate.subject.display,
            "signature_algorithm": upload.crl.signature_algorithm.name,
        },
    )


def _stale(upload: _Classified) -> FailureDescription:
    incoming, existing = upload.crl, upload.existing
    kind = "Delta CRL" if incoming.is_delta else "CRL"
    return FailureDescription.create(
        ErrorCode.STALE_VERSION,
        f"{kind} is not newer than the stored version",
        context={
            "incoming_crl_number": _text(incoming.crl_number),
            "stored_crl_number": _text(existing.crl_number if existing else None),
            "incoming_this_update": _text(incoming.this_update),
            "stored_this_update": _text(existing.this_update if existing else None),
        },
    )


def _text(value: object) -> str | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _classify(upload: _Upload, settings: StorageSettings) -> _Classified:
    return _Classified(
        crl=upload.crl,
        issuer=upload.issuer,
        classification=classify(
            upload.crl,
            upload.issuer,
            full_folder=settings.full_folder,
            delta_folder=settings.delta_folder,
        ),
    )


def _load_existing(
    upload: _Classified, store: ObjectStore, crypto: CryptoProvider
) -> Result[_Classified]:
    """
    Fetch the CRL currently stored at the canonical key. Missing or
    undecodable objects count as no stored version.
    """
    key = upload.classification.canonical_der_key
    stored = store.get(key)
    if stored.is_failure():
        if stored.error().code is ErrorCode.NOT_FOUND:
            return Result.success(upload)
        return Result.failure_from(stored.error())
    try:
        existing = build_crl_details(stored.value().data, crypto)
    except PkiError as e:
        log.warning("pipeline.stored_crl_unreadable", key=key, error=e.message)
        return Result.success(upload)
    return Result.success(replace(upload, existing=existing))


def _metadata(crl: Crl, issuer: CACandidate) -> dict[str, str]:
    certificate = issuer.certificate
    base = crl.delta_base_crl_number
    return {
        "issuerCN": certificate.subject.common_name or "",
        "issuerKeyId": certificate.subject_key_identifier or "",
        "crlNumber": _text(crl.crl_number) or "",
        "thisUpdate": _text(crl.this_update) or "",
        "nextUpdate": _text(crl.next_update) or "",
        "isDelta": "true" if crl.is_delta else "false",
        "baseCRLNumber": str(base) if crl.is_delta and base is not None else "",
        "revokedCount": str(crl.revoked_count),
        "fingerprintSha1": crl.fingerprints.sha1,
        "fingerprintSha256": crl.fingerprints.sha256,
    }


def _write(
    upload: _Classified, store: ObjectStore, crypto: CryptoProvider, now: datetime
) -> Result[_Classified]:
    """Archive the superseded CRL first, then write DER, PEM and the AKI alias."""
    classification = upload.classification
    der = upload.crl.der
    pem = encode_pem(der, CRL_LABEL).encode("ascii")

    result: Result[_Classified] = Result.success(upload)
    if upload.existing is not None:
        superseded = _metadata(upload.existing, upload.issuer)
        record = archive(upload.existing, classification, superseded, crypto, now)
        result = store.put(record.key, record.data, record.metadata).map(
            lambda key: replace(upload, archived_key=key)
        )

    writes = [(classification.canonical_der_key, der), (classification.canonical_pem_key, pem)]
    if classification.aki_alias_key:
        writes.append((classification.aki_alias_key, der))
    for key, data in writes:
        result = result.flat_map(
            lambda state, key=key, data=data: store.put(key, data, state.metadata).map(
                lambda _: state
            )
        )
    return result


def _receipt(upload: _Classified) -> PublicationReceipt:
    classification = upload.classification
    return PublicationReceipt(
        kind="delta" if classification.is_delta else "full",
        der_key=classification.canonical_der_key,
        pem_key=classification.canonical_pem_key,
        aki_alias_key=classification.aki_alias_key,
        archived_key=upload.archived_key,
        crl_number=upload.metadata.get("crlNumber") or None,
        base_crl_number=upload.metadata.get("baseCRLNumber") or None,
        this_update=upload.crl.this_update,
        next_update=upload.crl.next_update,
    )


def publish_crl_der(
    der: bytes,
    store: ObjectStore,
    crypto: CryptoProvider,
    settings: StorageSettings,
    now: datetime | None = None,
) -> Result[PublicationReceipt]:
    """
    Validate an uploaded DER CRL and store it as the current version for its issuer.

    Returns the receipt of what was stored, or the failure of the first
    rejecting stage (see module docstring). The PEM copy is always generated
    from the DER.
    """
    timestamp = now or datetime.now(UTC)

    def with_issuer(crl: Crl) -> Result[_Upload]:
        return (
            list_ca_candidates(store, crypto, settings.ca_prefix)
            .flat_map(lambda candidates: resolve_issuer(crl, candidates))
            .map(lambda issuer: _Upload(crl=crl, issuer=issuer))
        )

    return (
        Result.attempt(lambda: build_crl_details(der, crypto))
        .flat_map(with_issuer)
        .ensure(lambda upload: verify(upload.crl, upload.issuer, crypto), _signature_invalid)
        .map(lambda upload: _classify(upload, settings))
        .flat_map(lambda upload: _load_existing(upload, store, crypto))
        .ensure(lambda upload: is_newer(upload.crl, upload.existing), _stale)
        .map(lambda upload: replace(upload, metadata=_metadata(upload.crl, upload.issuer)))
        .flat_map(lambda upload: _write(upload, store, crypto, timestamp))
        .peek(
            lambda upload: log.info(
                "pipeline.published",
                key=upload.classification.canonical_der_key,
                crl_number=upload.crl.crl_number,
                archived=upload.archived_key,
            )
        )
        .map(_receipt)
    )


def publish_crl(
    pem_text: str,
    store: ObjectStore,
    crypto: CryptoProvider,
    settings: StorageSettings,
    now: datetime | None = None,
) -> Result[PublicationReceipt]:
    """PEM variant of publish_crl_der: the first ``X509 CRL`` block is published."""
    return Result.attempt(lambda: extract_pem_block(pem_text, CRL_LABEL)).flat_map(
        lambda der: publish_crl_der(der, store, crypto, settings, now)
    )


# ─────────────────────── Inspection ───────────────────────


def _describe(obj: StoredObject, crypto: CryptoProvider) -> ObjectDescription:
    description = ObjectDescription(
        key=obj.key,
        object_type=ObjectType.BINARY,
        size=obj.size,
        uploaded_at=obj.uploaded_at,
    )
    try:
        if obj.key.endswith(_CERTIFICATE_SUFFIXES):
            der = obj.data
            if obj.key.endswith(".pem"):
                der = extract_pem_block(obj.data.decode("utf-8"), CERTIFICATE_LABEL)
            return replace(
                description,
                object_type=ObjectType.CERTIFICATE,
                certificate=build_certificate_details(der, crypto),
            )
        if obj.key.endswith(_CRL_SUFFIXES):
            der = obj.data
            if obj.key.endswith(".pem"):
                der = extract_pem_block(obj.data.decode("utf-8"), CRL_LABEL)
            return replace(
                description, object_type=ObjectType.CRL, crl=build_crl_details(der, crypto)
            )
    except (PkiError, UnicodeDecodeError) as e:
        log.info("pipeline.describe_unparsed", key=obj.key, error=str(e))
        return replace(description, object_type=ObjectType.UNKNOWN, parse_error=str(e))
    return description


def describe_object(
    key: str,
    store: ObjectStore,
    crypto: CryptoProvider,
    settings: StorageSettings,
) -> Result[ObjectDescription]:
    """
    Decoded view of one stored object. Objects that fail to decode are still
    described (object_type=unknown, parse_error set); only unknown prefixes
    and missing keys are failures.
    """
    normalized = key.lstrip("/")
    if not normalized.startswith(settings.known_prefixes):
        return Result.failure(
            ErrorCode.VALIDATION_ERROR,
            f"Unsupported key prefix for '{key}'",
            context={"key": key, "allowed_prefixes": list(settings.known_prefixes)},
        )
    return store.get(normalized).map(lambda obj: _describe(obj, crypto))


def list_objects(prefix: str, store: ObjectStore) -> Result[list[ObjectSummary]]:
    return store.summaries(prefix)


# ─────────────────────── CRL listing & statistics ───────────────────────


def _canonical_crls(objects: list[ObjectSummary], folder: str) -> list[ObjectSummary]:
    """
    One summary per CRL stored directly in ``folder``, preferring the DER
    object over its PEM copy. by-keyid aliases and archives live in
    subfolders and are left out.
    """
    prefix = f"{folder}/"
    chosen: dict[str, ObjectSummary] = {}
    for obj in objects:
        name = obj.key.removeprefix(prefix)
        if name == obj.key or "/" in name or not name.endswith(_CRL_SUFFIXES):
            continue
        base = name.removesuffix(".pem")
        if obj.key.endswith(".pem") and base in chosen:
            continue
        chosen[base] = obj
    return [chosen[base] for base in sorted(chosen)]


def _count(value: str | None) -> int:
    try:
        return int(value or 0)
    except ValueError:
        return 0


def _timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return normalize_time(datetime.fromisoformat(value))
    except ValueError:
        log.warning("pipeline.metadata_time_unreadable", value=value)
        return None


def _listing(obj: ObjectSummary, kind: str, now: datetime) -> CrlListing:
    metadata = obj.metadata
    this_update = _timestamp(metadata.get("thisUpdate"))
    next_update = _timestamp(metadata.get("nextUpdate"))
    sha1, sha256 = metadata.get("fingerprintSha1"), metadata.get("fingerprintSha256")
    return CrlListing(
        key=obj.key.removesuffix(".pem"),
        kind=kind,
        size=obj.size,
        uploaded_at=obj.uploaded_at,
        issuer_common_name=metadata.get("issuerCN") or None,
        crl_number=metadata.get("crlNumber") or None,
        base_crl_number=metadata.get("baseCRLNumber") or None,
        this_update=this_update,
        next_update=next_update,
        revoked_count=_count(metadata.get("revokedCount")),
        status=crl_status(this_update, next_update, now),
        fingerprints=Fingerprints(sha1=sha1, sha256=sha256) if sha1 and sha256 else None,
    )


def list_crls(
    store: ObjectStore,
    settings: StorageSettings,
    kind: str | None = None,
    status: str | None = None,
    now: datetime | None = None,
) -> Result[list[CrlListing]]:
    """
    Published CRLs, full before delta, each ordered by key.

    ``kind`` restricts to ``full`` or ``delta``; ``status`` to one CrlState.
    """
    states = [state.value for state in CrlState]
    if kind is not None and kind not in _CRL_KINDS:
        return Result.failure(
            ErrorCode.VALIDATION_ERROR,
            f"Unknown CRL type '{kind}'",
            context={"type": kind, "allowed": list(_CRL_KINDS)},
        )
    if status is not None and status not in states:
        return Result.failure(
            ErrorCode.VALIDATION_ERROR,
            f"Unknown CRL status '{status}'",
            context={"status": status, "allowed": states},
        )

    timestamp = now or datetime.now(UTC)
    folders = {"full": settings.full_folder, "delta": settings.delta_folder}

    def collect(rows: list[CrlListing], name: str) -> Result[list[CrlListing]]:
        folder = folders[name]
        return store.summaries(f"{folder}/").map(
            lambda objects: rows
            + [_listing(obj, name, timestamp) for obj in _canonical_crls(objects, folder)]
        )

    result: Result[list[CrlListing]] = Result.success([])
    for name in _CRL_KINDS:
        if kind in (None, name):
            result = result.flat_map(lambda rows, name=name: collect(rows, name))
    return result.map(
        lambda rows: [row for row in rows if status is None or row.status.state == status]
    )


def _tally(objects: list[ObjectSummary], settings: StorageSettings) -> DepotStats:
    prefixes = settings.known_prefixes
    by_prefix = dict.fromkeys(prefixes, 0)
    for obj in objects:
        for prefix in prefixes:
            if obj.key.startswith(prefix):
                by_prefix[prefix] += obj.size
                break

    certificates = {
        obj.key.removesuffix(".pem")
        for obj in objects
        if obj.key.startswith(settings.ca_prefix) and obj.key.endswith(_CERTIFICATE_SUFFIXES)
    }
    full = _canonical_crls(objects, settings.full_folder)
    delta = _canonical_crls(objects, settings.delta_folder)
    return DepotStats(
        certificates=len(certificates),
        full_crls=len(full),
        delta_crls=len(delta),
        total_revocations=sum(_count(obj.metadata.get("revokedCount")) for obj in full + delta),
        storage=StorageUsage(total_bytes=sum(by_prefix.values()), by_prefix=by_prefix),
    )


def collect_stats(store: ObjectStore, settings: StorageSettings) -> Result[DepotStats]:
    """
    Counts of stored certificates and published CRLs, revocations across
    the current CRLs, and bytes stored under each known prefix.

    Each certificate or CRL is counted once, whether or not a PEM copy sits
    beside it; aliases and archives add to storage bytes only.
    """
    return store.summaries("").map(lambda objects: _tally(objects, settings))
