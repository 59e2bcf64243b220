"""
CRL freshness, classification and archival naming.

Storage layout for a CRL issued by the CA labelled ``<label>``:

    <folder>/<label>.crl                 canonical DER
    <folder>/<label>.crl.pem             canonical PEM
    <folder>/by-keyid/<aki>.crl          alias (only when the CRL has an AKI)
    <folder>/archive/<label>-<tag>.crl   superseded versions

where <folder> is the full or delta folder and <tag> is the superseded CRL's
number, or the first 16 hex digits of its SHA-256 when it has none.
"""

from __future__ import annotations

import math
import re
from datetime import datetime

import structlog

from cert_depot.domain.models import (
    ArchiveRecord,
    CACandidate,
    Certificate,
    ClassificationResult,
    Crl,
    CrlState,
    CrlStatus,
)
from cert_depot.domain.ports import CryptoProvider

log = structlog.get_logger()

DEFAULT_FULL_FOLDER = "full"
DEFAULT_DELTA_FOLDER = "delta"

_LABEL_UNSAFE = re.compile(r"[^A-Za-z0-9_.-]+")
_TAG_LENGTH = 16
_STALE_FRACTION = 0.8


def is_newer(incoming: Crl, existing: Crl | None) -> bool:
    """
    True when ``incoming`` should replace ``existing``.

    CRL numbers decide when both are present and differ; otherwise
    thisUpdate must be strictly later. When neither can be compared the
    answer is False.
    """
    if existing is None:
        return True

    incoming_number, existing_number = incoming.crl_number, existing.crl_number
    if incoming_number is not None and existing_number is not None:
        if incoming_number > existing_number:
            return True
        if incoming_number < existing_number:
            return False

    if incoming.this_update is not None and existing.this_update is not None:
        return incoming.this_update > existing.this_update

    # TODO: confirm with operators whether an undecidable upload should be accepted
    log.warning(
        "lifecycle.freshness_undetermined",
        incoming_crl_number=incoming_number,
        existing_crl_number=existing_number,
        incoming_this_update=incoming.this_update,
        existing_this_update=existing.this_update,
    )
    return False


def friendly_label(certificate: Certificate) -> str:
    """
    Filesystem-safe label for an issuing CA: its CN with anything outside
    ``[A-Za-z0-9_.-]`` removed, else ``CA-`` plus a 16-digit key or
    certificate hash prefix.
    """
    common_name = certificate.subject.common_name
    if common_name:
        label = _LABEL_UNSAFE.sub("", common_name)
        if label:
            return label
    ski = certificate.subject_key_identifier
    if ski:
        return f"CA-{ski[:_TAG_LENGTH]}"
    return f"CA-{certificate.fingerprints.sha256[:_TAG_LENGTH]}"


def classify(
    crl: Crl,
    issuer: CACandidate,
    *,
    full_folder: str = DEFAULT_FULL_FOLDER,
    delta_folder: str = DEFAULT_DELTA_FOLDER,
) -> ClassificationResult:
    label = friendly_label(issuer.certificate)
    folder = delta_folder if crl.is_delta else full_folder
    aki = crl.authority_key_identifier
    return ClassificationResult(
        friendly_issuer_name=label,
        is_delta=crl.is_delta,
        delta_base_number=crl.delta_base_crl_number,
        storage_folder=folder,
        canonical_der_key=f"{folder}/{label}.crl",
        canonical_pem_key=f"{folder}/{label}.crl.pem",
        aki_alias_key=f"{folder}/by-keyid/{aki}.crl" if aki else None,
    )


def archive(
    existing: Crl,
    classification: ClassificationResult,
    metadata: dict[str, str],
    crypto: CryptoProvider,
    now: datetime,
) -> ArchiveRecord:
    """Where and how a superseded CRL is preserved before it is overwritten."""
    number = existing.crl_number
    tag = str(number) if number is not None else crypto.sha256(existing.der)[:_TAG_LENGTH]
    return ArchiveRecord(
        key=(
            f"{classification.storage_folder}/archive/"
            f"{classification.friendly_issuer_name}-{tag}.crl"
        ),
        data=existing.der,
        metadata={
            **metadata,
            "archivedAt": now.isoformat(),
            "kind": "delta" if classification.is_delta else "full",
        },
    )


def crl_status(
    this_update: datetime | None, next_update: datetime | None, now: datetime
) -> CrlStatus:
    """
    Freshness of a CRL from its validity window.

    EXPIRED once ``now`` is past nextUpdate; STALE when more than 80% of the
    thisUpdate..nextUpdate window has elapsed; CURRENT otherwise, including
    when nextUpdate is absent.
    """
    if next_update is None:
        return CrlStatus(state=CrlState.CURRENT)
    if now > next_update:
        return CrlStatus(
            state=CrlState.EXPIRED,
            expired_ago=math.floor((now - next_update).total_seconds()),
        )
    state = CrlState.CURRENT
    if this_update is not None:
        window = (next_update - this_update).total_seconds()
        if (now - this_update).total_seconds() > window * _STALE_FRACTION:
            state = CrlState.STALE
    return CrlStatus(state=state, expires_in=math.floor((next_update - now).total_seconds()))
