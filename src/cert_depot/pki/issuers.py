"""
Issuer resolution and CRL signature verification.

Resolution order, first match wins:
  1. CRL AuthorityKeyIdentifier keyIdentifier == candidate SubjectKeyIdentifier
     (case-insensitive)
  2. CRL issuer DN == candidate subject DN, both as ordered ``oid=value`` joins
  3. otherwise ISSUER_NOT_FOUND

Candidates are supplied by the caller; nothing here touches storage.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import structlog

from cert_depot.domain.models import CACandidate, Crl
from cert_depot.domain.ports import CryptoProvider
from cert_depot.pki.crls import signed_portion
from cert_depot.railway import ErrorCode, Result

log = structlog.get_logger()


def _match_by_key_identifier(
    key_identifier: str, candidates: Iterable[CACandidate]
) -> CACandidate | None:
    wanted = key_identifier.lower()
    for candidate in candidates:
        ski = candidate.certificate.subject_key_identifier
        if ski is not None and ski.lower() == wanted:
            return candidate
    return None


def _match_by_name(crl: Crl, candidates: Iterable[CACandidate]) -> CACandidate | None:
    wanted = crl.issuer.matching_key
    for candidate in candidates:
        if candidate.certificate.subject.matching_key == wanted:
            return candidate
    return None


def resolve_issuer(crl: Crl, candidates: Sequence[CACandidate]) -> Result[CACandidate]:
    aki = crl.authority_key_identifier
    if aki:
        match = _match_by_key_identifier(aki, candidates)
        if match is not None:
            log.debug("issuers.resolved", by="key_identifier", key=match.storage_key)
            return Result.success(match)

    match = _match_by_name(crl, candidates)
    if match is not None:
        log.debug("issuers.resolved", by="name", key=match.storage_key)
        return Result.success(match)

    log.info(
        "issuers.not_found",
        issuer=crl.issuer.display,
        authority_key_identifier=aki,
        candidates=len(candidates),
    )
    return Result.failure(
        ErrorCode.ISSUER_NOT_FOUND,
        f"No stored CA certificate matches CRL issuer '{crl.issuer.display}'",
        context={
            "issuer": crl.issuer.display,
            "authority_key_identifier": aki,
            "candidates": len(candidates),
        },
    )


def verify(crl: Crl, issuer: CACandidate, crypto: CryptoProvider) -> bool:
    """
    Check the CRL signature with the issuer's public key.

    A mismatching signature and any error raised while checking it (unknown
    algorithm, key of the wrong type, malformed signature) all give False.
    """
    try:
        tbs_der, algorithm_der = signed_portion(crl)
        valid = crypto.verify_signature(
            issuer.certificate.public_key.spki_der,
            tbs_der,
            crl.signature_value,
            algorithm_der,
        )
    except Exception as e:
        log.warning(
            "issuers.verify_failed",
            issuer_key=issuer.storage_key,
            algorithm=crl.signature_algorithm.name,
            error=f"{type(e).__name__}: {e}",
        )
        return False

    if not valid:
        log.info(
            "issuers.signature_mismatch",
            issuer_key=issuer.storage_key,
            crl_issuer=crl.issuer.display,
        )
    return valid
