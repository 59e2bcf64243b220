"""PEM armour for certificates and CRLs, on top of asn1crypto.pem."""

from __future__ import annotations

from asn1crypto import pem

from cert_depot.domain.errors import MalformedPEM

CERTIFICATE_LABEL = "CERTIFICATE"
CRL_LABEL = "X509 CRL"


def extract_pem_block(text: str, label: str) -> bytes:
    """
    Return the DER inside the first ``-----BEGIN <label>-----`` block.

    Blocks with other labels are skipped. Whitespace in the base64 body is
    ignored; missing delimiters, an empty body or invalid base64 raise
    MalformedPEM.
    """
    seen: list[str] = []
    try:
        for object_type, _headers, der in pem.unarmor(text.encode("utf-8"), multiple=True):
            if object_type != label:
                seen.append(object_type)
                continue
            if not der:
                raise MalformedPEM(f"PEM block {label!r} is empty", label=label)
            return der
    except ValueError as e:
        raise MalformedPEM(f"PEM block {label!r} is unreadable: {e}", label=label) from e
    raise MalformedPEM(
        f"PEM block '-----BEGIN {label}-----' not found", label=label, found=seen
    )


def encode_pem(der: bytes, label: str) -> str:
    return pem.armor(label, der).decode("ascii")
