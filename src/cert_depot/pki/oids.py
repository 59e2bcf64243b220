"""
Static OID tables.

Names here are display names only; an OID missing from a table is shown
verbatim rather than rejected.
"""

from __future__ import annotations

from enum import StrEnum


class ExtensionOid(StrEnum):
    SUBJECT_KEY_IDENTIFIER = "2.5.29.14"
    KEY_USAGE = "2.5.29.15"
    SUBJECT_ALT_NAME = "2.5.29.17"
    ISSUER_ALT_NAME = "2.5.29.18"
    BASIC_CONSTRAINTS = "2.5.29.19"
    CRL_NUMBER = "2.5.29.20"
    CRL_REASON = "2.5.29.21"
    DELTA_CRL_INDICATOR = "2.5.29.27"
    ISSUING_DISTRIBUTION_POINT = "2.5.29.28"
    CRL_DISTRIBUTION_POINTS = "2.5.29.31"
    CERTIFICATE_POLICIES = "2.5.29.32"
    AUTHORITY_KEY_IDENTIFIER = "2.5.29.35"
    EXTENDED_KEY_USAGE = "2.5.29.37"
    FRESHEST_CRL = "2.5.29.46"
    AUTHORITY_INFO_ACCESS = "1.3.6.1.5.5.7.1.1"


# oid -> (short name, long name)
NAME_ATTRIBUTES: dict[str, tuple[str | None, str]] = {
    "2.5.4.3": ("CN", "commonName"),
    "2.5.4.4": ("SN", "surname"),
    "2.5.4.5": ("serialNumber", "serialNumber"),
    "2.5.4.6": ("C", "countryName"),
    "2.5.4.7": ("L", "localityName"),
    "2.5.4.8": ("ST", "stateOrProvinceName"),
    "2.5.4.9": ("STREET", "streetAddress"),
    "2.5.4.10": ("O", "organizationName"),
    "2.5.4.11": ("OU", "organizationalUnitName"),
    "2.5.4.12": ("T", "title"),
    "2.5.4.13": ("DESCRIPTION", "description"),
    "2.5.4.15": ("BUSINESS", "businessCategory"),
    "2.5.4.17": ("POSTAL", "postalCode"),
    "2.5.4.42": ("GN", "givenName"),
    "2.5.4.97": (None, "organizationIdentifier"),
    "1.2.840.113549.1.9.1": ("emailAddress", "emailAddress"),
    "0.9.2342.19200300.100.1.1": ("UID", "userId"),
    "0.9.2342.19200300.100.1.25": ("DC", "domainComponent"),
}

SIGNATURE_ALGORITHMS: dict[str, str] = {
    "1.2.840.113549.1.1.5": "sha1WithRSAEncryption",
    "1.2.840.113549.1.1.10": "rsassaPss",
    "1.2.840.113549.1.1.11": "sha256WithRSAEncryption",
    "1.2.840.113549.1.1.12": "sha384WithRSAEncryption",
    "1.2.840.113549.1.1.13": "sha512WithRSAEncryption",
    "1.2.840.113549.1.1.14": "sha224WithRSAEncryption",
    "1.2.840.10045.4.1": "ecdsa-with-SHA1",
    "1.2.840.10045.4.3.1": "ecdsa-with-SHA224",
    "1.2.840.10045.4.3.2": "ecdsa-with-SHA256",
    "1.2.840.10045.4.3.3": "ecdsa-with-SHA384",
    "1.2.840.10045.4.3.4": "ecdsa-with-SHA512",
    "2.16.840.1.101.3.4.3.2": "dsa-with-SHA256",
    "1.3.101.112": "Ed25519",
    "1.3.101.113": "Ed448",
}

KEY_ALGORITHMS: dict[str, str] = {
    "1.2.840.113549.1.1.1": "rsaEncryption",
    "1.2.840.113549.1.1.10": "rsassaPss",
    "1.2.840.10040.4.1": "dsa",
    "1.2.840.10045.2.1": "ecPublicKey",
    "1.3.101.110": "X25519",
    "1.3.101.111": "X448",
    "1.3.101.112": "Ed25519",
    "1.3.101.113": "Ed448",
}

RSA_ENCRYPTION = "1.2.840.113549.1.1.1"
EC_PUBLIC_KEY = "1.2.840.10045.2.1"

# Named EC curves plus the algorithms whose OID *is* the curve.
CURVES: dict[str, str] = {
    "1.2.840.10045.3.1.7": "P-256",
    "1.3.132.0.34": "P-384",
    "1.3.132.0.35": "P-521",
    "1.3.132.0.10": "secp256k1",
    "1.3.101.110": "X25519",
    "1.3.101.111": "X448",
    "1.3.101.112": "Ed25519",
    "1.3.101.113": "Ed448",
}

EXTENDED_KEY_USAGES: dict[str, str] = {
    "1.3.6.1.5.5.7.3.1": "serverAuth",
    "1.3.6.1.5.5.7.3.2": "clientAuth",
    "1.3.6.1.5.5.7.3.3": "codeSigning",
    "1.3.6.1.5.5.7.3.4": "emailProtection",
    "1.3.6.1.5.5.7.3.8": "timeStamping",
    "1.3.6.1.5.5.7.3.9": "OCSPSigning",
    "2.5.29.37.0": "anyExtendedKeyUsage",
}

EXTENSION_NAMES: dict[str, str] = {
    "2.5.29.14": "Subject Key Identifier",
    "2.5.29.15": "Key Usage",
    "2.5.29.16": "Private Key Usage Period",
    "2.5.29.17": "Subject Alternative Name",
    "2.5.29.18": "Issuer Alternative Name",
    "2.5.29.19": "Basic Constraints",
    "2.5.29.20": "CRL Number",
    "2.5.29.21": "CRL Reason Code",
    "2.5.29.27": "Delta CRL Indicator",
    "2.5.29.28": "Issuing Distribution Point",
    "2.5.29.31": "CRL Distribution Points",
    "2.5.29.32": "Certificate Policies",
    "2.5.29.35": "Authority Key Identifier",
    "2.5.29.37": "Extended Key Usage",
    "2.5.29.46": "Freshest CRL",
    "1.3.6.1.5.5.7.1.1": "Authority Information Access",
    "1.3.6.1.5.5.7.1.11": "Subject Information Access",
    "1.3.6.1.5.5.7.1.12": "Logotype",
    "1.3.6.1.4.1.311.21.1": "Certificate Template Name",
    "1.3.6.1.4.1.311.21.4": "Next CRL Publish",
}

KEY_USAGE_FLAGS: tuple[str, ...] = (
    "digitalSignature",
    "nonRepudiation",
    "keyEncipherment",
    "dataEncipherment",
    "keyAgreement",
    "keyCertSign",
    "cRLSign",
    "encipherOnly",
    "decipherOnly",
)

# Code 7 is unassigned in RFC 5280.
CRL_REASONS: dict[int, str] = {
    0: "unspecified",
    1: "keyCompromise",
    2: "caCompromise",
    3: "affiliationChanged",
    4: "superseded",
    5: "cessationOfOperation",
    6: "certificateHold",
    8: "removeFromCRL",
    9: "privilegeWithdrawn",
    10: "aaCompromise",
}

ACCESS_METHOD_OCSP = "1.3.6.1.5.5.7.48.1"
ACCESS_METHOD_CA_ISSUERS = "1.3.6.1.5.5.7.48.2"

POLICY_QUALIFIER_CPS = "1.3.6.1.5.5.7.2.1"
POLICY_QUALIFIER_USER_NOTICE = "1.3.6.1.5.5.7.2.2"


def signature_algorithm_name(oid: str) -> str:
    return SIGNATURE_ALGORITHMS.get(oid, oid)


def key_algorithm_name(oid: str) -> str:
    return KEY_ALGORITHMS.get(oid, oid)


def extension_name(oid: str) -> str | None:
    return EXTENSION_NAMES.get(oid)
