"""
Unit tests for the CRL model builder.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization

from cert_depot.adapters.crypto import CryptographyProvider
from cert_depot.domain.errors import MalformedDER, UnsupportedObjectType
from cert_depot.domain.models import ExtensionStatus
from cert_depot.pki.crls import REVOKED_SAMPLE_SIZE, build_crl_details, signed_portion
from cert_depot.pki.oids import ExtensionOid
from tests.factories import (
    NOW,
    IssuedCA,
    crl_der,
    make_crl,
    make_crl_without_next_update,
    revoked,
)


class TestFullCrl:
    def test_header_fields(self, rsa_ca: IssuedCA, crypto: CryptographyProvider) -> None:
        crl = build_crl_details(crl_der(make_crl(rsa_ca, number=42)), crypto)

        assert crl.issuer.common_name == "Test Root CA"
        assert crl.this_update == NOW
        assert crl.next_update == NOW + timedelta(days=7)
        assert crl.signature_algorithm.name == "sha256WithRSAEncryption"
        assert crl.crl_number == 42
        assert crl.is_delta is False
        assert crl.delta_base_crl_number is None
        assert crl.authority_key_identifier == rsa_ca.ski_hex
        assert crl.revoked_count == 0
        assert crl.revoked_sample == ()

    def test_large_crl_number(self, rsa_ca: IssuedCA, crypto: CryptographyProvider) -> None:
        number = 2**100 + 7
        crl = build_crl_details(crl_der(make_crl(rsa_ca, number=number)), crypto)
        assert crl.crl_number == number

    def test_without_crl_number(self, rsa_ca: IssuedCA, crypto: CryptographyProvider) -> None:
        crl = build_crl_details(crl_der(make_crl(rsa_ca, number=None, with_aki=False)), crypto)
        assert crl.crl_number is None
        assert crl.authority_key_identifier is None
        assert crl.extensions == ()

    def test_fingerprints_cover_the_der(self, rsa_ca: IssuedCA, crypto: CryptographyProvider) -> None:
        der = crl_der(make_crl(rsa_ca))
        assert build_crl_details(der, crypto).fingerprints.sha256 == crypto.sha256(der)


class TestRevokedEntries:
    def test_sample_is_capped_but_count_is_not(
        self, rsa_ca: IssuedCA, crypto: CryptographyProvider
    ) -> None:
        """
        GIVEN a CRL revoking eight certificates
        WHEN decoded
        THEN revoked_count is 8 and only the first five entries are decoded.
        """
        entries = [revoked(serial) for serial in range(100, 108)]
        crl = build_crl_details(crl_der(make_crl(rsa_ca, entries=entries)), crypto)

        assert crl.revoked_count == 8
        assert len(crl.revoked_sample) == REVOKED_SAMPLE_SIZE
        assert crl.revoked_sample[0].serial.decimal == "100"

    def test_entry_reason_and_date(self, rsa_ca: IssuedCA, crypto: CryptographyProvider) -> None:
        entries = [
            revoked(0x0A, x509.ReasonFlags.key_compromise),
            revoked(0x0B),
        ]
        crl = build_crl_details(crl_der(make_crl(rsa_ca, entries=entries)), crypto)

        first, second = crl.revoked_sample
        assert first.serial.hex == "0a"
        assert first.reason == "keyCompromise"
        assert first.revocation_date == NOW - timedelta(days=2)
        assert second.reason is None


class TestDeltaCrl:
    def test_delta_indicator(self, rsa_ca: IssuedCA, crypto: CryptographyProvider) -> None:
        crl = build_crl_details(crl_der(make_crl(rsa_ca, number=8, delta_base=5)), crypto)

        assert crl.is_delta is True
        assert crl.delta_base_crl_number == 5
        assert crl.crl_number == 8
        indicator = crl.extension(ExtensionOid.DELTA_CRL_INDICATOR)
        assert indicator is not None
        assert indicator.critical is True
        assert indicator.status is ExtensionStatus.PARSED


class TestCrlWithoutNextUpdate:
    def test_next_update_is_absent_not_an_error(
        self, rsa_ca: IssuedCA, crypto: CryptographyProvider
    ) -> None:
        crl = build_crl_details(make_crl_without_next_update(rsa_ca), crypto)

        assert crl.next_update is None
        assert crl.this_update == NOW
        assert crl.seconds_until_next_update(NOW) is None
        assert crl.is_expired(NOW) is None


class TestFreshnessHelpers:
    def test_seconds_until_next_update(self, rsa_ca: IssuedCA, crypto: CryptographyProvider) -> None:
        crl = build_crl_details(crl_der(make_crl(rsa_ca)), crypto)

        assert crl.seconds_until_next_update(NOW) == 7 * 24 * 3600
        assert crl.is_expired(NOW) is False
        assert crl.is_expired(NOW + timedelta(days=8)) is True
        assert crl.seconds_until_next_update(NOW + timedelta(days=8)) == -24 * 3600


class TestSignedPortion:
    def test_signature_verifies_over_signed_portion(
        self, rsa_ca: IssuedCA, crypto: CryptographyProvider
    ) -> None:
        crl = build_crl_details(crl_der(make_crl(rsa_ca)), crypto)
        tbs, algorithm = signed_portion(crl)

        assert crypto.verify_signature(
            build_spki(rsa_ca), tbs, crl.signature_value, algorithm
        )


def build_spki(ca: IssuedCA) -> bytes:
    return ca.key.public_key().public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )


class TestRejectedInput:
    def test_certificate_is_not_a_crl(self, rsa_ca: IssuedCA, crypto: CryptographyProvider) -> None:
        with pytest.raises(UnsupportedObjectType) as excinfo:
            build_crl_details(rsa_ca.der, crypto)
        assert excinfo.value.context["expected"] == "crl"

    def test_random_bytes_are_malformed(self, crypto: CryptographyProvider) -> None:
        with pytest.raises(MalformedDER):
            build_crl_details(b"\x30\x82\xff", crypto)

    def test_empty_input_is_malformed(self, crypto: CryptographyProvider) -> None:
        with pytest.raises(MalformedDER):
            build_crl_details(b"", crypto)
