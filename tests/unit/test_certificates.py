"""
Unit tests for the certificate model builder, against certificates signed
by cryptography's CertificateBuilder.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from cert_depot.adapters.crypto import CryptographyProvider
from cert_depot.domain.errors import MalformedDER, UnsupportedObjectType
from cert_depot.domain.extension_values import (
    AuthorityInfoAccessValue,
    BasicConstraintsValue,
    CertificatePoliciesValue,
    CrlDistributionPointsValue,
    ExtendedKeyUsageValue,
    GeneralNamesValue,
)
from cert_depot.domain.models import ExtensionStatus
from cert_depot.pki.certificates import build_certificate_details
from cert_depot.pki.oids import ExtensionOid
from tests.factories import NOW, IssuedCA, cert_der, crl_der, make_ca, make_crl, make_leaf


class TestRsaCertificate:
    def test_identity_fields(self, rsa_ca: IssuedCA, crypto: CryptographyProvider) -> None:
        certificate = build_certificate_details(rsa_ca.der, crypto)

        assert certificate.version == 3
        assert certificate.subject.display == "C=ES, O=Example Org, CN=Test Root CA"
        assert certificate.issuer == certificate.subject
        assert certificate.serial.hex == "1234abcd"
        assert certificate.serial.decimal == str(0x1234ABCD)
        assert certificate.not_before == NOW - timedelta(days=30)
        assert certificate.not_after == NOW + timedelta(days=3650)
        assert certificate.signature_algorithm.name == "sha256WithRSAEncryption"

    def test_modulus_has_no_sign_byte(self, rsa_ca: IssuedCA, crypto: CryptographyProvider) -> None:
        """
        GIVEN an RSA-2048 CA certificate
        WHEN its public key is described
        THEN the modulus is 256 bytes without the DER sign byte and the size is 2048.
        """
        key = build_certificate_details(rsa_ca.der, crypto).public_key

        assert key.algorithm.name == "rsaEncryption"
        assert key.size_bits == 2048
        assert key.size_bits % 8 == 0
        assert key.exponent == 65537
        assert key.modulus_hex is not None
        assert not key.modulus_hex.startswith("00")
        expected = format(rsa_ca.key.public_key().public_numbers().n, "x")
        assert key.modulus_hex == expected

    def test_subject_key_identifier(self, rsa_ca: IssuedCA, crypto: CryptographyProvider) -> None:
        certificate = build_certificate_details(rsa_ca.der, crypto)
        assert certificate.subject_key_identifier == rsa_ca.ski_hex

    def test_ca_extensions(self, rsa_ca: IssuedCA, crypto: CryptographyProvider) -> None:
        certificate = build_certificate_details(rsa_ca.der, crypto)

        basic = certificate.extension(ExtensionOid.BASIC_CONSTRAINTS)
        assert basic is not None and basic.critical
        assert basic.value == BasicConstraintsValue(is_ca=True, path_len_constraint=0)
        key_usage = certificate.extension(ExtensionOid.KEY_USAGE)
        assert key_usage is not None
        assert key_usage.value.enabled == ("digitalSignature", "keyCertSign", "cRLSign")

    def test_fingerprints_are_deterministic(
        self, rsa_ca: IssuedCA, crypto: CryptographyProvider
    ) -> None:
        first = build_certificate_details(rsa_ca.der, crypto)
        second = build_certificate_details(rsa_ca.der, crypto)

        assert first.fingerprints == second.fingerprints
        assert first.fingerprints.sha256 == crypto.sha256(rsa_ca.der)
        assert len(first.fingerprints.sha1) == 40
        assert first.public_key.fingerprints.sha256 == crypto.sha256(
            first.public_key.spki_der
        )


class TestEcCertificate:
    def test_named_curve(self, ec_ca: IssuedCA, crypto: CryptographyProvider) -> None:
        key = build_certificate_details(ec_ca.der, crypto).public_key

        assert key.algorithm.name == "ecPublicKey"
        assert key.curve_oid == "1.2.840.10045.3.1.7"
        assert key.curve_name == "P-256"
        assert key.size_bits == 256
        assert key.modulus_hex is None

    def test_ecdsa_signature_algorithm(self, ec_ca: IssuedCA, crypto: CryptographyProvider) -> None:
        certificate = build_certificate_details(ec_ca.der, crypto)
        assert certificate.signature_algorithm.name == "ecdsa-with-SHA256"


class TestLeafExtensions:
    @pytest.fixture()
    def leaf(self, rsa_ca: IssuedCA, crypto: CryptographyProvider):
        return build_certificate_details(cert_der(make_leaf(rsa_ca)), crypto)

    def test_subject_alternative_names(self, leaf) -> None:
        value = leaf.extension(ExtensionOid.SUBJECT_ALT_NAME).value
        assert isinstance(value, GeneralNamesValue)
        assert value.dns_names == ("leaf.example.test",)
        assert value.emails == ("ops@example.test",)
        assert value.uris == ("https://leaf.example.test/",)
        assert value.ip_addresses == ("192.0.2.10", "2001:db8::1")

    def test_extended_key_usage(self, leaf) -> None:
        value = leaf.extension(ExtensionOid.EXTENDED_KEY_USAGE).value
        assert isinstance(value, ExtendedKeyUsageValue)
        assert value.usages == ("serverAuth", "clientAuth")

    def test_authority_info_access(self, leaf) -> None:
        value = leaf.extension(ExtensionOid.AUTHORITY_INFO_ACCESS).value
        assert isinstance(value, AuthorityInfoAccessValue)
        assert value.ocsp == ("http://ocsp.example.test",)
        assert value.ca_issuers == ("http://ca.example.test/root.crt",)

    def test_distribution_point_urls_are_deduplicated(self, leaf) -> None:
        """
        GIVEN two distribution points naming the same URL
        WHEN the extension is decoded
        THEN the URL appears once overall but both points are listed.
        """
        value = leaf.extension(ExtensionOid.CRL_DISTRIBUTION_POINTS).value
        assert isinstance(value, CrlDistributionPointsValue)
        assert value.urls == ("http://crl.example.test/root.crl",)
        assert len(value.distribution_points) == 2

    def test_certificate_policies(self, leaf) -> None:
        value = leaf.extension(ExtensionOid.CERTIFICATE_POLICIES).value
        assert isinstance(value, CertificatePoliciesValue)
        cps, notice = value.policies
        assert cps.oid == "1.3.6.1.4.1.99999.1"
        assert cps.qualifiers[0].value == "https://example.test/cps"
        assert notice.qualifiers[0].value == "userNotice"

    def test_authority_key_identifier(self, leaf, rsa_ca: IssuedCA) -> None:
        assert leaf.authority_key_identifier == rsa_ca.ski_hex

    def test_unknown_extension_is_unparsed(self, leaf) -> None:
        unknown = leaf.extension("1.3.6.1.4.1.99999.7")
        assert unknown is not None
        assert unknown.status is ExtensionStatus.UNPARSED
        assert unknown.raw_hex == "0500"

    def test_end_entity_key_is_ec(self, leaf) -> None:
        assert leaf.public_key.curve_name == "P-256"


class TestCertificateWithoutOptionalData:
    def test_no_common_name_and_no_ski(self, crypto: CryptographyProvider) -> None:
        ca = make_ca(common_name=None, with_ski=False)
        certificate = build_certificate_details(ca.der, crypto)

        assert certificate.subject.common_name is None
        assert certificate.subject_key_identifier is None


class TestRejectedInput:
    def test_crl_is_not_a_certificate(self, rsa_ca: IssuedCA, crypto: CryptographyProvider) -> None:
        """
        GIVEN valid DER that is a CRL
        WHEN handed to the certificate builder
        THEN UnsupportedObjectType is raised, not MalformedDER.
        """
        with pytest.raises(UnsupportedObjectType) as excinfo:
            build_certificate_details(crl_der(make_crl(rsa_ca)), crypto)
        assert excinfo.value.context["expected"] == "certificate"

    def test_random_bytes_are_malformed(self, crypto: CryptographyProvider) -> None:
        with pytest.raises(MalformedDER):
            build_certificate_details(b"not der at all", crypto)

    def test_trailing_bytes_are_malformed(self, rsa_ca: IssuedCA, crypto: CryptographyProvider) -> None:
        with pytest.raises(MalformedDER):
            build_certificate_details(rsa_ca.der + b"\x00", crypto)

    def test_other_der_is_unsupported(self, crypto: CryptographyProvider) -> None:
        with pytest.raises(UnsupportedObjectType):
            build_certificate_details(bytes.fromhex("020105"), crypto)
