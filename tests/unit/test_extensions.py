"""
Unit tests for the extension decoder registry.

Payload decoders are called directly with raw extnValue bytes; registry
behaviour (unparsed, error isolation, per-owner registration) is exercised
through decode_extension with hand-assembled Extension encodings.
"""

from __future__ import annotations

import pytest
from asn1crypto import core
from asn1crypto import x509 as asn1_x509

from cert_depot.domain.errors import MalformedDER
from cert_depot.domain.extension_values import (
    BasicConstraintsValue,
    CrlNumberValue,
    CrlReasonValue,
    KeyUsageValue,
)
from cert_depot.domain.models import ExtensionStatus
from cert_depot.pki.extensions import (
    CERTIFICATE_DECODERS,
    CRL_DECODERS,
    CRL_ENTRY_DECODERS,
    ExtensionOwner,
    alternative_names,
    basic_constraints,
    crl_number,
    crl_reason,
    decode_extension,
    decode_extensions,
    extension_payload,
    key_usage,
)
from cert_depot.pki.oids import ExtensionOid


def _tlv(tag: int, contents: bytes) -> bytes:
    length = len(contents)
    if length < 0x80:
        return bytes([tag, length]) + contents
    encoded = length.to_bytes((length.bit_length() + 7) // 8, "big")
    return bytes([tag, 0x80 | len(encoded)]) + encoded + contents


def make_extension(oid: str, payload: bytes, critical: bool = False) -> asn1_x509.Extension:
    body = core.ObjectIdentifier(oid).dump()
    if critical:
        body += b"\x01\x01\xff"
    body += _tlv(0x04, payload)
    return asn1_x509.Extension.load(_tlv(0x30, body))


TRUNCATED_SAN = bytes.fromhex("3010820561626364")
BASIC_CONSTRAINTS_CA = bytes.fromhex("30060101ff020100")


class TestKeyUsage:
    def test_single_digital_signature_bit(self) -> None:
        """
        GIVEN the payload 03 02 00 80 (no unused bits, first bit set)
        WHEN decoded
        THEN only digitalSignature is enabled and eight flags are reported.
        """
        value = key_usage(bytes.fromhex("03020080"))
        assert value.enabled == ("digitalSignature",)
        assert value.total_bits == 8
        assert len(value.flags) == 8
        assert "decipherOnly" not in value.flags
        assert value.raw_hex == "0080"

    def test_flags_past_declared_length_are_absent(self) -> None:
        """
        GIVEN seven unused bits in a one-byte BIT STRING
        WHEN decoded
        THEN only the first flag is reported at all.
        """
        value = key_usage(bytes.fromhex("03020780"))
        assert value.total_bits == 1
        assert value.flags == {"digitalSignature": True}

    def test_ninth_bit_is_decipher_only(self) -> None:
        value = key_usage(bytes.fromhex("0303078080"))
        assert value.total_bits == 9
        assert value.enabled == ("digitalSignature", "decipherOnly")

    def test_ca_bits(self) -> None:
        value = key_usage(bytes.fromhex("03020186"))
        assert value.enabled == ("digitalSignature", "keyCertSign", "cRLSign")

    @pytest.mark.parametrize("payload", ["030108", "0302088000", "0400"])
    def test_invalid_payload_raises(self, payload: str) -> None:
        with pytest.raises((ValueError, MalformedDER)):
            key_usage(bytes.fromhex(payload))


class TestCrlNumbers:
    @pytest.mark.parametrize(
        ("payload", "expected"),
        [
            ("020105", 5),
            ("020200ff", 255),
            ("0209010000000000000000", 2**64),
            ("02110100000000000000000000000000000000", 2**128),
        ],
    )
    def test_numbers_of_any_width(self, payload: str, expected: int) -> None:
        assert crl_number(bytes.fromhex(payload)) == CrlNumberValue(number=expected)

    def test_hex_view(self) -> None:
        assert crl_number(bytes.fromhex("020200ff")).hex == "ff"

    def test_empty_integer_raises(self) -> None:
        with pytest.raises(ValueError):
            crl_number(bytes.fromhex("0200"))


class TestCrlReason:
    def test_known_code(self) -> None:
        assert crl_reason(bytes.fromhex("0a0101")) == CrlReasonValue(code=1, reason="keyCompromise")

    def test_unassigned_code(self) -> None:
        assert crl_reason(bytes.fromhex("0a0107")).reason == "reason_7"

    def test_integer_is_not_enumerated(self) -> None:
        with pytest.raises((ValueError, MalformedDER)):
            crl_reason(bytes.fromhex("020101"))


class TestBasicConstraints:
    def test_ca_with_path_length(self) -> None:
        assert basic_constraints(BASIC_CONSTRAINTS_CA) == BasicConstraintsValue(
            is_ca=True, path_len_constraint=0
        )

    def test_empty_sequence_is_end_entity(self) -> None:
        assert basic_constraints(bytes.fromhex("3000")) == BasicConstraintsValue()


class TestRegistry:
    def test_decorated_functions_stay_payload_decoders(self) -> None:
        """
        GIVEN a decoder registered under two OIDs
        WHEN the registries are inspected
        THEN both OIDs are present and the module function still takes raw bytes.
        """
        assert ExtensionOid.SUBJECT_ALT_NAME in CERTIFICATE_DECODERS
        assert ExtensionOid.ISSUER_ALT_NAME in CERTIFICATE_DECODERS
        assert ExtensionOid.ISSUER_ALT_NAME in CRL_DECODERS
        assert ExtensionOid.SUBJECT_ALT_NAME not in CRL_DECODERS
        value = alternative_names(bytes.fromhex("300d820b6578616d706c652e636f6d"))
        assert value.dns_names == ("example.com",)

    def test_owner_specific_registration(self) -> None:
        assert ExtensionOid.CRL_REASON in CRL_ENTRY_DECODERS
        assert ExtensionOid.CRL_NUMBER not in CERTIFICATE_DECODERS
        assert ExtensionOid.DELTA_CRL_INDICATOR in CRL_DECODERS

    def test_unknown_oid_is_unparsed_with_raw_hex(self) -> None:
        extension = make_extension("1.3.6.1.4.1.99999.7", b"\x05\x00")
        entry = decode_extension(extension, CERTIFICATE_DECODERS, ExtensionOwner.CERTIFICATE)
        assert entry.status is ExtensionStatus.UNPARSED
        assert entry.raw_hex == "0500"
        assert entry.value is None

    def test_decoder_from_other_owner_is_not_used(self) -> None:
        extension = make_extension(ExtensionOid.CRL_NUMBER, bytes.fromhex("020105"))
        entry = decode_extension(extension, CERTIFICATE_DECODERS, ExtensionOwner.CERTIFICATE)
        assert entry.status is ExtensionStatus.UNPARSED
        assert entry.name == "CRL Number"

    def test_parsed_entry_keeps_criticality_and_raw(self) -> None:
        extension = make_extension(
            ExtensionOid.KEY_USAGE, bytes.fromhex("03020186"), critical=True
        )
        entry = decode_extension(extension, CERTIFICATE_DECODERS, ExtensionOwner.CERTIFICATE)
        assert entry.status is ExtensionStatus.PARSED
        assert entry.critical is True
        assert isinstance(entry.value, KeyUsageValue)
        assert entry.raw_hex == "03020186"

    def test_broken_payload_is_recorded_not_raised(self) -> None:
        """
        GIVEN a SubjectAltName whose payload is truncated
        WHEN decoded through the registry
        THEN the entry has status=error with a message and its raw hex.
        """
        extension = make_extension(ExtensionOid.SUBJECT_ALT_NAME, TRUNCATED_SAN)
        entry = decode_extension(extension, CERTIFICATE_DECODERS, ExtensionOwner.CERTIFICATE)
        assert entry.status is ExtensionStatus.ERROR
        assert entry.error
        assert entry.raw_hex == TRUNCATED_SAN.hex()

    def test_sibling_extensions_survive_a_broken_one(self) -> None:
        extensions = [
            make_extension(ExtensionOid.BASIC_CONSTRAINTS, BASIC_CONSTRAINTS_CA, critical=True),
            make_extension(ExtensionOid.SUBJECT_ALT_NAME, TRUNCATED_SAN),
            make_extension(ExtensionOid.KEY_USAGE, bytes.fromhex("03020186")),
        ]
        entries = decode_extensions(extensions, CERTIFICATE_DECODERS, ExtensionOwner.CERTIFICATE)
        assert [entry.status for entry in entries] == [
            ExtensionStatus.PARSED,
            ExtensionStatus.ERROR,
            ExtensionStatus.PARSED,
        ]

    def test_absent_extensions(self) -> None:
        assert decode_extensions(None, CRL_DECODERS, ExtensionOwner.CRL) == ()
        assert decode_extensions(core.Void(), CRL_DECODERS, ExtensionOwner.CRL) == ()

    def test_absent_extension_decodes_to_none(self) -> None:
        decoder = CRL_DECODERS[ExtensionOid.CRL_NUMBER]
        assert decoder(None, ExtensionOwner.CRL) is None

    def test_payload_is_read_without_schema_parsing(self) -> None:
        extension = make_extension(ExtensionOid.SUBJECT_ALT_NAME, TRUNCATED_SAN)
        assert extension_payload(extension) == TRUNCATED_SAN
