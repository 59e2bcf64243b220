"""
Byte, integer, time and address helpers shared by the model builders.

Also hosts Asn1Node, a typed view of one DER TLV read through
asn1crypto's low-level parser. Decoders use it where the payload is a bare
BIT STRING, INTEGER or ENUMERATED and the typed schema would either hide the
wire details (unused-bit count, raw content bytes) or refuse values it does
not know.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import IntEnum
from typing import Any

import structlog
from asn1crypto import core, parser

from cert_depot.domain.errors import MalformedDER

log = structlog.get_logger()


class TagClass(IntEnum):
    UNIVERSAL = 0
    APPLICATION = 1
    CONTEXT = 2
    PRIVATE = 3


class UniversalTag(IntEnum):
    INTEGER = 2
    BIT_STRING = 3
    OCTET_STRING = 4
    ENUMERATED = 10
    SEQUENCE = 16


@dataclass(frozen=True, slots=True)
class Asn1Node:
    tag_class: TagClass
    tag: int
    constructed: bool
    contents: bytes

    def is_universal(self, tag: UniversalTag) -> bool:
        return self.tag_class is TagClass.UNIVERSAL and self.tag == tag

    def expect(self, tag: UniversalTag) -> Asn1Node:
        """Return self, or raise MalformedDER if this is not the given universal type."""
        if not self.is_universal(tag):
            raise MalformedDER(
                f"Expected {tag.name}, found class={self.tag_class.name} tag={self.tag}",
                expected=tag.name,
            )
        return self


def _node(class_: int, method: int, tag: int, contents: bytes) -> Asn1Node:
    return Asn1Node(
        tag_class=TagClass(class_),
        tag=tag,
        constructed=method == 1,
        contents=contents,
    )


def read_node(data: bytes) -> Asn1Node:
    """Read exactly one TLV; trailing bytes or a truncated value raise MalformedDER."""
    try:
        class_, method, tag, _header, contents, _trailer = parser.parse(data, strict=True)
    except ValueError as e:
        raise MalformedDER(f"Invalid DER encoding: {e}") from e
    return _node(class_, method, tag, contents)


def child_nodes(contents: bytes) -> list[Asn1Node]:
    """The TLVs directly inside a constructed value's contents, in order."""
    nodes: list[Asn1Node] = []
    offset = 0
    while offset < len(contents):
        try:
            class_, method, tag, header, value, trailer = parser.parse(contents[offset:])
        except ValueError as e:
            raise MalformedDER(f"Invalid DER encoding at offset {offset}: {e}") from e
        nodes.append(_node(class_, method, tag, value))
        offset += len(header) + len(value) + len(trailer)
    return nodes


def to_hex(data: bytes) -> str:
    return data.hex()


def decimal_from_hex(hex_value: str | None) -> str | None:
    if not hex_value:
        return None
    try:
        return str(int(hex_value, 16))
    except ValueError:
        log.warning("primitives.invalid_hex", value=hex_value)
        return None


def accumulate_unsigned(contents: bytes) -> int:
    """Big-endian unsigned value of INTEGER content bytes, any length."""
    return int.from_bytes(contents, "big", signed=False)


def strip_unused_bits(payload: bytes) -> bytes:
    """Drop the leading unused-bits count byte of a BIT STRING payload."""
    return payload[1:] if payload else payload


def normalize_time(value: Any) -> datetime | None:
    """
    Turn an asn1crypto Time/UTCTime/GeneralizedTime (or a datetime) into an
    aware UTC datetime. Absent or unreadable values give None.
    """
    if value is None or isinstance(value, core.Void):
        return None
    if isinstance(value, core.Asn1Value):
        try:
            value = value.native
        except (ValueError, TypeError) as e:
            log.warning("primitives.time_unreadable", error=str(e))
            return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    if value is not None:
        log.warning("primitives.time_unnormalized", value=repr(value))
    return None


def format_ipv4(data: bytes) -> str:
    return ".".join(str(octet) for octet in data)


def format_ipv6(data: bytes) -> str:
    """
    RFC 5952 text form: lowercase groups without leading zeros, the leftmost
    longest run of two or more zero groups collapsed to ``::``.
    """
    groups = [int.from_bytes(data[i : i + 2], "big") for i in range(0, 16, 2)]

    best_start, best_length = -1, 0
    index = 0
    while index < len(groups):
        if groups[index] != 0:
            index += 1
            continue
        cursor = index
        while cursor < len(groups) and groups[cursor] == 0:
            cursor += 1
        if cursor - index > best_length:
            best_start, best_length = index, cursor - index
        index = cursor

    text = [format(group, "x") for group in groups]
    if best_length < 2:
        return ":".join(text)
    head = ":".join(text[:best_start])
    tail = ":".join(text[best_start + best_length :])
    return f"{head}::{tail}"


def format_ip_address(data: bytes) -> str:
    if len(data) == 4:
        return format_ipv4(data)
    if len(data) == 16:
        return format_ipv6(data)
    return to_hex(data)


def ensure_der(data: bytes) -> None:
    """Raise MalformedDER unless ``data`` is exactly one well-formed outer TLV."""
    try:
        core.load(data, strict=True)
    except (ValueError, TypeError) as e:
        raise MalformedDER(f"Invalid DER encoding: {e}", size=len(data)) from e
