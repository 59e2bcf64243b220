"""
JSON-ready conversion of domain models for the HTTP layer.

Raw DER fields are omitted (the stored object itself is the raw form);
other bytes become lowercase hex, datetimes ISO 8601, enums their value.
Integers beyond the exact range of an IEEE double become strings so
JavaScript clients do not silently round CRL numbers.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime
from enum import Enum
from typing import Any

from cert_depot.domain.models import Certificate, Crl, DistinguishedName

_MAX_SAFE_INTEGER = 2**53 - 1
_OMITTED = frozenset({"der", "spki_der", "data"})
_DERIVED: dict[type, tuple[str, ...]] = {
    DistinguishedName: ("display", "common_name"),
    Certificate: ("subject_key_identifier", "authority_key_identifier"),
    Crl: ("crl_number", "delta_base_crl_number", "authority_key_identifier", "is_delta"),
}


def to_jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, str, float)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, int):
        return str(value) if abs(value) > _MAX_SAFE_INTEGER else value
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, datetime):
        return value.isoformat()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        result = {
            f.name: to_jsonable(getattr(value, f.name))
            for f in dataclasses.fields(value)
            if f.name not in _OMITTED
        }
        for name in _DERIVED.get(type(value), ()):
            result[name] = to_jsonable(getattr(value, name))
        return result
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(item) for item in value]
    return str(value)
