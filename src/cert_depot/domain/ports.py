"""
Ports — Protocol-based interfaces for infrastructure adapters.

These define WHAT the depot needs (contracts) without specifying HOW it is
done (implementation):

  Domain ← Ports (protocols) ← Adapters (implementations)

Each port is a Protocol (structural typing), so adapters satisfy the
contract simply by implementing the methods.

  CryptoProvider → digests and signature checks (pure, may raise)
  ObjectStore    → blob storage for certificates, CRLs and archives
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from cert_depot.domain.models import ObjectSummary, StoredObject
from cert_depot.railway.result import Result


@runtime_checkable
class CryptoProvider(Protocol):
    """
    Port: hashing and signature verification primitives.

    Digests are returned as lowercase hex. verify_signature returns False for
    a signature that does not match and may raise for keys or algorithms it
    cannot handle; callers decide how to treat the exception.
    """

    def sha1(self, data: bytes) -> str: ...

    def sha256(self, data: bytes) -> str: ...

    def verify_signature(
        self,
        spki_der: bytes,
        message: bytes,
        signature: bytes,
        algorithm_der: bytes,
    ) -> bool: ...


@runtime_checkable
class ObjectStore(Protocol):
    """
    Port: key/value blob storage with string metadata.

    Keys are slash-separated paths (``ca/root.crt``, ``full/Root-CA.crl``).
    A missing key is a NOT_FOUND failure; any backend problem is a
    STORAGE_ERROR failure.
    """

    def list(self, prefix: str) -> Result[list[StoredObject]]:
        """All objects whose key starts with ``prefix``, ordered by key."""
        ...

    def summaries(self, prefix: str) -> Result[list[ObjectSummary]]:
        """Like list(), without the object bytes: key, size, metadata, upload time."""
        ...

    def get(self, key: str) -> Result[StoredObject]: ...

    def put(self, key: str, data: bytes, metadata: dict[str, str]) -> Result[str]:
        """Create or overwrite ``key``. Returns the key on success."""
        ...
