"""
Shared test fixtures for the cert-depot test suite.

CA certificates are generated with cryptography's builders (see
tests/factories.py) and shared for the whole session.
"""

from __future__ import annotations

import pytest

from cert_depot.adapters.crypto import CryptographyProvider
from cert_depot.adapters.object_store import InMemoryObjectStore
from cert_depot.config import StorageSettings
from tests.factories import IssuedCA, ec_key, make_ca, rsa_key


@pytest.fixture(scope="session")
def crypto() -> CryptographyProvider:
    return CryptographyProvider()


@pytest.fixture(scope="session")
def rsa_ca() -> IssuedCA:
    """Self-signed RSA-2048 CA with a SubjectKeyIdentifier."""
    return make_ca("Test Root CA", rsa_key())


@pytest.fixture(scope="session")
def ec_ca() -> IssuedCA:
    """Self-signed P-256 CA with a SubjectKeyIdentifier."""
    return make_ca("Test EC CA", ec_key(), organization="Example EC Org")


@pytest.fixture()
def store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture()
def storage_settings() -> StorageSettings:
    return StorageSettings()
