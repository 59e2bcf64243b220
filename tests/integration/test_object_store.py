"""
Integration tests for PsycopgObjectStore and the publication flow on it.

Tests run against a real PostgreSQL instance via testcontainers.

Markers: @pytest.mark.integration — requires Docker + PostgreSQL.
"""

from __future__ import annotations

import pytest

from cert_depot.adapters.crypto import CryptographyProvider
from cert_depot.adapters.object_store import PsycopgObjectStore
from cert_depot.config import StorageSettings
from cert_depot.pipeline import collect_stats, list_crls, publish_crl
from cert_depot.railway import ErrorCode, ResultAssertions
from tests.factories import NOW, IssuedCA, crl_der, crl_pem, make_crl, revoked

pytestmark = pytest.mark.integration


class TestPsycopgObjectStore:
    def test_put_then_get(self, pg_store: PsycopgObjectStore) -> None:
        """
        GIVEN an empty table
        WHEN an object is put with metadata
        THEN get returns the same bytes, metadata and an upload time.
        """
        ResultAssertions.assert_success(pg_store.put("ca/root.crt", b"\x30\x00", {"k": "v"}))

        stored = ResultAssertions.assert_success(pg_store.get("ca/root.crt"))

        assert stored.data == b"\x30\x00"
        assert stored.metadata == {"k": "v"}
        assert stored.uploaded_at is not None

    def test_put_is_an_upsert(self, pg_store: PsycopgObjectStore) -> None:
        pg_store.put("full/a.crl", b"old", {"crlNumber": "1"})
        pg_store.put("full/a.crl", b"new", {"crlNumber": "2"})

        stored = pg_store.get("full/a.crl").value()

        assert stored.data == b"new"
        assert stored.metadata == {"crlNumber": "2"}
        assert len(pg_store.list("full/").value()) == 1

    def test_list_by_prefix_in_key_order(self, pg_store: PsycopgObjectStore) -> None:
        for key in ("full/b.crl", "full/a.crl", "delta/a.crl", "full_x/a.crl"):
            pg_store.put(key, b"x", {})

        listed = ResultAssertions.assert_success(pg_store.list("full/"))

        assert [obj.key for obj in listed] == ["full/a.crl", "full/b.crl"]

    def test_prefix_with_like_wildcards_is_literal(self, pg_store: PsycopgObjectStore) -> None:
        pg_store.put("full/a.crl", b"x", {})
        assert pg_store.list("f%").value() == []

    def test_summaries_report_size_without_data(self, pg_store: PsycopgObjectStore) -> None:
        """
        GIVEN objects of different sizes
        WHEN summaries are listed
        THEN each size is the stored byte length and metadata comes back as strings.
        """
        pg_store.put("full/a.crl", b"\x30\x03\x02\x01\x05", {"revokedCount": "2"})
        pg_store.put("full/b.crl", b"", {})

        summaries = ResultAssertions.assert_success(pg_store.summaries("full/"))

        assert [(s.key, s.size) for s in summaries] == [("full/a.crl", 5), ("full/b.crl", 0)]
        assert summaries[0].metadata == {"revokedCount": "2"}
        assert summaries[0].uploaded_at is not None

    def test_missing_key(self, pg_store: PsycopgObjectStore) -> None:
        ResultAssertions.assert_failure(pg_store.get("ca/absent.crt"), ErrorCode.NOT_FOUND)

    def test_unreachable_database_is_storage_error(self) -> None:
        store = PsycopgObjectStore("postgresql://u:p@127.0.0.1:1/none?connect_timeout=1")
        ResultAssertions.assert_failure(store.list("ca/"), ErrorCode.STORAGE_ERROR)


class TestPublicationOnPostgres:
    def test_newer_crl_archives_previous(
        self,
        pg_store: PsycopgObjectStore,
        rsa_ca: IssuedCA,
        crypto: CryptographyProvider,
        storage_settings: StorageSettings,
    ) -> None:
        pg_store.put("ca/root.crt", rsa_ca.der, {})
        first, second = make_crl(rsa_ca, number=1), make_crl(rsa_ca, number=2)

        publish_crl(crl_pem(first), pg_store, crypto, storage_settings, now=NOW)
        receipt = ResultAssertions.assert_success(
            publish_crl(crl_pem(second), pg_store, crypto, storage_settings, now=NOW)
        )

        assert receipt.archived_key == "full/archive/TestRootCA-1.crl"
        assert pg_store.get(receipt.archived_key).value().data == crl_der(first)
        assert pg_store.get("full/TestRootCA.crl").value().metadata["crlNumber"] == "2"

    def test_listing_and_stats(
        self,
        pg_store: PsycopgObjectStore,
        rsa_ca: IssuedCA,
        crypto: CryptographyProvider,
        storage_settings: StorageSettings,
    ) -> None:
        pg_store.put("ca/root.crt", rsa_ca.der, {})
        crl = make_crl(rsa_ca, number=4, entries=[revoked(1), revoked(2)])
        ResultAssertions.assert_success(
            publish_crl(crl_pem(crl), pg_store, crypto, storage_settings, now=NOW)
        )

        rows = ResultAssertions.assert_success(list_crls(pg_store, storage_settings, now=NOW))
        stats = ResultAssertions.assert_success(collect_stats(pg_store, storage_settings))

        assert [(row.key, row.revoked_count) for row in rows] == [("full/TestRootCA.crl", 2)]
        assert rows[0].size == len(crl_der(crl))
        assert (stats.certificates, stats.full_crls, stats.total_revocations) == (1, 1, 2)
        assert stats.storage.by_prefix["ca/"] == len(rsa_ca.der)
