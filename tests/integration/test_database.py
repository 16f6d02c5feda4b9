"""
Integration tests for record store operations.
"""
import sqlite3

import pytest

from postore.database import (
    KIND_DOWNLOAD_LOGS,
    KIND_ORDERS,
    KIND_PRODUCTS,
    KIND_VENDORS,
    RecordStore,
)
from postore.errors import StoreError


@pytest.mark.integration
class TestRecordStore:
    """Integration tests for RecordStore class."""

    def test_insert_fills_id_and_timestamps(self, records):
        row = records.insert(KIND_VENDORS, {"name": "Acme"})
        assert len(row["id"]) == 32
        assert row["created_at"] and row["updated_at"]
        assert row["gst"] == ""

    def test_bool_columns_round_trip(self, records):
        row = records.insert(KIND_PRODUCTS, {"name": "Paper"})
        assert row["include_in_create_po"] is True
        records.update(KIND_PRODUCTS, row["id"], {"include_in_create_po": False})
        assert records.get(KIND_PRODUCTS, row["id"])["include_in_create_po"] is False

    def test_select_filters(self, records):
        a = records.insert(KIND_PRODUCTS, {"name": "A", "vendor_id": "v1"})
        b = records.insert(KIND_PRODUCTS, {"name": "B"})
        c = records.insert(KIND_PRODUCTS, {"name": "C", "vendor_id": "v2"})

        assert [r["name"] for r in records.select(KIND_PRODUCTS)] == ["A", "B", "C"]
        assert [r["id"] for r in records.select(KIND_PRODUCTS, vendor_id=None)] == [b["id"]]
        assert [r["id"] for r in records.select(KIND_PRODUCTS, id=[c["id"], a["id"]])] == [a["id"], c["id"]]
        assert records.select(KIND_PRODUCTS, id=[]) == []

    def test_update_where_counts_matches(self, records):
        a = records.insert(KIND_PRODUCTS, {"name": "A"})
        records.insert(KIND_PRODUCTS, {"name": "B", "po_status": "queued"})
        changed = records.update_where(
            KIND_PRODUCTS, {"po_status": "queued"}, id=a["id"], po_status="available",
        )
        assert changed == 1
        assert records.update_where(KIND_PRODUCTS, {"po_status": "queued"}, id=a["id"], po_status="available") == 0

    def test_update_missing_returns_none(self, records):
        assert records.update(KIND_VENDORS, "missing", {"name": "X"}) is None

    def test_ids_are_immutable(self, records):
        row = records.insert(KIND_VENDORS, {"name": "Acme"})
        with pytest.raises(ValueError):
            records.update(KIND_VENDORS, row["id"], {"id": "other"})

    def test_unknown_fields_rejected(self, records):
        with pytest.raises(ValueError):
            records.insert(KIND_VENDORS, {"name": "Acme", "nickname": "A"})
        with pytest.raises(ValueError):
            records.select("invoices")

    def test_delete_where_requires_filter(self, records):
        with pytest.raises(ValueError):
            records.delete_where(KIND_VENDORS)

    def test_sequence_is_monotonic(self, records):
        assert records.next_sequence("vendor", seed=4) == 5
        assert records.next_sequence("vendor", seed=0) == 6
        assert records.next_sequence("other") == 1

    def test_constraint_violation_becomes_store_error(self, records):
        """sqlite3 errors surface as StoreError with the cause chained."""
        records.insert(KIND_ORDERS, {"po_number": "PO-0001", "date": "2026-01-01"})
        with pytest.raises(StoreError) as exc_info:
            records.insert(KIND_ORDERS, {"po_number": "PO-0001", "date": "2026-01-02"})
        assert isinstance(exc_info.value.__cause__, sqlite3.IntegrityError)

    def test_failed_batch_insert_rolls_back(self, records):
        with pytest.raises(StoreError):
            records.insert_many(KIND_ORDERS, [
                {"po_number": "PO-0001", "date": "2026-01-01"},
                {"po_number": "PO-0001", "date": "2026-01-01"},
            ])
        assert records.select(KIND_ORDERS) == []

    def test_listeners_notified_after_commit(self, records):
        seen = []
        unsubscribe = records.subscribe(seen.append)
        records.insert(KIND_VENDORS, {"name": "Acme"})
        records.update_where(KIND_VENDORS, {"phone": "1"}, name="nobody")
        records.insert(KIND_DOWNLOAD_LOGS, {
            "po_id": "p", "location": "x", "downloaded_at": "t", "downloaded_by": "u",
        })
        unsubscribe()
        records.insert(KIND_VENDORS, {"name": "Best"})
        assert seen == [KIND_VENDORS, KIND_DOWNLOAD_LOGS]

    def test_schema_is_idempotent(self, test_config, records):
        records.insert(KIND_VENDORS, {"name": "Acme"})
        reopened = RecordStore(test_config.db_path)
        assert len(reopened.select(KIND_VENDORS)) == 1
