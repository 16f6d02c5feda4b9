"""
Unit tests for CSV loading.
"""
import pytest

from postore.csv_manager import PRODUCT_ALIASES, VENDOR_ALIASES, load_rows, normalise_header
from postore.errors import ValidationError


@pytest.mark.unit
class TestCsvManager:

    def test_normalise_header(self):
        assert normalise_header("  Vendor Name ") == "vendor_name"
        assert normalise_header("Contact-Email") == "contact_email"
        assert normalise_header("PO  Quantity") == "po_quantity"

    def test_aliases_applied(self, sample_vendors_csv):
        rows = load_rows(sample_vendors_csv, VENDOR_ALIASES)
        assert rows[0]["name"] == "Acme Traders"
        assert rows[0]["gst"] == "29ABCDE1234F1Z5"
        assert rows[0]["contact_person_email"] == "ravi@acme.test"
        assert rows[2]["name"] == "acme traders"

    def test_blank_rows_skipped(self, temp_dir):
        path = temp_dir / "p.csv"
        path.write_text("name,sku\nPaper,P1\n,\n\nPens,P2\n", encoding="utf-8")
        rows = load_rows(path, PRODUCT_ALIASES)
        assert [r["name"] for r in rows] == ["Paper", "Pens"]
        assert rows[0]["display_id"] == "P1"

    def test_bom_is_ignored(self, temp_dir):
        path = temp_dir / "bom.csv"
        path.write_bytes("\ufeffName\nAcme\n".encode("utf-8"))
        assert load_rows(path, VENDOR_ALIASES) == [{"name": "Acme"}]

    def test_missing_column(self, temp_dir):
        path = temp_dir / "bad.csv"
        path.write_text("title\nAcme\n", encoding="utf-8")
        with pytest.raises(ValidationError, match="missing column"):
            load_rows(path, VENDOR_ALIASES)

    def test_missing_file(self, temp_dir):
        with pytest.raises(ValidationError, match="not found"):
            load_rows(temp_dir / "nope.csv", VENDOR_ALIASES)

    def test_empty_file(self, temp_dir):
        path = temp_dir / "empty.csv"
        path.write_text("", encoding="utf-8")
        assert load_rows(path, VENDOR_ALIASES) == []
