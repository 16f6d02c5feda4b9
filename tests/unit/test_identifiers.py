"""
Unit tests for identifier mapping.
"""
import pytest

from models.purchase_order import PurchaseOrder
from models.vendor import Vendor
from postore.errors import NotFoundError
from postore.identifiers import IdentifierMapper


@pytest.fixture
def vendors():
    return [
        Vendor(id="a1", display_id="V001", name="Acme"),
        Vendor(id="b2", display_id="V002", name="Best"),
    ]


@pytest.mark.unit
class TestIdentifierMapper:
    """Tests for IdentifierMapper."""

    def test_resolves_durable_and_display_ids(self, vendors):
        """Both id forms resolve to the durable id."""
        mapper = IdentifierMapper(lambda: vendors, "Vendor")
        assert mapper.resolve("a1") == "a1"
        assert mapper.resolve("V002") == "b2"

    def test_resolve_is_idempotent(self, vendors):
        """Resolving an already-durable id returns it unchanged."""
        mapper = IdentifierMapper(lambda: vendors, "Vendor")
        assert mapper.resolve(mapper.resolve("V001")) == "a1"

    def test_unknown_reference_raises(self, vendors):
        """Unknown references raise NotFoundError naming the kind."""
        mapper = IdentifierMapper(lambda: vendors, "Vendor")
        with pytest.raises(NotFoundError, match="Vendor not found: V999"):
            mapper.resolve("V999")

    def test_find_returns_none_for_blank(self, vendors):
        """find() tolerates None and whitespace."""
        mapper = IdentifierMapper(lambda: vendors, "Vendor")
        assert mapper.find(None) is None
        assert mapper.find("   ") is None
        assert mapper.find(" V001 ").id == "a1"

    def test_resolve_many_preserves_order_and_dedupes(self, vendors):
        """resolve_many keeps first-seen order and drops repeats."""
        mapper = IdentifierMapper(lambda: vendors, "Vendor")
        assert mapper.resolve_many(["V002", "a1", "b2"]) == ["b2", "a1"]

    def test_resolve_many_fails_as_a_whole(self, vendors):
        """One bad reference fails the whole call."""
        mapper = IdentifierMapper(lambda: vendors, "Vendor")
        with pytest.raises(NotFoundError):
            mapper.resolve_many(["V001", "nope"])

    def test_custom_display_field(self):
        """Purchase orders are looked up by po_number."""
        orders = [PurchaseOrder(id="x9", po_number="PO-0007", date="2026-01-01")]
        mapper = IdentifierMapper(lambda: orders, "Purchase order", display_field="po_number")
        assert mapper.resolve("PO-0007") == "x9"

    def test_provider_called_on_each_lookup(self):
        """The mapper always sees the provider's current snapshot."""
        data: list[Vendor] = []
        mapper = IdentifierMapper(lambda: data, "Vendor")
        assert mapper.find("V001") is None
        data.append(Vendor(id="a1", display_id="V001", name="Acme"))
        assert mapper.resolve("V001") == "a1"
