"""
Unit tests for export service functionality.
"""
import pytest

from dashboard.services.export import (
    build_po_payload,
    render_po,
    render_po_bundle,
    render_whatsapp_message,
)
from models.product import Product
from models.purchase_order import POItem, PurchaseOrder
from models.vendor import Vendor


@pytest.fixture
def order() -> PurchaseOrder:
    return PurchaseOrder(
        id="po1", po_number="PO-0003", vendor_id="v1", vendor_name="Acme & Sons",
        date="2026-03-14", created_by="Priya",
        items=[
            POItem(id="i1", po_id="po1", product_id="p1", quantity=5),
            POItem(id="i2", po_id="po1", product_id="gone", quantity=2),
        ],
    )


@pytest.fixture
def vendor() -> Vendor:
    return Vendor(id="v1", display_id="V001", name="Acme & Sons", gst="29ABC", address="12 Market Rd")


@pytest.fixture
def products() -> dict:
    return {"p1": Product(id="p1", display_id="P-PAPER", name="A4 <Paper>", brand="Navneet")}


@pytest.mark.unit
class TestBuildPOPayload:
    """Tests for build_po_payload."""

    def test_items_are_numbered_and_totalled(self, order, vendor, products):
        payload = build_po_payload(order, vendor, products)
        assert payload["po"]["po_number"] == "PO-0003"
        assert "items" not in payload["po"]
        assert [i["line_number"] for i in payload["items"]] == [1, 2]
        assert payload["items"][0]["product_name"] == "A4 <Paper>"
        assert payload["items"][0]["product_code"] == "P-PAPER"
        assert payload["total_items"] == 2
        assert payload["total_quantity"] == 7

    def test_deleted_product_keeps_quantity(self, order, vendor, products):
        item = build_po_payload(order, vendor, products)["items"][1]
        assert item["product_name"] == "(deleted product)"
        assert item["quantity"] == 2

    def test_deleted_vendor_falls_back_to_snapshot(self, order, products):
        """Without a vendor record the PO's vendor_name snapshot is used."""
        payload = build_po_payload(order, None, products)
        assert payload["vendor"]["name"] == "Acme & Sons"
        assert payload["vendor"]["display_id"] is None

    def test_vendor_details_included(self, order, vendor, products):
        payload = build_po_payload(order, vendor, products)
        assert payload["vendor"]["gst"] == "29ABC"
        assert payload["vendor"]["display_id"] == "V001"


@pytest.mark.unit
class TestRenderPO:
    """Tests for the Jinja2 renderers."""

    def test_html_is_escaped(self, order, vendor, products):
        html = render_po(build_po_payload(order, vendor, products), "html")
        assert "Purchase Order PO-0003" in html
        assert "A4 &lt;Paper&gt;" in html
        assert "Acme &amp; Sons" in html

    def test_text_is_not_escaped(self, order, vendor, products):
        text = render_po(build_po_payload(order, vendor, products), "text")
        assert text.startswith("PURCHASE ORDER PO-0003")
        assert "1. A4 <Paper> [P-PAPER]: 5 pcs" in text
        assert "Total items: 2" in text

    def test_operator_template_overrides_default(self, temp_dir, order, vendor, products):
        (temp_dir / "po_export.txt.j2").write_text("PO {{ po.po_number }} x{{ total_quantity }}")
        text = render_po(build_po_payload(order, vendor, products), "text", temp_dir)
        assert text == "PO PO-0003 x7"

    def test_missing_template_dir_uses_default(self, temp_dir, order, vendor, products):
        html = render_po(build_po_payload(order, vendor, products), "html", temp_dir / "nowhere")
        assert "<table class=\"items\">" in html

    def test_unknown_format_rejected(self, order, vendor, products):
        with pytest.raises(ValueError):
            render_po(build_po_payload(order, vendor, products), "pdf")


@pytest.mark.unit
class TestRenderBundle:
    """Tests for the per-vendor bundle renderer."""

    @pytest.fixture
    def payloads(self, order, vendor, products) -> list:
        second = order.model_copy(update={
            "id": "po2", "po_number": "PO-0004",
            "items": [POItem(id="i3", po_id="po2", product_id="p1", quantity=9)],
        })
        return [build_po_payload(o, vendor, products) for o in (order, second)]

    def test_text_lists_every_po(self, payloads):
        text = render_po_bundle(payloads, "text")
        assert text.startswith("Dear Acme & Sons,")
        assert "Please find 2 purchase orders below." in text
        assert "PURCHASE ORDER PO-0003" in text
        assert "PURCHASE ORDER PO-0004" in text
        assert "1. A4 <Paper> | Brand: Navneet | Category: - | Unit: pcs | Qty: 9" in text
        assert "2. (deleted product) | Brand: - | Category: - | Unit: pcs | Qty: 2" in text

    def test_html_is_escaped(self, payloads):
        html = render_po_bundle(payloads, "html")
        assert "Purchase Orders for Acme &amp; Sons" in html
        assert html.count("<table class=\"items\">") == 2

    def test_operator_template(self, temp_dir, payloads):
        (temp_dir / "po_bundle.txt.j2").write_text(
            "{{ total_orders }}:{% for o in orders %} {{ o.po.po_number }}{% endfor %}"
        )
        assert render_po_bundle(payloads, "text", temp_dir) == "2: PO-0003 PO-0004"

    def test_empty_bundle_rejected(self):
        with pytest.raises(ValueError):
            render_po_bundle([], "text")


@pytest.mark.unit
class TestRenderWhatsAppMessage:

    def test_message_layout(self, order, vendor, products):
        message = render_whatsapp_message(build_po_payload(order, vendor, products))
        assert message.splitlines()[:6] == [
            "*PURCHASE ORDER*",
            "",
            "*PO Number:* PO-0003",
            "*Date:* 2026-03-14",
            "*Vendor:* Acme & Sons",
            "*Status:* CREATED",
        ]
        assert "*Approved:*" not in message
        assert "• A4 <Paper> | Brand: Navneet | Category: - | Unit: pcs | Qty: 5" in message
        assert "*Total Items:* 2" in message
        assert message.endswith("Please review and confirm.\n\nThank you.")

    def test_approved_date_shown(self, order, vendor, products):
        approved = order.model_copy(update={"status": "approved", "approved_at": "2026-03-15T09:30:00+00:00"})
        message = render_whatsapp_message(build_po_payload(approved, vendor, products))
        assert "*Status:* APPROVED\n*Approved:* 2026-03-15\n" in message
