"""
Export service: purchase order payload building and document rendering.
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Optional, Sequence

from jinja2 import BaseLoader, Environment, FileSystemLoader

from models.product import Product
from models.purchase_order import PurchaseOrder
from models.vendor import Vendor

EXPORT_FORMATS = ("html", "text")

# Default HTML export template
DEFAULT_PO_HTML_TEMPLATE = """\
<!DOCTYPE html>
<!--
  Purchase order template.  Put po_export.html.j2 in config/ to customise.
  Values are HTML-escaped automatically.

  Variables:
    po            dict: po_number, date, status, created_by, approved_by, ...
    vendor        dict: name, display_id, gst, address, phone, contact_person_name, contact_person_email
    items         list: line_number, product_name, product_code, brand, category, unit, quantity
    total_items   number of line items
    total_quantity  sum of item quantities
    generated_at  ISO-8601 UTC timestamp
-->
<html>
<head>
  <meta charset="utf-8">
  <title>Purchase Order {{ po.po_number }}</title>
</head>
<body>
  <h1>Purchase Order {{ po.po_number }}</h1>
  <table class="meta">
    <tr><th>Date</th><td>{{ po.date }}</td></tr>
    <tr><th>Status</th><td>{{ po.status }}</td></tr>
    {% if po.created_by %}<tr><th>Created by</th><td>{{ po.created_by }}</td></tr>
    {% endif %}
    {% if po.approved_by %}<tr><th>Approved by</th><td>{{ po.approved_by }}</td></tr>
    {% endif %}
  </table>

  <h2>Vendor</h2>
  <p>
    <strong>{{ vendor.name }}</strong>{% if vendor.display_id %} ({{ vendor.display_id }}){% endif %}<br>
    {% if vendor.address %}{{ vendor.address }}<br>
    {% endif %}
    {% if vendor.gst %}GST: {{ vendor.gst }}<br>
    {% endif %}
    {% if vendor.phone %}Phone: {{ vendor.phone }}<br>
    {% endif %}
    {% if vendor.contact_person_name %}Contact: {{ vendor.contact_person_name }}{% if vendor.contact_person_email %} &lt;{{ vendor.contact_person_email }}&gt;{% endif %}
    {% endif %}
  </p>

  <table class="items">
    <thead>
      <tr><th>#</th><th>Code</th><th>Product</th><th>Brand</th><th>Unit</th><th>Quantity</th></tr>
    </thead>
    <tbody>
    {% for item in items %}
      <tr>
        <td>{{ item.line_number }}</td>
        <td>{{ item.product_code or '' }}</td>
        <td>{{ item.product_name }}</td>
        <td>{{ item.brand or '' }}</td>
        <td>{{ item.unit }}</td>
        <td>{{ item.quantity }}</td>
      </tr>
    {% endfor %}
    </tbody>
    <tfoot>
      <tr><td colspan="5">Total ({{ total_items }} item{{ '' if total_items == 1 else 's' }})</td><td>{{ total_quantity }}</td></tr>
    </tfoot>
  </table>
</body>
</html>
"""

# Default plain-text template (also used as the email text part)
DEFAULT_PO_TEXT_TEMPLATE = """\
PURCHASE ORDER {{ po.po_number }}
Date:   {{ po.date }}
Status: {{ po.status }}

Vendor: {{ vendor.name }}{% if vendor.display_id %} ({{ vendor.display_id }}){% endif %}
{% if vendor.address %}Address: {{ vendor.address }}
{% endif %}{% if vendor.gst %}GST: {{ vendor.gst }}
{% endif %}
{% for item in items -%}
{{ item.line_number }}. {{ item.product_name }}{% if item.product_code %} [{{ item.product_code }}]{% endif %}: {{ item.quantity }} {{ item.unit }}
{% endfor %}
Total items: {{ total_items }}  Total quantity: {{ total_quantity }}
"""

# Default bundle templates: several POs for one vendor in one email
DEFAULT_BUNDLE_HTML_TEMPLATE = """\
<!DOCTYPE html>
<!--
  Vendor bundle template.  Put po_bundle.html.j2 in config/ to customise.

  Variables:
    vendor        dict, as in po_export.html.j2
    orders        list of per-PO contexts (po, items, total_items, total_quantity)
    total_orders  number of POs in the bundle
    generated_at  ISO-8601 UTC timestamp
-->
<html>
<head>
  <meta charset="utf-8">
  <title>Purchase Orders for {{ vendor.name }}</title>
</head>
<body>
  <h1>Purchase Orders for {{ vendor.name }}</h1>
  <p>{{ total_orders }} purchase order{{ '' if total_orders == 1 else 's' }}.</p>
  {% for order in orders %}
  <h2>{{ order.po.po_number }}</h2>
  <p>Date: {{ order.po.date }} | Status: {{ order.po.status }}</p>
  <table class="items">
    <thead>
      <tr><th>#</th><th>Product</th><th>Brand</th><th>Category</th><th>Unit</th><th>Quantity</th></tr>
    </thead>
    <tbody>
    {% for item in order.items %}
      <tr>
        <td>{{ item.line_number }}</td>
        <td>{{ item.product_name }}</td>
        <td>{{ item.brand or '-' }}</td>
        <td>{{ item.category or '-' }}</td>
        <td>{{ item.unit }}</td>
        <td>{{ item.quantity }}</td>
      </tr>
    {% endfor %}
    </tbody>
  </table>
  {% endfor %}
  <p>Please review and confirm.</p>
</body>
</html>
"""

DEFAULT_BUNDLE_TEXT_TEMPLATE = """\
Dear {{ vendor.contact_person_name or vendor.name }},

Please find {{ total_orders }} purchase order{{ '' if total_orders == 1 else 's' }} below.
{% for order in orders %}
PURCHASE ORDER {{ order.po.po_number }}
Date: {{ order.po.date }}  Status: {{ order.po.status }}
{% for item in order.items -%}
{{ item.line_number }}. {{ item.product_name }} | Brand: {{ item.brand or '-' }} | Category: {{ item.category or '-' }} | Unit: {{ item.unit }} | Qty: {{ item.quantity }}
{% endfor %}Total items: {{ order.total_items }}
{% endfor %}
Please review and confirm.
"""

# Chat message for sharing one PO over WhatsApp
DEFAULT_WHATSAPP_TEMPLATE = """\
*PURCHASE ORDER*

*PO Number:* {{ po.po_number }}
*Date:* {{ po.date }}
*Vendor:* {{ vendor.name }}
*Status:* {{ po.status | upper }}
{% if po.approved_at %}*Approved:* {{ po.approved_at[:10] }}
{% endif %}
*Items:*
{% for item in items -%}
• {{ item.product_name }} | Brand: {{ item.brand or '-' }} | Category: {{ item.category or '-' }} | Unit: {{ item.unit }} | Qty: {{ item.quantity }}
{% endfor %}
*Total Items:* {{ total_items }}

Please review and confirm.

Thank you.
"""

_DEFAULT_TEMPLATES = {"html": DEFAULT_PO_HTML_TEMPLATE, "text": DEFAULT_PO_TEXT_TEMPLATE}
TEMPLATE_FILES = {"html": "po_export.html.j2", "text": "po_export.txt.j2"}
_DEFAULT_BUNDLE_TEMPLATES = {"html": DEFAULT_BUNDLE_HTML_TEMPLATE, "text": DEFAULT_BUNDLE_TEXT_TEMPLATE}
BUNDLE_TEMPLATE_FILES = {"html": "po_bundle.html.j2", "text": "po_bundle.txt.j2"}
WHATSAPP_TEMPLATE_FILE = "po_whatsapp.txt.j2"


def build_po_payload(
    order: PurchaseOrder,
    vendor: Optional[Vendor],
    products: Mapping[str, Product],
) -> dict:
    """
    Flatten a PO, its vendor and its products into the template context.

    The vendor name falls back to the PO's snapshot when the vendor has been
    deleted, and items whose product is gone keep their quantity with a
    placeholder name.
    """
    vendor_info = {
        "id":                   order.vendor_id,
        "display_id":           None,
        "name":                 order.vendor_name or "Unknown vendor",
        "gst":                  "",
        "address":              "",
        "phone":                "",
        "contact_person_name":  "",
        "contact_person_email": "",
    }
    if vendor is not None:
        vendor_info.update(vendor.model_dump(include=set(vendor_info)))

    items = []
    for idx, item in enumerate(order.items, start=1):
        product = products.get(item.product_id) if item.product_id else None
        items.append({
            "line_number":  idx,
            "product_id":   item.product_id,
            "product_code": product.display_id if product else None,
            "product_name": product.name if product else "(deleted product)",
            "brand":        product.brand if product else "",
            "category":     product.category if product else "",
            "unit":         product.unit if product else "pcs",
            "quantity":     item.quantity,
        })

    return {
        "po":             order.model_dump(exclude={"items"}),
        "vendor":         vendor_info,
        "items":          items,
        "total_items":    len(items),
        "total_quantity": sum(i["quantity"] for i in items),
        "generated_at":   datetime.now(timezone.utc).isoformat(),
    }




def _check_format(fmt: str) -> None:
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unknown export format {fmt!r}; expected one of {', '.join(EXPORT_FORMATS)}")


def _render(
    default_source: str,
    template_name: str,
    context: dict,
    autoescape: bool,
    template_dir: Path | None = None,
) -> str:
    """Render *template_name* from *template_dir* if present, else *default_source*."""
    template_file = template_dir / template_name if template_dir else None
    if template_file and template_file.exists():
        env = Environment(
            loader=FileSystemLoader(str(template_file.parent)),
            autoescape=autoescape,
            keep_trailing_newline=True,
        )
        tmpl = env.get_template(template_file.name)
    else:
        env = Environment(loader=BaseLoader(), autoescape=autoescape, keep_trailing_newline=True)
        tmpl = env.from_string(default_source)
    return tmpl.render(**context)


def render_po(payload: dict, fmt: str = "html", template_dir: Path | None = None) -> str:
    """
    Render *payload* as an HTML or plain-text document using the operator
    template in *template_dir* if there is one, else the built-in default.
    """
    _check_format(fmt)
    return _render(_DEFAULT_TEMPLATES[fmt], TEMPLATE_FILES[fmt], payload, fmt == "html", template_dir)


def render_po_bundle(payloads: Sequence[dict], fmt: str = "html", template_dir: Path | None = None) -> str:
    """
    Render several PO payloads of one vendor as a single document.  The
    vendor block is taken from the first payload.
    """
    _check_format(fmt)
    if not payloads:
        raise ValueError("A PO bundle needs at least one purchase order")
    context = {
        "vendor":       payloads[0]["vendor"],
        "orders":       list(payloads),
        "total_orders": len(payloads),
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }
    return _render(
        _DEFAULT_BUNDLE_TEMPLATES[fmt], BUNDLE_TEMPLATE_FILES[fmt], context, fmt == "html", template_dir,
    )


def render_whatsapp_message(payload: dict, template_dir: Path | None = None) -> str:
    return _render(DEFAULT_WHATSAPP_TEMPLATE, WHATSAPP_TEMPLATE_FILE, payload, False, template_dir).strip()
