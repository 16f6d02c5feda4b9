"""
Dashboard business logic services.
"""
from .export import (
    build_po_payload,
    render_po,
    render_po_bundle,
    render_whatsapp_message,
    DEFAULT_PO_HTML_TEMPLATE,
    DEFAULT_PO_TEXT_TEMPLATE,
    EXPORT_FORMATS,
)

__all__ = [
    "build_po_payload",
    "render_po",
    "render_po_bundle",
    "render_whatsapp_message",
    "DEFAULT_PO_HTML_TEMPLATE",
    "DEFAULT_PO_TEXT_TEMPLATE",
    "EXPORT_FORMATS",
]
