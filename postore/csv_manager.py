"""
CSV loading for vendor and product bulk imports.

Header names are normalised (trimmed, lower-cased, spaces and dashes turned
into underscores) and mapped through a per-kind alias table, so sheets
exported from other tools ("Vendor Name", "GST Number", ...) import as-is.
"""
import csv
import logging
from pathlib import Path

from .errors import ValidationError

logger = logging.getLogger(__name__)

VENDOR_ALIASES = {
    "vendor_name":          "name",
    "gst_number":           "gst",
    "gstin":                "gst",
    "contact_name":         "contact_person_name",
    "contact_person":       "contact_person_name",
    "contact_email":        "contact_person_email",
    "email":                "contact_person_email",
}

PRODUCT_ALIASES = {
    "product_name":         "name",
    "vendor_name":          "vendor",
    "vendor_id":            "vendor",
    "stock":                "current_stock",
    "reorder":              "reorder_level",
    "default_po_quantity":  "po_quantity",
    "quantity":             "po_quantity",
    "code":                 "display_id",
    "sku":                  "display_id",
}


def normalise_header(name: str) -> str:
    return "_".join(name.strip().lower().replace("-", " ").split())


def load_rows(path: Path, aliases: dict[str, str], required: tuple[str, ...] = ("name",)) -> list[dict]:
    """
    Load *path* as a list of dicts with normalised keys and stripped values.
    Blank rows are skipped.  Raises ValidationError if the file is missing
    or lacks a required column.
    """
    path = Path(path)
    if not path.exists():
        raise ValidationError(f"CSV file not found: {path}")

    with open(path, newline="", encoding="utf-8-sig") as f:
        reader = csv.DictReader(f)
        if reader.fieldnames is None:
            return []
        headers = {
            raw: aliases.get(normalise_header(raw), normalise_header(raw))
            for raw in reader.fieldnames
            if raw
        }
        missing = [col for col in required if col not in headers.values()]
        if missing:
            raise ValidationError(f"{path.name} is missing column(s): {', '.join(missing)}")

        rows: list[dict] = []
        for raw_row in reader:
            row = {
                headers[k]: (v or "").strip()
                for k, v in raw_row.items()
                if k in headers
            }
            if any(row.values()):
                rows.append(row)

    logger.info("Loaded %d row(s) from %s", len(rows), path.name)
    return rows
