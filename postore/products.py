"""
Product catalogue.

po_status and include_in_create_po belong to the availability tracker and
cannot be written through the catalogue; everything else is plain CRUD with
input validation done before any record store call.
"""
import logging
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

from models.product import Product, STATUS_AVAILABLE, STATUS_QUEUED
from .csv_manager import PRODUCT_ALIASES, load_rows
from .database import KIND_PRODUCTS, RecordStore
from .errors import ValidationError
from .identifiers import IdentifierMapper
from .queue import validate_quantity
from .vendors import VendorDirectory

logger = logging.getLogger(__name__)

UNITS = ("pcs", "boxes")
_TEXT_FIELDS = ("brand", "category", "display_id")
_INT_FIELDS = ("current_stock", "reorder_level")
_MANAGED_FIELDS = ("po_status", "include_in_create_po")


def _as_int(value, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a whole number, got {value!r}")
    if isinstance(value, str):
        value = value.strip() or "0"
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a whole number, got {value!r}") from None
    if isinstance(value, float) and value != number:
        raise ValidationError(f"{field} must be a whole number, got {value!r}")
    return number


class ProductCatalog:

    def __init__(
        self,
        records: RecordStore,
        provider: Callable[[], Sequence[Product]],
        vendors: VendorDirectory,
    ) -> None:
        self.records = records
        self._provider = provider
        self.vendors = vendors
        self.ids = IdentifierMapper(provider, "Product")

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _clean(self, data: dict, partial: bool = False) -> dict:
        """
        Validate product input.  With partial=True only the keys present are
        checked (updates); otherwise name is required and defaults apply.
        """
        managed = [k for k in _MANAGED_FIELDS if k in data]
        if managed:
            raise ValidationError(
                f"{', '.join(managed)} is managed by the PO queue and cannot be set directly"
            )

        cleaned: dict = {}
        if "name" in data or not partial:
            name = (data.get("name") or "").strip()
            if not name:
                raise ValidationError("Product name is required")
            cleaned["name"] = name

        for key in _TEXT_FIELDS:
            if key in data:
                value = (data.get(key) or "").strip()
                cleaned[key] = value or (None if key == "display_id" else "")

        for key in _INT_FIELDS:
            if key in data:
                number = _as_int(data[key], key)
                if number < 0:
                    raise ValidationError(f"{key} cannot be negative, got {number}")
                cleaned[key] = number

        if "unit" in data:
            unit = (data.get("unit") or "pcs").strip().lower()
            if unit not in UNITS:
                raise ValidationError(f"unit must be one of {', '.join(UNITS)}, got {unit!r}")
            cleaned["unit"] = unit

        if "po_quantity" in data:
            raw = data["po_quantity"]
            cleaned["po_quantity"] = validate_quantity(
                _as_int(raw, "po_quantity") if isinstance(raw, str) else raw
            )

        if "vendor_id" in data:
            ref = data["vendor_id"]
            cleaned["vendor_id"] = self.vendors.ids.resolve(ref) if ref else None

        return cleaned

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def selectable(self) -> list[Product]:
        """Products that may be picked for a new PO (available only)."""
        return [p for p in self._provider() if p.po_status == STATUS_AVAILABLE]

    def queued(self) -> list[Product]:
        return [p for p in self._provider() if p.po_status == STATUS_QUEUED]

    def low_stock(self) -> list[Product]:
        """Available products at or below their reorder level."""
        return [p for p in self.selectable() if p.is_low_stock]

    def by_vendor(self, vendor_ref: str) -> list[Product]:
        vendor_id = self.vendors.ids.resolve(vendor_ref)
        return [p for p in self._provider() if p.vendor_id == vendor_id]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, data: dict) -> Product:
        row = self.records.insert(KIND_PRODUCTS, self._clean(data))
        logger.info("Added product %s (%s)", row["name"], row["id"])
        return Product(**row)

    def add_batch(self, rows: Iterable[dict]) -> int:
        """Validate every row, then insert them all.  Returns the number added."""
        cleaned = [self._clean(r) for r in rows]
        stored = self.records.insert_many(KIND_PRODUCTS, cleaned)
        logger.info("Added %d product(s)", len(stored))
        return len(stored)

    def import_csv(self, path: Path) -> int:
        """
        Import products from CSV.  The vendor column may hold a durable id, a
        V### display id, or a vendor name (fuzzy matched).
        """
        rows = []
        for line, raw in enumerate(load_rows(path, PRODUCT_ALIASES), start=2):
            row = dict(raw)
            vendor_ref = row.pop("vendor", "")
            if vendor_ref:
                vendor = self.vendors.resolve_reference(vendor_ref)
                if vendor is None:
                    raise ValidationError(f"{Path(path).name} line {line}: unknown vendor '{vendor_ref}'")
                row["vendor_id"] = vendor.id
            for key in ("current_stock", "reorder_level", "po_quantity"):
                if row.get(key) == "":
                    row.pop(key)
            rows.append(row)
        return self.add_batch(rows)

    def update(self, ref: str, changes: dict) -> Product:
        product = self.ids.lookup(ref)
        cleaned = self._clean(changes, partial=True)
        if not cleaned:
            return product
        row = self.records.update(KIND_PRODUCTS, product.id, cleaned)
        return Product(**row)

    def delete_many(self, refs: Iterable[str]) -> list[str]:
        """Delete products.  Returns the durable ids removed."""
        ids = self.ids.resolve_many(refs)
        if ids:
            self.records.delete_where(KIND_PRODUCTS, id=ids)
            logger.info("Deleted %d product(s)", len(ids))
        return ids
