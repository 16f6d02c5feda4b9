"""
PO generation: turn queue entries into purchase orders, one per vendor.

Steps for one generate() call:
  1. resolve each entry's product to its vendor
  2. group entries by vendor, keeping the order entries were queued in
  3. read the highest existing PO number once and hand out a contiguous
     block (max + 1, max + 2, ...) in vendor-group order
  4. per vendor group: insert the header, insert the item rows, mark the
     group's products as po_created
  5. report what was created and what had to be skipped

Each vendor group is its own unit of work.  If group N fails the error
propagates; groups 1..N-1 stay committed and are already recorded on the
result object passed in by the caller.  So is group N itself when only the
product status update fails after its header and items were written.
"""
import logging
import re
from datetime import date
from typing import Iterable, Mapping, Optional, Sequence

from models.actor import Actor
from models.product import Product
from models.purchase_order import ORDER_CREATED, POItem, PurchaseOrder
from models.queue import POQueueEntry
from models.result import GenerationResult
from models.vendor import Vendor
from .availability import ProductAvailabilityTracker
from .database import KIND_ORDER_ITEMS, KIND_ORDERS, RecordStore
from .errors import StoreError

logger = logging.getLogger(__name__)

PO_NUMBER_PREFIX = "PO-"
_PO_NUMBER_RE = re.compile(r"^PO-(\d+)$")


def format_po_number(number: int) -> str:
    """PO number for sequence value *number*, e.g. 7 -> 'PO-0007'."""
    return f"{PO_NUMBER_PREFIX}{number:04d}"


def parse_po_number(po_number: Optional[str]) -> Optional[int]:
    """Numeric part of a PO number, or None if it is not in PO-#### form."""
    match = _PO_NUMBER_RE.match((po_number or "").strip())
    return int(match.group(1)) if match else None


def next_po_number(existing: Iterable[str]) -> str:
    """The next PO number after the highest one in *existing*."""
    highest = max((n for n in map(parse_po_number, existing) if n is not None), default=0)
    return format_po_number(highest + 1)


def group_by_vendor(
    entries: Sequence[POQueueEntry],
    products: Mapping[str, Product],
    vendors: Mapping[str, Vendor],
) -> tuple[dict[str, list[POQueueEntry]], list[str]]:
    """
    Group *entries* by vendor id in encounter order.  Returns the groups and
    the product ids that could not be resolved to an existing vendor.
    """
    groups: dict[str, list[POQueueEntry]] = {}
    unresolved: list[str] = []
    for entry in entries:
        product = products.get(entry.product_id)
        vendor_id = product.vendor_id if product else None
        if vendor_id is None or vendor_id not in vendors:
            unresolved.append(entry.product_id)
            continue
        groups.setdefault(vendor_id, []).append(entry)
    return groups, unresolved


class POGenerator:

    def __init__(self, records: RecordStore, tracker: ProductAvailabilityTracker) -> None:
        self.records = records
        self.tracker = tracker

    def existing_po_numbers(self) -> list[str]:
        return [row["po_number"] for row in self.records.select(KIND_ORDERS)]

    def generate(
        self,
        entries: Sequence[POQueueEntry],
        products: Mapping[str, Product],
        vendors: Mapping[str, Vendor],
        actor: Actor,
        result: Optional[GenerationResult] = None,
    ) -> GenerationResult:
        """
        Create one PO per vendor for *entries*.  Committed orders are appended
        to *result* as they land, so the caller still sees them if a later
        vendor group raises.
        """
        result = result if result is not None else GenerationResult()
        groups, unresolved = group_by_vendor(entries, products, vendors)
        for product_id in unresolved:
            logger.warning("Skipping queued product %s: no vendor could be resolved", product_id)
        result.skipped_product_ids.extend(unresolved)
        if not groups:
            return result

        start = parse_po_number(next_po_number(self.existing_po_numbers()))
        today = date.today().isoformat()

        for offset, (vendor_id, group) in enumerate(groups.items()):
            po_number = format_po_number(start + offset)
            order = self._create_order(po_number, vendors[vendor_id], group, actor, today)
            # Recorded before mark_ordered so a failure there still leaves the
            # committed order on the result.
            result.orders.append(order)
            self.tracker.mark_ordered(e.product_id for e in group)
            logger.info(
                "Created %s for vendor %s with %d item(s)",
                po_number, vendors[vendor_id].display_id or vendor_id, len(group),
            )

        return result

    def _create_order(
        self,
        po_number: str,
        vendor: Vendor,
        group: Sequence[POQueueEntry],
        actor: Actor,
        today: str,
    ) -> PurchaseOrder:
        header = self.records.insert(KIND_ORDERS, {
            "po_number":   po_number,
            "vendor_id":   vendor.id,
            "vendor_name": vendor.name,
            "date":        today,
            "status":      ORDER_CREATED,
            "created_by":  actor.name,
        })
        try:
            rows = self.records.insert_many(KIND_ORDER_ITEMS, [
                {"po_id": header["id"], "product_id": e.product_id, "quantity": e.quantity}
                for e in group
            ])
        except StoreError:
            # A header without items is not a valid PO; take it back out.
            try:
                self.records.delete(KIND_ORDERS, header["id"])
            except StoreError:
                logger.exception("Could not remove item-less header %s", po_number)
            raise
        return PurchaseOrder(**header, items=[POItem(**row) for row in rows])
