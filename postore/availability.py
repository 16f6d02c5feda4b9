"""
Product availability tracking.

Each product moves through

    available ──enqueue──▶ queued ──mark_ordered──▶ po_created
        ▲                    │
        └─────dequeue────────┘

include_in_create_po is derived from the state (true only while available)
and is written together with po_status on every transition.  A transition
requested from the wrong source state is a logged no-op, so a repeated UI
action or a retry never raises.
"""
import logging
from typing import Iterable

from models.product import Product, STATUS_AVAILABLE, STATUS_QUEUED, STATUS_PO_CREATED
from .database import KIND_PRODUCTS, RecordStore
from .errors import AlreadyQueuedError

logger = logging.getLogger(__name__)


def include_flag(po_status: str) -> bool:
    """The include_in_create_po value that goes with *po_status*."""
    return po_status == STATUS_AVAILABLE


def _state(po_status: str) -> dict:
    return {"po_status": po_status, "include_in_create_po": include_flag(po_status)}


class ProductAvailabilityTracker:

    def __init__(self, records: RecordStore) -> None:
        self.records = records

    def enqueue(self, product: Product, quantity: int, strict: bool = False) -> bool:
        """
        available → queued, storing *quantity* as the product's PO quantity.
        Returns False (or raises AlreadyQueuedError when strict) if the
        product is not available.
        """
        if product.po_status != STATUS_AVAILABLE:
            if strict:
                raise AlreadyQueuedError(
                    f"Product {product.id} is {product.po_status}, not available"
                )
            logger.debug("Enqueue ignored for %s (status=%s)", product.id, product.po_status)
            return False
        # Guard on the durable state too, in case the cached product is stale.
        changed = self.records.update_where(
            KIND_PRODUCTS,
            {**_state(STATUS_QUEUED), "po_quantity": quantity},
            id=product.id,
            po_status=STATUS_AVAILABLE,
        )
        return changed > 0

    def dequeue(self, product: Product) -> bool:
        """queued → available.  Returns False if the product was not queued."""
        if product.po_status != STATUS_QUEUED:
            logger.debug("Dequeue ignored for %s (status=%s)", product.id, product.po_status)
            return False
        changed = self.records.update_where(
            KIND_PRODUCTS,
            _state(STATUS_AVAILABLE),
            id=product.id,
            po_status=STATUS_QUEUED,
        )
        return changed > 0

    def dequeue_ids(self, product_ids: Iterable[str]) -> int:
        """Bulk queued → available for the given ids.  Returns the number moved."""
        ids = list(product_ids)
        if not ids:
            return 0
        return self.records.update_where(
            KIND_PRODUCTS,
            _state(STATUS_AVAILABLE),
            id=ids,
            po_status=STATUS_QUEUED,
        )

    def mark_ordered(self, product_ids: Iterable[str]) -> int:
        """
        Bulk queued → po_created.  Products in any other state are left
        alone.  There is no way back: an ordered product has to be re-added
        by an operator.
        """
        ids = list(product_ids)
        if not ids:
            return 0
        changed = self.records.update_where(
            KIND_PRODUCTS,
            _state(STATUS_PO_CREATED),
            id=ids,
            po_status=STATUS_QUEUED,
        )
        if changed != len(ids):
            logger.warning(
                "mark_ordered: %d of %d product(s) were not queued and were left unchanged",
                len(ids) - changed, len(ids),
            )
        return changed
