"""
PO queue: the staging cart of products waiting to be turned into POs.

The queue itself is local state, persisted as a JSON array so it survives a
restart.  Product po_status in the record store is the source of truth, so
every load reconciles the cached entries against it:

  - entries whose product is no longer 'queued' are dropped
  - 'queued' products missing from the cache are re-inserted with their
    stored po_quantity

The in-memory entry list is only ever replaced in a single assignment, after
every record store call for the operation has succeeded, so a reader never
sees half of a batch.
"""
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional, Sequence

from pydantic import ValidationError as ModelValidationError

from models.product import Product, STATUS_AVAILABLE, STATUS_QUEUED
from models.queue import BatchResult, POQueueEntry
from .availability import ProductAvailabilityTracker
from .errors import POStoreError, ValidationError

logger = logging.getLogger(__name__)


def validate_quantity(quantity) -> int:
    """Return *quantity* if it is a positive integer, else raise ValidationError."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(f"Quantity must be a positive integer, got {quantity!r}")
    if quantity <= 0:
        raise ValidationError(f"Quantity must be a positive integer, got {quantity}")
    return quantity


def reconcile(entries: Sequence[POQueueEntry], products: Sequence[Product]) -> list[POQueueEntry]:
    """Return *entries* corrected against the durable po_status of *products*."""
    by_id = {p.id: p for p in products}
    kept: list[POQueueEntry] = []
    seen: set[str] = set()

    for entry in entries:
        product = by_id.get(entry.product_id)
        if product is None or product.po_status != STATUS_QUEUED or entry.product_id in seen:
            logger.info("Queue reconcile: dropping stale entry for %s", entry.product_id)
            continue
        if entry.quantity != product.po_quantity:
            entry = entry.model_copy(update={"quantity": product.po_quantity})
        kept.append(entry)
        seen.add(entry.product_id)

    for product in products:
        if product.po_status == STATUS_QUEUED and product.id not in seen:
            logger.info("Queue reconcile: restoring queued product %s", product.id)
            kept.append(POQueueEntry(
                product_id=product.id,
                quantity=product.po_quantity,
                added_at=product.updated_at or datetime.now(timezone.utc).isoformat(),
            ))
            seen.add(product.id)

    return kept


class POQueue:

    def __init__(self, tracker: ProductAvailabilityTracker, cache_path: Path) -> None:
        self.tracker = tracker
        self.cache_path = Path(cache_path)
        self._entries: tuple[POQueueEntry, ...] = ()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def entries(self) -> list[POQueueEntry]:
        return list(self._entries)

    @property
    def product_ids(self) -> list[str]:
        return [e.product_id for e in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, product_id: object) -> bool:
        return any(e.product_id == product_id for e in self._entries)

    def get(self, product_id: str) -> Optional[POQueueEntry]:
        for entry in self._entries:
            if entry.product_id == product_id:
                return entry
        return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def load(self, products: Sequence[Product]) -> None:
        """Read the cached queue and reconcile it against *products*."""
        cached = self._read_cache()
        reconciled = reconcile(cached, products)
        self._entries = tuple(reconciled)
        if reconciled != cached:
            self._save()
        logger.debug("PO queue loaded: %d entr(ies)", len(self._entries))

    def add(self, product: Product, quantity: int) -> bool:
        """
        Queue *product* with *quantity*.  Returns False without side effects
        when the product is already queued or no longer available.
        """
        validate_quantity(quantity)
        if product.id in self:
            return False
        if not self.tracker.enqueue(product, quantity):
            return False
        self._entries = self._entries + (self._entry(product.id, quantity),)
        self._save()
        logger.info("Queued product %s (qty %d)", product.id, quantity)
        return True

    def add_batch(self, items: Sequence[tuple[Product, int]]) -> BatchResult:
        """
        Queue several products.  Already-queued, unavailable and repeated
        products are skipped.  Either every remaining product is queued or,
        if a record store call fails, none is.
        """
        for _, quantity in items:
            validate_quantity(quantity)

        seen = set(self.product_ids)
        pending: list[tuple[Product, int]] = []
        skipped = 0
        for product, quantity in items:
            if product.id in seen or product.po_status != STATUS_AVAILABLE:
                skipped += 1
                continue
            seen.add(product.id)
            pending.append((product, quantity))

        moved: list[tuple[Product, int]] = []
        try:
            for product, quantity in pending:
                if self.tracker.enqueue(product, quantity):
                    moved.append((product, quantity))
                else:
                    skipped += 1
        except POStoreError:
            if moved:
                logger.warning("Queue batch failed; returning %d product(s) to available", len(moved))
                try:
                    self.tracker.dequeue_ids(p.id for p, _ in moved)
                except POStoreError:
                    logger.exception("Could not undo partial queue batch; reload will reconcile")
            raise

        if moved:
            self._entries = self._entries + tuple(self._entry(p.id, q) for p, q in moved)
            self._save()
        logger.info("Queue batch: %d added, %d skipped", len(moved), skipped)
        return BatchResult(added=len(moved), skipped=skipped)

    def remove(self, product_id: str) -> bool:
        """Dequeue *product_id*.  No-op (False) if it is not in the queue."""
        if product_id not in self:
            return False
        self.tracker.dequeue_ids([product_id])
        self._entries = tuple(e for e in self._entries if e.product_id != product_id)
        self._save()
        logger.info("Removed product %s from queue", product_id)
        return True

    def clear(self) -> int:
        """Dequeue every entry.  Returns the number of entries removed."""
        count = len(self._entries)
        if not count:
            return 0
        self.tracker.dequeue_ids(self.product_ids)
        self._entries = ()
        self._save()
        logger.info("Cleared PO queue (%d entries)", count)
        return count

    def discard(self, product_ids: Iterable[str]) -> int:
        """
        Drop entries locally without touching product state.  Used once the
        products have been ordered or deleted.
        """
        ids = set(product_ids)
        remaining = tuple(e for e in self._entries if e.product_id not in ids)
        dropped = len(self._entries) - len(remaining)
        if dropped:
            self._entries = remaining
            self._save()
        return dropped

    def sync_quantity(self, product_id: str, quantity: int) -> bool:
        """
        Set the entry for *product_id* to *quantity*, the product's stored
        po_quantity.  Returns False if the product is not queued.
        """
        entry = self.get(product_id)
        if entry is None:
            return False
        if entry.quantity != quantity:
            self._entries = tuple(
                e.model_copy(update={"quantity": quantity}) if e.product_id == product_id else e
                for e in self._entries
            )
            self._save()
            logger.info("Queue quantity for %s set to %d", product_id, quantity)
        return True

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @staticmethod
    def _entry(product_id: str, quantity: int) -> POQueueEntry:
        return POQueueEntry(
            product_id=product_id,
            quantity=quantity,
            added_at=datetime.now(timezone.utc).isoformat(),
        )

    def _read_cache(self) -> list[POQueueEntry]:
        if not self.cache_path.exists():
            return []
        try:
            with open(self.cache_path, encoding="utf-8") as f:
                raw = json.load(f)
            return [POQueueEntry.model_validate(item) for item in raw]
        except (OSError, ValueError, TypeError, ModelValidationError) as exc:
            logger.warning("Unreadable PO queue cache %s (%s); rebuilding from products",
                           self.cache_path, exc)
            return []

    def _save(self) -> None:
        # The cache is a projection of product state; a failed write is
        # repaired by reconciliation on the next load.
        tmp = self.cache_path.with_suffix(self.cache_path.suffix + ".tmp")
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump([e.model_dump() for e in self._entries], f, indent=2)
            os.replace(tmp, self.cache_path)
        except OSError as exc:
            logger.warning("Failed to write PO queue cache %s: %s", self.cache_path, exc)
