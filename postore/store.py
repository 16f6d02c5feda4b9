"""
POStore: the one object a session talks to.

Constructed once per session with a Config, an optional RecordStore and the
authenticated Actor.  It owns read-through caches of products, vendors and
purchase orders, wires the components together, and is the only place that
turns vendor/product/PO references (durable id or display id) into records.

Caches are dropped whenever the record store reports a committed write.
Multi-step operations (queue batches, PO generation, cascading deletes) hold
invalidation back until they finish, so a reader sees either the state before
the operation or the state after it, never a half-applied one.

One POStore may be shared by several threads (the API runs sync routes in a
threadpool).  Every entry point that reads or changes the caches or the queue
runs under the store's re-entrant lock.
"""
import functools
import logging
import threading
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Iterable, Optional, Sequence

from config import Config
from dashboard.services.export import (
    build_po_payload,
    render_po,
    render_po_bundle,
    render_whatsapp_message,
)
from models.actor import Actor
from models.download_log import DownloadLog
from models.product import Product, STATUS_AVAILABLE, STATUS_QUEUED
from models.purchase_order import ORDER_CREATED, POItem, PurchaseOrder
from models.queue import BatchResult, POQueueEntry
from models.result import BulkDeleteReport, GenerationResult, ImportReport
from models.vendor import Vendor
from .availability import ProductAvailabilityTracker
from .database import (
    KIND_ORDER_ITEMS,
    KIND_ORDERS,
    KIND_PRODUCTS,
    KIND_VENDORS,
    RecordStore,
)
from .download_log import DownloadLogBook
from .errors import EmptyQueueError, NotFoundError, POStoreError, StoreError, ValidationError
from .generator import POGenerator, next_po_number
from .identifiers import IdentifierMapper
from .lifecycle import POLifecycle, require_actor
from .notifier import MIN_PHONE_DIGITS, POMailer, format_phone, valid_email, whatsapp_url
from .products import ProductCatalog
from .queue import POQueue, validate_quantity
from .vendors import VendorDirectory

logger = logging.getLogger(__name__)

# Record kinds whose writes invalidate each cache.
_CACHE_SOURCES = {
    KIND_PRODUCTS:    KIND_PRODUCTS,
    KIND_VENDORS:     KIND_VENDORS,
    KIND_ORDERS:      KIND_ORDERS,
    KIND_ORDER_ITEMS: KIND_ORDERS,
}


def _locked(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


class POStore:

    def __init__(
        self,
        config: Optional[Config] = None,
        records: Optional[RecordStore] = None,
        actor: Optional[Actor] = None,
        mailer: Optional[POMailer] = None,
    ) -> None:
        self.config = config or Config()
        self.records = records or RecordStore(self.config.db_path)
        self.actor = actor

        self._lock = threading.RLock()
        self._cache: dict[str, list] = {}
        self._defer_depth = 0
        self._dirty: set[str] = set()
        self._unsubscribe = self.records.subscribe(self._on_change)

        self.tracker = ProductAvailabilityTracker(self.records)
        self.vendor_directory = VendorDirectory(
            self.records, self.vendors, fuzzy_threshold=self.config.vendor_fuzzy_threshold,
        )
        self.catalog = ProductCatalog(self.records, self.all_products, self.vendor_directory)
        self.queue = POQueue(self.tracker, self.config.queue_cache_path)
        self.generator = POGenerator(self.records, self.tracker)
        self.lifecycle = POLifecycle(self.records)
        self.download_log = DownloadLogBook(self.records, self.config.default_download_location)
        self.mailer = mailer or POMailer(self.config)

        self.product_ids = self.catalog.ids
        self.vendor_ids = self.vendor_directory.ids
        self.order_ids = IdentifierMapper(self.purchase_orders, "Purchase order", display_field="po_number")

        self.queue.load(self.all_products())

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    @_locked
    def close(self) -> None:
        self._unsubscribe()

    @_locked
    def refresh(self) -> None:
        """Drop every cache and reconcile the queue against the record store."""
        self._cache.clear()
        self.queue.load(self.all_products())

    def _actor(self, actor: Optional[Actor], action: str) -> Actor:
        return require_actor(actor or self.actor, action)

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    @_locked
    def _on_change(self, kind: str) -> None:
        target = _CACHE_SOURCES.get(kind)
        if target is None:
            return
        if self._defer_depth:
            self._dirty.add(target)
        else:
            self._cache.pop(target, None)

    @contextmanager
    def _deferred(self):
        with self._lock:
            self._defer_depth += 1
            try:
                yield
            finally:
                self._defer_depth -= 1
                if not self._defer_depth:
                    for kind in self._dirty:
                        self._cache.pop(kind, None)
                    self._dirty.clear()

    @_locked
    def _cached(self, kind: str, loader) -> list:
        if kind not in self._cache:
            self._cache[kind] = loader()
        return self._cache[kind]

    def _load_orders(self) -> list[PurchaseOrder]:
        items_by_po: dict[str, list[POItem]] = {}
        for row in self.records.select(KIND_ORDER_ITEMS):
            items_by_po.setdefault(row["po_id"], []).append(POItem(**row))
        vendor_names = {v.id: v.name for v in self.vendors()}
        orders = []
        for row in self.records.select(KIND_ORDERS):
            if not row.get("vendor_name"):
                row["vendor_name"] = vendor_names.get(row.get("vendor_id"))
            orders.append(PurchaseOrder(**row, items=items_by_po.get(row["id"], [])))
        return orders

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    def all_products(self) -> list[Product]:
        return self._cached(KIND_PRODUCTS, lambda: [
            Product(**row) for row in self.records.select(KIND_PRODUCTS)
        ])

    def products(self) -> list[Product]:
        """The product list: available products only."""
        return [p for p in self.all_products() if p.po_status == STATUS_AVAILABLE]

    def queued_products(self) -> list[Product]:
        return self.catalog.queued()

    def low_stock_products(self) -> list[Product]:
        return self.catalog.low_stock()

    def products_for_vendor(self, vendor_ref: str) -> list[Product]:
        """Every product of one vendor, whatever its PO status."""
        return self.catalog.by_vendor(vendor_ref)

    def vendors(self) -> list[Vendor]:
        return self._cached(KIND_VENDORS, lambda: [
            Vendor(**row) for row in self.records.select(KIND_VENDORS)
        ])

    def purchase_orders(self, status: Optional[str] = None) -> list[PurchaseOrder]:
        orders = self._cached(KIND_ORDERS, self._load_orders)
        if status is None:
            return list(orders)
        return [o for o in orders if o.status == status]

    def pending_approval(self) -> list[PurchaseOrder]:
        return self.purchase_orders(status=ORDER_CREATED)

    def get_product(self, ref: str) -> Product:
        return self.product_ids.lookup(ref)

    def get_vendor(self, ref: str) -> Vendor:
        return self.vendor_ids.lookup(ref)

    def get_purchase_order(self, ref: str) -> PurchaseOrder:
        return self.order_ids.lookup(ref)

    def queue_entries(self) -> list[POQueueEntry]:
        return self.queue.entries

    def next_po_number(self) -> str:
        return next_po_number(o.po_number for o in self.purchase_orders())

    def find_vendor(self, name: str) -> Optional[Vendor]:
        return self.vendor_directory.find_by_name(name)

    # ------------------------------------------------------------------
    # Vendors
    # ------------------------------------------------------------------

    @_locked
    def add_vendor(self, data: dict) -> Vendor:
        return self.vendor_directory.add(data)

    def add_vendors(self, rows: Iterable[dict]) -> ImportReport:
        with self._deferred():
            return self.vendor_directory.add_batch(rows)

    def import_vendors_csv(self, path: Path) -> ImportReport:
        with self._deferred():
            return self.vendor_directory.import_csv(path)

    @_locked
    def update_vendor(self, ref: str, changes: dict) -> Vendor:
        return self.vendor_directory.update(ref, changes)

    def delete_vendor(self, ref: str) -> int:
        return self.delete_vendors([ref])

    def delete_vendors(self, refs: Iterable[str]) -> int:
        with self._deferred():
            return self.vendor_directory.delete_many(refs)

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------

    @_locked
    def add_product(self, data: dict) -> Product:
        return self.catalog.add(data)

    def add_products(self, rows: Iterable[dict]) -> int:
        with self._deferred():
            return self.catalog.add_batch(rows)

    def import_products_csv(self, path: Path) -> int:
        with self._deferred():
            return self.catalog.import_csv(path)

    def update_product(self, ref: str, changes: dict) -> Product:
        """
        Edit a product.  A new po_quantity on a queued product is carried
        into its queue entry, so the next generation orders the new amount.
        """
        with self._deferred():
            product = self.catalog.update(ref, changes)
            if product.po_status == STATUS_QUEUED:
                self.queue.sync_quantity(product.id, product.po_quantity)
        return product

    def delete_product(self, ref: str) -> int:
        return self.delete_products([ref])

    def delete_products(self, refs: Iterable[str]) -> int:
        """Delete products and drop any queue entries they had."""
        with self._deferred():
            ids = self.catalog.delete_many(refs)
            self.queue.discard(ids)
        return len(ids)

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    @_locked
    def add_to_queue(self, ref: str, quantity: Optional[int] = None) -> bool:
        """
        Queue one product.  quantity defaults to the product's stored
        po_quantity.  Returns False if it was already queued or not available.
        """
        if quantity is not None:
            validate_quantity(quantity)
        product = self.product_ids.lookup(ref)
        return self.queue.add(product, product.po_quantity if quantity is None else quantity)

    def add_batch_to_queue(self, items: Sequence[tuple[str, Optional[int]]]) -> BatchResult:
        for _, quantity in items:
            if quantity is not None:
                validate_quantity(quantity)
        with self._deferred():
            resolved = []
            for ref, quantity in items:
                product = self.product_ids.lookup(ref)
                resolved.append((product, product.po_quantity if quantity is None else quantity))
            return self.queue.add_batch(resolved)

    @_locked
    def remove_from_queue(self, ref: str) -> bool:
        return self.queue.remove(self.product_ids.resolve(ref))

    def clear_queue(self) -> int:
        with self._deferred():
            return self.queue.clear()

    # ------------------------------------------------------------------
    # Purchase orders
    # ------------------------------------------------------------------

    def generate_pos(
        self,
        selected: Optional[Iterable[str]] = None,
        actor: Optional[Actor] = None,
    ) -> GenerationResult:
        """
        Turn queued products into POs, one per vendor.  With *selected*, only
        those products are processed and the rest stay queued.

        If a vendor group fails, the POs already written stay, their products
        end up po_created and leave the queue, and the error propagates.  A
        retry then only sees the products that were not ordered.
        """
        actor = self._actor(actor, "create purchase orders")
        with self._deferred():
            entries = self.queue.entries
            if not entries:
                raise EmptyQueueError("No items in queue")
            if selected is not None:
                wanted = set(self.product_ids.resolve_many(selected))
                entries = [e for e in entries if e.product_id in wanted]
                if not entries:
                    raise EmptyQueueError("None of the selected products are in the queue")

            products = {p.id: p for p in self.all_products()}
            vendors = {v.id: v for v in self.vendors()}
            result = GenerationResult()
            try:
                self.generator.generate(entries, products, vendors, actor, result)
            except POStoreError:
                self._settle_ordered(result)
                raise
            finally:
                self.queue.discard(
                    item.product_id for order in result.orders for item in order.items
                )
        return result

    def _settle_ordered(self, result: GenerationResult) -> None:
        # Products of committed orders whose status update did not land.
        # mark_ordered only touches rows still 'queued', so this is a no-op
        # for groups that completed.
        ids = [item.product_id for order in result.orders for item in order.items]
        if not ids:
            return
        try:
            self.tracker.mark_ordered(ids)
        except POStoreError:
            logger.exception(
                "Could not mark products of %s as ordered; they stay queued in the database",
                ", ".join(result.po_numbers),
            )

    @_locked
    def approve(self, ref: str, actor: Optional[Actor] = None) -> PurchaseOrder:
        actor = self._actor(actor, "approve purchase orders")
        order = self.order_ids.lookup(ref)
        self.lifecycle.approve(order, actor)
        return self.order_ids.lookup(order.id)

    def approve_bulk(self, refs: Iterable[str], actor: Optional[Actor] = None) -> int:
        actor = self._actor(actor, "approve purchase orders")
        with self._deferred():
            orders = [self.order_ids.lookup(i) for i in self.order_ids.resolve_many(refs)]
            return self.lifecycle.approve_bulk(orders, actor)

    @_locked
    def reject(self, ref: str, reason: Optional[str] = None, actor: Optional[Actor] = None) -> PurchaseOrder:
        actor = self._actor(actor, "reject purchase orders")
        order = self.order_ids.lookup(ref)
        self.lifecycle.reject(order, actor, reason)
        return self.order_ids.lookup(order.id)

    def delete_purchase_order(self, ref: str) -> bool:
        with self._deferred():
            order = self.order_ids.lookup(ref)
            return self.lifecycle.delete(order)

    def delete_purchase_orders(self, refs: Iterable[str]) -> BulkDeleteReport:
        """
        Delete several POs one by one.  A ref that does not resolve or whose
        delete fails is counted as failed; the rest are still deleted.
        """
        report = BulkDeleteReport()
        seen: set[str] = set()
        with self._deferred():
            for ref in refs:
                try:
                    order = self.order_ids.lookup(ref)
                    if order.id in seen:
                        continue
                    self.lifecycle.delete(order)
                except (NotFoundError, StoreError) as exc:
                    logger.warning("Could not delete PO %s: %s", ref, exc)
                    report.failed.append(str(ref))
                    continue
                seen.add(order.id)
                report.deleted.append(order.po_number)
        logger.info("Bulk PO delete: %d deleted, %d failed", len(report.deleted), len(report.failed))
        return report

    # ------------------------------------------------------------------
    # Export, send and the download log
    # ------------------------------------------------------------------

    @_locked
    def log_download(
        self,
        po_ref: str,
        location: Optional[str] = None,
        action: str = "download",
        actor: Optional[Actor] = None,
    ) -> Optional[DownloadLog]:
        order = self.order_ids.lookup(po_ref)
        return self.download_log.log(order.id, location, actor or self.actor, action)

    @_locked
    def download_logs(self, po_ref: Optional[str] = None) -> list[DownloadLog]:
        po_id = self.order_ids.resolve(po_ref) if po_ref else None
        return self.download_log.entries(po_id)

    def _payload(self, order: PurchaseOrder, vendor: Optional[Vendor] = None) -> dict:
        return build_po_payload(
            order,
            vendor or self.vendor_ids.find(order.vendor_id),
            {p.id: p for p in self.all_products()},
        )

    @_locked
    def render_po(self, ref: str, fmt: str = "html") -> str:
        """Render a PO document without logging it."""
        return render_po(self._payload(self.order_ids.lookup(ref)), fmt, self.config.config_dir)

    @_locked
    def export_po(
        self,
        ref: str,
        location: Optional[str] = None,
        fmt: str = "html",
        actor: Optional[Actor] = None,
    ) -> str:
        """Render a PO and record the download.  Returns the document."""
        document = self.render_po(ref, fmt)
        self.log_download(ref, location, "download", actor)
        return document

    @_locked
    def export_pos(
        self,
        refs: Iterable[str],
        location: Optional[str] = None,
        fmt: str = "html",
        actor: Optional[Actor] = None,
    ) -> dict[str, str]:
        """
        Bulk download: render several POs and log each one with the same
        *location*.  Every ref is resolved before anything is rendered or
        logged.  Returns {po_number: document} in the order given.
        """
        ids = self.order_ids.resolve_many(refs)
        documents: dict[str, str] = {}
        for po_id in ids:
            order = self.order_ids.lookup(po_id)
            if order.po_number not in documents:
                documents[order.po_number] = self.export_po(po_id, location, fmt, actor)
        return documents

    @_locked
    def send_po(self, ref: str, actor: Optional[Actor] = None) -> dict:
        """
        Email a PO to its vendor's contact.  The send is logged only when
        the mail API accepted it.  Returns the mailer's result dict.
        """
        order = self.order_ids.lookup(ref)
        vendor = self.vendor_ids.find(order.vendor_id)
        to_email = vendor.contact_person_email if vendor else ""
        to_name = (vendor.contact_person_name or vendor.name) if vendor else (order.vendor_name or "")
        context = self.mailer.build_context(
            po_number=order.po_number,
            to_email=to_email,
            to_name=to_name,
            html_content=self.render_po(order.id, "html"),
            text_content=self.render_po(order.id, "text"),
        )
        result = self.mailer.send(context)
        if result.get("status") == "success":
            self.log_download(order.id, to_email, "email", actor)
        else:
            logger.warning("PO %s was not sent: %s", order.po_number,
                           result.get("reason") or result.get("error"))
        return result

    @_locked
    def send_pos_by_vendor(self, refs: Iterable[str], actor: Optional[Actor] = None) -> list[dict]:
        """
        Email several POs, one message per vendor listing that vendor's POs.

        Every vendor's contact address is checked before anything is sent:
        a PO without a vendor, or a vendor with a missing or malformed
        address, fails the whole call with ValidationError.  Each PO in a
        message the mail API accepted is logged as an email.  Returns one
        result dict per vendor, in the order vendors first appear in *refs*.
        """
        orders = [self.order_ids.lookup(i) for i in self.order_ids.resolve_many(refs)]
        groups: dict[str, list[PurchaseOrder]] = {}
        vendors: dict[str, Vendor] = {}
        orphaned: list[str] = []
        for order in orders:
            vendor = self.vendor_ids.find(order.vendor_id)
            if vendor is None:
                orphaned.append(order.po_number)
                continue
            vendors[vendor.id] = vendor
            groups.setdefault(vendor.id, []).append(order)
        if orphaned:
            raise ValidationError(f"No vendor on record for {', '.join(orphaned)}")
        missing = [v.name for v in vendors.values() if not (v.contact_person_email or "").strip()]
        if missing:
            raise ValidationError(f"Vendor email is missing for: {', '.join(missing)}")
        invalid = [v.name for v in vendors.values() if not valid_email(v.contact_person_email)]
        if invalid:
            raise ValidationError(f"Invalid vendor email address for: {', '.join(invalid)}")

        results = []
        for vendor_id, group in groups.items():
            vendor = vendors[vendor_id]
            to_email = vendor.contact_person_email.strip()
            payloads = [self._payload(order, vendor) for order in group]
            po_numbers = [order.po_number for order in group]
            context = self.mailer.build_context(
                po_number=", ".join(po_numbers),
                to_email=to_email,
                to_name=vendor.contact_person_name or vendor.name,
                html_content=render_po_bundle(payloads, "html", self.config.config_dir),
                text_content=render_po_bundle(payloads, "text", self.config.config_dir),
                subject=f"Purchase Orders ({len(group)}) - {vendor.name}",
            )
            result = self.mailer.send(context)
            if result.get("status") == "success":
                for order in group:
                    self.log_download(order.id, to_email, "email", actor)
            else:
                logger.warning("POs for vendor %s were not sent: %s", vendor.name,
                               result.get("reason") or result.get("error"))
            results.append({
                **result,
                "vendor": vendor.name,
                "to_email": to_email,
                "po_numbers": po_numbers,
            })
        return results

    @_locked
    def whatsapp_message(self, ref: str) -> dict:
        """
        Compose the WhatsApp share message for a PO and its wa.me link to the
        vendor's phone.  Raises ValidationError when the vendor has no phone
        number with at least MIN_PHONE_DIGITS digits.
        """
        order = self.order_ids.lookup(ref)
        vendor = self.vendor_ids.find(order.vendor_id)
        phone = format_phone(vendor.phone if vendor else "")
        if not phone:
            raise ValidationError(f"Vendor phone number is missing for {order.po_number}")
        if sum(c.isdigit() for c in phone) < MIN_PHONE_DIGITS:
            raise ValidationError(
                f"Vendor phone number {phone!r} must have at least {MIN_PHONE_DIGITS} digits"
            )
        message = render_whatsapp_message(self._payload(order, vendor), self.config.config_dir)
        return {
            "po_number": order.po_number,
            "phone": phone,
            "message": message,
            "url": whatsapp_url(phone, message),
        }

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------

    @_locked
    def stats(self) -> dict:
        month = date.today().isoformat()[:7]
        orders = self.purchase_orders()
        return {
            "available_products": len(self.products()),
            "vendors":            len(self.vendors()),
            "pos_this_month":     sum(1 for o in orders if (o.date or "").startswith(month)),
            "pending_approvals":  sum(1 for o in orders if o.status == ORDER_CREATED),
            "low_stock":          len(self.low_stock_products()),
            "queue_size":         len(self.queue),
        }
