"""
PO Manager API: FastAPI backend.

JSON API over a single POStore.  Authentication happens upstream (reverse
proxy or SSO); the signed-in user arrives as X-Actor-* headers and every
route checks that user's role against the permission table.

Endpoints
---------
  GET    /api/health                    → liveness check
  GET    /api/stats                     → dashboard counters
  GET    /api/vendors                   → list vendors
  POST   /api/vendors                   → add one vendor
  POST   /api/vendors/batch             → bulk add (duplicates skipped and reported)
  PATCH  /api/vendors/{ref}             → edit a vendor
  DELETE /api/vendors/{ref}             → delete a vendor
  POST   /api/vendors/bulk-delete       → delete several vendors
  GET    /api/products                  → list products (?view=available|queued|low_stock|all,
                                          or ?vendor= for every product of one vendor)
  POST   /api/products                  → add one product
  POST   /api/products/batch            → bulk add
  PATCH  /api/products/{ref}            → edit a product
  DELETE /api/products/{ref}            → delete a product (and its queue entry)
  POST   /api/products/bulk-delete      → delete several products
  GET    /api/queue                     → PO queue entries
  POST   /api/queue                     → queue one product
  POST   /api/queue/batch               → queue several products
  DELETE /api/queue/{ref}               → remove one product from the queue
  DELETE /api/queue                     → clear the queue
  POST   /api/pos/generate              → turn the queue into POs, one per vendor
  GET    /api/pos                       → PO register (?status=)
  GET    /api/pos/next-number           → the PO number the next PO will get
  POST   /api/pos/approve               → bulk approve
  POST   /api/pos/export                → bulk download: render several POs, one location logged for each
  POST   /api/pos/bulk-delete           → delete several POs, reporting deleted and failed
  POST   /api/pos/send                  → email several POs, one message per vendor
  GET    /api/pos/{ref}                 → one PO with its items
  POST   /api/pos/{ref}/approve         → approve
  POST   /api/pos/{ref}/reject          → reject (optional reason)
  DELETE /api/pos/{ref}                 → delete a PO
  GET    /api/pos/{ref}/export          → rendered PO (?fmt=html|text&location=), logged
  POST   /api/pos/{ref}/send            → email the PO to the vendor contact, logged
  GET    /api/pos/{ref}/whatsapp        → WhatsApp message and wa.me link for the vendor
  GET    /api/pos/{ref}/downloads       → download/send log for one PO
  POST   /api/pos/{ref}/downloads       → record a download made elsewhere
  GET    /api/approvals                 → POs waiting for approval
"""
import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse

from config import Config
from dashboard.models import (
    BulkExportRequest,
    DownloadRequest,
    GenerateRequest,
    ProductBatch,
    ProductCreate,
    ProductUpdate,
    QueueAdd,
    QueueBatch,
    RefList,
    RejectRequest,
    VendorBatch,
    VendorCreate,
    VendorUpdate,
)
from dashboard.services.export import EXPORT_FORMATS
from models.actor import Actor
from postore import permissions as perms
from postore.errors import (
    AlreadyQueuedError,
    DuplicateError,
    EmptyQueueError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    POStoreError,
    StoreError,
    UnauthenticatedError,
    ValidationError,
)
from postore.store import POStore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Store, opened lazily on the first request so that importing the app does
# not touch the database.  Sync routes run in a threadpool; POStore serializes
# its entry points with its own lock, so the one instance is shared.
# ---------------------------------------------------------------------------
_store: Optional[POStore] = None


def get_store() -> POStore:
    global _store
    if _store is None:
        config = Config()
        config.ensure_output_dir()
        _store = POStore(config)
    return _store


def current_actor(
    x_actor_name: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
    x_actor_id: Optional[str] = Header(default=None),
) -> Optional[Actor]:
    """The upstream-authenticated user, or None when no identity was passed."""
    if not x_actor_name:
        return None
    role = x_actor_role or "po_creator"
    if role not in perms.ROLE_PERMISSIONS:
        raise HTTPException(401, f"Unknown role: {role}")
    return Actor(id=x_actor_id or x_actor_name, name=x_actor_name, role=role)


def _allowed(actor: Optional[Actor], permission: str) -> Actor:
    return perms.require_permission(actor, permission)


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(title="PO Manager", docs_url=None, redoc_url=None)

# Most specific first: subclasses before their bases.
_STATUS_CODES: list[tuple[type, int]] = [
    (EmptyQueueError,        400),
    (InvalidTransitionError, 409),
    (ValidationError,        422),
    (UnauthenticatedError,   401),
    (PermissionDeniedError,  403),
    (NotFoundError,          404),
    (DuplicateError,         409),
    (AlreadyQueuedError,     409),
    (StoreError,             503),
]


def status_for(exc: POStoreError) -> int:
    for exc_type, code in _STATUS_CODES:
        if isinstance(exc, exc_type):
            return code
    return 400


@app.exception_handler(POStoreError)
async def handle_store_error(request: Request, exc: POStoreError):
    code = status_for(exc)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content={"detail": str(exc), "error": type(exc).__name__})


# ── Routes ───────────────────────────────────────────────────────────────────

@app.get("/api/health")
def health():
    store = get_store()
    return {
        "status":     "ok",
        "db_path":    str(store.config.db_path),
        "db_exists":  store.config.db_path.exists(),
        "queue_size": len(store.queue),
    }


@app.get("/api/stats")
def stats(actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.VIEW_DASHBOARD)
    return get_store().stats()


# ── Vendors ──────────────────────────────────────────────────────────────────

@app.get("/api/vendors")
def list_vendors(actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.VIEW_VENDORS)
    return get_store().vendors()


@app.post("/api/vendors", status_code=201)
def add_vendor(body: VendorCreate, actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.MANAGE_VENDORS)
    return get_store().add_vendor(body.model_dump())


@app.post("/api/vendors/batch")
def add_vendors(body: VendorBatch, actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.MANAGE_VENDORS)
    return get_store().add_vendors([v.model_dump() for v in body.vendors])


@app.post("/api/vendors/bulk-delete")
def delete_vendors(body: RefList, actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.MANAGE_VENDORS)
    return {"deleted": get_store().delete_vendors(body.refs)}


@app.patch("/api/vendors/{ref}")
def update_vendor(ref: str, body: VendorUpdate, actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.MANAGE_VENDORS)
    return get_store().update_vendor(ref, body.model_dump(exclude_unset=True))


@app.delete("/api/vendors/{ref}")
def delete_vendor(ref: str, actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.MANAGE_VENDORS)
    return {"deleted": get_store().delete_vendor(ref)}


# ── Products ─────────────────────────────────────────────────────────────────

@app.get("/api/products")
def list_products(
    view: str = Query("available", pattern="^(available|queued|low_stock|all)$"),
    vendor: Optional[str] = Query(None),
    actor: Optional[Actor] = Depends(current_actor),
):
    _allowed(actor, perms.VIEW_PRODUCTS)
    store = get_store()
    if vendor:
        return store.products_for_vendor(vendor)
    if view == "queued":
        return store.queued_products()
    if view == "low_stock":
        return store.low_stock_products()
    if view == "all":
        return store.all_products()
    return store.products()


@app.post("/api/products", status_code=201)
def add_product(body: ProductCreate, actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.MANAGE_PRODUCTS)
    return get_store().add_product(body.model_dump())


@app.post("/api/products/batch")
def add_products(body: ProductBatch, actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.MANAGE_PRODUCTS)
    return {"added": get_store().add_products([p.model_dump() for p in body.products])}


@app.post("/api/products/bulk-delete")
def delete_products(body: RefList, actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.BULK_DELETE_PRODUCTS)
    return {"deleted": get_store().delete_products(body.refs)}


@app.patch("/api/products/{ref}")
def update_product(ref: str, body: ProductUpdate, actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.MANAGE_PRODUCTS)
    return get_store().update_product(ref, body.model_dump(exclude_unset=True))


@app.delete("/api/products/{ref}")
def delete_product(ref: str, actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.MANAGE_PRODUCTS)
    return {"deleted": get_store().delete_product(ref)}


# ── Queue ────────────────────────────────────────────────────────────────────

@app.get("/api/queue")
def list_queue(actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.CREATE_PO)
    return get_store().queue_entries()


@app.post("/api/queue")
def add_to_queue(body: QueueAdd, actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.CREATE_PO)
    return {"added": get_store().add_to_queue(body.product, body.quantity)}


@app.post("/api/queue/batch")
def add_batch_to_queue(body: QueueBatch, actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.CREATE_PO)
    return get_store().add_batch_to_queue([(i.product, i.quantity) for i in body.items])


@app.delete("/api/queue/{ref}")
def remove_from_queue(ref: str, actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.CREATE_PO)
    return {"removed": get_store().remove_from_queue(ref)}


@app.delete("/api/queue")
def clear_queue(actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.CREATE_PO)
    return {"removed": get_store().clear_queue()}


# ── Purchase orders ──────────────────────────────────────────────────────────

@app.post("/api/pos/generate", status_code=201)
def generate_pos(body: GenerateRequest, actor: Optional[Actor] = Depends(current_actor)):
    actor = _allowed(actor, perms.CREATE_PO)
    return get_store().generate_pos(body.selected, actor=actor)


@app.get("/api/pos")
def list_pos(
    status: Optional[str] = Query(None, pattern="^(created|approved|rejected)$"),
    actor: Optional[Actor] = Depends(current_actor),
):
    _allowed(actor, perms.VIEW_PO_REGISTER)
    return get_store().purchase_orders(status=status)


@app.get("/api/pos/next-number")
def next_po_number(actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.CREATE_PO)
    return {"po_number": get_store().next_po_number()}


@app.post("/api/pos/approve")
def approve_bulk(body: RefList, actor: Optional[Actor] = Depends(current_actor)):
    actor = _allowed(actor, perms.BULK_APPROVE_PO)
    return {"approved": get_store().approve_bulk(body.refs, actor=actor)}


@app.post("/api/pos/export")
def export_pos(body: BulkExportRequest, actor: Optional[Actor] = Depends(current_actor)):
    actor = _allowed(actor, perms.DOWNLOAD_PDF)
    return {"documents": get_store().export_pos(body.refs, body.location, body.fmt, actor=actor)}


@app.post("/api/pos/bulk-delete")
def delete_pos(body: RefList, actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.DELETE_PO)
    return get_store().delete_purchase_orders(body.refs)


@app.post("/api/pos/send")
def send_pos_by_vendor(body: RefList, actor: Optional[Actor] = Depends(current_actor)):
    actor = _allowed(actor, perms.SEND_MAIL)
    return {"results": get_store().send_pos_by_vendor(body.refs, actor=actor)}


@app.get("/api/pos/{ref}")
def get_po(ref: str, actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.VIEW_PO_REGISTER)
    return get_store().get_purchase_order(ref)


@app.post("/api/pos/{ref}/approve")
def approve_po(ref: str, actor: Optional[Actor] = Depends(current_actor)):
    actor = _allowed(actor, perms.APPROVE_PO)
    return get_store().approve(ref, actor=actor)


@app.post("/api/pos/{ref}/reject")
def reject_po(ref: str, body: RejectRequest, actor: Optional[Actor] = Depends(current_actor)):
    actor = _allowed(actor, perms.APPROVE_PO)
    return get_store().reject(ref, body.reason, actor=actor)


@app.delete("/api/pos/{ref}")
def delete_po(ref: str, actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.DELETE_PO)
    return {"deleted": get_store().delete_purchase_order(ref)}


@app.get("/api/pos/{ref}/export")
def export_po(
    ref: str,
    fmt: str = Query("html"),
    location: Optional[str] = Query(None),
    actor: Optional[Actor] = Depends(current_actor),
):
    actor = _allowed(actor, perms.DOWNLOAD_PDF)
    if fmt not in EXPORT_FORMATS:
        raise HTTPException(400, f"fmt must be one of: {', '.join(EXPORT_FORMATS)}")
    document = get_store().export_po(ref, location, fmt, actor=actor)
    if fmt == "html":
        return HTMLResponse(document)
    return PlainTextResponse(document)


@app.post("/api/pos/{ref}/send")
def send_po(ref: str, actor: Optional[Actor] = Depends(current_actor)):
    actor = _allowed(actor, perms.SEND_MAIL)
    result = get_store().send_po(ref, actor=actor)
    if result.get("status") == "failed":
        raise HTTPException(502, result.get("error") or "Mail API call failed")
    return result


@app.get("/api/pos/{ref}/whatsapp")
def whatsapp_po(ref: str, actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.SEND_MAIL)
    return get_store().whatsapp_message(ref)


@app.get("/api/pos/{ref}/downloads")
def list_downloads(ref: str, actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.VIEW_PO_REGISTER)
    return get_store().download_logs(ref)


@app.post("/api/pos/{ref}/downloads", status_code=201)
def log_download(ref: str, body: DownloadRequest, actor: Optional[Actor] = Depends(current_actor)):
    actor = _allowed(actor, perms.DOWNLOAD_PDF)
    entry = get_store().log_download(ref, body.location, body.action, actor=actor)
    return {"logged": entry is not None, "entry": entry}


@app.get("/api/approvals")
def approvals(actor: Optional[Actor] = Depends(current_actor)):
    _allowed(actor, perms.VIEW_APPROVALS)
    return get_store().pending_approval()
