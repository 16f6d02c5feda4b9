"""
Purchase order lifecycle.

    created ──approve──▶ approved
       │
       └─────reject───▶ rejected

approved and rejected are terminal.  Every transition records who made it
and when.  Bulk calls check every target before writing anything, so a
single terminal PO in the list fails the whole call with no side effects.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Sequence

from models.actor import Actor
from models.purchase_order import ORDER_APPROVED, ORDER_CREATED, ORDER_REJECTED, PurchaseOrder
from .database import KIND_ORDER_ITEMS, KIND_ORDERS, RecordStore
from .errors import InvalidTransitionError, UnauthenticatedError

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[str, frozenset[str]] = {
    ORDER_CREATED:  frozenset({ORDER_APPROVED, ORDER_REJECTED}),
    ORDER_APPROVED: frozenset(),
    ORDER_REJECTED: frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in _TRANSITIONS.get(current, frozenset())


def require_actor(actor: Optional[Actor], action: str) -> Actor:
    if actor is None:
        raise UnauthenticatedError(f"Must be signed in to {action}")
    return actor


def _check(orders: Sequence[PurchaseOrder], target: str) -> None:
    for order in orders:
        if not can_transition(order.status, target):
            raise InvalidTransitionError(order.po_number, order.status, target)


class POLifecycle:

    def __init__(self, records: RecordStore) -> None:
        self.records = records

    def approve(self, order: PurchaseOrder, actor: Optional[Actor]) -> int:
        return self.approve_bulk([order], actor)

    def approve_bulk(self, orders: Sequence[PurchaseOrder], actor: Optional[Actor]) -> int:
        """Approve every order in *orders*.  Returns the number approved."""
        actor = require_actor(actor, "approve purchase orders")
        _check(orders, ORDER_APPROVED)
        if not orders:
            return 0
        changed = self.records.update_where(
            KIND_ORDERS,
            {
                "status":      ORDER_APPROVED,
                "approved_by": actor.name,
                "approved_at": datetime.now(timezone.utc).isoformat(),
            },
            id=[o.id for o in orders],
            status=ORDER_CREATED,
        )
        logger.info("Approved %s by %s", ", ".join(o.po_number for o in orders), actor.name)
        return changed

    def reject(self, order: PurchaseOrder, actor: Optional[Actor], reason: Optional[str] = None) -> bool:
        actor = require_actor(actor, "reject purchase orders")
        _check([order], ORDER_REJECTED)
        changed = self.records.update_where(
            KIND_ORDERS,
            {
                "status":           ORDER_REJECTED,
                "rejected_by":      actor.name,
                "rejected_at":      datetime.now(timezone.utc).isoformat(),
                "rejection_reason": (reason or "").strip(),
            },
            id=order.id,
            status=ORDER_CREATED,
        )
        logger.info("Rejected %s by %s", order.po_number, actor.name)
        return changed > 0

    def delete(self, order: PurchaseOrder) -> bool:
        """Remove the PO's items, then its header.  Irreversible."""
        self.records.delete_where(KIND_ORDER_ITEMS, po_id=order.id)
        deleted = self.records.delete(KIND_ORDERS, order.id)
        logger.info("Deleted %s", order.po_number)
        return deleted
