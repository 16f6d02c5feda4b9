"""
Role → permission table.

The store itself only needs *an* actor; which actions a role may take is
enforced by the outer surfaces (API and CLI) through require_permission().
"""
from typing import Optional

from models.actor import Actor
from .errors import PermissionDeniedError, UnauthenticatedError

VIEW_DASHBOARD    = "view_dashboard"
CREATE_PO         = "create_po"
VIEW_PO_REGISTER  = "view_po_register"
APPROVE_PO        = "approve_po"
BULK_APPROVE_PO   = "bulk_approve_po"
DOWNLOAD_PDF      = "download_pdf"
SEND_MAIL         = "send_mail"
DELETE_PO         = "delete_po"
MANAGE_VENDORS    = "manage_vendors"
MANAGE_PRODUCTS   = "manage_products"
BULK_DELETE_PRODUCTS = "bulk_delete_products"
VIEW_PRODUCTS     = "view_products"
VIEW_VENDORS      = "view_vendors"
VIEW_APPROVALS    = "view_approvals"

ALL_PERMISSIONS = frozenset({
    VIEW_DASHBOARD, CREATE_PO, VIEW_PO_REGISTER, APPROVE_PO, BULK_APPROVE_PO,
    DOWNLOAD_PDF, SEND_MAIL, DELETE_PO, MANAGE_VENDORS, MANAGE_PRODUCTS,
    BULK_DELETE_PRODUCTS, VIEW_PRODUCTS, VIEW_VENDORS, VIEW_APPROVALS,
})

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "main_admin": ALL_PERMISSIONS,
    "po_creator": frozenset({
        VIEW_DASHBOARD, CREATE_PO, VIEW_PO_REGISTER, DOWNLOAD_PDF,
        VIEW_PRODUCTS, VIEW_VENDORS,
    }),
    "approval_admin": frozenset({
        VIEW_DASHBOARD, VIEW_PO_REGISTER, APPROVE_PO, BULK_APPROVE_PO,
        VIEW_APPROVALS, DOWNLOAD_PDF,
    }),
}


def has_permission(actor: Optional[Actor], permission: str) -> bool:
    if actor is None:
        return False
    return permission in ROLE_PERMISSIONS.get(actor.role, frozenset())


def require_permission(actor: Optional[Actor], permission: str) -> Actor:
    """Return *actor* if it holds *permission*; raise otherwise."""
    if actor is None:
        raise UnauthenticatedError("Sign-in required")
    if not has_permission(actor, permission):
        raise PermissionDeniedError(actor.role, permission)
    return actor
