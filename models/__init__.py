from .actor import Actor, UserRole
from .vendor import Vendor, normalise_name
from .product import Product, STATUS_AVAILABLE, STATUS_QUEUED, STATUS_PO_CREATED
from .purchase_order import PurchaseOrder, POItem, ORDER_CREATED, ORDER_APPROVED, ORDER_REJECTED
from .queue import POQueueEntry, BatchResult
from .download_log import DownloadLog
from .result import BulkDeleteReport, ImportReport, GenerationResult

__all__ = [
    "Actor", "UserRole",
    "Vendor", "normalise_name",
    "Product", "STATUS_AVAILABLE", "STATUS_QUEUED", "STATUS_PO_CREATED",
    "PurchaseOrder", "POItem", "ORDER_CREATED", "ORDER_APPROVED", "ORDER_REJECTED",
    "POQueueEntry", "BatchResult",
    "DownloadLog",
    "BulkDeleteReport", "ImportReport", "GenerationResult",
]
