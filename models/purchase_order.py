from pydantic import BaseModel, Field, computed_field
from typing import List, Literal, Optional


OrderStatus = Literal["created", "approved", "rejected"]

ORDER_CREATED  = "created"
ORDER_APPROVED = "approved"
ORDER_REJECTED = "rejected"


class POItem(BaseModel):
    """A single line item on a Purchase Order."""
    id: str
    po_id: str
    product_id: Optional[str] = None     # None once the product has been deleted
    quantity: int = Field(ge=1)
    created_at: Optional[str] = None


class PurchaseOrder(BaseModel):
    """
    A Purchase Order raised against exactly one vendor.
    po_number ("PO-0001") is global across vendors and never reused.
    vendor_name is a snapshot taken at creation so the PO survives vendor deletion.
    """
    id: str
    po_number: str
    vendor_id: Optional[str] = None
    vendor_name: Optional[str] = None
    date: str                               # YYYY-MM-DD
    status: OrderStatus = ORDER_CREATED
    created_by: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[str] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    items: List[POItem] = Field(default_factory=list)

    @computed_field
    @property
    def total_items(self) -> int:
        """Number of line items (not the sum of quantities)."""
        return len(self.items)
