from pydantic import BaseModel, Field
from typing import Literal, Optional


POStatus = Literal["available", "queued", "po_created"]
Unit = Literal["pcs", "boxes"]

STATUS_AVAILABLE  = "available"
STATUS_QUEUED     = "queued"
STATUS_PO_CREATED = "po_created"


class Product(BaseModel):
    """
    A stocked product that can be queued for ordering.

    po_status tracks the product's participation in PO creation:
      available   → may be selected and queued
      queued      → sitting in the PO queue
      po_created  → already ordered; never offered for selection again
    include_in_create_po mirrors (po_status == "available").
    """
    id: str
    display_id: Optional[str] = None
    name: str
    brand: str = ""
    category: str = ""
    vendor_id: Optional[str] = None
    unit: Unit = "pcs"
    current_stock: int = Field(default=0, ge=0)
    reorder_level: int = Field(default=0, ge=0)
    po_quantity: int = Field(default=1, ge=1)
    po_status: POStatus = STATUS_AVAILABLE
    include_in_create_po: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def is_low_stock(self) -> bool:
        return self.current_stock <= self.reorder_level
