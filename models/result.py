from pydantic import BaseModel, Field
from typing import List

from .purchase_order import PurchaseOrder


class ImportReport(BaseModel):
    """Outcome of a vendor batch import. duplicates lists the skipped names as given."""
    added: int = 0
    duplicates: List[str] = Field(default_factory=list)


class GenerationResult(BaseModel):
    """
    Outcome of turning queue entries into purchase orders.
    skipped_product_ids are entries left in the queue because their vendor
    could not be resolved.
    """
    orders: List[PurchaseOrder] = Field(default_factory=list)
    skipped_product_ids: List[str] = Field(default_factory=list)

    @property
    def po_numbers(self) -> List[str]:
        return [o.po_number for o in self.orders]


class BulkDeleteReport(BaseModel):
    """Outcome of a bulk PO delete. deleted holds PO numbers, failed the refs as given."""
    deleted: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
