from pydantic import BaseModel, Field


class POQueueEntry(BaseModel):
    """One staged product in the PO queue. At most one entry per product."""
    product_id: str
    quantity: int = Field(ge=1)
    added_at: str                           # ISO-8601 UTC


class BatchResult(BaseModel):
    """Outcome of a bulk queue add."""
    added: int = 0
    skipped: int = 0
