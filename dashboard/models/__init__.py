"""
Pydantic models for dashboard API requests.
"""
from pydantic import BaseModel, Field
from typing import Optional


class VendorCreate(BaseModel):
    name: str
    gst: str = ""
    address: str = ""
    phone: str = ""
    contact_person_name: str = ""
    contact_person_email: str = ""


class VendorUpdate(BaseModel):
    name: Optional[str] = None
    gst: Optional[str] = None
    address: Optional[str] = None
    phone: Optional[str] = None
    contact_person_name: Optional[str] = None
    contact_person_email: Optional[str] = None


class VendorBatch(BaseModel):
    vendors: list[VendorCreate]


class ProductCreate(BaseModel):
    name: str
    display_id: Optional[str] = None
    brand: str = ""
    category: str = ""
    vendor_id: Optional[str] = None     # durable id or V### display id
    unit: str = "pcs"                   # pcs | boxes
    current_stock: int = 0
    reorder_level: int = 0
    po_quantity: int = 1


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    display_id: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    vendor_id: Optional[str] = None
    unit: Optional[str] = None
    current_stock: Optional[int] = None
    reorder_level: Optional[int] = None
    po_quantity: Optional[int] = None


class ProductBatch(BaseModel):
    products: list[ProductCreate]


class RefList(BaseModel):
    refs: list[str]


class QueueAdd(BaseModel):
    product: str                        # durable id or product code
    quantity: Optional[int] = None      # defaults to the product's po_quantity


class QueueBatch(BaseModel):
    items: list[QueueAdd]


class GenerateRequest(BaseModel):
    selected: Optional[list[str]] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class DownloadRequest(BaseModel):
    location: Optional[str] = None
    action: str = Field(default="download", pattern="^(download|email)$")


class BulkExportRequest(BaseModel):
    refs: list[str]
    location: Optional[str] = None
    fmt: str = Field(default="html", pattern="^(html|text)$")
