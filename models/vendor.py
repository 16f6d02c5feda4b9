from pydantic import BaseModel
from typing import Optional


def normalise_name(name: Optional[str]) -> str:
    """Trimmed, case-folded name used for duplicate detection."""
    return (name or "").strip().casefold()


class Vendor(BaseModel):
    """
    A vendor (supplier) that purchase orders are raised against.
    display_id is the human-facing "V###" code, allocated once and never reused.
    """
    id: str
    display_id: Optional[str] = None
    name: str
    gst: str = ""                       # GST / tax registration number
    address: str = ""
    phone: str = ""
    contact_person_name: str = ""
    contact_person_email: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def name_key(self) -> str:
        return normalise_name(self.name)
