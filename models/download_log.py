from pydantic import BaseModel
from typing import Literal


LogAction = Literal["download", "email"]


class DownloadLog(BaseModel):
    """One append-only audit entry for a PO export or send action."""
    id: str
    po_id: str
    location: str
    action: LogAction = "download"
    downloaded_at: str
    downloaded_by: str
