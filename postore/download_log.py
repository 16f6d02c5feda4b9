"""
Append-only audit trail of PO exports and sends.

Logging is best effort: a failed write is reported in the application log
and never stops the download or email it describes.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from models.actor import Actor
from models.download_log import DownloadLog
from .database import KIND_DOWNLOAD_LOGS, RecordStore
from .errors import POStoreError

logger = logging.getLogger(__name__)

ANONYMOUS = "anonymous"


class DownloadLogBook:

    def __init__(self, records: RecordStore, default_location: str = "Not specified") -> None:
        self.records = records
        self.default_location = default_location

    def log(
        self,
        po_id: str,
        location: Optional[str],
        actor: Optional[Actor],
        action: str = "download",
    ) -> Optional[DownloadLog]:
        """Append one entry.  Returns it, or None if the write failed."""
        try:
            row = self.records.insert(KIND_DOWNLOAD_LOGS, {
                "po_id":         po_id,
                "location":      (location or "").strip() or self.default_location,
                "action":        action,
                "downloaded_at": datetime.now(timezone.utc).isoformat(),
                "downloaded_by": actor.name if actor else ANONYMOUS,
            })
        except POStoreError as exc:
            logger.error("Failed to log %s of PO %s: %s", action, po_id, exc)
            return None
        return DownloadLog(**row)

    def entries(self, po_id: Optional[str] = None) -> list[DownloadLog]:
        """All entries (or those for *po_id*), oldest first."""
        filters = {"po_id": po_id} if po_id else {}
        return [DownloadLog(**row) for row in self.records.select(KIND_DOWNLOAD_LOGS, **filters)]
