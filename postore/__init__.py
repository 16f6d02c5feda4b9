from .database import RecordStore
from .identifiers import IdentifierMapper
from .availability import ProductAvailabilityTracker
from .queue import POQueue
from .generator import POGenerator
from .lifecycle import POLifecycle
from .download_log import DownloadLogBook
from .vendors import VendorDirectory
from .products import ProductCatalog
from .notifier import POMailer
from .store import POStore

__all__ = [
    "RecordStore", "IdentifierMapper", "ProductAvailabilityTracker",
    "POQueue", "POGenerator", "POLifecycle", "DownloadLogBook",
    "VendorDirectory", "ProductCatalog", "POMailer", "POStore",
]
