"""
Vendor directory.

Vendor names are unique after trimming and case-folding.  Single creates
fail on a collision; batch imports skip collisions (against the store and
against earlier rows of the same batch) and report them.

Display ids ("V001") come from a persisted counter, so a number is never
handed out twice even after the vendor holding it has been deleted.
"""
import logging
import re
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

from rapidfuzz import fuzz

from models.result import ImportReport
from models.vendor import Vendor, normalise_name
from .csv_manager import VENDOR_ALIASES, load_rows
from .database import KIND_PRODUCTS, KIND_VENDORS, RecordStore
from .errors import DuplicateError, ValidationError
from .identifiers import IdentifierMapper

logger = logging.getLogger(__name__)

VENDOR_SEQUENCE = "vendor_display_id"
_DISPLAY_ID_RE = re.compile(r"^V(\d+)$")

_TEXT_FIELDS = ("gst", "address", "phone", "contact_person_name", "contact_person_email")


def format_vendor_display_id(number: int) -> str:
    return f"V{number:03d}"


def _clean(data: dict) -> dict:
    """Validate and normalise vendor input.  Unknown keys are dropped."""
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Vendor name is required")
    cleaned = {"name": name}
    for key in _TEXT_FIELDS:
        if key in data:
            cleaned[key] = (data.get(key) or "").strip()
    return cleaned


class VendorDirectory:

    def __init__(
        self,
        records: RecordStore,
        provider: Callable[[], Sequence[Vendor]],
        fuzzy_threshold: int = 85,
    ) -> None:
        self.records = records
        self._provider = provider
        self.fuzzy_threshold = fuzzy_threshold
        self.ids = IdentifierMapper(provider, "Vendor")

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _existing_keys(self, exclude_id: Optional[str] = None) -> set[str]:
        return {v.name_key for v in self._provider() if v.id != exclude_id}

    def find_by_name(self, name: Optional[str]) -> Optional[Vendor]:
        """
        Exact (case-insensitive) name match first, then the best rapidfuzz
        token_sort_ratio match at or above the threshold.
        """
        key = normalise_name(name)
        if not key:
            return None
        vendors = list(self._provider())
        for vendor in vendors:
            if vendor.name_key == key:
                return vendor

        best_score = 0.0
        best: Optional[Vendor] = None
        for vendor in vendors:
            score = fuzz.token_sort_ratio(key, vendor.name_key)
            if score > best_score:
                best_score, best = score, vendor

        if best and best_score >= self.fuzzy_threshold:
            logger.info("Vendor fuzzy matched: '%s' -> '%s' (score=%d)", name, best.name, best_score)
            return best
        logger.debug("No vendor match for '%s' (best score %d)", name, best_score)
        return None

    def resolve_reference(self, ref: Optional[str]) -> Optional[Vendor]:
        """Durable id, display id, or vendor name.  None if nothing matches."""
        return self.ids.find(ref) or self.find_by_name(ref)

    # ------------------------------------------------------------------
    # Display ids
    # ------------------------------------------------------------------

    def _seed(self) -> int:
        """Highest V### number currently in use; seeds the counter on first use."""
        highest = 0
        for row in self.records.select(KIND_VENDORS):
            match = _DISPLAY_ID_RE.match(row.get("display_id") or "")
            if match:
                highest = max(highest, int(match.group(1)))
        return highest

    def _next_display_id(self) -> str:
        return format_vendor_display_id(self.records.next_sequence(VENDOR_SEQUENCE, seed=self._seed()))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, data: dict) -> Vendor:
        cleaned = _clean(data)
        if normalise_name(cleaned["name"]) in self._existing_keys():
            raise DuplicateError(f"A vendor named '{cleaned['name']}' already exists")
        row = self.records.insert(KIND_VENDORS, {**cleaned, "display_id": self._next_display_id()})
        logger.info("Added vendor %s %s", row["display_id"], row["name"])
        return Vendor(**row)

    def add_batch(self, rows: Iterable[dict]) -> ImportReport:
        """
        Add every row whose name is new.  Name collisions are skipped and
        listed in the report.  Rows without a name fail the whole batch
        before anything is written.
        """
        cleaned_rows = [_clean(r) for r in rows]
        seen = self._existing_keys()
        accepted: list[dict] = []
        duplicates: list[str] = []
        for row in cleaned_rows:
            key = normalise_name(row["name"])
            if key in seen:
                duplicates.append(row["name"])
                continue
            seen.add(key)
            accepted.append(row)

        for row in accepted:
            row["display_id"] = self._next_display_id()
        self.records.insert_many(KIND_VENDORS, accepted)

        if duplicates:
            logger.info("Vendor import skipped %d duplicate(s): %s", len(duplicates), ", ".join(duplicates))
        logger.info("Vendor import added %d vendor(s)", len(accepted))
        return ImportReport(added=len(accepted), duplicates=duplicates)

    def import_csv(self, path: Path) -> ImportReport:
        return self.add_batch(load_rows(path, VENDOR_ALIASES))

    def update(self, ref: str, changes: dict) -> Vendor:
        vendor = self.ids.lookup(ref)
        updates = {k: (changes.get(k) or "").strip() for k in _TEXT_FIELDS if k in changes}
        if "name" in changes:
            name = (changes.get("name") or "").strip()
            if not name:
                raise ValidationError("Vendor name is required")
            if normalise_name(name) in self._existing_keys(exclude_id=vendor.id):
                raise DuplicateError(f"A vendor named '{name}' already exists")
            updates["name"] = name
        if not updates:
            return vendor
        row = self.records.update(KIND_VENDORS, vendor.id, updates)
        return Vendor(**row)

    def delete(self, ref: str) -> None:
        self.delete_many([ref])

    def delete_many(self, refs: Iterable[str]) -> int:
        """
        Delete vendors.  Existing POs keep their vendor name snapshot;
        products pointing at a deleted vendor lose their vendor link.
        """
        ids = self.ids.resolve_many(refs)
        if not ids:
            return 0
        self.records.update_where(KIND_PRODUCTS, {"vendor_id": None}, vendor_id=ids)
        deleted = self.records.delete_where(KIND_VENDORS, id=ids)
        logger.info("Deleted %d vendor(s)", deleted)
        return deleted
