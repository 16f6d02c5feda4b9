"""
Identifier mapping.

Vendors, products and purchase orders can be referred to either by their
durable id (uuid hex) or by a human-facing display id ("V001", a product
code, "PO-0001").  Every store entry point runs its references through an
IdentifierMapper so both forms are accepted.
"""
import logging
from typing import Callable, Generic, Iterable, Optional, Sequence, TypeVar

from .errors import NotFoundError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class IdentifierMapper(Generic[T]):
    """
    Resolves references against a record provider (normally a store cache).

    The provider is called on every lookup so the mapper always sees the
    current snapshot.  Durable ids are tried first, so resolving an id that
    is already durable returns it unchanged.
    """

    def __init__(
        self,
        provider: Callable[[], Sequence[T]],
        kind: str,
        display_field: str = "display_id",
    ) -> None:
        self._provider = provider
        self.kind = kind
        self.display_field = display_field

    def find(self, ref: Optional[str]) -> Optional[T]:
        """Return the record for *ref*, or None."""
        if ref is None:
            return None
        ref = str(ref).strip()
        if not ref:
            return None
        records = self._provider()
        for record in records:
            if record.id == ref:
                return record
        for record in records:
            if getattr(record, self.display_field, None) == ref:
                return record
        return None

    def lookup(self, ref: Optional[str]) -> T:
        """Return the record for *ref*; NotFoundError if neither id form matches."""
        record = self.find(ref)
        if record is None:
            raise NotFoundError(self.kind, str(ref))
        return record

    def resolve(self, ref: Optional[str]) -> str:
        """Return the durable id for *ref*."""
        return self.lookup(ref).id

    def resolve_many(self, refs: Iterable[str]) -> list[str]:
        """
        Resolve every reference, preserving order and dropping repeats.
        Raises on the first unknown reference before the caller does anything.
        """
        resolved: list[str] = []
        for ref in refs:
            durable = self.resolve(ref)
            if durable not in resolved:
                resolved.append(durable)
        return resolved
