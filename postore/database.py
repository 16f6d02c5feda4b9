"""
SQLite record store for the PO manager.

The rest of the package treats this as an opaque request/response record
store: CRUD plus filtered queries over a fixed set of record kinds, keyed by
durable id, with a change-notification hook so callers can invalidate their
caches after every committed write.

Record kinds
------------
  products              catalogue items, including their po_status
  vendors               suppliers, with the sequential V### display id
  purchase_orders       PO headers (vendor name is snapshotted here)
  purchase_order_items  PO line items
  po_download_logs      append-only export / send audit trail

Filters passed to select / update_where / delete_where are equality matches;
a list, tuple or set value becomes an IN (...) match and None becomes IS NULL.
Results are ordered by created_at, then insertion order.
"""
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Optional

from .errors import StoreError

logger = logging.getLogger(__name__)

KIND_PRODUCTS      = "products"
KIND_VENDORS       = "vendors"
KIND_ORDERS        = "purchase_orders"
KIND_ORDER_ITEMS   = "purchase_order_items"
KIND_DOWNLOAD_LOGS = "po_download_logs"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS vendors (
    id                    TEXT PRIMARY KEY,
    display_id            TEXT UNIQUE,
    name                  TEXT NOT NULL,
    gst                   TEXT NOT NULL DEFAULT '',
    address               TEXT NOT NULL DEFAULT '',
    phone                 TEXT NOT NULL DEFAULT '',
    contact_person_name   TEXT NOT NULL DEFAULT '',
    contact_person_email  TEXT NOT NULL DEFAULT '',
    created_at            TEXT NOT NULL,
    updated_at            TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS products (
    id                    TEXT PRIMARY KEY,
    display_id            TEXT,
    name                  TEXT NOT NULL,
    brand                 TEXT NOT NULL DEFAULT '',
    category              TEXT NOT NULL DEFAULT '',
    vendor_id             TEXT,
    unit                  TEXT NOT NULL DEFAULT 'pcs' CHECK (unit IN ('pcs', 'boxes')),
    current_stock         INTEGER NOT NULL DEFAULT 0,
    reorder_level         INTEGER NOT NULL DEFAULT 0,
    po_quantity           INTEGER NOT NULL DEFAULT 1,
    po_status             TEXT NOT NULL DEFAULT 'available'
                          CHECK (po_status IN ('available', 'queued', 'po_created')),
    include_in_create_po  INTEGER NOT NULL DEFAULT 1,
    created_at            TEXT NOT NULL,
    updated_at            TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_products_vendor    ON products (vendor_id);
CREATE INDEX IF NOT EXISTS idx_products_po_status ON products (po_status);

CREATE TABLE IF NOT EXISTS purchase_orders (
    id                TEXT PRIMARY KEY,
    po_number         TEXT NOT NULL UNIQUE,
    vendor_id         TEXT,
    vendor_name       TEXT,
    date              TEXT NOT NULL,
    status            TEXT NOT NULL DEFAULT 'created'
                      CHECK (status IN ('created', 'approved', 'rejected')),
    created_by        TEXT,
    approved_by       TEXT,
    approved_at       TEXT,
    rejected_by       TEXT,
    rejected_at       TEXT,
    rejection_reason  TEXT,
    created_at        TEXT NOT NULL,
    updated_at        TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_po_status ON purchase_orders (status);
CREATE INDEX IF NOT EXISTS idx_po_vendor ON purchase_orders (vendor_id);

CREATE TABLE IF NOT EXISTS purchase_order_items (
    id          TEXT PRIMARY KEY,
    po_id       TEXT NOT NULL,
    product_id  TEXT,
    quantity    INTEGER NOT NULL DEFAULT 1,
    created_at  TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_po_items_po ON purchase_order_items (po_id);

CREATE TABLE IF NOT EXISTS po_download_logs (
    id             TEXT PRIMARY KEY,
    po_id          TEXT NOT NULL,
    location       TEXT NOT NULL,
    action         TEXT NOT NULL DEFAULT 'download',   -- download | email
    downloaded_at  TEXT NOT NULL,
    downloaded_by  TEXT NOT NULL,
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_download_logs_po ON po_download_logs (po_id);

-- Monotonic counters (vendor display ids).  Values only ever grow.
CREATE TABLE IF NOT EXISTS sequences (
    name   TEXT PRIMARY KEY,
    value  INTEGER NOT NULL
);
"""

# Writable columns per kind.  Column names are interpolated into SQL, so
# everything goes through this whitelist.
_COLUMNS: dict[str, tuple[str, ...]] = {
    KIND_VENDORS: (
        "id", "display_id", "name", "gst", "address", "phone",
        "contact_person_name", "contact_person_email", "created_at", "updated_at",
    ),
    KIND_PRODUCTS: (
        "id", "display_id", "name", "brand", "category", "vendor_id", "unit",
        "current_stock", "reorder_level", "po_quantity", "po_status",
        "include_in_create_po", "created_at", "updated_at",
    ),
    KIND_ORDERS: (
        "id", "po_number", "vendor_id", "vendor_name", "date", "status",
        "created_by", "approved_by", "approved_at", "rejected_by", "rejected_at",
        "rejection_reason", "created_at", "updated_at",
    ),
    KIND_ORDER_ITEMS: ("id", "po_id", "product_id", "quantity", "created_at", "updated_at"),
    KIND_DOWNLOAD_LOGS: (
        "id", "po_id", "location", "action", "downloaded_at", "downloaded_by",
        "created_at", "updated_at",
    ),
}

_BOOL_COLUMNS = {"include_in_create_po"}

ChangeListener = Callable[[str], None]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def new_id() -> str:
    return uuid.uuid4().hex


def _columns(kind: str) -> tuple[str, ...]:
    try:
        return _COLUMNS[kind]
    except KeyError:
        raise ValueError(f"Unknown record kind {kind!r}") from None


def _check_fields(kind: str, fields: Iterable[str]) -> None:
    allowed = _columns(kind)
    unknown = [f for f in fields if f not in allowed]
    if unknown:
        raise ValueError(f"Unknown field(s) for {kind}: {', '.join(sorted(unknown))}")


def _where(kind: str, filters: dict) -> tuple[str, list, bool]:
    """
    Build a WHERE clause.  The third element is False when an empty in-list
    makes the filter unsatisfiable, so the caller can skip the query.
    """
    _check_fields(kind, filters)
    clauses: list[str] = []
    params: list = []
    for col, value in filters.items():
        if isinstance(value, (list, tuple, set, frozenset)):
            values = list(value)
            if not values:
                return "", [], False
            clauses.append(f"{col} IN ({', '.join('?' for _ in values)})")
            params.extend(values)
        elif value is None:
            clauses.append(f"{col} IS NULL")
        else:
            clauses.append(f"{col} = ?")
            params.append(value)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params, True


def _row_to_dict(row: sqlite3.Row) -> dict:
    record = dict(row)
    for col in _BOOL_COLUMNS & record.keys():
        record[col] = bool(record[col])
    return record


class RecordStore:
    """Thin wrapper around an SQLite database file holding all PO manager records."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._listeners: list[ChangeListener] = []
        self._init_schema()

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    @contextmanager
    def _conn(self):
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=30)
        except sqlite3.Error as exc:
            raise StoreError(f"Cannot open record store {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StoreError(f"Record store call failed: {exc}") from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_schema(self) -> None:
        with self._conn() as conn:
            conn.executescript(_SCHEMA)
        logger.debug("Record store schema ready: %s", self.db_path)

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """
        Register *listener* to be called with the record kind after every
        committed write to that kind.  Returns an unsubscribe callable.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, kind: str) -> None:
        for listener in list(self._listeners):
            listener(kind)

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def insert(self, kind: str, record: dict) -> dict:
        """Insert one record and return it as stored (id and timestamps filled in)."""
        return self.insert_many(kind, [record])[0]

    def insert_many(self, kind: str, records: list[dict]) -> list[dict]:
        """Insert several records of one kind in a single transaction."""
        if not records:
            return []
        stored: list[dict] = []
        for record in records:
            _check_fields(kind, record)
            now = utc_now()
            row = {"created_at": now, "updated_at": now, **record}
            row.setdefault("id", new_id())
            stored.append(row)

        with self._conn() as conn:
            for row in stored:
                cols = list(row)
                conn.execute(
                    f"INSERT INTO {kind} ({', '.join(cols)}) "
                    f"VALUES ({', '.join(':' + c for c in cols)})",
                    row,
                )
            ids = [row["id"] for row in stored]
            rows = conn.execute(
                f"SELECT * FROM {kind} WHERE id IN ({', '.join('?' for _ in ids)}) "
                f"ORDER BY created_at ASC, rowid ASC",
                ids,
            ).fetchall()

        logger.debug("Inserted %d %s record(s)", len(rows), kind)
        self._notify(kind)
        return [_row_to_dict(r) for r in rows]

    def update(self, kind: str, record_id: str, changes: dict) -> Optional[dict]:
        """Apply *changes* to one record.  Returns the updated record, or None if absent."""
        if self.update_where(kind, changes, id=record_id) == 0:
            return None
        return self.get(kind, record_id)

    def update_where(self, kind: str, changes: dict, **filters) -> int:
        """Apply *changes* to every record matching *filters*.  Returns the row count."""
        _check_fields(kind, changes)
        if "id" in changes:
            raise ValueError("Durable ids are immutable")
        where, params, satisfiable = _where(kind, filters)
        if not satisfiable:
            return 0
        values = {**changes, "updated_at": utc_now()}
        assignments = ", ".join(f"{col} = ?" for col in values)

        with self._conn() as conn:
            cur = conn.execute(
                f"UPDATE {kind} SET {assignments} {where}",
                [*values.values(), *params],
            )
            changed = cur.rowcount

        if changed:
            self._notify(kind)
        return changed

    def delete(self, kind: str, record_id: str) -> bool:
        """Delete one record.  Returns True if it existed."""
        return self.delete_where(kind, id=record_id) > 0

    def delete_where(self, kind: str, **filters) -> int:
        """Delete every record matching *filters*.  Refuses an empty filter."""
        if not filters:
            raise ValueError("delete_where needs at least one filter")
        where, params, satisfiable = _where(kind, filters)
        if not satisfiable:
            return 0

        with self._conn() as conn:
            changed = conn.execute(f"DELETE FROM {kind} {where}", params).rowcount

        if changed:
            self._notify(kind)
        return changed

    def next_sequence(self, name: str, seed: int = 0) -> int:
        """
        Increment and return the named counter.  The first call starts from
        *seed* (e.g. the highest number already in use), so the first value
        handed out is seed + 1.
        """
        with self._conn() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO sequences (name, value) VALUES (?, ?)",
                (name, seed),
            )
            conn.execute("UPDATE sequences SET value = value + 1 WHERE name = ?", (name,))
            value = conn.execute(
                "SELECT value FROM sequences WHERE name = ?", (name,)
            ).fetchone()[0]
        return value

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get(self, kind: str, record_id: str) -> Optional[dict]:
        rows = self.select(kind, id=record_id)
        return rows[0] if rows else None

    def select(self, kind: str, **filters) -> list[dict]:
        """Return records of *kind* matching *filters*, oldest first."""
        where, params, satisfiable = _where(kind, filters)
        if not satisfiable:
            return []
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT * FROM {kind} {where} ORDER BY created_at ASC, rowid ASC",
                params,
            ).fetchall()
        return [_row_to_dict(r) for r in rows]
