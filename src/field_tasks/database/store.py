"""Entity store — get/put/delete and index scans over registry tables.

Records are plain dicts keyed by a caller-supplied ``id``. The store
never generates ids and knows nothing about entity semantics; it keeps
the JSON document and its materialized index columns in step.
"""

import json
import sqlite3
from contextlib import contextmanager, nullcontext

from .connection import DatabaseConnection
from .errors import ConflictError, DuplicateKeyError
from .schema import SCHEMAS, EntitySchema

_MISSING = object()

# Stay well below SQLite's bound-parameter limit
_BULK_CHUNK = 500


class Table:
    """Operations on one entity table.

    ``connect`` is a zero-argument callable returning a context manager
    that yields a sqlite3 connection: the auto-committing
    ``DatabaseConnection.get_connection`` for standalone calls, or the
    shared connection of an open transaction.
    """

    def __init__(self, schema: EntitySchema, connect, readonly: bool = False):
        self.schema = schema
        self._connect = connect
        self.readonly = readonly

    @property
    def name(self) -> str:
        return self.schema.table

    # ── Reads ───────────────────────────────────────────────────

    def get(self, entity_id: str) -> dict | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT data FROM {self.name} WHERE id = ?", (entity_id,)
            ).fetchone()
        return json.loads(row["data"]) if row else None

    def bulk_get(self, entity_ids) -> list[dict | None]:
        """Fetch many records; result is aligned with *entity_ids*."""
        ids = list(entity_ids)
        found: dict[str, dict] = {}
        with self._connect() as conn:
            for start in range(0, len(ids), _BULK_CHUNK):
                chunk = ids[start:start + _BULK_CHUNK]
                marks = ", ".join("?" for _ in chunk)
                rows = conn.execute(
                    f"SELECT id, data FROM {self.name} WHERE id IN ({marks})",
                    tuple(chunk),
                ).fetchall()
                for r in rows:
                    found[r["id"]] = json.loads(r["data"])
        return [found.get(i) for i in ids]

    def query(self, index: str, value=_MISSING, *, lower=None, upper=None,
              reverse: bool = False, limit: int | None = None) -> list[dict]:
        """Look records up through a declared index.

        Pass ``value`` for an exact match (a full tuple for composite
        indexes; ``None`` matches unset fields), or ``lower``/``upper``
        for an inclusive range on a single-field index. Results come in
        index order, ties in insertion order.
        """
        idx = self.schema.index(index)
        clauses = []
        params: list = []
        if value is not _MISSING:
            if lower is not None or upper is not None:
                raise ValueError("Use either an exact value or a range, not both")
            key = idx.encode(value)
            if key is None:
                clauses.append(f"{idx.column} IS NULL")
            else:
                clauses.append(f"{idx.column} = ?")
                params.append(key)
        else:
            if idx.is_composite:
                raise ValueError(
                    f"Composite index {idx.name} only supports exact matches"
                )
            # NULL never satisfies a comparison, so unset fields drop out
            clauses.append(f"{idx.column} IS NOT NULL")
            if lower is not None:
                clauses.append(f"{idx.column} >= ?")
                params.append(lower)
            if upper is not None:
                clauses.append(f"{idx.column} <= ?")
                params.append(upper)
        return self._select(
            " AND ".join(clauses), params, idx.column, reverse, limit
        )

    def scan(self, order_by: str | None = None, reverse: bool = False,
             limit: int | None = None) -> list[dict]:
        """All records, by an index's order or by insertion order."""
        column = self.schema.index(order_by).column if order_by else None
        return self._select("1=1", [], column, reverse, limit)

    def count(self) -> int:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT COUNT(*) AS cnt FROM {self.name}"
            ).fetchone()
        return row["cnt"]

    def _select(self, where: str, params: list, column: str | None,
                reverse: bool, limit: int | None) -> list[dict]:
        direction = "DESC" if reverse else "ASC"
        order = f"rowid {direction}"
        if column:
            order = f"{column} {direction}, {order}"
        sql = f"SELECT data FROM {self.name} WHERE {where} ORDER BY {order}"
        if limit is not None:
            sql += " LIMIT ?"
            params = list(params) + [limit]
        with self._connect() as conn:
            rows = conn.execute(sql, tuple(params)).fetchall()
        return [json.loads(r["data"]) for r in rows]

    # ── Writes ──────────────────────────────────────────────────

    def _columns(self, record: dict) -> tuple[list[str], list]:
        key = record.get(self.schema.primary_key)
        if not key:
            raise ValueError(f"{self.name} record has no primary key")
        columns = ["id", "data"]
        values = [key, json.dumps(record, ensure_ascii=False)]
        for idx in self.schema.indexes:
            columns.append(idx.column)
            values.append(idx.key_for(record))
        return columns, values

    def _check_writable(self):
        if self.readonly:
            raise ValueError(f"Table {self.name} is open read-only")

    def add(self, record: dict):
        """Insert a new record; the id must not exist yet."""
        self._check_writable()
        columns, values = self._columns(record)
        with self._connect() as conn:
            exists = conn.execute(
                f"SELECT 1 FROM {self.name} WHERE id = ?", (values[0],)
            ).fetchone()
            if exists:
                raise DuplicateKeyError(
                    f"{self.name} already holds id {values[0]}"
                )
            self._write(conn, "INSERT INTO", columns, values, "")

    def put(self, record: dict):
        """Insert or replace; a replaced row keeps its insertion position."""
        self._check_writable()
        columns, values = self._columns(record)
        updates = ", ".join(f"{c} = excluded.{c}" for c in columns[1:])
        with self._connect() as conn:
            self._write(
                conn, "INSERT INTO", columns, values,
                f" ON CONFLICT(id) DO UPDATE SET {updates}",
            )

    def _write(self, conn, verb: str, columns: list[str], values: list,
               suffix: str):
        marks = ", ".join("?" for _ in columns)
        try:
            conn.execute(
                f"{verb} {self.name} ({', '.join(columns)}) "
                f"VALUES ({marks}){suffix}",
                tuple(values),
            )
        except sqlite3.IntegrityError as exc:
            raise ConflictError(
                f"{self.name} record {values[0]} violates a unique index: {exc}"
            ) from exc

    def delete(self, entity_id: str) -> bool:
        """Remove a record if present. Returns whether a row went away."""
        self._check_writable()
        with self._connect() as conn:
            cursor = conn.execute(
                f"DELETE FROM {self.name} WHERE id = ?", (entity_id,)
            )
            return cursor.rowcount > 0

    def clear(self) -> int:
        self._check_writable()
        with self._connect() as conn:
            cursor = conn.execute(f"DELETE FROM {self.name}")
            return cursor.rowcount


class Transaction:
    """Tables bound to one open, locked connection."""

    def __init__(self, tables: dict[str, Table]):
        self._tables = tables

    def table(self, name: str) -> Table:
        try:
            return self._tables[name]
        except KeyError:
            raise ValueError(
                f"Table {name} is not part of this transaction"
            ) from None

    __getitem__ = table


class EntityStore:
    """Durable table abstraction over a DatabaseConnection."""

    def __init__(self, db: DatabaseConnection, registry=SCHEMAS):
        self.db = db
        self.registry = registry

    def _schema(self, name: str) -> EntitySchema:
        try:
            return self.registry[name]
        except KeyError:
            raise ValueError(f"Unknown table: {name}") from None

    def table(self, name: str) -> Table:
        """Auto-committing handle: every call is its own transaction."""
        return Table(self._schema(name), self.db.get_connection)

    @contextmanager
    def transaction(self, *tables: str, readonly: bool = False):
        """Run a block with *tables* locked on one connection.

        Writers take an exclusive lock, so no other connection sees the
        block's writes before commit. Leaving the block normally commits
        everything; any exception rolls everything back and propagates.
        Inside the block use only the yielded handles: a standalone
        ``store.table(...)`` call would wait on the lock held here.
        """
        if not tables:
            raise ValueError("A transaction needs at least one table")
        schemas = {name: self._schema(name) for name in tables}
        mode = "DEFERRED" if readonly else "EXCLUSIVE"
        with self.db.get_connection(begin=mode) as conn:

            def bound():
                return nullcontext(conn)

            yield Transaction({
                name: Table(schema, bound, readonly)
                for name, schema in schemas.items()
            })
