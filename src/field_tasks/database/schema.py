"""Schema registry, table definition and initialization.

The registry is the single source of truth for what can be queried
efficiently. Each entity table stores the whole record as a JSON
document in ``data`` and materializes one column per declared index,
so the store stays schemaless while lookups stay indexed.
"""

import json
import sqlite3
from dataclasses import dataclass
from types import MappingProxyType

from .errors import StorageError

SCHEMA_VERSION = 1

TABLE_JOBS = "jobs"
TABLE_JOB_ITEMS = "job_items"
TABLE_INVENTORY = "inventory_items"
TABLE_EVENT_LOGS = "event_logs"


@dataclass(frozen=True)
class IndexDef:
    """A single-field or composite (exact-match only) index."""

    name: str
    fields: tuple[str, ...]
    unique: bool = False

    @property
    def is_composite(self) -> bool:
        return len(self.fields) > 1

    @property
    def column(self) -> str:
        return "ix_" + "_".join(self.fields)

    def encode(self, value):
        """Turn a lookup value into what is stored in the index column.

        Composite values are rendered as one JSON array string, so only a
        full tuple can ever match.
        """
        if not self.is_composite:
            return value
        if not isinstance(value, (tuple, list)) or len(value) != len(self.fields):
            raise ValueError(
                f"Index {self.name} needs a full "
                f"{len(self.fields)}-tuple, got {value!r}"
            )
        return json.dumps(list(value), separators=(",", ":"))

    def key_for(self, record: dict):
        if self.is_composite:
            return self.encode([record.get(f) for f in self.fields])
        return record.get(self.fields[0])


def _single(name: str, unique: bool = False) -> IndexDef:
    return IndexDef(name, (name,), unique)


def _composite(*fields: str) -> IndexDef:
    return IndexDef("+".join(fields), tuple(fields))


@dataclass(frozen=True)
class EntitySchema:
    table: str
    indexes: tuple[IndexDef, ...]
    primary_key: str = "id"

    def index(self, name: str) -> IndexDef:
        for idx in self.indexes:
            if idx.name == name:
                return idx
        raise ValueError(f"Table {self.table} has no index named {name!r}")

    def statements(self) -> list[str]:
        """CREATE TABLE / CREATE INDEX statements for this entity."""
        columns = ["id TEXT PRIMARY KEY", "data TEXT NOT NULL"]
        columns += [idx.column for idx in self.indexes]
        stmts = [
            f"CREATE TABLE IF NOT EXISTS {self.table} "
            f"({', '.join(columns)})"
        ]
        for idx in self.indexes:
            unique = "UNIQUE " if idx.unique else ""
            stmts.append(
                f"CREATE {unique}INDEX IF NOT EXISTS "
                f"idx_{self.table}_{'_'.join(idx.fields)} "
                f"ON {self.table}({idx.column})"
            )
        return stmts


SCHEMAS = MappingProxyType({
    TABLE_JOBS: EntitySchema(TABLE_JOBS, (
        _single("status"),
        _single("priority"),
        _single("archived_at"),
        _single("created_at"),
        _single("updated_at"),
        _single("sort_order"),
    )),
    # job_id lists a job's items; [state+urgency] feeds the urgent
    # list; reminder_at feeds the due list
    TABLE_JOB_ITEMS: EntitySchema(TABLE_JOB_ITEMS, (
        _single("job_id"),
        _single("state"),
        _single("urgency"),
        _composite("state", "urgency"),
        _single("reminder_at"),
        _single("created_at"),
        _single("updated_at"),
        _single("sort_order"),
    )),
    TABLE_INVENTORY: EntitySchema(TABLE_INVENTORY, (
        _single("name_key", unique=True),
        _single("level"),
        _single("updated_at"),
        _single("created_at"),
    )),
    TABLE_EVENT_LOGS: EntitySchema(TABLE_EVENT_LOGS, (
        _single("timestamp"),
        _single("entity_type"),
        _composite("entity_type", "entity_id"),
    )),
})


def _get_schema_version(conn) -> int:
    """Get the current schema version, or 0 if no schema exists."""
    try:
        row = conn.execute(
            "SELECT MAX(version) as v FROM schema_version"
        ).fetchone()
    except sqlite3.OperationalError:
        return 0
    return row["v"] if row and row["v"] else 0


def initialize_database(db_connection, registry=SCHEMAS):
    """Create all tables and indexes declared in the registry.

    Safe to call on every start. A database written by a newer schema
    version is refused rather than guessed at.
    """
    with db_connection.get_connection() as conn:
        version = _get_schema_version(conn)
        if version > SCHEMA_VERSION:
            raise StorageError(
                f"Database schema v{version} is newer than supported "
                f"v{SCHEMA_VERSION}"
            )

        conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version ("
            "version INTEGER PRIMARY KEY, "
            "applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP)"
        )
        for schema in registry.values():
            for stmt in schema.statements():
                conn.execute(stmt)
        conn.execute(
            "INSERT OR IGNORE INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )


def get_schema_version(db_connection) -> int:
    with db_connection.get_connection() as conn:
        return _get_schema_version(conn)
