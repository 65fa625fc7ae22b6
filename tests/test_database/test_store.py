"""Tests for the entity store: tables, index queries and transactions."""

import pytest

from field_tasks.database.errors import ConflictError, DuplicateKeyError
from field_tasks.database.schema import (
    TABLE_INVENTORY,
    TABLE_JOB_ITEMS,
    TABLE_JOBS,
)
from field_tasks.database.store import EntityStore


@pytest.fixture
def store(db):
    return EntityStore(db)


@pytest.fixture
def items(store):
    """job_items table with a handful of records."""
    table = store.table(TABLE_JOB_ITEMS)
    rows = [
        {"id": "a", "job_id": "j1", "state": "PENDING", "urgency": "URGENT",
         "reminder_at": "2026-01-01T09:00:00.000000+00:00"},
        {"id": "b", "job_id": "j1", "state": "DONE", "urgency": "URGENT",
         "reminder_at": None},
        {"id": "c", "job_id": "j2", "state": "PENDING", "urgency": "NORMAL",
         "reminder_at": "2026-01-03T09:00:00.000000+00:00"},
        {"id": "d", "job_id": "j1", "state": "PENDING", "urgency": "URGENT",
         "reminder_at": "2026-01-02T09:00:00.000000+00:00"},
    ]
    for row in rows:
        table.add(row)
    return table


def _ids(rows):
    return [r["id"] for r in rows]


class TestTableReads:
    def test_get(self, items):
        assert items.get("a")["job_id"] == "j1"
        assert items.get("missing") is None

    def test_bulk_get_is_aligned(self, items):
        rows = items.bulk_get(["c", "missing", "a"])
        assert rows[0]["id"] == "c"
        assert rows[1] is None
        assert rows[2]["id"] == "a"

    def test_bulk_get_many_ids(self, items):
        ids = [f"x{i}" for i in range(1200)] + ["d"]
        rows = items.bulk_get(ids)
        assert len(rows) == len(ids)
        assert rows[-1]["id"] == "d"
        assert all(r is None for r in rows[:-1])

    def test_query_exact_in_insertion_order(self, items):
        assert _ids(items.query("job_id", "j1")) == ["a", "b", "d"]

    def test_query_composite(self, items):
        rows = items.query("state+urgency", ("PENDING", "URGENT"))
        assert _ids(rows) == ["a", "d"]

    def test_query_composite_partial_rejected(self, items):
        with pytest.raises(ValueError):
            items.query("state+urgency", ("PENDING",))

    def test_query_composite_range_rejected(self, items):
        with pytest.raises(ValueError):
            items.query("state+urgency", lower=("PENDING", "URGENT"))

    def test_query_none_matches_unset(self, items):
        assert _ids(items.query("reminder_at", None)) == ["b"]

    def test_query_range_skips_unset(self, items):
        rows = items.query(
            "reminder_at", upper="2026-01-02T23:59:59.000000+00:00"
        )
        assert _ids(rows) == ["a", "d"]

    def test_query_range_both_bounds(self, items):
        rows = items.query(
            "reminder_at",
            lower="2026-01-02T00:00:00.000000+00:00",
            upper="2026-01-03T09:00:00.000000+00:00",
        )
        assert _ids(rows) == ["d", "c"]

    def test_query_reverse_and_limit(self, items):
        rows = items.query("reminder_at", lower="2026", reverse=True, limit=2)
        assert _ids(rows) == ["c", "d"]

    def test_query_value_and_range_rejected(self, items):
        with pytest.raises(ValueError):
            items.query("job_id", "j1", lower="a")

    def test_query_unknown_index(self, items):
        with pytest.raises(ValueError):
            items.query("title", "x")

    def test_scan(self, items):
        assert _ids(items.scan()) == ["a", "b", "c", "d"]
        assert _ids(items.scan(reverse=True, limit=1)) == ["d"]

    def test_scan_ordered_by_index(self, items):
        # NULL sorts first in SQLite
        assert _ids(items.scan(order_by="reminder_at")) == ["b", "a", "d", "c"]

    def test_count(self, items):
        assert items.count() == 4


class TestTableWrites:
    def test_add_duplicate_id(self, items):
        with pytest.raises(DuplicateKeyError):
            items.add({"id": "a", "job_id": "j9"})
        assert items.get("a")["job_id"] == "j1"

    def test_add_requires_id(self, items):
        with pytest.raises(ValueError):
            items.add({"job_id": "j1"})

    def test_put_replaces_and_keeps_position(self, items):
        items.put({"id": "a", "job_id": "j2", "state": "PENDING",
                   "urgency": "NORMAL"})
        assert items.get("a")["job_id"] == "j2"
        assert _ids(items.scan()) == ["a", "b", "c", "d"]
        # Index columns follow the document
        assert _ids(items.query("job_id", "j2")) == ["a", "c"]

    def test_put_inserts_new(self, items):
        items.put({"id": "e", "job_id": "j3"})
        assert items.count() == 5

    def test_unique_index_conflict(self, store):
        table = store.table(TABLE_INVENTORY)
        table.add({"id": "1", "name_key": "cable"})
        with pytest.raises(ConflictError):
            table.add({"id": "2", "name_key": "cable"})
        with pytest.raises(ConflictError):
            table.put({"id": "3", "name_key": "cable"})
        assert table.count() == 1

    def test_delete(self, items):
        assert items.delete("a") is True
        assert items.delete("a") is False
        assert items.get("a") is None

    def test_clear(self, items):
        assert items.clear() == 4
        assert items.count() == 0


class TestEntityStore:
    def test_unknown_table(self, store):
        with pytest.raises(ValueError):
            store.table("nope")

    def test_transaction_commits(self, store):
        with store.transaction(TABLE_JOBS, TABLE_JOB_ITEMS) as tx:
            tx.table(TABLE_JOBS).add({"id": "j1"})
            tx[TABLE_JOB_ITEMS].add({"id": "i1", "job_id": "j1"})
        assert store.table(TABLE_JOBS).get("j1") is not None
        assert store.table(TABLE_JOB_ITEMS).get("i1") is not None

    def test_transaction_rolls_back_everything(self, store):
        with pytest.raises(RuntimeError):
            with store.transaction(TABLE_JOBS, TABLE_JOB_ITEMS) as tx:
                tx.table(TABLE_JOBS).add({"id": "j1"})
                tx.table(TABLE_JOB_ITEMS).add({"id": "i1", "job_id": "j1"})
                raise RuntimeError("abort")
        assert store.table(TABLE_JOBS).get("j1") is None
        assert store.table(TABLE_JOB_ITEMS).get("i1") is None

    def test_transaction_sees_own_writes(self, store):
        with store.transaction(TABLE_JOBS) as tx:
            tx.table(TABLE_JOBS).add({"id": "j1", "status": "PREP"})
            assert tx.table(TABLE_JOBS).query("status", "PREP")

    def test_undeclared_table_in_transaction(self, store):
        with store.transaction(TABLE_JOBS) as tx:
            with pytest.raises(ValueError):
                tx.table(TABLE_JOB_ITEMS)

    def test_readonly_transaction_rejects_writes(self, store):
        with store.transaction(TABLE_JOBS, readonly=True) as tx:
            with pytest.raises(ValueError):
                tx.table(TABLE_JOBS).add({"id": "j1"})
        assert store.table(TABLE_JOBS).count() == 0

    def test_transaction_needs_tables(self, store):
        with pytest.raises(ValueError):
            with store.transaction():
                pass
