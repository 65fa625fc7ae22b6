"""Inventory repository — deduplicated supplies, merge and restock."""

from __future__ import annotations

import logging
from typing import Optional

from field_tasks.io.validators import (
    INVENTORY_READ_ONLY,
    validate_inventory_item,
    validate_patch,
    validate_stored,
)
from field_tasks.utils.constants import ENTITY_INVENTORY, INVENTORY_LEVEL_RANK
from field_tasks.utils.ids import new_id
from field_tasks.utils.text import contains_text, normalize_text
from field_tasks.utils.time import next_timestamp, now_iso, to_iso

from .errors import ConflictError, NotFoundError
from .event_log import AuditedRepository, EventLogRepository
from .job_items import JobItemRepository
from .models import InventoryItem, JobItem
from .schema import TABLE_INVENTORY
from .store import EntityStore

logger = logging.getLogger(__name__)


def _unique_tags(tags) -> list[str]:
    """Trimmed tags in first-seen order, without duplicates."""
    seen = dict.fromkeys(t.strip() for t in (tags or []) if t and t.strip())
    return list(seen)


def worse_level(a: str, b: str) -> str:
    """The level more in need of restocking (MISSING > LOW > HAVE)."""
    return b if INVENTORY_LEVEL_RANK[b] > INVENTORY_LEVEL_RANK[a] else a


class InventoryRepository(AuditedRepository):
    """Owns every write to the inventory_items table.

    ``name_key`` (the normalized name) is unique: creating or renaming
    into an existing key raises ConflictError so the caller can offer a
    merge instead.
    """

    entity_type = ENTITY_INVENTORY

    def __init__(self, store: EntityStore, events: EventLogRepository,
                 job_items: JobItemRepository):
        super().__init__(store, events)
        self.job_items = job_items
        self._table = store.table(TABLE_INVENTORY)

    # ── Reads ───────────────────────────────────────────────────

    def list(self, level: Optional[str] = None,
             search: Optional[str] = None) -> list[InventoryItem]:
        """Items sorted by name, ignoring case and accents.

        Ordering compares the normalized name_key, not the system locale
        collation, so it is stable across machines.
        """
        if level:
            rows = self._table.query("level", level)
        else:
            rows = self._table.scan()
        items = [InventoryItem.from_dict(r) for r in rows]
        if search and search.strip():
            items = [i for i in items if contains_text(i.name, search)]
        items.sort(key=lambda i: (i.name_key, i.name))
        return items

    def get(self, item_id: str) -> Optional[InventoryItem]:
        row = self._table.get(item_id)
        return InventoryItem.from_dict(row) if row else None

    def find_by_name_key(self, name_key: str) -> Optional[InventoryItem]:
        rows = self._table.query("name_key", name_key, limit=1)
        return InventoryItem.from_dict(rows[0]) if rows else None

    def find_by_name(self, name: str) -> Optional[InventoryItem]:
        return self.find_by_name_key(normalize_text(name))

    def _require(self, item_id: str) -> InventoryItem:
        item = self.get(item_id)
        if item is None:
            raise NotFoundError(f"Inventory item {item_id} not found")
        return item

    # ── Writes ──────────────────────────────────────────────────

    def create(self, name: str, level: str = "MISSING",
               default_store: Optional[str] = None,
               tags=None) -> InventoryItem:
        self._check(validate_inventory_item({
            "name": name,
            "level": level,
            "default_store": default_store,
            "tags": tags,
        }))
        now = now_iso()
        item = InventoryItem(
            id=new_id(),
            name=name.strip(),
            name_key=normalize_text(name),
            level=level,
            default_store=default_store,
            tags=_unique_tags(tags),
            created_at=now,
            updated_at=now,
        )
        with self.store.transaction(TABLE_INVENTORY) as tx:
            table = tx.table(TABLE_INVENTORY)
            if table.query("name_key", item.name_key, limit=1):
                raise ConflictError(
                    f"Inventory item '{item.name}' already exists"
                )
            table.add(item.to_dict())

        self._audit(item.id, "INV_CREATED",
                    {"name": item.name, "level": item.level}, item)
        return item

    def update(self, item_id: str, **changes) -> InventoryItem:
        """Merge *changes*; a rename re-derives name_key and re-checks it."""
        existing = self._require(item_id)
        self._check(validate_patch(changes, InventoryItem, INVENTORY_READ_ONLY,
                                   "Inventory item"))
        self._check(validate_inventory_item(changes, partial=True))

        data = existing.to_dict()
        data.update(changes)
        if "name" in changes:
            data["name"] = changes["name"].strip()
            data["name_key"] = normalize_text(changes["name"])
        if "tags" in changes:
            data["tags"] = _unique_tags(changes["tags"])
        data["updated_at"] = next_timestamp(existing.updated_at)
        item = InventoryItem.from_dict(data)

        with self.store.transaction(TABLE_INVENTORY) as tx:
            table = tx.table(TABLE_INVENTORY)
            if item.name_key != existing.name_key:
                clash = table.query("name_key", item.name_key, limit=1)
                if clash and clash[0]["id"] != item_id:
                    raise ConflictError(
                        f"Another inventory item is already named "
                        f"'{clash[0]['name']}'"
                    )
            table.put(item.to_dict())

        self._audit(item_id, "INV_UPDATED", {"patch": changes}, item)
        return item

    def set_level(self, item_id: str, level: str) -> InventoryItem:
        item = self.update(item_id, level=level)
        self._audit(item_id, "INV_LEVEL_CHANGED", {"level": level}, item)
        return item

    def merge(self, target_id: str, source_id: str) -> Optional[InventoryItem]:
        """Fold *source* into *target* and delete *source*.

        Tags are unioned, the worse stock level wins and an empty
        default_store is filled from the source. Merging an item into
        itself changes nothing.
        """
        if target_id == source_id:
            return self.get(target_id)

        with self.store.transaction(TABLE_INVENTORY) as tx:
            table = tx.table(TABLE_INVENTORY)
            target_row, source_row = table.bulk_get([target_id, source_id])
            if target_row is None or source_row is None:
                missing = target_id if target_row is None else source_id
                raise NotFoundError(f"Inventory item {missing} not found")

            target = InventoryItem.from_dict(target_row)
            source = InventoryItem.from_dict(source_row)
            target.tags = _unique_tags(target.tags + source.tags)
            target.level = worse_level(target.level, source.level)
            if not target.default_store:
                target.default_store = source.default_store
            target.updated_at = next_timestamp(target.updated_at)

            table.put(target.to_dict())
            table.delete(source_id)

        logger.info(f"Merged inventory item {source_id} into {target_id}")
        self._audit(target_id, "INV_MERGED", {"source_id": source_id}, target)
        return target

    def add_to_purchases(self, item_id: str, job_id: str,
                         qty: Optional[float] = None) -> JobItem:
        """Put an inventory item on a job's shopping list as a BUY item."""
        inv = self._require(item_id)
        job_item = self.job_items.create(
            job_id,
            "BUY",
            inv.name,
            urgency="NORMAL",
            quantity={"amount": qty} if qty is not None else None,
            store={"name": inv.default_store} if inv.default_store else None,
        )
        self._audit(item_id, "INV_ADDED_TO_PURCHASES", {
            "job_id": job_id,
            "qty": qty,
            "job_item_id": job_item.id,
        }, job_item)
        return job_item

    def delete(self, item_id: str) -> bool:
        existing = self.get(item_id)
        if existing is None:
            return False
        self._table.delete(item_id)
        self._audit(item_id, "INV_DELETED", {"name": existing.name})
        return True

    # ── Bulk load ───────────────────────────────────────────────

    def load(self, tx, records: list[dict]) -> int:
        """Insert stored items, re-deriving name_key exactly as create does."""
        table = tx.table(TABLE_INVENTORY)
        for i, record in enumerate(records):
            label = f"inventory_items[{i}]"
            self._check(
                validate_stored(record, label)
                + validate_inventory_item(record, label=label)
            )
            item = InventoryItem.from_dict(record)
            item.name = item.name.strip()
            item.name_key = normalize_text(item.name)
            item.tags = _unique_tags(item.tags)
            item.created_at = to_iso(item.created_at)
            item.updated_at = to_iso(item.updated_at)
            if table.query("name_key", item.name_key, limit=1):
                raise ConflictError(
                    f"{label}: '{item.name}' duplicates an earlier item"
                )
            table.add(item.to_dict())
        return len(records)
