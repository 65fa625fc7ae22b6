"""Job item repository — the sub-tasks, purchases and notes of a job."""

import logging
from typing import Optional

from field_tasks.config import Config
from field_tasks.io.validators import (
    JOB_ITEM_READ_ONLY,
    validate_job_item,
    validate_patch,
    validate_stored,
)
from field_tasks.utils.constants import ENTITY_JOB, ENTITY_JOB_ITEM
from field_tasks.utils.ids import new_id
from field_tasks.utils.time import (
    SortOrderSequence,
    add_minutes,
    next_timestamp,
    now_iso,
    to_iso,
    tomorrow_at,
    utc_now,
)

from .errors import NotFoundError, ValidationError
from .event_log import AuditedRepository, EventLogRepository
from .models import JobItem, Quantity, StoreInfo
from .schema import TABLE_JOB_ITEMS
from .store import EntityStore

logger = logging.getLogger(__name__)


def apply_done_rule(data: dict, stamp: str) -> dict:
    """Keep ``state == DONE`` and a non-null ``done_at`` in lockstep.

    A DONE item without done_at gets *stamp*; an item that is not DONE
    loses its done_at. An existing done_at on a DONE item is kept.
    """
    if data.get("state") == "DONE":
        if not data.get("done_at"):
            data["done_at"] = stamp
    else:
        data["done_at"] = None
    return data


class JobItemRepository(AuditedRepository):
    """Owns every write to the job_items table."""

    entity_type = ENTITY_JOB_ITEM

    def __init__(self, store: EntityStore, events: EventLogRepository,
                 sort_orders: SortOrderSequence):
        super().__init__(store, events)
        self.sort_orders = sort_orders
        self._table = store.table(TABLE_JOB_ITEMS)

    # ── Reads ───────────────────────────────────────────────────

    def list_by_job(self, job_id: str,
                    include_done: bool = True) -> list[JobItem]:
        items = [
            JobItem.from_dict(r) for r in self._table.query("job_id", job_id)
        ]
        if not include_done:
            items = [i for i in items if not i.is_done]
        items.sort(key=lambda i: (i.sort_order, i.created_at))
        return items

    def get(self, item_id: str) -> Optional[JobItem]:
        row = self._table.get(item_id)
        return JobItem.from_dict(row) if row else None

    def _require(self, item_id: str) -> JobItem:
        item = self.get(item_id)
        if item is None:
            raise NotFoundError(f"Job item {item_id} not found")
        return item

    # ── Writes ──────────────────────────────────────────────────

    def create(self, job_id: str, item_type: str, title: str,
               details: Optional[str] = None, urgency: str = "NORMAL",
               quantity: Quantity | dict | None = None,
               store: StoreInfo | dict | None = None,
               reminder_at=None) -> JobItem:
        """Add a pending item at the end of the job's list."""
        self._check(validate_job_item({
            "job_id": job_id,
            "type": item_type,
            "title": title,
            "details": details,
            "urgency": urgency,
            "quantity": quantity,
            "store": store,
            "reminder_at": reminder_at,
        }))
        now = now_iso()
        item = JobItem(
            id=new_id(),
            job_id=job_id,
            type=item_type,
            title=title.strip(),
            details=details,
            urgency=urgency,
            state="PENDING",
            sort_order=self.sort_orders.next(),
            quantity=quantity,
            store=store,
            reminder_at=to_iso(reminder_at),
            created_at=now,
            updated_at=now,
            done_at=None,
        )
        self._table.add(item.to_dict())
        self._audit(item.id, "ITEM_CREATED",
                    {"job_id": job_id, "type": item.type}, item)
        return item

    def update(self, item_id: str, **changes) -> JobItem:
        """Merge *changes* over the stored item, then re-apply the done rule."""
        existing = self._require(item_id)
        self._check(validate_patch(changes, JobItem, JOB_ITEM_READ_ONLY,
                                   "Job item"))
        self._check(validate_job_item(changes, partial=True))

        data = existing.to_dict()
        data.update(changes)
        if "title" in changes:
            data["title"] = changes["title"].strip()
        for key in ("reminder_at", "done_at"):
            if key in changes:
                data[key] = to_iso(changes[key])
        stamp = next_timestamp(existing.updated_at)
        data["updated_at"] = stamp
        apply_done_rule(data, stamp)

        item = JobItem.from_dict(data)
        self._table.put(item.to_dict())
        self._audit(item_id, "ITEM_UPDATED", {"patch": changes}, item)
        return item

    def set_done(self, item_id: str, done: bool) -> JobItem:
        """Mark done or pending; marking twice keeps the first done_at."""
        item = self.update(item_id, state="DONE" if done else "PENDING")
        self._audit(item_id, "ITEM_DONE" if done else "ITEM_UNDONE", {}, item)
        return item

    def snooze(self, item_id: str, reminder_at) -> JobItem:
        """Set (or clear, with None) the follow-up reminder."""
        item = self.update(item_id, reminder_at=reminder_at)
        self._audit(item_id, "ITEM_SNOOZED",
                    {"reminder_at": item.reminder_at}, item)
        return item

    def snooze_for(self, item_id: str, minutes: Optional[int] = None) -> JobItem:
        if minutes is None:
            minutes = Config.DEFAULT_SNOOZE_MINUTES
        return self.snooze(item_id, add_minutes(utc_now(), minutes))

    def snooze_until_tomorrow(self, item_id: str,
                              hour: Optional[int] = None) -> JobItem:
        if hour is None:
            hour = Config.SNOOZE_TOMORROW_HOUR
        return self.snooze(item_id, tomorrow_at(hour))

    def convert_to_buy(self, item_id: str) -> JobItem:
        existing = self._require(item_id)
        item = self.update(item_id, type="BUY")
        self._audit(item_id, "ITEM_CONVERTED",
                    {"from": existing.type, "to": "BUY"}, item)
        return item

    def reorder(self, job_id: str, ordered_ids) -> list[JobItem]:
        """Give each listed item its position as sort_order, atomically.

        An unknown id or an item from another job aborts the whole
        reorder. One ITEM_REORDERED event is logged on the job.
        """
        ids = list(ordered_ids)
        if len(set(ids)) != len(ids):
            raise ValidationError("Reorder list contains duplicate ids")

        items: list[JobItem] = []
        with self.store.transaction(TABLE_JOB_ITEMS) as tx:
            table = tx.table(TABLE_JOB_ITEMS)
            for position, (item_id, row) in enumerate(
                zip(ids, table.bulk_get(ids))
            ):
                if row is None:
                    raise NotFoundError(f"Job item {item_id} not found")
                if row["job_id"] != job_id:
                    raise ValidationError(
                        f"Job item {item_id} belongs to job {row['job_id']}"
                    )
                row["sort_order"] = position
                row["updated_at"] = next_timestamp(row["updated_at"])
                table.put(row)
                items.append(JobItem.from_dict(row))

        logger.info(f"Reordered {len(ids)} items on job {job_id}")
        self._audit(job_id, "ITEM_REORDERED", {"ordered_item_ids": ids},
                    items, entity_type=ENTITY_JOB)
        return items

    def delete(self, item_id: str) -> bool:
        """Remove an item. Returns False when it did not exist."""
        existing = self.get(item_id)
        if existing is None:
            return False
        self._table.delete(item_id)
        self._audit(item_id, "ITEM_DELETED", {"job_id": existing.job_id})
        return True

    # ── Bulk load ───────────────────────────────────────────────

    def load(self, tx, records: list[dict]) -> int:
        """Insert stored item records inside a caller's transaction."""
        table = tx.table(TABLE_JOB_ITEMS)
        stamp = now_iso()
        for i, record in enumerate(records):
            label = f"job_items[{i}]"
            self._check(
                validate_stored(record, label)
                + validate_job_item(record, label=label)
            )
            data = JobItem.from_dict(record).to_dict()
            for key in ("created_at", "updated_at", "reminder_at", "done_at"):
                data[key] = to_iso(data[key])
            apply_done_rule(data, stamp)
            table.add(data)
        return len(records)
