"""Today view — urgent and due items joined with their jobs.

Read-only: nothing here writes to the store or appends events.
"""

from datetime import datetime
from typing import Optional

from field_tasks.config import Config
from field_tasks.utils.time import now_iso, to_iso

from .models import Job, JobItem, TodayEntry, TodaySnapshot
from .schema import TABLE_JOB_ITEMS, TABLE_JOBS
from .store import EntityStore


class TodayRepository:
    def __init__(self, store: EntityStore):
        self.store = store

    def get_today_snapshot(self, limit_urgent: Optional[int] = None,
                           limit_due: Optional[int] = None,
                           now: datetime | str | None = None) -> TodaySnapshot:
        """Pending urgent items and pending items whose reminder is due.

        Both lists are read in one consistent view. Urgent items keep
        index (insertion) order; due items come earliest reminder first.
        An item whose job is gone is still listed, with ``job=None``.
        """
        if limit_urgent is None:
            limit_urgent = Config.TODAY_LIMIT_URGENT
        if limit_due is None:
            limit_due = Config.TODAY_LIMIT_DUE
        if limit_urgent < 0 or limit_due < 0:
            raise ValueError("Today limits must not be negative")
        now = to_iso(now) if now is not None else now_iso()

        with self.store.transaction(TABLE_JOB_ITEMS, TABLE_JOBS,
                                    readonly=True) as tx:
            items = tx.table(TABLE_JOB_ITEMS)
            urgent = [
                JobItem.from_dict(r) for r in items.query(
                    "state+urgency", ("PENDING", "URGENT"), limit=limit_urgent,
                )
            ]

            due = [
                item for item in (
                    JobItem.from_dict(r)
                    for r in items.query("reminder_at", upper=now)
                )
                if item.is_due(now)
            ][:limit_due]
            due.sort(key=lambda i: i.reminder_at)

            job_ids = list(dict.fromkeys(i.job_id for i in urgent + due))
            jobs = {
                row["id"]: Job.from_dict(row)
                for row in tx.table(TABLE_JOBS).bulk_get(job_ids) if row
            }

        return TodaySnapshot(
            now=now,
            urgent=[TodayEntry(item, jobs.get(item.job_id)) for item in urgent],
            due=[TodayEntry(item, jobs.get(item.job_id)) for item in due],
        )
