"""Job repository — work orders and their lifecycle events."""

from __future__ import annotations

import logging
from typing import Optional

from field_tasks.io.validators import (
    JOB_READ_ONLY,
    validate_job,
    validate_patch,
    validate_stored,
)
from field_tasks.utils.constants import DEFAULT_COPY_SUFFIX, ENTITY_JOB
from field_tasks.utils.ids import new_id
from field_tasks.utils.text import contains_text
from field_tasks.utils.time import (
    SortOrderSequence,
    next_timestamp,
    now_iso,
    to_iso,
)

from .errors import ConflictError, NotFoundError
from .event_log import AuditedRepository, EventLogRepository
from .models import Job, JobSite
from .schema import TABLE_JOB_ITEMS, TABLE_JOBS
from .store import EntityStore

logger = logging.getLogger(__name__)


class JobRepository(AuditedRepository):
    """Owns every write to the jobs table."""

    entity_type = ENTITY_JOB

    def __init__(self, store: EntityStore, events: EventLogRepository,
                 sort_orders: SortOrderSequence):
        super().__init__(store, events)
        self.sort_orders = sort_orders
        self._table = store.table(TABLE_JOBS)

    # ── Reads ───────────────────────────────────────────────────

    def list(self, status: Optional[str] = None,
             include_archived: bool = False,
             search: Optional[str] = None) -> list[Job]:
        """Jobs by sort_order, ties broken by most recently updated."""
        if status:
            rows = self._table.query("status", status)
        else:
            rows = self._table.scan()
        jobs = [Job.from_dict(r) for r in rows]

        if not include_archived:
            jobs = [j for j in jobs if not j.is_archived]
        if search and search.strip():
            jobs = [j for j in jobs if contains_text(j.search_text, search)]

        jobs.sort(key=lambda j: j.updated_at, reverse=True)
        jobs.sort(key=lambda j: j.sort_order)
        return jobs

    def get(self, job_id: str) -> Optional[Job]:
        row = self._table.get(job_id)
        return Job.from_dict(row) if row else None

    def get_many(self, job_ids) -> dict[str, Job]:
        """Jobs keyed by id; ids with no stored job are left out."""
        ids = list(dict.fromkeys(job_ids))
        return {
            row["id"]: Job.from_dict(row)
            for row in self._table.bulk_get(ids) if row
        }

    def _require(self, job_id: str) -> Job:
        job = self.get(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    # ── Writes ──────────────────────────────────────────────────

    def create(self, title: str, reference: Optional[str] = None,
               status: str = "PREP", priority: str = "NORMAL",
               site: JobSite | dict | None = None) -> Job:
        self._check(validate_job({
            "title": title,
            "reference": reference,
            "status": status,
            "priority": priority,
            "site": site,
        }))
        now = now_iso()
        job = Job(
            id=new_id(),
            title=title.strip(),
            reference=reference,
            status=status,
            priority=priority,
            site=site,
            sort_order=self.sort_orders.next(),
            created_at=now,
            updated_at=now,
            archived_at=None,
        )
        self._table.add(job.to_dict())
        self._audit(job.id, "JOB_CREATED", {"title": job.title}, job)
        return job

    def update(self, job_id: str, **changes) -> Job:
        """Merge *changes* over the stored job.

        id and created_at are preserved; updated_at always advances.
        """
        existing = self._require(job_id)
        self._check(validate_patch(changes, Job, JOB_READ_ONLY, "Job"))
        self._check(validate_job(changes, partial=True))

        data = existing.to_dict()
        data.update(changes)
        if "title" in changes:
            data["title"] = changes["title"].strip()
        if "archived_at" in changes:
            data["archived_at"] = to_iso(changes["archived_at"])
        data["updated_at"] = next_timestamp(existing.updated_at)

        job = Job.from_dict(data)
        self._table.put(job.to_dict())
        self._audit(job_id, "JOB_UPDATED", {"patch": changes}, job)
        return job

    def set_status(self, job_id: str, status: str) -> Job:
        job = self.update(job_id, status=status)
        self._audit(job_id, "JOB_STATUS_CHANGED", {"status": status}, job)
        return job

    def set_priority(self, job_id: str, priority: str) -> Job:
        job = self.update(job_id, priority=priority)
        self._audit(job_id, "JOB_PRIORITY_CHANGED", {"priority": priority}, job)
        return job

    def archive(self, job_id: str) -> Job:
        job = self.update(job_id, archived_at=now_iso())
        self._audit(job_id, "JOB_ARCHIVED", {}, job)
        return job

    def unarchive(self, job_id: str) -> Job:
        job = self.update(job_id, archived_at=None)
        self._audit(job_id, "JOB_UNARCHIVED", {}, job)
        return job

    def duplicate(self, job_id: str,
                  title_suffix: str = DEFAULT_COPY_SUFFIX) -> Job:
        """Copy a job's header fields into a brand new job."""
        source = self._require(job_id)
        copy = self.create(
            title=f"{source.title}{title_suffix}",
            reference=source.reference,
            status=source.status,
            priority=source.priority,
            site=source.site,
        )
        self._audit(copy.id, "JOB_DUPLICATED", {"from_job_id": job_id}, copy)
        return copy

    def delete(self, job_id: str) -> bool:
        """Remove a job that no longer has items.

        Returns False when the job does not exist. Raises ConflictError
        while any job item still points at it.
        """
        with self.store.transaction(TABLE_JOBS, TABLE_JOB_ITEMS) as tx:
            row = tx.table(TABLE_JOBS).get(job_id)
            if row is None:
                return False
            if tx.table(TABLE_JOB_ITEMS).query("job_id", job_id, limit=1):
                raise ConflictError(
                    f"Job {job_id} still has items; delete them first"
                )
            tx.table(TABLE_JOBS).delete(job_id)

        logger.info(f"Deleted job {job_id}")
        self._audit(job_id, "JOB_DELETED", {"title": row["title"]})
        return True

    # ── Bulk load ───────────────────────────────────────────────

    def load(self, tx, records: list[dict]) -> int:
        """Insert stored job records inside a caller's transaction."""
        table = tx.table(TABLE_JOBS)
        for i, record in enumerate(records):
            label = f"jobs[{i}]"
            self._check(
                validate_stored(record, label) + validate_job(record, label=label)
            )
            job = Job.from_dict(record)
            job.created_at = to_iso(job.created_at)
            job.updated_at = to_iso(job.updated_at)
            job.archived_at = to_iso(job.archived_at)
            table.add(job.to_dict())
        return len(records)
