"""BackupManager — JSON snapshot export and restore of the whole store.

A backup file carries every job, job item, inventory item and event
plus the schema version and export time:

    {
      "schema_version": 1,
      "exported_at": "...",
      "app": {"name": "Field-Tasks", "build": "1.0.0"},
      "data": {"jobs": [...], "job_items": [...],
               "inventory_items": [...], "event_logs": [...]}
    }

Restoring replaces the current data in one transaction and runs each
record through the same rules live writes use.
"""

import json
import logging
from pathlib import Path

from field_tasks.database.errors import ValidationError
from field_tasks.database.models import BackupFile
from field_tasks.database.repository import Repository
from field_tasks.database.schema import (
    SCHEMA_VERSION,
    TABLE_EVENT_LOGS,
    TABLE_INVENTORY,
    TABLE_JOB_ITEMS,
    TABLE_JOBS,
)
from field_tasks.utils.constants import APP_NAME, APP_VERSION
from field_tasks.utils.time import now_iso

logger = logging.getLogger(__name__)

# Tables included in a backup (restore order)
BACKUP_TABLES = [
    TABLE_JOBS,
    TABLE_JOB_ITEMS,
    TABLE_INVENTORY,
    TABLE_EVENT_LOGS,
]


def parse_backup(payload) -> BackupFile:
    """Check the shape of a decoded backup and wrap it."""
    if not isinstance(payload, dict):
        raise ValidationError("Backup must be a JSON object")
    version = payload.get("schema_version")
    if version != SCHEMA_VERSION:
        raise ValidationError(
            f"Unsupported backup schema version {version!r} "
            f"(expected {SCHEMA_VERSION})"
        )
    data = payload.get("data")
    if not isinstance(data, dict):
        raise ValidationError("Backup has no data section")
    sections = {}
    for name in BACKUP_TABLES:
        rows = data.get(name, [])
        if not isinstance(rows, list) or not all(
            isinstance(r, dict) for r in rows
        ):
            raise ValidationError(f"Backup section {name} must be a list of objects")
        sections[name] = rows
    return BackupFile(
        schema_version=version,
        exported_at=str(payload.get("exported_at", "")),
        app=payload.get("app") or {},
        **sections,
    )


class BackupManager:
    """Exports and restores full snapshots of one Repository."""

    def __init__(self, repo: Repository):
        self.repo = repo

    # ── Export ──────────────────────────────────────────────────

    def export_backup(self) -> BackupFile:
        """Read every table in one consistent view."""
        with self.repo.store.transaction(*BACKUP_TABLES, readonly=True) as tx:
            sections = {name: tx.table(name).scan() for name in BACKUP_TABLES}
        return BackupFile(
            schema_version=SCHEMA_VERSION,
            exported_at=now_iso(),
            app={"name": APP_NAME, "build": APP_VERSION},
            **sections,
        )

    def export_to_file(self, path: str | Path) -> Path:
        """Write a backup as pretty-printed JSON and return its path."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        backup = self.export_backup()
        path.write_text(
            json.dumps(backup.to_dict(), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        logger.info(f"Backup written to {path}: {backup.counts}")
        return path

    # ── Restore ─────────────────────────────────────────────────

    @staticmethod
    def read_backup(path: str | Path) -> BackupFile:
        try:
            payload = json.loads(Path(path).read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Backup {path} is not valid JSON: {exc}") from exc
        return parse_backup(payload)

    def restore(self, backup: BackupFile) -> dict[str, int]:
        """Replace all data with the backup's records.

        Runs in one exclusive transaction: any invalid or conflicting
        record aborts the restore and the previous data stays in place.
        Recorded events are loaded as-is and no new events are added.
        Returns the number of records loaded per table.
        """
        repo = self.repo
        with repo.store.transaction(*BACKUP_TABLES) as tx:
            for name in BACKUP_TABLES:
                tx.table(name).clear()
            counts = {
                TABLE_JOBS: repo.jobs.load(tx, backup.jobs),
                TABLE_JOB_ITEMS: repo.job_items.load(tx, backup.job_items),
                TABLE_INVENTORY: repo.inventory.load(tx, backup.inventory_items),
                TABLE_EVENT_LOGS: repo.events.load(tx, backup.event_logs),
            }
        logger.info(f"Restored backup from {backup.exported_at}: {counts}")
        return counts

    def restore_from_file(self, path: str | Path) -> dict[str, int]:
        return self.restore(self.read_backup(path))
