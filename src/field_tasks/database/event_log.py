"""Append-only audit trail and the audit hook shared by repositories."""

from __future__ import annotations

import logging
from dataclasses import asdict, is_dataclass, replace
from datetime import datetime

from field_tasks.config import Config
from field_tasks.io.validators import validate_event, validate_stored
from field_tasks.utils.ids import new_id
from field_tasks.utils.time import format_iso, now_iso, to_iso

from .errors import AuditAppendError, StorageError, ValidationError
from .models import EventLog
from .schema import TABLE_EVENT_LOGS
from .store import EntityStore

logger = logging.getLogger(__name__)


def to_plain(value):
    """Make *value* JSON-friendly for an event's meta payload."""
    if is_dataclass(value) and not isinstance(value, type):
        return to_plain(asdict(value))
    if isinstance(value, dict):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_plain(v) for v in value]
    if isinstance(value, datetime):
        return format_iso(value)
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


class EventLogRepository:
    """Writes and reads the event_logs table.

    There is no update or delete: records are immutable
    once appended.
    """

    def __init__(self, store: EntityStore):
        self.store = store
        self._table = store.table(TABLE_EVENT_LOGS)

    def append(self, entity_type: str, entity_id: str, action: str,
               meta: dict | None = None) -> EventLog:
        """Record one audit event and return it."""
        errors = validate_event({
            "entity_type": entity_type,
            "entity_id": entity_id,
            "action": action,
            "meta": meta,
        })
        if errors:
            raise ValidationError("; ".join(errors))

        event = EventLog(
            id=new_id(),
            timestamp=now_iso(),
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            meta=to_plain(meta or {}),
        )
        self._table.add(event.to_dict())
        return event

    def list(self, entity_type: str | None = None,
             entity_id: str | None = None,
             limit: int | None = None) -> list[EventLog]:
        """Events, most recent first, capped at *limit*.

        Type + id uses the composite index, type alone the single-field
        index; anything else walks the timestamp index.
        """
        if limit is None:
            limit = Config.EVENT_LOG_LIMIT

        if entity_type and entity_id:
            rows = self._table.query(
                "entity_type+entity_id", (entity_type, entity_id),
                reverse=True, limit=limit,
            )
        elif entity_type:
            rows = self._table.query(
                "entity_type", entity_type, reverse=True, limit=limit,
            )
        elif entity_id:
            rows = [
                r for r in self._table.scan(order_by="timestamp", reverse=True)
                if r.get("entity_id") == entity_id
            ][:limit]
        else:
            rows = self._table.scan(
                order_by="timestamp", reverse=True, limit=limit,
            )
        return [EventLog.from_dict(r) for r in rows]

    def recent(self, limit: int = 20) -> list[EventLog]:
        """Shortcut: the most recent events across all entities."""
        return self.list(limit=limit)

    def for_entity(self, entity_type: str, entity_id: str,
                   limit: int = 20) -> list[EventLog]:
        """Shortcut: the history of one entity."""
        return self.list(entity_type=entity_type, entity_id=entity_id,
                         limit=limit)

    def load(self, tx, records: list[dict]) -> int:
        """Insert recorded events, in the given order, inside *tx*."""
        table = tx.table(TABLE_EVENT_LOGS)
        for i, record in enumerate(records):
            label = f"event_logs[{i}]"
            errors = (
                validate_stored(record, label, stamps=("timestamp",))
                + validate_event(record, label=label)
            )
            if errors:
                raise ValidationError("; ".join(errors))
            event = EventLog.from_dict(record)
            table.add(replace(
                event, timestamp=to_iso(event.timestamp)
            ).to_dict())
        return len(records)


class AuditedRepository:
    """Base for repositories whose every mutation leaves an audit event.

    Mutations are two-phase: the data write commits first, then the
    event is appended. If the append fails the change stays committed
    and the caller gets an AuditAppendError carrying the result.
    """

    entity_type = ""

    def __init__(self, store: EntityStore, events: EventLogRepository):
        self.store = store
        self.events = events

    def _audit(self, entity_id: str, action: str, meta: dict | None = None,
               entity=None, entity_type: str | None = None) -> EventLog:
        entity_type = entity_type or self.entity_type
        try:
            event = self.events.append(entity_type, entity_id, action, meta)
        except StorageError as exc:
            logger.error(
                f"Audit append failed for {action} on "
                f"{entity_type} {entity_id}: {exc}"
            )
            raise AuditAppendError(
                entity_type, entity_id, action, entity
            ) from exc
        logger.debug(f"{action} {entity_type} {entity_id}")
        return event

    @staticmethod
    def _check(errors: list[str]):
        if errors:
            raise ValidationError("; ".join(errors))
