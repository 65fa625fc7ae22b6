"""Data models for the database layer."""

from dataclasses import asdict, dataclass, field, fields
from typing import Optional


def _from_dict(cls, data: dict):
    """Build *cls* from a stored dict, ignoring keys it does not declare."""
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in known})


def _coerce(cls, value):
    """Accept an instance, a plain dict or None for a nested value."""
    if value is None or isinstance(value, cls):
        return value
    if isinstance(value, dict):
        return _from_dict(cls, value)
    raise TypeError(f"Expected {cls.__name__} or dict, got {type(value).__name__}")


@dataclass
class JobSite:
    address: Optional[str] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    schedule_note: Optional[str] = None


@dataclass
class Job:
    id: str = ""
    title: str = ""
    reference: Optional[str] = None
    status: str = "PREP"        # PREP, EXEC, DONE
    priority: str = "NORMAL"    # NORMAL, HIGH, URGENT
    site: Optional[JobSite] = None
    sort_order: int = 0
    created_at: str = ""
    updated_at: str = ""
    archived_at: Optional[str] = None

    def __post_init__(self):
        self.site = _coerce(JobSite, self.site)

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    @property
    def search_text(self) -> str:
        return f"{self.title} {self.reference or ''}"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Job":
        return _from_dict(cls, data)


@dataclass
class Quantity:
    amount: float = 0
    unit: Optional[str] = None


@dataclass
class StoreInfo:
    name: Optional[str] = None
    reference: Optional[str] = None


@dataclass
class JobItem:
    id: str = ""
    job_id: str = ""
    type: str = "NOTE"          # NOTE, BUY, MATERIAL
    title: str = ""
    details: Optional[str] = None
    urgency: str = "NORMAL"     # NORMAL, URGENT
    state: str = "PENDING"      # PENDING, DONE
    sort_order: int = 0
    quantity: Optional[Quantity] = None
    store: Optional[StoreInfo] = None
    reminder_at: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    done_at: Optional[str] = None

    def __post_init__(self):
        self.quantity = _coerce(Quantity, self.quantity)
        self.store = _coerce(StoreInfo, self.store)

    @property
    def is_done(self) -> bool:
        return self.state == "DONE"

    @property
    def is_urgent(self) -> bool:
        return self.urgency == "URGENT"

    def is_due(self, now_iso: str) -> bool:
        """Pending with a reminder at or before *now_iso*."""
        return (
            not self.is_done
            and self.reminder_at is not None
            and self.reminder_at <= now_iso
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "JobItem":
        return _from_dict(cls, data)


@dataclass
class InventoryItem:
    id: str = ""
    name: str = ""
    name_key: str = ""          # normalize_text(name); unique
    level: str = "MISSING"      # HAVE, LOW, MISSING
    default_store: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @property
    def needs_restock(self) -> bool:
        return self.level != "HAVE"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "InventoryItem":
        item = _from_dict(cls, data)
        item.tags = list(item.tags or [])
        return item


@dataclass(frozen=True)
class EventLog:
    """Immutable audit trail entry, one per mutation."""
    id: str = ""
    timestamp: str = ""
    entity_type: str = ""       # JOB, JOB_ITEM, INVENTORY
    entity_id: str = ""
    action: str = ""            # e.g. JOB_CREATED, ITEM_DONE, INV_MERGED
    meta: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "EventLog":
        record = dict(data)
        record["meta"] = record.get("meta") or {}
        return _from_dict(cls, record)


@dataclass
class TodayEntry:
    item: JobItem
    job: Optional[Job] = None   # None when the parent job no longer exists


@dataclass
class TodaySnapshot:
    now: str
    urgent: list[TodayEntry] = field(default_factory=list)
    due: list[TodayEntry] = field(default_factory=list)


@dataclass
class BackupFile:
    """Full-store snapshot as written to and read from JSON."""
    schema_version: int
    exported_at: str
    app: dict = field(default_factory=dict)
    jobs: list[dict] = field(default_factory=list)
    job_items: list[dict] = field(default_factory=list)
    inventory_items: list[dict] = field(default_factory=list)
    event_logs: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "schema_version": self.schema_version,
            "exported_at": self.exported_at,
            "app": dict(self.app),
            "data": {
                "jobs": self.jobs,
                "job_items": self.job_items,
                "inventory_items": self.inventory_items,
                "event_logs": self.event_logs,
            },
        }

    @property
    def counts(self) -> dict[str, int]:
        return {
            "jobs": len(self.jobs),
            "job_items": len(self.job_items),
            "inventory_items": len(self.inventory_items),
            "event_logs": len(self.event_logs),
        }
