"""Repository layer — wires every entity repository to one store."""

from field_tasks.utils.time import SortOrderSequence

from .connection import DatabaseConnection
from .event_log import EventLogRepository
from .inventory import InventoryRepository
from .job_items import JobItemRepository
from .jobs import JobRepository
from .store import EntityStore
from .today import TodayRepository


class Repository:
    """Provides all data operations for the application.

    One EntityStore is built from the given connection and injected
    into each repository; there is no process-wide store handle.
    """

    def __init__(self, db: DatabaseConnection):
        self.db = db
        self.store = EntityStore(db)
        sort_orders = SortOrderSequence()

        self.events = EventLogRepository(self.store)
        self.jobs = JobRepository(self.store, self.events, sort_orders)
        self.job_items = JobItemRepository(self.store, self.events, sort_orders)
        self.inventory = InventoryRepository(
            self.store, self.events, self.job_items
        )
        self.today = TodayRepository(self.store)
