"""SQLite connection management with context manager."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path

from .errors import StorageError

_BEGIN_MODES = ("DEFERRED", "IMMEDIATE", "EXCLUSIVE")


class DatabaseConnection:
    """Manages SQLite connections for the local store.

    Every ``sqlite3.Error`` leaves this class as a ``StorageError`` with
    the original exception chained; nothing is retried.
    """

    def __init__(self, db_path: str | Path, timeout: float = 5.0):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open {self.db_path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def get_connection(self, begin: str | None = None):
        """Yield a connection that auto-commits or rolls back.

        ``begin`` opens an explicit transaction up front: ``"EXCLUSIVE"``
        locks the database for writers and readers until commit,
        ``"DEFERRED"`` gives a consistent read view.
        """
        conn = self._connect()
        try:
            if begin is not None:
                mode = begin.upper()
                if mode not in _BEGIN_MODES:
                    raise ValueError(f"Unknown transaction mode: {begin}")
                conn.execute(f"BEGIN {mode}")
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(str(exc)) from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

