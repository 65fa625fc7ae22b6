"""Database backup script — writes a timestamped JSON snapshot."""

import logging
import sys
from datetime import datetime
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from field_tasks.backup.backup_manager import BackupManager
from field_tasks.config import Config
from field_tasks.database.connection import DatabaseConnection
from field_tasks.database.repository import Repository
from field_tasks.database.schema import initialize_database

logger = logging.getLogger("db_backup")


def backup_database(db_path: Path | None = None,
                    backup_dir: Path | None = None,
                    keep: int | None = None) -> Path | None:
    """Export the database to the backup directory with a timestamp."""
    db_path = Path(db_path or Config.DATABASE_PATH)
    backup_dir = Path(backup_dir or Config.BACKUP_PATH)
    keep = Config.BACKUP_KEEP if keep is None else keep
    if keep < 1:
        raise ValueError("keep must be at least 1")

    if not db_path.exists():
        logger.warning(f"Database not found at {db_path}")
        return None

    db = DatabaseConnection(db_path)
    initialize_database(db)
    manager = BackupManager(Repository(db))

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    backup_file = manager.export_to_file(
        backup_dir / f"field_tasks_{timestamp}.json"
    )
    logger.info(f"Backup created: {backup_file}")

    # Keep only the newest backups
    backups = sorted(backup_dir.glob("field_tasks_*.json"), reverse=True)
    for old in backups[keep:]:
        old.unlink()
        logger.info(f"Removed old backup: {old.name}")
    return backup_file


if __name__ == "__main__":
    logging.basicConfig(
        level=Config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    backup_database()
