"""Shared test fixtures."""

import pytest

from field_tasks.database.connection import DatabaseConnection
from field_tasks.database.repository import Repository
from field_tasks.database.schema import initialize_database


@pytest.fixture
def db_path(tmp_path):
    """Provide a temporary database path."""
    return tmp_path / "test.db"


@pytest.fixture
def db(db_path):
    """Provide an initialized database connection."""
    conn = DatabaseConnection(db_path)
    initialize_database(conn)
    return conn


@pytest.fixture
def repo(db):
    """Provide a repository with an initialized database."""
    return Repository(db)


@pytest.fixture
def job(repo):
    """A plain job to hang items off."""
    return repo.jobs.create("Kitchen rewire", reference="OT-1042")
