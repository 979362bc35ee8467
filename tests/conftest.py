"""Pytest fixtures for SprintNotes tests."""

import tempfile
from pathlib import Path

import pytest

from sprintnotes.database.collab_repository import CollabRepository
from sprintnotes.database.repository import Repository
from sprintnotes.services.ordering import OrderingEngine


@pytest.fixture
def temp_db_path():
    """Provide a temporary database path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest.fixture
def repository(temp_db_path):
    """Provide a repository with a temporary database."""
    return Repository(f"sqlite:///{temp_db_path}")


@pytest.fixture
def collab_repository(temp_db_path):
    """Provide a collaboration store in a temporary database."""
    return CollabRepository(f"sqlite:///{temp_db_path.with_name('collab.db')}")


@pytest.fixture
def ordering(repository):
    """Provide an ordering engine over the temporary repository."""
    return OrderingEngine(repository)
