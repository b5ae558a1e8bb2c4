"""Shared fixtures: a fresh temp-file SQLite DatabaseManager per test."""
import os
import shutil
import tempfile

import pytest

from database import DatabaseManager


@pytest.fixture
def temp_db():
    """Yield a fresh DatabaseManager bound to a temp SQLite database."""
    temp_dir = tempfile.mkdtemp(prefix="db-tests-")
    db_path = os.path.join(temp_dir, "test.db")
    manager = DatabaseManager(database_url=f"sqlite:///{db_path}")
    manager.create_tables()

    try:
        yield manager
    finally:
        manager.close()
        shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def customer(temp_db):
    return temp_db.customers.create("山田商事", contact_person="山田")


@pytest.fixture
def outsource(temp_db):
    return temp_db.outsources.create("田中デザイン", email="tanaka@example.com")
