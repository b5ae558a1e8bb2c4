"""Fixtures for isolated database module tests.

temp_db / customer / outsource come from tests/conftest.py.
"""
from datetime import date

import pytest

from database.base_crud import BaseCRUD


@pytest.fixture
def db_conn(temp_db):
    """Yield a DatabaseConnection from the temp_db manager."""
    return temp_db.conn


@pytest.fixture
def base_crud(db_conn):
    """Yield a BaseCRUD instance."""
    return BaseCRUD(db_conn)


@pytest.fixture
def sample_date():
    """Stable date value for deterministic tests."""
    return date(2025, 3, 5)


def make_sale(db, customer_id, sale_date="2025-03-05", amount=10000, **extra):
    """Helper: save a sale and return its ID."""
    data = {
        "customer_id": customer_id,
        "sale_date": sale_date,
        "total_amount": amount,
    }
    data.update(extra)
    return db.save_sale(data)
