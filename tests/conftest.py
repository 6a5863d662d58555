"""
Pytest fixtures for shopbook tests.

Every test gets its own in-memory database.
"""

import pytest

from shopbook.db import Database
from shopbook.services.borrowers import add_borrower
from shopbook.services.catalog import add_product_with_id


@pytest.fixture
def db():
    database = Database.in_memory()
    yield database
    database.close()


@pytest.fixture
def stocked(db):
    """Three products: two tracked, one untracked."""
    add_product_with_id(db, 1, "Milk", 60.0, 75.0, stock=10, stock_danger=2)
    add_product_with_id(db, 2, "Coffee", 40.0, 50.0, stock=3, stock_danger=1)
    add_product_with_id(db, 3, "Top-up", 95.0, 100.0, stock=None)
    return db


@pytest.fixture
def borrower(db):
    return add_borrower(db, "Karim", "2026-01-01", 0.0)


def stock_of(db, product_id):
    return db.execute("SELECT stock FROM products WHERE id = ?", (product_id,))[0]["stock"]


def count_rows(db, table, where="1=1", params=()):
    return db.execute(f"SELECT COUNT(*) AS n FROM {table} WHERE {where}", params)[0]["n"]
