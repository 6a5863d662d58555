from __future__ import annotations

import random
from datetime import date, timedelta

from shopbook.db import Database, q
from shopbook.errors import InsufficientStock
from shopbook.services.borrowers import add_borrower, link_order_to_borrower
from shopbook.services.catalog import add_product_with_id
from shopbook.services.orders import OrderLine, place_order


# (barcode, name, price_buy, price_sell, stock, stock_danger); stock None = untracked
DEMO_PRODUCTS = [
    (6130000000011, "Milk 1L", 60.0, 75.0, 120, 20),
    (6130000000028, "Bread", 10.0, 15.0, 200, 30),
    (6130000000035, "Coffee 250g", 220.0, 290.0, 60, 10),
    (6130000000042, "Sugar 1kg", 85.0, 100.0, 60, 15),
    (6130000000059, "Olive Oil 1L", 650.0, 800.0, 40, 5),
    (6130000000066, "Phone Top-up", 95.0, 100.0, None, None),
]
DEMO_BORROWERS = ["Karim", "Amina", "Yacine"]

# Children before parents (FKs are enforced).
TABLES = [
    "orders_snapshots_products",
    "orders_snapshots",
    "borrowers",
    "products_snapshots",
    "orders",
    "products",
    "import_id_table",
]


def wipe_all(db: Database) -> None:
    # Keep schema, delete data; AUTOINCREMENT ids restart at 1.
    with db.transaction():
        for t in TABLES:
            db.run(f"DELETE FROM {t};")
        if q(db, "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'sqlite_sequence'"):
            db.run("DELETE FROM sqlite_sequence;")


def load_demo_data(db: Database, *, seed: int = 7) -> None:
    rng = random.Random(seed)

    existing = {int(r["id"]) for r in q(db, "SELECT id FROM products")}
    for pid, name, buy, sell, stock, danger in DEMO_PRODUCTS:
        if pid not in existing:
            add_product_with_id(db, pid, name, buy, sell, stock, danger)

    order_ids: list[int] = []
    for _ in range(8):
        picks = rng.sample(DEMO_PRODUCTS, k=rng.randint(1, 3))
        lines = [OrderLine(product_id=p[0], quantity=rng.randint(1, 3)) for p in picks]
        try:
            order_ids.append(place_order(db, lines))
        except InsufficientStock:
            # Repeated loads drain demo stock; skip what no longer fits.
            continue

    base = date.today() - timedelta(days=30)
    borrower_ids = [
        add_borrower(db, name, (base + timedelta(days=i * 7)).isoformat(), 0.0)
        for i, name in enumerate(DEMO_BORROWERS)
    ]

    # Put a few orders on credit.
    for order_id in order_ids[:3]:
        link_order_to_borrower(db, order_id, rng.choice(borrower_ids))
