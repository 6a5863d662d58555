from __future__ import annotations

import logging
import random
import time
from typing import Any, Optional

from shopbook.db import Database, q, x
from shopbook.errors import InvalidInput
from shopbook.utils import iso_now, like_pattern

log = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "price_buy", "price_sell", "stock", "stock_danger")
SORT_COLUMNS = ("id", "name", "price_buy", "price_sell", "stock", "created_at")


def generate_barcode() -> int:
    """
    18-digit numeric barcode: epoch milliseconds (13 digits) + 5 random digits.
    """
    millis = str(int(time.time() * 1000))
    suffix = f"{random.randint(0, 99_999):05d}"
    return int(millis + suffix)


def _normalize_name(name: Any) -> str:
    s = str(name or "").strip()
    if not s:
        raise InvalidInput("Product name is required.")
    return s


def _price(value: Any, label: str) -> float:
    try:
        p = float(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{label} must be a number.")
    if p < 0:
        raise InvalidInput(f"{label} must be >= 0.")
    return p


def _stock_or_none(value: Any, label: str) -> Optional[int]:
    # Empty / None means "not tracked".
    if value is None or value == "":
        return None
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{label} must be a whole number.")
    return n


def add_product(
    db: Database,
    name: str,
    price_buy: float,
    price_sell: float,
    stock: Optional[int] = None,
    stock_danger: Optional[int] = None,
) -> int:
    return add_product_with_id(db, generate_barcode(), name, price_buy, price_sell, stock, stock_danger)


def add_product_with_id(
    db: Database,
    product_id: int,
    name: str,
    price_buy: float,
    price_sell: float,
    stock: Optional[int] = None,
    stock_danger: Optional[int] = None,
) -> int:
    """Insert a product under an explicit (scanned) barcode."""
    try:
        pid = int(product_id)
    except (TypeError, ValueError):
        raise InvalidInput("Product ID must be a number.")

    x(
        db,
        """
        INSERT INTO products (id, name, price_buy, price_sell, stock, stock_danger, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            pid,
            _normalize_name(name),
            _price(price_buy, "Buy price"),
            _price(price_sell, "Sell price"),
            _stock_or_none(stock, "Stock"),
            _stock_or_none(stock_danger, "Stock danger level"),
            iso_now(),
        ),
    )
    log.info("Product %s added", pid)
    return pid


def update_product(db: Database, product_id: int, **updates: Any) -> None:
    unknown = sorted(set(updates) - set(UPDATABLE_FIELDS))
    if unknown:
        raise InvalidInput(f"Cannot update product field(s): {', '.join(unknown)}.")
    if not updates:
        return

    cleaners = {
        "name": _normalize_name,
        "price_buy": lambda v: _price(v, "Buy price"),
        "price_sell": lambda v: _price(v, "Sell price"),
        "stock": lambda v: _stock_or_none(v, "Stock"),
        "stock_danger": lambda v: _stock_or_none(v, "Stock danger level"),
    }
    # Column names come from the whitelist above, never from the caller.
    fields = [f for f in UPDATABLE_FIELDS if f in updates]
    assignments = ", ".join(f"{f} = ?" for f in fields)
    values = [cleaners[f](updates[f]) for f in fields]

    x(db, f"UPDATE products SET {assignments} WHERE id = ?", (*values, int(product_id)))


def delete_product(db: Database, product_id: int) -> None:
    # Snapshots keep their product_id as a dangling weak reference.
    x(db, "DELETE FROM products WHERE id = ?", (int(product_id),))
    log.info("Product %s deleted", product_id)


def get_product(db: Database, product_id: int) -> Optional[dict]:
    rows = q(db, "SELECT * FROM products WHERE id = ?", (int(product_id),))
    return dict(rows[0]) if rows else None


def list_products(
    db: Database,
    *,
    sort_by: str = "created_at",
    ascending: bool = False,
    limit: int = 100,
    offset: int = 0,
    low_stock_only: bool = False,
) -> list[dict]:
    if sort_by not in SORT_COLUMNS:
        sort_by = "created_at"
    direction = "ASC" if ascending else "DESC"

    where = ""
    if low_stock_only:
        where = "WHERE stock IS NOT NULL AND stock_danger IS NOT NULL AND stock < stock_danger"

    rows = q(
        db,
        f"""
        SELECT * FROM products
        {where}
        ORDER BY {sort_by} {direction}, id {direction}
        LIMIT ? OFFSET ?
        """,
        (int(limit), int(offset)),
    )
    return [dict(r) for r in rows]


def search_products(
    db: Database,
    keyword: str,
    *,
    sort_by: str = "name",
    ascending: bool = True,
    limit: int = 100,
    offset: int = 0,
) -> list[dict]:
    """Substring match on the name or on the barcode as text."""
    if sort_by not in SORT_COLUMNS:
        sort_by = "name"
    direction = "ASC" if ascending else "DESC"
    pattern = like_pattern(keyword)
    rows = q(
        db,
        f"""
        SELECT * FROM products
        WHERE name LIKE ? ESCAPE '\\' OR CAST(id AS TEXT) LIKE ? ESCAPE '\\'
        ORDER BY {sort_by} {direction}, id {direction}
        LIMIT ? OFFSET ?
        """,
        (pattern, pattern, int(limit), int(offset)),
    )
    return [dict(r) for r in rows]


def count_products(db: Database, keyword: Optional[str] = None) -> int:
    if keyword:
        pattern = like_pattern(keyword)
        rows = q(
            db,
            """
            SELECT COUNT(*) AS n FROM products
            WHERE name LIKE ? ESCAPE '\\' OR CAST(id AS TEXT) LIKE ? ESCAPE '\\'
            """,
            (pattern, pattern),
        )
    else:
        rows = q(db, "SELECT COUNT(*) AS n FROM products")
    return int(rows[0]["n"])


def product_statistics(db: Database) -> dict:
    """Catalog-wide figures; sold quantities come from live order snapshots."""
    totals = q(
        db,
        """
        SELECT
          (SELECT COUNT(*) FROM products) AS total_products,
          (SELECT COALESCE(SUM(quantity), 0) FROM products_snapshots) AS total_quantity,
          (SELECT COALESCE(SUM((price_sell - price_buy) * quantity), 0) FROM products_snapshots) AS total_profit,
          (SELECT COALESCE(SUM(stock * price_buy), 0) FROM products) AS stock_value_buy,
          (SELECT COALESCE(SUM(stock * price_sell), 0) FROM products) AS stock_value_sell
        """,
    )[0]

    most = q(
        db,
        """
        SELECT name, SUM(quantity) AS total FROM products_snapshots
        GROUP BY name ORDER BY total DESC, name LIMIT 1
        """,
    )
    least = q(
        db,
        """
        SELECT name, SUM(quantity) AS total FROM products_snapshots
        GROUP BY name HAVING total > 0 ORDER BY total ASC, name LIMIT 1
        """,
    )
    top = q(
        db,
        """
        SELECT name, SUM(quantity * price_sell) AS revenue FROM products_snapshots
        GROUP BY name ORDER BY revenue DESC, name LIMIT 1
        """,
    )

    def _pair(rows, col):
        return (str(rows[0]["name"]), rows[0][col]) if rows else ("N/A", 0)

    return {
        "total_products": int(totals["total_products"]),
        "total_quantity": int(totals["total_quantity"]),
        "most_sold": _pair(most, "total"),
        "least_sold": _pair(least, "total"),
        "top_revenue": _pair(top, "revenue"),
        "total_profit": float(totals["total_profit"]),
        "stock_value_buy": float(totals["stock_value_buy"]),
        "stock_value_sell": float(totals["stock_value_sell"]),
    }


# -------------------------
# Stock access for the order ledger
# -------------------------

def product_for_sale(db: Database, product_id: int):
    """Live name, prices and stock of a product, or None."""
    rows = q(
        db,
        "SELECT id, name, price_buy, price_sell, stock FROM products WHERE id = ?",
        (int(product_id),),
    )
    return rows[0] if rows else None


def adjust_stock(db: Database, product_id: int, delta: int) -> None:
    # Untracked (NULL) stock and missing products are left alone.
    x(
        db,
        "UPDATE products SET stock = stock + ? WHERE id = ? AND stock IS NOT NULL",
        (int(delta), int(product_id)),
    )
