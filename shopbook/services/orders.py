from __future__ import annotations

import logging
import math
import numbers
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from shopbook.db import Database, q, x
from shopbook.errors import InsufficientStock, InvalidInput, LedgerError, ProductNotFound
from shopbook.services.catalog import adjust_stock, product_for_sale
from shopbook.utils import iso_now, safe_div

log = logging.getLogger(__name__)

SORT_FIELDS = {
    "date": "o.created_at",
    "price_sell": "total_sell",
    "profit": "profit",
}


@dataclass(frozen=True)
class OrderLine:
    product_id: int
    quantity: int


def _to_line(item: Any) -> OrderLine:
    if isinstance(item, OrderLine):
        pid, qty = item.product_id, item.quantity
    elif isinstance(item, Mapping):
        pid, qty = item.get("product_id"), item.get("quantity")
    else:
        try:
            pid, qty = item
        except (TypeError, ValueError):
            raise InvalidInput(f"Invalid order line: {item!r}.")

    if pid is None:
        raise InvalidInput("Each order line needs a product_id.")
    if (
        isinstance(qty, bool)
        or not isinstance(qty, numbers.Real)
        or not math.isfinite(qty)
        or int(qty) != qty
        or int(qty) <= 0
    ):
        raise InvalidInput(f"Quantity for product {pid} must be a whole number > 0.")
    try:
        return OrderLine(product_id=int(pid), quantity=int(qty))
    except (TypeError, ValueError):
        raise InvalidInput(f"Invalid product_id: {pid!r}.")


def _normalize_lines(lines: Optional[Iterable[Any]]) -> list[OrderLine]:
    out = [_to_line(item) for item in (lines or [])]
    if not out:
        raise InvalidInput("Cannot create an empty order.")
    return out


# -------------------------
# Ledger writes
# -------------------------

def place_order(db: Database, lines: Iterable[Any]) -> int:
    """
    Create an order from ``lines`` ({product_id, quantity} mappings, OrderLine
    or (product_id, quantity) pairs).

    In one transaction: insert the order, snapshot each product's current name
    and prices per line, and decrement tracked stock. Lines for the same product
    are kept as separate snapshots. Any missing product or short stock aborts
    the whole order.
    """
    order_lines = _normalize_lines(lines)
    now = iso_now()

    try:
        with db.transaction():
            order_id = x(db, "INSERT INTO orders (created_at) VALUES (?)", (now,))

            for line in order_lines:
                product = product_for_sale(db, line.product_id)
                if product is None:
                    raise ProductNotFound(line.product_id)

                stock = product["stock"]
                if stock is not None and int(stock) < line.quantity:
                    raise InsufficientStock(str(product["name"]), int(stock), line.quantity)

                x(
                    db,
                    """
                    INSERT INTO products_snapshots (
                        order_id, product_id, name, price_buy, price_sell, quantity, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        int(order_id),
                        line.product_id,
                        product["name"],
                        product["price_buy"],
                        product["price_sell"],
                        line.quantity,
                        now,
                    ),
                )

                if stock is not None:
                    adjust_stock(db, line.product_id, -line.quantity)
    except LedgerError as e:
        log.warning("Failed to add order: %s", e)
        raise

    log.info("Order #%s created with %d line(s)", order_id, len(order_lines))
    return int(order_id)


def delete_order(db: Database, order_id: int) -> None:
    """
    Delete a live order and put its quantities back into stock.

    Borrower history (orders_snapshots / orders_snapshots_products) is never
    touched here, even when it was copied from this order.
    """
    oid = int(order_id)
    try:
        with db.transaction():
            lines = q(db, "SELECT product_id, quantity FROM products_snapshots WHERE order_id = ?", (oid,))
            for r in lines:
                if r["product_id"] is not None:
                    adjust_stock(db, int(r["product_id"]), int(r["quantity"]))

            x(db, "DELETE FROM products_snapshots WHERE order_id = ?", (oid,))
            x(db, "DELETE FROM orders WHERE id = ?", (oid,))
    except LedgerError as e:
        log.warning("Failed to delete order #%s: %s", oid, e)
        raise

    log.info("Order #%s deleted; borrower history kept", oid)


# -------------------------
# Read projections
# -------------------------

def get_order(db: Database, order_id: int) -> Optional[dict]:
    rows = q(db, "SELECT * FROM orders WHERE id = ?", (int(order_id),))
    return dict(rows[0]) if rows else None


def get_orders_with_total(
    db: Database,
    *,
    sort_by: str = "date",
    ascending: bool = False,
    limit: int = 5,
    offset: int = 0,
) -> list[dict]:
    order_by = SORT_FIELDS.get(sort_by, SORT_FIELDS["date"])
    direction = "ASC" if ascending else "DESC"

    rows = q(
        db,
        f"""
        SELECT
          o.id AS order_id,
          o.created_at,
          COALESCE(SUM(ps.price_sell * ps.quantity), 0) AS total_sell,
          COALESCE(SUM((ps.price_sell - ps.price_buy) * ps.quantity), 0) AS profit,
          EXISTS (
            SELECT 1 FROM orders_snapshots os WHERE os.original_order_id = o.id
          ) AS has_borrower
        FROM orders o
        LEFT JOIN products_snapshots ps ON ps.order_id = o.id
        GROUP BY o.id
        ORDER BY {order_by} {direction}, o.id {direction}
        LIMIT ? OFFSET ?
        """,
        (int(limit), int(offset)),
    )
    return [
        {
            "order_id": int(r["order_id"]),
            "created_at": str(r["created_at"]),
            "total_sell": float(r["total_sell"]),
            "profit": float(r["profit"]),
            "has_borrower": bool(r["has_borrower"]),
        }
        for r in rows
    ]


def get_products_in_order(db: Database, order_id: int, limit: int = 100, offset: int = 0) -> list[dict]:
    rows = q(
        db,
        """
        SELECT name, quantity, price_sell, (price_sell * quantity) AS subtotal_sell
        FROM products_snapshots
        WHERE order_id = ?
        ORDER BY id
        LIMIT ? OFFSET ?
        """,
        (int(order_id), int(limit), int(offset)),
    )
    return [dict(r) for r in rows]


def count_products_in_order(db: Database, order_id: int) -> int:
    return int(q(db, "SELECT COUNT(*) AS n FROM products_snapshots WHERE order_id = ?", (int(order_id),))[0]["n"])


def count_orders(db: Database) -> int:
    return int(q(db, "SELECT COUNT(*) AS n FROM orders")[0]["n"])


def get_order_statistics(db: Database) -> dict:
    totals = q(
        db,
        """
        SELECT
          COALESCE(SUM(price_sell * quantity), 0) AS total_sell,
          COALESCE(SUM(price_buy * quantity), 0) AS total_buy,
          COALESCE(SUM((price_sell - price_buy) * quantity), 0) AS total_profit
        FROM products_snapshots
        """,
    )[0]
    total_orders = count_orders(db)
    with_borrower = q(db, "SELECT COUNT(DISTINCT original_order_id) AS n FROM orders_snapshots")[0]["n"]
    largest = q(
        db,
        """
        SELECT order_id FROM products_snapshots
        GROUP BY order_id
        ORDER BY SUM(price_sell * quantity) DESC, order_id ASC
        LIMIT 1
        """,
    )

    total_profit = float(totals["total_profit"])
    return {
        "total_orders": total_orders,
        "total_sell": float(totals["total_sell"]),
        "total_buy": float(totals["total_buy"]),
        "total_profit": total_profit,
        "average_profit": safe_div(total_profit, total_orders),
        "with_borrower": int(with_borrower),
        "largest_order_id": int(largest[0]["order_id"]) if largest else None,
    }
