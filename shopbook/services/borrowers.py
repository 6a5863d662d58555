from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from shopbook.db import Database, q, x
from shopbook.errors import BorrowerNotFound, InvalidInput, LedgerError, OrderNotFound
from shopbook.utils import iso_today, like_pattern

log = logging.getLogger(__name__)

ALREADY_LINKED_MESSAGE = "This order has already been linked to a borrower."


class LinkStatus(str, Enum):
    LINKED = "LINKED"
    ALREADY_LINKED = "ALREADY_LINKED"


@dataclass(frozen=True)
class LinkResult:
    status: LinkStatus
    snapshot_id: Optional[int] = None
    total_price: float = 0.0
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status is LinkStatus.LINKED


class _AlreadyLinked(Exception):
    """Internal signal: abort the link transaction without a failure."""


def _normalize_name(name: Optional[str]) -> str:
    s = str(name or "").strip()
    if not s:
        raise InvalidInput("Borrower name is required.")
    return s


def _amount(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise InvalidInput("Amount must be a number.")


def add_borrower(db: Database, name: str, date: Optional[str] = None, amount: float = 0.0) -> int:
    borrower_id = x(
        db,
        "INSERT INTO borrowers (name, date, amount) VALUES (?, ?, ?)",
        (_normalize_name(name), str(date or iso_today()), _amount(amount)),
    )
    log.info("Borrower #%s added", borrower_id)
    return int(borrower_id)


def get_borrower(db: Database, borrower_id: int) -> Optional[dict]:
    rows = q(db, "SELECT * FROM borrowers WHERE id = ?", (int(borrower_id),))
    return dict(rows[0]) if rows else None


def count_borrowers(db: Database, search: str = "") -> int:
    rows = q(
        db,
        "SELECT COUNT(*) AS n FROM borrowers WHERE name LIKE ? ESCAPE '\\'",
        (like_pattern(search),),
    )
    return int(rows[0]["n"])


def get_borrowers(
    db: Database,
    search: str = "",
    *,
    sort_by: str = "date",
    ascending: bool = False,
    limit: int = 10,
    offset: int = 0,
) -> list[dict]:
    column = "amount" if sort_by == "amount" else "date"
    direction = "ASC" if ascending else "DESC"
    rows = q(
        db,
        f"""
        SELECT * FROM borrowers
        WHERE name LIKE ? ESCAPE '\\'
        ORDER BY {column} {direction}, id {direction}
        LIMIT ? OFFSET ?
        """,
        (like_pattern(search), int(limit), int(offset)),
    )
    return [dict(r) for r in rows]


def link_order_to_borrower(db: Database, order_id: int, borrower_id: int) -> LinkResult:
    """
    Freeze a live order into the borrower's permanent history.

    Creates one orders_snapshots row (date copied from the order, total computed
    once), copies every product line into orders_snapshots_products, and adds
    the total to the borrower's amount, all in one transaction.

    An order can be linked exactly once: a second attempt returns an
    ALREADY_LINKED result instead of raising. A vanished order or borrower
    raises OrderNotFound / BorrowerNotFound.
    """
    return _link(db, int(order_id), borrower_id=int(borrower_id))


def link_order_to_new_borrower(
    db: Database, order_id: int, name: str, date: Optional[str] = None
) -> LinkResult:
    """Add a borrower and link the order to them; the borrower is kept only if the link happens."""
    return _link(db, int(order_id), new_borrower=(_normalize_name(name), date))


def _link(
    db: Database,
    oid: int,
    borrower_id: Optional[int] = None,
    new_borrower: Optional[tuple[str, Optional[str]]] = None,
) -> LinkResult:
    bid = borrower_id
    try:
        with db.transaction():
            if q(db, "SELECT 1 FROM orders_snapshots WHERE original_order_id = ? LIMIT 1", (oid,)):
                raise _AlreadyLinked()

            order = q(db, "SELECT created_at FROM orders WHERE id = ?", (oid,))
            if not order:
                raise OrderNotFound(oid)
            if new_borrower is not None:
                bid = add_borrower(db, *new_borrower)
            elif not q(db, "SELECT 1 FROM borrowers WHERE id = ?", (bid,)):
                raise BorrowerNotFound(bid)

            total = q(
                db,
                """
                SELECT COALESCE(SUM(quantity * price_sell), 0) AS total
                FROM products_snapshots
                WHERE order_id = ?
                """,
                (oid,),
            )[0]["total"]
            total_price = float(total or 0)

            snapshot_id = x(
                db,
                """
                INSERT INTO orders_snapshots (original_order_id, borrower_id, date, total_price)
                VALUES (?, ?, ?, ?)
                """,
                (oid, bid, order[0]["created_at"], total_price),
            )

            x(
                db,
                """
                INSERT INTO orders_snapshots_products (order_snapshot_id, name, price_sell, quantity)
                SELECT ?, COALESCE(name, ''), COALESCE(price_sell, 0), quantity
                FROM products_snapshots
                WHERE order_id = ?
                ORDER BY id
                """,
                (int(snapshot_id), oid),
            )

            x(db, "UPDATE borrowers SET amount = amount + ? WHERE id = ?", (total_price, bid))
    except _AlreadyLinked:
        log.info("Order #%s is already linked; borrower #%s unchanged", oid, bid)
        return LinkResult(status=LinkStatus.ALREADY_LINKED, error=ALREADY_LINKED_MESSAGE)
    except LedgerError as e:
        log.warning("Failed to link order #%s to borrower #%s: %s", oid, bid, e)
        raise

    log.info("Order #%s linked to borrower #%s (%.2f)", oid, bid, total_price)
    return LinkResult(status=LinkStatus.LINKED, snapshot_id=int(snapshot_id), total_price=total_price)


def get_snapshot_orders_for_borrower(db: Database, borrower_id: int) -> list[dict]:
    """Newest first; ``order_id`` is the snapshot id, products are the frozen lines."""
    snapshots = q(
        db,
        """
        SELECT id, original_order_id, date, total_price
        FROM orders_snapshots
        WHERE borrower_id = ?
        ORDER BY date DESC, id DESC
        """,
        (int(borrower_id),),
    )

    out: list[dict] = []
    for s in snapshots:
        products = q(
            db,
            """
            SELECT name, quantity, price_sell
            FROM orders_snapshots_products
            WHERE order_snapshot_id = ?
            ORDER BY id
            """,
            (int(s["id"]),),
        )
        out.append(
            {
                "order_id": int(s["id"]),
                "snapshot_id": int(s["id"]),
                "original_order_id": s["original_order_id"],
                "order_date": str(s["date"]),
                "total_price": float(s["total_price"]),
                "products": [dict(p) for p in products],
            }
        )
    return out


def update_borrower_amount_direct(db: Database, borrower_id: int, new_amount: float) -> None:
    """
    Overwrite the cached amount. No check against snapshot history: this is a
    manual correction, see recompute_borrower_amount for the derived value.
    """
    x(db, "UPDATE borrowers SET amount = ? WHERE id = ?", (_amount(new_amount), int(borrower_id)))
    log.info("Borrower #%s amount set to %s", borrower_id, new_amount)


def recompute_borrower_amount(db: Database, borrower_id: int) -> float:
    """Reset the cached amount to the sum of the borrower's snapshot totals."""
    bid = int(borrower_id)
    with db.transaction():
        if not q(db, "SELECT 1 FROM borrowers WHERE id = ?", (bid,)):
            raise BorrowerNotFound(bid)
        total = float(
            q(
                db,
                "SELECT COALESCE(SUM(total_price), 0) AS total FROM orders_snapshots WHERE borrower_id = ?",
                (bid,),
            )[0]["total"]
        )
        x(db, "UPDATE borrowers SET amount = ? WHERE id = ?", (total, bid))
    return total


def delete_borrower(db: Database, borrower_id: int) -> None:
    bid = int(borrower_id)
    with db.transaction():
        x(
            db,
            """
            DELETE FROM orders_snapshots_products
            WHERE order_snapshot_id IN (SELECT id FROM orders_snapshots WHERE borrower_id = ?)
            """,
            (bid,),
        )
        x(db, "DELETE FROM orders_snapshots WHERE borrower_id = ?", (bid,))
        x(db, "DELETE FROM borrowers WHERE id = ?", (bid,))
    log.info("Borrower #%s and their order history deleted", bid)
