from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

import pandas as pd

from shopbook.db import Database, q
from shopbook.errors import InvalidInput
from shopbook.utils import utc_today

ACCURACIES = ("daily", "3-day", "weekly", "monthly")


def dashboard_kpis(db: Database) -> dict:
    r = q(
        db,
        """
        SELECT
          (SELECT COALESCE(SUM(quantity * price_sell), 0) FROM products_snapshots) AS total_sales,
          (SELECT COALESCE(SUM(quantity * (price_sell - price_buy)), 0) FROM products_snapshots) AS total_profit,
          (SELECT COUNT(*) FROM orders) AS total_orders,
          (SELECT COALESCE(SUM(amount), 0) FROM borrowers) AS total_debt
        """,
    )[0]
    return {
        "total_sales": float(r["total_sales"]),
        "total_profit": float(r["total_profit"]),
        "total_orders": int(r["total_orders"]),
        "total_debt": float(r["total_debt"]),
    }


def daily_sales(db: Database, start: str | date, end: str | date) -> pd.DataFrame:
    """
    Sales and profit per UTC day between start and end (inclusive).
    Every day of the range is present; days without orders are 0.
    """
    start_s, end_s = str(start), str(end)
    rows = q(
        db,
        """
        SELECT date(created_at) AS day,
               SUM(quantity * price_sell) AS sales,
               SUM(quantity * (price_sell - price_buy)) AS profit
        FROM products_snapshots
        WHERE date(created_at) BETWEEN date(?) AND date(?)
        GROUP BY day
        ORDER BY day
        """,
        (start_s, end_s),
    )
    frame = pd.DataFrame([dict(r) for r in rows], columns=["day", "sales", "profit"])
    frame["day"] = pd.to_datetime(frame["day"])
    frame = frame.set_index("day")

    full = pd.date_range(start_s, end_s, freq="D", name="day")
    return frame.reindex(full).fillna(0.0).astype(float)


def _auto_accuracy(n_days: int) -> str:
    if n_days <= 45:
        return "daily"
    if n_days <= 180:
        return "3-day"
    if n_days <= 1000:
        return "weekly"
    return "monthly"


def _fmt(ts: pd.Timestamp) -> str:
    return ts.strftime("%Y-%m-%d")


def bucket_sales(frame: pd.DataFrame, accuracy: str = "auto") -> dict:
    """Aggregate a daily_sales frame into chart labels and series."""
    if accuracy == "auto":
        accuracy = _auto_accuracy(len(frame))
    if accuracy not in ACCURACIES:
        accuracy = "daily"

    labels: list[str] = []
    sales: list[float] = []
    profit: list[float] = []

    if accuracy == "daily":
        labels = [_fmt(d) for d in frame.index]
        sales = [float(v) for v in frame["sales"]]
        profit = [float(v) for v in frame["profit"]]

    elif accuracy == "3-day":
        # consecutive windows counted from the first day
        for i in range(0, len(frame), 3):
            chunk = frame.iloc[i : i + 3]
            first, last = chunk.index[0], chunk.index[-1]
            labels.append(_fmt(first) if len(chunk) == 1 else f"{_fmt(first)} → {_fmt(last)}")
            sales.append(float(chunk["sales"].sum()))
            profit.append(float(chunk["profit"].sum()))

    elif accuracy == "weekly":
        mondays = frame.index - pd.to_timedelta(frame.index.dayofweek, unit="D")
        grouped = frame.groupby(mondays).sum().sort_index()
        for monday, row in grouped.iterrows():
            labels.append(f"{_fmt(monday)} → {_fmt(monday + pd.Timedelta(days=6))}")
            sales.append(float(row["sales"]))
            profit.append(float(row["profit"]))

    else:
        grouped = frame.groupby(frame.index.to_period("M")).sum().sort_index()
        for period, row in grouped.iterrows():
            labels.append(str(period))
            sales.append(float(row["sales"]))
            profit.append(float(row["profit"]))

    return {"labels": labels, "sales": sales, "profit": profit, "accuracy": accuracy}


def sales_chart_data(
    db: Database,
    duration: str = "7",
    start: Optional[str] = None,
    end: Optional[str] = None,
    accuracy: str = "auto",
) -> dict:
    """
    duration: number of days ending today, "all" (first to last order day),
    or "custom" (start and end required).
    """
    if duration == "custom":
        if not start or not end:
            raise InvalidInput("A custom range needs both a start and an end date.")
        if str(start) > str(end):
            raise InvalidInput("Start date must be on or before end date.")
    elif duration == "all":
        r = q(db, "SELECT MIN(date(created_at)) AS lo, MAX(date(created_at)) AS hi FROM products_snapshots")[0]
        if r["lo"] is None or r["hi"] is None:
            return {"labels": [utc_today().isoformat()], "sales": [0.0], "profit": [0.0], "accuracy": "daily"}
        start, end = str(r["lo"]), str(r["hi"])
    else:
        try:
            days = int(duration)
        except (TypeError, ValueError):
            raise InvalidInput(f"Unknown duration: {duration!r}.")
        if days <= 0:
            raise InvalidInput("Duration must be at least one day.")
        today = utc_today()
        start, end = (today - timedelta(days=days - 1)).isoformat(), today.isoformat()

    return bucket_sales(daily_sales(db, start, end), accuracy)


def profit_margin(db: Database) -> dict:
    r = q(
        db,
        """
        SELECT COALESCE(SUM(quantity * (price_sell - price_buy)), 0) AS total_profit,
               COALESCE(SUM(quantity * price_buy), 0) AS total_cost
        FROM products_snapshots
        """,
    )[0]
    return {"total_profit": float(r["total_profit"]), "total_cost": float(r["total_cost"])}


def top_selling_products(db: Database, limit: int = 5) -> dict:
    rows = q(
        db,
        """
        SELECT name, SUM(quantity) AS total_sold
        FROM products_snapshots
        GROUP BY product_id, name
        ORDER BY total_sold DESC, name
        LIMIT ?
        """,
        (int(limit),),
    )
    return {"labels": [str(r["name"]) for r in rows], "data": [int(r["total_sold"]) for r in rows]}
