from __future__ import annotations

from datetime import datetime, date, timezone


def iso_today() -> str:
    return date.today().isoformat()


def iso_now() -> str:
    # Use UTC ISO timestamps for consistency.
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def safe_div(n: float, d: float) -> float:
    return float(n) / float(d) if d else 0.0


def like_pattern(text: str | None) -> str:
    """Substring LIKE pattern; pair with ``ESCAPE '\\'`` in SQL."""
    s = str(text or "").strip()
    s = s.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{s}%"


def utc_today() -> date:
    # Order timestamps are stored in UTC, so day buckets are UTC days too.
    return datetime.now(timezone.utc).date()
