from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from shopbook.db import Database, q, x
from shopbook.errors import InvalidInput, StorageFailure

log = logging.getLogger(__name__)


def export_to_file(db: Database, path: Path | str) -> Path:
    """Write the whole database image to ``path``."""
    path = Path(path)
    data = db.export_binary()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    except OSError as e:
        raise StorageFailure(f"Could not export database to {path}: {e}") from e
    log.info("Database exported to %s (%d bytes)", path, len(data))
    return path


def import_from_bytes(db: Database, data: bytes) -> None:
    if not data:
        raise InvalidInput("The selected file is empty.")
    db.load_binary(data)


def import_from_file(db: Database, path: Path | str) -> None:
    """Replace the current database with the image stored at ``path``."""
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise StorageFailure(f"Could not read {path}: {e}") from e
    import_from_bytes(db, data)
    log.info("Database imported from %s", path)


def remember_import_id(db: Database, drive_id: str) -> None:
    drive_id = str(drive_id or "").strip()
    if not drive_id:
        raise InvalidInput("Import ID is required.")
    x(
        db,
        """
        INSERT INTO import_id_table (id, drive_id) VALUES (1, ?)
        ON CONFLICT(id) DO UPDATE SET drive_id = excluded.drive_id
        """,
        (drive_id,),
    )


def last_import_id(db: Database) -> Optional[str]:
    rows = q(db, "SELECT drive_id FROM import_id_table WHERE id = 1")
    return str(rows[0]["drive_id"]) if rows else None
