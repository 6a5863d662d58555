from __future__ import annotations

import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

import streamlit as st

from shopbook.errors import NotInitialized, StorageFailure
from shopbook.schema import SCHEMA_SQL

log = logging.getLogger(__name__)


def _connect() -> sqlite3.Connection:
    # isolation_level=None: BEGIN/COMMIT/ROLLBACK are issued explicitly by Database.
    conn = sqlite3.connect(":memory:", check_same_thread=False, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


class Database:
    """
    The one storage-engine handle of the application.

    Data lives in an in-memory sqlite database. After every committed write the
    whole database is serialized and written to ``path`` (when one is set), so a
    crash between commit and persist loses at most the last operation.

    All access goes through a re-entrant lock: Streamlit runs scripts on several
    threads, and the ledgers assume a single writer.
    """

    def __init__(self, conn: sqlite3.Connection, path: Optional[Path] = None):
        self._conn: Optional[sqlite3.Connection] = conn
        self.path = Path(path) if path is not None else None
        self._lock = threading.RLock()
        self._in_tx = False
        self._saved_changes = conn.total_changes

    @classmethod
    def open(cls, path: Path | str) -> "Database":
        path = Path(path)
        conn = _connect()
        db = cls(conn, path)
        if path.exists():
            try:
                conn.deserialize(path.read_bytes())
            except (OSError, sqlite3.Error) as e:
                conn.close()
                raise StorageFailure(f"Could not load database from {path}: {e}") from e
            log.info("Database loaded from %s", path)
        else:
            log.info("New database initialized at %s", path)
        try:
            ensure_schema(db)
        except StorageFailure:
            db.close()
            raise
        db.save()
        return db

    @classmethod
    def in_memory(cls) -> "Database":
        db = cls(_connect())
        ensure_schema(db)
        return db

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise NotInitialized()
        return self._conn

    @property
    def in_transaction(self) -> bool:
        return self._in_tx

    def _cursor(self, sql: str, params: Iterable[Any]) -> sqlite3.Cursor:
        try:
            return self.conn.execute(sql, tuple(params))
        except (sqlite3.Error, OverflowError) as e:
            raise StorageFailure(str(e)) from e

    def execute(self, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._cursor(sql, params)
            rows = cur.fetchall()
            cur.close()
        return rows

    def run(self, sql: str, params: Iterable[Any] = ()) -> int:
        """Execute a write statement and return the last inserted rowid."""
        with self._lock:
            cur = self._cursor(sql, params)
            last = cur.lastrowid
            cur.close()
        return int(last or 0)

    # ---- transaction control ----

    def begin(self) -> None:
        if self._in_tx:
            raise StorageFailure("Nested transactions are not supported.")
        self._cursor("BEGIN;", ()).close()
        self._in_tx = True

    def commit(self) -> None:
        try:
            self._cursor("COMMIT;", ()).close()
        except StorageFailure:
            self.rollback()
            raise
        self._in_tx = False
        self.persist()

    def rollback(self) -> None:
        self._in_tx = False
        # sqlite may already have rolled back on its own (e.g. SQLITE_FULL).
        if self.conn.in_transaction:
            self._cursor("ROLLBACK;", ()).close()

    @contextmanager
    def transaction(self) -> Iterator["Database"]:
        """
        BEGIN ... COMMIT around the block. Any exception (interrupts and
        Streamlit reruns included) rolls everything back and propagates, so
        partial writes are never committed and the handle stays usable.
        """
        with self._lock:
            self.begin()
            try:
                yield self
            except BaseException as e:
                self.rollback()
                log.debug("Transaction rolled back: %r", e)
                if isinstance(e, sqlite3.Error):
                    raise StorageFailure(str(e)) from e
                raise
            self.commit()

    # ---- whole-database serialization ----

    def export_binary(self) -> bytes:
        with self._lock:
            if self._in_tx:
                raise StorageFailure("Cannot export while a transaction is open.")
            return self.conn.serialize()

    def load_binary(self, data: bytes) -> None:
        """Replace the whole database; the previous one is kept if ``data`` is unusable."""
        with self._lock:
            if self._in_tx:
                raise StorageFailure("Cannot replace the database while a transaction is open.")
            previous = self.conn.serialize()
            try:
                self.conn.deserialize(bytes(data))
                if not table_names(self):
                    raise StorageFailure("No valid tables found in the database.")
                ensure_schema(self)
            except (sqlite3.Error, StorageFailure) as e:
                self.conn.deserialize(previous)
                if isinstance(e, StorageFailure):
                    raise
                raise StorageFailure(str(e)) from e
            log.info("Database replaced from a %d byte image", len(data))
            self.save()

    def save(self) -> None:
        if self.path is None or self._in_tx:
            return
        data = self.export_binary()
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            os.replace(tmp, self.path)
        except OSError as e:
            raise StorageFailure(f"Could not persist database to {self.path}: {e}") from e
        self._saved_changes = self.conn.total_changes
        log.debug("Database saved to %s (%d bytes)", self.path, len(data))

    def persist(self) -> None:
        """
        Save after a committed write. The commit already happened, so a failed
        write is logged rather than raised.
        """
        if self.conn.total_changes == self._saved_changes:
            return
        try:
            self.save()
        except StorageFailure:
            log.exception("Persist after commit failed; in-memory data is intact")

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


@st.cache_resource
def get_db(db_path: Path) -> Database:
    return Database.open(db_path)


def table_names(db: Database) -> list[str]:
    rows = q(db, "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'")
    return [str(r["name"]) for r in rows]


def _table_exists(db: Database, table: str) -> bool:
    return table in table_names(db)


def ensure_schema(db: Database) -> None:
    # Create base schema (for new installs)
    with db._lock:
        try:
            db.conn.executescript(SCHEMA_SQL)
        except sqlite3.Error as e:
            raise StorageFailure(str(e)) from e

    # ---- migrations for existing installs ----
    # Old images carry a products_orders link table that nothing reads anymore;
    # its rows duplicate products_snapshots and its FK blocks order deletion.
    if _table_exists(db, "products_orders"):
        db.run("DROP TABLE products_orders;")


def q(db: Database, sql: str, params: Iterable[Any] = ()) -> list[sqlite3.Row]:
    return db.execute(sql, params)


def x(db: Database, sql: str, params: Iterable[Any] = ()) -> int:
    last = db.run(sql, params)
    if not db.in_transaction:
        db.persist()
    return last
