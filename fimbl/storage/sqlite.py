# fimbl/storage/sqlite.py
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Iterator, List, Optional

from fimbl.config import default_db_path
from fimbl.core.errors import StoreError
from fimbl.core.types import Attributes, Record
from fimbl.crypto.hashing import DIGEST_SIZE
from . import RecordStore

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_SECONDS = 30.0
PAGE_SIZE = 256

_COLUMNS = "path, digest, size, modified_ns, permissions, recorded_at"


def _row_to_record(row) -> Record:
    path, digest, size, modified_ns, permissions, recorded_at = row
    return Record(
        path=path,
        digest=bytes(digest),
        attributes=Attributes(size=size, modified_ns=modified_ns, permissions=permissions),
        recorded_at=recorded_at,
    )


class SQLiteStore(RecordStore):
    """SQLite persistent store for file baselines."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            db_path = default_db_path()

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = self.db_path.resolve()

        # connection is shared by the controller's worker threads
        self._lock = Lock()
        self._conn: Optional[sqlite3.Connection] = None
        self._connect()

    def _connect(self):
        try:
            self._conn = sqlite3.connect(
                str(self.db_path),
                isolation_level=None,
                timeout=BUSY_TIMEOUT_SECONDS,
                check_same_thread=False,
            )
        except sqlite3.Error as e:
            raise StoreError(f"cannot open store at {self.db_path}: {e}") from e
        try:
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._create_schema()
        except sqlite3.Error as e:
            self._conn.close()
            self._conn = None
            raise StoreError(f"cannot initialise store at {self.db_path}: {e}") from e
        logger.debug("Opened record store %s", self.db_path)

    def _create_schema(self):
        self.conn.execute(f"""
            CREATE TABLE IF NOT EXISTS records (
                path            TEXT    PRIMARY KEY,
                digest          BLOB    NOT NULL CHECK(length(digest) = {DIGEST_SIZE}),
                size            INTEGER NOT NULL,
                modified_ns     INTEGER NOT NULL,
                permissions     INTEGER NOT NULL,
                recorded_at     TEXT    NOT NULL
            )
        """)

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Store connection is closed")
        return self._conn

    @contextmanager
    def _guard(self, action: str):
        """Serialize access to the connection and map driver errors to StoreError."""
        with self._lock:
            conn = self.conn
            try:
                yield conn
            except sqlite3.Error as e:
                raise StoreError(f"store {action} failed ({self.db_path}): {e}") from e

    def get(self, path: str) -> Optional[Record]:
        with self._guard("read") as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM records WHERE path = ?", (path,)
            ).fetchone()
        return _row_to_record(row) if row else None

    def put(self, record: Record) -> None:
        if len(record.digest) != DIGEST_SIZE:
            raise ValueError(f"digest must be {DIGEST_SIZE} bytes, got {len(record.digest)}")
        attrs = record.attributes
        # single statement in autocommit mode: old row or new row, never a mix
        with self._guard("write") as conn:
            conn.execute(f"""
                INSERT INTO records ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(path) DO UPDATE SET
                    digest = excluded.digest,
                    size = excluded.size,
                    modified_ns = excluded.modified_ns,
                    permissions = excluded.permissions,
                    recorded_at = excluded.recorded_at
            """, (
                record.path, record.digest, attrs.size, attrs.modified_ns,
                attrs.permissions, record.recorded_at,
            ))

    def delete(self, path: str) -> bool:
        with self._guard("delete") as conn:
            cursor = conn.execute("DELETE FROM records WHERE path = ?", (path,))
        return cursor.rowcount > 0

    def _page_after(self, last: Optional[str]) -> List[Record]:
        with self._guard("read") as conn:
            if last is None:
                rows = conn.execute(
                    f"SELECT {_COLUMNS} FROM records ORDER BY path ASC LIMIT ?",
                    (PAGE_SIZE,),
                ).fetchall()
            else:
                rows = conn.execute(
                    f"SELECT {_COLUMNS} FROM records WHERE path > ? ORDER BY path ASC LIMIT ?",
                    (last, PAGE_SIZE),
                ).fetchall()
        return [_row_to_record(r) for r in rows]

    def iterate(self) -> Iterator[Record]:
        # Keyset pagination: no cursor stays open between pages, so other
        # calls on this connection can interleave with the iteration.
        last = None
        while True:
            page = self._page_after(last)
            if not page:
                return
            yield from page
            last = page[-1].path

    def count(self) -> int:
        with self._guard("read") as conn:
            return conn.execute("SELECT COUNT(*) FROM records").fetchone()[0]

    def close(self) -> None:
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None
                logger.debug("Closed record store %s", self.db_path)
