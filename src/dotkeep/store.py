"""
Store handle and content-addressed blob store.

Both the blobs and the snapshot index live in one SQLite database,
``<home>/snapshots.db``, journaled with WAL so a killed process never
corrupts rows that were already committed. The file is owner-only.

Open one ``Store`` per command invocation and pass it to the
components that need it:

    with Store.open(home) as store:
        index = SnapshotIndex(store)
        ...
"""

from __future__ import annotations

import hashlib
import logging
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .errors import BlobNotFound, IoFailure
from .paths import PRIVATE_FILE_MODE, ensure_private_dir

logger = logging.getLogger("dotkeep.store")

DB_FILENAME = "snapshots.db"

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS blobs (
    hash        TEXT PRIMARY KEY,
    content     BLOB    NOT NULL,
    size        INTEGER NOT NULL,
    created_at  TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS snapshots (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    tool          TEXT NOT NULL,
    file_path     TEXT NOT NULL,
    content_hash  TEXT NOT NULL REFERENCES blobs(hash),
    message       TEXT,
    created_at    TEXT NOT NULL,
    UNIQUE(tool, file_path, content_hash)
);

CREATE INDEX IF NOT EXISTS idx_snapshots_tool ON snapshots(tool);
CREATE INDEX IF NOT EXISTS idx_snapshots_path ON snapshots(tool, file_path);
"""


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class Store:
    """An open handle on the dotkeep database.

    Args:
        conn: Open SQLite connection with the schema applied.
        path: Database file path.
    """

    def __init__(self, conn: sqlite3.Connection, path: Path) -> None:
        self.conn = conn
        self.path = path

    @classmethod
    def open(cls, home: Path) -> "Store":
        """Open (or create) ``<home>/snapshots.db``.

        Raises:
            IoFailure: If the database cannot be created or opened.
        """
        db_path = home / DB_FILENAME
        conn: Optional[sqlite3.Connection] = None
        try:
            ensure_private_dir(home)
            if not db_path.exists():
                # Create the file owner-only before SQLite touches it.
                fd = os.open(db_path, os.O_CREAT | os.O_WRONLY, PRIVATE_FILE_MODE)
                os.close(fd)
            os.chmod(db_path, PRIVATE_FILE_MODE)
            conn = sqlite3.connect(str(db_path), timeout=10)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            conn.executescript(_SCHEMA_SQL)
            conn.commit()
        except (OSError, sqlite3.Error) as exc:
            if conn is not None:
                conn.close()
            raise IoFailure(str(db_path), str(exc)) from exc

        logger.debug("Opened store at %s", db_path)
        return cls(conn, db_path)

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class ContentStore:
    """Append-only, deduplicated blob storage keyed by SHA-256.

    There is no delete: identical bytes are stored once and live
    forever. ``put`` does not commit on its own so a caller can make a
    blob and the row that references it a single transaction.
    """

    def __init__(self, store: Store) -> None:
        self.store = store

    def put(self, data: bytes, commit: bool = True) -> str:
        """Store ``data`` if new and return its digest."""
        digest = sha256_hex(data)
        cur = self.store.conn.execute(
            "INSERT OR IGNORE INTO blobs (hash, content, size, created_at) VALUES (?, ?, ?, ?)",
            (digest, sqlite3.Binary(data), len(data), now_iso()),
        )
        if cur.rowcount:
            logger.debug("Stored blob %s (%d bytes)", digest[:12], len(data))
        if commit:
            self.store.conn.commit()
        return digest

    def get(self, digest: str) -> bytes:
        """Fetch a blob.

        Raises:
            BlobNotFound: If no blob has that digest.
        """
        row = self.store.conn.execute(
            "SELECT content FROM blobs WHERE hash = ?", (digest,)
        ).fetchone()
        if row is None:
            raise BlobNotFound(digest)
        return bytes(row["content"])

    def exists(self, digest: str) -> bool:
        row = self.store.conn.execute(
            "SELECT 1 FROM blobs WHERE hash = ?", (digest,)
        ).fetchone()
        return row is not None

    def count(self) -> int:
        return self.store.conn.execute("SELECT COUNT(*) FROM blobs").fetchone()[0]

    def size_of(self, digest: str) -> Optional[int]:
        row = self.store.conn.execute(
            "SELECT size FROM blobs WHERE hash = ?", (digest,)
        ).fetchone()
        return row["size"] if row else None
