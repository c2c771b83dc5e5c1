"""Credential persistence backends."""

from __future__ import annotations

import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from chataddon.models import CredentialRecord

SCHEMA_VERSION = 1


class CredentialStore(ABC):
    """get/put/delete of credential records keyed by installation id."""

    @abstractmethod
    def get(self, installation_id: str) -> CredentialRecord | None:
        """Return the stored record, or None."""

    @abstractmethod
    def put(self, installation_id: str, record: CredentialRecord) -> None:
        """Store a record, replacing any previous one for the id."""

    @abstractmethod
    def delete(self, installation_id: str) -> None:
        """Remove the record; unknown ids are ignored."""


class MemoryCredentialStore(CredentialStore):
    """Process-local store, lost on restart."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, CredentialRecord] = {}

    def get(self, installation_id: str) -> CredentialRecord | None:
        with self._lock:
            return self._records.get(installation_id)

    def put(self, installation_id: str, record: CredentialRecord) -> None:
        with self._lock:
            self._records[installation_id] = record

    def delete(self, installation_id: str) -> None:
        with self._lock:
            self._records.pop(installation_id, None)


class SQLiteCredentialStore(CredentialStore):
    """SQLite-backed store with explicit schema management."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create or verify schema."""

        with self._connect() as conn:
            conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if row is None:
                self._create_schema(conn)
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            elif row["version"] != SCHEMA_VERSION:
                raise RuntimeError(
                    f"Unsupported schema version {row['version']} (expected {SCHEMA_VERSION})"
                )

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS credentials (
                installation_id TEXT PRIMARY KEY,
                client_id TEXT NOT NULL,
                client_secret TEXT NOT NULL,
                authorization_url TEXT NOT NULL,
                token_url TEXT NOT NULL,
                api_base_url TEXT NOT NULL,
                room_id INTEGER,
                group_id INTEGER,
                created_at TEXT NOT NULL
            );
            """
        )

    def get(self, installation_id: str) -> CredentialRecord | None:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT installation_id, client_id, client_secret, authorization_url,
                       token_url, api_base_url, room_id, group_id
                FROM credentials
                WHERE installation_id = ?
                """,
                (installation_id,),
            ).fetchone()
        return CredentialRecord(**dict(row)) if row else None

    def put(self, installation_id: str, record: CredentialRecord) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO credentials(
                    installation_id, client_id, client_secret, authorization_url,
                    token_url, api_base_url, room_id, group_id, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(installation_id) DO UPDATE SET
                    client_id=excluded.client_id,
                    client_secret=excluded.client_secret,
                    authorization_url=excluded.authorization_url,
                    token_url=excluded.token_url,
                    api_base_url=excluded.api_base_url,
                    room_id=excluded.room_id,
                    group_id=excluded.group_id,
                    created_at=excluded.created_at
                """,
                (
                    installation_id,
                    record.client_id,
                    record.client_secret,
                    record.authorization_url,
                    record.token_url,
                    record.api_base_url,
                    record.room_id,
                    record.group_id,
                    _utc_now_iso(),
                ),
            )

    def delete(self, installation_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM credentials WHERE installation_id = ?", (installation_id,))


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
