"""Document store over sqlite3: one JSON document per row, one collection per record type."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from bandgen.config import CollectionConfig
from bandgen.errors import RecordNotFound
from bandgen.models.records import Record, model_for, utcnow
from bandgen.models.status import RecordType
from bandgen.store.base import Filter

log = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

SCHEMA = """
PRAGMA journal_mode = WAL;

CREATE TABLE IF NOT EXISTS documents (
    collection TEXT NOT NULL,
    id TEXT NOT NULL,
    status TEXT NOT NULL,
    data TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (collection, id)
);

CREATE INDEX IF NOT EXISTS documents_status ON documents (collection, status);
"""


class SqliteRecordStore:
    """Persists records as JSON documents in a single sqlite file.

    Each call opens its own connection and runs in a worker thread, so the
    event loop is never blocked on disk I/O.
    """

    def __init__(self, path: str, collections: CollectionConfig | None = None):
        self.path = path
        self.collections = collections or CollectionConfig()
        self._init_db()

    def _collection(self, record_type: RecordType | str) -> str:
        return {
            RecordType.BAND: self.collections.bands,
            RecordType.ALBUM: self.collections.albums,
            RecordType.SONG: self.collections.songs,
        }[RecordType(record_type)]

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, check_same_thread=False, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextmanager
    def _db(self):
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            conn.executescript(SCHEMA)
            conn.commit()
        finally:
            conn.close()

    # ── sync implementations ────────────────────────────

    def _get_sync(self, record_type: RecordType, record_id: str) -> Record:
        with self._db() as conn:
            row = conn.execute(
                "SELECT data FROM documents WHERE collection=? AND id=?",
                (self._collection(record_type), record_id),
            ).fetchone()
        if not row:
            raise RecordNotFound(RecordType(record_type).value, record_id)
        return model_for(record_type).model_validate(json.loads(row["data"]))

    def _write(self, conn: sqlite3.Connection, record_type: RecordType, record: Record) -> None:
        doc = record.model_dump(mode="json")
        conn.execute(
            "INSERT OR REPLACE INTO documents (collection, id, status, data, created_at, updated_at)"
            " VALUES (?, ?, ?, ?, ?, ?)",
            (
                self._collection(record_type),
                record.id,
                doc["status"],
                json.dumps(doc),
                doc.get("created_at") or "",
                doc.get("updated_at") or "",
            ),
        )

    def _create_sync(self, record_type: RecordType, fields: dict[str, Any]) -> Record:
        now = utcnow()
        doc = {**fields, "id": fields.get("id") or uuid4().hex}
        doc.setdefault("created_at", now)
        doc["updated_at"] = now
        record = model_for(record_type).model_validate(doc)
        with self._db() as conn:
            self._write(conn, record_type, record)
        return record

    def _update_sync(
        self, record_type: RecordType, record_id: str, fields: dict[str, Any]
    ) -> Record:
        with self._db() as conn:
            row = conn.execute(
                "SELECT data FROM documents WHERE collection=? AND id=?",
                (self._collection(record_type), record_id),
            ).fetchone()
            if not row:
                raise RecordNotFound(RecordType(record_type).value, record_id)
            merged = {**json.loads(row["data"]), **fields, "id": record_id, "updated_at": utcnow()}
            record = model_for(record_type).model_validate(merged)
            self._write(conn, record_type, record)
        return record

    def _list_sync(
        self,
        record_type: RecordType,
        filters: list[Filter] | None,
        limit: int | None,
    ) -> list[Record]:
        filters = filters or []
        sql = "SELECT data FROM documents WHERE collection=?"
        params: list[Any] = [self._collection(record_type)]
        # status equality is indexed; every other clause is applied on the decoded record
        for f in filters:
            if f.field == "status" and f.op == "eq":
                sql += " AND status=?"
                params.append(getattr(f.value, "value", f.value))
        sql += " ORDER BY created_at ASC"
        with self._db() as conn:
            rows = conn.execute(sql, params).fetchall()
        model = model_for(record_type)
        records = [model.model_validate(json.loads(row["data"])) for row in rows]
        matched = [r for r in records if all(f.matches(r) for f in filters)]
        matched.sort(key=lambda r: r.created_at or _EPOCH)
        return matched[:limit] if limit is not None else matched

    # ── RecordStore ─────────────────────────────────────

    async def get(self, record_type: RecordType, record_id: str) -> Record:
        return await asyncio.to_thread(self._get_sync, record_type, record_id)

    async def create(self, record_type: RecordType, fields: dict[str, Any]) -> Record:
        record = await asyncio.to_thread(self._create_sync, record_type, fields)
        log.debug("Created %s %s in %s", RecordType(record_type).value, record.id, self.path)
        return record

    async def update(
        self, record_type: RecordType, record_id: str, fields: dict[str, Any]
    ) -> Record:
        return await asyncio.to_thread(self._update_sync, record_type, record_id, fields)

    async def list(
        self,
        record_type: RecordType,
        filters: list[Filter] | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        return await asyncio.to_thread(self._list_sync, record_type, filters, limit)
