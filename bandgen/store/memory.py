"""In-process record store (tests, mock mode, single-shot CLI runs)."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from bandgen.errors import RecordNotFound
from bandgen.models.records import Record, model_for, utcnow
from bandgen.models.status import RecordType
from bandgen.store.base import Filter

log = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class InMemoryRecordStore:
    """Keeps JSON-mode documents in dicts, one per record type.

    Documents are validated on every write and copied on every read, so a
    caller holding a record never sees later writes mutate it.
    """

    def __init__(self):
        self.collections: dict[RecordType, dict[str, dict[str, Any]]] = {
            record_type: {} for record_type in RecordType
        }

    def _collection(self, record_type: RecordType | str) -> dict[str, dict[str, Any]]:
        return self.collections[RecordType(record_type)]

    async def get(self, record_type: RecordType, record_id: str) -> Record:
        doc = self._collection(record_type).get(record_id)
        if doc is None:
            raise RecordNotFound(RecordType(record_type).value, record_id)
        return model_for(record_type).model_validate(doc)

    async def create(self, record_type: RecordType, fields: dict[str, Any]) -> Record:
        now = utcnow()
        doc = {**fields, "id": fields.get("id") or uuid4().hex}
        doc.setdefault("created_at", now)
        doc["updated_at"] = now
        record = model_for(record_type).model_validate(doc)
        self._collection(record_type)[record.id] = record.model_dump(mode="json")
        log.debug("Created %s %s", RecordType(record_type).value, record.id)
        return record

    async def update(
        self, record_type: RecordType, record_id: str, fields: dict[str, Any]
    ) -> Record:
        collection = self._collection(record_type)
        doc = collection.get(record_id)
        if doc is None:
            raise RecordNotFound(RecordType(record_type).value, record_id)
        merged = {**doc, **fields, "id": record_id, "updated_at": utcnow()}
        record = model_for(record_type).model_validate(merged)
        collection[record_id] = record.model_dump(mode="json")
        return record

    async def list(
        self,
        record_type: RecordType,
        filters: list[Filter] | None = None,
        limit: int | None = None,
    ) -> list[Record]:
        model = model_for(record_type)
        records = [model.model_validate(doc) for doc in self._collection(record_type).values()]
        matched = [r for r in records if all(f.matches(r) for f in filters or [])]
        matched.sort(key=lambda r: r.created_at or _EPOCH)
        return matched[:limit] if limit is not None else matched
