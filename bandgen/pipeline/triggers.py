"""Stage triggers resolved once at the boundary.

A stage can be started either by a direct call naming a record id, or by a
document-change event carrying the whole record. Both are turned into a
tagged value here so the orchestrator never inspects request shape.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from bandgen.config import CollectionConfig
from bandgen.errors import StageRejected
from bandgen.models.status import RecordType


@dataclass(frozen=True)
class DirectRequest:
    record_id: str
    record_type: RecordType = RecordType.SONG


@dataclass(frozen=True)
class ReactiveEvent:
    record: dict[str, Any]
    record_type: RecordType = RecordType.SONG

    @property
    def record_id(self) -> str:
        return str(self.record["$id"])


Trigger = Union[DirectRequest, ReactiveEvent]


def _event_type(collection: Any, collections: CollectionConfig) -> RecordType:
    if not collection or collection == collections.songs:
        return RecordType.SONG
    if collection == collections.bands:
        return RecordType.BAND
    raise StageRejected(f"No stage runs for documents in collection {collection!r}")


def resolve_trigger(body: Any, collections: CollectionConfig | None = None) -> Trigger:
    """Turn a raw request body into a DirectRequest or ReactiveEvent.

    Document events carry ``$id`` and optionally ``$collection``, matched
    against the configured collection names (songs when absent). Direct
    calls carry ``songId`` or ``bandId``.
    """
    if not isinstance(body, dict):
        raise StageRejected("Request body must be a JSON object")

    if body.get("$id"):
        record_type = _event_type(body.get("$collection"), collections or CollectionConfig())
        return ReactiveEvent(record=body, record_type=record_type)
    if body.get("songId"):
        return DirectRequest(record_id=str(body["songId"]), record_type=RecordType.SONG)
    if body.get("bandId"):
        return DirectRequest(record_id=str(body["bandId"]), record_type=RecordType.BAND)
    raise StageRejected("songId or bandId is required")
