"""Band, Album and Song documents tracked through the generation pipeline."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from bandgen.models.band_profile import BandProfile
from bandgen.models.status import (
    AlbumStatus,
    BandStatus,
    RecordType,
    SongStatus,
    check_transition,
    failure_status,
    is_in_flight,
    is_terminal,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def truncate(text: str, limit: int, marker: str = "...") -> str:
    """Cut ``text`` to at most ``limit`` characters, ending with ``marker``."""
    if len(text) <= limit:
        return text
    return text[: max(limit - len(marker), 0)] + marker


class Record(BaseModel):
    """Fields shared by every record type.

    ``task_id`` is set exactly while the record sits in an in-flight stage;
    ``last_task_id`` keeps the handle of the most recent finished task.
    """

    model_config = ConfigDict(extra="ignore")

    record_type: ClassVar[RecordType]

    id: str
    status: str
    task_id: str | None = None
    last_task_id: str | None = None
    started_at: datetime | None = None
    last_checked_at: datetime | None = None
    attempts: int = 0
    error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @model_validator(mode="after")
    def _task_matches_status(self) -> "Record":
        in_flight = is_in_flight(self.record_type, self.status)
        if in_flight and not self.task_id:
            raise ValueError(f"{self.record_type.value} {self.id} is in flight without a task id")
        if not in_flight and self.task_id:
            raise ValueError(
                f"{self.record_type.value} {self.id} holds task {self.task_id} "
                f"outside an in-flight stage"
            )
        return self

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.record_type, self.status)

    @property
    def is_in_flight(self) -> bool:
        return is_in_flight(self.record_type, self.status)

    def transition(self, target: str, **fields: Any) -> dict[str, Any]:
        """Build the partial update that moves this record to ``target``.

        Leaving an in-flight stage clears ``task_id`` and keeps it as
        ``last_task_id``.
        """
        check_transition(self.record_type, self.status, target)
        update: dict[str, Any] = {"status": target, **fields}
        if not is_in_flight(self.record_type, target) and self.task_id:
            update["task_id"] = None
            update.setdefault("last_task_id", self.task_id)
        return update

    def failure(
        self, message: str, max_length: int = 500, target: str | None = None
    ) -> dict[str, Any]:
        """Build the partial update that moves this record to a failure state.

        ``target`` names the failed stage's state; by default it is the one
        matching the current status.
        """
        target = target or failure_status(self.record_type, self.status)
        return self.transition(target, error=truncate(message or "Unknown error", max_length))


class Band(Record):
    record_type: ClassVar[RecordType] = RecordType.BAND

    status: BandStatus = BandStatus.DRAFT
    user_id: str = "anonymous"
    user_prompt: str = ""
    band_name: str = ""
    primary_genre: str = ""
    origin: str = ""
    formation_year: int | None = None
    profile: BandProfile | None = None
    ai_instructions: str = ""
    album_id: str | None = None
    album_title: str = ""
    album_description: str = ""
    track_count: int = 0
    logo_prompt: str = ""
    album_cover_prompt: str = ""
    band_photo_prompt: str = ""
    logo_url: str = ""
    album_cover_url: str = ""
    band_photo_url: str = ""


class Album(Record):
    record_type: ClassVar[RecordType] = RecordType.ALBUM

    status: AlbumStatus = AlbumStatus.DRAFT
    band_id: str
    title: str = ""
    description: str = ""
    concept: str = ""
    track_count: int = 0
    ai_instructions: str = ""
    cover_prompt: str = ""
    cover_url: str = ""
    release_year: int | None = None
    user_prompt: str = ""


class Song(Record):
    record_type: ClassVar[RecordType] = RecordType.SONG

    status: SongStatus = SongStatus.PENDING
    band_id: str | None = None
    album_id: str | None = None
    title: str = ""
    track_number: int = Field(default=1, ge=1)
    description: str = ""
    ai_instructions: str = ""
    artist_description: str = ""
    lyrics: str = ""
    song_description: str = ""
    audio_prompt: str = ""
    audio_url: str = ""
    audio_duration: float | None = None
    audio_completed_at: datetime | None = None

    @property
    def has_lyrics(self) -> bool:
        return bool(self.lyrics and self.lyrics.strip())

    @property
    def has_audio(self) -> bool:
        return bool(self.audio_url and self.audio_url.strip())


RECORD_MODELS: dict[RecordType, type[Record]] = {
    RecordType.BAND: Band,
    RecordType.ALBUM: Album,
    RecordType.SONG: Song,
}


def model_for(record_type: RecordType | str) -> type[Record]:
    return RECORD_MODELS[RecordType(record_type)]
