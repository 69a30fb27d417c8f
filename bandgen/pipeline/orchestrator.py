"""Pipeline orchestrator: sequences stages per record and fans out to children."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from bandgen.config import PipelineConfig
from bandgen.errors import StageRejected
from bandgen.models.records import Album, Band, Record, Song
from bandgen.models.results import (
    BandGenerationResult,
    BatchResult,
    PollError,
    PollOutcome,
    PollSummary,
    Stage,
    StageOutcome,
    StageResult,
)
from bandgen.models.status import (
    AlbumStatus,
    BandStatus,
    RecordType,
    SongStatus,
    is_failure,
    reset_status,
)
from bandgen.pipeline.executor import StageExecutor
from bandgen.pipeline.poller import StatusPoller
from bandgen.pipeline.triggers import Trigger
from bandgen.store.base import Filter, RecordStore

log = logging.getLogger(__name__)

PLACEHOLDER_BAND_NAME = "Generating..."


class PipelineOrchestrator:
    def __init__(
        self,
        store: RecordStore,
        executor: StageExecutor,
        poller: StatusPoller,
        config: PipelineConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.executor = executor
        self.poller = poller
        self.config = config
        self.sleep = sleep

    # ── Band creation ───────────────────────────────────

    async def create_band(
        self, prompt: str, user_id: str = "anonymous", use_mock: bool = False
    ) -> BandGenerationResult:
        """Create a band from a prompt and drive it to published.

        Profile is required: if it fails the band is failed and no album or
        songs are created. Images are optional and never fail the band.
        """
        if not use_mock and not (prompt or "").strip():
            raise StageRejected("A prompt is required to create a band")

        band = await self.store.create(
            RecordType.BAND,
            {
                "status": BandStatus.DRAFT,
                "user_id": user_id or "anonymous",
                "user_prompt": (prompt or "").strip(),
                "band_name": PLACEHOLDER_BAND_NAME,
            },
        )
        log.info("Created band %s for user %s", band.id, band.user_id)
        result, _ = await self._advance_band(band, use_mock)
        return result

    async def _advance_band(
        self, band: Band, use_mock: bool = False
    ) -> tuple[BandGenerationResult, StageResult]:
        stage = await self.executor.generate_profile(band, use_mock=use_mock)
        band = await self.store.get(RecordType.BAND, band.id)
        if stage.outcome == StageOutcome.FAILED:
            return self._band_result(band), stage

        child_errors: list[str] = []
        album, songs = None, []
        if band.status == BandStatus.PROFILE_COMPLETE and band.profile is not None:
            album, songs, child_errors = await self._create_children(band)
            stage = await self.executor.generate_images(band, album.id if album else None)
            band = await self.store.get(RecordType.BAND, band.id)
            if album is not None and band.status == BandStatus.PUBLISHED:
                error = await self._complete_album(album, band)
                if error:
                    child_errors.append(error)
        else:
            album = await self._find_album(band)
            songs = await self._songs_for(band.id)

        result = self._band_result(band, album, songs, child_errors)
        return result, stage

    @staticmethod
    def _band_result(
        band: Band,
        album: Album | None = None,
        songs: list[Song] | None = None,
        child_errors: list[str] | None = None,
    ) -> BandGenerationResult:
        return BandGenerationResult(
            band_id=band.id,
            status=band.status.value,
            band_name=band.band_name,
            album_id=album.id if album else band.album_id,
            album_title=album.title if album else band.album_title,
            song_ids=[s.id for s in songs or []],
            logo_url=band.logo_url,
            album_cover_url=band.album_cover_url,
            band_photo_url=band.band_photo_url,
            error=band.error,
            child_errors=child_errors or [],
        )

    async def _find_album(self, band: Band) -> Album | None:
        albums = await self.store.list(
            RecordType.ALBUM, [Filter.equal("band_id", band.id)], limit=1
        )
        return albums[0] if albums else None

    async def _songs_for(self, band_id: str) -> list[Song]:
        return await self.store.list(RecordType.SONG, [Filter.equal("band_id", band_id)])

    async def _create_children(self, band: Band) -> tuple[Album | None, list[Song], list[str]]:
        """Album plus one pending song per planned track.

        Each child is created independently. A failed create is reported and
        never undoes the siblings already written. Existing children are
        reused so re-running a band does not duplicate them.
        """
        profile = band.profile
        errors: list[str] = []

        album = await self._find_album(band)
        if album is None:
            try:
                album = await self.store.create(
                    RecordType.ALBUM,
                    {
                        "status": AlbumStatus.DRAFT,
                        "band_id": band.id,
                        "title": profile.album_concept.title,
                        "description": profile.album_concept.description,
                        "concept": profile.album_concept.narrative,
                        "track_count": len(profile.track_listing),
                        "ai_instructions": profile.album_ai_instructions,
                        "cover_prompt": band.album_cover_prompt,
                        "release_year": band.created_at.year if band.created_at else None,
                        "user_prompt": band.user_prompt,
                    },
                )
            except Exception as e:
                log.exception("Failed to create album for band %s", band.id)
                errors.append(f"album: {e}")

        songs = await self._songs_for(band.id)
        if songs:
            log.info("Band %s already has %d songs, not creating more", band.id, len(songs))
            return album, songs, errors

        artist = profile.ai_description or f"{profile.primary_genre}, {profile.vocal_style.type}"
        for number, track in enumerate(profile.track_listing, start=1):
            instructions = f"Theme: {track.theme}." if track.theme else ""
            if profile.album_ai_instructions:
                instructions = f"{instructions} {profile.album_ai_instructions}".strip()
            try:
                song = await self.store.create(
                    RecordType.SONG,
                    {
                        "status": SongStatus.PENDING,
                        "band_id": band.id,
                        "album_id": album.id if album else None,
                        "title": track.title,
                        "track_number": number,
                        "description": track.description,
                        "ai_instructions": instructions,
                        "artist_description": artist,
                    },
                )
            except Exception as e:
                log.exception("Failed to create track %d for band %s", number, band.id)
                errors.append(f"track {number} '{track.title}': {e}")
                continue
            songs.append(song)

        log.info("Created %d/%d songs for band %s", len(songs), len(profile.track_listing), band.id)
        return album, songs, errors

    async def _complete_album(self, album: Album, band: Band) -> str | None:
        if album.is_terminal:
            return None
        try:
            await self.store.update(
                RecordType.ALBUM,
                album.id,
                album.transition(AlbumStatus.COMPLETED, cover_url=band.album_cover_url),
            )
        except Exception as e:
            log.exception("Failed to complete album %s", album.id)
            return f"album: {e}"
        return None

    # ── Single-record stages ────────────────────────────

    async def run_stage(self, trigger: Trigger, wait_for_completion: bool = False) -> StageResult:
        """Resume a record from whatever its current status indicates.

        Both trigger kinds re-read the record from the store, so an event
        carrying a stale copy cannot move it backwards.
        """
        record = await self.store.get(trigger.record_type, trigger.record_id)
        if isinstance(record, Band):
            _, stage = await self._advance_band(record)
            return stage
        if isinstance(record, Song):
            return await self._advance_song(record, wait_for_completion)
        raise StageRejected(f"No stage runs directly on {record.record_type.value} records")

    async def _advance_song(self, song: Song, wait_for_completion: bool = False) -> StageResult:
        if song.is_in_flight:
            return StageResult(
                record_id=song.id,
                record_type=RecordType.SONG.value,
                stage=Stage.AUDIO,
                outcome=StageOutcome.SKIPPED,
                status=song.status.value,
                message="Audio already processing",
                task_id=song.task_id,
            )

        if not song.has_lyrics and not song.is_terminal:
            result = await self.executor.generate_lyrics(song)
            if result.outcome != StageOutcome.ADVANCED:
                return result
            song = await self.store.get(RecordType.SONG, song.id)

        result = await self.executor.submit_audio(song)
        if wait_for_completion and result.outcome == StageOutcome.ADVANCED:
            return await self.wait_for_completion(song.id)
        return result

    async def wait_for_completion(self, song_id: str) -> StageResult:
        """Poll one song synchronously until it settles or the ceiling passes.

        Past the ceiling the song is left to the scheduled poller and the
        in-flight task id is returned.
        """
        polling = self.config.polling
        waited = 0.0
        while waited < polling.wait_ceiling_seconds:
            await self.sleep(polling.wait_interval_seconds)
            waited += polling.wait_interval_seconds
            song = await self.store.get(RecordType.SONG, song_id)
            outcome = await self.poller.check_song(song, ignore_cooldown=True)
            if outcome in (PollOutcome.COMPLETED, PollOutcome.FAILED):
                song = await self.store.get(RecordType.SONG, song_id)
                return StageResult(
                    record_id=song.id,
                    record_type=RecordType.SONG.value,
                    stage=Stage.POLL,
                    outcome=(
                        StageOutcome.ADVANCED
                        if outcome == PollOutcome.COMPLETED
                        else StageOutcome.FAILED
                    ),
                    status=song.status.value,
                    message=song.audio_url if outcome == PollOutcome.COMPLETED else song.error or "",
                    task_id=song.last_task_id,
                )

        song = await self.store.get(RecordType.SONG, song_id)
        log.info("Song %s still processing after %.0fs, handing off to poller", song_id, waited)
        return StageResult(
            record_id=song.id,
            record_type=RecordType.SONG.value,
            stage=Stage.AUDIO,
            outcome=StageOutcome.ADVANCED,
            status=song.status.value,
            message="Audio generation in progress",
            task_id=song.task_id,
        )

    # ── Batches over a band's songs ─────────────────────

    async def _run_batch(
        self,
        songs: list[Song],
        step: Callable[[Song], Awaitable[StageResult]],
        stage: Stage,
    ) -> BatchResult:
        batch = BatchResult()
        size = self.config.polling.batch_size
        chunks = [songs[i : i + size] for i in range(0, len(songs), size)]

        async def one(song: Song) -> StageResult | PollError:
            try:
                return await step(song)
            except StageRejected as e:
                return StageResult(
                    record_id=song.id,
                    record_type=RecordType.SONG.value,
                    stage=stage,
                    outcome=StageOutcome.REJECTED,
                    status=song.status.value,
                    message=str(e),
                )
            except Exception as e:
                log.exception("%s stage crashed for song %s", stage.value, song.id)
                return PollError(record_id=song.id, message=str(e) or type(e).__name__)

        for index, chunk in enumerate(chunks):
            for item in await asyncio.gather(*(one(song) for song in chunk)):
                if isinstance(item, PollError):
                    batch.errors.append(item)
                else:
                    batch.results.append(item)
            if index < len(chunks) - 1:
                await self.sleep(self.config.polling.api_call_delay_seconds)

        log.info("%s batch: %s", stage.value, batch.summary())
        return batch

    async def generate_lyrics_for_band(self, band_id: str) -> BatchResult:
        band = await self.store.get(RecordType.BAND, band_id)
        songs = [s for s in await self._songs_for(band_id) if not s.has_lyrics]
        return await self._run_batch(
            songs, lambda song: self.executor.generate_lyrics(song, band), Stage.LYRICS
        )

    async def submit_audio_for_band(self, band_id: str) -> BatchResult:
        band = await self.store.get(RecordType.BAND, band_id)
        songs = [
            s
            for s in await self._songs_for(band_id)
            if s.has_lyrics and not s.has_audio and not s.is_in_flight
        ]
        return await self._run_batch(
            songs, lambda song: self.executor.submit_audio(song, band), Stage.AUDIO
        )

    # ── Polling and operator actions ────────────────────

    async def run_poll(self, force: bool = False, song_id: str | None = None) -> PollSummary:
        return await self.poller.run(force=force, song_id=song_id)

    async def retry_record(self, record_type: RecordType | str, record_id: str) -> Record:
        """Send a failed record back to the stage it can be retried from."""
        record_type = RecordType(record_type)
        record = await self.store.get(record_type, record_id)
        if not is_failure(record_type, record.status):
            raise StageRejected(
                f"{record_type.value} {record_id} is {record.status.value}, only failed records can be retried"
            )
        target = reset_status(record_type, record.status, getattr(record, "has_lyrics", False))
        if isinstance(record, Band) and record.profile is not None:
            # profile survived, only the publish step needs to run again
            target = BandStatus.PROFILE_COMPLETE.value
        fields: dict[str, Any] = {
            "status": target,
            "error": None,
            "task_id": None,
            "started_at": None,
            "last_checked_at": None,
            "attempts": 0,
        }
        updated = await self.store.update(record_type, record_id, fields)
        log.info("Reset %s %s from %s to %s", record_type.value, record_id, record.status.value, target)
        return updated
