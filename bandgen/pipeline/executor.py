"""Stage executor: run exactly one generation stage for one record.

Each public method follows the same contract:

* If the stage's payload is already present (or the record is terminal) it
  returns a SKIPPED result without calling anything or writing anything.
* If a required input is missing it raises StageRejected before any
  external call; the record is not touched.
* Otherwise it calls one external service (under the matching retry
  policy) and makes exactly one write: either the payload plus the next
  status, or the failure status plus a truncated error. Exceptions from
  the external call never escape.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable

from bandgen.agent.band_agent import (
    build_style_prompt,
    build_visual_prompts,
    generate_band_profile,
    generate_lyrics,
)
from bandgen.agent.mock_profile import get_mock_band_profile
from bandgen.config import PipelineConfig
from bandgen.errors import StageRejected
from bandgen.models.band_profile import BandProfile
from bandgen.models.records import Band, Record, Song, utcnow
from bandgen.models.results import Stage, StageOutcome, StageResult
from bandgen.models.status import BandStatus, RecordType, SongStatus
from bandgen.services.image_client import FalImageClient
from bandgen.services.llm_client import LanguageModelClient
from bandgen.services.task_client import MurekaClient
from bandgen.store.base import RecordStore

log = logging.getLogger(__name__)

# (prompt field, url field, aspect) for the three band images.
IMAGE_SLOTS = (
    ("logo_prompt", "logo_url", "square"),
    ("album_cover_prompt", "album_cover_url", "square"),
    ("band_photo_prompt", "band_photo_url", "landscape_16_9"),
)

STAGE_FAILURES = {
    Stage.LYRICS: SongStatus.LYRICS_FAILED,
    Stage.AUDIO: SongStatus.AUDIO_FAILED,
}

_LYRICS_READY = {SongStatus.PENDING.value, SongStatus.GENERATING_LYRICS.value}
_AUDIO_DONE = {SongStatus.AUDIO_PROCESSING.value, SongStatus.AUDIO_COMPLETE.value}


def _result(
    record: Record,
    stage: Stage,
    outcome: StageOutcome,
    message: str = "",
) -> StageResult:
    return StageResult(
        record_id=record.id,
        record_type=record.record_type.value,
        stage=stage,
        outcome=outcome,
        status=str(getattr(record.status, "value", record.status)),
        message=message,
        task_id=record.task_id,
    )


class StageExecutor:
    def __init__(
        self,
        store: RecordStore,
        llm: LanguageModelClient,
        images: FalImageClient,
        tasks: MurekaClient,
        config: PipelineConfig,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.llm = llm
        self.images = images
        self.tasks = tasks
        self.config = config
        self.clock = clock

    async def _fail(self, record: Record, stage: Stage, exc: Exception) -> StageResult:
        message = str(exc) or type(exc).__name__
        log.error(
            "%s stage failed for %s %s: %s",
            stage.value,
            record.record_type.value,
            record.id,
            message,
            exc_info=exc,
        )
        try:
            failed = await self.store.update(
                record.record_type,
                record.id,
                record.failure(
                    message, self.config.max_error_length, STAGE_FAILURES.get(stage)
                ),
            )
        except Exception:
            log.exception("Could not record failure for %s %s", record.record_type.value, record.id)
            return _result(record, stage, StageOutcome.FAILED, message)
        return _result(failed, stage, StageOutcome.FAILED, failed.error or message)

    async def _band_profile(self, song: Song, band: Band | None) -> BandProfile | None:
        if band is None and song.band_id:
            band = await self.store.get(RecordType.BAND, song.band_id)
        return band.profile if band else None

    # ── Profile ─────────────────────────────────────────

    async def generate_profile(self, band: Band, use_mock: bool = False) -> StageResult:
        """Draft band → profile_complete with the generated profile fields."""
        if band.profile is not None or band.status != BandStatus.DRAFT:
            log.debug("Band %s already has a profile (%s), skipping", band.id, band.status)
            return _result(band, Stage.PROFILE, StageOutcome.SKIPPED, "Profile already generated")
        if not use_mock and not band.user_prompt.strip():
            raise StageRejected(f"Band {band.id} has no prompt to generate a profile from")

        log.info("Generating profile for band %s (mock=%s)", band.id, use_mock)
        try:
            if use_mock:
                profile = get_mock_band_profile()
            else:
                profile = await self.config.retries.llm.call(
                    generate_band_profile,
                    self.llm,
                    band.user_prompt,
                    max_tokens=self.config.llm.max_tokens,
                    temperature=self.config.llm.profile_temperature,
                )
            prompts = build_visual_prompts(profile)
            update = band.transition(
                BandStatus.PROFILE_COMPLETE,
                profile=profile.model_dump(),
                band_name=profile.band_name,
                primary_genre=profile.primary_genre,
                origin=profile.origin,
                formation_year=profile.formation_year,
                ai_instructions=profile.band_ai_instructions,
                album_title=profile.album_concept.title,
                album_description=profile.album_concept.description,
                track_count=len(profile.track_listing),
                logo_prompt=prompts.logo,
                album_cover_prompt=prompts.album_cover,
                band_photo_prompt=prompts.band_photo,
                error=None,
            )
            updated = await self.store.update(RecordType.BAND, band.id, update)
        except Exception as e:
            return await self._fail(band, Stage.PROFILE, e)

        log.info("Band %s profile complete: '%s'", band.id, updated.band_name)
        return _result(updated, Stage.PROFILE, StageOutcome.ADVANCED)

    # ── Images ──────────────────────────────────────────

    async def _image(self, prompt: str, aspect: str) -> str:
        """One optional image. Failures degrade to an empty URL."""
        if not prompt:
            return ""
        try:
            url = await self.config.retries.images.call(self.images.generate, prompt, aspect)
        except Exception as e:
            log.warning("Image generation (%s) failed, continuing without it: %s", aspect, e)
            return ""
        return url or ""

    async def generate_images(self, band: Band, album_id: str | None = None) -> StageResult:
        """profile_complete → published, with whatever images could be made."""
        if band.status == BandStatus.PUBLISHED or band.is_terminal:
            return _result(band, Stage.IMAGES, StageOutcome.SKIPPED, "Band already published")
        if band.status != BandStatus.PROFILE_COMPLETE:
            raise StageRejected(f"Band {band.id} has no profile yet")

        if not self.images.is_configured():
            log.info("Image generation not configured, publishing band %s without images", band.id)

        try:
            urls = await asyncio.gather(
                *(self._image(getattr(band, prompt), aspect) for prompt, _, aspect in IMAGE_SLOTS)
            )
            fields = {url_field: url for (_, url_field, _), url in zip(IMAGE_SLOTS, urls)}
            if album_id:
                fields["album_id"] = album_id
            updated = await self.store.update(
                RecordType.BAND,
                band.id,
                band.transition(BandStatus.PUBLISHED, error=None, **fields),
            )
        except Exception as e:
            return await self._fail(band, Stage.IMAGES, e)

        made = sum(1 for url in urls if url)
        log.info("Band %s published with %d/%d images", band.id, made, len(IMAGE_SLOTS))
        return _result(updated, Stage.IMAGES, StageOutcome.ADVANCED, f"{made} images generated")

    # ── Lyrics ──────────────────────────────────────────

    async def generate_lyrics(self, song: Song, band: Band | None = None) -> StageResult:
        """pending/generating_lyrics → lyrics_complete."""
        if song.has_lyrics:
            return _result(song, Stage.LYRICS, StageOutcome.SKIPPED, "Song already has lyrics")
        if song.is_terminal:
            return _result(song, Stage.LYRICS, StageOutcome.SKIPPED, f"Song is {song.status.value}")
        if song.status.value not in _LYRICS_READY:
            raise StageRejected(f"Song {song.id} is {song.status.value}, not waiting for lyrics")

        log.info("Generating lyrics for song %s '%s'", song.id, song.title)
        try:
            profile = await self._band_profile(song, band)
            result = await self.config.retries.llm.call(
                generate_lyrics,
                self.llm,
                song,
                profile,
                max_tokens=self.config.llm.max_tokens,
                temperature=self.config.llm.lyrics_temperature,
            )
            updated = await self.store.update(
                RecordType.SONG,
                song.id,
                song.transition(
                    SongStatus.LYRICS_COMPLETE,
                    lyrics=result.lyrics,
                    song_description=result.song_description,
                    error=None,
                ),
            )
        except Exception as e:
            return await self._fail(song, Stage.LYRICS, e)

        return _result(updated, Stage.LYRICS, StageOutcome.ADVANCED)

    # ── Audio submission ────────────────────────────────

    async def submit_audio(self, song: Song, band: Band | None = None) -> StageResult:
        """Submit lyrics to the audio provider; song → audio_processing with a task id."""
        if song.has_audio or song.status.value in _AUDIO_DONE:
            return _result(song, Stage.AUDIO, StageOutcome.SKIPPED, "Audio already requested")
        if song.is_terminal:
            return _result(song, Stage.AUDIO, StageOutcome.SKIPPED, f"Song is {song.status.value}")
        if not song.has_lyrics:
            raise StageRejected(f"Song {song.id} has no lyrics. Generate lyrics first.")

        try:
            profile = await self._band_profile(song, band)
            style = build_style_prompt(song, profile, self.config.audio.style_prompt_limit)
            task_id = await self.config.retries.tasks.call(self.tasks.submit, song.lyrics, style)
            updated = await self.store.update(
                RecordType.SONG,
                song.id,
                song.transition(
                    SongStatus.AUDIO_PROCESSING,
                    task_id=task_id,
                    audio_prompt=style,
                    started_at=self.clock(),
                    last_checked_at=None,
                    attempts=0,
                    error=None,
                ),
            )
        except Exception as e:
            return await self._fail(song, Stage.AUDIO, e)

        log.info("Song %s audio submitted as task %s", song.id, updated.task_id)
        return _result(updated, Stage.AUDIO, StageOutcome.ADVANCED, "Audio generation started")
