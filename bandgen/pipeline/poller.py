"""Status poller: reconcile in-flight songs against the audio task provider.

Per record, in order:

1. not in flight                       → skipped
2. older than the absolute timeout     → failed (no provider call)
3. checked within the cooldown window  → skipped (no provider call)
4. provider query, normalized to completed / failed / still processing

Records are handled in fixed-size batches. Members of a batch run
concurrently; an error on one member is tallied and never aborts the rest.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from bandgen.config import PipelineConfig
from bandgen.errors import ExternalServiceError, ServiceUnavailable
from bandgen.models.records import Song, utcnow
from bandgen.models.results import PollOutcome, PollSummary
from bandgen.models.status import RecordType, SongStatus
from bandgen.services.task_client import MurekaClient, TaskState
from bandgen.store.base import Filter, RecordStore

log = logging.getLogger(__name__)


class StatusPoller:
    def __init__(
        self,
        store: RecordStore,
        tasks: MurekaClient,
        config: PipelineConfig,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.tasks = tasks
        self.config = config
        self.clock = clock
        self.sleep = sleep

    @property
    def polling(self):
        return self.config.polling

    async def run(self, force: bool = False, song_id: str | None = None) -> PollSummary:
        """Check every eligible in-flight song once and return the tally.

        ``force`` skips the initial grace period. ``song_id`` checks a single
        song regardless of its age; the cooldown still applies.
        """
        summary = PollSummary()
        if song_id:
            song = await self.store.get(RecordType.SONG, song_id)
            outcome, message = await self._check_safely(song)
            summary.add(song.id, outcome, message)
            log.info("Poll of song %s: %s", song.id, outcome.value)
            return summary

        songs = await self._eligible(force)
        if not songs:
            log.info("No songs waiting on audio")
            return summary

        size = self.polling.batch_size
        batches = [songs[i : i + size] for i in range(0, len(songs), size)]
        log.info("Polling %d songs in %d batches", len(songs), len(batches))
        for index, batch in enumerate(batches):
            outcomes = await asyncio.gather(*(self._check_safely(song) for song in batch))
            for song, (outcome, message) in zip(batch, outcomes):
                summary.add(song.id, outcome, message)
            if index < len(batches) - 1:
                await self.sleep(self.polling.api_call_delay_seconds)

        log.info(
            "Poll complete: %d completed, %d failed, %d still processing, %d skipped, %d errors",
            summary.completed,
            summary.failed,
            summary.still_processing,
            summary.skipped,
            len(summary.errors),
        )
        return summary

    async def _eligible(self, force: bool) -> list[Song]:
        filters = [
            Filter.equal("status", SongStatus.AUDIO_PROCESSING),
            Filter.is_not_null("task_id"),
        ]
        if not force:
            cutoff = self.clock() - timedelta(seconds=self.polling.initial_delay_seconds)
            filters.append(Filter.less_than("started_at", cutoff, fallback="created_at"))
        return await self.store.list(
            RecordType.SONG, filters, limit=self.polling.max_records_per_run
        )

    async def check_song(self, song: Song, ignore_cooldown: bool = False) -> PollOutcome:
        """Check one song and return what happened to it."""
        outcome, _ = await self._check(song, ignore_cooldown)
        return outcome

    async def _check_safely(self, song: Song) -> tuple[PollOutcome, str | None]:
        try:
            return await self._check(song)
        except Exception as e:
            log.exception("Error polling song %s", song.id)
            return PollOutcome.ERROR, str(e) or type(e).__name__

    async def _fail(self, song: Song, message: str) -> tuple[PollOutcome, str]:
        await self.store.update(
            RecordType.SONG, song.id, song.failure(message, self.config.max_error_length)
        )
        log.warning("Song %s audio failed: %s", song.id, message)
        return PollOutcome.FAILED, message

    async def _check(
        self, song: Song, ignore_cooldown: bool = False
    ) -> tuple[PollOutcome, str | None]:
        if not song.is_in_flight or not song.task_id:
            log.debug("Song %s is %s, nothing to poll", song.id, song.status.value)
            return PollOutcome.SKIPPED, None

        now = self.clock()
        started = song.started_at or song.created_at
        timeout = timedelta(minutes=self.polling.timeout_minutes)
        if started and now - started > timeout:
            return await self._fail(
                song, f"Audio generation timed out after {self.polling.timeout_minutes:g} minutes"
            )

        cooldown = timedelta(seconds=self.polling.rate_limit_cooldown_seconds)
        if not ignore_cooldown and song.last_checked_at and now - song.last_checked_at < cooldown:
            log.debug("Song %s checked %s ago, skipping", song.id, now - song.last_checked_at)
            return PollOutcome.SKIPPED, None

        try:
            status = await self.config.retries.tasks.call(self.tasks.query, song.task_id)
        except ServiceUnavailable as e:
            await self.store.update(RecordType.SONG, song.id, {"last_checked_at": now})
            return PollOutcome.STILL_PROCESSING, f"Status check deferred: {e}"
        except ExternalServiceError as e:
            return await self._fail(song, str(e))

        if status.state == TaskState.COMPLETED:
            if not status.result_url:
                return await self._fail(song, "Completed but no audio URL provided")
            await self.store.update(
                RecordType.SONG,
                song.id,
                song.transition(
                    SongStatus.AUDIO_COMPLETE,
                    audio_url=status.result_url,
                    audio_duration=status.duration,
                    audio_completed_at=now,
                    last_checked_at=now,
                    error=None,
                ),
            )
            log.info("Song %s audio complete: %s", song.id, status.result_url)
            return PollOutcome.COMPLETED, None

        if status.state == TaskState.FAILED:
            return await self._fail(song, status.error_message or "Audio generation failed")

        await self.store.update(
            RecordType.SONG,
            song.id,
            {"last_checked_at": now, "attempts": song.attempts + 1},
        )
        log.debug("Song %s still %s", song.id, status.provider_status or "processing")
        return PollOutcome.STILL_PROCESSING, None
