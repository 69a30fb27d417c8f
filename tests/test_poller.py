from datetime import timedelta

import pytest

from bandgen.errors import ExternalServiceError, ServiceUnavailable
from bandgen.models.results import PollOutcome
from bandgen.models.status import RecordType, SongStatus

from conftest import completed, failed, processing


async def in_flight(store, clock, task_id, age_seconds=120, **fields):
    return await store.create(
        RecordType.SONG,
        {
            "title": f"Song {task_id}",
            "status": SongStatus.AUDIO_PROCESSING,
            "lyrics": "la",
            "task_id": task_id,
            "started_at": clock.now - timedelta(seconds=age_seconds),
            **fields,
        },
    )


class TestPollScenarios:
    @pytest.mark.asyncio
    async def test_submit_then_poll_to_completion(self, pipeline, store, tasks, clock):
        """running → unchanged but checked; succeeded → audio_complete."""
        song = await store.create(
            RecordType.SONG,
            {"title": "Salt Lines", "status": SongStatus.LYRICS_COMPLETE, "lyrics": "la"},
        )
        await pipeline.executor.submit_audio(song)
        tasks.script("task-1", processing("task-1"), completed("task-1", url="https://cdn.test/song.mp3"))

        clock.advance(60)
        summary = await pipeline.poller.run()
        assert summary.still_processing == 1
        saved = await store.get(RecordType.SONG, song.id)
        assert saved.status == SongStatus.AUDIO_PROCESSING
        assert saved.last_checked_at == clock.now
        assert saved.attempts == 1

        clock.advance(60)
        summary = await pipeline.poller.run()
        assert summary.completed == 1
        saved = await store.get(RecordType.SONG, song.id)
        assert saved.status == SongStatus.AUDIO_COMPLETE
        assert saved.audio_url == "https://cdn.test/song.mp3"
        assert saved.audio_duration == 184.0
        assert saved.task_id is None
        assert saved.last_task_id == "task-1"

    @pytest.mark.asyncio
    async def test_provider_failure_copies_message(self, pipeline, store, tasks, clock):
        song = await in_flight(store, clock, "t1")
        tasks.script("t1", failed("t1", "lyrics contain banned words"))
        summary = await pipeline.poller.run()

        assert summary.failed == 1
        saved = await store.get(RecordType.SONG, song.id)
        assert saved.status == SongStatus.AUDIO_FAILED
        assert saved.error == "lyrics contain banned words"

    @pytest.mark.asyncio
    async def test_provider_failure_default_message(self, pipeline, store, tasks, clock):
        song = await in_flight(store, clock, "t1")
        tasks.script("t1", failed("t1"))
        await pipeline.poller.run()
        saved = await store.get(RecordType.SONG, song.id)
        assert saved.error == "Audio generation failed"

    @pytest.mark.asyncio
    async def test_completed_without_url_is_failure(self, pipeline, store, tasks, clock):
        song = await in_flight(store, clock, "t1")
        tasks.script("t1", completed("t1", url=None))
        summary = await pipeline.poller.run()

        assert summary.failed == 1
        saved = await store.get(RecordType.SONG, song.id)
        assert saved.status == SongStatus.AUDIO_FAILED
        assert saved.error == "Completed but no audio URL provided"


class TestPollPolicies:
    @pytest.mark.asyncio
    async def test_timeout_fails_without_polling(self, pipeline, store, tasks, clock):
        """Past the absolute lifetime the song fails even if the provider says running."""
        song = await in_flight(store, clock, "t1", age_seconds=31 * 60)
        tasks.script("t1", processing("t1"))
        summary = await pipeline.poller.run()

        assert summary.failed == 1
        assert tasks.queries == []
        saved = await store.get(RecordType.SONG, song.id)
        assert saved.status == SongStatus.AUDIO_FAILED
        assert "timed out after 30 minutes" in saved.error

    @pytest.mark.asyncio
    async def test_recently_checked_song_skipped(self, pipeline, store, tasks, clock):
        """Within the cooldown there is no provider call and no write."""
        song = await in_flight(store, clock, "t1", last_checked_at=clock.now - timedelta(seconds=5))
        summary = await pipeline.poller.run()

        assert summary.skipped == 1
        assert tasks.queries == []
        saved = await store.get(RecordType.SONG, song.id)
        assert saved.updated_at == song.updated_at

    @pytest.mark.asyncio
    async def test_cooldown_expired_song_polled(self, pipeline, store, tasks, clock):
        await in_flight(store, clock, "t1", last_checked_at=clock.now - timedelta(seconds=25))
        summary = await pipeline.poller.run()
        assert summary.still_processing == 1
        assert tasks.queries == ["t1"]

    @pytest.mark.asyncio
    async def test_grace_period_hides_fresh_submissions(self, pipeline, store, tasks, clock):
        await in_flight(store, clock, "t1", age_seconds=10)
        summary = await pipeline.poller.run()
        assert summary.checked == 0
        assert tasks.queries == []

    @pytest.mark.asyncio
    async def test_song_without_started_at_ages_from_creation(self, pipeline, store, tasks, clock):
        """An in-flight song missing started_at is still selected and can time out."""
        song = await store.create(
            RecordType.SONG,
            {
                "title": "Imported",
                "status": SongStatus.AUDIO_PROCESSING,
                "lyrics": "la",
                "task_id": "t1",
                "created_at": clock.now - timedelta(minutes=31),
            },
        )
        summary = await pipeline.poller.run()

        assert summary.failed == 1
        saved = await store.get(RecordType.SONG, song.id)
        assert saved.status == SongStatus.AUDIO_FAILED
        assert "timed out" in saved.error

    @pytest.mark.asyncio
    async def test_force_ignores_grace_period(self, pipeline, store, tasks, clock):
        await in_flight(store, clock, "t1", age_seconds=10)
        summary = await pipeline.poller.run(force=True)
        assert summary.still_processing == 1
        assert tasks.queries == ["t1"]

    @pytest.mark.asyncio
    async def test_single_song_override(self, pipeline, store, tasks, clock):
        """A named song is checked regardless of age; others are left alone."""
        target = await in_flight(store, clock, "t1", age_seconds=5)
        await in_flight(store, clock, "t2")
        tasks.script("t1", completed("t1"))

        summary = await pipeline.poller.run(song_id=target.id)
        assert summary.completed == 1
        assert tasks.queries == ["t1"]

    @pytest.mark.asyncio
    async def test_single_song_override_respects_cooldown(self, pipeline, store, tasks, clock):
        target = await in_flight(store, clock, "t1", last_checked_at=clock.now)
        summary = await pipeline.poller.run(song_id=target.id)
        assert summary.skipped == 1
        assert tasks.queries == []

    @pytest.mark.asyncio
    async def test_transient_query_error_retries_next_cycle(self, pipeline, store, tasks, clock):
        """A provider timeout marks the song checked but leaves it in flight."""
        song = await in_flight(store, clock, "t1")
        tasks.script("t1", ServiceUnavailable("timeout"), ServiceUnavailable("timeout"))
        summary = await pipeline.poller.run()

        assert summary.still_processing == 1
        assert len(summary.errors) == 1
        saved = await store.get(RecordType.SONG, song.id)
        assert saved.status == SongStatus.AUDIO_PROCESSING
        assert saved.last_checked_at == clock.now

    @pytest.mark.asyncio
    async def test_permanent_query_error_fails_song(self, pipeline, store, tasks, clock):
        song = await in_flight(store, clock, "t1")
        tasks.script("t1", ExternalServiceError("Invalid Mureka API key"))
        summary = await pipeline.poller.run()

        assert summary.failed == 1
        saved = await store.get(RecordType.SONG, song.id)
        assert saved.status == SongStatus.AUDIO_FAILED
        assert saved.error == "Invalid Mureka API key"

    @pytest.mark.asyncio
    async def test_check_song_ignores_cooldown_on_request(self, pipeline, store, tasks, clock):
        song = await in_flight(store, clock, "t1", last_checked_at=clock.now)
        tasks.script("t1", completed("t1"))
        outcome = await pipeline.poller.check_song(song, ignore_cooldown=True)
        assert outcome == PollOutcome.COMPLETED


class TestPollBatching:
    @pytest.mark.asyncio
    async def test_batches_with_delay_between(self, pipeline, store, clock, sleep, config):
        """12 songs with batch size 5 → three batches, two pauses."""
        for n in range(12):
            await in_flight(store, clock, f"t{n}")
        summary = await pipeline.poller.run()

        assert summary.still_processing == 12
        assert sleep.calls == [config.polling.api_call_delay_seconds] * 2

    @pytest.mark.asyncio
    async def test_run_limited_per_invocation(self, pipeline, store, tasks, clock):
        for n in range(30):
            await in_flight(store, clock, f"t{n}")
        summary = await pipeline.poller.run()
        assert summary.checked == 25
        assert len(tasks.queries) == 25

    @pytest.mark.asyncio
    async def test_one_broken_record_does_not_stop_batch(self, pipeline, store, tasks, clock):
        """Batch isolation: one crash is tallied, siblings still complete."""
        for n in range(4):
            await in_flight(store, clock, f"t{n}")
            tasks.script(f"t{n}", completed(f"t{n}", url=f"https://cdn.test/{n}.mp3"))
        tasks.scripts["t2"] = [RuntimeError("unexpected payload")]

        summary = await pipeline.poller.run()
        assert summary.completed == 3
        assert [e.message for e in summary.errors] == ["unexpected payload"]
        done = await store.list(RecordType.SONG)
        assert sorted(s.status.value for s in done).count("audio_complete") == 3

    @pytest.mark.asyncio
    async def test_nothing_to_poll(self, pipeline, sleep):
        summary = await pipeline.poller.run()
        assert summary.checked == 0
        assert sleep.calls == []
