import pytest
from pydantic import ValidationError

from bandgen.errors import InvalidTransition
from bandgen.models.records import Band, Song, truncate
from bandgen.models.status import (
    BandStatus,
    RecordType,
    SongStatus,
    check_transition,
    failure_status,
    is_in_flight,
    is_terminal,
    reset_status,
)


class TestTransitions:
    def test_forward_moves_allowed(self):
        """Moving forward along the song stage list is allowed, including skips."""
        check_transition(RecordType.SONG, SongStatus.PENDING, SongStatus.LYRICS_COMPLETE)
        check_transition(RecordType.SONG, SongStatus.LYRICS_COMPLETE, SongStatus.AUDIO_PROCESSING)
        check_transition(RecordType.BAND, BandStatus.DRAFT, BandStatus.PUBLISHED)

    def test_backward_move_rejected(self):
        """A record never moves back to an earlier stage."""
        with pytest.raises(InvalidTransition):
            check_transition(RecordType.SONG, SongStatus.LYRICS_COMPLETE, SongStatus.PENDING)

    def test_same_stage_rejected(self):
        with pytest.raises(InvalidTransition):
            check_transition(RecordType.SONG, SongStatus.PENDING, SongStatus.PENDING)

    def test_terminal_states_never_move(self):
        """Completed and failed records are absorbing."""
        with pytest.raises(InvalidTransition):
            check_transition(RecordType.SONG, SongStatus.AUDIO_COMPLETE, SongStatus.AUDIO_FAILED)
        with pytest.raises(InvalidTransition):
            check_transition(RecordType.SONG, SongStatus.AUDIO_FAILED, SongStatus.AUDIO_COMPLETE)
        with pytest.raises(InvalidTransition):
            check_transition(RecordType.BAND, BandStatus.FAILED, BandStatus.DRAFT)

    def test_failure_state_matches_stage(self):
        """Lyrics stages fail into lyrics_failed, audio stages into audio_failed."""
        assert failure_status(RecordType.SONG, SongStatus.PENDING) == "lyrics_failed"
        assert failure_status(RecordType.SONG, SongStatus.GENERATING_LYRICS) == "lyrics_failed"
        assert failure_status(RecordType.SONG, SongStatus.AUDIO_PROCESSING) == "audio_failed"
        assert failure_status(RecordType.BAND, BandStatus.PROFILE_COMPLETE) == "failed"

    def test_later_stage_failure_allowed(self):
        """A song that skips ahead with lyrics can fail the audio stage from pending."""
        check_transition(RecordType.SONG, SongStatus.PENDING, SongStatus.AUDIO_FAILED)
        check_transition(RecordType.SONG, SongStatus.GENERATING_LYRICS, SongStatus.AUDIO_FAILED)

    def test_earlier_stage_failure_rejected(self):
        with pytest.raises(InvalidTransition):
            check_transition(RecordType.SONG, SongStatus.LYRICS_COMPLETE, SongStatus.LYRICS_FAILED)
        with pytest.raises(InvalidTransition):
            check_transition(RecordType.SONG, SongStatus.AUDIO_PROCESSING, SongStatus.LYRICS_FAILED)

    def test_terminal_and_in_flight_sets(self):
        assert is_terminal(RecordType.SONG, "audio_complete")
        assert is_terminal(RecordType.SONG, "lyrics_failed")
        assert not is_terminal(RecordType.SONG, "audio_processing")
        assert is_in_flight(RecordType.SONG, "audio_processing")
        assert not is_in_flight(RecordType.BAND, "profile_complete")


class TestResetStatus:
    def test_lyrics_failed_goes_back_to_pending(self):
        assert reset_status(RecordType.SONG, "lyrics_failed") == "pending"

    def test_audio_failed_keeps_lyrics(self):
        """A song with lyrics only needs its audio redone."""
        assert reset_status(RecordType.SONG, "audio_failed", has_lyrics=True) == "lyrics_complete"
        assert reset_status(RecordType.SONG, "audio_failed", has_lyrics=False) == "pending"

    def test_band_failed_goes_to_draft(self):
        assert reset_status(RecordType.BAND, "failed") == "draft"

    def test_non_failed_record_rejected(self):
        with pytest.raises(InvalidTransition):
            reset_status(RecordType.SONG, "audio_complete")


class TestRecordModel:
    def test_task_id_required_while_in_flight(self):
        """An in-flight song without a task id is invalid."""
        with pytest.raises(ValidationError):
            Song(id="s1", status=SongStatus.AUDIO_PROCESSING)

    def test_task_id_forbidden_outside_in_flight(self):
        with pytest.raises(ValidationError):
            Song(id="s1", status=SongStatus.LYRICS_COMPLETE, task_id="abc")

    def test_leaving_in_flight_clears_task_id(self):
        """The finished task id is kept as last_task_id."""
        song = Song(id="s1", status=SongStatus.AUDIO_PROCESSING, task_id="abc", lyrics="la")
        update = song.transition(SongStatus.AUDIO_COMPLETE, audio_url="https://x/a.mp3")
        assert update["task_id"] is None
        assert update["last_task_id"] == "abc"
        assert update["status"] == SongStatus.AUDIO_COMPLETE

    def test_failure_truncates_error(self):
        song = Song(id="s1", status=SongStatus.PENDING)
        update = song.failure("x" * 900, max_length=500)
        assert update["status"] == "lyrics_failed"
        assert len(update["error"]) == 500
        assert update["error"].endswith("...")

    def test_failure_on_terminal_record_rejected(self):
        band = Band(id="b1", status=BandStatus.PUBLISHED)
        with pytest.raises(InvalidTransition):
            band.failure("boom")

    def test_unknown_fields_ignored(self):
        """Documents written by other clients may carry extra keys."""
        song = Song.model_validate({"id": "s1", "status": "pending", "$permissions": []})
        assert song.status == SongStatus.PENDING


class TestTruncate:
    def test_short_text_untouched(self):
        assert truncate("hello", 10) == "hello"

    def test_long_text_gets_marker(self):
        result = truncate("a" * 1200, 1000)
        assert len(result) == 1000
        assert result == "a" * 997 + "..."
