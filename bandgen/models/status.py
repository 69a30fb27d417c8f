"""Per-record-type stage lists and the rules for moving between them.

Every record type has an ordered list of stages. A record may only move
forward along that list, or jump to a failure state from any non-terminal
stage. Failure states and the last stage of each list are terminal.
"""

from __future__ import annotations

from enum import Enum

from bandgen.errors import InvalidTransition


class RecordType(str, Enum):
    BAND = "band"
    ALBUM = "album"
    SONG = "song"


class BandStatus(str, Enum):
    DRAFT = "draft"
    PROFILE_COMPLETE = "profile_complete"
    PUBLISHED = "published"
    FAILED = "failed"


class AlbumStatus(str, Enum):
    DRAFT = "draft"
    COMPLETED = "completed"
    FAILED = "failed"


class SongStatus(str, Enum):
    PENDING = "pending"
    GENERATING_LYRICS = "generating_lyrics"
    LYRICS_COMPLETE = "lyrics_complete"
    GENERATING_AUDIO = "generating_audio"
    AUDIO_PROCESSING = "audio_processing"
    AUDIO_COMPLETE = "audio_complete"
    LYRICS_FAILED = "lyrics_failed"
    AUDIO_FAILED = "audio_failed"


STAGE_ORDER: dict[RecordType, list[str]] = {
    RecordType.BAND: [
        BandStatus.DRAFT,
        BandStatus.PROFILE_COMPLETE,
        BandStatus.PUBLISHED,
    ],
    RecordType.ALBUM: [AlbumStatus.DRAFT, AlbumStatus.COMPLETED],
    RecordType.SONG: [
        SongStatus.PENDING,
        SongStatus.GENERATING_LYRICS,
        SongStatus.LYRICS_COMPLETE,
        SongStatus.GENERATING_AUDIO,
        SongStatus.AUDIO_PROCESSING,
        SongStatus.AUDIO_COMPLETE,
    ],
}

# Which failure state a record lands in, keyed by the stage it failed from.
FAILURE_STATES: dict[RecordType, dict[str, str]] = {
    RecordType.BAND: {
        BandStatus.DRAFT: BandStatus.FAILED,
        BandStatus.PROFILE_COMPLETE: BandStatus.FAILED,
    },
    RecordType.ALBUM: {AlbumStatus.DRAFT: AlbumStatus.FAILED},
    RecordType.SONG: {
        SongStatus.PENDING: SongStatus.LYRICS_FAILED,
        SongStatus.GENERATING_LYRICS: SongStatus.LYRICS_FAILED,
        SongStatus.LYRICS_COMPLETE: SongStatus.AUDIO_FAILED,
        SongStatus.GENERATING_AUDIO: SongStatus.AUDIO_FAILED,
        SongStatus.AUDIO_PROCESSING: SongStatus.AUDIO_FAILED,
    },
}

# Stages during which an external task id must be present.
IN_FLIGHT: dict[RecordType, frozenset[str]] = {
    RecordType.BAND: frozenset(),
    RecordType.ALBUM: frozenset(),
    RecordType.SONG: frozenset({SongStatus.AUDIO_PROCESSING}),
}


def _value(status: str | Enum) -> str:
    return status.value if isinstance(status, Enum) else str(status)


def _index(record_type: RecordType, status: str) -> int:
    order = [_value(s) for s in STAGE_ORDER[record_type]]
    try:
        return order.index(_value(status))
    except ValueError:
        return -1


def is_failure(record_type: RecordType, status: str) -> bool:
    return _value(status) in {_value(s) for s in FAILURE_STATES[record_type].values()}


def is_terminal(record_type: RecordType, status: str) -> bool:
    if is_failure(record_type, status):
        return True
    return _value(status) == _value(STAGE_ORDER[record_type][-1])


def is_in_flight(record_type: RecordType, status: str) -> bool:
    return _value(status) in {_value(s) for s in IN_FLIGHT[record_type]}


def failure_status(record_type: RecordType, status: str) -> str:
    """Return the failure state reachable from ``status``."""
    for stage, failed in FAILURE_STATES[record_type].items():
        if _value(stage) == _value(status):
            return _value(failed)
    raise InvalidTransition(
        f"{record_type.value} in status {_value(status)!r} cannot fail"
    )


def failure_targets(record_type: RecordType, status: str) -> set[str]:
    """Failure states of ``status`` and of every stage after it."""
    src = _index(record_type, status)
    return {
        _value(failed)
        for stage, failed in FAILURE_STATES[record_type].items()
        if _index(record_type, stage) >= src >= 0
    }


def check_transition(record_type: RecordType, current: str, target: str) -> None:
    """Raise InvalidTransition unless ``current -> target`` is allowed.

    Allowed moves are strictly forward along the stage list, or into the
    failure state of the current stage or a later one. Terminal records
    never move.
    """
    if is_terminal(record_type, current):
        raise InvalidTransition(
            f"{record_type.value} is terminal in {_value(current)!r}"
        )
    if is_failure(record_type, target):
        if _value(target) not in failure_targets(record_type, current):
            raise InvalidTransition(
                f"{record_type.value} cannot fail from {_value(current)!r} "
                f"into {_value(target)!r}"
            )
        return
    src, dst = _index(record_type, current), _index(record_type, target)
    if dst < 0:
        raise InvalidTransition(f"unknown {record_type.value} status {_value(target)!r}")
    if dst <= src:
        raise InvalidTransition(
            f"{record_type.value} cannot move from {_value(current)!r} "
            f"back to {_value(target)!r}"
        )


def reset_status(record_type: RecordType, status: str, has_lyrics: bool = False) -> str:
    """Stage an operator-initiated retry sends a failed record back to."""
    value = _value(status)
    if record_type == RecordType.SONG:
        if value == SongStatus.LYRICS_FAILED.value:
            return SongStatus.PENDING.value
        if value == SongStatus.AUDIO_FAILED.value:
            return (
                SongStatus.LYRICS_COMPLETE.value if has_lyrics else SongStatus.PENDING.value
            )
    elif is_failure(record_type, value):
        return _value(STAGE_ORDER[record_type][0])
    raise InvalidTransition(f"{record_type.value} in {value!r} is not a failed record")
