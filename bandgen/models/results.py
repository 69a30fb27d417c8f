"""Result and tally models returned by the pipeline's public operations."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class Stage(str, Enum):
    PROFILE = "profile"
    IMAGES = "images"
    LYRICS = "lyrics"
    AUDIO = "audio"
    POLL = "poll"


class StageOutcome(str, Enum):
    ADVANCED = "advanced"
    SKIPPED = "skipped"
    FAILED = "failed"
    REJECTED = "rejected"


class StageResult(BaseModel):
    """What one stage invocation did to one record."""

    record_id: str
    record_type: str
    stage: Stage
    outcome: StageOutcome
    status: str = Field(description="Record status after the invocation")
    message: str = ""
    task_id: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome in (StageOutcome.ADVANCED, StageOutcome.SKIPPED)


class PollOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    STILL_PROCESSING = "still_processing"
    SKIPPED = "skipped"
    ERROR = "error"


class PollError(BaseModel):
    record_id: str
    message: str


class PollSummary(BaseModel):
    """Tally of one poll run. Used for observability, not control flow."""

    completed: int = 0
    failed: int = 0
    still_processing: int = 0
    skipped: int = 0
    errors: list[PollError] = Field(default_factory=list)

    @property
    def checked(self) -> int:
        return self.completed + self.failed + self.still_processing + self.skipped

    def add(self, record_id: str, outcome: PollOutcome, message: str | None = None) -> None:
        if outcome == PollOutcome.COMPLETED:
            self.completed += 1
        elif outcome == PollOutcome.FAILED:
            self.failed += 1
        elif outcome == PollOutcome.STILL_PROCESSING:
            self.still_processing += 1
        elif outcome == PollOutcome.SKIPPED:
            self.skipped += 1
        if message and outcome in (
            PollOutcome.FAILED,
            PollOutcome.ERROR,
            PollOutcome.STILL_PROCESSING,
        ):
            self.errors.append(PollError(record_id=record_id, message=message))


class BatchResult(BaseModel):
    """Per-item results of running one stage over many sibling records."""

    results: list[StageResult] = Field(default_factory=list)
    errors: list[PollError] = Field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.outcome == StageOutcome.ADVANCED)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.outcome == StageOutcome.SKIPPED)

    @property
    def failed(self) -> int:
        return sum(
            1
            for r in self.results
            if r.outcome in (StageOutcome.FAILED, StageOutcome.REJECTED)
        ) + len(self.errors)

    def summary(self) -> dict[str, int]:
        return {
            "succeeded": self.succeeded,
            "skipped": self.skipped,
            "failed": self.failed,
        }


class BandGenerationResult(BaseModel):
    """Outcome of the full band creation flow."""

    band_id: str
    status: str
    band_name: str = ""
    album_id: str | None = None
    album_title: str = ""
    song_ids: list[str] = Field(default_factory=list)
    logo_url: str = ""
    album_cover_url: str = ""
    band_photo_url: str = ""
    error: str | None = None
    child_errors: list[str] = Field(default_factory=list)
