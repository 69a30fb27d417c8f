"""Error taxonomy shared by the generation pipeline."""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for every error raised by bandgen."""


class StageRejected(PipelineError):
    """A stage was asked to run on a record missing a required input.

    Raised before any external call; the record is left untouched.
    """


class RecordNotFound(PipelineError):
    """No document with the given id exists in the collection."""

    def __init__(self, record_type: str, record_id: str):
        super().__init__(f"{record_type} {record_id} not found")
        self.record_type = record_type
        self.record_id = record_id


class InvalidTransition(PipelineError):
    """A status write would move a record backwards or out of a terminal state."""


class ExternalServiceError(PipelineError):
    """A language-model, image or audio provider call failed."""


class ServiceUnavailable(ExternalServiceError):
    """Transient provider failure (timeout, transport error, 429 or 5xx).

    This is the only error class the retry policy retries.
    """


class MalformedResponse(ExternalServiceError):
    """The provider answered, but the payload could not be parsed or validated."""
