"""HTTP client for the Mureka asynchronous song generation API.

Supports the two calls the pipeline needs:
  1. Submit:        POST /song/generate     (lyrics + style prompt) → task id
  2. Query status:  GET  /song/query/{id}   → provider status + result

Mureka's status vocabulary is normalized here into three states
(completed / failed / processing) and never leaks past this module.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

import httpx
from pydantic import BaseModel

from bandgen.config import AudioConfig
from bandgen.errors import ExternalServiceError, MalformedResponse, ServiceUnavailable

log = logging.getLogger(__name__)


class TaskState(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    PROCESSING = "processing"


# Provider status → normalized state. Unknown values are treated as processing.
STATUS_MAP: dict[str, TaskState] = {
    "succeeded": TaskState.COMPLETED,
    "completed": TaskState.COMPLETED,
    "success": TaskState.COMPLETED,
    "failed": TaskState.FAILED,
    "error": TaskState.FAILED,
    "timeouted": TaskState.FAILED,
    "cancelled": TaskState.FAILED,
    "preparing": TaskState.PROCESSING,
    "queued": TaskState.PROCESSING,
    "running": TaskState.PROCESSING,
    "streaming": TaskState.PROCESSING,
    "pending": TaskState.PROCESSING,
    "processing": TaskState.PROCESSING,
}


def normalize_status(raw_status: Any) -> TaskState:
    return STATUS_MAP.get(str(raw_status or "").strip().lower(), TaskState.PROCESSING)


class TaskStatus(BaseModel):
    """Normalized view of one provider task."""

    task_id: str
    state: TaskState
    provider_status: str = ""
    result_url: str | None = None
    duration: float | None = None
    error_message: str | None = None


def _extract_result(data: dict) -> tuple[str | None, float | None]:
    url = data.get("audio_url") or data.get("download_url")
    duration = data.get("duration")
    choices = data.get("choices") or []
    if choices and isinstance(choices[0], dict):
        first = choices[0]
        url = (
            first.get("url")
            or first.get("audio_url")
            or first.get("stream_url")
            or first.get("flac_url")
            or url
        )
        duration = first.get("duration", duration)
    if duration is not None:
        try:
            duration = float(duration)
        except (TypeError, ValueError):
            duration = None
    return url or None, duration


class MurekaClient:
    """Async client for the Mureka REST API.

    Every request carries a short network timeout. Timeouts, transport errors,
    429 and 5xx are raised as ServiceUnavailable; other HTTP errors as
    ExternalServiceError.
    """

    def __init__(self, config: AudioConfig, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.config.api_key)

    def _headers(self) -> dict[str, str]:
        if not self.config.api_key:
            raise ExternalServiceError("MUREKA_API_KEY is not configured")
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = self._headers()
        try:
            async with httpx.AsyncClient(
                timeout=self.config.request_timeout_seconds, transport=self._transport
            ) as client:
                return await client.request(
                    method, f"{self.base_url}{path}", headers=headers, **kwargs
                )
        except httpx.TimeoutException as e:
            raise ServiceUnavailable(f"Mureka API request timeout ({path})") from e
        except httpx.TransportError as e:
            raise ServiceUnavailable(f"Mureka API unreachable: {e}") from e

    @staticmethod
    def _raise_for_status(resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return
        detail = resp.text[:200]
        if resp.status_code == 401:
            raise ExternalServiceError("Invalid Mureka API key")
        if resp.status_code == 402:
            raise ExternalServiceError("Insufficient Mureka credits")
        if resp.status_code == 429:
            raise ServiceUnavailable("Mureka API rate limit exceeded")
        if resp.status_code >= 500:
            raise ServiceUnavailable(f"Mureka API error: {resp.status_code} - {detail}")
        raise ExternalServiceError(f"Mureka API error: {resp.status_code} - {detail}")

    @staticmethod
    def _json(resp: httpx.Response) -> dict:
        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponse(f"Mureka returned invalid JSON: {resp.text[:200]}") from e
        if not isinstance(data, dict):
            raise MalformedResponse(f"Unexpected Mureka response type: {type(data).__name__}")
        return data

    # ── 1. Submit ───────────────────────────────────────

    async def submit(self, lyrics: str, style_prompt: str) -> str:
        """Start a song generation task. Returns the task id."""
        payload = {"lyrics": lyrics, "model": self.config.model, "prompt": style_prompt}
        log.info(
            "Submitting Mureka task: lyrics_len=%d, prompt='%s'",
            len(lyrics),
            style_prompt[:80],
        )
        resp = await self._request("POST", "/song/generate", json=payload)
        self._raise_for_status(resp)
        data = self._json(resp)
        task_id = data.get("id") or data.get("task_id")
        if not task_id:
            raise MalformedResponse(f"No task id in Mureka response: {str(data)[:200]}")
        log.info("Submitted Mureka task %s (status=%s)", task_id, data.get("status"))
        return str(task_id)

    # ── 2. Query ────────────────────────────────────────

    async def query(self, task_id: str) -> TaskStatus:
        """Fetch and normalize the status of one task.

        A 404 means the task is not visible yet and is reported as processing.
        """
        resp = await self._request("GET", f"/song/query/{task_id}")
        if resp.status_code == 404:
            return TaskStatus(task_id=task_id, state=TaskState.PROCESSING, provider_status="not_found")
        self._raise_for_status(resp)
        data = self._json(resp)

        provider_status = str(data.get("status") or "")
        state = normalize_status(provider_status)
        url, duration = _extract_result(data)
        error = data.get("failed_reason") or data.get("error") or None
        log.debug("Mureka task %s: %s → %s", task_id, provider_status, state.value)
        return TaskStatus(
            task_id=task_id,
            state=state,
            provider_status=provider_status,
            result_url=url,
            duration=duration,
            error_message=str(error) if error else None,
        )
