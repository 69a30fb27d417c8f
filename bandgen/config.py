"""Pipeline configuration.

Everything the executor, poller and orchestrator need to know about the
outside world lives here and is injected at construction time. Only
``PipelineConfig.from_env`` looks at environment variables.
"""

from __future__ import annotations

import os
from typing import Mapping

from pydantic import BaseModel, Field

from bandgen.services.retry import RetryPolicy

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_LLM_MODEL = "anthropic/claude-3.5-sonnet"
FAL_FLUX_URL = "https://fal.run/fal-ai/flux/schnell"
MUREKA_BASE_URL = "https://api.mureka.ai/v1"


class CollectionConfig(BaseModel):
    database_id: str = "mitchly-music-db"
    bands: str = "bands"
    albums: str = "albums"
    songs: str = "songs"


class PollingConfig(BaseModel):
    """Timing knobs for the status poller (all durations in seconds)."""

    rate_limit_cooldown_seconds: float = Field(default=20.0, ge=0.0)
    initial_delay_seconds: float = Field(default=30.0, ge=0.0)
    api_call_delay_seconds: float = Field(default=0.5, ge=0.0)
    batch_size: int = Field(default=5, ge=1)
    max_records_per_run: int = Field(default=25, ge=1)
    timeout_minutes: float = Field(default=30.0, gt=0.0)
    wait_ceiling_seconds: float = Field(default=30.0, ge=0.0)
    wait_interval_seconds: float = Field(default=5.0, gt=0.0)


class LanguageModelConfig(BaseModel):
    api_key: str | None = None
    base_url: str = OPENROUTER_BASE_URL
    model: str = DEFAULT_LLM_MODEL
    max_tokens: int = 4000
    profile_temperature: float = 0.7
    lyrics_temperature: float = 0.8
    request_timeout_seconds: float = 120.0
    debug: bool = False


class ImageConfig(BaseModel):
    api_key: str | None = None
    endpoint: str = FAL_FLUX_URL
    request_timeout_seconds: float = 60.0


class AudioConfig(BaseModel):
    api_key: str | None = None
    base_url: str = MUREKA_BASE_URL
    model: str = "auto"
    style_prompt_limit: int = Field(default=1000, ge=4)
    request_timeout_seconds: float = 30.0


class RetryConfig(BaseModel):
    llm: RetryPolicy = Field(default_factory=RetryPolicy)
    images: RetryPolicy = Field(default_factory=lambda: RetryPolicy(max_attempts=2))
    tasks: RetryPolicy = Field(default_factory=RetryPolicy)


class PipelineConfig(BaseModel):
    collections: CollectionConfig = Field(default_factory=CollectionConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    llm: LanguageModelConfig = Field(default_factory=LanguageModelConfig)
    images: ImageConfig = Field(default_factory=ImageConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)
    retries: RetryConfig = Field(default_factory=RetryConfig)
    max_error_length: int = Field(default=500, ge=20)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PipelineConfig":
        """Build a config from environment variables, falling back to defaults."""
        env = os.environ if environ is None else environ

        def _float(name: str, default: float) -> float:
            raw = env.get(name)
            return float(raw) if raw not in (None, "") else default

        polling = PollingConfig(
            rate_limit_cooldown_seconds=_float("POLL_RATE_LIMIT_COOLDOWN", 20.0),
            initial_delay_seconds=_float("POLL_INITIAL_DELAY", 30.0),
            api_call_delay_seconds=_float("POLL_API_CALL_DELAY", 0.5),
            batch_size=int(_float("POLL_BATCH_SIZE", 5)),
            max_records_per_run=int(_float("POLL_MAX_RECORDS_PER_RUN", 25)),
            timeout_minutes=_float("POLL_TIMEOUT_MINUTES", 30.0),
            wait_ceiling_seconds=_float("AUDIO_WAIT_CEILING", 30.0),
            wait_interval_seconds=_float("AUDIO_WAIT_INTERVAL", 5.0),
        )
        llm = LanguageModelConfig(
            api_key=env.get("OPENROUTER_API_KEY") or None,
            base_url=env.get("LLM_BASE_URL") or OPENROUTER_BASE_URL,
            model=env.get("LLM_MODEL") or DEFAULT_LLM_MODEL,
            max_tokens=int(_float("LLM_MAX_TOKENS", 4000)),
            debug=env.get("LLM_DEBUG", "").lower() in ("1", "true", "yes"),
        )
        images = ImageConfig(
            api_key=env.get("FAL_API_KEY") or None,
            endpoint=env.get("FAL_ENDPOINT") or FAL_FLUX_URL,
        )
        audio = AudioConfig(
            api_key=env.get("MUREKA_API_KEY") or None,
            base_url=env.get("MUREKA_BASE_URL") or MUREKA_BASE_URL,
            model=env.get("MUREKA_MODEL") or "auto",
            request_timeout_seconds=_float("MUREKA_REQUEST_TIMEOUT", 30.0),
        )
        collections = CollectionConfig(
            database_id=env.get("DATABASE_ID") or "mitchly-music-db",
        )
        return cls(
            collections=collections,
            polling=polling,
            llm=llm,
            images=images,
            audio=audio,
        )
