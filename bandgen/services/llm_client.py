"""Language-model client: system + user prompt in, text out.

Talks to any OpenAI-compatible chat endpoint (OpenRouter by default).
Provider errors are mapped onto the pipeline taxonomy so the retry policy
can tell transient failures from permanent ones.
"""

from __future__ import annotations

import logging
import time

import openai
from openai import AsyncOpenAI

from bandgen.agent.debug import (
    trace_final_output,
    trace_model_config,
    trace_prompts,
    trace_usage,
)
from bandgen.config import LanguageModelConfig
from bandgen.errors import ExternalServiceError, MalformedResponse, ServiceUnavailable

log = logging.getLogger(__name__)

_TRANSIENT_ERRORS = (
    openai.APITimeoutError,
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class LanguageModelClient:
    def __init__(self, config: LanguageModelConfig, client: AsyncOpenAI | None = None):
        self.config = config
        self._client = client

    def is_configured(self) -> bool:
        return bool(self.config.api_key) or self._client is not None

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.config.api_key:
                raise ExternalServiceError("Language-model API key is not configured")
            self._client = AsyncOpenAI(
                base_url=self.config.base_url,
                api_key=self.config.api_key,
                timeout=self.config.request_timeout_seconds,
                max_retries=0,
            )
        return self._client

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int | None = None,
        temperature: float = 0.7,
    ) -> str:
        """Run one chat completion and return the assistant text."""
        max_tokens = max_tokens or self.config.max_tokens
        if self.config.debug:
            trace_model_config(self.config.model, self.config.base_url, max_tokens, temperature)
            trace_prompts(system_prompt, user_prompt)

        start = time.time()
        try:
            response = await self._get_client().chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except _TRANSIENT_ERRORS as e:
            raise ServiceUnavailable(f"Language-model request failed: {e}") from e
        except openai.APIError as e:
            raise ExternalServiceError(f"Language-model request rejected: {e}") from e

        if not response.choices:
            raise MalformedResponse("Language-model response has no choices")
        text = response.choices[0].message.content or ""
        log.info(
            "Language-model call (%s) returned %d chars in %.2fs",
            self.config.model,
            len(text),
            time.time() - start,
        )
        if self.config.debug:
            trace_final_output(text)
            trace_usage(response.usage)
        if not text.strip():
            raise MalformedResponse("Language-model returned an empty response")
        return text
