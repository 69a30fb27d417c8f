"""Uniform retry policy for calls to external providers."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import BaseModel, Field
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from bandgen.errors import ServiceUnavailable

log = logging.getLogger(__name__)

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """Exponential backoff settings for one kind of external service.

    Only ``ServiceUnavailable`` is retried. Anything else (bad credentials,
    malformed output, 4xx) is surfaced on the first attempt.
    """

    max_attempts: int = Field(default=3, ge=1)
    base_delay_seconds: float = Field(default=1.0, ge=0.0)
    multiplier: float = Field(default=2.0, ge=1.0)
    max_delay_seconds: float = Field(default=10.0, ge=0.0)

    def retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.base_delay_seconds,
                exp_base=self.multiplier,
                max=self.max_delay_seconds,
            ),
            retry=retry_if_exception_type(ServiceUnavailable),
            before_sleep=before_sleep_log(log, logging.WARNING),
            reraise=True,
        )

    async def call(
        self, fn: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any
    ) -> T:
        """Await ``fn(*args, **kwargs)`` under this policy."""
        return await self.retrying()(fn, *args, **kwargs)
