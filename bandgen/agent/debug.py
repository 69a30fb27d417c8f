"""Debug tracing utilities for language-model calls."""

from __future__ import annotations

import json
import logging
from typing import Any

log = logging.getLogger(__name__)


def _format_value(value: Any, max_length: int | None = 300) -> str:
    """Format a value for display, truncating if needed."""
    if isinstance(value, str):
        s = value
    elif isinstance(value, bytes):
        s = f"<bytes {len(value)} bytes>"
    elif isinstance(value, dict):
        s = json.dumps(value, indent=2, default=str)
    else:
        s = str(value)

    if max_length is not None and len(s) > max_length:
        return s[:max_length] + f"\n... (truncated {len(s) - max_length} chars)"
    return s


def _banner(title: str) -> None:
    log.debug("=" * 80)
    log.debug(title)
    log.debug("=" * 80)


def trace_model_config(model_name: str, base_url: str, max_tokens: int, temperature: float) -> None:
    """Log model configuration."""
    _banner("MODEL CONFIGURATION")
    log.debug(f"Model: {model_name}")
    log.debug(f"Base URL: {base_url}")
    log.debug(f"Max tokens: {max_tokens}  Temperature: {temperature}")


def trace_prompts(system_prompt: str, user_prompt: str) -> None:
    """Log the system and user prompts."""
    _banner("SYSTEM PROMPT")
    log.debug(_format_value(system_prompt, max_length=None))
    _banner("USER PROMPT")
    log.debug(_format_value(user_prompt, max_length=2000))


def trace_final_output(output: Any) -> None:
    """Log the raw model output."""
    _banner("FINAL OUTPUT")
    log.debug(_format_value(output, max_length=None))


def trace_usage(usage: Any) -> None:
    """Log token usage information."""
    if usage is None:
        return
    _banner("API USAGE")
    log.debug(_format_value(usage))
