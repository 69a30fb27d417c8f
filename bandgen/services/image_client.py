"""HTTP client for fal.ai text-to-image (flux schnell).

Image generation is optional: without an API key the client reports itself
unconfigured and ``generate`` returns None instead of raising.
"""

from __future__ import annotations

import logging

import httpx

from bandgen.config import ImageConfig
from bandgen.errors import ExternalServiceError, MalformedResponse, ServiceUnavailable

log = logging.getLogger(__name__)

ASPECTS = {"square", "square_hd", "portrait_4_3", "portrait_16_9", "landscape_4_3", "landscape_16_9"}


class FalImageClient:
    def __init__(self, config: ImageConfig, transport: httpx.AsyncBaseTransport | None = None):
        self.config = config
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.config.api_key)

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Key {self.config.api_key}",
            "Content-Type": "application/json",
        }

    async def generate(self, prompt: str, aspect: str = "square") -> str | None:
        """Generate one image and return its URL, or None when disabled.

        POST {endpoint} {"prompt", "image_size", "num_images": 1} → {"images": [{"url": ...}]}
        """
        if not self.is_configured():
            return None
        if aspect not in ASPECTS:
            raise ValueError(f"Unsupported image aspect: {aspect}")

        payload = {"prompt": prompt, "image_size": aspect, "num_images": 1}
        try:
            async with httpx.AsyncClient(
                timeout=self.config.request_timeout_seconds, transport=self._transport
            ) as client:
                resp = await client.post(self.config.endpoint, json=payload, headers=self._headers())
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise ServiceUnavailable(f"fal.ai request failed: {e}") from e

        if resp.status_code == 429 or resp.status_code >= 500:
            raise ServiceUnavailable(f"fal.ai error {resp.status_code}: {resp.text[:200]}")
        if resp.status_code >= 400:
            raise ExternalServiceError(f"fal.ai error {resp.status_code}: {resp.text[:200]}")

        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponse(f"fal.ai returned invalid JSON: {resp.text[:200]}") from e

        images = data.get("images") or []
        url = images[0].get("url") if images and isinstance(images[0], dict) else None
        if not url:
            raise MalformedResponse("No image returned from fal.ai")
        log.info("Generated %s image: %s", aspect, url)
        return url
