"""
Plain-text generation backend (Pollinations text API).

The prompt travels in the URL path and the reply comes back as the raw
response body. Identity instructions are wrapped around the user's query so
the model does not claim to be some other model.
"""

from __future__ import annotations

import logging
import time
from urllib.parse import quote

import httpx

from searchbox.backends.base import BackendResponse, CompletionBackend, latest_turn
from searchbox.catalog import ModelConfig
from searchbox.prompts import identity_prompt

logger = logging.getLogger(__name__)

_HEADERS = {
    "Accept": "text/plain",
    "User-Agent": "Mozilla/5.0 (compatible; searchbox)",
}


class PlainTextBackend(CompletionBackend):
    """Backend for URL-embedded plain-text generation."""

    label = "Text generation API"

    def build_url(self, conversation: list[dict], model_cfg: ModelConfig) -> str:
        prompt = identity_prompt(model_cfg.name, model_cfg.alias, latest_turn(conversation))
        return f"{self.url}/{quote(prompt, safe='')}?model={quote(model_cfg.alias, safe='')}"

    async def generate(self, conversation: list[dict], model_cfg: ModelConfig) -> BackendResponse:
        t0 = time.monotonic()
        url = self.build_url(conversation, model_cfg)
        logger.debug("Calling plain-text backend: %s...", url[:100])
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(url, headers=_HEADERS)
            latency = (time.monotonic() - t0) * 1000

            if resp.status_code >= 400:
                return self._status_response(resp.status_code, resp.text[:200], latency)

            return BackendResponse(
                ok=True,
                status_code=resp.status_code,
                text=resp.text,
                backend_name=self.name,
                latency_ms=latency,
            )
        except httpx.TimeoutException:
            return self._timeout_response((time.monotonic() - t0) * 1000)
        except Exception as e:
            logger.warning("Plain-text backend '%s' failed: %s", self.name, e)
            return BackendResponse(
                ok=False,
                backend_name=self.name,
                latency_ms=(time.monotonic() - t0) * 1000,
                error=str(e) or "Failed to get response from text generation API",
            )
