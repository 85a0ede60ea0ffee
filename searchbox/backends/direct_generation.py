"""
Direct single-turn generation backend (Gemini generateContent).

Only the latest turn is sent. A non-2xx status or a body without a
candidates list is a hard failure.
"""

from __future__ import annotations

import logging
import time

import httpx

from searchbox.backends.base import BackendResponse, CompletionBackend, latest_turn
from searchbox.catalog import ModelConfig

logger = logging.getLogger(__name__)


class DirectGenerationBackend(CompletionBackend):
    """Backend for generateContent style APIs."""

    label = "Direct generation API"

    @staticmethod
    def build_body(conversation: list[dict], model_cfg: ModelConfig) -> dict:
        return {
            "contents": [{"parts": [{"text": latest_turn(conversation)}]}],
            "generationConfig": {
                "temperature": model_cfg.temperature,
                "maxOutputTokens": model_cfg.max_tokens,
            },
        }

    async def generate(self, conversation: list[dict], model_cfg: ModelConfig) -> BackendResponse:
        t0 = time.monotonic()
        body = self.build_body(conversation, model_cfg)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    self.url,
                    params={"key": self.api_key},
                    json=body,
                    headers={"Content-Type": "application/json"},
                )
            latency = (time.monotonic() - t0) * 1000

            if resp.status_code >= 400:
                try:
                    detail = resp.json().get("error", {}).get("message", "")
                except (ValueError, AttributeError):
                    detail = ""
                return self._status_response(resp.status_code, detail, latency)

            try:
                data = resp.json()
                candidates = data["candidates"]
            except (ValueError, KeyError, TypeError):
                return BackendResponse(
                    ok=False,
                    status_code=502,
                    backend_name=self.name,
                    latency_ms=latency,
                    error=f"{self.label} returned a malformed response",
                )

            text = ""
            if candidates:
                parts = (candidates[0].get("content") or {}).get("parts") or [{}]
                text = parts[0].get("text", "")
            return BackendResponse(
                ok=True,
                status_code=resp.status_code,
                text=text or "No response from model",
                backend_name=self.name,
                latency_ms=latency,
            )
        except httpx.TimeoutException:
            return self._timeout_response((time.monotonic() - t0) * 1000)
        except Exception as e:
            logger.warning("Direct generation backend '%s' failed: %s", self.name, e)
            return BackendResponse(
                ok=False,
                backend_name=self.name,
                latency_ms=(time.monotonic() - t0) * 1000,
                error=str(e) or "Failed to get response from direct generation API",
            )
