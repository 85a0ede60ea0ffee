"""
Structured chat-completion backend (Groq, or any OpenAI-compatible endpoint).

Sends the whole conversation as role-tagged turns. One attempt, one timeout.
"""

from __future__ import annotations

import logging
import time

import httpx

from searchbox.backends.base import BackendResponse, CompletionBackend
from searchbox.catalog import ModelConfig

logger = logging.getLogger(__name__)


class ChatCompletionBackend(CompletionBackend):
    """Backend for /chat/completions style APIs."""

    label = "Chat completion API"

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @staticmethod
    def build_body(conversation: list[dict], model_cfg: ModelConfig) -> dict:
        return {
            "messages": [
                {
                    "role": "user" if turn.get("isUser") else "assistant",
                    "content": turn.get("content", ""),
                }
                for turn in conversation
            ],
            "model": model_cfg.alias,
            "temperature": model_cfg.temperature,
            "max_tokens": model_cfg.max_tokens,
        }

    async def generate(self, conversation: list[dict], model_cfg: ModelConfig) -> BackendResponse:
        t0 = time.monotonic()
        body = self.build_body(conversation, model_cfg)
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(
                    f"{self.url}/chat/completions",
                    json=body,
                    headers=self._headers(),
                )
            latency = (time.monotonic() - t0) * 1000

            if resp.status_code >= 400:
                try:
                    detail = resp.json().get("error", {}).get("message", "")
                except (ValueError, AttributeError):
                    detail = resp.text[:200]
                return self._status_response(resp.status_code, detail, latency)

            data = resp.json()
            choices = data.get("choices") or [{}]
            text = (choices[0].get("message") or {}).get("content") or "No response from model"
            return BackendResponse(
                ok=True,
                status_code=resp.status_code,
                text=text,
                backend_name=self.name,
                latency_ms=latency,
            )
        except httpx.TimeoutException:
            return self._timeout_response((time.monotonic() - t0) * 1000)
        except Exception as e:
            logger.warning("Chat completion backend '%s' failed: %s", self.name, e)
            return BackendResponse(
                ok=False,
                backend_name=self.name,
                latency_ms=(time.monotonic() - t0) * 1000,
                error=str(e) or "Failed to get response from chat completion API",
            )
