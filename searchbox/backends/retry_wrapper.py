"""
Retry wrapper for completion backends with exponential backoff.

Every failed attempt (timeout, non-2xx, transport error) is retried until
max_retries is used up. Delay before retry N (0-based) is backoff_base ** N,
so the defaults wait 1s then 2s. A timeout on the final attempt is reported
with the total attempt count.
"""

from __future__ import annotations

import asyncio
import logging

from searchbox.backends.base import BackendResponse, CompletionBackend
from searchbox.catalog import ModelConfig

logger = logging.getLogger(__name__)


class RetryingBackend:
    """
    Wraps any backend with exponential backoff retry logic.
    Exposes the same generate() contract as the wrapped backend.
    """

    def __init__(
        self,
        backend: CompletionBackend,
        max_retries: int = 2,
        backoff_base: float = 2.0,
        backoff_max: float = 10.0,
        sleep=asyncio.sleep,
    ):
        self.backend = backend
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self._sleep = sleep

        self.name = backend.name
        self.url = backend.url
        self.timeout = backend.timeout
        self.label = backend.label

    def _backoff_seconds(self, attempt: int) -> float:
        """Backoff before retrying after 0-based attempt N."""
        return min(self.backoff_base ** attempt, self.backoff_max)

    async def generate(self, conversation: list[dict], model_cfg: ModelConfig) -> BackendResponse:
        attempts = self.max_retries + 1
        for attempt in range(attempts):
            logger.debug(
                "Attempt %d/%d for model '%s' on '%s'",
                attempt + 1, attempts, model_cfg.alias, self.name,
            )
            response = await self.backend.generate(conversation, model_cfg)
            if response.ok:
                return response

            if attempt < self.max_retries:
                backoff = self._backoff_seconds(attempt)
                logger.warning(
                    "Backend '%s' attempt %d failed for '%s', retry in %.1fs (%d/%d): %s",
                    self.name, attempt + 1, model_cfg.alias, backoff,
                    attempt + 1, self.max_retries, response.error,
                )
                await self._sleep(backoff)
                continue

            logger.error(
                "Backend '%s' exhausted retries for '%s' (last: %s)",
                self.name, model_cfg.alias, response.error,
            )
            if response.timed_out:
                response.error = f"{self.label} request timed out after {attempts} attempts"
            return response

        return response

    def __repr__(self) -> str:
        return f"<RetryingBackend {self.backend!r} max_retries={self.max_retries}>"
