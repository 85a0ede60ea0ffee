"""
CompletionGateway: one "generate reply" call in front of three backends.

The model identifier picks the backend (see catalog.ModelConfig.backend).
There is no fall-back between backends: if the chosen one fails, the call
fails with CompletionError.

Usage is recorded through the injected ledger as a background task once the
reply (or the failure) is known. Tracking never delays or breaks a reply.
"""

from __future__ import annotations

import asyncio
import logging

from searchbox.backends.base import Completion, CompletionBackend, CompletionError
from searchbox.backends.chat_completion import ChatCompletionBackend
from searchbox.backends.direct_generation import DirectGenerationBackend
from searchbox.backends.plain_text import PlainTextBackend
from searchbox.backends.retry_wrapper import RetryingBackend
from searchbox.catalog import CHAT_COMPLETION, DIRECT_GENERATION, PLAIN_TEXT, get_model_config
from searchbox.identity import is_identified

logger = logging.getLogger(__name__)

# Backend kind -> class
PROVIDERS: dict[str, type[CompletionBackend]] = {
    CHAT_COMPLETION: ChatCompletionBackend,
    DIRECT_GENERATION: DirectGenerationBackend,
    PLAIN_TEXT: PlainTextBackend,
}


def _to_wire(turn) -> dict:
    if hasattr(turn, "to_wire"):
        return turn.to_wire()
    return {"content": turn.get("content", ""), "isUser": bool(turn.get("isUser"))}


class CompletionGateway:
    """Selects a backend by model and turns its outcome into text or CompletionError."""

    def __init__(self, backends: dict, ledger=None, anonymous_email: str = ""):
        self.backends = backends
        self.ledger = ledger
        self.anonymous_email = anonymous_email
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, cfg: dict, ledger=None) -> "CompletionGateway":
        """Build every configured backend from the `backends` section of config.yaml."""
        backends = {}
        for kind, backend_cls in PROVIDERS.items():
            bcfg = cfg.get("backends", {}).get(kind)
            if not bcfg or not bcfg.get("url"):
                logger.warning("Backend '%s' has no url, skipping", kind)
                continue
            backend = backend_cls(
                name=kind,
                url=bcfg["url"],
                timeout=float(bcfg.get("timeout", 30)),
                api_key=bcfg.get("api_key", ""),
            )
            max_retries = int(bcfg.get("max_retries", 0))
            if max_retries > 0:
                backend = RetryingBackend(
                    backend,
                    max_retries=max_retries,
                    backoff_base=float(bcfg.get("backoff_base", 2.0)),
                    backoff_max=float(bcfg.get("backoff_max", 10.0)),
                )
            backends[kind] = backend

        logger.info("Completion gateway initialized: %s", ", ".join(backends) or "no backends")
        anonymous = cfg.get("identity", {}).get("anonymous_email", "")
        return cls(backends, ledger=ledger, anonymous_email=anonymous)

    async def complete(self, conversation, model_id: str, user_id: str | None = None) -> Completion:
        """
        Generate the assistant reply to `conversation` with `model_id`.

        Raises:
            CompletionError: 400 for an empty conversation or unknown model,
                             500 when the selected backend fails.
        """
        turns = [_to_wire(t) for t in conversation or []]
        if not turns:
            raise CompletionError("Invalid messages format", status_code=400)

        model_cfg = get_model_config(model_id)
        if model_cfg is None:
            raise CompletionError("Invalid model", status_code=400)

        backend = self.backends.get(model_cfg.backend)
        if backend is None:
            raise CompletionError(f"No backend configured for model '{model_id}'", status_code=500)

        user_input = turns[-1]["content"]
        logger.info("Using model: %s, alias: %s via %s", model_cfg.name, model_cfg.alias, backend.name)
        response = await backend.generate(turns, model_cfg)

        if not response.ok:
            logger.error("Completion failed for model '%s': %s", model_id, response.error)
            self._track(user_id, model_id, user_input, "", False)
            raise CompletionError(response.error or "Internal server error", status_code=500)

        self._track(user_id, model_id, user_input, response.text, True)
        return Completion(text=response.text, model_id=model_id)

    def _track(self, user_id, model_id, user_input, output, succeeded):
        if self.ledger is None or not is_identified(user_id, self.anonymous_email):
            logger.debug("Skipping usage tracking for anonymous user")
            return
        task = asyncio.create_task(
            self.ledger.track(user_id, model_id, user_input, output, succeeded)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tracking_done)

    def _tracking_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Failed to track chat request: %s", exc)

    async def drain(self):
        """Wait for outstanding tracking tasks (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
