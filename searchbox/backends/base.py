"""
Base completion backend abstraction.
All backends implement this interface so the gateway can treat them uniformly.
Backends never raise for upstream trouble: they report it in a
BackendResponse and the gateway turns hard failures into CompletionError.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field

from searchbox.catalog import ModelConfig
from searchbox.storage.models import utc_now

logger = logging.getLogger(__name__)


class CompletionError(Exception):
    """The one error the completion gateway raises. Message is user-facing."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass
class BackendResponse:
    """Standardized response from any backend."""
    ok: bool
    status_code: int = 200
    text: str = ""
    backend_name: str = ""
    latency_ms: float = 0.0
    error: str = ""
    timed_out: bool = False


@dataclass(frozen=True)
class Completion:
    """A successful reply, stripped of anything backend-specific."""
    text: str
    model_id: str
    timestamp: str = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {"text": self.text, "model": self.model_id, "timestamp": self.timestamp}


def latest_turn(conversation: list[dict]) -> str:
    """
    Content of the turn the reply answers: the last one sent. For prompted
    turns this is the instruction prompt, which embeds the user query.
    """
    return conversation[-1].get("content", "") if conversation else ""


class CompletionBackend(abc.ABC):
    """
    Abstract base for completion backends.
    Each backend knows how to turn a conversation into one reply.
    """

    # Used in user-facing error messages, e.g. "Text generation API request failed".
    label = "Completion API"

    def __init__(self, name: str, url: str, timeout: float = 30.0, api_key: str = ""):
        self.name = name
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.api_key = api_key

    @abc.abstractmethod
    async def generate(self, conversation: list[dict], model_cfg: ModelConfig) -> BackendResponse:
        """
        Produce one reply for the conversation.
        `conversation` is a list of {"content", "isUser"} dicts, oldest first.
        """
        ...

    def _timeout_response(self, latency: float) -> BackendResponse:
        logger.warning("Backend '%s' timed out after %.0fms", self.name, latency)
        return BackendResponse(
            ok=False,
            status_code=504,
            backend_name=self.name,
            latency_ms=latency,
            error=f"{self.label} request timed out after {self.timeout:g} seconds",
            timed_out=True,
        )

    def _status_response(self, status_code: int, detail: str, latency: float) -> BackendResponse:
        return BackendResponse(
            ok=False,
            status_code=status_code,
            backend_name=self.name,
            latency_ms=latency,
            error=f"{self.label} request failed: Status {status_code} - {detail or 'No error details available'}",
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r} url={self.url!r}>"
