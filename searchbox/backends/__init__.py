"""
Completion backends for searchbox.
One backend per completion strategy, selected by model identifier.
"""
from searchbox.backends.base import (
    BackendResponse,
    Completion,
    CompletionBackend,
    CompletionError,
)
from searchbox.backends.chat_completion import ChatCompletionBackend
from searchbox.backends.direct_generation import DirectGenerationBackend
from searchbox.backends.plain_text import PlainTextBackend
from searchbox.backends.retry_wrapper import RetryingBackend
from searchbox.backends.gateway import CompletionGateway

__all__ = [
    "BackendResponse",
    "Completion",
    "CompletionBackend",
    "CompletionError",
    "ChatCompletionBackend",
    "DirectGenerationBackend",
    "PlainTextBackend",
    "RetryingBackend",
    "CompletionGateway",
]
