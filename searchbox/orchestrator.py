"""
ChatOrchestrator: drives one chat session from submission to reply.

A turn moves through

    IDLE -> USER_SUBMITTED -> (SEARCH_PENDING)? -> (THINKING_PENDING)?
         -> COMPLETION_PENDING -> RESOLVED

Exactly one turn may be in flight. A submission while another is pending is
rejected, not queued. Search failure degrades the answer (no results) but
never blocks the completion; completion failure is shown in-line as an
assistant message carrying the error text. Nothing raised by a collaborator
escapes submit().

The orchestrator owns the conversation log. It is transport-agnostic: give
it any async `search(query)` returning a SearchOutcome and any async
`complete(conversation, model_id)` returning a Completion, e.g. the in-process
gateways or searchbox.client.ApiClient.
"""

from __future__ import annotations

import asyncio
import enum
import logging

from searchbox.backends.base import CompletionError
from searchbox.catalog import DEFAULT_MODEL, is_valid_model
from searchbox.prompts import (
    RESEARCH_PREFIX,
    WEB_SEARCH_PREFIX,
    clean_response,
    final_prompt,
    format_search_results,
    research_instructions,
    web_search_instructions,
)
from searchbox.storage.models import Message

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Something went wrong. Please try again."


class Mode(str, enum.Enum):
    CHAT = "chat"
    WEB_SEARCH = "web"
    RESEARCH = "research"


class State(str, enum.Enum):
    IDLE = "idle"
    USER_SUBMITTED = "user_submitted"
    SEARCH_PENDING = "search_pending"
    THINKING_PENDING = "thinking_pending"
    COMPLETION_PENDING = "completion_pending"
    RESOLVED = "resolved"


def classify(raw: str, mode: Mode) -> tuple[Mode, str, str]:
    """
    Resolve the mode of a raw submission.

    Returns (mode, query, content): `query` is what gets searched for,
    `content` is what goes into the conversation log.
    """
    text = raw.strip()
    lowered = text.lower()
    if lowered.startswith("web search:"):
        mode, query = Mode.WEB_SEARCH, text[len("web search:"):].strip()
    elif lowered.startswith("research:"):
        mode, query = Mode.RESEARCH, text[len("research:"):].strip()
    else:
        query = text

    if mode is Mode.WEB_SEARCH:
        return mode, query, f"{WEB_SEARCH_PREFIX} {query}"
    if mode is Mode.RESEARCH:
        return mode, query, f"{RESEARCH_PREFIX} {query}"
    return mode, query, text


class ThinkingGate:
    """Explicit completion signal for the thinking sub-phase."""

    def __init__(self):
        self._event = asyncio.Event()

    def signal(self):
        self._event.set()

    def reset(self):
        self._event.clear()

    async def wait(self):
        await self._event.wait()


class ChatOrchestrator:
    """State machine for one chat session."""

    def __init__(
        self,
        search,
        complete,
        model_id: str = DEFAULT_MODEL,
        mode: Mode = Mode.CHAT,
        thinking_enabled: bool = False,
        search_display_delay: float = 1.0,
        on_event=None,
        history=None,
        sleep=asyncio.sleep,
    ):
        self._search = search
        self._complete = complete
        self.model_id = model_id
        self.mode = mode
        self.thinking_enabled = thinking_enabled and mode is Mode.CHAT
        self.search_display_delay = search_display_delay
        self.on_event = on_event
        self.history = history
        self._sleep = sleep

        self._messages: list[Message] = list(history.load()) if history is not None else []
        self.state = State.IDLE
        self.pending: tuple[str, str] | None = None  # (message id, content)
        self.waiting_for_response = False
        self.current_search_results: list = []
        self.current_search_query = ""
        self.current_thinking = ""
        self.thinking_gate = ThinkingGate()

    # ------------------------------------------------------------------
    # Read-side
    # ------------------------------------------------------------------

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def is_busy(self) -> bool:
        return self.pending is not None

    # ------------------------------------------------------------------
    # UI controls
    # ------------------------------------------------------------------

    def set_mode(self, mode: Mode):
        self.mode = mode
        if mode is not Mode.CHAT:
            self.thinking_enabled = False

    def set_thinking(self, enabled: bool):
        self.thinking_enabled = enabled and self.mode is Mode.CHAT

    def set_model(self, model_id: str) -> bool:
        if not is_valid_model(model_id):
            logger.warning("Ignoring unknown model '%s'", model_id)
            return False
        self.model_id = model_id
        return True

    def thinking_complete(self):
        """Signal that the deliberation has been shown; the completion may fire."""
        self.thinking_gate.signal()

    def clear(self):
        """Drop the conversation log and saved history. Ignored mid-turn."""
        if self.is_busy:
            logger.warning("Cannot clear chat while a turn is pending")
            return
        self._messages.clear()
        self.current_search_results = []
        self.current_search_query = ""
        if self.history is not None:
            self.history.clear()
        self._set_state(State.IDLE)

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    async def submit(self, text: str) -> Message | None:
        """
        Run one turn. Returns the assistant message appended for it, or None
        if the submission was rejected (empty text or a turn already pending).
        """
        if not text or not text.strip():
            return None
        if self.pending is not None:
            logger.info("Submission rejected: a turn is already pending")
            return None

        mode, query, content = classify(text, self.mode)
        if mode is not self.mode:
            self.set_mode(mode)

        user_message = Message(content=content, is_user=True)
        self.pending = (user_message.id, content)
        self._append(user_message)
        self._set_state(State.USER_SUBMITTED)

        if mode is Mode.WEB_SEARCH:
            await self._run_search(query)

        thinking = self.thinking_enabled and mode is Mode.CHAT
        if thinking:
            await self._run_thinking(query)

        return await self._send_final_response(mode, prompted=thinking)

    async def _run_search(self, query: str):
        self._set_state(State.SEARCH_PENDING)
        self.current_search_query = query
        try:
            outcome = await self._search(query)
        except Exception as e:
            logger.error("Web search error: %s", e)
            outcome = None

        if outcome is not None and outcome.ok:
            self.current_search_results = list(outcome.results)
            self._emit("search_results", {
                "query": query,
                "results": self.current_search_results,
            })
            await self._sleep(self.search_display_delay)
        else:
            if outcome is not None:
                logger.warning("Web search failed, answering without results: %s", outcome.error)
            self.current_search_results = []
            self._emit("search_results", {"query": query, "results": []})

    async def _run_thinking(self, query: str):
        self._set_state(State.THINKING_PENDING)
        self.thinking_gate.reset()
        self.current_thinking = f"Thinking about: {query}"
        self._emit("thinking", {"text": self.current_thinking})
        await self.thinking_gate.wait()

    def _build_conversation(self, mode: Mode, prompted: bool) -> list[dict]:
        message_id, content = self.pending
        turns = [m.to_wire() for m in self._messages if m.id != message_id]
        turns.append({"content": content, "isUser": True})

        if mode is Mode.WEB_SEARCH:
            results_text = format_search_results(self.current_search_results)
            if results_text:
                turns.append({"content": results_text, "isUser": False})
            instructions = web_search_instructions(
                self.current_search_query or content[len(WEB_SEARCH_PREFIX):].strip(),
                results_text,
            )
            turns.append({"content": final_prompt(content, instructions), "isUser": False})
        elif mode is Mode.RESEARCH:
            turns.append({"content": final_prompt(content, research_instructions()), "isUser": False})
        elif prompted:
            turns.append({"content": final_prompt(content), "isUser": False})
        return turns

    async def _send_final_response(self, mode: Mode | None = None, prompted: bool = False) -> Message | None:
        if self.pending is None or self.waiting_for_response:
            logger.debug("Final response already in flight, ignoring")
            return None

        mode = mode or self.mode
        self.waiting_for_response = True
        self._set_state(State.COMPLETION_PENDING)
        use_results = mode is Mode.WEB_SEARCH
        try:
            conversation = self._build_conversation(mode, prompted)
            logger.debug(
                "Sending prompt to model with %d search results",
                len(self.current_search_results),
            )
            completion = await self._complete(conversation, self.model_id)
            reply = Message(
                content=clean_response(completion.text),
                is_user=False,
                search_results=tuple(self.current_search_results) if use_results else None,
                search_query=self.current_search_query if use_results else None,
                model_id=self.model_id,
            )
        except Exception as e:
            if isinstance(e, CompletionError):
                error_text = e.message
            else:
                logger.error("Completion failed: %s", e)
                error_text = str(e) or GENERIC_ERROR
            reply = Message(content=error_text, is_user=False)
            self.current_search_results = []
            self.current_search_query = ""
        finally:
            self.pending = None
            self.waiting_for_response = False
            self.current_thinking = ""

        self._append(reply)
        self._set_state(State.RESOLVED)
        return reply

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _append(self, message: Message):
        self._messages.append(message)
        if self.history is not None:
            self.history.save(self._messages)
        self._emit("message", {"message": message})

    def _set_state(self, state: State):
        self.state = state
        self._emit("state", {"state": state})

    def _emit(self, name: str, payload: dict):
        if self.on_event is None:
            return
        try:
            self.on_event(name, payload)
        except Exception as e:
            logger.warning("Event observer failed on '%s': %s", name, e)
