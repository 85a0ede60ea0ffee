"""
SearchGateway: retrieve web snippets for a query.

POSTs {"query": ...} to the snippet service with a per-attempt timeout and
a small retry budget. Failure is a normal outcome here, never an exception:
the caller gets SearchOutcome(ok=False) and decides what to do.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

import httpx

from searchbox.identity import is_identified
from searchbox.storage.models import SearchResult, utc_now

logger = logging.getLogger(__name__)


@dataclass
class SearchOutcome:
    ok: bool
    results: list[SearchResult] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    error: str = ""
    timestamp: str = field(default_factory=utc_now)

    @classmethod
    def failure(cls, message: str) -> "SearchOutcome":
        return cls(
            ok=False,
            error=message,
            metadata={
                "status": "Error",
                "processed_at": utc_now(),
                "error_message": message,
            },
        )

    def to_dict(self) -> dict:
        data = {
            "organic_results": [r.to_dict() for r in self.results],
            "search_metadata": self.metadata,
            "timestamp": self.timestamp,
        }
        if not self.ok:
            data["error"] = self.error
        return data


class SearchGateway:
    """Snippet search with timeout, retries and best-effort usage tracking."""

    def __init__(
        self,
        url: str,
        timeout: float = 8.0,
        max_retries: int = 2,
        backoff_max: float = 4.0,
        ledger=None,
        anonymous_email: str = "",
        sleep=asyncio.sleep,
    ):
        self.url = url
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_max = backoff_max
        self.ledger = ledger
        self.anonymous_email = anonymous_email
        self._sleep = sleep
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, cfg: dict, ledger=None) -> "SearchGateway":
        search_cfg = cfg.get("search", {})
        return cls(
            url=search_cfg.get("url", "https://search.snapzion.com/get-snippets"),
            timeout=float(search_cfg.get("timeout", 8)),
            max_retries=int(search_cfg.get("max_retries", 2)),
            backoff_max=float(search_cfg.get("backoff_max", 4)),
            ledger=ledger,
            anonymous_email=cfg.get("identity", {}).get("anonymous_email", ""),
        )

    def _backoff_seconds(self, attempt: int) -> float:
        """Wait after 0-based failed attempt N: 2s, 4s, capped."""
        return min(2 ** (attempt + 1), self.backoff_max)

    async def _attempt(self, query: str) -> SearchOutcome:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(
                self.url,
                json={"query": query},
                headers={"Content-Type": "application/json"},
            )
        if resp.status_code >= 400:
            raise RuntimeError(f"Search API error: {resp.status_code} - {resp.text[:200]}")

        data = resp.json()
        raw = data.get("organic_results") or []
        return SearchOutcome(
            ok=True,
            results=[SearchResult.from_dict(r, i) for i, r in enumerate(raw)],
            metadata=data.get("search_metadata") or {},
        )

    async def search(self, query: str, user_id: str | None = None) -> SearchOutcome:
        query = (query or "").strip()
        if not query:
            return SearchOutcome.failure("Query is required")

        logger.info("Web search request: %r", query)
        last_error = "Failed to fetch search results after multiple attempts"
        attempts = self.max_retries + 1

        for attempt in range(attempts):
            try:
                outcome = await self._attempt(query)
                logger.info("Search successful: retrieved %d results", len(outcome.results))
                self._track(user_id, query, True)
                return outcome
            except httpx.TimeoutException:
                last_error = f"Search request timed out after {self.timeout:g}s"
                logger.error("%s (attempt %d)", last_error, attempt + 1)
            except Exception as e:
                last_error = str(e) or last_error
                logger.error("Search error (attempt %d): %s", attempt + 1, e)

            if attempt < self.max_retries:
                wait = self._backoff_seconds(attempt)
                logger.info("Retrying search in %.1fs...", wait)
                await self._sleep(wait)

        logger.error("All %d search attempts failed for %r", attempts, query)
        self._track(user_id, query, False)
        return SearchOutcome.failure(last_error)

    def _track(self, user_id: str | None, query: str, succeeded: bool):
        if self.ledger is None or not is_identified(user_id, self.anonymous_email):
            return
        task = asyncio.create_task(self.ledger.track_search(user_id, query, succeeded))
        self._tasks.add(task)
        task.add_done_callback(self._tracking_done)

    def _tracking_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Failed to track web search: %s", exc)

    async def drain(self):
        """Wait for outstanding tracking tasks (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
