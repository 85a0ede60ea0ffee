"""
HTTP client for a running searchbox server.

Implements the two collaborators ChatOrchestrator needs (search, complete)
over POST /web-search and POST /chat, so a terminal session drives exactly
the same surface a browser would.
"""

from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from searchbox.backends.base import Completion, CompletionError
from searchbox.identity import COOKIE_NAME
from searchbox.search import SearchOutcome
from searchbox.storage.models import SearchResult, utc_now

logger = logging.getLogger(__name__)


class ApiClient:
    """Thin async wrapper around the searchbox HTTP surface."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        user_email: str | None = None,
        timeout: float = 120.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.user_email = user_email
        self.timeout = timeout

    def _cookies(self) -> dict:
        if not self.user_email:
            return {}
        return {COOKIE_NAME: quote(self.user_email, safe="")}

    async def search(self, query: str) -> SearchOutcome:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, cookies=self._cookies()) as client:
                resp = await client.post(f"{self.base_url}/web-search", json={"query": query})
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Web search request failed: %s", e)
            return SearchOutcome.failure(str(e) or "Failed to get search results")

        if resp.status_code >= 400:
            return SearchOutcome.failure(data.get("error") or "Failed to get search results")

        raw = data.get("organic_results") or []
        return SearchOutcome(
            ok=True,
            results=[SearchResult.from_dict(r, i) for i, r in enumerate(raw)],
            metadata=data.get("search_metadata") or {},
            timestamp=data.get("timestamp") or utc_now(),
        )

    async def complete(self, conversation: list[dict], model_id: str) -> Completion:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, cookies=self._cookies()) as client:
                resp = await client.post(
                    f"{self.base_url}/chat",
                    json={"messages": conversation, "model": model_id},
                )
            data = resp.json()
        except httpx.TimeoutException as e:
            raise CompletionError("Request to the server timed out") from e
        except (httpx.HTTPError, ValueError) as e:
            raise CompletionError(str(e) or "Failed to get response") from e

        if resp.status_code >= 400:
            raise CompletionError(data.get("error") or "Failed to get response", resp.status_code)
        return Completion(
            text=data.get("text", ""),
            model_id=data.get("model", model_id),
            timestamp=data.get("timestamp") or utc_now(),
        )

    async def dashboard(self, id_token: str, force_refresh: bool = False) -> dict:
        params = {"_nocache": "1"} if force_refresh else None
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.get(
                f"{self.base_url}/dashboard",
                params=params,
                headers={"Authorization": f"Bearer {id_token}"},
            )
        resp.raise_for_status()
        return resp.json()
