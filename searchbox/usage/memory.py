"""
In-process usage ledger.

Holds every user's record in a dict owned by this instance. Create one at
process start and hand it to whatever needs it; separate instances never
share state, which keeps tests isolated.

All mutations run on the event loop thread with no await between read and
write, so each increment is atomic with respect to other requests.

Chat and search history is kept per user in a bounded deque: only the most
recent `history_limit` entries survive.
"""

from __future__ import annotations

import logging
from collections import deque

from searchbox.catalog import display_name
from searchbox.costs import IMAGE_COST, CostEstimate, estimate
from searchbox.storage.models import ModelUsage, UsageRecord, UserProfile, utc_now
from searchbox.usage.base import UsageLedger

logger = logging.getLogger(__name__)


class MemoryUsageLedger(UsageLedger):
    """Usage ledger backed by process memory."""

    name = "memory"

    def __init__(self, cache_ttl: float = 60.0, read_timeout: float = 5.0, history_limit: int = 50):
        super().__init__(cache_ttl=cache_ttl, read_timeout=read_timeout)
        self.history_limit = history_limit
        self._profiles: dict[str, UserProfile] = {}
        self._records: dict[str, UsageRecord] = {}
        self._chat_history: dict[str, deque] = {}
        self._search_history: dict[str, deque] = {}

    def _history(self, store: dict[str, deque], user_id: str) -> deque:
        if user_id not in store:
            store[user_id] = deque(maxlen=self.history_limit)
        return store[user_id]

    def _ensure_user(self, user_id: str) -> UsageRecord:
        if user_id not in self._records:
            self._profiles[user_id] = UserProfile.for_user(user_id)
            self._records[user_id] = UsageRecord()
            logger.info("Created usage record for %s", user_id)
        return self._records[user_id]

    @staticmethod
    def _count_outcome(record: UsageRecord, succeeded: bool):
        record.total_requests += 1
        if succeeded:
            record.successful_requests += 1
        else:
            record.failed_requests += 1
        record.last_updated = utc_now()

    async def track(
        self,
        user_id: str,
        model_id: str,
        input_text: str,
        output_text: str,
        succeeded: bool,
    ) -> CostEstimate:
        model_name = display_name(model_id)
        est = estimate(model_name, input_text, output_text)

        record = self._ensure_user(user_id)
        self._count_outcome(record, succeeded)
        record.input_tokens += est.input_tokens
        record.output_tokens += est.output_tokens
        record.estimated_cost += est.cost

        usage = record.model_usage.setdefault(model_name, ModelUsage())
        usage.requests += 1
        usage.input_tokens += est.input_tokens
        usage.output_tokens += est.output_tokens
        usage.cost += est.cost

        self._history(self._chat_history, user_id).append({
            "modelId": model_id,
            "modelName": model_name,
            "inputText": input_text,
            "outputText": output_text if succeeded else "",
            "inputTokens": est.input_tokens,
            "outputTokens": est.output_tokens,
            "cost": est.cost,
            "isSuccessful": succeeded,
            "timestamp": record.last_updated,
        })
        self.cache.invalidate(user_id)

        logger.debug(
            "Tracked chat for %s: model=%s in=%d out=%d cost=%.6f ok=%s",
            user_id, model_name, est.input_tokens, est.output_tokens, est.cost, succeeded,
        )
        return est

    async def track_search(self, user_id: str, query: str, succeeded: bool) -> None:
        record = self._ensure_user(user_id)
        self._count_outcome(record, succeeded)
        self._history(self._search_history, user_id).append({
            "query": query,
            "isSuccessful": succeeded,
            "timestamp": record.last_updated,
        })
        self.cache.invalidate(user_id)

    async def track_image(self, user_id: str, prompt: str, succeeded: bool) -> float:
        record = self._ensure_user(user_id)
        self._count_outcome(record, succeeded)
        cost = IMAGE_COST if succeeded else 0.0
        if succeeded:
            record.images_generated += 1
            record.estimated_cost += cost
        self.cache.invalidate(user_id)
        return cost

    async def _read_user(self, user_id: str) -> tuple[UserProfile, UsageRecord]:
        record = self._ensure_user(user_id)
        return self._profiles[user_id], record

    def get_chat_history(self, user_id: str, limit: int = 50) -> list[dict]:
        """Most recent chat history entries for a user, newest first."""
        return list(reversed(self._chat_history.get(user_id, ())))[:limit]

    def get_search_history(self, user_id: str, limit: int = 50) -> list[dict]:
        """Most recent search history entries for a user, newest first."""
        return list(reversed(self._search_history.get(user_id, ())))[:limit]
