"""
UsageLedger: abstract base for per-user usage accounting.

Every ledger implements the same capability set:
  track          : one chat completion (tokens + cost + per-model breakdown)
  track_search   : one web search (zero marginal cost)
  track_image    : one image generation (flat cost on success)
  get_dashboard_snapshot : read-side view for the dashboard

Tracking is best-effort: no ledger operation ever raises to its caller.
Counters only ever grow; each tracked event adds 1 to total_requests and
1 to exactly one of successful_requests / failed_requests.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from abc import ABC, abstractmethod

from searchbox.costs import CostEstimate
from searchbox.storage.models import UsageRecord, UserProfile, utc_now

logger = logging.getLogger(__name__)

# Rows shown on the dashboard before a user has used any model.
PLACEHOLDER_MODELS = ("Mistral Small 3.1 24B", "LLaMA-3 70B", "OpenAI GPT-4.1")


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values, like JS Math.round."""
    return int(math.floor(value + 0.5))


def _placeholder_rows() -> list[dict]:
    return [
        {
            "name": name,
            "requests": 0,
            "inputTokens": 0,
            "outputTokens": 0,
            "totalTokens": 0,
            "cost": "0.00",
            "percentage": 0,
        }
        for name in PLACEHOLDER_MODELS
    ]


def default_snapshot(user_id: str) -> dict:
    """Well-formed zeroed dashboard view, returned whenever a read fails."""
    now = utc_now()
    return {
        "user": {
            "uid": user_id,
            "email": "unknown",
            "name": "User",
            "memberSince": now,
            "plan": "Free",
            "lastPlanChange": now,
            "totalPayments": 0,
        },
        "usage": {
            "totalRequests": 0,
            "imagesGenerated": 0,
            "inputTokens": 0,
            "outputTokens": 0,
            "totalTokens": 0,
            "successRate": 100,
            "estimatedCost": "0.00",
            "lastUpdated": now,
        },
        "modelUsage": _placeholder_rows(),
    }


def build_snapshot(profile: UserProfile, record: UsageRecord) -> dict:
    """Turn a stored profile + usage record into the dashboard view."""
    total = record.total_requests
    success_rate = round_half_up(record.successful_requests / total * 100) if total > 0 else 100

    rows = [
        {
            "name": name,
            "requests": usage.requests,
            "inputTokens": usage.input_tokens,
            "outputTokens": usage.output_tokens,
            "totalTokens": usage.input_tokens + usage.output_tokens,
            "cost": f"{usage.cost:.2f}",
            "percentage": 0,
        }
        for name, usage in record.model_usage.items()
    ]
    total_model_requests = sum(row["requests"] for row in rows)
    for row in rows:
        row["percentage"] = (
            round_half_up(row["requests"] / total_model_requests * 100)
            if total_model_requests > 0 else 0
        )
    rows.sort(key=lambda row: row["requests"], reverse=True)

    return {
        "user": {
            "uid": profile.uid,
            "email": profile.email or "unknown",
            "name": profile.name or "User",
            "memberSince": profile.created_at,
            "plan": profile.plan or "Free",
            "lastPlanChange": profile.last_plan_change,
            "totalPayments": profile.total_payments or 0,
        },
        "usage": {
            "totalRequests": total,
            "imagesGenerated": record.images_generated,
            "inputTokens": record.input_tokens,
            "outputTokens": record.output_tokens,
            "totalTokens": record.input_tokens + record.output_tokens,
            "successRate": success_rate,
            "estimatedCost": f"{record.estimated_cost:.2f}",
            "lastUpdated": record.last_updated or utc_now(),
        },
        "modelUsage": rows or _placeholder_rows(),
    }


class SnapshotCache:
    """Short-lived per-user cache in front of dashboard reads."""

    def __init__(self, ttl_seconds: float = 60.0):
        self.ttl = ttl_seconds
        self._entries: dict[str, tuple[float, dict]] = {}

    def get(self, user_id: str) -> dict | None:
        entry = self._entries.get(user_id)
        if entry is None:
            return None
        stored_at, data = entry
        if time.monotonic() - stored_at >= self.ttl:
            del self._entries[user_id]
            return None
        return data

    def set(self, user_id: str, data: dict) -> None:
        self._entries[user_id] = (time.monotonic(), data)

    def invalidate(self, user_id: str) -> None:
        self._entries.pop(user_id, None)

    def clear(self) -> None:
        self._entries.clear()


class UsageLedger(ABC):
    """Abstract usage ledger."""

    name = "base"

    def __init__(self, cache_ttl: float = 60.0, read_timeout: float = 5.0):
        self.cache = SnapshotCache(cache_ttl)
        self.read_timeout = read_timeout

    @abstractmethod
    async def track(
        self,
        user_id: str,
        model_id: str,
        input_text: str,
        output_text: str,
        succeeded: bool,
    ) -> CostEstimate:
        """Record one chat completion and return its estimate."""
        ...

    @abstractmethod
    async def track_search(self, user_id: str, query: str, succeeded: bool) -> None:
        """Record one web search."""
        ...

    @abstractmethod
    async def track_image(self, user_id: str, prompt: str, succeeded: bool) -> float:
        """Record one image generation and return the cost charged."""
        ...

    @abstractmethod
    async def _read_user(self, user_id: str) -> tuple[UserProfile, UsageRecord]:
        """
        Load a user's profile and usage record, creating both (zeroed)
        if the user has never been seen. May raise; callers handle it.
        """
        ...

    async def get_usage_record(self, user_id: str) -> UsageRecord | None:
        try:
            _, record = await self._read_user(user_id)
            return record
        except Exception as e:
            logger.error("Failed to read usage record for %s: %s", user_id, e)
            return None

    async def get_dashboard_snapshot(self, user_id: str, force_refresh: bool = False) -> dict:
        """
        Dashboard view for a user. Served from cache when fresh unless
        force_refresh is set. Any read failure or timeout yields the zeroed
        default view instead of an error.
        """
        if not force_refresh:
            cached = self.cache.get(user_id)
            if cached is not None:
                logger.debug("Returning cached dashboard for %s", user_id)
                return cached

        try:
            profile, record = await asyncio.wait_for(
                self._read_user(user_id), timeout=self.read_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Dashboard read for %s timed out after %.1fs, returning defaults",
                user_id, self.read_timeout,
            )
            return default_snapshot(user_id)
        except Exception as e:
            logger.error("Dashboard read for %s failed: %s", user_id, e)
            return default_snapshot(user_id)

        snapshot = build_snapshot(profile, record)
        self.cache.set(user_id, snapshot)
        return snapshot

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
