"""
Tests for dashboard snapshots: shape, rounding, placeholders and caching.
"""

import asyncio

import pytest

from searchbox.storage.models import ModelUsage, UsageRecord, UserProfile
from searchbox.usage.base import (
    PLACEHOLDER_MODELS,
    SnapshotCache,
    build_snapshot,
    default_snapshot,
    round_half_up,
)
from searchbox.usage.memory import MemoryUsageLedger


def _record(**per_model):
    usage = {name: ModelUsage(requests=n) for name, n in per_model.items()}
    total = sum(per_model.values())
    return UsageRecord(total_requests=total, successful_requests=total, model_usage=usage)


def test_round_half_up_matches_js():
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(33.333) == 33
    assert round_half_up(66.666) == 67


def test_empty_record_gets_placeholders():
    snap = build_snapshot(UserProfile.for_user("a@b.c"), UsageRecord())
    names = [row["name"] for row in snap["modelUsage"]]
    assert names == list(PLACEHOLDER_MODELS)
    assert all(row["cost"] == "0.00" and row["percentage"] == 0 for row in snap["modelUsage"])
    assert snap["usage"]["successRate"] == 100
    assert snap["usage"]["estimatedCost"] == "0.00"


def test_rows_sorted_and_percentages_sum_to_100():
    snap = build_snapshot(
        UserProfile.for_user("a@b.c"),
        _record(**{"LLaMA-3 70B": 1, "Mistral Small 3.1 24B": 1, "OpenAI GPT-4.1": 1}),
    )
    pct = [row["percentage"] for row in snap["modelUsage"]]
    assert abs(sum(pct) - 100) <= 1

    snap = build_snapshot(
        UserProfile.for_user("a@b.c"),
        _record(**{"LLaMA-3 70B": 1, "Mistral Small 3.1 24B": 5}),
    )
    rows = snap["modelUsage"]
    assert [r["name"] for r in rows] == ["Mistral Small 3.1 24B", "LLaMA-3 70B"]
    assert [r["percentage"] for r in rows] == [83, 17]


def test_success_rate_rounds_half_up():
    record = UsageRecord(total_requests=8, successful_requests=5, failed_requests=3)
    snap = build_snapshot(UserProfile.for_user("a@b.c"), record)
    assert snap["usage"]["successRate"] == 63  # 62.5


def test_cost_formatted_two_decimals():
    record = UsageRecord(
        total_requests=1, successful_requests=1, estimated_cost=1.005,
        model_usage={"OpenAI GPT-4.1": ModelUsage(requests=1, cost=0.1234)},
    )
    snap = build_snapshot(UserProfile.for_user("a@b.c"), record)
    assert snap["modelUsage"][0]["cost"] == "0.12"
    assert snap["usage"]["totalTokens"] == 0


def test_default_snapshot_shape():
    snap = default_snapshot("uid-1")
    assert snap["user"]["uid"] == "uid-1"
    assert snap["usage"]["totalRequests"] == 0
    assert len(snap["modelUsage"]) == 3


def test_snapshot_cache_expires(monkeypatch):
    now = [1000.0]
    monkeypatch.setattr("searchbox.usage.base.time.monotonic", lambda: now[0])
    cache = SnapshotCache(ttl_seconds=60)
    cache.set("u", {"x": 1})
    assert cache.get("u") == {"x": 1}
    now[0] += 61
    assert cache.get("u") is None


@pytest.mark.asyncio
async def test_dashboard_is_cached_until_tracked():
    ledger = MemoryUsageLedger()
    first = await ledger.get_dashboard_snapshot("u@example.com")
    assert first["usage"]["totalRequests"] == 0

    # Served from cache
    assert await ledger.get_dashboard_snapshot("u@example.com") is first

    await ledger.track("u@example.com", "mistral", "q", "a", True)
    fresh = await ledger.get_dashboard_snapshot("u@example.com")
    assert fresh["usage"]["totalRequests"] == 1


@pytest.mark.asyncio
async def test_force_refresh_bypasses_cache():
    ledger = MemoryUsageLedger()
    first = await ledger.get_dashboard_snapshot("u@example.com")
    again = await ledger.get_dashboard_snapshot("u@example.com", force_refresh=True)
    assert again is not first


@pytest.mark.asyncio
async def test_read_timeout_returns_defaults():
    ledger = MemoryUsageLedger(read_timeout=0.01)

    async def slow_read(user_id):
        await asyncio.sleep(1)

    ledger._read_user = slow_read
    snap = await ledger.get_dashboard_snapshot("u@example.com")
    assert snap["usage"]["totalRequests"] == 0
    assert snap["user"]["uid"] == "u@example.com"
    assert ledger.cache.get("u@example.com") is None


@pytest.mark.asyncio
async def test_read_error_returns_defaults():
    ledger = MemoryUsageLedger()

    async def broken(user_id):
        raise RuntimeError("store unavailable")

    ledger._read_user = broken
    snap = await ledger.get_dashboard_snapshot("u@example.com")
    assert snap["modelUsage"][0]["name"] == PLACEHOLDER_MODELS[0]
