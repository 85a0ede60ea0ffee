"""
Tests for the in-process usage ledger.
Each test builds its own ledger; instances never share state.
"""

import asyncio

import pytest

from searchbox.costs import IMAGE_COST
from searchbox.usage import ledger_from_config, make_ledger
from searchbox.usage.memory import MemoryUsageLedger


@pytest.fixture
def ledger():
    return MemoryUsageLedger()


@pytest.mark.asyncio
async def test_track_creates_user_lazily(ledger):
    assert await ledger.get_usage_record("new@example.com") is not None
    record = await ledger.get_usage_record("new@example.com")
    assert record.total_requests == 0


@pytest.mark.asyncio
async def test_track_counts_success_and_failure(ledger):
    await ledger.track("u@example.com", "mistral", "a" * 400, "b" * 800, True)
    await ledger.track("u@example.com", "mistral", "a" * 40, "", False)
    await ledger.track("u@example.com", "llama-3.3-70b-versatile", "hi", "yo", True)

    record = await ledger.get_usage_record("u@example.com")
    assert record.total_requests == 3
    assert record.successful_requests == 2
    assert record.failed_requests == 1
    assert record.successful_requests + record.failed_requests == record.total_requests


@pytest.mark.asyncio
async def test_track_accumulates_per_model(ledger):
    est = await ledger.track("u@example.com", "mistral", "a" * 400, "b" * 800, True)
    assert est.input_tokens == 100
    assert est.output_tokens == 200

    record = await ledger.get_usage_record("u@example.com")
    usage = record.model_usage["Mistral Small 3.1 24B"]
    assert usage.requests == 1
    assert usage.input_tokens == 100
    assert usage.output_tokens == 200
    assert usage.cost == pytest.approx(est.cost)
    assert record.estimated_cost == pytest.approx(est.cost)
    assert record.last_updated is not None


@pytest.mark.asyncio
async def test_track_history_omits_failed_output(ledger):
    await ledger.track("u@example.com", "mistral", "question", "partial", False)
    entry = ledger.get_chat_history("u@example.com")[0]
    assert entry["outputText"] == ""
    assert entry["isSuccessful"] is False
    assert entry["modelName"] == "Mistral Small 3.1 24B"


@pytest.mark.asyncio
async def test_track_search_has_no_cost(ledger):
    await ledger.track_search("u@example.com", "tokyo weather", True)
    await ledger.track_search("u@example.com", "tokyo weather", False)

    record = await ledger.get_usage_record("u@example.com")
    assert record.total_requests == 2
    assert record.successful_requests == 1
    assert record.failed_requests == 1
    assert record.estimated_cost == 0
    assert record.input_tokens == 0
    assert len(ledger.get_search_history("u@example.com")) == 2


@pytest.mark.asyncio
async def test_track_image(ledger):
    assert await ledger.track_image("u@example.com", "a cat", True) == IMAGE_COST
    assert await ledger.track_image("u@example.com", "a dog", False) == 0.0

    record = await ledger.get_usage_record("u@example.com")
    assert record.images_generated == 1
    assert record.total_requests == 2
    assert record.estimated_cost == pytest.approx(IMAGE_COST)


@pytest.mark.asyncio
async def test_instances_are_isolated():
    a, b = MemoryUsageLedger(), MemoryUsageLedger()
    await a.track("u@example.com", "mistral", "x", "y", True)
    assert (await b.get_usage_record("u@example.com")).total_requests == 0


@pytest.mark.asyncio
async def test_concurrent_tracks_all_count(ledger):
    await asyncio.gather(*[
        ledger.track("u@example.com", "mistral", "q", "a", i % 3 != 0)
        for i in range(30)
    ])
    record = await ledger.get_usage_record("u@example.com")
    assert record.total_requests == 30
    assert record.failed_requests == 10
    assert record.model_usage["Mistral Small 3.1 24B"].requests == 30


def test_make_ledger_registry():
    assert isinstance(make_ledger("memory"), MemoryUsageLedger)
    with pytest.raises(ValueError, match="Unknown usage backend"):
        make_ledger("firestore")


@pytest.mark.asyncio
async def test_history_is_bounded_per_user():
    ledger = MemoryUsageLedger(history_limit=3)
    for i in range(10):
        await ledger.track("u@example.com", "mistral", f"question {i}", "answer", True)
        await ledger.track_search("u@example.com", f"query {i}", True)

    chats = ledger.get_chat_history("u@example.com")
    assert [c["inputText"] for c in chats] == ["question 9", "question 8", "question 7"]
    assert [s["query"] for s in ledger.get_search_history("u@example.com", limit=2)] == ["query 9", "query 8"]
    # Aggregates still see every request.
    assert (await ledger.get_usage_record("u@example.com")).total_requests == 20
    assert ledger.get_chat_history("other@example.com") == []


def test_history_limit_from_config():
    ledger = ledger_from_config({"usage": {"backend": "memory", "history_limit": 7}})
    assert isinstance(ledger, MemoryUsageLedger)
    assert ledger.history_limit == 7
