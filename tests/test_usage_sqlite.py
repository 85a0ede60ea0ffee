"""
Tests for the SQLite usage ledger.
Uses a temp database for each test.
"""

import asyncio
import sqlite3

import pytest

from searchbox.costs import estimate
from searchbox.usage import make_ledger
from searchbox.usage.sqlite import SQLiteUsageLedger


@pytest.fixture
def ledger(tmp_path):
    """Create a fresh SQLite ledger for each test."""
    return SQLiteUsageLedger(str(tmp_path / "usage.db"))


@pytest.mark.asyncio
async def test_track_persists_counters(ledger):
    est = await ledger.track("u@example.com", "mistral", "a" * 400, "b" * 800, True)
    assert est.input_tokens == 100
    assert est.output_tokens == 200

    record = await ledger.get_usage_record("u@example.com")
    assert record.total_requests == 1
    assert record.successful_requests == 1
    assert record.input_tokens == 100
    assert record.output_tokens == 200
    assert record.estimated_cost == pytest.approx(est.cost)
    assert record.model_usage["Mistral Small 3.1 24B"].requests == 1


@pytest.mark.asyncio
async def test_counters_survive_reopen(tmp_path):
    path = str(tmp_path / "usage.db")
    first = SQLiteUsageLedger(path)
    await first.track("u@example.com", "mistral", "q", "a", True)
    await first.track_search("u@example.com", "q", False)

    second = SQLiteUsageLedger(path)
    record = await second.get_usage_record("u@example.com")
    assert record.total_requests == 2
    assert record.successful_requests == 1
    assert record.failed_requests == 1


@pytest.mark.asyncio
async def test_concurrent_tracks_are_atomic(ledger):
    await asyncio.gather(*[
        ledger.track("u@example.com", "llama-3.3-70b-versatile", "q" * 8, "a" * 4, True)
        for _ in range(20)
    ])
    record = await ledger.get_usage_record("u@example.com")
    assert record.total_requests == 20
    assert record.input_tokens == 40
    assert record.output_tokens == 20
    assert record.model_usage["LLaMA-3 70B"].requests == 20


@pytest.mark.asyncio
async def test_history_tables(ledger):
    await ledger.track("u@example.com", "mistral", "question", "answer", True)
    await ledger.track("u@example.com", "mistral", "question", "partial", False)
    await ledger.track_search("u@example.com", "tokyo", True)

    chats = ledger.get_chat_history("u@example.com")
    assert len(chats) == 2
    assert chats[0]["output_text"] == ""       # newest first, failed
    assert chats[1]["output_text"] == "answer"
    searches = ledger.get_search_history("u@example.com")
    assert searches[0]["query"] == "tokyo"


@pytest.mark.asyncio
async def test_track_image(ledger):
    assert await ledger.track_image("u@example.com", "a cat", True) == pytest.approx(0.02)
    record = await ledger.get_usage_record("u@example.com")
    assert record.images_generated == 1
    assert record.estimated_cost == pytest.approx(0.02)


@pytest.mark.asyncio
async def test_track_swallows_store_failure(ledger, monkeypatch):
    """A broken store still yields the computed token and cost estimate."""
    def boom(*args, **kwargs):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(ledger, "_track_sync", boom)
    est = await ledger.track("u@example.com", "mistral", "a" * 400, "b" * 800, True)
    assert est.input_tokens == 100
    assert est.output_tokens == 200
    assert est.cost == pytest.approx(estimate("Mistral Small 3.1 24B", "a" * 400, "b" * 800).cost)
    assert est.cost > 0


@pytest.mark.asyncio
async def test_track_search_swallows_store_failure(ledger, monkeypatch):
    def boom(*args, **kwargs):
        raise sqlite3.OperationalError("locked")

    monkeypatch.setattr(ledger, "_track_search_sync", boom)
    assert await ledger.track_search("u@example.com", "q", True) is None


@pytest.mark.asyncio
async def test_dashboard_snapshot_from_sqlite(ledger):
    await ledger.track("u@example.com", "mistral", "q", "a", True)
    snap = await ledger.get_dashboard_snapshot("u@example.com")
    assert snap["user"]["email"] == "u@example.com"
    assert snap["user"]["name"] == "u"
    assert snap["usage"]["totalRequests"] == 1
    assert snap["modelUsage"][0]["name"] == "Mistral Small 3.1 24B"
    assert snap["modelUsage"][0]["percentage"] == 100


def test_make_ledger_sqlite(tmp_path):
    ledger = make_ledger("sqlite", db_path=str(tmp_path / "x" / "usage.db"))
    assert isinstance(ledger, SQLiteUsageLedger)
    assert (tmp_path / "x" / "usage.db").exists()
