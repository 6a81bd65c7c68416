"""Tests for the Celery job runner."""

import asyncio

from sqlalchemy.ext.asyncio import create_async_engine

from evently_ticketing import database
from evently_ticketing.tasks.maintenance_tasks import run_async


def test_each_run_opens_and_closes_the_cache(monkeypatch):
    calls = []

    async def init_cache():
        calls.append("init_cache")

    async def close_cache():
        calls.append("close_cache")

    monkeypatch.setattr(database, "init_cache", init_cache)
    monkeypatch.setattr(database, "close_cache", close_cache)
    monkeypatch.setattr(
        database, "create_database_engine",
        lambda url=None: create_async_engine("sqlite+aiosqlite:///:memory:")
    )

    async def job():
        return {"seen": list(calls)}

    try:
        result = run_async(job)
    finally:
        asyncio.set_event_loop(None)

    # Cache invalidation inside the job needs a live cache
    assert result == {"seen": ["init_cache"]}
    assert calls == ["init_cache", "close_cache"]
    assert database.engine is None
