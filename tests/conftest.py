"""Shared test fixtures."""

import asyncio
import json
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from memocloze.config import settings
from memocloze.models.schedule import PersistenceRecord
from memocloze.services.backends import PrimaryStore, ReviewBackends, SecondaryStore
from memocloze.services.sync import ReviewSync

NOW = datetime(2025, 3, 14, 9, 26, 53, tzinfo=timezone.utc)


class FakePrimary(PrimaryStore):
    """In-memory primary store with switchable failures."""

    def __init__(self):
        self.records: dict[str, dict[str, PersistenceRecord]] = {}
        self.fail_get = False
        self.fail_upsert = False
        self.get_calls = 0
        self.gate: asyncio.Event | None = None

    async def get_by_context(self, context_id):
        self.get_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.fail_get:
            raise ConnectionError("primary store offline")
        return dict(self.records.get(context_id, {}))

    async def upsert(self, context_id, locator, record):
        if self.fail_upsert:
            raise ConnectionError("primary store offline")
        self.records.setdefault(context_id, {})[locator] = record


class FakeSecondary(SecondaryStore):
    """Key-value store that round-trips values through JSON."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.fail_get = False
        self.fail_set = False
        self.get_calls = 0

    async def get(self, key):
        self.get_calls += 1
        if self.fail_get:
            raise OSError("metadata store unavailable")
        raw = self.data.get(key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key, value):
        if self.fail_set:
            raise OSError("metadata store unavailable")
        self.data[key] = json.dumps(value)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def primary():
    return FakePrimary()


@pytest.fixture
def secondary():
    return FakeSecondary()


@pytest.fixture
def sync(primary, secondary):
    return ReviewSync(ReviewBackends(primary=primary, secondary=secondary))


@pytest.fixture
def client(tmp_path, monkeypatch):
    """HTTP client against a fresh SQLite database."""
    from memocloze import app

    monkeypatch.setattr(settings, "data_dir", tmp_path / "data")
    with TestClient(app) as c:
        yield c
