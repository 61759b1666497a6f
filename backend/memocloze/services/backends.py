"""
Storage backends for review schedules.

Primary:   structured rows keyed by (document, locator), one upsert per grade.
Secondary: a flat key-value slot per document holding the whole schedule map
           as one JSON blob.

Both may raise on any call; the sync layer decides how to degrade.
"""
from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from memocloze.db.sqlite import (
    get_db,
    get_review_records,
    get_setting,
    set_setting,
    upsert_review_record,
)
from memocloze.models.schedule import PersistenceRecord


class PrimaryStore(ABC):
    @abstractmethod
    async def get_by_context(self, context_id: str) -> dict[str, PersistenceRecord]:
        ...

    @abstractmethod
    async def upsert(
        self, context_id: str, locator: str, record: PersistenceRecord
    ) -> None:
        ...


class SecondaryStore(ABC):
    @abstractmethod
    async def get(self, key: str) -> Any | None:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        ...


@dataclass
class ReviewBackends:
    """The stores available to the sync layer, fixed at construction."""

    primary: PrimaryStore | None = None
    secondary: SecondaryStore | None = None


class SqliteRecordStore(PrimaryStore):
    async def get_by_context(self, context_id: str) -> dict[str, PersistenceRecord]:
        records: dict[str, PersistenceRecord] = {}
        async for db in get_db():
            records = await get_review_records(db, context_id)
        return records

    async def upsert(
        self, context_id: str, locator: str, record: PersistenceRecord
    ) -> None:
        async for db in get_db():
            await upsert_review_record(db, context_id, locator, record)


class SqliteSettingsStore(SecondaryStore):
    async def get(self, key: str) -> Any | None:
        raw: str | None = None
        async for db in get_db():
            raw = await get_setting(db, key)
        return json.loads(raw) if raw else None

    async def set(self, key: str, value: Any) -> None:
        async for db in get_db():
            await set_setting(db, key, json.dumps(value))


def build_backends(primary_enabled: bool = True) -> ReviewBackends:
    return ReviewBackends(
        primary=SqliteRecordStore() if primary_enabled else None,
        secondary=SqliteSettingsStore(),
    )
