"""Tests for the SQLite-backed review stores."""

import pytest

from memocloze.db.sqlite import (
    create_document,
    delete_document,
    get_db,
    get_review_records,
    get_setting,
    init_sqlite,
    srs_slot_key,
)
from memocloze.models.document import DocumentCreate
from memocloze.models.schedule import Grade, PersistenceRecord
from memocloze.services.backends import (
    SqliteRecordStore,
    SqliteSettingsStore,
    build_backends,
)
from memocloze.services.sync import ReviewSync


def _record(now_ms, interval=1.0, count=1, grade=3):
    return PersistenceRecord(
        due_at=now_ms + int(interval * 86_400_000),
        last_reviewed_at=now_ms,
        last_grade=grade,
        review_count=count,
        interval=interval,
        ease_factor=2.5,
    )


@pytest.mark.asyncio
async def test_record_store_upsert_and_read(tmp_path):
    await init_sqlite(tmp_path)
    store = SqliteRecordStore()

    await store.upsert("doc", "auto-0", _record(1_700_000_000_000))
    await store.upsert("doc", "auto-0", _record(1_700_000_000_000, 2.5, count=2))
    await store.upsert("doc", "term", _record(1_700_000_000_000))
    await store.upsert("other", "auto-0", _record(1_700_000_000_000))

    records = await store.get_by_context("doc")

    assert set(records) == {"auto-0", "term"}
    assert records["auto-0"].review_count == 2
    assert records["auto-0"].interval == 2.5
    assert records["auto-0"].last_grade == 3


@pytest.mark.asyncio
async def test_record_store_unknown_context_is_empty(tmp_path):
    await init_sqlite(tmp_path)
    assert await SqliteRecordStore().get_by_context("nothing") == {}


@pytest.mark.asyncio
async def test_settings_store_round_trips_json(tmp_path):
    await init_sqlite(tmp_path)
    store = SqliteSettingsStore()
    key = srs_slot_key("doc")

    assert await store.get(key) is None
    await store.set(key, {"auto-0": _record(1_700_000_000_000).model_dump()})
    value = await store.get(key)

    assert value["auto-0"]["review_count"] == 1


@pytest.mark.asyncio
async def test_delete_document_removes_review_history(tmp_path):
    await init_sqlite(tmp_path)
    async for db in get_db():
        doc = await create_document(db, DocumentCreate(title="Cells", content="--a--"))
    await SqliteRecordStore().upsert(doc.id, "auto-0", _record(1_700_000_000_000))
    await SqliteSettingsStore().set(srs_slot_key(doc.id), {})

    async for db in get_db():
        assert await delete_document(db, doc.id)
        assert await get_review_records(db, doc.id) == {}
        assert await get_setting(db, srs_slot_key(doc.id)) is None


@pytest.mark.asyncio
async def test_init_is_idempotent_and_keeps_data(tmp_path):
    await init_sqlite(tmp_path)
    await SqliteRecordStore().upsert("doc", "auto-0", _record(1_700_000_000_000))

    await init_sqlite(tmp_path)

    records = await SqliteRecordStore().get_by_context("doc")
    assert records["auto-0"].review_count == 1
    async for db in get_db():
        cursor = await db.execute("SELECT MAX(version) FROM schema_version")
        assert (await cursor.fetchone())[0] == 1


@pytest.mark.asyncio
async def test_sync_over_sqlite_primary(tmp_path, now):
    await init_sqlite(tmp_path)
    sync = ReviewSync(build_backends())
    schedule = await sync.apply_grade("doc", "auto-0", Grade.GOOD, now)

    fresh = ReviewSync(build_backends())
    await fresh.ensure_loaded("doc")

    assert PersistenceRecord.from_schedule(
        fresh.get("auto-0")
    ) == PersistenceRecord.from_schedule(schedule)


@pytest.mark.asyncio
async def test_sync_over_sqlite_settings_slot(tmp_path, now):
    await init_sqlite(tmp_path)
    sync = ReviewSync(build_backends(primary_enabled=False))
    await sync.apply_grade("doc", "auto-0", Grade.EASY, now)

    assert await SqliteRecordStore().get_by_context("doc") == {}
    fresh = ReviewSync(build_backends(primary_enabled=False))
    await fresh.ensure_loaded("doc")
    assert fresh.get("auto-0").interval == 4.0
