import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from memocloze.config import settings
from memocloze.models.document import Document, DocumentCreate, DocumentUpdate
from memocloze.models.schedule import PersistenceRecord

_db_path: Path | None = None

SRS_SLOT_PREFIX = "_mdx_srs:"

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA foreign_keys=ON;

CREATE TABLE IF NOT EXISTS documents (
    id          TEXT PRIMARY KEY,
    title       TEXT NOT NULL,
    content     TEXT NOT NULL DEFAULT '',
    created_at  TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at  TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS review_records (
    context_id       TEXT NOT NULL,
    locator          TEXT NOT NULL,
    due_at           INTEGER,
    last_reviewed_at INTEGER,
    last_grade       INTEGER,
    review_count     INTEGER NOT NULL DEFAULT 0,
    interval         REAL NOT NULL DEFAULT 0,
    ease_factor      REAL NOT NULL DEFAULT 2.5,
    updated_at       TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (context_id, locator)
);
CREATE INDEX IF NOT EXISTS idx_review_due ON review_records(due_at);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);
INSERT OR IGNORE INTO schema_version(version) VALUES (1);

CREATE TABLE IF NOT EXISTS settings (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL DEFAULT '',
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""


async def init_sqlite(data_dir: Path) -> None:
    global _db_path
    _db_path = data_dir / settings.sqlite_filename
    async with aiosqlite.connect(_db_path) as db:
        await db.executescript(SCHEMA_SQL)
        await db.commit()


async def get_db() -> AsyncIterator[aiosqlite.Connection]:
    assert _db_path is not None, "SQLite not initialized"
    async with aiosqlite.connect(_db_path) as db:
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys=ON")
        yield db


def srs_slot_key(context_id: str) -> str:
    """Settings key holding the fallback review blob of one document."""
    return f"{SRS_SLOT_PREFIX}{context_id}"


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def _row_to_document(row: aiosqlite.Row) -> Document:
    return Document(**dict(row))


async def create_document(db: aiosqlite.Connection, doc: DocumentCreate) -> Document:
    doc_id = str(uuid.uuid4())
    now = _now()
    await db.execute(
        """INSERT INTO documents (id, title, content, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?)""",
        (doc_id, doc.title, doc.content, now, now),
    )
    await db.commit()
    return await get_document(db, doc_id)  # type: ignore[return-value]


async def get_document(db: aiosqlite.Connection, doc_id: str) -> Document | None:
    cursor = await db.execute("SELECT * FROM documents WHERE id = ?", (doc_id,))
    row = await cursor.fetchone()
    if row is None:
        return None
    return _row_to_document(row)


async def list_documents(
    db: aiosqlite.Connection, offset: int = 0, limit: int = 50
) -> tuple[list[Document], int]:
    cursor = await db.execute("SELECT COUNT(*) FROM documents")
    total = (await cursor.fetchone())[0]

    cursor = await db.execute(
        "SELECT * FROM documents ORDER BY created_at DESC LIMIT ? OFFSET ?",
        (limit, offset),
    )
    rows = await cursor.fetchall()
    return [_row_to_document(r) for r in rows], total


async def update_document(
    db: aiosqlite.Connection, doc_id: str, updates: DocumentUpdate
) -> Document | None:
    fields = updates.model_dump(exclude_none=True)
    if not fields:
        return await get_document(db, doc_id)

    fields["updated_at"] = _now()
    set_clause = ", ".join(f"{k} = ?" for k in fields)
    values = list(fields.values()) + [doc_id]

    await db.execute(
        f"UPDATE documents SET {set_clause} WHERE id = ?",  # noqa: S608
        values,
    )
    await db.commit()
    return await get_document(db, doc_id)


async def delete_document(db: aiosqlite.Connection, doc_id: str) -> bool:
    """Delete a document together with the review history keyed by it."""
    cursor = await db.execute("DELETE FROM documents WHERE id = ?", (doc_id,))
    await db.execute("DELETE FROM review_records WHERE context_id = ?", (doc_id,))
    await db.execute("DELETE FROM settings WHERE key = ?", (srs_slot_key(doc_id),))
    await db.commit()
    return cursor.rowcount > 0


# --- Review records (primary review store) ---


def _row_to_record(row: aiosqlite.Row) -> PersistenceRecord:
    d = dict(row)
    return PersistenceRecord(
        due_at=d["due_at"],
        last_reviewed_at=d["last_reviewed_at"],
        last_grade=d["last_grade"],
        review_count=d["review_count"],
        interval=d["interval"],
        ease_factor=d["ease_factor"],
    )


async def get_review_records(
    db: aiosqlite.Connection, context_id: str
) -> dict[str, PersistenceRecord]:
    cursor = await db.execute(
        "SELECT * FROM review_records WHERE context_id = ? ORDER BY locator",
        (context_id,),
    )
    rows = await cursor.fetchall()
    return {row["locator"]: _row_to_record(row) for row in rows}


async def upsert_review_record(
    db: aiosqlite.Connection,
    context_id: str,
    locator: str,
    record: PersistenceRecord,
) -> None:
    await db.execute(
        """INSERT INTO review_records
           (context_id, locator, due_at, last_reviewed_at, last_grade,
            review_count, interval, ease_factor, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
           ON CONFLICT(context_id, locator) DO UPDATE SET
               due_at = excluded.due_at,
               last_reviewed_at = excluded.last_reviewed_at,
               last_grade = excluded.last_grade,
               review_count = excluded.review_count,
               interval = excluded.interval,
               ease_factor = excluded.ease_factor,
               updated_at = excluded.updated_at""",
        (
            context_id,
            locator,
            record.due_at,
            record.last_reviewed_at,
            record.last_grade,
            record.review_count,
            record.interval,
            record.ease_factor,
            _now(),
        ),
    )
    await db.commit()


# --- Settings key-value store ---


async def get_setting(db: aiosqlite.Connection, key: str) -> str | None:
    cursor = await db.execute("SELECT value FROM settings WHERE key = ?", (key,))
    row = await cursor.fetchone()
    return row[0] if row else None


async def set_setting(db: aiosqlite.Connection, key: str, value: str) -> None:
    now = _now()
    await db.execute(
        "INSERT INTO settings(key, value, updated_at) VALUES (?, ?, ?) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at",
        (key, value, now),
    )
    await db.commit()
