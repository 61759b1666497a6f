"""
Review store and its synchronisation with the storage backends.

The in-memory cache is authoritative for the active document. It is filled
once per document (primary store first, then the secondary slot) and written
through on every grade:

  grade -> scheduler -> cache -> primary upsert
                                 `-> on failure: whole cache to secondary slot

Backend failures never propagate; they degrade to the next store or to an
empty cache, which simply means "no history yet".

A ReviewSync holds one document at a time. The app keeps one per document
in a ReviewSyncRegistry so concurrent requests never evict each other.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from memocloze.db.sqlite import srs_slot_key
from memocloze.models.schedule import PersistenceRecord, ReviewSchedule
from memocloze.services.backends import ReviewBackends
from memocloze.services.scheduler import next_schedule, validate_grade

logger = logging.getLogger(__name__)


class ContextSwitchedError(RuntimeError):
    """Raised when another document took over the store while a load was awaited."""


class ReviewSync:
    def __init__(self, backends: ReviewBackends) -> None:
        self.backends = backends
        self._context_id: str | None = None
        self._cache: dict[str, ReviewSchedule] = {}
        self._loaded: set[str] = set()
        self._inflight: dict[str, asyncio.Task[None]] = {}
        # Grades applied while a load is running; re-applied over its result
        self._local_writes: dict[str, ReviewSchedule] = {}

    @property
    def context_id(self) -> str | None:
        return self._context_id

    def get(self, locator: str) -> ReviewSchedule | None:
        return self._cache.get(locator)

    def snapshot(self) -> dict[str, ReviewSchedule]:
        return dict(self._cache)

    def is_loaded(self, context_id: str) -> bool:
        return context_id == self._context_id and context_id in self._loaded

    def activate(self, context_id: str) -> None:
        """Make ``context_id`` the active document, dropping another document's cache."""
        if context_id == self._context_id:
            return
        logger.debug("Review context %s -> %s", self._context_id, context_id)
        self._context_id = context_id
        self._cache = {}
        self._local_writes = {}
        self._loaded.clear()

    def invalidate(self, context_id: str) -> None:
        """Forget the cached history of ``context_id`` (e.g. its document was deleted)."""
        if context_id != self._context_id:
            return
        self._cache = {}
        self._local_writes = {}
        self._loaded.discard(context_id)

    # --- Loading ---

    async def ensure_loaded(self, context_id: str) -> None:
        """Load ``context_id`` once. Concurrent callers share one backend read."""
        self.activate(context_id)
        if context_id in self._loaded:
            return

        task = self._inflight.get(context_id)
        if task is None:
            task = asyncio.create_task(
                self._run_load(context_id), name=f"review-sync-{context_id}"
            )
            self._inflight[context_id] = task
            task.add_done_callback(lambda _: self._inflight.pop(context_id, None))
        await asyncio.shield(task)

        if not self.is_loaded(context_id):
            raise ContextSwitchedError(
                f"review context switched to {self._context_id} while loading {context_id}"
            )

    async def force_resync(self, context_id: str) -> None:
        self.activate(context_id)
        self._loaded.discard(context_id)
        await self.ensure_loaded(context_id)

    async def load(self, context_id: str) -> dict[str, ReviewSchedule]:
        """Read ``context_id`` from the backends and replace the cache with it."""
        self.activate(context_id)
        self._local_writes = {}
        schedules = await self._read_backends(context_id)

        if context_id != self._context_id:
            logger.info("Discarding stale review load for %s", context_id)
            return schedules

        schedules.update(self._local_writes)
        self._local_writes = {}
        self._cache = schedules
        return dict(schedules)

    async def _run_load(self, context_id: str) -> None:
        await self.load(context_id)
        if context_id == self._context_id:
            self._loaded.add(context_id)

    async def _read_backends(self, context_id: str) -> dict[str, ReviewSchedule]:
        primary = self.backends.primary
        if primary is not None:
            try:
                records = await primary.get_by_context(context_id)
            except Exception:
                logger.warning(
                    "Primary review store unavailable for %s, trying fallback",
                    context_id,
                    exc_info=True,
                )
            else:
                logger.info(
                    "Loaded %d review records for %s from primary store",
                    len(records),
                    context_id,
                )
                return _to_schedules(records.items())

        secondary = self.backends.secondary
        if secondary is None:
            logger.info("No review history available for %s", context_id)
            return {}

        try:
            blob = await secondary.get(srs_slot_key(context_id))
        except Exception:
            logger.warning(
                "Fallback review store unavailable for %s, starting empty",
                context_id,
                exc_info=True,
            )
            return {}

        schedules = decode_blob(blob)
        logger.info(
            "Loaded %d review records for %s from fallback store",
            len(schedules),
            context_id,
        )
        return schedules

    # --- Saving ---

    async def save(
        self, context_id: str, locator: str, schedule: ReviewSchedule
    ) -> str | None:
        """Persist one schedule. Returns the backend that took the write, if any."""
        primary = self.backends.primary
        if primary is not None:
            try:
                await primary.upsert(
                    context_id, locator, PersistenceRecord.from_schedule(schedule)
                )
                return "primary"
            except Exception:
                logger.warning(
                    "Primary save failed for %s/%s, writing fallback slot",
                    context_id,
                    locator,
                    exc_info=True,
                )

        secondary = self.backends.secondary
        if secondary is None:
            logger.error("Review for %s/%s was not persisted", context_id, locator)
            return None
        if context_id != self._context_id:
            # The slot is overwritten wholesale; only the active cache may be written
            logger.error(
                "Refusing fallback save for inactive context %s (active: %s)",
                context_id,
                self._context_id,
            )
            return None

        try:
            await secondary.set(srs_slot_key(context_id), encode_blob(self._cache))
            return "secondary"
        except Exception:
            logger.error(
                "Fallback save failed for %s/%s", context_id, locator, exc_info=True
            )
            return None

    async def apply_grade(
        self,
        context_id: str,
        locator: str,
        grade: int,
        now: datetime | None = None,
    ) -> ReviewSchedule:
        """Grade a span: update the cache, then persist. Raises InvalidGradeError."""
        grade = validate_grade(grade)
        await self.ensure_loaded(context_id)
        schedule = self.record_grade(context_id, locator, grade, now)
        await self.save(context_id, locator, schedule)
        return schedule

    def record_grade(
        self,
        context_id: str,
        locator: str,
        grade: int,
        now: datetime | None = None,
    ) -> ReviewSchedule:
        """Apply a grade to the cache only. The caller persists with ``save``."""
        if context_id != self._context_id:
            raise RuntimeError(
                f"cannot grade {locator!r}: {context_id} is not the active context"
            )
        schedule = next_schedule(
            self._cache.get(locator), grade, now or datetime.now(timezone.utc)
        )
        self._cache[locator] = schedule
        if context_id in self._inflight:
            self._local_writes[locator] = schedule
        return schedule


def encode_blob(schedules: dict[str, ReviewSchedule]) -> dict[str, dict[str, Any]]:
    return {
        locator: PersistenceRecord.from_schedule(schedule).model_dump()
        for locator, schedule in schedules.items()
    }


def decode_blob(blob: Any) -> dict[str, ReviewSchedule]:
    if blob is None:
        return {}
    if not isinstance(blob, dict):
        logger.warning("Ignoring malformed review blob of type %s", type(blob).__name__)
        return {}

    records: list[tuple[str, PersistenceRecord]] = []
    for locator, value in blob.items():
        try:
            records.append((locator, PersistenceRecord.model_validate(value)))
        except ValidationError as e:
            logger.warning("Skipping malformed review record %r: %s", locator, e)
    return _to_schedules(records)


def _to_schedules(
    records: Iterable[tuple[str, PersistenceRecord]],
) -> dict[str, ReviewSchedule]:
    schedules: dict[str, ReviewSchedule] = {}
    for locator, record in records:
        try:
            schedules[locator] = record.to_schedule()
        except (OverflowError, ValueError) as e:
            # Timestamps outside the datetime range
            logger.warning("Skipping review record %r with bad timestamps: %s", locator, e)
    return schedules


class ReviewSyncRegistry:
    """One ReviewSync per document, all sharing the same backends."""

    def __init__(self, backends: ReviewBackends) -> None:
        self.backends = backends
        self._syncs: dict[str, ReviewSync] = {}

    def get(self, context_id: str) -> ReviewSync:
        sync = self._syncs.get(context_id)
        if sync is None:
            sync = ReviewSync(self.backends)
            sync.activate(context_id)
            self._syncs[context_id] = sync
        return sync

    def discard(self, context_id: str) -> None:
        self._syncs.pop(context_id, None)

    def __contains__(self, context_id: str) -> bool:
        return context_id in self._syncs


_registry: ReviewSyncRegistry | None = None


def init_review_sync(backends: ReviewBackends) -> ReviewSyncRegistry:
    global _registry
    _registry = ReviewSyncRegistry(backends)
    return _registry


def get_review_registry() -> ReviewSyncRegistry:
    assert _registry is not None, "Review sync not initialized"
    return _registry
