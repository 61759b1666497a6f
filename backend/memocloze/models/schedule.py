from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum, IntEnum

from pydantic import BaseModel

DAY_MS = 86_400_000
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Grade(IntEnum):
    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


class ClozeState(str, Enum):
    NEW = "new"
    COOLING = "cooling"
    CLEARED = "cleared"
    LEARNING = "learning"
    DANGER = "danger"
    DUE = "due"


class ReviewSchedule(BaseModel):
    due_at: datetime | None = None          # None until first review
    last_reviewed_at: datetime | None = None
    last_grade: int | None = None           # 1=Again .. 4=Easy
    review_count: int = 0                   # 0 = new
    interval: float = 0.0                   # days; sub-day during learning steps
    ease_factor: float = 2.5                # floor 1.3


class PersistenceRecord(BaseModel):
    """A ReviewSchedule as stored by either backend (epoch-ms timestamps)."""

    due_at: int | None = None
    last_reviewed_at: int | None = None
    last_grade: int | None = None
    review_count: int = 0
    interval: float = 0.0
    ease_factor: float = 2.5

    @classmethod
    def from_schedule(cls, schedule: ReviewSchedule) -> PersistenceRecord:
        return cls(
            due_at=to_epoch_ms(schedule.due_at),
            last_reviewed_at=to_epoch_ms(schedule.last_reviewed_at),
            last_grade=schedule.last_grade,
            review_count=schedule.review_count,
            interval=schedule.interval,
            ease_factor=schedule.ease_factor,
        )

    def to_schedule(self) -> ReviewSchedule:
        return ReviewSchedule(
            due_at=from_epoch_ms(self.due_at),
            last_reviewed_at=from_epoch_ms(self.last_reviewed_at),
            last_grade=self.last_grade,
            review_count=self.review_count,
            interval=self.interval,
            ease_factor=self.ease_factor,
        )


def to_epoch_ms(value: datetime | None) -> int | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - EPOCH) // timedelta(milliseconds=1)


def from_epoch_ms(value: int | None) -> datetime | None:
    if value is None:
        return None
    return EPOCH + timedelta(milliseconds=value)
