from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from memocloze.models.schedule import ClozeState, ReviewSchedule


class SpanView(BaseModel):
    locator: str
    content: str
    display: str            # content prepared for display (expanded or condensed)
    audio_text: str | None
    state: ClozeState
    visible: bool           # default visibility for the state
    gradable: bool          # False while cooling
    schedule: ReviewSchedule | None


class SpanList(BaseModel):
    document_id: str
    items: list[SpanView]
    total: int


class ReviewRequest(BaseModel):
    grade: int  # 1=Again, 2=Hard, 3=Good, 4=Easy


class ReviewResult(BaseModel):
    locator: str
    state: ClozeState
    interval: float
    ease_factor: float
    review_count: int
    due_at: datetime


class ReviewStats(BaseModel):
    document_id: str
    total: int
    due: int                # learning + due + danger
    by_state: dict[str, int]
