"""
Cloze review router.

Endpoints:
  GET  /review/{doc_id}/spans                    — render pass: spans with state + visibility
  POST /review/{doc_id}/spans/{locator}/grade    — submit grade 1-4, run the scheduler
  POST /review/{doc_id}/resync                   — reload history from the backends
  GET  /review/{doc_id}/stats                    — span counts per state
"""
from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime, timezone

import aiosqlite
from fastapi import APIRouter, Depends, HTTPException, Query

from memocloze.db.sqlite import get_db, get_document
from memocloze.models.document import Document
from memocloze.models.review import (
    ReviewRequest,
    ReviewResult,
    ReviewStats,
    SpanList,
    SpanView,
)
from memocloze.models.schedule import ClozeState
from memocloze.services.classifier import ClassifierConfig, allows_grading, classify
from memocloze.services.locator import condense, parse_clozes
from memocloze.services.scheduler import InvalidGradeError, validate_grade
from memocloze.services.session import evaluate
from memocloze.services.sync import ReviewSyncRegistry, get_review_registry

logger = logging.getLogger(__name__)
router = APIRouter()

_PENDING_STATES = (ClozeState.LEARNING, ClozeState.DUE, ClozeState.DANGER)


async def _require_document(db: aiosqlite.Connection, doc_id: str) -> Document:
    doc = await get_document(db, doc_id)
    if not doc:
        raise HTTPException(status_code=404, detail="Document not found")
    return doc


@router.get("/{doc_id}/spans", response_model=SpanList)
async def list_spans(
    doc_id: str,
    condensed: bool = Query(default=False),
    db: aiosqlite.Connection = Depends(get_db),
    registry: ReviewSyncRegistry = Depends(get_review_registry),
) -> SpanList:
    """Parse the document, load its history once and classify every span."""
    doc = await _require_document(db, doc_id)
    spans = parse_clozes(doc.content)
    sync = registry.get(doc_id)
    await sync.ensure_loaded(doc_id)

    statuses = evaluate(
        spans, sync, datetime.now(timezone.utc), ClassifierConfig.from_settings()
    )
    items = [
        SpanView(
            locator=s.span.locator,
            content=s.span.content,
            display=condense(s.span.content, expanded=not condensed),
            audio_text=s.span.audio_text,
            state=s.state,
            visible=s.visible,
            gradable=allows_grading(s.state),
            schedule=s.schedule,
        )
        for s in statuses
    ]
    return SpanList(document_id=doc_id, items=items, total=len(items))


@router.post("/{doc_id}/spans/{locator}/grade", response_model=ReviewResult)
async def grade_span(
    doc_id: str,
    locator: str,
    body: ReviewRequest,
    db: aiosqlite.Connection = Depends(get_db),
    registry: ReviewSyncRegistry = Depends(get_review_registry),
) -> ReviewResult:
    """Submit a recall grade for one span. Runs the scheduler and persists."""
    try:
        grade = validate_grade(body.grade)
    except InvalidGradeError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    doc = await _require_document(db, doc_id)
    if locator not in {span.locator for span in parse_clozes(doc.content)}:
        raise HTTPException(status_code=404, detail="Cloze not found")

    sync = registry.get(doc_id)
    now = datetime.now(timezone.utc)
    schedule = await sync.apply_grade(doc_id, locator, grade, now)
    state = classify(schedule, now, ClassifierConfig.from_settings())
    logger.info("Graded %s/%s with %d -> %s", doc_id, locator, grade, state.value)

    return ReviewResult(
        locator=locator,
        state=state,
        interval=schedule.interval,
        ease_factor=schedule.ease_factor,
        review_count=schedule.review_count,
        due_at=schedule.due_at,
    )


@router.post("/{doc_id}/resync")
async def resync(
    doc_id: str,
    db: aiosqlite.Connection = Depends(get_db),
    registry: ReviewSyncRegistry = Depends(get_review_registry),
) -> dict:
    """Drop the cached history of the document and read it again."""
    await _require_document(db, doc_id)
    sync = registry.get(doc_id)
    await sync.force_resync(doc_id)
    return {"status": "ok", "records": len(sync.snapshot())}


@router.get("/{doc_id}/stats", response_model=ReviewStats)
async def review_stats(
    doc_id: str,
    db: aiosqlite.Connection = Depends(get_db),
    registry: ReviewSyncRegistry = Depends(get_review_registry),
) -> ReviewStats:
    """Count the document's spans per state."""
    doc = await _require_document(db, doc_id)
    spans = parse_clozes(doc.content)
    sync = registry.get(doc_id)
    await sync.ensure_loaded(doc_id)

    statuses = evaluate(
        spans, sync, datetime.now(timezone.utc), ClassifierConfig.from_settings()
    )
    counts = Counter(s.state.value for s in statuses)
    return ReviewStats(
        document_id=doc_id,
        total=len(statuses),
        due=sum(counts[state.value] for state in _PENDING_STATES),
        by_state={state.value: counts[state.value] for state in ClozeState},
    )
