from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from memocloze.config import settings
from memocloze.models.schedule import DAY_MS, ClozeState, ReviewSchedule, to_epoch_ms

HOUR_MS = 3_600_000

VISIBLE_STATES = frozenset({ClozeState.CLEARED, ClozeState.COOLING})


@dataclass(frozen=True)
class ClassifierConfig:
    cooling_period_ms: int = 60_000
    hide_before_due_hours: float = 12
    danger_threshold_days: float = 7

    @classmethod
    def from_settings(cls) -> ClassifierConfig:
        return cls(
            cooling_period_ms=settings.cooling_period_ms,
            hide_before_due_hours=settings.hide_before_due_hours,
            danger_threshold_days=settings.danger_threshold_days,
        )


DEFAULT_CONFIG = ClassifierConfig()


def classify(
    schedule: ReviewSchedule | None,
    now: datetime,
    config: ClassifierConfig = DEFAULT_CONFIG,
) -> ClozeState:
    """Map a span's review history to its state at ``now``. First match wins."""
    if schedule is None or schedule.review_count == 0:
        return ClozeState.NEW

    now_ms = to_epoch_ms(now)
    # A reviewed schedule without a due date is treated as due right now
    due_ms = to_epoch_ms(schedule.due_at)
    if due_ms is None:
        due_ms = now_ms
    last_ms = to_epoch_ms(schedule.last_reviewed_at)

    # Just failed: keep the span open and out of grading for the cooldown
    if schedule.interval * DAY_MS < config.cooling_period_ms * 2:
        if last_ms is not None and due_ms > now_ms:
            if now_ms - last_ms < config.cooling_period_ms:
                return ClozeState.COOLING

    remaining_ms = due_ms - now_ms
    if remaining_ms > config.hide_before_due_hours * HOUR_MS:
        return ClozeState.CLEARED

    if schedule.interval < 1:
        return ClozeState.LEARNING

    overdue_days = -remaining_ms / DAY_MS
    if overdue_days >= config.danger_threshold_days:
        return ClozeState.DANGER

    return ClozeState.DUE


def is_visible_by_default(state: ClozeState) -> bool:
    return state in VISIBLE_STATES


def allows_grading(state: ClozeState) -> bool:
    """Opening a cooling span must not offer a grading prompt."""
    return state is not ClozeState.COOLING
