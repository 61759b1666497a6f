"""
SM-2 variant scheduler for cloze spans.

Intervals are float days. Sub-day intervals are learning steps:

  grade     learning (interval < 1)         review (interval >= 1)
  Again     1 min, ease -0.2                1 min, ease -0.2
  Hard      5 min                           interval * 1.2, ease -0.15
  Good      10 min, or 1 day once past      interval * ease
            the 10 minute step
  Easy      4 days                          interval * ease * 1.3, ease +0.15

Ease never drops below 1.3.
"""
from __future__ import annotations

from datetime import datetime, timedelta

from memocloze.models.schedule import Grade, ReviewSchedule

ONE_MINUTE = 1 / 1440
TEN_MINUTES = 10 / 1440
MIN_EASE = 1.3
START_EASE = 2.5


class InvalidGradeError(ValueError):
    """Raised when a grade outside 1..4 reaches the scheduler."""


def validate_grade(value: object) -> Grade:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidGradeError(f"grade must be an integer 1-4, got {value!r}")
    try:
        return Grade(value)
    except ValueError:
        raise InvalidGradeError(f"grade must be 1, 2, 3 or 4, got {value}") from None


def next_schedule(
    previous: ReviewSchedule | None,
    grade: int,
    now: datetime,
) -> ReviewSchedule:
    """Compute the schedule that follows ``previous`` after a review at ``now``."""
    grade = validate_grade(grade)
    prev = previous or ReviewSchedule(interval=0.0, ease_factor=START_EASE)

    ease = prev.ease_factor
    interval = prev.interval

    if grade == Grade.AGAIN:
        ease = max(MIN_EASE, ease - 0.2)
        new_interval = ONE_MINUTE
    elif interval < 1:
        if grade == Grade.HARD:
            new_interval = ONE_MINUTE * 5
        elif grade == Grade.GOOD:
            # Graduate only once the 10 minute step has been passed
            new_interval = 1.0 if interval >= TEN_MINUTES * 0.9 else TEN_MINUTES
        else:
            new_interval = 4.0
    else:
        if grade == Grade.HARD:
            ease = max(MIN_EASE, ease - 0.15)
            new_interval = interval * 1.2
        elif grade == Grade.GOOD:
            new_interval = interval * ease
        else:
            ease = ease + 0.15
            new_interval = interval * ease * 1.3

    return ReviewSchedule(
        due_at=now + timedelta(days=new_interval),
        last_reviewed_at=now,
        last_grade=int(grade),
        review_count=prev.review_count + 1,
        interval=new_interval,
        ease_factor=ease,
    )
