"""
Review session for one document: the command/event channel between a UI and
the review engine.

Commands go in through ``submit()`` (or ``handle()`` directly); state changes
and grading prompts come out on ``events``. A UI never touches the cache or
the scheduler itself.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone

from memocloze.config import settings
from memocloze.models.schedule import ClozeState, ReviewSchedule
from memocloze.services.classifier import (
    DEFAULT_CONFIG,
    ClassifierConfig,
    allows_grading,
    classify,
    is_visible_by_default,
)
from memocloze.services.locator import ClozeSpan, parse_clozes
from memocloze.services.scheduler import InvalidGradeError, validate_grade
from memocloze.services.sync import ReviewSync

logger = logging.getLogger(__name__)


# --- Commands ---


@dataclass(frozen=True)
class Render:
    text: str


@dataclass(frozen=True)
class Reveal:
    locator: str


@dataclass(frozen=True)
class Hide:
    locator: str


@dataclass(frozen=True)
class Toggle:
    locator: str


@dataclass(frozen=True)
class ToggleAll:
    show: bool


@dataclass(frozen=True)
class SubmitGrade:
    locator: str
    grade: int


@dataclass(frozen=True)
class Dismiss:
    locator: str


@dataclass(frozen=True)
class BatchGrade:
    pass


@dataclass(frozen=True)
class ForceResync:
    pass


Command = (
    Render
    | Reveal
    | Hide
    | Toggle
    | ToggleAll
    | SubmitGrade
    | Dismiss
    | BatchGrade
    | ForceResync
)


# --- Events ---


@dataclass(frozen=True)
class StateChanged:
    locator: str
    state: ClozeState
    visible: bool


@dataclass(frozen=True)
class PromptOpened:
    locator: str
    timeout_ms: int  # 0 = stays open until graded or dismissed


@dataclass(frozen=True)
class PromptClosed:
    locator: str
    reason: str  # graded | timeout | dismissed | hidden | rerender


Event = StateChanged | PromptOpened | PromptClosed


@dataclass
class SpanStatus:
    span: ClozeSpan
    state: ClozeState
    visible: bool
    schedule: ReviewSchedule | None


@dataclass
class _Prompt:
    id: int
    timer: asyncio.TimerHandle | None


def evaluate(
    spans: list[ClozeSpan],
    sync: ReviewSync,
    now: datetime,
    config: ClassifierConfig = DEFAULT_CONFIG,
) -> list[SpanStatus]:
    """Classify spans against whatever the review cache holds right now."""
    statuses = []
    for span in spans:
        schedule = sync.get(span.locator)
        state = classify(schedule, now, config)
        statuses.append(
            SpanStatus(
                span=span,
                state=state,
                visible=is_visible_by_default(state),
                schedule=schedule,
            )
        )
    return statuses


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReviewSession:
    def __init__(
        self,
        context_id: str,
        sync: ReviewSync,
        config: ClassifierConfig = DEFAULT_CONFIG,
        grading_timeout_ms: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.context_id = context_id
        self.sync = sync
        self.config = config
        self.grading_timeout_ms = (
            settings.grading_timeout_ms if grading_timeout_ms is None else grading_timeout_ms
        )
        self.clock = clock

        self.commands: asyncio.Queue[Command] = asyncio.Queue()
        self.events: asyncio.Queue[Event] = asyncio.Queue()

        self._spans: dict[str, ClozeSpan] = {}
        self._states: dict[str, ClozeState] = {}
        self._visible: dict[str, bool] = {}
        self._prompts: dict[str, _Prompt] = {}
        self._prompt_ids = itertools.count(1)

    # --- Channel ---

    async def submit(self, command: Command) -> None:
        await self.commands.put(command)

    async def run(self) -> None:
        """Process queued commands in order until cancelled."""
        while True:
            command = await self.commands.get()
            try:
                await self.handle(command)
            except InvalidGradeError as e:
                logger.warning("Rejected grade for %s: %s", self.context_id, e)
            except Exception:
                logger.exception("Review command %r failed", command)
            finally:
                self.commands.task_done()

    async def handle(self, command: Command) -> None:
        if isinstance(command, Render):
            await self.render(command.text)
        elif isinstance(command, Reveal):
            self.reveal(command.locator)
        elif isinstance(command, Hide):
            self.hide(command.locator)
        elif isinstance(command, Toggle):
            self.toggle(command.locator)
        elif isinstance(command, ToggleAll):
            self.toggle_all(command.show)
        elif isinstance(command, SubmitGrade):
            await self.grade(command.locator, command.grade)
        elif isinstance(command, Dismiss):
            self._close_prompt(command.locator, "dismissed")
        elif isinstance(command, BatchGrade):
            self.batch_grade()
        elif isinstance(command, ForceResync):
            await self.sync.force_resync(self.context_id)
            self._reapply(list(self._spans.values()))
        else:
            raise TypeError(f"Unknown review command: {command!r}")

    def close(self) -> None:
        for locator in list(self._prompts):
            self._close_prompt(locator, "dismissed")

    # --- Queries ---

    def state_of(self, locator: str) -> ClozeState | None:
        return self._states.get(locator)

    def is_visible(self, locator: str) -> bool:
        return self._visible.get(locator, False)

    def has_prompt(self, locator: str) -> bool:
        return locator in self._prompts

    # --- Operations ---

    async def render(self, text: str) -> list[SpanStatus]:
        """One render pass: re-parse, load history once, apply default visuals."""
        for locator in list(self._prompts):
            self._close_prompt(locator, "rerender")

        spans = parse_clozes(text)
        await self.sync.ensure_loaded(self.context_id)

        self._spans = {span.locator: span for span in spans}
        self._states = {}
        self._visible = {}
        return self._reapply(spans)

    def reveal(self, locator: str) -> bool:
        """Open a hidden span. Returns True if a grading prompt was shown.

        Only the hidden -> visible change prompts; revealing an open span
        does nothing.
        """
        if locator not in self._spans:
            logger.warning("Reveal of unknown cloze %r in %s", locator, self.context_id)
            return False
        if self.is_visible(locator):
            return False

        self._set_visible(locator, True)
        state = self._states[locator]
        if not allows_grading(state):
            logger.debug("Cloze %s is cooling, no grading prompt", locator)
            return False
        self._open_prompt(locator, self.grading_timeout_ms)
        return True

    def hide(self, locator: str) -> None:
        if locator not in self._spans:
            logger.warning("Hide of unknown cloze %r in %s", locator, self.context_id)
            return
        self._close_prompt(locator, "hidden")
        self._set_visible(locator, False)

    def toggle(self, locator: str) -> bool:
        """Flip a span like a click does. Returns True if a grading prompt was shown."""
        if self.is_visible(locator):
            self.hide(locator)
            return False
        return self.reveal(locator)

    def toggle_all(self, show: bool) -> None:
        """Show or hide every span at once. Showing all opens no prompts."""
        for locator in self._spans:
            if show:
                self._set_visible(locator, True)
            else:
                self.hide(locator)

    def batch_grade(self) -> int:
        """Open every span and prompt all but the cooling ones, without timeout."""
        opened = 0
        for locator in self._spans:
            self._set_visible(locator, True)
            if allows_grading(self._states[locator]):
                self._open_prompt(locator, 0)
                opened += 1
        return opened

    async def grade(self, locator: str, grade: int) -> ReviewSchedule | None:
        """Apply a grade from an open prompt.

        Grades for spans without an open prompt (already graded, timed out or
        dismissed) are ignored and return None.
        """
        grade = validate_grade(grade)
        if not self._close_prompt(locator, "graded"):
            logger.info("Ignoring grade for %s: no open prompt", locator)
            return None

        now = self.clock()
        schedule = self.sync.record_grade(self.context_id, locator, grade, now)
        state = classify(schedule, now, self.config)
        self._states[locator] = state
        # A graded span stays open so the answer remains readable
        self._set_visible(locator, True, force_event=True)

        await self.sync.save(self.context_id, locator, schedule)
        return schedule

    # --- Internals ---

    def _reapply(self, spans: list[ClozeSpan]) -> list[SpanStatus]:
        statuses = evaluate(spans, self.sync, self.clock(), self.config)
        for status in statuses:
            locator = status.span.locator
            self._states[locator] = status.state
            self._set_visible(locator, status.visible, force_event=True)
        return statuses

    def _set_visible(self, locator: str, visible: bool, force_event: bool = False) -> None:
        changed = self._visible.get(locator) != visible
        self._visible[locator] = visible
        if changed or force_event:
            self._emit(StateChanged(locator, self._states[locator], visible))

    def _open_prompt(self, locator: str, timeout_ms: int) -> None:
        if locator in self._prompts:
            self._close_prompt(locator, "dismissed")

        prompt_id = next(self._prompt_ids)
        timer = None
        if timeout_ms > 0:
            loop = asyncio.get_running_loop()
            timer = loop.call_later(
                timeout_ms / 1000, self._close_prompt, locator, "timeout", prompt_id
            )
        self._prompts[locator] = _Prompt(id=prompt_id, timer=timer)
        self._emit(PromptOpened(locator, timeout_ms))

    def _close_prompt(
        self, locator: str, reason: str, prompt_id: int | None = None
    ) -> bool:
        """Close the prompt of ``locator`` once. Later calls are no-ops."""
        prompt = self._prompts.get(locator)
        if prompt is None or (prompt_id is not None and prompt.id != prompt_id):
            return False
        del self._prompts[locator]
        if prompt.timer is not None:
            prompt.timer.cancel()
        self._emit(PromptClosed(locator, reason))
        return True

    def _emit(self, event: Event) -> None:
        self.events.put_nowait(event)
