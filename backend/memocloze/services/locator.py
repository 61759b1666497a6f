"""
Cloze span recognition and locator assignment.

Syntax:  --[id] hidden text--^^audio:spoken text^^
  - ``[id]`` is optional; spans without one get ``auto-<n>``.
  - ``^^audio:...^^`` is optional text-to-speech payload.
  - ``¶`` inside the hidden text marks a line break.

Auto ids are numbered per parse pass, counting only unlabeled spans in the
order they appear. Inserting or removing an unlabeled span shifts the ids of
every unlabeled span after it.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

CLOZE_PATTERN = re.compile(
    r"--(?!-)"                      # opening delimiter, not a run of dashes
    r"(?:\[([^\]\n]+)\]\s*)?"       # optional explicit locator
    r"(\s*\S[\s\S]*?)"              # hidden content, non-empty
    r"--"                           # closing delimiter
    r"(?:\^\^audio:([^^]+)\^\^)?"   # optional audio annotation
)
AUTO_PREFIX = "auto-"
LINEBREAK = "¶"
CONDENSED_LIMIT = 100
EMPTY_PLACEHOLDER = "[...]"


@dataclass(frozen=True)
class ClozeSpan:
    locator: str
    content: str
    audio_text: str | None
    start: int
    end: int


@dataclass
class ParsePass:
    """Per-parse state: the auto-id counter and the locators handed out so far."""

    counter: int = 0
    seen: set[str] = field(default_factory=set)

    def next_auto_id(self) -> str:
        locator = f"{AUTO_PREFIX}{self.counter}"
        self.counter += 1
        return locator

    def claim(self, locator: str) -> str:
        """Register a locator, suffixing it with ``#<k>`` if already taken."""
        if locator not in self.seen:
            self.seen.add(locator)
            return locator
        k = 1
        while f"{locator}#{k}" in self.seen:
            k += 1
        unique = f"{locator}#{k}"
        logger.warning("Duplicate cloze locator %r renamed to %r", locator, unique)
        self.seen.add(unique)
        return unique


def parse_clozes(text: str, parse_pass: ParsePass | None = None) -> list[ClozeSpan]:
    """Return every cloze span in ``text`` in document order.

    Malformed spans are left as plain text. Passing the same ``parse_pass``
    to several calls continues its numbering; by default each call starts at
    ``auto-0``.
    """
    state = parse_pass if parse_pass is not None else ParsePass()
    spans: list[ClozeSpan] = []

    for match in CLOZE_PATTERN.finditer(text):
        explicit, content, audio = match.groups()
        explicit = (explicit or "").strip()
        locator = explicit if explicit else state.next_auto_id()
        audio = (audio or "").strip()

        spans.append(
            ClozeSpan(
                locator=state.claim(locator),
                content=content.strip(),
                audio_text=audio or None,
                start=match.start(),
                end=match.end(),
            )
        )

    return spans


def condense(content: str, expanded: bool = True, limit: int = CONDENSED_LIMIT) -> str:
    """Prepare span content for display.

    Expanded keeps line breaks; condensed folds them into spaces and
    truncates to ``limit`` characters.
    """
    if expanded:
        text = content.replace(LINEBREAK, "\n").strip()
    else:
        text = content.replace(LINEBREAK, " ").strip()
        if len(text) > limit:
            text = text[:limit] + "..."
    return text or EMPTY_PLACEHOLDER
