"""Answer matching per challenge kind.

Challenge ``type`` strings map onto three closed kinds:

- ``audio``: any submission counts (content is not verified).
- ``quiz``/``visual`` with usable choices: exact match, case-insensitive, trimmed.
- everything else (``cultural``, or quiz/visual without choices): the answer
  must contain the expected text as a substring.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from culturebridge.errors import DegradedChallenge

AUDIO_RECORDED = "recorded"
CHOICE_TYPES = frozenset({"quiz", "visual"})


def normalize_answer(value: str | None) -> str:
    return (value or "").strip().lower()


def usable_choices(options: dict[str, Any] | None) -> list[str] | None:
    """Return ``options.choices`` if it holds at least two strings, else None."""
    if not isinstance(options, dict):
        return None
    choices = options.get("choices")
    if not isinstance(choices, (list, tuple)):
        return None
    strings = [c for c in choices if isinstance(c, str) and c.strip()]
    if len(strings) < 2:
        return None
    return strings


class AnswerKind(Protocol):
    kind: str

    def validate(self, answer: str | None) -> bool: ...


@dataclass(frozen=True)
class AudioTask:
    kind: str = "audio"

    def validate(self, answer: str | None) -> bool:
        return True


@dataclass(frozen=True)
class MultipleChoice:
    correct_answer: str
    choices: tuple[str, ...]
    kind: str = "multiple_choice"

    def validate(self, answer: str | None) -> bool:
        expected = normalize_answer(self.correct_answer)
        if not expected:
            return False
        return normalize_answer(answer) == expected


@dataclass(frozen=True)
class FreeText:
    correct_answer: str
    kind: str = "free_text"

    def validate(self, answer: str | None) -> bool:
        expected = normalize_answer(self.correct_answer)
        # An empty expected answer would be contained in everything
        if not expected:
            return False
        return expected in normalize_answer(answer)


def answer_kind(challenge: Any) -> AnswerKind:
    """Build the matcher for a challenge row.

    Raises:
        DegradedChallenge: If the challenge has no correct answer to match against.
    """
    if challenge.type == "audio":
        return AudioTask()

    if not normalize_answer(challenge.correct_answer):
        msg = f"Challenge {challenge.id} has no correct answer and cannot be scored"
        raise DegradedChallenge(msg)

    if challenge.type in CHOICE_TYPES:
        choices = usable_choices(challenge.options)
        if choices is not None:
            return MultipleChoice(correct_answer=challenge.correct_answer, choices=tuple(choices))

    return FreeText(correct_answer=challenge.correct_answer)


def is_answer_correct(challenge: Any, submitted_answer: str | None) -> bool:
    """Decide whether ``submitted_answer`` solves ``challenge``.

    A challenge without a usable correct answer never matches.
    """
    try:
        kind = answer_kind(challenge)
    except DegradedChallenge:
        return False
    return kind.validate(submitted_answer)


def is_scorable(challenge: Any) -> bool:
    try:
        answer_kind(challenge)
    except DegradedChallenge:
        return False
    return True
