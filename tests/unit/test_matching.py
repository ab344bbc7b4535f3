"""Answer matching per challenge kind."""

from types import SimpleNamespace

import pytest

from culturebridge.challenges.matching import (
    AudioTask,
    FreeText,
    MultipleChoice,
    answer_kind,
    is_answer_correct,
    is_scorable,
    normalize_answer,
    usable_choices,
)
from culturebridge.errors import DegradedChallenge


def _challenge(type_: str, correct: str | None, choices=None):
    return SimpleNamespace(
        id="c-1",
        type=type_,
        correct_answer=correct,
        options={"choices": choices} if choices is not None else None,
    )


def test_normalize_answer():
    assert normalize_answer("  Rome ") == "rome"
    assert normalize_answer(None) == ""


class TestUsableChoices:
    def test_two_strings_usable(self):
        assert usable_choices({"choices": ["Rome", "Milan"]}) == ["Rome", "Milan"]

    def test_tuple_usable(self):
        assert usable_choices({"choices": ("Rome", "Milan")}) == ["Rome", "Milan"]

    def test_single_choice_unusable(self):
        assert usable_choices({"choices": ["Rome"]}) is None

    def test_blank_entries_dropped(self):
        assert usable_choices({"choices": ["Rome", "  ", None]}) is None

    @pytest.mark.parametrize("options", [None, {}, {"choices": "Rome"}, ["Rome", "Milan"]])
    def test_malformed_options(self, options):
        assert usable_choices(options) is None


class TestAnswerKind:
    def test_audio_always_correct(self):
        kind = answer_kind(_challenge("audio", None))
        assert isinstance(kind, AudioTask)
        assert kind.validate(None) is True
        assert kind.validate("anything") is True

    def test_quiz_with_choices_is_multiple_choice(self):
        kind = answer_kind(_challenge("quiz", "Rome", ["Rome", "Milan", "Naples"]))
        assert isinstance(kind, MultipleChoice)
        assert kind.choices == ("Rome", "Milan", "Naples")

    def test_visual_with_choices_is_multiple_choice(self):
        assert isinstance(answer_kind(_challenge("visual", "Taj Mahal", ["Taj Mahal", "Big Ben"])), MultipleChoice)

    def test_quiz_without_choices_falls_back_to_free_text(self):
        assert isinstance(answer_kind(_challenge("quiz", "Rome", ["Rome"])), FreeText)

    def test_cultural_is_free_text(self):
        assert isinstance(answer_kind(_challenge("cultural", "Ohayo")), FreeText)

    def test_missing_correct_answer_is_degraded(self):
        with pytest.raises(DegradedChallenge):
            answer_kind(_challenge("quiz", None, ["Rome", "Milan"]))
        assert is_scorable(_challenge("cultural", None)) is False
        assert is_scorable(_challenge("audio", None)) is True


class TestMultipleChoice:
    def test_exact_match_trimmed_case_insensitive(self):
        challenge = _challenge("quiz", "Rome", ["Rome", "Roma", "Milan"])
        assert is_answer_correct(challenge, " rome ") is True

    def test_near_miss_is_incorrect(self):
        challenge = _challenge("quiz", "Rome", ["Rome", "Roma", "Milan"])
        assert is_answer_correct(challenge, "Roma") is False

    def test_substring_is_not_enough(self):
        challenge = _challenge("quiz", "Rome", ["Rome", "Milan"])
        assert is_answer_correct(challenge, "Rome, Italy") is False

    def test_empty_expected_never_matches(self):
        challenge = _challenge("quiz", "", ["Rome", "Milan"])
        assert is_answer_correct(challenge, "") is False


class TestFreeText:
    def test_containment(self):
        challenge = _challenge("cultural", "Ohayo")
        assert is_answer_correct(challenge, "I would say ohayo gozaimasu") is True

    def test_missing_text_is_incorrect(self):
        assert is_answer_correct(_challenge("cultural", "Ohayo"), "Konnichiwa") is False

    def test_none_answer_is_incorrect(self):
        assert is_answer_correct(_challenge("cultural", "Ohayo"), None) is False

    def test_empty_expected_never_matches(self):
        # Every string contains "", which would accept any answer
        assert is_answer_correct(_challenge("cultural", ""), "anything at all") is False
        assert is_answer_correct(_challenge("cultural", "   "), "anything at all") is False
