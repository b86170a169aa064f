import pytest

from urpaq_rag.models import ValidationIssue
from urpaq_rag.validation import (
    EMPTY_RESPONSE_TEXT,
    INSUFFICIENT_INFO_TEXT,
    TOO_SHORT_TEXT,
    TRUNCATION_MARKER,
    ResponseValidator,
)

validator = ResponseValidator()


@pytest.mark.parametrize("answer", [None, "", "   \n\t"])
def test_empty_answers(answer):
    result = validator.validate(answer, "вопрос")
    assert (result.is_valid, result.issue, result.processed_text) == (False, ValidationIssue.EMPTY_RESPONSE, EMPTY_RESPONSE_TEXT)


def test_length_boundaries():
    too_short = validator.validate("123456789", "вопрос")
    assert (too_short.is_valid, too_short.issue, too_short.processed_text) == (
        False,
        ValidationIssue.TOO_SHORT,
        TOO_SHORT_TEXT,
    )

    minimal = validator.validate("1234567890", "вопрос")
    assert (minimal.is_valid, minimal.issue) == (True, ValidationIssue.NONE)

    at_limit = validator.validate("я" * 5000, "вопрос")
    assert (at_limit.is_valid, at_limit.issue) == (True, ValidationIssue.NONE)

    over_limit = validator.validate("я" * 5001, "вопрос")
    assert (over_limit.is_valid, over_limit.issue) == (True, ValidationIssue.TRUNCATED)
    assert len(over_limit.processed_text) <= 5000
    assert over_limit.processed_text.endswith(TRUNCATION_MARKER)


def test_truncation_backs_up_to_sentence_end():
    answer = "Кружок работает по субботам. " * 300
    result = validator.validate(answer, "вопрос")

    body = result.processed_text[: -len(TRUNCATION_MARKER)]
    assert result.issue is ValidationIssue.TRUNCATED
    assert body.endswith(".")
    assert len(result.processed_text) <= len(answer)


def test_long_refusal_is_truncated_not_flagged():
    result = validator.validate("Я не знаю. " + "а" * 6000, "вопрос")
    assert result.issue is ValidationIssue.TRUNCATED


@pytest.mark.parametrize(
    "answer",
    [
        "Я не знаю, когда начинается урок.",
        "К сожалению, ДАННЫХ НЕТ по этому вопросу.",
        "Информация отсутствует в документах.",
        "Sorry, I don't know the schedule.",
        "There is no information available on that.",
    ],
)
def test_refusal_phrases_are_hallucinations(answer):
    result = validator.validate(answer, "вопрос")
    assert (result.is_valid, result.issue, result.processed_text) == (
        False,
        ValidationIssue.HALLUCINATION,
        INSUFFICIENT_INFO_TEXT,
    )


def test_normalization_of_valid_answer():
    raw = "  Ответ:\n- первый   пункт\n* второй\n1) третий\n2: четвертый\n\n\n\n[INST]конец\tтекста<|eot_id|></s>  "
    result = validator.validate(raw, "вопрос")

    assert result.issue is ValidationIssue.NONE
    assert result.processed_text == "Ответ:\n• первый пункт\n• второй\n1. третий\n2. четвертый\n\nконец текста"


def test_answer_of_only_control_tokens_is_empty():
    result = validator.validate("[INST] <|im_end|> [/INST]", "вопрос")
    assert result.issue is ValidationIssue.EMPTY_RESPONSE
