import math
import re
import unicodedata
from typing import NamedTuple, Optional

from .config import ValidatorConfig, settings
from .models import Grade, PracticeQuestion, QuestionType

_WHITESPACE = re.compile(r"\s+")


class ValidationResult(NamedTuple):
    is_correct: bool
    grade: Grade


def normalize(text: Optional[str]) -> str:
    """NFC-normalizes, trims, collapses whitespace and lowercases."""
    if text is None:
        return ""
    text = unicodedata.normalize("NFC", str(text))
    return _WHITESPACE.sub(" ", text).strip().lower()


def levenshtein(s1: str, s2: str) -> int:
    """Calculate Levenshtein distance between two strings, per code point."""
    s1 = unicodedata.normalize("NFC", s1)
    s2 = unicodedata.normalize("NFC", s2)
    if len(s1) < len(s2):
        s1, s2 = s2, s1

    if len(s2) == 0:
        return len(s1)

    previous_row = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        current_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = previous_row[j + 1] + 1
            deletions = current_row[j] + 1
            substitutions = previous_row[j] + (c1 != c2)
            current_row.append(min(insertions, deletions, substitutions))
        previous_row = current_row

    return previous_row[-1]


def downgrade_for_hint(grade: Grade) -> Grade:
    """One step down for hinted answers, never below Hard."""
    if grade == Grade.Easy:
        return Grade.Good
    if grade == Grade.Good:
        return Grade.Hard
    return grade


class AnswerValidator:
    """Turns a raw response into a correctness signal and a derived grade."""

    def __init__(self, config: Optional[ValidatorConfig] = None):
        self.config = config or settings.VALIDATOR

    def validate(
        self,
        question: PracticeQuestion,
        raw_answer: str,
        time_spent_ms: int = 0,
        hint_used: bool = False,
        typo_tolerant: bool = False,
    ) -> ValidationResult:
        answer = normalize(raw_answer)
        expected = normalize(question.correct_answer)

        if question.question_type == QuestionType.MultipleChoice:
            result = self._exact(answer, expected)
        elif question.question_type == QuestionType.AudioRecognition:
            result = self._lenient(answer, expected)
        else:
            result = self._typed(answer, expected, time_spent_ms, typo_tolerant)

        if hint_used and result.is_correct:
            return ValidationResult(True, downgrade_for_hint(result.grade))
        return result

    def _exact(self, answer: str, expected: str) -> ValidationResult:
        if answer and answer == expected:
            return ValidationResult(True, Grade.Good)
        return ValidationResult(False, Grade.Again)

    def _lenient(self, answer: str, expected: str) -> ValidationResult:
        # Transcribed audio is noisy: either string containing the other is a match.
        if answer and expected and (answer in expected or expected in answer):
            return ValidationResult(True, Grade.Good)
        return ValidationResult(False, Grade.Again)

    def _typed(
        self, answer: str, expected: str, time_spent_ms: int, typo_tolerant: bool
    ) -> ValidationResult:
        if not answer:
            return ValidationResult(False, Grade.Again)

        if answer == expected:
            if time_spent_ms <= self.config.fast_answer_ms:
                return ValidationResult(True, Grade.Easy)
            return ValidationResult(True, Grade.Good)

        fuzzy_allowed = (
            typo_tolerant
            and len(answer) > self.config.min_fuzzy_length
            and len(expected) > self.config.min_fuzzy_length
        )
        if fuzzy_allowed:
            tolerance = math.floor(self.config.tolerance_ratio * len(expected) + 1e-9)
            if levenshtein(answer, expected) <= tolerance:
                return ValidationResult(True, Grade.Good)

        return ValidationResult(False, Grade.Again)
