"""Deterministic grading of quiz answers.

Everything here is a pure function of the question and the submitted answer
so it can be unit tested without a database.  Persistence of the results is
the job of :mod:`apps.quizzes.service_utils.attempts`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping

from rest_framework import exceptions

from apps.quizzes.models import AnswerDetail, Question, Submission

Correctness = AnswerDetail.Correctness


@dataclass(frozen=True)
class GradeResult:
    question_id: int
    answer: Any
    correctness: str
    points_awarded: int

    @property
    def is_pending(self) -> bool:
        return self.correctness == Correctness.PENDING


def _canonical_set(question: Question) -> set[str]:
    value = question.correct_answer
    if value is None:
        return set()
    if isinstance(value, str):
        return {value}
    return {str(item) for item in value}


def _is_blank(answer: Any) -> bool:
    return answer is None or answer == "" or answer == []


def grade_answer(question: Question, answer: Any) -> GradeResult:
    """Grade one answer.

    Multiple choice is correct when the answer is in the canonical set,
    checkboxes when the submitted set equals the canonical set.  Either way
    the question earns its full points or nothing.  Short answers stay
    pending with zero points until graded by hand.
    """

    if question.type == Question.Type.SHORT_ANSWER:
        return GradeResult(question.id, answer, Correctness.PENDING, 0)

    if _is_blank(answer):
        is_correct = False
    elif question.type == Question.Type.MULTIPLE_CHOICE:
        is_correct = isinstance(answer, str) and answer in _canonical_set(question)
    elif question.type == Question.Type.CHECKBOXES:
        is_correct = isinstance(answer, (list, tuple)) and set(answer) == _canonical_set(question)
    else:  # pragma: no cover - guarded by model choices
        is_correct = False

    if is_correct:
        return GradeResult(question.id, answer, Correctness.CORRECT, question.points)
    return GradeResult(question.id, answer, Correctness.INCORRECT, 0)


def grade_answers(
    questions: Iterable[Question], answer_map: Mapping[str, Any]
) -> List[GradeResult]:
    """Grade every question of a quiz against the working answer map."""

    return [
        grade_answer(question, answer_map.get(str(question.id)))
        for question in questions
    ]


def score(details: Iterable) -> int:
    return sum(int(detail.points_awarded or 0) for detail in details)


def status_after_finalize(results: Iterable) -> str:
    if any(result.correctness == Correctness.PENDING for result in results):
        return Submission.Status.SUBMITTED
    return Submission.Status.GRADED


def status_after_manual_grading(details: Iterable) -> str:
    return status_after_finalize(details)


def clamp_points(question: Question, awarded_points: int) -> int:
    return max(0, min(int(awarded_points), int(question.points)))


def apply_manual_grade(detail: AnswerDetail, question: Question, awarded_points: int) -> AnswerDetail:
    """Set the manual grade on ``detail`` (not saved)."""

    points = clamp_points(question, awarded_points)
    detail.points_awarded = points
    detail.correctness = Correctness.CORRECT if points > 0 else Correctness.INCORRECT
    return detail


def normalise_answer(question: Question, value: Any) -> Any:
    """Validate an autosaved answer for ``question`` and return it cleaned.

    ``None`` clears the answer.
    """

    if value is None:
        return None

    if question.type == Question.Type.CHECKBOXES:
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise exceptions.ValidationError(
                {str(question.id): "Checkbox answers must be a list of options."}
            )
        unknown = [item for item in value if item not in question.options]
        if unknown:
            raise exceptions.ValidationError(
                {str(question.id): f"Unknown option(s): {', '.join(sorted(set(unknown)))}"}
            )
        # Keep the student's order but drop duplicates.
        return list(dict.fromkeys(value))

    if not isinstance(value, str):
        raise exceptions.ValidationError({str(question.id): "Answer must be a string."})

    if question.type == Question.Type.MULTIPLE_CHOICE and value not in question.options:
        raise exceptions.ValidationError({str(question.id): "Answer is not one of the options."})

    return value
