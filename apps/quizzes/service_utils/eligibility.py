"""Which quizzes a student may see and attempt.

A quiz targets students along five independent dimensions (user, grade,
other grade, program, school).  Matching any one of them is enough.
"""
from __future__ import annotations

from typing import Any, Iterable, Iterator, List, Optional

from django.db.models import Prefetch, QuerySet, prefetch_related_objects
from rest_framework import exceptions

from accounts.services import Principal
from apps.quizzes.models import Question, Quiz, Submission

from .projections import student_quiz_view


def _contains(values: Optional[Iterable[Any]], item: Any) -> bool:
    if item is None or item == "" or not values:
        return False
    return str(item) in {str(value) for value in values}


def is_eligible(student: Principal, quiz: Quiz) -> bool:
    return (
        _contains(quiz.assigned_user_ids, student.id)
        or _contains(quiz.assigned_grades, student.grade)
        or _contains(quiz.assigned_other_grades, student.other_grade)
        or _contains(quiz.assigned_programs, student.program)
        or _contains(quiz.assigned_school_ids, student.school_id)
    )


def ensure_eligible(student: Principal, quiz: Quiz) -> None:
    if not is_eligible(student, quiz):
        raise exceptions.PermissionDenied("You are not assigned to this quiz.")


def _submissions_prefetch(student: Principal) -> Prefetch:
    return Prefetch(
        "submissions",
        queryset=Submission.objects.filter(student_id=student.id),
        to_attr="student_submissions",
    )


def _student_queryset(student: Principal) -> QuerySet:
    return Quiz.objects.prefetch_related(
        Prefetch("questions", queryset=Question.objects.order_by("order")),
        _submissions_prefetch(student),
    ).order_by("due_date", "id")


class EligibleQuizzes:
    """Restartable, lazy sequence of sanitized views of eligible quizzes.

    Each iteration evaluates the source afresh, so iterating twice reflects
    attempts started in between.  Nothing is written.
    """

    def __init__(self, student: Principal, quizzes: Optional[Iterable[Quiz]] = None):
        self.student = student
        if quizzes is not None and not isinstance(quizzes, QuerySet):
            # Generators can only be consumed once.
            quizzes = list(quizzes)
        self._quizzes = quizzes

    def _source(self) -> List[Quiz]:
        if self._quizzes is None:
            return list(_student_queryset(self.student))
        if isinstance(self._quizzes, QuerySet):
            queryset = self._quizzes.all()
            lookups = queryset._prefetch_related_lookups
            if not any(getattr(lookup, "to_attr", None) == "student_submissions" for lookup in lookups):
                queryset = queryset.prefetch_related(_submissions_prefetch(self.student))
            return list(queryset)
        quizzes = list(self._quizzes)
        for quiz in quizzes:
            # Drop what an earlier iteration fetched so new attempts show up.
            quiz.__dict__.pop("student_submissions", None)
        prefetch_related_objects(quizzes, _submissions_prefetch(self.student))
        return quizzes

    def __iter__(self) -> Iterator[dict]:
        for quiz in self._source():
            if not is_eligible(self.student, quiz):
                continue
            submissions = quiz.student_submissions
            submission = submissions[0] if submissions else None
            yield student_quiz_view(quiz, submission=submission)


def list_eligible_quizzes(
    student: Principal, quizzes: Optional[Iterable[Quiz]] = None
) -> EligibleQuizzes:
    return EligibleQuizzes(student, quizzes)
