"""Quiz creation and the owner's management of their quizzes."""
from __future__ import annotations

import logging
from typing import Any, Mapping

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Count, Prefetch, Q, QuerySet
from rest_framework import exceptions

from accounts.services import ROLE_ADMIN, Principal
from apps.quizzes import events
from apps.quizzes.models import AnswerDetail, Question, Quiz, Submission

logger = logging.getLogger(__name__)

TARGETING_FIELDS = (
    "assigned_user_ids",
    "assigned_grades",
    "assigned_other_grades",
    "assigned_programs",
    "assigned_school_ids",
)


def _ensure_can_author(principal: Principal) -> None:
    if not (principal.is_teacher or principal.role == ROLE_ADMIN):
        raise exceptions.PermissionDenied("Only teachers can manage quizzes.")


def _clean(instance, prefix: str | None = None) -> None:
    try:
        instance.clean()
    except DjangoValidationError as exc:
        messages = exc.messages
        raise exceptions.ValidationError({prefix: messages} if prefix else messages) from exc


def _dedupe(values) -> list:
    return list(dict.fromkeys(values or []))


@transaction.atomic
def create_quiz(owner: Principal, data: Mapping[str, Any]) -> Quiz:
    """Create a quiz with its questions.

    Targeting is fixed at creation; a quiz nobody can see is rejected.
    """

    _ensure_can_author(owner)
    payload = dict(data)
    questions_data = list(payload.pop("questions", None) or [])
    if not questions_data:
        raise exceptions.ValidationError({"questions": ["A quiz needs at least one question."]})

    for field in TARGETING_FIELDS:
        payload[field] = _dedupe(payload.get(field))

    quiz = Quiz(owner_id=owner.id, **payload)
    _clean(quiz)
    quiz.save()

    for index, question_data in enumerate(questions_data, start=1):
        question = Question(quiz=quiz, order=index, **dict(question_data))
        _clean(question, prefix=f"questions[{index - 1}]")
        question.save()

    logger.info("Teacher %s created quiz %s (%d questions)", owner.id, quiz.pk, len(questions_data))
    events.publish(
        events.quiz_created,
        events.QuizCreated(quiz_id=quiz.pk, owner_id=owner.id, title=quiz.title),
    )
    return quiz


def owner_quizzes(owner: Principal) -> QuerySet:
    _ensure_can_author(owner)
    return (
        Quiz.objects.filter(owner_id=owner.id)
        .prefetch_related(Prefetch("questions", queryset=Question.objects.order_by("order")))
        .annotate(
            submission_count=Count("submissions", distinct=True),
            pending_grading_count=Count(
                "submissions",
                filter=Q(submissions__status=Submission.Status.SUBMITTED),
                distinct=True,
            ),
        )
        .order_by("-created_at", "-id")
    )


def get_owned_quiz(owner: Principal, quiz_id: int) -> Quiz:
    _ensure_can_author(owner)
    try:
        quiz = Quiz.objects.prefetch_related(
            Prefetch("questions", queryset=Question.objects.order_by("order"))
        ).get(pk=quiz_id)
    except Quiz.DoesNotExist as exc:
        raise exceptions.NotFound("Quiz not found.") from exc
    if quiz.owner_id != owner.id:
        raise exceptions.PermissionDenied("You do not own this quiz.")
    return quiz


@transaction.atomic
def delete_quiz(owner: Principal, quiz_id: int) -> None:
    """Delete a quiz; its submissions go with it."""

    quiz = get_owned_quiz(owner, quiz_id)
    quiz_pk = quiz.pk
    quiz.delete()
    logger.info("Teacher %s deleted quiz %s", owner.id, quiz_pk)


def quiz_submissions(owner: Principal, quiz_id: int) -> QuerySet:
    quiz = get_owned_quiz(owner, quiz_id)
    return (
        Submission.objects.filter(quiz=quiz)
        .select_related("student")
        .prefetch_related(
            Prefetch(
                "details",
                queryset=AnswerDetail.objects.select_related("question").order_by("question__order"),
            )
        )
        .order_by("started_at", "id")
    )
