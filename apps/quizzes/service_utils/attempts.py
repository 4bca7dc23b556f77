"""Attempt lifecycle for timed quizzes.

A student has exactly one :class:`~apps.quizzes.models.Submission` per quiz.
It is created lazily by :func:`get_or_create_attempt`, receives autosaves
through :func:`save_answers` and is finalized exactly once by
:func:`finalize`, either by the student or by the auto-submit job.  The
finalize transition is claimed with a single conditional update on
``submitted_at IS NULL`` so that when both triggers race, one wins and the
other only observes the result.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import hashlib
import logging
import random
from typing import Any, List, Mapping, Optional

from django.db import models, transaction
from django.utils import timezone
from rest_framework import exceptions

from accounts.services import Principal
from apps.quizzes import events
from apps.quizzes.exceptions import InvalidState
from apps.quizzes.models import AnswerDetail, Quiz, Submission

from . import autosubmit, grading
from .eligibility import ensure_eligible
from .projections import student_result_view

logger = logging.getLogger(__name__)


class Trigger(models.TextChoices):
    MANUAL = "manual", "Manual"
    AUTO = "auto", "Auto"


@dataclass
class FinalizeResult:
    submission: Submission
    applied: bool


def get_quiz_or_404(quiz_id: int) -> Quiz:
    try:
        return Quiz.objects.get(pk=quiz_id)
    except Quiz.DoesNotExist as exc:
        raise exceptions.NotFound("Quiz not found.") from exc


def _get_submission(quiz: Quiz, student_id: int, *, for_update: bool = False) -> Submission:
    queryset = Submission.objects.select_related("quiz")
    if for_update:
        queryset = queryset.select_for_update(of=("self",))
    try:
        return queryset.get(quiz=quiz, student_id=student_id)
    except Submission.DoesNotExist as exc:
        raise exceptions.NotFound("You have not started this quiz.") from exc


def get_attempt(quiz: Quiz, student: Principal) -> Submission:
    return _get_submission(quiz, student.id)


def _compute_order_seed(quiz_id: int, student_id: int) -> int:
    digest = hashlib.sha256(f"{quiz_id}:{student_id}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=False)


def compute_question_order(quiz: Quiz, student_id: int) -> List[int]:
    """Question ids in the order this student sees them.

    Computed once when the attempt is created and persisted on it.
    """

    question_ids = list(quiz.questions.order_by("order", "id").values_list("id", flat=True))
    if quiz.shuffle_questions:
        random.Random(_compute_order_seed(quiz.id, student_id)).shuffle(question_ids)
    return question_ids


@transaction.atomic
def get_or_create_attempt(quiz: Quiz, student: Principal) -> tuple[Submission, bool]:
    """Return the student's attempt, starting it (and its clock) if needed."""

    ensure_eligible(student, quiz)

    existing = Submission.objects.select_related("quiz").filter(
        quiz=quiz, student_id=student.id
    ).first()
    if existing is not None:
        return existing, False

    now = timezone.now()
    if quiz.due_date < now:
        raise InvalidState("The quiz is past its due date.")

    # get_or_create falls back to a fetch when a concurrent insert wins the
    # (quiz, student) unique constraint.
    submission, created = Submission.objects.get_or_create(
        quiz=quiz,
        student_id=student.id,
        defaults={
            "status": Submission.Status.IN_PROGRESS,
            "started_at": now,
            "answers": {},
            "question_order": compute_question_order(quiz, student.id),
        },
    )
    if created:
        logger.info("Student %s started quiz %s (submission=%s)", student.id, quiz.id, submission.pk)
        autosubmit.on_attempt_started(submission)
    return submission, created


def _ensure_in_progress(submission: Submission) -> None:
    if submission.status != Submission.Status.IN_PROGRESS or submission.is_finalized:
        raise InvalidState("Submission has already been finalized.")


def _ensure_time_left(submission: Submission, now: datetime) -> None:
    deadline = submission.deadline
    if deadline is not None and now > deadline:
        raise InvalidState("Time for this attempt is up.")


def _clean_answers(quiz: Quiz, answer_map: Any) -> dict:
    if not isinstance(answer_map, Mapping):
        raise exceptions.ValidationError("Answers must be an object keyed by question id.")

    questions = {str(question.id): question for question in quiz.questions.all()}
    cleaned: dict[str, Any] = {}
    for key, value in answer_map.items():
        question = questions.get(str(key))
        if question is None:
            raise exceptions.ValidationError({str(key): "Question is not part of this quiz."})
        normalised = grading.normalise_answer(question, value)
        if normalised is not None:
            cleaned[str(key)] = normalised
    return cleaned


@transaction.atomic
def save_answers(quiz: Quiz, student: Principal, answer_map: Mapping[str, Any]) -> Submission:
    """Overwrite the working answer set of an in-progress attempt."""

    submission = _get_submission(quiz, student.id, for_update=True)
    _ensure_in_progress(submission)
    now = timezone.now()
    _ensure_time_left(submission, now)
    cleaned = _clean_answers(quiz, answer_map)

    updated = Submission.objects.filter(
        pk=submission.pk,
        status=Submission.Status.IN_PROGRESS,
        submitted_at__isnull=True,
    ).update(answers=cleaned, last_saved_at=now, updated_at=now)
    if not updated:
        raise InvalidState("Submission has already been finalized.")

    submission.answers = cleaned
    submission.last_saved_at = now
    return submission


def _already_finalized(submission: Submission, trigger: str) -> FinalizeResult:
    if trigger == Trigger.AUTO:
        logger.info(
            "Auto-submit skipped for submission %s: already %s at %s",
            submission.pk,
            submission.status,
            submission.submitted_at,
        )
    else:
        logger.info("Manual finalize rejected for submission %s: already %s", submission.pk, submission.status)
    return FinalizeResult(submission=submission, applied=False)


def finalize(quiz: Quiz, student_id: int, trigger: str = Trigger.MANUAL) -> FinalizeResult:
    """Grade and close the attempt once; later calls return the stored result."""

    with transaction.atomic():
        submission = _get_submission(quiz, student_id, for_update=True)
        if submission.is_finalized:
            return _already_finalized(submission, trigger)

        now = timezone.now()
        submitted_at = now
        deadline = submission.deadline
        if deadline is not None and submitted_at > deadline:
            submitted_at = deadline

        questions = list(quiz.questions.order_by("order", "id"))
        results = grading.grade_answers(questions, submission.answers or {})
        status = grading.status_after_finalize(results)
        total = grading.score(results)

        claimed = Submission.objects.filter(
            pk=submission.pk, submitted_at__isnull=True
        ).update(
            submitted_at=submitted_at,
            status=status,
            score=total,
            auto_submitted=trigger == Trigger.AUTO,
            graded_at=now if status == Submission.Status.GRADED else None,
            updated_at=now,
        )
        if not claimed:
            submission.refresh_from_db()
            return _already_finalized(submission, trigger)

        AnswerDetail.objects.bulk_create(
            [
                AnswerDetail(
                    submission=submission,
                    question_id=result.question_id,
                    answer=result.answer,
                    correctness=result.correctness,
                    points_awarded=result.points_awarded,
                )
                for result in results
            ]
        )
        submission.refresh_from_db()

        events.publish(
            events.quiz_submitted,
            events.QuizSubmitted(
                quiz_id=quiz.id,
                submission_id=submission.pk,
                student_id=submission.student_id,
                status=submission.status,
                score=submission.score,
                auto_submitted=submission.auto_submitted,
            ),
        )
        if submission.status == Submission.Status.GRADED:
            _publish_graded(submission)

    logger.info(
        "Finalized submission %s (%s): status=%s score=%s",
        submission.pk,
        trigger,
        submission.status,
        submission.score,
    )
    return FinalizeResult(submission=submission, applied=True)


def _publish_graded(submission: Submission) -> None:
    events.publish(
        events.quiz_graded,
        events.QuizGraded(
            quiz_id=submission.quiz_id,
            submission_id=submission.pk,
            student_id=submission.student_id,
            score=submission.score,
        ),
    )


def _parse_manual_grades(submission: Submission, manual_grades: Any) -> list[tuple[AnswerDetail, int]]:
    if not isinstance(manual_grades, Mapping) or not manual_grades:
        raise exceptions.ValidationError("Grades must be a non-empty object keyed by question id.")

    details = {
        detail.question_id: detail
        for detail in submission.details.select_related("question")
    }
    parsed = []
    for key, value in manual_grades.items():
        try:
            question_id = int(key)
        except (TypeError, ValueError) as exc:
            raise exceptions.ValidationError({str(key): "Invalid question id."}) from exc
        detail = details.get(question_id)
        if detail is None:
            raise exceptions.NotFound(f"Question {key} is not part of this submission.")
        if isinstance(value, bool) or not isinstance(value, int):
            raise exceptions.ValidationError({str(key): "Points must be an integer."})
        if value < 0 or value > detail.question.points:
            raise exceptions.ValidationError(
                {str(key): f"Points must be between 0 and {detail.question.points}."}
            )
        parsed.append((detail, value))
    return parsed


@transaction.atomic
def grade_submission(
    submission_id: int,
    manual_grades: Mapping[str, int],
    owner: Principal,
    feedback: Optional[str] = None,
) -> Submission:
    """Apply the owner's manual grades to a finalized submission."""

    try:
        submission = (
            Submission.objects.select_for_update(of=("self",))
            .select_related("quiz")
            .get(pk=submission_id)
        )
    except Submission.DoesNotExist as exc:
        raise exceptions.NotFound("Submission not found.") from exc

    if submission.quiz.owner_id != owner.id:
        raise exceptions.PermissionDenied("Only the quiz owner can grade submissions.")
    if not submission.is_finalized:
        raise InvalidState("Submission is still in progress.")

    parsed = _parse_manual_grades(submission, manual_grades)
    for detail, points in parsed:
        grading.apply_manual_grade(detail, detail.question, points)
        detail.save(update_fields=["points_awarded", "correctness", "updated_at"])

    details = list(submission.details.all())
    now = timezone.now()
    status = grading.status_after_manual_grading(details)
    if submission.status == Submission.Status.GRADED:
        status = Submission.Status.GRADED
    became_graded = status == Submission.Status.GRADED and submission.status != Submission.Status.GRADED

    fields: dict[str, Any] = {
        "score": grading.score(details),
        "status": status,
        "updated_at": now,
    }
    if became_graded:
        fields["graded_at"] = now
    if feedback is not None:
        fields["feedback"] = feedback

    allowed_from = [Submission.Status.SUBMITTED, Submission.Status.GRADED]
    if status == Submission.Status.SUBMITTED:
        allowed_from = [Submission.Status.SUBMITTED]
    updated = Submission.objects.filter(
        pk=submission.pk, submitted_at__isnull=False, status__in=allowed_from
    ).update(**fields)
    if not updated:
        raise InvalidState("Submission changed while grading; reload and retry.")

    submission.refresh_from_db()
    logger.info(
        "Owner %s graded submission %s: status=%s score=%s",
        owner.id,
        submission.pk,
        submission.status,
        submission.score,
    )
    if became_graded:
        _publish_graded(submission)
    return submission


def attempt_result(quiz: Quiz, student: Principal) -> dict:
    submission = _get_submission(quiz, student.id)
    if not submission.is_finalized:
        raise InvalidState("You have not submitted this quiz yet.")
    details = submission.details.select_related("question")
    return student_result_view(submission, details)


__all__ = [
    "FinalizeResult",
    "Trigger",
    "attempt_result",
    "compute_question_order",
    "finalize",
    "get_attempt",
    "get_or_create_attempt",
    "get_quiz_or_404",
    "grade_submission",
    "save_answers",
]
