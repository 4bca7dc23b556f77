"""Deadline-driven auto-submit of timed attempts.

When a timed attempt starts, a durable job is scheduled for its deadline.
The job simply calls :func:`attempts.finalize` with the ``auto`` trigger; if
the student already submitted, finalize is a no-op, so stale or late jobs
are harmless and never cancelled.  On scheduler start-up a catch-up sweep
finalizes every in-progress timed attempt whose deadline already passed.
"""
from __future__ import annotations

from datetime import datetime
import logging

from django.utils import timezone
from rest_framework import exceptions

from apps.jobs import services as jobs
from apps.quizzes.models import Submission

from . import attempts

logger = logging.getLogger(__name__)

AUTO_SUBMIT_TASK = "quizzes.auto_submit"


def on_attempt_started(submission: Submission) -> None:
    """Arm the deadline job for ``submission`` (timed quizzes only)."""

    deadline = submission.deadline
    if deadline is None:
        return
    jobs.schedule(
        deadline,
        AUTO_SUBMIT_TASK,
        {"quiz_id": submission.quiz_id, "student_id": submission.student_id},
    )


@jobs.register(AUTO_SUBMIT_TASK)
def auto_submit(quiz_id: int, student_id: int) -> None:
    try:
        quiz = attempts.get_quiz_or_404(quiz_id)
        result = attempts.finalize(quiz, student_id, trigger=attempts.Trigger.AUTO)
    except exceptions.NotFound:
        logger.info(
            "Auto-submit for quiz %s / student %s ignored: attempt no longer exists",
            quiz_id,
            student_id,
        )
        return
    if result.applied:
        logger.info(
            "Auto-submitted quiz %s for student %s (score=%s)",
            quiz_id,
            student_id,
            result.submission.score,
        )


def sweep_overdue_attempts(now: datetime | None = None) -> int:
    """Finalize every in-progress timed attempt past its deadline."""

    now = now or timezone.now()
    finalized = 0
    candidates = (
        Submission.objects.select_related("quiz")
        .filter(
            status=Submission.Status.IN_PROGRESS,
            submitted_at__isnull=True,
            quiz__time_limit_minutes__isnull=False,
        )
        .order_by("started_at", "id")
    )
    for submission in list(candidates):
        deadline = submission.deadline
        if deadline is None or deadline > now:
            continue
        try:
            result = attempts.finalize(submission.quiz, submission.student_id, trigger=attempts.Trigger.AUTO)
        except Exception:
            logger.exception("Catch-up auto-submit failed for submission %s", submission.pk)
            continue
        if result.applied:
            finalized += 1
    if finalized:
        logger.info("Catch-up sweep auto-submitted %d overdue attempt(s)", finalized)
    return finalized


jobs.register_startup_hook(sweep_overdue_attempts)
