"""Leaderboards over finalized submissions."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

from rest_framework import exceptions

from accounts.services import ROLE_ADMIN, Principal
from apps.quizzes.models import Quiz, Submission

from .eligibility import is_eligible

RANKED_STATUSES = (Submission.Status.SUBMITTED, Submission.Status.GRADED)


@dataclass(frozen=True)
class RankEntry:
    position: int
    student_id: int
    student_name: str
    score: int
    status: str


def _sort_key(submission: Submission):
    return (-submission.score, submission.started_at, submission.pk)


def _display_name(submission: Submission) -> str:
    student = submission.student
    full_name = student.get_full_name() if hasattr(student, "get_full_name") else ""
    return full_name or student.get_username()


def rank(submissions: Iterable[Submission]) -> List[RankEntry]:
    """Order finalized submissions by score.

    Ties are broken by the earlier start and then the lower submission id,
    so the same set of submissions always produces the same leaderboard.
    """

    ranked = sorted(
        (
            submission
            for submission in submissions
            if submission.status in RANKED_STATUSES and submission.score is not None
        ),
        key=_sort_key,
    )
    return [
        RankEntry(
            position=index,
            student_id=submission.student_id,
            student_name=_display_name(submission),
            score=submission.score,
            status=submission.status,
        )
        for index, submission in enumerate(ranked, start=1)
    ]


def rank_quiz(quiz: Quiz, viewer: Principal) -> List[RankEntry]:
    allowed = viewer.role == ROLE_ADMIN or quiz.owner_id == viewer.id or is_eligible(viewer, quiz)
    if not allowed:
        raise exceptions.PermissionDenied("You cannot view this leaderboard.")
    submissions = (
        Submission.objects.filter(quiz=quiz, status__in=RANKED_STATUSES)
        .select_related("student")
        .order_by("-score", "started_at", "id")
    )
    return rank(submissions)
