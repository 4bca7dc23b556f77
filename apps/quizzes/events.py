"""Outbound domain events of the quiz subsystem.

Events are typed dataclasses sent through Django signals once the
surrounding transaction commits.  Delivery (push, SMS, email) belongs to
subscribers outside this app; see :mod:`apps.quizzes.notifications` for the
relay to an external notifier.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
import logging
from typing import Any, Optional

from django.db import transaction
from django.dispatch import Signal
from django.utils import timezone

logger = logging.getLogger(__name__)

quiz_created = Signal()
quiz_submitted = Signal()
quiz_graded = Signal()


@dataclass(frozen=True)
class QuizCreated:
    quiz_id: int
    owner_id: int
    title: str
    occurred_at: datetime = field(default_factory=timezone.now)

    name = "quiz_created"


@dataclass(frozen=True)
class QuizSubmitted:
    quiz_id: int
    submission_id: int
    student_id: int
    status: str
    score: Optional[int]
    auto_submitted: bool
    occurred_at: datetime = field(default_factory=timezone.now)

    name = "quiz_submitted"


@dataclass(frozen=True)
class QuizGraded:
    quiz_id: int
    submission_id: int
    student_id: int
    score: Optional[int]
    occurred_at: datetime = field(default_factory=timezone.now)

    name = "quiz_graded"


def event_payload(event) -> dict[str, Any]:
    payload = asdict(event)
    payload["occurred_at"] = event.occurred_at.isoformat()
    return {"event": event.name, "data": payload}


def _send(signal: Signal, event) -> None:
    for receiver, response in signal.send_robust(sender=type(event), event=event):
        if isinstance(response, Exception):
            logger.error(
                "Subscriber %r failed for %s: %s", receiver, event.name, response
            )


def publish(signal: Signal, event) -> None:
    """Send ``event`` on ``signal`` after the current transaction commits."""

    transaction.on_commit(lambda: _send(signal, event))
