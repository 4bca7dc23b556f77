"""Student-facing projections of quizzes and attempts.

These builders whitelist fields explicitly.  Canonical answers are never
read here, which keeps the student boundary independent of model changes.
"""
from __future__ import annotations

from typing import Iterable, List, Optional

from apps.quizzes.models import Question, Quiz, Submission
from apps.quizzes.utils.rendering import render_prompt


def _isoformat(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def student_question_view(question: Question) -> dict:
    return {
        "id": question.id,
        "type": question.type,
        "prompt": question.prompt,
        "prompt_html": render_prompt(question.prompt),
        "points": question.points,
        "options": list(question.options or []) if question.is_choice else [],
    }


def ordered_questions(quiz: Quiz, submission: Optional[Submission] = None) -> List[Question]:
    """Questions in the order fixed for ``submission`` (quiz order otherwise)."""

    questions = sorted(quiz.questions.all(), key=lambda q: (q.order, q.id))
    if submission is None or not submission.question_order:
        return questions
    position = {question_id: index for index, question_id in enumerate(submission.question_order)}
    # Questions added after the attempt started go last, in quiz order.
    return sorted(questions, key=lambda q: (position.get(q.id, len(position)), q.order, q.id))


def attempt_summary(submission: Submission) -> dict:
    return {
        "id": submission.id,
        "status": submission.status,
        "started_at": _isoformat(submission.started_at),
        "deadline": _isoformat(submission.deadline),
        "submitted_at": _isoformat(submission.submitted_at),
        "auto_submitted": submission.auto_submitted,
        "score": submission.score if submission.is_finalized else None,
    }


def student_quiz_view(
    quiz: Quiz,
    submission: Optional[Submission] = None,
    *,
    include_questions: bool = False,
) -> dict:
    questions = ordered_questions(quiz, submission)
    view = {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "due_date": _isoformat(quiz.due_date),
        "time_limit_minutes": quiz.time_limit_minutes,
        "question_count": len(questions),
        "total_points": sum(question.points for question in questions),
        "attempt": attempt_summary(submission) if submission is not None else None,
    }
    if include_questions:
        view["questions"] = [student_question_view(question) for question in questions]
    return view


def student_attempt_view(submission: Submission) -> dict:
    """The running attempt: sanitized questions plus the working answers."""

    view = student_quiz_view(submission.quiz, submission, include_questions=True)
    view["answers"] = dict(submission.answers or {})
    view["last_saved_at"] = _isoformat(submission.last_saved_at)
    return view


def student_result_view(submission: Submission, details: Iterable) -> dict:
    """Finalized result for the student: their answers and points, no keys."""

    questions = ordered_questions(submission.quiz, submission)
    by_question = {detail.question_id: detail for detail in details}
    total_points = sum(question.points for question in questions)
    score = submission.score or 0
    results = []
    for question in questions:
        detail = by_question.get(question.id)
        results.append(
            {
                "question": student_question_view(question),
                "answer": detail.answer if detail else None,
                "correctness": detail.correctness if detail else None,
                "points_awarded": detail.points_awarded if detail else 0,
            }
        )
    return {
        "quiz_id": submission.quiz_id,
        "quiz_title": submission.quiz.title,
        "status": submission.status,
        "score": score,
        "total_points": total_points,
        "percentage": round(score * 100 / total_points, 2) if total_points else 0.0,
        "submitted_at": _isoformat(submission.submitted_at),
        "auto_submitted": submission.auto_submitted,
        "feedback": submission.feedback,
        "results": results,
    }
