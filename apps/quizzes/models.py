from __future__ import annotations

from datetime import datetime, timedelta

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class Quiz(TimeStampedModel):
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="owned_quizzes",
    )
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    due_date = models.DateTimeField()
    time_limit_minutes = models.PositiveIntegerField(null=True, blank=True)
    shuffle_questions = models.BooleanField(default=False)

    # Targeting: a student sees the quiz if they match any of these.
    assigned_user_ids = models.JSONField(default=list, blank=True)
    assigned_grades = models.JSONField(default=list, blank=True)
    assigned_other_grades = models.JSONField(default=list, blank=True)
    assigned_programs = models.JSONField(default=list, blank=True)
    assigned_school_ids = models.JSONField(default=list, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["owner"], name="quizzes_quiz_owner_idx"),
            models.Index(fields=["due_date"], name="quizzes_quiz_due_date_idx"),
        ]
        verbose_name_plural = "quizzes"

    def __str__(self) -> str:
        return self.title

    @property
    def time_limit(self) -> timedelta | None:
        if not self.time_limit_minutes:
            return None
        return timedelta(minutes=self.time_limit_minutes)

    @property
    def has_targeting(self) -> bool:
        return any(
            [
                self.assigned_user_ids,
                self.assigned_grades,
                self.assigned_other_grades,
                self.assigned_programs,
                self.assigned_school_ids,
            ]
        )

    def clean(self):
        if not self.has_targeting:
            raise ValidationError(
                "Quiz must be assigned to at least one user, grade, other grade, program, or school."
            )


class Question(TimeStampedModel):
    class Type(models.TextChoices):
        MULTIPLE_CHOICE = "multiple_choice", "Multiple choice"
        CHECKBOXES = "checkboxes", "Checkboxes"
        SHORT_ANSWER = "short_answer", "Short answer"

    quiz = models.ForeignKey(Quiz, on_delete=models.CASCADE, related_name="questions")
    order = models.PositiveIntegerField()
    prompt = models.TextField()
    type = models.CharField(max_length=20, choices=Type.choices)
    points = models.PositiveIntegerField(default=1)
    options = models.JSONField(default=list, blank=True)
    # str for multiple choice, list[str] for checkboxes, null for short answer.
    correct_answer = models.JSONField(null=True, blank=True)

    class Meta:
        ordering = ["quiz", "order"]
        constraints = [
            models.UniqueConstraint(fields=["quiz", "order"], name="quizzes_question_unique_order"),
        ]

    def __str__(self) -> str:
        return f"{self.quiz} #{self.order}"

    @property
    def is_choice(self) -> bool:
        return self.type in (self.Type.MULTIPLE_CHOICE, self.Type.CHECKBOXES)

    @property
    def needs_manual_grading(self) -> bool:
        return self.type == self.Type.SHORT_ANSWER

    def clean(self):
        options = self.options or []
        if self.is_choice:
            if not options:
                raise ValidationError("Choice questions need at least one option.")
            if len(set(options)) != len(options):
                raise ValidationError("Options must be unique.")

        if self.type == self.Type.MULTIPLE_CHOICE:
            if not isinstance(self.correct_answer, str) or self.correct_answer not in options:
                raise ValidationError("Multiple choice answer must be one of the options.")
        elif self.type == self.Type.CHECKBOXES:
            answer = self.correct_answer
            if (
                not isinstance(answer, list)
                or not answer
                or not all(isinstance(item, str) for item in answer)
            ):
                raise ValidationError("Checkbox answer must be a non-empty list of options.")
            if not set(answer) <= set(options):
                raise ValidationError("Checkbox answer must only contain options.")
        elif self.correct_answer is not None:
            raise ValidationError("Short answer questions have no canonical answer.")


class Submission(TimeStampedModel):
    """A student's single attempt at a quiz, keyed by (quiz, student)."""

    class Status(models.TextChoices):
        IN_PROGRESS = "in_progress", "In progress"
        SUBMITTED = "submitted", "Submitted"
        GRADED = "graded", "Graded"

    quiz = models.ForeignKey(Quiz, on_delete=models.CASCADE, related_name="submissions")
    student = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="quiz_submissions",
    )
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.IN_PROGRESS
    )
    answers = models.JSONField(default=dict, blank=True)
    question_order = models.JSONField(default=list, blank=True)
    score = models.PositiveIntegerField(null=True, blank=True)
    started_at = models.DateTimeField()
    submitted_at = models.DateTimeField(null=True, blank=True)
    auto_submitted = models.BooleanField(default=False)
    last_saved_at = models.DateTimeField(null=True, blank=True)
    graded_at = models.DateTimeField(null=True, blank=True)
    feedback = models.TextField(blank=True)

    class Meta:
        ordering = ["quiz", "started_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["quiz", "student"], name="quizzes_submission_unique_student"
            ),
        ]
        indexes = [
            models.Index(fields=["quiz", "status"], name="quizzes_sub_quiz_status_idx"),
            models.Index(fields=["status", "started_at"], name="quizzes_sub_status_start_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.student} - {self.quiz} ({self.status})"

    @property
    def deadline(self) -> datetime | None:
        time_limit = self.quiz.time_limit
        if time_limit is None:
            return None
        return self.started_at + time_limit

    @property
    def is_finalized(self) -> bool:
        return self.submitted_at is not None


class AnswerDetail(TimeStampedModel):
    class Correctness(models.TextChoices):
        CORRECT = "correct", "Correct"
        INCORRECT = "incorrect", "Incorrect"
        PENDING = "pending", "Pending"

    submission = models.ForeignKey(
        Submission, on_delete=models.CASCADE, related_name="details"
    )
    question = models.ForeignKey(
        Question, on_delete=models.CASCADE, related_name="answer_details"
    )
    answer = models.JSONField(null=True, blank=True)
    correctness = models.CharField(
        max_length=10, choices=Correctness.choices, default=Correctness.PENDING
    )
    points_awarded = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["submission", "question__order"]
        constraints = [
            models.UniqueConstraint(
                fields=["submission", "question"], name="quizzes_detail_unique_question"
            ),
        ]

    def __str__(self) -> str:  # pragma: no cover - representation only
        return f"{self.submission_id}:{self.question_id} {self.correctness}"
