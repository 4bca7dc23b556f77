from __future__ import annotations

from django.db import models
from django.utils import timezone


class ScheduledJob(models.Model):
    """A deferred task persisted in the database so it survives restarts."""

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        RUNNING = "running", "Running"
        DONE = "done", "Done"
        FAILED = "failed", "Failed"

    task_name = models.CharField(max_length=100)
    payload = models.JSONField(default=dict, blank=True)
    run_at = models.DateTimeField()
    status = models.CharField(
        max_length=16, choices=Status.choices, default=Status.PENDING
    )
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)
    locked_at = models.DateTimeField(null=True, blank=True)
    finished_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["run_at", "id"]
        indexes = [
            models.Index(fields=["status", "run_at"], name="jobs_status_run_at_idx"),
            models.Index(fields=["task_name"], name="jobs_task_name_idx"),
        ]

    def __str__(self) -> str:  # pragma: no cover - representation only
        return f"{self.task_name} @ {self.run_at:%Y-%m-%d %H:%M:%S} ({self.status})"

    @property
    def is_due(self) -> bool:
        return self.status == self.Status.PENDING and self.run_at <= timezone.now()
