"""Durable deferred jobs.

Jobs are rows in :class:`~apps.jobs.models.ScheduledJob`; a runner process
(``manage.py run_scheduler``) polls for due rows and dispatches them to the
handlers registered here.  Because the schedule lives in the database it
survives process restarts, and because a job is claimed with a conditional
update (``pending`` -> ``running``) a job fires at most once per claim even
with several runners.

Handlers must be idempotent: a job may be retried after a failure and a
stale ``running`` job is re-queued on start-up.
"""
from __future__ import annotations

from datetime import datetime, timedelta
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from .models import ScheduledJob

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]

_HANDLERS: Dict[str, Handler] = {}
_STARTUP_HOOKS: List[Callable[[], Any]] = []


def register(task_name: str) -> Callable[[Handler], Handler]:
    """Register ``func`` as the handler for ``task_name``.

    The handler is called with the job payload as keyword arguments.
    """

    def decorator(func: Handler) -> Handler:
        _HANDLERS[task_name] = func
        return func

    return decorator


def register_startup_hook(func: Callable[[], Any]) -> Callable[[], Any]:
    """Register ``func`` to run once when the runner starts (catch-up work)."""

    if func not in _STARTUP_HOOKS:
        _STARTUP_HOOKS.append(func)
    return func


def get_handler(task_name: str) -> Optional[Handler]:
    return _HANDLERS.get(task_name)


def schedule(run_at: datetime, task_name: str, payload: Mapping[str, Any] | None = None) -> ScheduledJob:
    """Persist a job that runs ``task_name`` at ``run_at``."""

    job = ScheduledJob.objects.create(
        task_name=task_name,
        payload=dict(payload or {}),
        run_at=run_at,
    )
    logger.debug("Scheduled %s (job=%s) at %s", task_name, job.pk, run_at.isoformat())
    return job


def _max_attempts() -> int:
    return max(1, int(getattr(settings, "SCHEDULER_MAX_ATTEMPTS", 3)))


def _retry_delay() -> timedelta:
    return timedelta(seconds=int(getattr(settings, "SCHEDULER_RETRY_DELAY_SECONDS", 60)))


def _stale_after() -> timedelta:
    return timedelta(seconds=int(getattr(settings, "SCHEDULER_STALE_AFTER_SECONDS", 600)))


def _claim(job_id: int, now: datetime) -> bool:
    claimed = ScheduledJob.objects.filter(
        pk=job_id, status=ScheduledJob.Status.PENDING
    ).update(
        status=ScheduledJob.Status.RUNNING,
        locked_at=now,
        attempts=F("attempts") + 1,
        updated_at=now,
    )
    return claimed == 1


def _mark_done(job: ScheduledJob) -> None:
    now = timezone.now()
    ScheduledJob.objects.filter(pk=job.pk).update(
        status=ScheduledJob.Status.DONE,
        finished_at=now,
        last_error="",
        locked_at=None,
        updated_at=now,
    )


def _mark_failed(job: ScheduledJob, error: str, *, retry: bool) -> None:
    now = timezone.now()
    if retry and job.attempts < _max_attempts():
        ScheduledJob.objects.filter(pk=job.pk).update(
            status=ScheduledJob.Status.PENDING,
            run_at=now + _retry_delay(),
            last_error=error,
            locked_at=None,
            updated_at=now,
        )
        logger.warning(
            "Job %s (%s) failed on attempt %s, retrying", job.pk, job.task_name, job.attempts
        )
        return

    ScheduledJob.objects.filter(pk=job.pk).update(
        status=ScheduledJob.Status.FAILED,
        finished_at=now,
        last_error=error,
        locked_at=None,
        updated_at=now,
    )
    logger.error("Job %s (%s) gave up after %s attempt(s)", job.pk, job.task_name, job.attempts)


def run_job(job_id: int, now: datetime | None = None) -> bool:
    """Claim and execute one job. Returns ``False`` if someone else claimed it."""

    now = now or timezone.now()
    if not _claim(job_id, now):
        return False

    job = ScheduledJob.objects.get(pk=job_id)
    handler = get_handler(job.task_name)
    if handler is None:
        _mark_failed(job, f"No handler registered for {job.task_name!r}", retry=False)
        return True

    try:
        with transaction.atomic():
            handler(**(job.payload or {}))
    except Exception as exc:
        logger.exception("Job %s (%s) raised", job.pk, job.task_name)
        _mark_failed(job, f"{type(exc).__name__}: {exc}", retry=True)
        return True

    _mark_done(job)
    return True


def run_due_jobs(now: datetime | None = None, limit: int = 100) -> int:
    """Run every pending job whose ``run_at`` has passed. Returns the count."""

    now = now or timezone.now()
    due_ids = list(
        ScheduledJob.objects.filter(status=ScheduledJob.Status.PENDING, run_at__lte=now)
        .order_by("run_at", "id")
        .values_list("id", flat=True)[:limit]
    )
    processed = 0
    for job_id in due_ids:
        if run_job(job_id, now=now):
            processed += 1
    if processed:
        logger.info("Processed %d due job(s)", processed)
    return processed


def recover_stale_jobs(now: datetime | None = None) -> int:
    """Re-queue jobs left ``running`` by a runner that died mid-job."""

    now = now or timezone.now()
    recovered = ScheduledJob.objects.filter(
        status=ScheduledJob.Status.RUNNING,
        locked_at__lt=now - _stale_after(),
    ).update(status=ScheduledJob.Status.PENDING, locked_at=None, updated_at=now)
    if recovered:
        logger.warning("Re-queued %d stale job(s)", recovered)
    return recovered


def run_startup_hooks() -> None:
    """Run every start-up hook; a failing hook does not stop the others."""

    for hook in list(_STARTUP_HOOKS):
        try:
            hook()
        except Exception:
            logger.exception("Start-up hook %s failed", getattr(hook, "__qualname__", hook))
