from __future__ import annotations

import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from django.conf import settings
from django.core.management.base import BaseCommand
from django.db import close_old_connections
from django.utils import timezone

from apps.jobs import services as jobs

logger = logging.getLogger(__name__)


def _tick() -> None:
    close_old_connections()
    try:
        jobs.run_due_jobs()
    finally:
        close_old_connections()


class Command(BaseCommand):
    help = "Run the durable job scheduler (timed quiz auto-submit and other deferred jobs)."

    def add_arguments(self, parser):
        parser.add_argument(
            "--once",
            action="store_true",
            help="Run start-up catch-up and one pass over due jobs, then exit (for cron).",
        )
        parser.add_argument(
            "--tick",
            type=int,
            default=None,
            help="Polling interval in seconds (default: SCHEDULER_TICK_SECONDS).",
        )

    def handle(self, *args, **options):
        jobs.recover_stale_jobs()
        jobs.run_startup_hooks()

        if options["once"]:
            processed = jobs.run_due_jobs()
            self.stdout.write(self.style.SUCCESS(f"Processed {processed} job(s)"))
            return

        tick = options["tick"] or settings.SCHEDULER_TICK_SECONDS
        scheduler = BlockingScheduler(timezone="UTC")
        scheduler.add_job(
            func=_tick,
            trigger="interval",
            seconds=tick,
            id="run_due_jobs",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=timezone.now(),
        )
        self.stdout.write(f"Scheduler started (tick={tick}s)")
        logger.info("Job scheduler started with a %ss tick", tick)
        try:
            scheduler.start()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Job scheduler stopped")
