from django.core.management.base import BaseCommand

from apps.quizzes.service_utils.autosubmit import sweep_overdue_attempts


class Command(BaseCommand):
    help = "Finalize every in-progress attempt whose time limit has passed."

    def handle(self, *args, **options):
        finalized = sweep_overdue_attempts()
        self.stdout.write(self.style.SUCCESS(f"Auto-submitted {finalized} attempt(s)"))
