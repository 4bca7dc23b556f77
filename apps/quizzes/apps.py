from django.apps import AppConfig


class QuizzesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.quizzes"
    label = "quizzes"

    def ready(self) -> None:  # pragma: no cover - side effects only
        from . import notifications  # noqa: F401
        from .service_utils import autosubmit  # noqa: F401
