import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Quiz",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True)),
                ("due_date", models.DateTimeField()),
                ("time_limit_minutes", models.PositiveIntegerField(blank=True, null=True)),
                ("shuffle_questions", models.BooleanField(default=False)),
                ("assigned_user_ids", models.JSONField(blank=True, default=list)),
                ("assigned_grades", models.JSONField(blank=True, default=list)),
                ("assigned_other_grades", models.JSONField(blank=True, default=list)),
                ("assigned_programs", models.JSONField(blank=True, default=list)),
                ("assigned_school_ids", models.JSONField(blank=True, default=list)),
                (
                    "owner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="owned_quizzes",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "quizzes",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["owner"], name="quizzes_quiz_owner_idx"),
                    models.Index(fields=["due_date"], name="quizzes_quiz_due_date_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Question",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("order", models.PositiveIntegerField()),
                ("prompt", models.TextField()),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("multiple_choice", "Multiple choice"),
                            ("checkboxes", "Checkboxes"),
                            ("short_answer", "Short answer"),
                        ],
                        max_length=20,
                    ),
                ),
                ("points", models.PositiveIntegerField(default=1)),
                ("options", models.JSONField(blank=True, default=list)),
                ("correct_answer", models.JSONField(blank=True, null=True)),
                (
                    "quiz",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="questions",
                        to="quizzes.quiz",
                    ),
                ),
            ],
            options={
                "ordering": ["quiz", "order"],
                "constraints": [
                    models.UniqueConstraint(fields=("quiz", "order"), name="quizzes_question_unique_order"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Submission",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("in_progress", "In progress"),
                            ("submitted", "Submitted"),
                            ("graded", "Graded"),
                        ],
                        default="in_progress",
                        max_length=20,
                    ),
                ),
                ("answers", models.JSONField(blank=True, default=dict)),
                ("question_order", models.JSONField(blank=True, default=list)),
                ("score", models.PositiveIntegerField(blank=True, null=True)),
                ("started_at", models.DateTimeField()),
                ("submitted_at", models.DateTimeField(blank=True, null=True)),
                ("auto_submitted", models.BooleanField(default=False)),
                ("last_saved_at", models.DateTimeField(blank=True, null=True)),
                ("graded_at", models.DateTimeField(blank=True, null=True)),
                ("feedback", models.TextField(blank=True)),
                (
                    "quiz",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="submissions",
                        to="quizzes.quiz",
                    ),
                ),
                (
                    "student",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="quiz_submissions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["quiz", "started_at", "id"],
                "indexes": [
                    models.Index(fields=["quiz", "status"], name="quizzes_sub_quiz_status_idx"),
                    models.Index(fields=["status", "started_at"], name="quizzes_sub_status_start_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("quiz", "student"), name="quizzes_submission_unique_student"),
                ],
            },
        ),
        migrations.CreateModel(
            name="AnswerDetail",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("answer", models.JSONField(blank=True, null=True)),
                (
                    "correctness",
                    models.CharField(
                        choices=[
                            ("correct", "Correct"),
                            ("incorrect", "Incorrect"),
                            ("pending", "Pending"),
                        ],
                        default="pending",
                        max_length=10,
                    ),
                ),
                ("points_awarded", models.PositiveIntegerField(default=0)),
                (
                    "question",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="answer_details",
                        to="quizzes.question",
                    ),
                ),
                (
                    "submission",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="details",
                        to="quizzes.submission",
                    ),
                ),
            ],
            options={
                "ordering": ["submission", "question__order"],
                "constraints": [
                    models.UniqueConstraint(fields=("submission", "question"), name="quizzes_detail_unique_question"),
                ],
            },
        ),
    ]
