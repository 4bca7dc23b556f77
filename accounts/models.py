from django.conf import settings
from django.db import models
from django.utils.crypto import get_random_string


class School(models.Model):
    name = models.CharField(max_length=200)
    code = models.CharField(max_length=16, unique=True, db_index=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:  # pragma: no cover - representation only
        return self.name

    def save(self, *args, **kwargs):
        if not self.code:
            self.code = get_random_string(8).upper()
        return super().save(*args, **kwargs)


class StudentProfile(models.Model):
    """Targeting attributes of a student.

    ``other_grade`` is the alternate grade number some schools use for
    students following a second track (for example a repeated subject year).
    """

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE)
    grade = models.PositiveSmallIntegerField(null=True, blank=True)
    other_grade = models.PositiveSmallIntegerField(null=True, blank=True)
    program = models.CharField(max_length=120, blank=True)
    school = models.ForeignKey(
        School,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="students",
    )

    def __str__(self):
        return f"{self.user.username} (student)"


class TeacherProfile(models.Model):
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE)
    school = models.ForeignKey(
        School,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="teachers",
    )

    def __str__(self):
        return f"{self.user.username} (teacher)"
