from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import StudentProfile, TeacherProfile


@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def ensure_student_profile(sender, instance, created, **kwargs):
    """New accounts are students until they are given a teacher profile."""
    if created and not instance.is_superuser:
        StudentProfile.objects.get_or_create(user=instance)


@receiver(post_save, sender=TeacherProfile)
def drop_student_profile(sender, instance, created, **kwargs):
    # A teacher is never targeted by quizzes as a student.
    if created:
        StudentProfile.objects.filter(user_id=instance.user_id).delete()
