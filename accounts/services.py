"""Identity adapter.

Authentication is handled by Django's auth layer; the quiz subsystem only
sees the :class:`Principal` built here from the user and its profiles.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .models import StudentProfile, TeacherProfile


ROLE_STUDENT = "student"
ROLE_TEACHER = "teacher"
ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    id: int
    role: str
    email: str = ""
    grade: Optional[int] = None
    other_grade: Optional[int] = None
    program: str = ""
    school_id: Optional[int] = None

    @property
    def is_student(self) -> bool:
        return self.role == ROLE_STUDENT

    @property
    def is_teacher(self) -> bool:
        return self.role == ROLE_TEACHER


def principal_for(user) -> Principal:
    """Build the principal for an authenticated ``user``.

    Users without any profile (accounts created before the profiles app)
    are treated as untargeted students.
    """

    if user.is_superuser:
        return Principal(id=user.pk, role=ROLE_ADMIN, email=user.email or "")

    if TeacherProfile.objects.filter(user=user).exists():
        return Principal(id=user.pk, role=ROLE_TEACHER, email=user.email or "")

    profile = StudentProfile.objects.filter(user=user).first()
    if profile is None:
        return Principal(id=user.pk, role=ROLE_STUDENT, email=user.email or "")
    return Principal(
        id=user.pk,
        role=ROLE_STUDENT,
        email=user.email or "",
        grade=profile.grade,
        other_grade=profile.other_grade,
        program=profile.program or "",
        school_id=profile.school_id,
    )
