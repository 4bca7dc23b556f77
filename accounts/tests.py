from django.contrib.auth import get_user_model
from django.test import TestCase

from .models import School, StudentProfile, TeacherProfile
from .services import ROLE_ADMIN, ROLE_STUDENT, ROLE_TEACHER, principal_for


class PrincipalForTests(TestCase):
    def setUp(self):
        self.user_model = get_user_model()
        self.school = School.objects.create(name="North")

    def test_new_user_gets_student_profile(self):
        user = self.user_model.objects.create_user(username="s1", password="pass")
        self.assertTrue(StudentProfile.objects.filter(user=user).exists())

    def test_student_principal_carries_targeting(self):
        user = self.user_model.objects.create_user(username="s2", password="pass", email="s2@example.com")
        StudentProfile.objects.filter(user=user).update(
            grade=9, other_grade=10, program="IB", school=self.school
        )

        principal = principal_for(user)

        self.assertEqual(principal.role, ROLE_STUDENT)
        self.assertTrue(principal.is_student)
        self.assertEqual(principal.email, "s2@example.com")
        self.assertEqual((principal.grade, principal.other_grade), (9, 10))
        self.assertEqual(principal.program, "IB")
        self.assertEqual(principal.school_id, self.school.pk)

    def test_teacher_profile_wins(self):
        user = self.user_model.objects.create_user(username="t1", password="pass")
        TeacherProfile.objects.create(user=user, school=self.school)
        principal = principal_for(user)
        self.assertEqual(principal.role, ROLE_TEACHER)
        self.assertIsNone(principal.grade)
        self.assertFalse(StudentProfile.objects.filter(user=user).exists())

    def test_superuser_is_admin(self):
        user = self.user_model.objects.create_superuser(username="root", password="pass", email="r@example.com")
        self.assertEqual(principal_for(user).role, ROLE_ADMIN)
        self.assertFalse(StudentProfile.objects.filter(user=user).exists())

    def test_school_code_is_generated(self):
        self.assertEqual(len(self.school.code), 8)
