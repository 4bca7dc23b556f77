from datetime import timedelta

from django.test import TestCase
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied

from apps.quizzes.models import Submission
from apps.quizzes.service_utils import ranking

from . import factories


class RankingTests(TestCase):
    def setUp(self):
        self.teacher = factories.create_teacher()
        self.quiz = factories.create_quiz(owner=self.teacher, assigned_grades=[9])
        start = timezone.now() - timedelta(hours=1)
        self.alice = factories.create_student(username="alice", grade=9, first_name="Alice", last_name="A")
        self.bob = factories.create_student(username="bob", grade=9)
        self.carol = factories.create_student(username="carol", grade=9)
        self.dave = factories.create_student(username="dave", grade=9)
        finished = timezone.now()
        self.bob_sub = factories.create_submission(
            quiz=self.quiz,
            student=self.bob,
            started_at=start + timedelta(minutes=2),
            status=Submission.Status.GRADED,
            score=8,
            submitted_at=finished,
        )
        self.alice_sub = factories.create_submission(
            quiz=self.quiz,
            student=self.alice,
            started_at=start + timedelta(minutes=1),
            status=Submission.Status.SUBMITTED,
            score=8,
            submitted_at=finished,
        )
        self.carol_sub = factories.create_submission(
            quiz=self.quiz,
            student=self.carol,
            started_at=start,
            status=Submission.Status.GRADED,
            score=3,
            submitted_at=finished,
        )
        factories.create_submission(quiz=self.quiz, student=self.dave, started_at=start)

    def test_orders_by_score_then_start(self):
        entries = ranking.rank_quiz(self.quiz, factories.principal(self.teacher))

        self.assertEqual([e.student_id for e in entries], [self.alice.pk, self.bob.pk, self.carol.pk])
        self.assertEqual([e.position for e in entries], [1, 2, 3])
        self.assertEqual(entries[0].student_name, "Alice A")
        self.assertEqual(entries[1].student_name, "bob")

    def test_in_progress_attempts_are_excluded(self):
        entries = ranking.rank_quiz(self.quiz, factories.principal(self.teacher))
        self.assertNotIn(self.dave.pk, [e.student_id for e in entries])

    def test_ties_on_start_fall_back_to_id(self):
        self.bob_sub.started_at = self.alice_sub.started_at
        self.bob_sub.save()
        entries = ranking.rank(Submission.objects.filter(quiz=self.quiz).select_related("student"))
        expected = sorted([self.alice_sub.pk, self.bob_sub.pk])
        first_two = [
            Submission.objects.get(quiz=self.quiz, student_id=e.student_id).pk for e in entries[:2]
        ]
        self.assertEqual(first_two, expected)

    def test_rank_is_deterministic(self):
        submissions = list(Submission.objects.filter(quiz=self.quiz).select_related("student"))
        self.assertEqual(ranking.rank(submissions), ranking.rank(list(reversed(submissions))))

    def test_visibility(self):
        self.assertTrue(ranking.rank_quiz(self.quiz, factories.principal(self.alice)))
        self.assertTrue(ranking.rank_quiz(self.quiz, factories.principal(factories.create_admin())))

        with self.assertRaises(PermissionDenied):
            ranking.rank_quiz(self.quiz, factories.principal(factories.create_student(grade=11)))
        with self.assertRaises(PermissionDenied):
            ranking.rank_quiz(self.quiz, factories.principal(factories.create_teacher()))
