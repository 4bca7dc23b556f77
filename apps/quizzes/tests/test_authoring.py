from datetime import timedelta

from django.test import TestCase
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from apps.quizzes import events
from apps.quizzes.models import Question, Quiz, Submission
from apps.quizzes.service_utils import attempts, authoring

from . import factories


def _quiz_payload(**overrides):
    payload = {
        "title": "Forces",
        "description": "Chapter 3",
        "due_date": timezone.now() + timedelta(days=2),
        "time_limit_minutes": 15,
        "shuffle_questions": False,
        "assigned_grades": [9, 9],
        "questions": [
            {
                "prompt": "Unit of force?",
                "type": Question.Type.MULTIPLE_CHOICE,
                "points": 2,
                "options": ["N", "J"],
                "correct_answer": "N",
            },
            {
                "prompt": "Explain inertia",
                "type": Question.Type.SHORT_ANSWER,
                "points": 3,
                "options": [],
                "correct_answer": None,
            },
        ],
    }
    payload.update(overrides)
    return payload


class CreateQuizTests(TestCase):
    def setUp(self):
        self.teacher = factories.create_teacher()
        self.owner = factories.principal(self.teacher)

    def test_creates_quiz_with_ordered_questions(self):
        quiz = authoring.create_quiz(self.owner, _quiz_payload())

        self.assertEqual(quiz.owner_id, self.teacher.pk)
        self.assertEqual(quiz.assigned_grades, [9])
        questions = list(quiz.questions.order_by("order"))
        self.assertEqual([q.order for q in questions], [1, 2])
        self.assertEqual(questions[0].correct_answer, "N")

    def test_publishes_quiz_created(self):
        received = []

        def handler(sender, event, **kwargs):
            received.append(event)

        events.quiz_created.connect(handler)
        self.addCleanup(events.quiz_created.disconnect, handler)

        with self.captureOnCommitCallbacks(execute=True):
            quiz = authoring.create_quiz(self.owner, _quiz_payload())

        self.assertEqual(len(received), 1)
        self.assertEqual(received[0].quiz_id, quiz.pk)
        self.assertEqual(received[0].owner_id, self.teacher.pk)

    def test_requires_targeting(self):
        with self.assertRaises(ValidationError):
            authoring.create_quiz(self.owner, _quiz_payload(assigned_grades=[]))
        self.assertFalse(Quiz.objects.exists())

    def test_requires_questions(self):
        with self.assertRaises(ValidationError):
            authoring.create_quiz(self.owner, _quiz_payload(questions=[]))

    def test_rejects_invalid_question(self):
        bad = _quiz_payload()
        bad["questions"][0]["correct_answer"] = "W"
        with self.assertRaises(ValidationError) as ctx:
            authoring.create_quiz(self.owner, bad)
        self.assertIn("questions[0]", ctx.exception.detail)
        self.assertFalse(Quiz.objects.exists())

    def test_students_cannot_author(self):
        student = factories.principal(factories.create_student())
        with self.assertRaises(PermissionDenied):
            authoring.create_quiz(student, _quiz_payload())


class OwnerManagementTests(TestCase):
    def setUp(self):
        self.teacher = factories.create_teacher()
        self.owner = factories.principal(self.teacher)
        self.quiz = factories.create_quiz(owner=self.teacher, assigned_grades=[9])
        self.short = factories.add_short_answer(quiz=self.quiz)
        user = factories.create_student(grade=9)
        attempts.get_or_create_attempt(self.quiz, factories.principal(user))
        attempts.finalize(self.quiz, user.pk)
        factories.create_submission(quiz=self.quiz, student=factories.create_student(grade=9))

    def test_owner_quizzes_annotates_counts(self):
        quiz = authoring.owner_quizzes(self.owner).get(pk=self.quiz.pk)
        self.assertEqual(quiz.submission_count, 2)
        self.assertEqual(quiz.pending_grading_count, 1)

    def test_other_teachers_see_nothing(self):
        stranger = factories.principal(factories.create_teacher())
        self.assertFalse(authoring.owner_quizzes(stranger).exists())
        with self.assertRaises(PermissionDenied):
            authoring.get_owned_quiz(stranger, self.quiz.pk)
        with self.assertRaises(PermissionDenied):
            authoring.delete_quiz(stranger, self.quiz.pk)

    def test_missing_quiz(self):
        with self.assertRaises(NotFound):
            authoring.get_owned_quiz(self.owner, 999999)

    def test_submissions_include_details(self):
        submissions = list(authoring.quiz_submissions(self.owner, self.quiz.pk))
        self.assertEqual(len(submissions), 2)
        finalized = next(s for s in submissions if s.is_finalized)
        self.assertEqual(len(finalized.details.all()), 1)

    def test_delete_removes_submissions(self):
        authoring.delete_quiz(self.owner, self.quiz.pk)
        self.assertFalse(Quiz.objects.filter(pk=self.quiz.pk).exists())
        self.assertFalse(Submission.objects.exists())
