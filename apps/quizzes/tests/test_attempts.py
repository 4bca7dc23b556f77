from datetime import timedelta
from unittest import mock

from django.db import IntegrityError, transaction
from django.test import TestCase
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from apps.jobs.models import ScheduledJob
from apps.quizzes.exceptions import InvalidState
from apps.quizzes.models import AnswerDetail, Submission
from apps.quizzes.service_utils import attempts
from apps.quizzes.service_utils.autosubmit import AUTO_SUBMIT_TASK

from . import factories

NOW_PATH = "apps.quizzes.service_utils.attempts.timezone.now"


class StartAttemptTests(TestCase):
    def setUp(self):
        self.user = factories.create_student(grade=9)
        self.student = factories.principal(self.user)
        self.quiz = factories.create_quiz(assigned_grades=[9], time_limit_minutes=10)
        self.q1 = factories.add_multiple_choice(quiz=self.quiz)
        self.q2 = factories.add_short_answer(quiz=self.quiz)

    def test_start_creates_attempt_and_arms_deadline_job(self):
        submission, created = attempts.get_or_create_attempt(self.quiz, self.student)

        self.assertTrue(created)
        self.assertEqual(submission.status, Submission.Status.IN_PROGRESS)
        self.assertIsNone(submission.submitted_at)
        self.assertEqual(submission.question_order, [self.q1.id, self.q2.id])
        self.assertEqual(submission.deadline, submission.started_at + timedelta(minutes=10))

        job = ScheduledJob.objects.get(task_name=AUTO_SUBMIT_TASK)
        self.assertEqual(job.run_at, submission.deadline)
        self.assertEqual(job.payload, {"quiz_id": self.quiz.id, "student_id": self.user.pk})

    def test_second_start_returns_same_attempt(self):
        first, _ = attempts.get_or_create_attempt(self.quiz, self.student)
        second, created = attempts.get_or_create_attempt(self.quiz, self.student)

        self.assertFalse(created)
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(first.started_at, second.started_at)
        self.assertEqual(Submission.objects.filter(quiz=self.quiz).count(), 1)
        self.assertEqual(ScheduledJob.objects.count(), 1)

    def test_untimed_quiz_schedules_nothing(self):
        quiz = factories.create_quiz(assigned_grades=[9])
        submission, _ = attempts.get_or_create_attempt(quiz, self.student)
        self.assertIsNone(submission.deadline)
        self.assertFalse(ScheduledJob.objects.exists())

    def test_ineligible_student_is_rejected(self):
        other = factories.principal(factories.create_student(grade=11))
        with self.assertRaises(PermissionDenied):
            attempts.get_or_create_attempt(self.quiz, other)
        self.assertFalse(Submission.objects.exists())

    def test_past_due_quiz_cannot_be_started(self):
        quiz = factories.create_quiz(assigned_grades=[9], due_in=timedelta(minutes=-1))
        with self.assertRaises(InvalidState):
            attempts.get_or_create_attempt(quiz, self.student)

    def test_existing_attempt_is_returned_after_due_date(self):
        submission, _ = attempts.get_or_create_attempt(self.quiz, self.student)
        with mock.patch(NOW_PATH) as mocked_now:
            mocked_now.return_value = self.quiz.due_date + timedelta(hours=1)
            again, created = attempts.get_or_create_attempt(self.quiz, self.student)
        self.assertFalse(created)
        self.assertEqual(again.pk, submission.pk)

    def test_lost_insert_race_returns_winner(self):
        winner = factories.create_submission(quiz=self.quiz, student=self.user)
        queryset = Submission.objects.none()
        with mock.patch.object(Submission.objects, "select_related", return_value=queryset):
            submission, created = attempts.get_or_create_attempt(self.quiz, self.student)
        self.assertFalse(created)
        self.assertEqual(submission.pk, winner.pk)

    def test_unique_attempt_per_student(self):
        factories.create_submission(quiz=self.quiz, student=self.user)
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                factories.create_submission(quiz=self.quiz, student=self.user)

    def test_get_attempt_before_start(self):
        with self.assertRaises(NotFound):
            attempts.get_attempt(self.quiz, self.student)


class QuestionOrderTests(TestCase):
    def setUp(self):
        self.quiz = factories.create_quiz(assigned_grades=[9], shuffle_questions=True)
        self.questions = [factories.add_multiple_choice(quiz=self.quiz) for _ in range(8)]

    def test_order_is_stable_per_student(self):
        first = attempts.compute_question_order(self.quiz, 42)
        self.assertEqual(first, attempts.compute_question_order(self.quiz, 42))
        self.assertCountEqual(first, [q.id for q in self.questions])

    def test_order_is_persisted_on_start(self):
        user = factories.create_student(grade=9)
        submission, _ = attempts.get_or_create_attempt(self.quiz, factories.principal(user))
        self.assertEqual(submission.question_order, attempts.compute_question_order(self.quiz, user.pk))

    def test_unshuffled_quiz_keeps_authored_order(self):
        self.quiz.shuffle_questions = False
        self.quiz.save()
        self.assertEqual(attempts.compute_question_order(self.quiz, 42), [q.id for q in self.questions])


class SaveAnswersTests(TestCase):
    def setUp(self):
        self.user = factories.create_student(grade=9)
        self.student = factories.principal(self.user)
        self.quiz = factories.create_quiz(assigned_grades=[9], time_limit_minutes=10)
        self.mc = factories.add_multiple_choice(quiz=self.quiz)
        self.cb = factories.add_checkboxes(quiz=self.quiz)
        self.t0 = timezone.now()
        with mock.patch(NOW_PATH, return_value=self.t0):
            self.submission, _ = attempts.get_or_create_attempt(self.quiz, self.student)

    def test_save_overwrites_answer_set(self):
        attempts.save_answers(self.quiz, self.student, {str(self.mc.id): "A"})
        submission = attempts.save_answers(self.quiz, self.student, {str(self.cb.id): ["A", "C"]})

        submission.refresh_from_db()
        self.assertEqual(submission.answers, {str(self.cb.id): ["A", "C"]})
        self.assertIsNotNone(submission.last_saved_at)

    def test_null_clears_answer(self):
        attempts.save_answers(self.quiz, self.student, {str(self.mc.id): "A", str(self.cb.id): None})
        self.submission.refresh_from_db()
        self.assertEqual(self.submission.answers, {str(self.mc.id): "A"})

    def test_unknown_question_rejected(self):
        with self.assertRaises(ValidationError):
            attempts.save_answers(self.quiz, self.student, {"999999": "A"})

    def test_non_mapping_rejected(self):
        with self.assertRaises(ValidationError):
            attempts.save_answers(self.quiz, self.student, ["A"])

    def test_save_after_deadline_rejected(self):
        with mock.patch(NOW_PATH, return_value=self.t0 + timedelta(minutes=11)):
            with self.assertRaises(InvalidState):
                attempts.save_answers(self.quiz, self.student, {str(self.mc.id): "B"})
        self.submission.refresh_from_db()
        self.assertEqual(self.submission.answers, {})

    def test_save_after_finalize_rejected(self):
        attempts.finalize(self.quiz, self.user.pk)
        with self.assertRaises(InvalidState):
            attempts.save_answers(self.quiz, self.student, {str(self.mc.id): "B"})

    def test_save_without_attempt(self):
        other = factories.principal(factories.create_student(grade=9))
        with self.assertRaises(NotFound):
            attempts.save_answers(self.quiz, other, {str(self.mc.id): "B"})


class FinalizeTests(TestCase):
    def setUp(self):
        self.user = factories.create_student(grade=9)
        self.student = factories.principal(self.user)
        self.quiz = factories.create_quiz(assigned_grades=[9], time_limit_minutes=10)
        self.mc = factories.add_multiple_choice(quiz=self.quiz, points=2, correct="B")
        self.cb = factories.add_checkboxes(quiz=self.quiz, points=3, correct=["A", "C"])
        self.t0 = timezone.now()
        with mock.patch(NOW_PATH, return_value=self.t0):
            self.submission, _ = attempts.get_or_create_attempt(self.quiz, self.student)
        attempts.save_answers(self.quiz, self.student, {str(self.mc.id): "B", str(self.cb.id): ["A"]})

    def test_manual_finalize_grades_and_closes(self):
        result = attempts.finalize(self.quiz, self.user.pk)

        self.assertTrue(result.applied)
        submission = result.submission
        self.assertEqual(submission.status, Submission.Status.GRADED)
        self.assertEqual(submission.score, 2)
        self.assertFalse(submission.auto_submitted)
        self.assertIsNotNone(submission.submitted_at)
        self.assertIsNotNone(submission.graded_at)

        details = {d.question_id: d for d in submission.details.all()}
        self.assertEqual(details[self.mc.id].correctness, AnswerDetail.Correctness.CORRECT)
        self.assertEqual(details[self.cb.id].correctness, AnswerDetail.Correctness.INCORRECT)
        self.assertEqual(details[self.cb.id].answer, ["A"])

    def test_second_finalize_is_noop(self):
        first = attempts.finalize(self.quiz, self.user.pk)
        second = attempts.finalize(self.quiz, self.user.pk)

        self.assertFalse(second.applied)
        self.assertEqual(second.submission.submitted_at, first.submission.submitted_at)
        self.assertEqual(AnswerDetail.objects.filter(submission=self.submission).count(), 2)

    def test_auto_after_manual_changes_nothing(self):
        manual = attempts.finalize(self.quiz, self.user.pk, attempts.Trigger.MANUAL)
        auto = attempts.finalize(self.quiz, self.user.pk, attempts.Trigger.AUTO)

        self.assertFalse(auto.applied)
        self.assertFalse(auto.submission.auto_submitted)
        self.assertEqual(auto.submission.score, manual.submission.score)

    def test_manual_after_auto_is_rejected(self):
        with mock.patch(NOW_PATH, return_value=self.t0 + timedelta(minutes=10)):
            auto = attempts.finalize(self.quiz, self.user.pk, attempts.Trigger.AUTO)
        manual = attempts.finalize(self.quiz, self.user.pk, attempts.Trigger.MANUAL)

        self.assertTrue(auto.applied)
        self.assertTrue(auto.submission.auto_submitted)
        self.assertFalse(manual.applied)
        self.assertTrue(manual.submission.auto_submitted)

    def test_losing_the_claim_leaves_winner_untouched(self):
        stale = Submission.objects.select_related("quiz").get(pk=self.submission.pk)
        attempts.finalize(self.quiz, self.user.pk, attempts.Trigger.MANUAL)

        with mock.patch.object(attempts, "_get_submission", return_value=stale):
            result = attempts.finalize(self.quiz, self.user.pk, attempts.Trigger.AUTO)

        self.assertFalse(result.applied)
        self.assertFalse(result.submission.auto_submitted)
        self.assertEqual(AnswerDetail.objects.filter(submission=self.submission).count(), 2)

    def test_late_finalize_is_clamped_to_deadline(self):
        with mock.patch(NOW_PATH, return_value=self.t0 + timedelta(minutes=15)):
            result = attempts.finalize(self.quiz, self.user.pk, attempts.Trigger.AUTO)

        self.assertEqual(result.submission.submitted_at, self.t0 + timedelta(minutes=10))

    def test_untimed_quiz_keeps_actual_time(self):
        quiz = factories.create_quiz(assigned_grades=[9])
        factories.add_multiple_choice(quiz=quiz)
        attempts.get_or_create_attempt(quiz, self.student)
        later = timezone.now() + timedelta(days=3)
        with mock.patch(NOW_PATH, return_value=later):
            result = attempts.finalize(quiz, self.user.pk)
        self.assertEqual(result.submission.submitted_at, later)

    def test_finalize_without_attempt(self):
        other = factories.create_student(grade=9)
        with self.assertRaises(NotFound):
            attempts.finalize(self.quiz, other.pk)


class AttemptResultTests(TestCase):
    def setUp(self):
        self.user = factories.create_student(grade=9)
        self.student = factories.principal(self.user)
        self.quiz = factories.create_quiz(assigned_grades=[9])
        self.mc = factories.add_multiple_choice(quiz=self.quiz, points=2)
        attempts.get_or_create_attempt(self.quiz, self.student)

    def test_result_requires_finalized_attempt(self):
        with self.assertRaises(InvalidState):
            attempts.attempt_result(self.quiz, self.student)

    def test_result_hides_canonical_answers(self):
        attempts.save_answers(self.quiz, self.student, {str(self.mc.id): "B"})
        attempts.finalize(self.quiz, self.user.pk)

        result = attempts.attempt_result(self.quiz, self.student)
        self.assertEqual(result["score"], 2)
        self.assertEqual(result["total_points"], 2)
        self.assertEqual(result["percentage"], 100.0)
        self.assertEqual(result["results"][0]["answer"], "B")
        self.assertNotIn("correct_answer", result["results"][0]["question"])
