from rest_framework import exceptions, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.services import principal_for

from ..models import Submission
from ..service_utils import attempts as attempt_service
from ..service_utils import authoring as authoring_service
from ..service_utils.eligibility import ensure_eligible, list_eligible_quizzes
from ..service_utils.projections import attempt_summary, student_attempt_view
from ..service_utils.ranking import rank_quiz
from .serializers import (
    AnswersInputSerializer,
    GradeInputSerializer,
    OwnerQuizSerializer,
    OwnerSubmissionSerializer,
    QuizCreateSerializer,
    RankEntrySerializer,
)


class PrincipalMixin(APIView):
    """Base view resolving the caller into a :class:`Principal`."""

    permission_classes = [permissions.IsAuthenticated]

    def get_principal(self, request):
        return principal_for(request.user)

    def get_student(self, request):
        principal = self.get_principal(request)
        if not principal.is_student:
            raise exceptions.PermissionDenied("Only students can take quizzes.")
        return principal


class EligibleQuizListView(PrincipalMixin):
    """Quizzes the current student may take, with their attempt summary."""

    def get(self, request, *args, **kwargs):
        student = self.get_student(request)
        return Response(list(list_eligible_quizzes(student)))


class AttemptStartView(PrincipalMixin):
    """Start the attempt (and its clock) or return the one already running."""

    def post(self, request, quiz_id: int, *args, **kwargs):
        student = self.get_student(request)
        quiz = attempt_service.get_quiz_or_404(quiz_id)
        submission, created = attempt_service.get_or_create_attempt(quiz, student)
        code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
        return Response(student_attempt_view(submission), status=code)


class AttemptDetailView(PrincipalMixin):
    def get(self, request, quiz_id: int, *args, **kwargs):
        student = self.get_student(request)
        quiz = attempt_service.get_quiz_or_404(quiz_id)
        ensure_eligible(student, quiz)
        submission = attempt_service.get_attempt(quiz, student)
        return Response(student_attempt_view(submission))


class AttemptAnswersView(PrincipalMixin):
    """Autosave: replace the working answers of the running attempt."""

    def put(self, request, quiz_id: int, *args, **kwargs):
        student = self.get_student(request)
        serializer = AnswersInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        quiz = attempt_service.get_quiz_or_404(quiz_id)
        submission = attempt_service.save_answers(
            quiz, student, serializer.validated_data["answers"]
        )
        return Response(
            {
                "answers": submission.answers,
                "last_saved_at": submission.last_saved_at,
                "attempt": attempt_summary(submission),
            }
        )


class AttemptFinalizeView(PrincipalMixin):
    """Submit the attempt; a second submit gets 409 with the stored state."""

    def post(self, request, quiz_id: int, *args, **kwargs):
        student = self.get_student(request)
        quiz = attempt_service.get_quiz_or_404(quiz_id)
        result = attempt_service.finalize(quiz, student.id, attempt_service.Trigger.MANUAL)
        if not result.applied:
            return Response(
                {
                    "detail": "Submission has already been finalized.",
                    "code": "invalid_state",
                    "attempt": attempt_summary(result.submission),
                },
                status=status.HTTP_409_CONFLICT,
            )
        return Response(attempt_service.attempt_result(quiz, student))


class AttemptResultView(PrincipalMixin):
    def get(self, request, quiz_id: int, *args, **kwargs):
        student = self.get_student(request)
        quiz = attempt_service.get_quiz_or_404(quiz_id)
        return Response(attempt_service.attempt_result(quiz, student))


class LeaderboardView(PrincipalMixin):
    def get(self, request, quiz_id: int, *args, **kwargs):
        quiz = attempt_service.get_quiz_or_404(quiz_id)
        entries = rank_quiz(quiz, self.get_principal(request))
        return Response(RankEntrySerializer(entries, many=True).data)


class TeacherQuizListCreateView(PrincipalMixin):
    def get(self, request, *args, **kwargs):
        quizzes = authoring_service.owner_quizzes(self.get_principal(request))
        return Response(OwnerQuizSerializer(quizzes, many=True).data)

    def post(self, request, *args, **kwargs):
        owner = self.get_principal(request)
        serializer = QuizCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        quiz = authoring_service.create_quiz(owner, serializer.validated_data)
        quiz = authoring_service.get_owned_quiz(owner, quiz.pk)
        return Response(OwnerQuizSerializer(quiz).data, status=status.HTTP_201_CREATED)


class TeacherQuizDetailView(PrincipalMixin):
    def get(self, request, quiz_id: int, *args, **kwargs):
        quiz = authoring_service.get_owned_quiz(self.get_principal(request), quiz_id)
        return Response(OwnerQuizSerializer(quiz).data)

    def delete(self, request, quiz_id: int, *args, **kwargs):
        authoring_service.delete_quiz(self.get_principal(request), quiz_id)
        return Response(status=status.HTTP_204_NO_CONTENT)


class TeacherQuizSubmissionsView(PrincipalMixin):
    def get(self, request, quiz_id: int, *args, **kwargs):
        submissions = authoring_service.quiz_submissions(self.get_principal(request), quiz_id)
        return Response(OwnerSubmissionSerializer(submissions, many=True).data)


class SubmissionGradeView(PrincipalMixin):
    """Apply manual grades (question id -> points) to a finalized submission."""

    def post(self, request, submission_id: int, *args, **kwargs):
        serializer = GradeInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        submission = attempt_service.grade_submission(
            submission_id,
            serializer.validated_data["grades"],
            self.get_principal(request),
            feedback=serializer.validated_data.get("feedback"),
        )
        submission = (
            Submission.objects.select_related("student")
            .prefetch_related("details")
            .get(pk=submission.pk)
        )
        return Response(OwnerSubmissionSerializer(submission).data)
