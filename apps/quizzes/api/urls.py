from django.urls import path

from .views import (
    AttemptAnswersView,
    AttemptDetailView,
    AttemptFinalizeView,
    AttemptResultView,
    AttemptStartView,
    EligibleQuizListView,
    LeaderboardView,
    SubmissionGradeView,
    TeacherQuizDetailView,
    TeacherQuizListCreateView,
    TeacherQuizSubmissionsView,
)


urlpatterns = [
    path("api/quizzes/eligible/", EligibleQuizListView.as_view(), name="quiz-eligible-list"),
    path(
        "api/quizzes/<int:quiz_id>/attempt/start/",
        AttemptStartView.as_view(),
        name="quiz-attempt-start",
    ),
    path("api/quizzes/<int:quiz_id>/attempt/", AttemptDetailView.as_view(), name="quiz-attempt"),
    path(
        "api/quizzes/<int:quiz_id>/attempt/answers/",
        AttemptAnswersView.as_view(),
        name="quiz-attempt-answers",
    ),
    path(
        "api/quizzes/<int:quiz_id>/attempt/finalize/",
        AttemptFinalizeView.as_view(),
        name="quiz-attempt-finalize",
    ),
    path(
        "api/quizzes/<int:quiz_id>/attempt/result/",
        AttemptResultView.as_view(),
        name="quiz-attempt-result",
    ),
    path(
        "api/quizzes/<int:quiz_id>/leaderboard/",
        LeaderboardView.as_view(),
        name="quiz-leaderboard",
    ),
    path("api/teacher/quizzes/", TeacherQuizListCreateView.as_view(), name="teacher-quiz-list"),
    path(
        "api/teacher/quizzes/<int:quiz_id>/",
        TeacherQuizDetailView.as_view(),
        name="teacher-quiz-detail",
    ),
    path(
        "api/teacher/quizzes/<int:quiz_id>/submissions/",
        TeacherQuizSubmissionsView.as_view(),
        name="teacher-quiz-submissions",
    ),
    path(
        "api/teacher/submissions/<int:submission_id>/grade/",
        SubmissionGradeView.as_view(),
        name="teacher-submission-grade",
    ),
]
