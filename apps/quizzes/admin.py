from django.contrib import admin

from .models import AnswerDetail, Question, Quiz, Submission


class QuestionInline(admin.TabularInline):
    model = Question
    extra = 0
    fields = ("order", "type", "prompt", "points", "options", "correct_answer")
    ordering = ("order",)


@admin.register(Quiz)
class QuizAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "owner", "due_date", "time_limit_minutes", "shuffle_questions")
    list_filter = ("shuffle_questions",)
    search_fields = ("title", "owner__username")
    inlines = [QuestionInline]


class AnswerDetailInline(admin.TabularInline):
    model = AnswerDetail
    extra = 0
    fields = ("question", "answer", "correctness", "points_awarded")
    readonly_fields = ("question", "answer")


@admin.register(Submission)
class SubmissionAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "quiz",
        "student",
        "status",
        "score",
        "started_at",
        "submitted_at",
        "auto_submitted",
    )
    list_filter = ("status", "auto_submitted")
    search_fields = ("quiz__title", "student__username")
    readonly_fields = ("started_at", "submitted_at", "question_order", "last_saved_at", "graded_at")
    inlines = [AnswerDetailInline]
