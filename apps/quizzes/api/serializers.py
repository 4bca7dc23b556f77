from __future__ import annotations

from rest_framework import serializers

from ..models import AnswerDetail, Question, Quiz, Submission


class AnswersInputSerializer(serializers.Serializer):
    answers = serializers.DictField(child=serializers.JSONField(allow_null=True))


class GradeInputSerializer(serializers.Serializer):
    grades = serializers.DictField(child=serializers.IntegerField())
    feedback = serializers.CharField(required=False, allow_blank=True)


class QuestionInputSerializer(serializers.Serializer):
    prompt = serializers.CharField()
    type = serializers.ChoiceField(choices=Question.Type.choices)
    points = serializers.IntegerField(min_value=1, default=1)
    options = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    correct_answer = serializers.JSONField(required=False, allow_null=True, default=None)


class QuizCreateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    due_date = serializers.DateTimeField()
    time_limit_minutes = serializers.IntegerField(min_value=1, required=False, allow_null=True, default=None)
    shuffle_questions = serializers.BooleanField(required=False, default=False)
    assigned_user_ids = serializers.ListField(child=serializers.IntegerField(), required=False, default=list)
    assigned_grades = serializers.ListField(child=serializers.IntegerField(), required=False, default=list)
    assigned_other_grades = serializers.ListField(
        child=serializers.IntegerField(), required=False, default=list
    )
    assigned_programs = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    assigned_school_ids = serializers.ListField(child=serializers.IntegerField(), required=False, default=list)
    questions = QuestionInputSerializer(many=True)


class OwnerQuestionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Question
        fields = ["id", "order", "prompt", "type", "points", "options", "correct_answer"]
        read_only_fields = fields


class OwnerQuizSerializer(serializers.ModelSerializer):
    questions = OwnerQuestionSerializer(many=True, read_only=True)
    submission_count = serializers.IntegerField(read_only=True, required=False)
    pending_grading_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = Quiz
        fields = [
            "id",
            "title",
            "description",
            "due_date",
            "time_limit_minutes",
            "shuffle_questions",
            "assigned_user_ids",
            "assigned_grades",
            "assigned_other_grades",
            "assigned_programs",
            "assigned_school_ids",
            "questions",
            "submission_count",
            "pending_grading_count",
            "created_at",
        ]
        read_only_fields = fields


class AnswerDetailSerializer(serializers.ModelSerializer):
    question_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = AnswerDetail
        fields = ["question_id", "answer", "correctness", "points_awarded"]
        read_only_fields = fields


class OwnerSubmissionSerializer(serializers.ModelSerializer):
    student_username = serializers.CharField(source="student.username", read_only=True)
    details = AnswerDetailSerializer(many=True, read_only=True)

    class Meta:
        model = Submission
        fields = [
            "id",
            "student",
            "student_username",
            "status",
            "score",
            "started_at",
            "submitted_at",
            "auto_submitted",
            "graded_at",
            "feedback",
            "details",
        ]
        read_only_fields = fields


class RankEntrySerializer(serializers.Serializer):
    position = serializers.IntegerField()
    student_id = serializers.IntegerField()
    student_name = serializers.CharField()
    score = serializers.IntegerField()
    status = serializers.CharField()
