from django.contrib import admin

from .models import School, StudentProfile, TeacherProfile


@admin.register(School)
class SchoolAdmin(admin.ModelAdmin):
    list_display = ("name", "code", "created_at")
    search_fields = ("name", "code")


@admin.register(StudentProfile)
class StudentProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "grade", "other_grade", "program", "school")
    list_filter = ("grade", "school")
    search_fields = ("user__username", "user__email", "program")


admin.site.register(TeacherProfile)
