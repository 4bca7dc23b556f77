from django.contrib import admin

from .models import ScheduledJob


@admin.register(ScheduledJob)
class ScheduledJobAdmin(admin.ModelAdmin):
    list_display = ("id", "task_name", "run_at", "status", "attempts", "finished_at")
    list_filter = ("status", "task_name")
    search_fields = ("task_name",)
    readonly_fields = ("created_at", "updated_at", "locked_at", "finished_at", "last_error")
    ordering = ("-run_at",)
