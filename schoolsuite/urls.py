"""URL configuration for the schoolsuite project."""
from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("", include("apps.quizzes.api.urls")),
]
