"""URL configuration for the workload lifecycle project."""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("lifecycle/", include("apps.lifecycle.urls")),
]
