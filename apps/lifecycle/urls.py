"""URL configuration for the lifecycle app."""

from django.urls import path

from apps.lifecycle.views import (
    WorkloadInstanceListView,
    WorkloadInstanceReconcileView,
    WorkloadInstanceStatusView,
)

app_name = "lifecycle"

urlpatterns = [
    path("instances/", WorkloadInstanceListView.as_view(), name="instance-list"),
    path(
        "instances/<str:namespace>/<str:name>/",
        WorkloadInstanceStatusView.as_view(),
        name="instance-status",
    ),
    path(
        "instances/<str:namespace>/<str:name>/reconcile/",
        WorkloadInstanceReconcileView.as_view(),
        name="instance-reconcile",
    ),
    path(
        "instances/<str:namespace>/<str:name>/reconcile/sync/",
        WorkloadInstanceReconcileView.as_view(),
        {"mode": "sync"},
        name="instance-reconcile-sync",
    ),
]
