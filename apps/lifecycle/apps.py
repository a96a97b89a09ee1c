"""Django app configuration for the lifecycle app."""

from django.apps import AppConfig


class LifecycleConfig(AppConfig):
    """Configuration for the Workload Lifecycle app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.lifecycle"
    verbose_name = "Workload Lifecycle"

    def ready(self):
        from apps.lifecycle import receivers  # noqa: F401
