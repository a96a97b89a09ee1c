"""Custom Django admin app configuration."""

from django.contrib.admin.apps import AdminConfig


class LifecycleAdminConfig(AdminConfig):
    default_site = "config.admin.LifecycleAdminSite"
