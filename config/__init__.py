"""Django project configuration for workload lifecycle gating."""

from config.celery import app as celery_app

__all__ = ("celery_app",)
