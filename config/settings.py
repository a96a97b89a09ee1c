"""Django settings for the workload lifecycle project.

Values come from environment variables; local overrides can live in .env
(see config/env.py).
"""

from __future__ import annotations

import os
from datetime import timedelta
from pathlib import Path

from config.env import env_bool, env_int, env_list, load_env

BASE_DIR = Path(__file__).resolve().parent.parent

load_env(BASE_DIR)

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "insecure-dev-key-change-me")
DEBUG = env_bool("DJANGO_DEBUG", False)
ALLOWED_HOSTS = env_list("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1")

INSTALLED_APPS = [
    "config.apps.LifecycleAdminConfig",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "django_object_actions",
    "apps.lifecycle",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [BASE_DIR / "templates"],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("DJANGO_DB_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"

# Holds the per-instance reconcile locks and queued-pass markers; every web
# process and Celery worker must share it.
CACHES = {
    "default": {
        "BACKEND": os.environ.get(
            "DJANGO_CACHE_BACKEND", "django.core.cache.backends.redis.RedisCache"
        ),
        "LOCATION": os.environ.get("DJANGO_CACHE_LOCATION", "redis://localhost:6379/1"),
        "KEY_PREFIX": "workload-lifecycle",
    }
}

# --- Logging ---
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{asctime} {levelname} {name} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        "apps.lifecycle": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
    },
}

# --- Celery ---
CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", CELERY_BROKER_URL)
CELERY_TASK_ALWAYS_EAGER = env_bool("CELERY_TASK_ALWAYS_EAGER", False)
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TIMEZONE = TIME_ZONE

# --- Workload lifecycle ---
LIFECYCLE_REQUEUE_AFTER_SECONDS = env_int("LIFECYCLE_REQUEUE_AFTER_SECONDS", 5)
LIFECYCLE_TASK_NAME_MAX_ATTEMPTS = env_int("LIFECYCLE_TASK_NAME_MAX_ATTEMPTS", 5)
LIFECYCLE_STORE_TIMEOUT_SECONDS = env_int("LIFECYCLE_STORE_TIMEOUT_SECONDS", 30)
LIFECYCLE_RESYNC_INTERVAL_SECONDS = env_int("LIFECYCLE_RESYNC_INTERVAL_SECONDS", 60)
LIFECYCLE_RECONCILE_LOCK_SECONDS = env_int("LIFECYCLE_RECONCILE_LOCK_SECONDS", 60)
LIFECYCLE_RECONCILE_MAX_RETRIES = env_int("LIFECYCLE_RECONCILE_MAX_RETRIES", 10)
LIFECYCLE_AUTO_RECONCILE = env_bool("LIFECYCLE_AUTO_RECONCILE", True)
LIFECYCLE_EVENT_REPORTING_CONTROLLER = os.environ.get(
    "LIFECYCLE_EVENT_REPORTING_CONTROLLER", "workloadinstance-controller"
)
LIFECYCLE_METRICS_BACKEND = os.environ.get("LIFECYCLE_METRICS_BACKEND", "logging")

STATSD_HOST = os.environ.get("STATSD_HOST", "localhost")
STATSD_PORT = env_int("STATSD_PORT", 8125)
STATSD_PREFIX = os.environ.get("STATSD_PREFIX", "lifecycle")

CELERY_BEAT_SCHEDULE = {
    "resync-workload-instances": {
        "task": "apps.lifecycle.tasks.resync_workload_instances",
        "schedule": timedelta(seconds=LIFECYCLE_RESYNC_INTERVAL_SECONDS),
    },
}
