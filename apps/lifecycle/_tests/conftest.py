"""Shared test fixtures for the lifecycle app."""

import itertools

import pytest
from django.core.cache import cache

from apps.lifecycle.models import WorkloadInstance
from apps.lifecycle.store import DjangoObjectStore


@pytest.fixture(autouse=True)
def local_cache(settings):
    """Keep reconcile locks and queued-pass markers in process memory."""
    settings.CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "lifecycle-tests",
        }
    }
    cache.clear()


def make_instance(**overrides) -> WorkloadInstance:
    """Create a WorkloadInstance shaped like a typical gated deployment."""
    fields = {
        "name": "checkout",
        "namespace": "ns",
        "app_name": "shop",
        "pre_deployment_check": {"task_payload": {"checks": ["image-scan"]}},
        "post_deployment_check": {"task_payload": {"checks": ["smoke-test"]}},
        "annotations": {"team": "payments"},
    }
    fields.update(overrides)
    return WorkloadInstance.objects.create(**fields)


def sequential_ids(*ids):
    """id_source for CheckTaskFactory returning the given ids in order."""
    return iter(ids).__next__


@pytest.fixture
def store():
    return DjangoObjectStore()


@pytest.fixture
def workload_instance(db):
    return make_instance()


@pytest.fixture
def id_source():
    counter = itertools.count(1)
    return lambda: f"{next(counter):010d}"
